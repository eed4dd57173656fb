"""
Edited-file set shared across hook invocations

Each hook firing is a fresh process, so the set lives in a small JSON side
file. Appends read the whole file, modify it and write it back; concurrent
writers race and the last one wins, bounded by the entry cap.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

LOGGER = logging.getLogger(__name__)

FILE_EDIT_LIMIT = 500
DEFAULT_CACHE_PATH = os.path.join(tempfile.gettempdir(), 'agent-guardian', 'edited-files.json')


class EditedFileStore:
    """Bounded, deduplicated, order-preserving list of edited paths"""

    def __init__(self, cache_path: Optional[str] = None, limit: int = FILE_EDIT_LIMIT):
        self.cache_path = Path(cache_path or DEFAULT_CACHE_PATH)
        self.limit = limit

    @classmethod
    def from_config(cls, config) -> 'EditedFileStore':
        section = config.get_section('edited_files')
        return cls(section.get('cache_path'), int(section.get('limit') or FILE_EDIT_LIMIT))

    def load(self) -> List[str]:
        if not self.cache_path.exists():
            return []
        try:
            data = json.loads(self.cache_path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            LOGGER.debug("Unreadable edited-file cache %s: %s", self.cache_path, e)
            return []
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, str)]

    def append(self, path: str) -> bool:
        """Record a path; False when already present or the cap is reached"""
        if not path:
            return False
        edited = self.load()
        if len(edited) >= self.limit or path in edited:
            return False
        edited.append(path)
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(json.dumps(edited), encoding='utf-8')
        return True

    def clear(self) -> None:
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            pass
