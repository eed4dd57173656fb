"""
Append-only provenance trace log

Each observed action becomes one trace: a JSON object written as a single
line to a newline-delimited log under the workspace root. Traces are never
edited or removed once written, and this module never reads the log back.
"""

import json
import logging
import os
import subprocess
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .models import Finding, RangePosition


LOGGER = logging.getLogger(__name__)

TRACE_PATH = '.agent-trace/traces.jsonl'
TRACE_VERSION = '1.0'
CONTRIBUTOR_TYPES = ('human', 'ai', 'mixed', 'unknown')
PROJECT_MARKERS = ('.git', '.claude')
MATCH_PREVIEW_CHARS = 50

_MODEL_PROVIDERS = (
    ('claude-', 'anthropic'),
    ('gpt-', 'openai'),
    ('o1', 'openai'),
    ('o3', 'openai'),
    ('gemini-', 'google'),
)


# ============================================================================
# Workspace Detection
# ============================================================================

class WorkspaceDetector:
    """Detects the workspace root that trace paths are made relative to"""

    ENV_VARS = ('CURSOR_PROJECT_DIR', 'CLAUDE_PROJECT_DIR')

    def detect(self, start: Optional[str] = None) -> str:
        for var in self.ENV_VARS:
            value = os.environ.get(var)
            if value:
                return value

        current = Path(start or os.getcwd()).resolve()
        return str(self._find_project_markers(current) or current)

    def _find_project_markers(self, start_path: Path) -> Optional[Path]:
        """Walk upward to the nearest directory holding a project marker"""
        home_dir = Path.home().resolve()
        for path in [start_path] + list(start_path.parents):
            if path == home_dir or path == Path(path.anchor):
                break
            if any((path / marker).exists() for marker in PROJECT_MARKERS):
                return path
        return None


def has_git_root(start_dir: str) -> bool:
    current = Path(start_dir).resolve()
    return any((path / '.git').exists() for path in [current] + list(current.parents))


def get_vcs_info(cwd: str) -> Optional[Dict[str, str]]:
    if not has_git_root(cwd):
        return None
    try:
        result = subprocess.run(
            ['git', 'rev-parse', 'HEAD'],
            cwd=cwd, capture_output=True, text=True, timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        LOGGER.debug("git rev-parse failed: %s", e)
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None
    return {'type': 'git', 'revision': result.stdout.strip()}


def get_tool_info(default_name: str = 'agent-guardian') -> Dict[str, str]:
    if os.environ.get('CURSOR_VERSION'):
        return {'name': 'cursor', 'version': os.environ['CURSOR_VERSION']}
    if os.environ.get('CLAUDE_PROJECT_DIR'):
        return {'name': 'claude-code'}
    return {'name': default_name, 'version': __version__}


def normalize_model_id(model: Optional[str]) -> Optional[str]:
    """Prefix bare model names with their provider"""
    if not model:
        return None
    if '/' in model:
        return model
    for prefix, provider in _MODEL_PROVIDERS:
        if model.startswith(prefix):
            return f"{provider}/{model}"
    return model


def compute_range_positions(edits: Sequence[Dict[str, Any]],
                            file_content: Optional[str] = None) -> List[RangePosition]:
    """Estimate the line ranges an edit touched"""
    ranges: List[RangePosition] = []
    for edit in edits:
        new_string = edit.get('new_string')
        if not isinstance(new_string, str) or not new_string:
            continue

        range_info = edit.get('range')
        if isinstance(range_info, dict) and range_info.get('start_line_number') and range_info.get('end_line_number'):
            ranges.append(RangePosition(int(range_info['start_line_number']), int(range_info['end_line_number'])))
            continue

        line_count = new_string.count('\n') + 1
        if file_content:
            index = file_content.find(new_string)
            if index != -1:
                start_line = file_content.count('\n', 0, index) + 1
                ranges.append(RangePosition(start_line, start_line + line_count - 1))
                continue

        ranges.append(RangePosition(1, max(1, line_count)))
    return ranges


def try_read_file(path: str) -> Optional[str]:
    try:
        return Path(path).read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError):
        return None


def _compact(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


# ============================================================================
# Trace Log
# ============================================================================

class TraceLog:
    """File-backed append-only store of trace records"""

    def __init__(self, workspace_root: Optional[str] = None, config=None):
        trace_cfg = config.get_section('trace') if config is not None else {}
        self.workspace_root = workspace_root or WorkspaceDetector().detect()
        self.version = str(trace_cfg.get('version') or TRACE_VERSION)
        self.tool_name = str(trace_cfg.get('tool_name') or 'agent-guardian')
        relative = trace_cfg.get('path') or TRACE_PATH
        self.path = Path(self.workspace_root) / relative

    def relative_path(self, path: str) -> str:
        if not os.path.isabs(path):
            return path
        try:
            return os.path.relpath(path, self.workspace_root)
        except ValueError:
            return path

    def create(self,
               file_path: str,
               contributor_type: str = 'ai',
               model: Optional[str] = None,
               ranges: Optional[Sequence[RangePosition]] = None,
               transcript: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Build one trace record in memory"""
        if contributor_type not in CONTRIBUTOR_TYPES:
            contributor_type = 'unknown'

        contributor = {'type': contributor_type}
        model_id = normalize_model_id(model)
        if model_id:
            contributor['model_id'] = model_id

        conversation: Dict[str, Any] = {
            'contributor': contributor,
            'ranges': [r.to_dict() for r in (ranges or [RangePosition(1, 1)])],
        }
        if transcript:
            conversation['url'] = f"file://{transcript}"

        trace: Dict[str, Any] = {
            'version': self.version,
            'id': str(uuid.uuid4()),
            'timestamp': datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'files': [{
                'path': self.relative_path(file_path),
                'conversations': [conversation],
            }],
        }

        vcs = get_vcs_info(self.workspace_root)
        if vcs:
            trace['vcs'] = vcs
        trace['tool'] = get_tool_info(self.tool_name)

        metadata = _compact(metadata or {})
        if metadata:
            trace['metadata'] = metadata
        return trace

    def append(self, trace: Dict[str, Any]) -> None:
        """Write the trace as one line at the end of the log"""
        line = (json.dumps(trace, default=str) + '\n').encode('utf-8')
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, line)
        finally:
            os.close(fd)

    def record(self, file_path: str, **kwargs) -> Dict[str, Any]:
        trace = self.create(file_path, **kwargs)
        self.append(trace)
        return trace

    def try_record(self, file_path: str, **kwargs) -> Optional[Dict[str, Any]]:
        """record(), logging instead of raising when the log cannot be written"""
        try:
            return self.record(file_path, **kwargs)
        except OSError as e:
            LOGGER.warning("Could not append trace for %s to %s: %s", file_path, self.path, e)
            return None

    def log_secret_detection(self,
                             findings: Sequence[Finding],
                             event_name: str,
                             context: str,
                             model: Optional[str] = None,
                             transcript: Optional[str] = None,
                             conversation_id: Optional[str] = None,
                             generation_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """One trace per finding label, one range per finding"""
        by_file: Dict[str, List[Finding]] = {}
        for finding in findings:
            by_file.setdefault(finding.file or '[unknown]', []).append(finding)

        traces = []
        for file_path, file_findings in by_file.items():
            trace = self.try_record(
                file_path,
                contributor_type='ai',
                model=model,
                ranges=[RangePosition(f.line or 1, f.line or 1) for f in file_findings],
                transcript=transcript,
                metadata={
                    'event': context,
                    'tool': self.tool_name,
                    'scanner': 'secret-scan',
                    'hook_event': event_name,
                    'conversation_id': conversation_id,
                    'generation_id': generation_id,
                    'secret_count': len(file_findings),
                    'secrets': [
                        {'type': f.type, 'line': f.line, 'match_preview': _preview(f.match)}
                        for f in file_findings
                    ],
                },
            )
            if trace is not None:
                traces.append(trace)
        return traces


def _preview(match: str) -> str:
    if len(match) > MATCH_PREVIEW_CHARS:
        return match[:MATCH_PREVIEW_CHARS] + '...'
    return match
