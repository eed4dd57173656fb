"""
Pattern-based secret detection over text and files
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import FileNotFound, SizeLimitExceeded
from .models import Finding
from .secret_patterns import SECRET_PATTERNS, SecretPattern


LOGGER = logging.getLogger(__name__)

MAX_SCAN_BYTES = 5 * 1024 * 1024
SAMPLE_BYTES = 4096
BINARY_THRESHOLD = 0.3

# Printable ASCII plus LF, CR, TAB and BS
_TEXT_BYTES = frozenset(range(0x20, 0x7F)) | {0x0A, 0x0D, 0x09, 0x08}


def is_probably_binary(block: bytes, threshold: float = BINARY_THRESHOLD) -> bool:
    """Classify a byte sample as binary"""
    if b'\x00' in block:
        return True
    if not block:
        return False
    non_text = sum(1 for byte in block if byte not in _TEXT_BYTES)
    return non_text / len(block) > threshold


class SecretDetector:
    """Scans text and files against the secret pattern table"""

    def __init__(self,
                 patterns: Sequence[SecretPattern] = SECRET_PATTERNS,
                 max_scan_bytes: int = MAX_SCAN_BYTES,
                 sample_bytes: int = SAMPLE_BYTES,
                 binary_threshold: float = BINARY_THRESHOLD):
        self.patterns = tuple(patterns)
        self.max_scan_bytes = max_scan_bytes
        self.sample_bytes = sample_bytes
        self.binary_threshold = binary_threshold

    @classmethod
    def from_config(cls, config) -> 'SecretDetector':
        return cls(
            max_scan_bytes=int(config.get_security_option('max_scan_bytes', MAX_SCAN_BYTES)),
            sample_bytes=int(config.get_security_option('sample_bytes', SAMPLE_BYTES)),
            binary_threshold=float(config.get_security_option('binary_threshold', BINARY_THRESHOLD)),
        )

    def scan(self, text: str, label: str) -> List[Finding]:
        """Match every pattern against the whole text"""
        findings: List[Finding] = []
        if not text:
            return findings

        for pattern in self.patterns:
            for match in pattern.regex.finditer(text):
                line = text.count('\n', 0, match.start()) + 1
                findings.append(Finding(file=label, line=line, type=pattern.name, match=match.group(0)))
        return findings

    def should_scan_file(self, path: str) -> bool:
        """Sample the head of the file and skip anything that looks binary"""
        try:
            with open(path, 'rb') as f:
                sample = f.read(self.sample_bytes)
        except OSError as e:
            LOGGER.debug("Cannot sample %s: %s", path, e)
            return False
        if not sample:
            return True
        return not is_probably_binary(sample, self.binary_threshold)

    def scan_file(self, path: str) -> List[Finding]:
        """Scan a file; raises FileNotFound or SizeLimitExceeded"""
        path = str(path)
        if not os.path.exists(path):
            raise FileNotFound(f"File does not exist: {path}")

        if not self.should_scan_file(path):
            return []

        size = os.path.getsize(path)
        if size > self.max_scan_bytes:
            raise SizeLimitExceeded(path, size, self.max_scan_bytes)

        blob = Path(path).read_bytes()
        if is_probably_binary(blob, self.binary_threshold):
            return []

        return self.scan(blob.decode('utf-8', errors='replace'), path)

    def scan_paths(self, paths: Iterable[str]) -> List[Finding]:
        """Scan several files, leaving out any that cannot be scanned"""
        findings: List[Finding] = []
        for path in paths:
            try:
                findings.extend(self.scan_file(path))
            except (FileNotFound, SizeLimitExceeded, OSError) as e:
                LOGGER.debug("Skipping %s: %s", path, e)
        return findings


def build_findings_message(findings: Sequence[Finding], heading: str, limit: int = 5) -> str:
    """Summarize findings per file for the hook's block/warn reason"""
    if not findings:
        return heading

    grouped: Dict[str, List[Finding]] = {}
    for finding in findings:
        grouped.setdefault(finding.file or '[unknown]', []).append(finding)

    lines = []
    for label, entries in grouped.items():
        types = sorted({entry.type for entry in entries})
        line = f"{label}: {', '.join(types[:3])}"
        numbers = ', '.join(str(entry.line) for entry in entries[:limit])
        if numbers:
            line += f" (lines {numbers})"
        if len(entries) > limit:
            line += f" (+{len(entries) - limit} more)"
        lines.append(line)

    output = heading + '\n' + '\n'.join(f" - {line}" for line in lines[:limit])
    if len(findings) > limit:
        output += f"\nShowing first {limit} of {len(findings)} findings."
    return output


def resolve_path(file_path: str, workspace_roots: Optional[Sequence[str]] = None) -> str:
    """Anchor a relative tool path at the first workspace root"""
    if not file_path or os.path.isabs(file_path):
        return file_path
    roots = [root for root in (workspace_roots or []) if root]
    root = (roots[0] if roots else None) or os.environ.get('CURSOR_PROJECT_DIR') or os.getcwd()
    return os.path.join(root, file_path)


_default_detector = SecretDetector()


def scan_text(text: str, label: str) -> List[Finding]:
    return _default_detector.scan(text, label)


def scan_file(path: str) -> List[Finding]:
    return _default_detector.scan_file(path)
