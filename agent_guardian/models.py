"""Value types passed between the detectors, the trace log and the hook"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


SEVERITY_BLOCK = 'block'
SEVERITY_WARN = 'warn'
SEVERITY_OK = 'ok'


@dataclass(frozen=True)
class Finding:
    """A single detected secret occurrence"""
    file: str
    line: int
    type: str
    match: str


@dataclass(frozen=True)
class Verdict:
    """Outcome of classifying one action"""
    is_safe: bool
    severity: str
    reason: str = ''

    @classmethod
    def ok(cls):
        return cls(is_safe=True, severity=SEVERITY_OK, reason='')

    @classmethod
    def warn(cls, reason: str):
        return cls(is_safe=True, severity=SEVERITY_WARN, reason=reason)

    @classmethod
    def block(cls, reason: str):
        return cls(is_safe=False, severity=SEVERITY_BLOCK, reason=reason)

    @property
    def is_blocked(self) -> bool:
        return self.severity == SEVERITY_BLOCK


@dataclass(frozen=True)
class PiiMatch:
    """A piece of personally identifiable data found in text"""
    type: str
    value: str


@dataclass(frozen=True)
class RangePosition:
    start_line: int
    end_line: int

    def to_dict(self) -> Dict[str, int]:
        return {'start_line': self.start_line, 'end_line': self.end_line}


@dataclass(frozen=True)
class ScannerFinding:
    """One result reported by the external static-analysis scanner"""
    path: str
    rule_id: str
    message: str
    severity: str
    start_line: int
    end_line: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckpointResult:
    """Outcome of a checkpoint scan over the edited-file set"""
    status: str
    vulnerabilities_found: bool = False
    summary: str = ''
    per_file_findings: Dict[str, List[ScannerFinding]] = field(default_factory=dict)
    files_scanned: int = 0
    total_findings: int = 0
    error: Optional[str] = None
