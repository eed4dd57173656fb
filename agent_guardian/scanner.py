"""
External static-analysis scanner (semgrep) contract

Only the result shape matters to the checkpoint scan: a JSON object with a
`results` list. Locating the executable and running it is kept minimal.
"""

import json
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import PathEscape, ScannerFailed, ScannerUnavailable
from .models import ScannerFinding


LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
TEMP_PREFIX = 'guardian_scan_'


@dataclass
class ScannerRun:
    returncode: int
    stdout: str
    stderr: str
    executable: str


@dataclass
class LocalFile:
    path: str
    content: str


class SemgrepScanner:
    """Runs semgrep over a directory and parses its JSON report"""

    def __init__(self,
                 command: str = 'semgrep',
                 rule_config: Optional[str] = None,
                 timeout: int = DEFAULT_TIMEOUT,
                 extra_args: Optional[Sequence[str]] = None,
                 workspace_root: Optional[str] = None):
        self.command = command
        self.rule_config = rule_config
        self.timeout = timeout
        self.extra_args = list(extra_args or [])
        self.workspace_root = workspace_root

    @classmethod
    def from_config(cls, config, workspace_root: Optional[str] = None) -> 'SemgrepScanner':
        section = config.get_section('scanner')
        return cls(
            command=section.get('command') or 'semgrep',
            rule_config=section.get('config'),
            timeout=int(section.get('timeout') or DEFAULT_TIMEOUT),
            extra_args=section.get('extra_args') or [],
            workspace_root=workspace_root,
        )

    def find_executable(self) -> Optional[str]:
        name = Path(self.command).name
        candidates = []
        if os.sep in self.command:
            candidates.append(os.path.expanduser(self.command))
        if os.environ.get('SEMGREP_PATH'):
            candidates.append(os.environ['SEMGREP_PATH'])
        if os.environ.get('VIRTUAL_ENV'):
            candidates.append(os.path.join(os.environ['VIRTUAL_ENV'], 'bin', name))
        if self.workspace_root:
            candidates.append(os.path.join(self.workspace_root, '.venv', 'bin', name))

        for candidate in candidates:
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                return candidate
        return shutil.which(name)

    def scan_args(self, target_dir: str) -> List[str]:
        args = ['scan', '--json']
        if self.rule_config:
            args += ['--config', self.rule_config]
        return args + self.extra_args + [target_dir]

    def run(self, target_dir: str) -> ScannerRun:
        executable = self.find_executable()
        if not executable:
            raise ScannerUnavailable(f"Failed to find {self.command} executable")

        LOGGER.debug("Running %s on %s", executable, target_dir)
        try:
            result = subprocess.run(
                [executable] + self.scan_args(target_dir),
                capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ScannerFailed(f"{self.command} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ScannerFailed(f"Could not run {executable}: {e}") from e

        return ScannerRun(result.returncode, result.stdout or '', result.stderr or '', executable)


# ============================================================================
# Result parsing
# ============================================================================

def _result_path(record: Dict[str, Any]) -> Optional[str]:
    path = record.get('path')
    if isinstance(path, str):
        return path
    if isinstance(path, dict) and isinstance(path.get('value'), str):
        return path['value']
    target = record.get('target')
    if isinstance(target, dict) and isinstance(target.get('path'), str):
        return target['path']
    return None


def _line(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get('line')
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    return None


def parse_finding(record: Any) -> Optional[ScannerFinding]:
    """Map one report entry; None when it lacks a file path"""
    if not isinstance(record, dict):
        return None
    path = _result_path(record)
    if not path:
        return None

    extra = record.get('extra') if isinstance(record.get('extra'), dict) else {}
    start = _line(record.get('start')) or _line(record.get('line')) or 1
    end = _line(record.get('end')) or _line(record.get('end_line')) or start
    return ScannerFinding(
        path=path,
        rule_id=str(record.get('check_id') or record.get('rule_id') or 'unknown'),
        message=str(extra.get('message') or record.get('message') or ''),
        severity=str(extra.get('severity') or record.get('severity') or 'UNKNOWN'),
        start_line=start,
        end_line=max(start, end),
    )


def parse_results(stdout: str) -> List[ScannerFinding]:
    """Decode the scanner's JSON report; raises ValueError on a bad document"""
    document = json.loads(stdout)
    if not isinstance(document, dict) or not isinstance(document.get('results'), list):
        raise ValueError('Scanner output has no results list')

    findings = []
    for record in document['results']:
        finding = parse_finding(record)
        if finding is None:
            LOGGER.debug("Skipping malformed scanner result: %r", record)
            continue
        findings.append(finding)
    return findings


# ============================================================================
# Sandbox copy
# ============================================================================

def safe_join(base_dir: str, untrusted_path: str) -> str:
    """Join a relative name under base_dir, refusing anything that escapes it"""
    base = os.path.realpath(base_dir)
    if not untrusted_path or untrusted_path == '.' or not untrusted_path.replace('/', ''):
        return base
    if os.path.isabs(untrusted_path):
        raise PathEscape(f"Untrusted path must be relative: {untrusted_path}")
    full = os.path.realpath(os.path.join(base, untrusted_path))
    if os.path.commonpath([base, full]) != base:
        raise PathEscape(f"Untrusted path escapes the base directory: {untrusted_path}")
    return full


def collect_local_files(file_paths: Sequence[str], base_dir: Optional[str] = None) -> List[LocalFile]:
    """Read edited files that still exist, keeping only their basenames"""
    collected = []
    for file_path in file_paths:
        resolved = file_path
        if not os.path.isabs(resolved) and base_dir:
            resolved = os.path.join(base_dir, resolved)
        if not os.path.isfile(resolved):
            continue
        try:
            content = Path(resolved).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            LOGGER.debug("Skipping unreadable file %s: %s", resolved, e)
            continue
        collected.append(LocalFile(path=os.path.basename(resolved), content=content))
    return collected


def copy_to_sandbox(files: Sequence[LocalFile]) -> str:
    """Write files into a fresh temp directory; removes it again on failure"""
    temp_dir = tempfile.mkdtemp(prefix=TEMP_PREFIX)
    try:
        for local in files:
            if not local.path:
                continue
            target = safe_join(temp_dir, local.path)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                f.write(local.content or '')
    except Exception:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise
    return temp_dir
