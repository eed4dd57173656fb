"""
Checkpoint ("stop") scan over every file edited since the last checkpoint
"""

import logging
import os
import shutil
from typing import Any, Dict, List, Optional, Sequence

from .edited_files import EditedFileStore
from .errors import PathEscape, ScannerFailed, ScannerUnavailable
from .models import CheckpointResult, RangePosition, ScannerFinding
from .scanner import SemgrepScanner, collect_local_files, copy_to_sandbox, parse_results
from .trace import TraceLog


LOGGER = logging.getLogger(__name__)

STOP_TRACE_FILE = '.stop-hooks'
ERROR_PREVIEW_CHARS = 500

STATUS_NO_FILES = 'no_files_to_scan'
STATUS_NO_VALID_FILES = 'no_valid_files'
STATUS_UNAVAILABLE = 'scanner_unavailable'
STATUS_SCAN_FAILED = 'scan_failed'
STATUS_PARSE_ERROR = 'parse_error'
STATUS_PATH_ESCAPE = 'path_escape'
STATUS_FOUND = 'vulnerabilities_found'
STATUS_CLEAN = 'no_vulnerabilities'


def map_findings_to_files(findings: Sequence[ScannerFinding],
                          edited_paths: Sequence[str]) -> Dict[str, List[ScannerFinding]]:
    """Attribute sandbox results back to edited files by basename"""
    by_file: Dict[str, List[ScannerFinding]] = {}
    for finding in findings:
        base_name = os.path.basename(finding.path)
        original = next((p for p in edited_paths if os.path.basename(p) == base_name), None)
        if original:
            by_file.setdefault(original, []).append(finding)
    return by_file


class CheckpointScan:
    """One checkpoint run: copy, scan, attribute, trace, clean up"""

    def __init__(self,
                 scanner: SemgrepScanner,
                 trace_log: TraceLog,
                 store: Optional[EditedFileStore] = None,
                 context: Optional[Dict[str, Any]] = None):
        self.scanner = scanner
        self.trace_log = trace_log
        self.store = store
        self.context = context or {}

    def _stop_trace(self, status: str, **extra) -> None:
        metadata = {
            'event': 'stop_hook_executed',
            'tool': self.trace_log.tool_name,
            'conversation_id': self.context.get('conversation_id'),
            'generation_id': self.context.get('generation_id'),
            'status': status,
        }
        metadata.update(extra)
        self.trace_log.try_record(
            STOP_TRACE_FILE,
            contributor_type='ai',
            model=self.context.get('model'),
            transcript=self.context.get('transcript_path'),
            metadata=metadata,
        )

    def _file_trace(self, file_path: str, findings: Sequence[ScannerFinding]) -> None:
        self.trace_log.try_record(
            file_path,
            contributor_type='ai',
            model=self.context.get('model'),
            ranges=[RangePosition(f.start_line, f.end_line) for f in findings],
            transcript=self.context.get('transcript_path'),
            metadata={
                'event': 'vulnerability_detected',
                'tool': self.trace_log.tool_name,
                'scanner': 'semgrep',
                'conversation_id': self.context.get('conversation_id'),
                'generation_id': self.context.get('generation_id'),
                'vulnerability_count': len(findings),
                'rules': sorted({f.rule_id for f in findings}),
            },
        )

    def run(self, edited_paths: Sequence[str], base_dir: Optional[str] = None) -> CheckpointResult:
        temp_dir = None
        try:
            if not edited_paths:
                self._stop_trace(STATUS_NO_FILES)
                return CheckpointResult(status=STATUS_NO_FILES, summary='No edited files to scan')

            local_files = collect_local_files(edited_paths, base_dir)
            if not local_files:
                self._stop_trace(STATUS_NO_VALID_FILES)
                return CheckpointResult(status=STATUS_NO_VALID_FILES, summary='No readable edited files')

            try:
                temp_dir = copy_to_sandbox(local_files)
            except PathEscape as e:
                self._stop_trace(STATUS_PATH_ESCAPE, error=str(e))
                return CheckpointResult(status=STATUS_PATH_ESCAPE, summary='Checkpoint scan aborted', error=str(e))

            try:
                outcome = self.scanner.run(temp_dir)
            except ScannerUnavailable as e:
                LOGGER.warning("Checkpoint scan skipped: %s", e)
                self._stop_trace(STATUS_UNAVAILABLE, error=str(e))
                return CheckpointResult(status=STATUS_UNAVAILABLE, summary=f"Scanner unavailable: {e}", error=str(e))
            except ScannerFailed as e:
                LOGGER.warning("Checkpoint scan failed: %s", e)
                self._stop_trace(STATUS_SCAN_FAILED, error=str(e))
                return CheckpointResult(status=STATUS_SCAN_FAILED, summary=f"Scanner failed: {e}", error=str(e))

            if outcome.returncode != 0:
                error_text = (outcome.stderr or outcome.stdout or 'Unknown scanner error')[:ERROR_PREVIEW_CHARS]
                LOGGER.warning("Scanner exited with %s", outcome.returncode)
                self._stop_trace(STATUS_SCAN_FAILED, error=error_text, scanner_path=outcome.executable)
                return CheckpointResult(
                    status=STATUS_SCAN_FAILED,
                    summary=f"Scanner encountered errors: {error_text} (scanner: {outcome.executable})",
                    error=error_text,
                )

            try:
                findings = parse_results(outcome.stdout)
            except ValueError as e:
                self._stop_trace(STATUS_PARSE_ERROR, error=str(e))
                return CheckpointResult(status=STATUS_PARSE_ERROR, summary='Could not parse scanner output',
                                        error=str(e))

            if not findings:
                self._stop_trace(STATUS_CLEAN, files_scanned=len(edited_paths))
                return CheckpointResult(status=STATUS_CLEAN, summary='No security findings',
                                        files_scanned=len(edited_paths))

            per_file = map_findings_to_files(findings, edited_paths)
            for file_path, file_findings in per_file.items():
                self._file_trace(file_path, file_findings)
            self._stop_trace(STATUS_FOUND, total_vulnerabilities=len(findings), files_scanned=len(edited_paths))

            return CheckpointResult(
                status=STATUS_FOUND,
                vulnerabilities_found=True,
                summary=f"Found {len(findings)} security finding(s)",
                per_file_findings=per_file,
                files_scanned=len(edited_paths),
                total_findings=len(findings),
            )
        finally:
            if temp_dir:
                shutil.rmtree(temp_dir, ignore_errors=True)
            if self.store is not None:
                self.store.clear()


def run_checkpoint_scan(edited_paths: Sequence[str],
                        scanner: SemgrepScanner,
                        trace_log: TraceLog,
                        store: Optional[EditedFileStore] = None,
                        base_dir: Optional[str] = None,
                        context: Optional[Dict[str, Any]] = None) -> CheckpointResult:
    return CheckpointScan(scanner, trace_log, store, context).run(edited_paths, base_dir)
