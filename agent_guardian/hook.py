#!/usr/bin/env python3
"""
Agent Guardian hook entry point

Reads one hook event as JSON on stdin, runs the secret, risk and PII checks
that apply to it, appends trace records, and prints one JSON decision.
"""

import json
import logging
import os
import sys
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from .checkpoint import run_checkpoint_scan
from .config import ConfigManager, configure_logging
from .edited_files import EditedFileStore
from .errors import FileNotFound, InputMalformed, SizeLimitExceeded
from .events import (
    SESSION_EVENTS, HookEvent, PostToolUseEvent, PreToolUseEvent, StopEvent,
    UserPromptSubmitEvent, parse_event,
)
from .models import Finding, PiiMatch, RangePosition
from .pii import detect_pii, summarize_pii
from .risk import READ_TOOLS, SHELL_TOOLS, WRITE_TOOLS, RiskClassifier, is_mcp_tool
from .scanner import SemgrepScanner
from .secret_scan import SecretDetector, build_findings_message, resolve_path
from .shell_paths import extract_read_paths
from .trace import TraceLog, WorkspaceDetector, compute_range_positions, try_read_file


LOGGER = logging.getLogger(__name__)

PII_ACTIONS = ('off', 'warn', 'block')


# ============================================================================
# Response Formatting
# ============================================================================

def format_pre_tool_decision(decision: str, reason: Optional[str] = None,
                             system_message: Optional[str] = None) -> Dict[str, Any]:
    output: Dict[str, Any] = {'hookEventName': 'PreToolUse', 'permissionDecision': decision}
    if reason:
        output['permissionDecisionReason'] = reason
    payload: Dict[str, Any] = {'hookSpecificOutput': output}
    if system_message:
        payload['systemMessage'] = system_message
    return payload


def format_decision_block(reason: str, event_name: str) -> Dict[str, Any]:
    return {
        'decision': 'block',
        'reason': reason,
        'hookSpecificOutput': {'hookEventName': event_name, 'additionalContext': reason},
    }


def is_denied(response: Dict[str, Any]) -> bool:
    if response.get('decision') == 'block':
        return True
    return response.get('hookSpecificOutput', {}).get('permissionDecision') == 'deny'


def denial_reason(response: Dict[str, Any]) -> str:
    return str(response.get('reason')
               or response.get('hookSpecificOutput', {}).get('permissionDecisionReason')
               or 'Blocked by security policy')


# ============================================================================
# Main Guardian Class
# ============================================================================

class Guardian:
    """Main security guardian orchestrator

    Every handler reaches its decision first and writes traces afterwards;
    a trace log that cannot be written never changes a decision.
    """

    def __init__(self, config: Optional[ConfigManager] = None, workspace_root: Optional[str] = None):
        self.config = config or ConfigManager()
        self.workspace_root = workspace_root or WorkspaceDetector().detect()
        self.detector = SecretDetector.from_config(self.config)
        self.classifier = RiskClassifier.from_config(self.config)
        self.trace_log = TraceLog(self.workspace_root, self.config)
        self.edited_files = EditedFileStore.from_config(self.config)
        self.scanner = SemgrepScanner.from_config(self.config, self.workspace_root)
        self.message_limit = int(self.config.get_security_option('message_limit', 5))

        pii_action = str(self.config.get_security_option('pii_action', 'warn')).lower()
        self.pii_action = pii_action if pii_action in PII_ACTIONS else 'warn'

    # -- helpers -------------------------------------------------------------

    def _roots(self, event: HookEvent) -> List[str]:
        roots = [event.base_dir()] + list(event.workspace_roots) + [self.workspace_root]
        return [root for root in roots if root]

    def _metadata(self, hook_event: HookEvent, /, **fields) -> Dict[str, Any]:
        metadata = dict(fields)
        extra = hook_event.extra_fields()
        if extra:
            metadata['extra'] = extra
        return metadata

    def _report_secrets(self, findings: List[Finding], event: HookEvent, context: str) -> None:
        self.trace_log.log_secret_detection(
            findings, event.hook_event_name, context,
            model=event.model,
            transcript=event.transcript_path,
            conversation_id=event.conversation_id,
            generation_id=event.generation_id,
        )

    def _report_pii(self, event: HookEvent, where: str, matches: List[PiiMatch]) -> None:
        self.trace_log.try_record(
            f"[{where}]",
            contributor_type='human' if where == 'prompt' else 'ai',
            model=event.model,
            transcript=event.transcript_path,
            metadata=self._metadata(
                event,
                event='pii_detected',
                hook_event=event.hook_event_name,
                pii_types=sorted({m.type for m in matches}),
                pii_count=len(matches),
                action=self.pii_action,
            ),
        )

    def _message(self, findings: List[Finding], heading: str) -> str:
        return build_findings_message(findings, heading, self.message_limit)

    def _check_pii(self, text: str, where: str) -> Optional[Tuple[str, str, List[PiiMatch]]]:
        """(action, message, matches) when PII policy applies to text"""
        if self.pii_action == 'off' or not text:
            return None
        matches = detect_pii(text)
        if not matches:
            return None
        return self.pii_action, f"PII detected in {where}: {summarize_pii(matches)}", matches

    # -- event handlers ------------------------------------------------------

    def _pre_tool_use_decision(self, event: PreToolUseEvent, pending: List[Callable[[], Any]]) -> Dict[str, Any]:
        """Decide a PreToolUse event; trace writes are queued on pending"""
        tool_name = event.tool_name
        tool_input = event.tool_input

        verdict = self.classifier.classify_tool_input(tool_name, tool_input)
        if verdict.is_blocked:
            return format_pre_tool_decision('deny', verdict.reason, f"BLOCKED: {verdict.reason}")

        if tool_name in SHELL_TOOLS:
            command = str(tool_input.get('command') or '')
            findings = self.detector.scan(command, '[shell command]') if command.strip() else []
            if findings:
                pending.append(partial(self._report_secrets, findings, event, 'secret_detected_in_command'))
                message = self._message(findings, 'SECRET DETECTED (command execution blocked)')
                return format_pre_tool_decision('deny', message, message)

            pii = self._check_pii(command, 'command')
            if pii:
                pending.append(partial(self._report_pii, event, 'command', pii[2]))
                if pii[0] == 'block':
                    return format_pre_tool_decision('deny', pii[1], f"BLOCKED: {pii[1]}")

            read_paths = extract_read_paths(command, event.base_dir(), self._roots(event))
            LOGGER.debug("Command reads: %s", read_paths)
            file_findings = self.detector.scan_paths(read_paths)
            if file_findings:
                pending.append(partial(self._report_secrets, file_findings, event, 'secret_detected_before_read'))
                message = self._message(file_findings, 'SECRET DETECTED (file read blocked)')
                return format_pre_tool_decision('deny', message, message)

            if pii and verdict.severity == 'ok':
                return format_pre_tool_decision('allow', pii[1], f"WARNING: {pii[1]}")

        if tool_name in READ_TOOLS:
            file_path = str(tool_input.get('file_path') or tool_input.get('target_file') or '')
            if file_path:
                resolved = resolve_path(file_path, self._roots(event))
                try:
                    findings = self.detector.scan_file(resolved)
                except (FileNotFound, SizeLimitExceeded, OSError) as e:
                    LOGGER.debug("Not scanning %s: %s", resolved, e)
                    findings = []
                if findings:
                    pending.append(partial(self._report_secrets, findings, event, 'secret_detected_before_read'))
                    message = self._message(findings, 'SECRET DETECTED (file read blocked)')
                    return format_pre_tool_decision('deny', message, message)

        if is_mcp_tool(tool_name):
            pii = self._check_pii(json.dumps(tool_input, default=str), 'tool parameters')
            if pii:
                pending.append(partial(self._report_pii, event, 'tool parameters', pii[2]))
                if pii[0] == 'block':
                    return format_pre_tool_decision('deny', pii[1], f"BLOCKED: {pii[1]}")

        if verdict.severity == 'warn':
            return format_pre_tool_decision('allow', verdict.reason, f"WARNING: {verdict.reason}")

        return format_pre_tool_decision('allow')

    def handle_pre_tool_use(self, event: PreToolUseEvent) -> Dict[str, Any]:
        pending: List[Callable[[], Any]] = []
        response = self._pre_tool_use_decision(event, pending)

        if self.config.get_system_config('log_decisions', True):
            self.trace_log.try_record(
                '.tool-usage',
                model=event.model,
                transcript=event.transcript_path,
                metadata=self._metadata(
                    event,
                    event='tool_use_attempt',
                    tool_name=event.tool_name,
                    tool_use_id=event.tool_use_id,
                    tool_input=event.tool_input,
                    cwd=event.cwd,
                    decision=response['hookSpecificOutput']['permissionDecision'],
                ),
            )
        for write in pending:
            write()
        return response

    def handle_user_prompt_submit(self, event: UserPromptSubmitEvent) -> Dict[str, Any]:
        prompt = event.prompt
        findings: List[Finding] = []
        pii = None
        if prompt.strip():
            findings = self.detector.scan(prompt, '[prompt]')
            if not findings:
                pii = self._check_pii(prompt, 'prompt')

        if findings:
            response = format_decision_block(self._message(findings, 'SECRET DETECTED (submission blocked)'),
                                             'UserPromptSubmit')
        elif pii and pii[0] == 'block':
            response = format_decision_block(pii[1], 'UserPromptSubmit')
        elif pii:
            response = {'systemMessage': f"WARNING: {pii[1]}"}
        else:
            response = {}

        self.trace_log.try_record(
            '.prompts',
            contributor_type='human',
            model=event.model,
            transcript=event.transcript_path,
            metadata=self._metadata(event, event='prompt_submission_attempt', prompt_length=len(prompt)),
        )
        if findings:
            self._report_secrets(findings, event, 'secret_detected_in_prompt')
        if pii:
            self._report_pii(event, 'prompt', pii[2])
        return response

    def _edit_ranges(self, file_path: str, tool_input: Dict[str, Any], event: HookEvent) -> Optional[List[RangePosition]]:
        edits = tool_input.get('edits')
        if isinstance(edits, list):
            edits = [edit for edit in edits if isinstance(edit, dict)]
        elif tool_input.get('new_string'):
            edits = [{'old_string': tool_input.get('old_string') or '',
                      'new_string': tool_input.get('new_string') or ''}]
        else:
            return None
        content = try_read_file(resolve_path(file_path, self._roots(event)))
        return compute_range_positions(edits, content) or None

    def handle_post_tool_use(self, event: PostToolUseEvent) -> Dict[str, Any]:
        tool_name = event.tool_name
        tool_input = event.tool_input

        findings: List[Finding] = []
        response = event.tool_response
        if isinstance(response, str):
            findings.extend(self.detector.scan(response, '[tool output]'))
        elif response:
            findings.extend(self.detector.scan(json.dumps(response, default=str), '[tool output]'))
        if tool_name in SHELL_TOOLS and tool_input.get('command'):
            findings.extend(self.detector.scan(str(tool_input['command']), '[shell command]'))

        decision: Dict[str, Any] = {}
        if findings:
            decision = format_decision_block(self._message(findings, 'SECRET DETECTED in recent output'), 'PostToolUse')

        base = self._metadata(event, event='tool_use_completed', tool_name=tool_name,
                              tool_use_id=event.tool_use_id, duration_ms=event.duration)
        if tool_name in WRITE_TOOLS:
            file_path = str(tool_input.get('file_path') or '.unknown')
            try:
                self.edited_files.append(file_path)
            except OSError as e:
                LOGGER.warning("Could not record edited file %s: %s", file_path, e)
            self.trace_log.try_record(file_path, model=event.model, ranges=self._edit_ranges(file_path, tool_input, event),
                                      transcript=event.transcript_path, metadata=base)
        else:
            if tool_name in SHELL_TOOLS:
                label = '.shell-history'
                base['command'] = tool_input.get('command')
            elif tool_name in READ_TOOLS:
                label = str(tool_input.get('file_path') or '.file-reads')
            else:
                label = '.tool-usage'
            self.trace_log.try_record(label, model=event.model, transcript=event.transcript_path, metadata=base)

        if findings:
            self._report_secrets(findings, event, 'secret_detected_in_output')
        return decision

    def handle_stop(self, event: StopEvent) -> Dict[str, Any]:
        edited = self.edited_files.load()
        result = run_checkpoint_scan(
            edited,
            scanner=self.scanner,
            trace_log=self.trace_log,
            store=self.edited_files,
            base_dir=event.base_dir() or self.workspace_root,
            context=event.trace_context(),
        )

        if result.vulnerabilities_found:
            if event.stop_hook_active:
                return {'systemMessage': f"{result.summary}. Stop hook already active, allowing stop."}
            details = json.dumps({path: [f.to_dict() for f in findings]
                                  for path, findings in result.per_file_findings.items()})
            return {
                'decision': 'block',
                'reason': f"{result.summary}. Review the findings and address any security issues. {details}",
            }
        if result.error:
            return {'systemMessage': result.summary}
        return {}

    def handle_session_event(self, event: HookEvent) -> Dict[str, Any]:
        self.trace_log.try_record(
            '.claude-session',
            model=event.model,
            transcript=event.transcript_path,
            metadata=self._metadata(
                event,
                event=event.hook_event_name,
                reason=getattr(event, 'reason', None),
                trigger=getattr(event, 'trigger', None),
                notification=getattr(event, 'notification', None),
            ),
        )
        return {}

    def handle(self, event: HookEvent) -> Dict[str, Any]:
        """Dispatch one validated event to its handler"""
        LOGGER.debug("Handling %s (workspace %s, cwd %s)", event.hook_event_name, self.workspace_root, os.getcwd())
        if isinstance(event, PreToolUseEvent):
            return self.handle_pre_tool_use(event)
        if isinstance(event, UserPromptSubmitEvent):
            return self.handle_user_prompt_submit(event)
        if isinstance(event, PostToolUseEvent):
            return self.handle_post_tool_use(event)
        if isinstance(event, StopEvent):
            return self.handle_stop(event)
        if event.hook_event_name in SESSION_EVENTS:
            return self.handle_session_event(event)
        return {}

    def run(self, raw: str) -> Tuple[Optional[str], int]:
        """Handle raw stdin text; returns (stdout JSON or None, exit code)"""
        try:
            event = parse_event(raw)
        except InputMalformed as e:
            LOGGER.warning("Ignoring malformed hook input: %s", e)
            return None, 0
        if event is None:
            return None, 0

        response = self.handle(event)
        if not response:
            return None, 0
        return json.dumps(response), (2 if is_denied(response) else 0)


# ============================================================================
# Entry Point
# ============================================================================

def main():
    """Main entry function"""
    try:
        config = ConfigManager()
        configure_logging(config)
        guardian = Guardian(config)

        output, exit_code = guardian.run(sys.stdin.read())
        if output:
            print(output)
            if exit_code:
                print(denial_reason(json.loads(output)), file=sys.stderr)
        sys.exit(exit_code)

    except Exception as e:
        # On error, allow execution
        LOGGER.debug("Hook execution error", exc_info=True)
        print(f"Hook execution error: {str(e)}", file=sys.stderr)
        sys.exit(0)


if __name__ == '__main__':
    main()
