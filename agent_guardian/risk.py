"""
Command risk classification against destructive and sensitive pattern tables
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from .models import Verdict


LOGGER = logging.getLogger(__name__)

RiskRule = Tuple[Pattern, str]


def _rules(rows: Sequence[Tuple[str, str]]) -> Tuple[RiskRule, ...]:
    return tuple((re.compile(pattern, re.IGNORECASE), reason) for pattern, reason in rows)


# First match blocks the action
DANGEROUS_PATTERNS: Tuple[RiskRule, ...] = _rules([
    (r'rm\s+-rf\s+/', 'Recursive delete from root'),
    (r'rm\s+-rf\s+~', 'Recursive delete from home'),
    (r'rm\s+-rf\s+\*', 'Recursive delete wildcard'),
    (r'rm\s+-rf\b', 'Recursive delete'),
    (r'find\b.*-delete\b', 'Find delete'),
    (r'git\s+reset\s+--hard\b', 'Git hard reset'),
    (r'git\s+clean\s+-[^\n]*f\b', 'Git clean force'),
    (r'git\s+push\s+--force\b', 'Git force push'),
    (r'git\s+branch\s+-D\b', 'Git branch delete'),
    (r'\bsudo\b', 'Sudo command'),
    (r'>\s*/dev/sd', 'Write to block device'),
    (r'dd\s+if=.*of=/dev/', 'Direct disk write'),
    (r'mkfs\.', 'Filesystem format'),
    (r'chmod\s+777\s+/', 'Overly permissive root chmod'),
    (r'curl.*\|\s*(?:ba)?sh', 'Pipe URL to shell'),
    (r'wget.*\|\s*(?:ba)?sh', 'Pipe URL to shell'),
    (r':\(\)\s*\{\s*:\|:&\s*\}', 'Fork bomb'),
    (r'>\s*/etc/passwd', 'Overwrite passwd'),
    (r'>\s*/etc/shadow', 'Overwrite shadow'),
    (r'cat\s+/etc/shadow', 'Read shadow file'),
    (r'base64\s+-d.*\|\s*(?:ba)?sh', 'Decode and execute'),
    (r'python.*-c.*exec\s*\(', 'Python exec injection'),
    (r'eval\s*\$\(', 'Eval command substitution'),
    (r'\$\(.*curl.*\)', 'Command substitution with curl'),
    (r'\b(shutdown|reboot)\b', 'Shutdown or reboot'),
    (r'\b(kill\s+-9|pkill|killall)\b', 'Force kill process'),
    (r'\b(iptables|ufw|firewall-cmd)\b', 'Firewall modification'),
    (r'\bdrop\s+(database|table)\b', 'SQL drop'),
    (r'\btruncate\s+table\b', 'SQL truncate'),
    (r'\bdelete\s+from\s+\S+\b(?!.*\bwhere\b)', 'SQL delete without where'),
])

# First match warns; the action still proceeds
SENSITIVE_PATTERNS: Tuple[RiskRule, ...] = _rules([
    (r'\.env', 'Environment file access'),
    (r'\.ssh/', 'SSH directory access'),
    (r'id_rsa', 'SSH private key'),
    (r'\.aws/credentials', 'AWS credentials'),
    (r'\.git/config', 'Git config (may contain tokens)'),
    (r'\.npmrc', 'NPM config (may contain tokens)'),
    (r'\.pypirc', 'PyPI config (may contain tokens)'),
    (r'credentials\.json', 'Credentials file'),
    (r'secrets\.json', 'Secrets file'),
    (r'\.kube/config', 'Kubernetes config'),
])

PROTECTED_WRITE_PATHS: Tuple[str, ...] = (
    '/etc/', '/bin/', '/sbin/', '/usr/bin/', '/usr/sbin/',
    '/boot/', '/sys/', '/proc/', '/dev/',
)

PROTECTED_READ_FILES: Tuple[str, ...] = ('/etc/shadow', '/etc/passwd', '/etc/sudoers')

SHELL_TOOLS = frozenset({'Bash', 'run_terminal_cmd', 'Shell'})
WRITE_TOOLS = frozenset({'Write', 'Edit', 'MultiEdit', 'search_replace'})
READ_TOOLS = frozenset({'Read', 'read_file'})
TASK_TOOLS = frozenset({'Task'})


def is_mcp_tool(tool_name: str) -> bool:
    return tool_name.startswith('mcp_') or 'mcp' in tool_name.lower()


class RiskClassifier:
    """Produces exactly one verdict per input; block rules before warn rules"""

    def __init__(self,
                 dangerous: Sequence[RiskRule] = DANGEROUS_PATTERNS,
                 sensitive: Sequence[RiskRule] = SENSITIVE_PATTERNS,
                 protected_write_paths: Sequence[str] = PROTECTED_WRITE_PATHS,
                 protected_read_files: Sequence[str] = PROTECTED_READ_FILES):
        self.dangerous = tuple(dangerous)
        self.sensitive = tuple(sensitive)
        self.protected_write_paths = tuple(protected_write_paths)
        self.protected_read_files = tuple(protected_read_files)

    @classmethod
    def from_config(cls, config) -> 'RiskClassifier':
        """Append configured rows after the built-in tables"""
        extra_dangerous = _config_rules(config.get_security_option('extra_dangerous_patterns', []))
        extra_sensitive = _config_rules(config.get_security_option('extra_sensitive_patterns', []))
        extra_paths = [str(p) for p in config.get_security_option('extra_protected_write_paths', []) or []]
        return cls(
            dangerous=DANGEROUS_PATTERNS + tuple(extra_dangerous),
            sensitive=SENSITIVE_PATTERNS + tuple(extra_sensitive),
            protected_write_paths=PROTECTED_WRITE_PATHS + tuple(extra_paths),
        )

    def _first_dangerous(self, text: str) -> Optional[str]:
        for pattern, reason in self.dangerous:
            if pattern.search(text):
                return reason
        return None

    def _first_sensitive(self, text: str) -> Optional[str]:
        for pattern, reason in self.sensitive:
            if pattern.search(text):
                return reason
        return None

    def classify_command(self, command: str = '') -> Verdict:
        if not command:
            return Verdict.ok()

        reason = self._first_dangerous(command)
        if reason:
            return Verdict.block(reason)

        reason = self._first_sensitive(command)
        if reason:
            return Verdict.warn(reason)

        return Verdict.ok()

    def classify_write(self, path: str = '') -> Verdict:
        if not path:
            return Verdict.ok()

        normalized = os.path.normpath(path)
        for prefix in self.protected_write_paths:
            if normalized.startswith(prefix):
                return Verdict.block(f"Write to protected path: {prefix}")

        reason = self._first_sensitive(normalized)
        if reason:
            return Verdict.warn(reason)

        return Verdict.ok()

    def classify_read(self, path: str = '') -> Verdict:
        if not path:
            return Verdict.ok()

        normalized = os.path.normpath(path)
        for protected in self.protected_read_files:
            if normalized == protected:
                return Verdict.block(f"Read of protected system file: {protected}")

        for prefix in self.protected_write_paths:
            if normalized.startswith(prefix):
                return Verdict.block(f"Read from protected system path: {prefix}")

        reason = self._first_sensitive(normalized)
        if reason:
            return Verdict.warn(reason)

        return Verdict.ok()

    def classify_tool_input(self, tool_name: str = '', tool_input: Optional[Dict[str, Any]] = None) -> Verdict:
        """Dispatch on the tool's category"""
        if not isinstance(tool_input, dict):
            return Verdict.ok()

        if tool_name in SHELL_TOOLS:
            return self.classify_command(str(tool_input.get('command') or ''))

        if tool_name in WRITE_TOOLS:
            return self.classify_write(str(tool_input.get('file_path') or ''))

        if tool_name in READ_TOOLS:
            return self.classify_read(str(tool_input.get('file_path') or tool_input.get('target_file') or ''))

        if tool_name in TASK_TOOLS:
            reason = self._first_dangerous(str(tool_input.get('prompt') or ''))
            if reason:
                return Verdict.warn(f"Prompt contains pattern: {reason}")

        if is_mcp_tool(tool_name):
            for key, value in tool_input.items():
                if not isinstance(value, str):
                    continue
                reason = self._first_dangerous(value)
                if reason:
                    return Verdict.block(f"Dangerous pattern in {key}: {reason}")

        return Verdict.ok()


def _config_rules(rows: Any) -> List[RiskRule]:
    rules: List[RiskRule] = []
    for row in rows or []:
        if not isinstance(row, dict) or not row.get('pattern'):
            LOGGER.warning("Ignoring malformed rule entry: %r", row)
            continue
        try:
            pattern = re.compile(str(row['pattern']), re.IGNORECASE)
        except re.error as e:
            LOGGER.warning("Ignoring rule with invalid pattern %r: %s", row['pattern'], e)
            continue
        rules.append((pattern, str(row.get('reason') or row['pattern'])))
    return rules


_default_classifier = RiskClassifier()


def classify_command(command: str = '') -> Verdict:
    return _default_classifier.classify_command(command)


def classify_write(path: str = '') -> Verdict:
    return _default_classifier.classify_write(path)


def classify_read(path: str = '') -> Verdict:
    return _default_classifier.classify_read(path)


def classify_tool_input(tool_name: str = '', tool_input: Optional[Dict[str, Any]] = None) -> Verdict:
    return _default_classifier.classify_tool_input(tool_name, tool_input)
