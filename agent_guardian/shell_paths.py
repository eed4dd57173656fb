"""
Shell read-path extraction

Works out which existing files a shell command line would read so they can be
secret-scanned before the command runs. This is a heuristic, not a shell
grammar: three independent passes propose candidates and only the ones that
resolve to existing regular files survive.

  1. a forgiving tokenizer that honours quoting and escapes
  2. a bashlex AST walk, when bashlex can parse the line (reaches into
     command substitutions the tokenizer leaves glued to a word)
  3. a regex sweep of the raw text for path-shaped substrings
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

import bashlex


LOGGER = logging.getLogger(__name__)

READ_COMMANDS = frozenset({
    'cat', 'grep', 'rg', 'ripgrep', 'sed', 'awk', 'head', 'tail', 'less',
    'more', 'bat', 'cut', 'sort', 'uniq', 'tr', 'nl', 'wc',
})
PATTERN_FIRST_COMMANDS = frozenset({'grep', 'rg', 'ripgrep'})

SEPARATORS = frozenset({'|', '||', '&&', ';', '&'})
REDIRECTORS = frozenset({'<', '<<'})
OUTPUT_REDIRECTORS = frozenset({'>', '>>'})

_ENV_ASSIGNMENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*=')
_BARE_FILENAME = re.compile(r'^[A-Za-z0-9._-]+$')
_PATH_IN_TEXT = re.compile(r'''(?:~/|\.\.?/|/)[^\s"'`<>|;&]+''')
_BARE_IN_TEXT = re.compile(r'\b[A-Za-z0-9._-]+\.[A-Za-z0-9._-]{1,10}\b')

_LEADING_JUNK = '"\'({[<'
_TRAILING_JUNK = '"\')}]>,;:'


# ============================================================================
# Tokenizer
# ============================================================================

def tokenize_command(command: str) -> List[str]:
    """Split a command line into words and operator tokens"""
    tokens: List[str] = []
    buf: List[str] = []
    mode = None  # None, "'" or '"'
    i = 0
    n = len(command)

    def push():
        if buf:
            tokens.append(''.join(buf))
            buf.clear()

    while i < n:
        ch = command[i]

        if mode == "'":
            if ch == "'":
                mode = None
            else:
                buf.append(ch)
            i += 1
            continue

        if mode == '"':
            if ch == '"':
                mode = None
            elif ch == '\\' and i + 1 < n:
                buf.append(command[i + 1])
                i += 2
                continue
            else:
                buf.append(ch)
            i += 1
            continue

        if ch in ('"', "'"):
            mode = ch
            i += 1
            continue

        if ch == '\n':
            push()
            tokens.append(';')
            i += 1
            continue

        if ch.isspace():
            push()
            i += 1
            continue

        if ch in '|&':
            push()
            if i + 1 < n and command[i + 1] == ch:
                tokens.append(ch * 2)
                i += 2
            else:
                tokens.append(ch)
                i += 1
            continue

        if ch in ';<>':
            push()
            if ch in '<>' and i + 1 < n and command[i + 1] == ch:
                tokens.append(ch * 2)
                i += 2
            else:
                tokens.append(ch)
                i += 1
            continue

        if ch == '\\' and i + 1 < n:
            buf.append(command[i + 1])
            i += 2
            continue

        buf.append(ch)
        i += 1

    push()
    return tokens


# ============================================================================
# Candidate helpers
# ============================================================================

def is_env_assignment(token: str) -> bool:
    return bool(_ENV_ASSIGNMENT.match(token))


def looks_like_path(token: str) -> bool:
    if not token or token.startswith('-'):
        return False
    if any(c in token for c in '*?['):
        return False
    return '/' in token or token.startswith('.') or token.startswith('~')


def looks_like_bare_filename(token: str) -> bool:
    if not token or token.startswith('-'):
        return False
    if '/' in token or '\\' in token or '.' not in token:
        return False
    if len(token) > 255:
        return False
    return bool(_BARE_FILENAME.match(token))


def _is_argument_candidate(token: str) -> bool:
    if not token or token.startswith('-'):
        return False
    return not any(c in token for c in '*?[')


def expand_home(path: str) -> str:
    if path == '~':
        return str(Path.home())
    if path.startswith('~/'):
        return os.path.join(str(Path.home()), path[2:])
    return path


def sanitize_candidate(raw: str) -> str:
    """Strip quoting and punctuation hugging a path found in free text"""
    return raw.strip().lstrip(_LEADING_JUNK).rstrip(_TRAILING_JUNK)


def resolve_candidate_path(token: str,
                           base_dir: Optional[str] = None,
                           workspace_roots: Optional[Sequence[str]] = None) -> str:
    expanded = expand_home(token)
    if os.path.isabs(expanded):
        return os.path.normpath(expanded)
    roots = [root for root in (workspace_roots or []) if root]
    root = base_dir or (roots[0] if roots else None) or os.getcwd()
    return os.path.abspath(os.path.join(root, expanded))


def is_file_path(candidate: str) -> bool:
    try:
        return os.path.isfile(candidate)
    except (OSError, ValueError):
        return False


# ============================================================================
# Command segments
# ============================================================================

@dataclass
class CommandSegment:
    """One simple command: its words and its input-redirect targets"""
    words: List[str] = field(default_factory=list)
    redirects: List[str] = field(default_factory=list)


def split_segments(tokens: Sequence[str]) -> List[CommandSegment]:
    """Group tokens into simple commands at separators"""
    segments: List[CommandSegment] = []
    current = CommandSegment()
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in SEPARATORS:
            if current.words or current.redirects:
                segments.append(current)
            current = CommandSegment()
            i += 1
            continue
        if token in REDIRECTORS:
            if i + 1 < len(tokens) and tokens[i + 1] not in SEPARATORS:
                current.redirects.append(tokens[i + 1])
                i += 2
            else:
                i += 1
            continue
        if token in OUTPUT_REDIRECTORS:
            i += 2
            continue
        current.words.append(token)
        i += 1

    if current.words or current.redirects:
        segments.append(current)
    return segments


def segment_candidates(segment: CommandSegment) -> List[str]:
    """Words of one simple command that may name a file it reads"""
    candidates = [target for target in segment.redirects if target]

    words = segment.words
    index = 0
    while index < len(words) and is_env_assignment(words[index]):
        index += 1
    if index < len(words) and words[index] == 'sudo':
        index += 1
    if index >= len(words):
        return candidates

    command = Path(words[index]).name.lower()
    if command not in READ_COMMANDS:
        return candidates

    pattern_skipped = command not in PATTERN_FIRST_COMMANDS
    for arg in words[index + 1:]:
        if arg.startswith('-'):
            continue
        if not pattern_skipped and not looks_like_path(arg):
            pattern_skipped = True
            continue
        if _is_argument_candidate(arg):
            candidates.append(arg)
    return candidates


class AstSegmentCollector:
    """Walks a bashlex AST and collects its simple commands"""

    def collect(self, command: str) -> List[CommandSegment]:
        try:
            trees = bashlex.parse(command)
        except Exception as e:
            LOGGER.debug("bashlex could not parse command, relying on tokenizer: %s", e)
            return []
        segments: List[CommandSegment] = []
        self._walk(trees, segments)
        return segments

    def _walk(self, nodes: Any, segments: List[CommandSegment]):
        if isinstance(nodes, list):
            for node in nodes:
                self._walk(node, segments)
            return
        if not hasattr(nodes, 'kind'):
            return

        if nodes.kind == 'command' and getattr(nodes, 'parts', None):
            segment = CommandSegment()
            for part in nodes.parts:
                if part.kind in ('word', 'assignment'):
                    segment.words.append(part.word)
                elif part.kind == 'redirect' and part.type in REDIRECTORS:
                    target = getattr(part, 'output', None)
                    if hasattr(target, 'word'):
                        segment.redirects.append(target.word)
            segments.append(segment)

        if nodes.kind == 'redirect':
            target = getattr(nodes, 'output', None)
            if hasattr(target, 'kind'):
                self._walk(target, segments)
        if nodes.kind in ('commandsubstitution', 'processsubstitution'):
            self._walk(getattr(nodes, 'command', None), segments)
        if hasattr(nodes, 'parts'):
            self._walk(nodes.parts, segments)
        if hasattr(nodes, 'list'):
            self._walk(nodes.list, segments)


# ============================================================================
# Extraction
# ============================================================================

def candidates_from_text(command: str) -> List[str]:
    """Path-shaped and filename-shaped substrings of the raw command"""
    seen = []
    for regex in (_PATH_IN_TEXT, _BARE_IN_TEXT):
        for match in regex.finditer(command):
            candidate = sanitize_candidate(match.group(0))
            if candidate and candidate not in seen:
                seen.append(candidate)
    return [c for c in seen if looks_like_path(c) or looks_like_bare_filename(c)]


class ShellPathExtractor:
    """Resolves shell read candidates against a base directory"""

    def __init__(self, base_dir: Optional[str] = None, workspace_roots: Optional[Sequence[str]] = None):
        self.base_dir = base_dir
        self.workspace_roots = list(workspace_roots or [])
        self.ast_collector = AstSegmentCollector()

    def _resolve_existing(self, candidates: Iterable[str]) -> List[str]:
        paths = []
        for candidate in candidates:
            resolved = resolve_candidate_path(candidate, self.base_dir, self.workspace_roots)
            if is_file_path(resolved):
                paths.append(resolved)
        return paths

    def token_paths(self, command: str) -> List[str]:
        segments = split_segments(tokenize_command(command))
        return self._resolve_existing(c for s in segments for c in segment_candidates(s))

    def ast_paths(self, command: str) -> List[str]:
        segments = self.ast_collector.collect(command)
        return self._resolve_existing(c for s in segments for c in segment_candidates(s))

    def text_paths(self, command: str) -> List[str]:
        return self._resolve_existing(candidates_from_text(command))

    def extract(self, command: str) -> List[str]:
        """Unique, ordered absolute paths of existing files the command reads"""
        if not command or not command.strip():
            return []
        result: List[str] = []
        for path in self.token_paths(command) + self.ast_paths(command) + self.text_paths(command):
            if path not in result:
                result.append(path)
        return result


def extract_read_paths(command: str,
                       base_dir: Optional[str] = None,
                       workspace_roots: Optional[Sequence[str]] = None) -> List[str]:
    return ShellPathExtractor(base_dir, workspace_roots).extract(command)
