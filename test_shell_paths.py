"""Tests for shell read-path extraction"""

import pytest

from agent_guardian.shell_paths import (
    AstSegmentCollector, CommandSegment, candidates_from_text, extract_read_paths, looks_like_bare_filename,
    looks_like_path, segment_candidates, split_segments, tokenize_command,
)


@pytest.fixture
def files(workspace):
    """Create files under the workspace and return their absolute paths"""
    def make(*names):
        paths = []
        for name in names:
            path = workspace / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text('content\n', encoding='utf-8')
            paths.append(str(path))
        return paths
    return make


class TestTokenizer:

    def test_operators_split_without_spaces(self):
        assert tokenize_command('a&&b') == ['a', '&&', 'b']
        assert tokenize_command('cat<in.txt|sort') == ['cat', '<', 'in.txt', '|', 'sort']
        assert tokenize_command('a>>b') == ['a', '>>', 'b']

    def test_quotes_and_escapes(self):
        assert tokenize_command('echo "a b" \'c d\' e\\ f') == ['echo', 'a b', 'c d', 'e f']
        assert tokenize_command('echo "say \\"hi\\""') == ['echo', 'say "hi"']

    def test_newline_is_a_separator(self):
        assert tokenize_command('ls\ncat x') == ['ls', ';', 'cat', 'x']

    def test_background_and_or(self):
        assert tokenize_command('a & b || c') == ['a', '&', 'b', '||', 'c']


class TestSegments:

    def test_output_redirect_target_is_dropped(self):
        segments = split_segments(tokenize_command('cat a.txt > out.txt; wc -l b.txt'))
        assert segments == [CommandSegment(['cat', 'a.txt'], []), CommandSegment(['wc', '-l', 'b.txt'], [])]

    def test_input_redirect_is_kept(self):
        segments = split_segments(tokenize_command('mysql db < dump.sql'))
        assert segments == [CommandSegment(['mysql', 'db'], ['dump.sql'])]

    def test_unknown_command_only_contributes_redirects(self):
        assert segment_candidates(CommandSegment(['python3', 'run.py'], ['in.txt'])) == ['in.txt']

    def test_env_and_sudo_prefixes(self):
        assert segment_candidates(CommandSegment(['LANG=C', 'sudo', 'cat', 'conf.ini'])) == ['conf.ini']

    def test_command_basename_and_case(self):
        assert segment_candidates(CommandSegment(['/usr/bin/CAT', 'x.txt'])) == ['x.txt']

    def test_grep_pattern_is_skipped(self):
        assert segment_candidates(CommandSegment(['grep', '-n', 'TODO', 'a.txt', 'b.txt'])) == ['a.txt', 'b.txt']

    def test_grep_first_argument_kept_when_path_like(self):
        assert segment_candidates(CommandSegment(['rg', './notes.txt'])) == ['./notes.txt']

    def test_globs_and_flags_are_ignored(self):
        assert segment_candidates(CommandSegment(['cat', '-A', '*.log', 'ok.log'])) == ['ok.log']


def test_ast_collector_reaches_command_substitution():
    segments = AstSegmentCollector().collect('echo $(cat inner.txt)')
    assert ['cat', 'inner.txt'] in [segment.words for segment in segments]


def test_ast_collector_tolerates_unparseable_input():
    assert AstSegmentCollector().collect('cat "unterminated') == []


def test_text_candidates():
    found = candidates_from_text('run --config=./conf/app.yaml then "notes.md",')
    assert './conf/app.yaml' in found
    assert 'notes.md' in found


def test_path_shapes():
    assert looks_like_path('./a')
    assert looks_like_path('~/x')
    assert not looks_like_path('-rf')
    assert not looks_like_path('*.txt')
    assert looks_like_bare_filename('secrets.env')
    assert not looks_like_bare_filename('TODO')
    assert not looks_like_bare_filename('a/b.txt')


class TestExtractReadPaths:

    def test_cat_file_in_base_dir(self, workspace, files):
        expected = files('secrets.env')
        assert extract_read_paths('cat secrets.env', base_dir=str(workspace)) == expected

    def test_grep_pattern_is_not_a_file(self, workspace, files):
        files('TODO')
        expected = files('notes.txt')
        assert extract_read_paths('grep TODO notes.txt', base_dir=str(workspace)) == expected

    def test_input_redirect_on_any_command(self, workspace, files):
        expected = files('input.txt')
        assert extract_read_paths('python3 -m tool < input.txt', base_dir=str(workspace)) == expected

    def test_quoted_name_with_space(self, workspace, files):
        expected = files('my file.txt')
        assert extract_read_paths('cat "my file.txt"', base_dir=str(workspace)) == expected

    def test_env_and_sudo(self, workspace, files):
        expected = files('conf.ini')
        assert extract_read_paths('FOO=1 sudo cat conf.ini', base_dir=str(workspace)) == expected

    def test_relative_subdirectory(self, workspace, files):
        expected = files('sub/data.txt')
        assert extract_read_paths('head -n 5 ./sub/data.txt', base_dir=str(workspace)) == expected

    def test_home_expansion(self, tmp_path, workspace):
        home = tmp_path / 'home'
        home.mkdir(exist_ok=True)
        (home / 'notes.txt').write_text('x', encoding='utf-8')
        assert extract_read_paths('cat ~/notes.txt', base_dir=str(workspace)) == [str(home / 'notes.txt')]

    def test_paths_are_deduplicated(self, workspace, files):
        expected = files('a.txt')
        assert extract_read_paths('cat a.txt a.txt | sort a.txt', base_dir=str(workspace)) == expected

    def test_pipeline_and_chain(self, workspace, files):
        first, second = files('one.log', 'two.log')
        paths = extract_read_paths('cat one.log | grep err && tail two.log', base_dir=str(workspace))
        assert paths == [first, second]

    def test_falls_back_to_workspace_root(self, workspace, files):
        expected = files('a.txt')
        assert extract_read_paths('cat a.txt', workspace_roots=[str(workspace)]) == expected

    def test_missing_files_are_dropped(self, workspace):
        assert extract_read_paths('cat nothing.txt', base_dir=str(workspace)) == []

    def test_directories_are_dropped(self, workspace):
        (workspace / 'dir.d').mkdir()
        assert extract_read_paths('cat dir.d', base_dir=str(workspace)) == []

    def test_blank_command(self, workspace):
        assert extract_read_paths('   ', base_dir=str(workspace)) == []
