"""Shared fixtures: every test runs against a throwaway workspace and home"""

import json
from pathlib import Path

import pytest

from agent_guardian.config import ConfigManager
from agent_guardian.hook import Guardian
from agent_guardian.scanner import ScannerRun


ENV_VARS = (
    'CURSOR_PROJECT_DIR', 'CLAUDE_PROJECT_DIR', 'CURSOR_VERSION',
    'AGENT_GUARDIAN_CONFIG', 'SEMGREP_PATH',
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.setenv('HOME', str(home))
    return home


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / 'workspace'
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path):
    return ConfigManager(
        config_path=tmp_path / 'missing-config.yaml',
        overrides={'edited_files': {'cache_path': str(tmp_path / 'cache' / 'edited-files.json')}},
    )


class StubScanner:
    """Stands in for semgrep; reports canned results for files it is shown"""

    def __init__(self, results=None, returncode=0, stdout=None, error=None):
        self.results = results or []
        self.returncode = returncode
        self.stdout = stdout
        self.error = error
        self.seen_dirs = []
        self.seen_files = []

    def run(self, target_dir):
        self.seen_dirs.append(target_dir)
        self.seen_files = sorted(p.name for p in Path(target_dir).iterdir())
        if self.error:
            raise self.error
        if self.stdout is not None:
            stdout = self.stdout
        else:
            stdout = json.dumps({'results': [
                dict(result, path=f"{target_dir}/{result['path']}") for result in self.results
            ]})
        return ScannerRun(self.returncode, stdout, 'boom' if self.returncode else '', '/usr/bin/semgrep')


@pytest.fixture
def stub_scanner():
    return StubScanner()


@pytest.fixture
def guardian(config, workspace, stub_scanner):
    instance = Guardian(config, workspace_root=str(workspace))
    instance.scanner = stub_scanner
    return instance


def read_traces(workspace):
    path = Path(workspace) / '.agent-trace' / 'traces.jsonl'
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding='utf-8').splitlines()]
