"""
Configuration management and diagnostics logging setup
"""

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'AGENT_GUARDIAN_CONFIG'
DEFAULT_CONFIG_NAME = 'agent_guardian_config.yaml'


def _default_config() -> Dict[str, Any]:
    return {
        'security_options': {
            'max_scan_bytes': 5 * 1024 * 1024,
            'sample_bytes': 4096,
            'binary_threshold': 0.3,
            'message_limit': 5,
            'pii_action': 'warn',
            'extra_dangerous_patterns': [],
            'extra_sensitive_patterns': [],
            'extra_protected_write_paths': [],
        },
        'trace': {
            'path': '.agent-trace/traces.jsonl',
            'version': '1.0',
            'tool_name': 'agent-guardian',
        },
        'edited_files': {
            'cache_path': os.path.join(tempfile.gettempdir(), 'agent-guardian', 'edited-files.json'),
            'limit': 500,
        },
        'scanner': {
            'command': 'semgrep',
            'config': None,
            'timeout': 300,
            'extra_args': [],
        },
        'system_config': {
            'debug_mode': False,
            'log_level': 'WARNING',
            'log_decisions': True,
        },
    }


class ConfigManager:
    """Manages configuration loading and access"""

    def __init__(self, config_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None):
        self.config_path = self._resolve_path(config_path)
        self.config = self._load_config()
        if overrides:
            self.config = self._deep_merge(self.config, overrides)

    @staticmethod
    def _resolve_path(config_path: Optional[Path]) -> Path:
        if config_path:
            return Path(config_path)
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path).expanduser()
        return Path(__file__).parent / DEFAULT_CONFIG_NAME

    def _load_config(self) -> Dict[str, Any]:
        """Load the YAML file and merge it over the defaults"""
        user_config: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded = yaml.safe_load(f) or {}
                if isinstance(loaded, dict):
                    user_config = loaded
                else:
                    LOGGER.warning("Ignoring config %s: top level is not a mapping", self.config_path)
            except (OSError, yaml.YAMLError) as e:
                LOGGER.warning("Could not load config %s: %s", self.config_path, e)
        else:
            LOGGER.debug("No config file at %s, using defaults", self.config_path)

        return self._deep_merge(_default_config(), user_config)

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self.config.get(key, default)

    def get_section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name)
        return section if isinstance(section, dict) else {}

    def get_security_option(self, option: str, default: Any = None) -> Any:
        """Get security option value"""
        return self.get_section('security_options').get(option, default)

    def get_system_config(self, option: str, default: Any = None) -> Any:
        """Get system configuration value"""
        return self.get_section('system_config').get(option, default)


def configure_logging(config: ConfigManager) -> logging.Logger:
    """Send package diagnostics to stderr; stdout carries the hook decision"""
    logger = logging.getLogger('agent_guardian')
    if config.get_system_config('debug_mode', False):
        level = logging.DEBUG
    else:
        level_name = str(config.get_system_config('log_level', 'WARNING')).upper()
        level = getattr(logging, level_name, logging.WARNING)
    logger.setLevel(level)

    if not any(getattr(h, '_agent_guardian', False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))
        handler._agent_guardian = True
        logger.addHandler(handler)
    return logger
