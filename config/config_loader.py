import copy
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config.yaml'

# ${NAME} or ${NAME:-fallback}, anywhere inside a string value
_ENV_REF = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}')

DEFAULTS: Dict[str, Dict[str, Any]] = {
    'upstream': {
        'url': 'ws://localhost:3000/ws',
        'reconnect_delay_s': 3.0,
        'open_timeout_s': 10,
        'futures_symbols': [],
        'equity_symbols': [],
    },
    'ledgers': {
        'trade_capacity': 200,
        'print_capacity': 100,
        'auto_trade_capacity': 50,
    },
    'sentiment': {
        'threshold': 0.5,
    },
    'pnl': {
        'equity_multiplier': 100,
        'futures_multiplier': 20,
    },
    'monitoring': {
        'log_level': 'INFO',
        'broadcast_interval_s': 1.0,
    },
    'api': {
        'host': '0.0.0.0',
        'port': 8080,
        'cors_origins': ['*'],
    },
}


def _wrap(value: Any) -> Any:
    return SectionProxy(value) if isinstance(value, dict) else value


def _merge(base: Dict[str, Any], override: Mapping) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _expand(node: Any) -> Any:
    if isinstance(node, dict):
        return {key: _expand(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_expand(item) for item in node]
    if not isinstance(node, str) or '${' not in node:
        return node

    whole = _ENV_REF.fullmatch(node)
    if whole:
        name, fallback = whole.groups()
        # an unset variable without a fallback keeps the literal reference
        return os.getenv(name, node if fallback is None else fallback)
    return _ENV_REF.sub(lambda m: os.getenv(m.group(1), m.group(2) or ''), node)


class SectionProxy(Mapping):
    """Read-only view of one config section; nested dicts come back wrapped."""

    def __init__(self, data: Dict[str, Any]):
        self._data = data or {}

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data[key])

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        if name not in self._data or self._data[name] is None:
            raise AttributeError(f"Config key '{name}' not found")
        return _wrap(self._data[name])

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return _wrap(self._data.get(key, default))

    def to_dict(self) -> Dict[str, Any]:
        return self._data


class Config:
    """Settings for the flow monitor.

    ``config.yaml`` is layered over ``DEFAULTS`` so a partial file still yields
    every section. String values may reference the environment as ``${NAME}``
    or ``${NAME:-fallback}``; a ``.env`` file is honoured. ``FLOW_CONFIG_PATH``
    points the loader at another file.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or os.getenv('FLOW_CONFIG_PATH') or DEFAULT_CONFIG_PATH)
        self._data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise RuntimeError(f"Configuration file not found at {self.config_path}")
        with self.config_path.open('r') as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise RuntimeError(f"Error parsing YAML configuration: {exc}") from exc
        if not isinstance(raw, Mapping):
            raise RuntimeError(f"Configuration root in {self.config_path} must be a mapping")
        return _expand(_merge(DEFAULTS, raw))

    def get(self, key: str, default: Any = None) -> Any:
        return _wrap(self._data.get(key, default))

    def section(self, name: str) -> Dict[str, Any]:
        return copy.deepcopy(self._data.get(name) or {})

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data[key])

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return _wrap(self._data[name])
        except KeyError as exc:
            raise AttributeError(f"Config key '{name}' not found") from exc

    def reload(self) -> None:
        self._data = self._load_config()


config = Config()
