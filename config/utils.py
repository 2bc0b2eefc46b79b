"""Helper utilities for reading configuration sections from Config objects or plain dicts."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict


def _as_dict(candidate: Any) -> Dict:
    if isinstance(candidate, dict):
        return candidate
    to_dict = getattr(candidate, 'to_dict', None)
    if callable(to_dict):
        return to_dict()
    if isinstance(candidate, Mapping):
        return dict(candidate)
    return {}


def get_config_section(source: Any, section: str) -> Dict:
    """Return a dictionary section from Config, SectionProxy, or plain dict objects."""
    if source is None:
        return {}

    if isinstance(source, Mapping):
        return _as_dict(source.get(section, {}))

    getter = getattr(source, 'get', None)
    if callable(getter):
        return _as_dict(getter(section, {}))

    return {}
