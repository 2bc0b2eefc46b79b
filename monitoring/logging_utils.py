import logging
from typing import Optional, Union


def setup_logging(level: Optional[Union[int, str]] = None, log_format: Optional[str] = None) -> None:
    """
    Configure process-wide logging with a consistent format.

    Called once from the service entrypoints. The level defaults to
    ``monitoring.log_level`` from the config file; subsequent calls are
    ignored if handlers exist.
    """
    if logging.getLogger().handlers:
        return

    if level is None:
        from config import config
        level = (config.get('monitoring', {}) or {}).get('log_level', 'INFO')
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    fmt = log_format or "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt)
