"""Logging setup for the donation API.

``get_logger`` configures the root logger on first use from LOG_LEVEL
(default INFO) and LOG_FILE (optional). Chatty transport libraries are held
at WARNING unless the API itself runs at DEBUG.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# web3 logs every RPC request at DEBUG; websockets and urllib3 log each frame/connection
NOISY_LOGGERS = ('web3', 'websockets', 'urllib3', 'aiohttp')

_configured = False


def _level_from_env() -> int:
    name = os.getenv('LOG_LEVEL', 'INFO').upper()
    return getattr(logging, name, logging.INFO)


def configure_logging(level: Optional[int] = None, log_file: Optional[str] = None) -> None:
    """(Re)configure the root logger. Arguments default to the environment."""
    global _configured

    level = _level_from_env() if level is None else level
    log_file = os.getenv('LOG_FILE', '') if log_file is None else log_file

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_donation_backend', False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding='utf-8'))
        except OSError:
            root.exception('Cannot open log file %s; logging to console only', log_file)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._donation_backend = True
        root.addHandler(handler)

    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
