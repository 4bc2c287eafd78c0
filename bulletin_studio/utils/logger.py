#!/usr/bin/env python3
"""
Logging for the Bulletin Studio render pipeline

Process-wide handlers hang off the ``bulletin_studio`` logger; each render
also keeps a short timestamped tail of its own steps that is stored on the
bulletin when the render ends.
"""

import logging
import logging.handlers
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from rich.logging import RichHandler

ROOT_LOGGER_NAME = 'bulletin_studio'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Chatty libraries pulled in by downloads and frame composition
QUIET_LOGGERS = ('urllib3', 'PIL')


def _file_handler(log_config: Dict[str, Any], default_file: Path,
                  formatter: logging.Formatter) -> logging.Handler:
    log_file = Path(log_config.get('file', default_file))
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=log_config.get('max_size_mb', 100) * 1024 * 1024,
        backupCount=log_config.get('backup_count', 5),
        encoding='utf-8'
    )
    handler.setFormatter(formatter)
    return handler


def _console_handler(log_config: Dict[str, Any], formatter: logging.Formatter) -> logging.Handler:
    if log_config.get('rich', True):
        # rich prints its own time and level columns
        return RichHandler(show_path=False, markup=False)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: 'Config') -> logging.Logger:
    """
    Configure the ``bulletin_studio`` logger from ``config.logging``.

    Keys: level, format, file, max_size_mb, backup_count, console, rich.
    Calling it again replaces the previous handlers.
    """
    log_config = config.logging or {}
    level = str(log_config.get('level', 'INFO')).upper()
    formatter = logging.Formatter(log_config.get('format', DEFAULT_FORMAT))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level))
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.addHandler(_file_handler(log_config, Path(config.paths.logs) / 'bulletin_studio.log', formatter))
    if log_config.get('console', True):
        logger.addHandler(_console_handler(log_config, formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


class RenderLogBuffer:
    """Bounded, timestamped tail of one render's progress messages"""

    def __init__(self, max_lines: int = 200):
        self._lines: Deque[str] = deque(maxlen=max(1, max_lines))

    def append(self, message: str, when: Optional[datetime] = None) -> str:
        line = f"{(when or datetime.now()).strftime('%H:%M:%S')} {message}"
        self._lines.append(line)
        return line

    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class LoggerMixin:
    """Gives a class a logger named after it under ``bulletin_studio``"""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, '_logger'):
            self._logger = logging.getLogger(f'{ROOT_LOGGER_NAME}.{self.__class__.__name__}')
        return self._logger
