"""Logging helpers built on top of loguru."""

from __future__ import annotations

import os
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, TypeVar, cast

from loguru import logger as _logger
from loguru._logger import Logger as LoguruLogger
from tqdm.auto import tqdm

from utils.settings import logging as LOGCFG

LoggerType = LoguruLogger
T = TypeVar("T")

_is_configured = False
_log_dir = LOGCFG.log_dir
_log_file = None


def _env_level() -> str | None:
    return os.environ.get(LOGCFG.level_env) or None


class Logger:
    """Project-wide logger wrapper using loguru and global config."""

    @staticmethod
    def _configure(level: str, json_format: bool, to_file: bool) -> None:
        """Install the console sink and, optionally, a timestamped file sink."""
        global _is_configured, _log_file
        _logger.remove()
        _logger.add(
            sys.stdout,
            level=level,
            serialize=False,
            format=LOGCFG.log_format,
        )
        _log_file = None
        if to_file:
            os.makedirs(_log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            suffix = ".log.json" if json_format else ".log"
            _log_file = Path(_log_dir) / f"{timestamp}{suffix}"
            _logger.add(
                _log_file,
                level=level,
                serialize=json_format,
                format=LOGCFG.log_file_format,
            )
        _is_configured = True

    @staticmethod
    def get_logger(
        name: str, level: str = None, json_format: bool = None
    ) -> LoguruLogger:
        """
        Return a configured loguru logger bound to ``name``.

        The first call configures the sinks. The level comes from the
        argument, then the ``PLANE_CALIBRATION_LOG_LEVEL`` environment
        variable, then the global config.
        """
        if not _is_configured:
            Logger._configure(
                level or _env_level() or LOGCFG.level,
                json_format if json_format is not None else LOGCFG.json,
                LOGCFG.to_file,
            )
        return _logger.bind(module=name)

    @staticmethod
    def get_log_file() -> Path | None:
        """Return the current log file path, ``None`` without a file sink."""
        return _log_file

    @staticmethod
    def progress(
        iterable: Iterable[T],
        desc: str | None = None,
        total: int | None = None,
    ) -> Iterable[T]:
        """Return a tqdm iterator with unified style."""
        return cast(
            Iterable[T],
            tqdm(
                iterable,
                desc=desc,
                total=total,
                leave=False,
                bar_format=LOGCFG.progress_bar_format,
            ),
        )

    @staticmethod
    def configure(
        level: str = None,
        log_dir: str | Path = None,
        json_format: bool = None,
        to_file: bool = None,
    ) -> None:
        """Manually configure the logger with given settings."""
        global _log_dir
        _log_dir = Path(log_dir) if log_dir is not None else LOGCFG.log_dir
        Logger._configure(
            level or _env_level() or LOGCFG.level,
            json_format if json_format is not None else LOGCFG.json,
            to_file if to_file is not None else LOGCFG.to_file,
        )


class ThrottledLogger:
    """Emit a message at most once per ``period`` seconds for each key.

    Used for conditions that repeat on every frame, such as a disabled
    calibration, where one line per frame would flood the log.
    """

    def __init__(
        self,
        logger: LoggerType,
        period: float = LOGCFG.throttle_period,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logger
        self.period = period
        self.clock = clock
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _due(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.period:
                return False
            self._last[key] = now
            return True

    def log(self, level: str, message: str, key: str | None = None) -> bool:
        """Log ``message`` at ``level`` unless it was logged recently.

        Returns ``True`` when the message was emitted.
        """
        if not self._due(key or message):
            return False
        self.logger.opt(depth=1).log(level, message)
        return True

    def info(self, message: str, key: str | None = None) -> bool:
        return self.log("INFO", message, key)

    def warning(self, message: str, key: str | None = None) -> bool:
        return self.log("WARNING", message, key)

    def reset(self) -> None:
        with self._lock:
            self._last.clear()
