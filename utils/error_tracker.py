"""Centralized unhandled exception tracking and project error types."""

from __future__ import annotations

import signal
import sys
import traceback
from typing import Callable, List, Optional

from utils.logger import Logger, LoggerType


class CalibrationError(Exception):
    """Base class for ground-plane calibration errors."""


class TransformLookupError(CalibrationError):
    """Raised when the sensor extrinsic transform cannot be resolved."""


class CameraModelError(CalibrationError):
    """Raised for invalid pinhole intrinsics."""


class ConfigError(CalibrationError):
    """Raised when an option file or option update is invalid."""


class ErrorTracker:
    """Installable global exception hook that logs uncaught errors."""

    logger = Logger.get_logger("utils.error_tracker")
    _installed = False
    _orig_hook: Optional[Callable[..., None]] = None
    _cleanup_funcs: List[Callable[[], None]] = []

    @classmethod
    def register_cleanup(cls, func: Callable[[], None]) -> None:
        """Register a cleanup function executed on fatal errors."""
        cls._cleanup_funcs.append(func)

    @classmethod
    def _run_cleanup(cls) -> None:
        for func in cls._cleanup_funcs:
            try:
                func()
            except Exception as e:
                cls.logger.error(f"Cleanup failed: {e}")

    @classmethod
    def report(
        cls,
        exc: BaseException,
        logger: Optional[LoggerType] = None,
        context: str = "Handled exception",
    ) -> None:
        """Log a handled exception together with its traceback."""
        message = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        (logger or cls.logger).error(f"{context}: {exc}\n{message}")

    @classmethod
    def install_excepthook(cls) -> None:
        """Log unhandled exceptions through the project logger."""
        if cls._installed:
            return

        cls._orig_hook = sys.excepthook

        def _hook(exc_type, exc, tb) -> None:
            message = "".join(traceback.format_exception(exc_type, exc, tb))
            cls.logger.error(f"Unhandled exception:\n{message}")
            cls._run_cleanup()
            if cls._orig_hook:
                cls._orig_hook(exc_type, exc, tb)

        sys.excepthook = _hook
        cls._installed = True
        cls.logger.debug("Global exception hook installed")

    @classmethod
    def install_signal_handlers(cls) -> None:
        """Shutdown gracefully on SIGINT or SIGTERM."""

        def _handler(signum, frame) -> None:
            cls.logger.info(f"Received signal {signum}")
            cls._run_cleanup()
            raise SystemExit(1)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
