"""Shared helper modules used across the project.

The :mod:`utils` package contains lightweight helpers for logging, settings,
configuration, CLI dispatching, rigid transforms and simple file I/O. These
utilities are used by most other packages.
"""

from .logger import Logger, LoggerType, ThrottledLogger
from .settings import (
    DEPTH_EXT,
    IMAGE_EXT,
    EstimatorCfg,
    LoggingCfg,
    PlaneCheckCfg,
    estimator,
    logging,
    paths,
    plane_check,
)
from .error_tracker import (
    CalibrationError,
    CameraModelError,
    ConfigError,
    ErrorTracker,
    TransformLookupError,
)
from .math_utils import (
    axis_rotation,
    tilt_rotation,
    make_transform,
    decompose_transform,
    invert_transform,
    rotations_equal,
)

__all__ = [
    "DEPTH_EXT",
    "IMAGE_EXT",
    "Logger",
    "LoggerType",
    "ThrottledLogger",
    "EstimatorCfg",
    "LoggingCfg",
    "PlaneCheckCfg",
    "estimator",
    "logging",
    "paths",
    "plane_check",
    "CalibrationError",
    "CameraModelError",
    "ConfigError",
    "ErrorTracker",
    "TransformLookupError",
    "axis_rotation",
    "tilt_rotation",
    "make_transform",
    "decompose_transform",
    "invert_transform",
    "rotations_equal",
]
