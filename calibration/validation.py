"""Reference quality checks for candidate and prior ground planes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from utils.logger import Logger, LoggerType

from .interfaces import AngleResult, PlaneValidator, VisualizerInterface
from .parameters import CalibrationParameters


@dataclass(frozen=True)
class ValidationConfig:
    """
    - too_low_buffer: depth beyond the plane (meters) before a pixel is
      counted as lying below the ground.
    - max_too_low_ratio: tolerated share of such pixels.
    - max_mean: tolerated mean absolute plane error (meters).
    """

    too_low_buffer: float = 0.02
    max_too_low_ratio: float = 0.05
    max_mean: float = 0.05
    debug: bool = False


def _pairs(plane: np.ndarray, depth: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(difference, valid)`` with ``difference = depth - plane``."""
    with np.errstate(invalid="ignore"):
        valid = np.isfinite(plane) & np.isfinite(depth) & (plane > 0) & (depth > 0)
        difference = np.where(valid, depth - plane, 0.0)
    return difference, valid


class CalibrationValidation(PlaneValidator):
    def __init__(
        self,
        parameters: CalibrationParameters,
        config: ValidationConfig | None = None,
        visualizer: VisualizerInterface | None = None,
        logger: LoggerType | None = None,
    ) -> None:
        self.parameters = parameters
        self.config = config or ValidationConfig()
        self.visualizer = visualizer
        self.logger = logger or Logger.get_logger("calibration.validation")

    def update_config(self, config: ValidationConfig) -> None:
        self.config = config

    def angle_offset_valid(self, result: AngleResult) -> bool:
        deviation = self.parameters.get_parameters().deviation
        pitch, roll = result
        return abs(pitch) <= deviation and abs(roll) <= deviation

    def too_low_ratio(self, plane: np.ndarray, depth: np.ndarray) -> float | None:
        """Share of valid pixels lying farther than the plane plus buffer.

        ``None`` when the images share no valid pixel.
        """
        difference, valid = _pairs(plane, depth)
        count = int(np.count_nonzero(valid))
        if count == 0:
            return None
        too_low = valid & (difference > self.config.too_low_buffer)
        if self.config.debug and self.visualizer is not None:
            self.visualizer.publish_image("debug/too_low", too_low.astype(np.float32))
        return np.count_nonzero(too_low) / count

    def ground_plane_has_data_below(self, plane: np.ndarray, depth: np.ndarray) -> bool:
        ratio = self.too_low_ratio(plane, depth)
        if ratio is None:
            return False
        below = ratio > self.config.max_too_low_ratio
        if below:
            self.logger.debug(f"Data below ground plane: ratio {ratio:.3f}")
        return below

    def ground_plane_fits_data(self, plane: np.ndarray, depth: np.ndarray) -> bool:
        difference, valid = _pairs(plane, depth)
        count = int(np.count_nonzero(valid))
        if count == 0:
            self.logger.debug("No overlap between plane and depth data")
            return False
        mean = float(np.abs(difference[valid]).mean())
        too_low = np.count_nonzero(valid & (difference > self.config.too_low_buffer))
        ratio = too_low / count
        fits = mean <= self.config.max_mean and ratio <= self.config.max_too_low_ratio
        log = self.logger.warning if self.config.debug and not fits else self.logger.debug
        log(f"Plane fit: mean {mean:.4f} m, too low ratio {ratio:.3f}")
        return fits


__all__ = ["CalibrationValidation", "ValidationConfig"]
