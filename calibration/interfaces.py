"""Collaborator interfaces of the calibration pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Tuple

import numpy as np

from geometry.camera_model import CameraParameters

if TYPE_CHECKING:
    from .extrinsics import ExtrinsicTransform

AngleResult = Tuple[float, float]


class TransformSource(ABC):
    """Provides the sensor extrinsic transform."""

    @abstractmethod
    def resolve(self) -> "ExtrinsicTransform":
        """Return the current extrinsic.

        Raises
        ------
        TransformLookupError
            If the transform is currently unavailable.
        """


class DepthFilter(ABC):
    """Cleans raw depth frames and classifies their usability."""

    @abstractmethod
    def filter(self, depth: np.ndarray) -> None:
        """Invalidate implausible pixels of ``depth`` in place."""

    @abstractmethod
    def is_usable(self, depth: np.ndarray) -> bool:
        """Return ``True`` if enough of ``depth`` is valid data."""

    def update_borders(self) -> None:
        """Rebuild internal state after the nominal calibration changed."""


class AngleEstimator(ABC):
    """Estimates the pitch/roll correction of the current calibration."""

    @abstractmethod
    def estimate(self, depth: np.ndarray, iterations: int) -> AngleResult:
        """Return ``(pitch, roll)`` in radians."""


class PlaneValidator(ABC):
    """Quality checks of candidate and prior ground planes."""

    @abstractmethod
    def angle_offset_valid(self, result: AngleResult) -> bool:
        ...

    @abstractmethod
    def ground_plane_has_data_below(self, plane: np.ndarray, depth: np.ndarray) -> bool:
        ...

    @abstractmethod
    def ground_plane_fits_data(self, plane: np.ndarray, depth: np.ndarray) -> bool:
        ...


class VisualizerInterface(ABC):
    """Fire-and-forget sink for debug images and clouds."""

    def set_camera_model(self, camera: CameraParameters) -> None:
        """Receive the latest intrinsics."""

    @abstractmethod
    def publish_image(self, name: str, data: np.ndarray) -> None:
        ...

    @abstractmethod
    def publish_cloud(
        self, name: str, plane_transform: np.ndarray, camera: CameraParameters
    ) -> None:
        ...


__all__ = [
    "AngleResult",
    "TransformSource",
    "DepthFilter",
    "AngleEstimator",
    "PlaneValidator",
    "VisualizerInterface",
]
