"""Pinhole intrinsics of the depth stream."""

from __future__ import annotations

import threading
from dataclasses import dataclass

import numpy as np

from utils.error_tracker import CameraModelError


@dataclass(frozen=True)
class CameraParameters:
    """Pinhole intrinsics; replaced wholesale on every camera-info update."""

    center_x: float
    center_y: float
    focal_x: float
    focal_y: float
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.focal_x <= 0 or self.focal_y <= 0:
            raise CameraModelError(
                f"Focal lengths must be positive, got {self.focal_x}, {self.focal_y}"
            )
        if self.width <= 0 or self.height <= 0:
            raise CameraModelError(
                f"Image size must be positive, got {self.width}x{self.height}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    @property
    def K(self) -> np.ndarray:
        return np.array(
            [
                [self.focal_x, 0.0, self.center_x],
                [0.0, self.focal_y, self.center_y],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )

    @classmethod
    def from_matrix(cls, K: np.ndarray, width: int, height: int) -> "CameraParameters":
        """Build intrinsics from a 3x3 camera matrix."""
        return cls(
            center_x=float(K[0, 2]),
            center_y=float(K[1, 2]),
            focal_x=float(K[0, 0]),
            focal_y=float(K[1, 1]),
            width=int(width),
            height=int(height),
        )


class CameraModel:
    """Thread-safe holder of the latest :class:`CameraParameters`."""

    def __init__(self, parameters: CameraParameters | None = None) -> None:
        self._lock = threading.Lock()
        self._parameters = parameters

    def update(
        self,
        center_x: float,
        center_y: float,
        focal_x: float,
        focal_y: float,
        width: int,
        height: int,
    ) -> None:
        parameters = CameraParameters(center_x, center_y, focal_x, focal_y, width, height)
        with self._lock:
            self._parameters = parameters

    def set_parameters(self, parameters: CameraParameters) -> None:
        with self._lock:
            self._parameters = parameters

    def get_parameters(self) -> CameraParameters | None:
        with self._lock:
            return self._parameters

    @property
    def ready(self) -> bool:
        return self.get_parameters() is not None
