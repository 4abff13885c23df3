"""Synthetic depth images of planes and plane-to-depth fit errors.

The plane is the canonical ground plane (normal +Z through the origin) moved
by a rigid transform into the sensor frame. A depth pixel ``(u, v)`` sees the
point ``depth * (mx(u), my(v), 1)`` with the ray multipliers

    mx(u) = (u - cx) / fx,    my(v) = (v - cy) / fy

so the plane ``a*x + b*y + c*z + d = 0`` is hit at

    depth = -d / (a * mx + b * my + c)

Rays parallel to the plane produce non-finite pixels; they are left in the
image and, like the sensor's own NaNs, mark invalid data.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from utils.logger import Logger, LoggerType

from .camera_model import CameraParameters

_Z_AXIS = np.array([0.0, 0.0, 1.0])


@dataclass(frozen=True)
class PlaneErrors:
    """Absolute depth difference statistics between a plane and an image.

    ``mean`` is NaN when no pixel pair is valid.
    """

    mean: float
    min: float
    max: float
    valid_count: int


def plane_coefficients(plane_transform: np.ndarray) -> np.ndarray:
    """Return Hesse normal form ``(a, b, c, d)`` of the transformed ground plane."""
    normal = plane_transform[:3, :3] @ _Z_AXIS
    normal = normal / np.linalg.norm(normal)
    point = plane_transform[:3, 3]
    return np.array([normal[0], normal[1], normal[2], -normal @ point])


def ray_multipliers(camera: CameraParameters) -> Tuple[np.ndarray, np.ndarray]:
    """Per-pixel ``(mx, my)`` grids of shape ``(height, width)``."""
    us = np.arange(camera.width, dtype=np.float64)
    vs = np.arange(camera.height, dtype=np.float64)
    mx = (us - camera.center_x) / camera.focal_x
    my = (vs - camera.center_y) / camera.focal_y
    return (
        np.broadcast_to(mx[None, :], camera.shape),
        np.broadcast_to(my[:, None], camera.shape),
    )


class PlaneProjector:
    """Convert planes into depth images for a given camera."""

    def __init__(self, logger: LoggerType | None = None) -> None:
        self.logger = logger or Logger.get_logger("geometry.plane_projection")
        self._lock = threading.Lock()
        self._cached_camera: CameraParameters | None = None
        self._cached_multipliers: Tuple[np.ndarray, np.ndarray] | None = None

    def multipliers(self, camera: CameraParameters) -> Tuple[np.ndarray, np.ndarray]:
        """Ray multipliers, recomputed only when the intrinsics change."""
        with self._lock:
            if self._cached_camera != camera or self._cached_multipliers is None:
                self.logger.debug(
                    f"Computing ray multipliers for {camera.width}x{camera.height}"
                )
                self._cached_multipliers = ray_multipliers(camera)
                self._cached_camera = camera
            return self._cached_multipliers

    def convert(
        self, plane_transform: np.ndarray, camera: CameraParameters
    ) -> np.ndarray:
        """Synthesize the float32 depth image of ``plane_transform``."""
        mx, my = self.multipliers(camera)
        a, b, c, d = plane_coefficients(plane_transform)
        with np.errstate(divide="ignore", invalid="ignore"):
            depth = -d / (a * mx + b * my + c)
        return depth.astype(np.float32)

    def get_errors(
        self,
        plane_transform: np.ndarray,
        camera: CameraParameters,
        depth: np.ndarray,
    ) -> PlaneErrors:
        """Compare the synthesized plane with a real depth image."""
        plane = self.convert(plane_transform, camera)
        return depth_errors(plane, depth)


def depth_errors(plane: np.ndarray, depth: np.ndarray) -> PlaneErrors:
    """Mean/min/max of ``|plane - depth|``; NaN pixels are excluded from the
    count and zeroed before the statistics."""
    with np.errstate(invalid="ignore"):
        difference = np.abs(plane - depth)
    not_nan = ~np.isnan(difference)
    count = int(np.count_nonzero(not_nan))
    difference = np.where(not_nan, difference, 0.0)
    total = float(np.sum(difference, dtype=np.float64))
    mean = total / count if count else float("nan")
    return PlaneErrors(
        mean=mean,
        min=float(difference.min()),
        max=float(difference.max()),
        valid_count=count,
    )
