"""Depth back-projection helpers."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .camera_model import CameraParameters
from .plane_projection import ray_multipliers

__all__ = [
    "backproject",
    "valid_depth_mask",
    "points_in_frame",
    "height_above_ground",
]


def backproject(depth: np.ndarray, camera: CameraParameters) -> np.ndarray:
    """Return ``(H, W, 3)`` camera-space points for every pixel."""
    mx, my = ray_multipliers(camera)
    z = depth.astype(np.float64)
    return np.stack([mx * z, my * z, z], axis=-1)


def valid_depth_mask(depth: np.ndarray, max_range: float) -> np.ndarray:
    """Pixels with a positive depth no farther than ``max_range``."""
    with np.errstate(invalid="ignore"):
        return ~np.isnan(depth) & (depth > 0) & (depth <= max_range)


def points_in_frame(
    depth: np.ndarray,
    camera: CameraParameters,
    rotation: np.ndarray,
    max_range: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Back-project ``depth`` and express the points in a frame rotated by
    ``rotation`` (points are multiplied by ``rotation.T``).

    Returns ``(points, mask)``; points outside ``mask`` are zero.
    """
    mask = valid_depth_mask(depth, max_range)
    points = backproject(np.where(mask, depth, 0.0), camera)
    points = points @ rotation  # row-wise rotation.T @ p
    points[~mask] = 0.0
    return points, mask


def height_above_ground(
    depth: np.ndarray,
    camera: CameraParameters,
    rotation: np.ndarray,
    sensor_height: float,
    max_range: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Signed height of every valid pixel above the ground of ``rotation``.

    A ground point expressed in the ground-aligned frame has
    ``z == -sensor_height``. Returns ``(heights, mask)`` where ``heights``
    holds one value per pixel inside ``mask``.
    """
    points, mask = points_in_frame(depth, camera, rotation, max_range)
    return points[..., 2][mask] + sensor_height, mask
