"""Geometric plausibility gates on raw depth frames."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from geometry.camera_model import CameraParameters
from geometry.depth_projection import height_above_ground, points_in_frame
from utils.settings import PlaneCheckCfg, plane_check as PLANE_CHECK_CFG

__all__ = [
    "PrecheckResult",
    "HeightCheckResult",
    "precheck",
    "height_consistency",
]


@dataclass(frozen=True)
class PrecheckResult:
    """Slope statistics of one frame.

    ``failure`` is ``None`` for a plausible frame, else one of
    ``"samples"``, ``"slope"`` or ``"steep"``.
    """

    failure: str | None
    valid_samples: int
    avg_slope_x: float = float("nan")
    avg_slope_y: float = float("nan")
    steep_x: int = 0
    steep_y: int = 0
    avg_steep_x: float = float("nan")
    avg_steep_y: float = float("nan")

    @property
    def passed(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class HeightCheckResult:
    obstacle_pixels: int
    valid_pixels: int
    mean_height: float
    mean_obstacle_height: float
    passed: bool


def _slopes(delta: np.ndarray) -> np.ndarray:
    xy = np.linalg.norm(delta[..., :2], axis=-1)
    return np.abs(delta[..., 2]) / xy


def precheck(
    depth: np.ndarray,
    camera: CameraParameters,
    rotation: np.ndarray,
    cfg: PlaneCheckCfg = PLANE_CHECK_CFG,
) -> PrecheckResult:
    """Check that ``depth`` looks like a flat floor in the frame of ``rotation``.

    Finite differences with pixel offset ``cfg.stride`` are taken along both
    image axes on the back-projected points. The ratio of height change to
    horizontal change must stay small on average, and the steep samples (above
    ``cfg.steep_slope``) must not be too steep on average on any axis that has
    more than ``cfg.min_steep_samples`` of them.
    """
    points, mask = points_in_frame(depth, camera, rotation, cfg.max_range)
    s = cfg.stride
    h, w = mask.shape
    if h <= 2 * s or w <= 2 * s:
        return PrecheckResult(failure="samples", valid_samples=0)

    left, right = points[s : h - s, : w - 2 * s], points[s : h - s, 2 * s :]
    up, down = points[: h - 2 * s, s : w - s], points[2 * s :, s : w - s]
    valid = (
        mask[s : h - s, : w - 2 * s]
        & mask[s : h - s, 2 * s :]
        & mask[: h - 2 * s, s : w - s]
        & mask[2 * s :, s : w - s]
    )
    dx = right - left
    dy = down - up
    valid &= (np.linalg.norm(dx[..., :2], axis=-1) > 0) & (
        np.linalg.norm(dy[..., :2], axis=-1) > 0
    )

    count = int(np.count_nonzero(valid))
    if count < cfg.min_valid_samples:
        return PrecheckResult(failure="samples", valid_samples=count)

    slope_x = _slopes(dx[valid])
    slope_y = _slopes(dy[valid])
    avg_x = float(slope_x.mean())
    avg_y = float(slope_y.mean())

    steep_x = slope_x[slope_x > cfg.steep_slope]
    steep_y = slope_y[slope_y > cfg.steep_slope]
    avg_steep_x = float(steep_x.mean()) if len(steep_x) else float("nan")
    avg_steep_y = float(steep_y.mean()) if len(steep_y) else float("nan")

    failure = None
    if avg_x > cfg.max_avg_slope or avg_y > cfg.max_avg_slope:
        failure = "slope"
    elif (
        len(steep_x) > cfg.min_steep_samples and avg_steep_x > cfg.max_avg_steep_slope
    ) or (
        len(steep_y) > cfg.min_steep_samples and avg_steep_y > cfg.max_avg_steep_slope
    ):
        failure = "steep"

    return PrecheckResult(
        failure=failure,
        valid_samples=count,
        avg_slope_x=avg_x,
        avg_slope_y=avg_y,
        steep_x=len(steep_x),
        steep_y=len(steep_y),
        avg_steep_x=avg_steep_x,
        avg_steep_y=avg_steep_y,
    )


def height_consistency(
    depth: np.ndarray,
    camera: CameraParameters,
    rotation: np.ndarray,
    sensor_height: float,
    cfg: PlaneCheckCfg = PLANE_CHECK_CFG,
) -> HeightCheckResult:
    """Count raw pixels standing clear of the ground of a candidate rotation."""
    heights, _ = height_above_ground(
        depth, camera, rotation, sensor_height, cfg.max_range
    )
    heights = np.abs(heights)
    obstacles = heights[heights > cfg.height_threshold]
    return HeightCheckResult(
        obstacle_pixels=len(obstacles),
        valid_pixels=len(heights),
        mean_height=float(heights.mean()) if len(heights) else 0.0,
        mean_obstacle_height=float(obstacles.mean()) if len(obstacles) else 0.0,
        passed=len(obstacles) <= cfg.max_obstacle_pixels,
    )
