"""Reference plane-angle estimator.

Valid depth pixels are back-projected and rotated into the frame of the
nominal ground plane, where the plane is ``z = a*x + b*y + c``. A small
pitch ``p`` about X followed by a roll ``r`` about Y tilts the normal to
``(sin r, -sin p cos r, cos p cos r)``, so the fitted coefficients give

    pitch = atan(b),    roll = atan2(-a, sqrt(1 + b**2))

Outliers (obstacles, walls) are removed by repeated least-squares fits that
keep points within a multiple of the median residual.
"""

from __future__ import annotations

import math
import threading
from typing import List, Tuple

import numpy as np

from geometry.camera_model import CameraModel, CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.logger import Logger, LoggerType
from utils.math_utils import make_transform, tilt_rotation
from utils.settings import EstimatorCfg, estimator as ESTIMATOR_CFG

from .interfaces import AngleEstimator, AngleResult
from .parameters import CalibrationParameters, Parameters


def fit_plane(points: np.ndarray) -> np.ndarray:
    """Least-squares ``(a, b, c)`` of ``z = a*x + b*y + c``."""
    A = np.column_stack([points[:, 0], points[:, 1], np.ones(len(points))])
    coeffs, *_ = np.linalg.lstsq(A, points[:, 2], rcond=None)
    return coeffs


def angles_from_coefficients(coeffs: np.ndarray) -> AngleResult:
    a, b = float(coeffs[0]), float(coeffs[1])
    return math.atan(b), math.atan2(-a, math.sqrt(1.0 + b * b))


class IterativeAngleEstimator(AngleEstimator):
    def __init__(
        self,
        camera_model: CameraModel,
        parameters: CalibrationParameters,
        config: EstimatorCfg = ESTIMATOR_CFG,
        projector: PlaneProjector | None = None,
        logger: LoggerType | None = None,
    ) -> None:
        self.camera_model = camera_model
        self.parameters = parameters
        self.config = config
        self.projector = projector or PlaneProjector()
        self.logger = logger or Logger.get_logger("calibration.estimator")
        self._lock = threading.Lock()
        self._params: Parameters | None = None
        self._camera: CameraParameters | None = None
        self._pitch_planes: List[Tuple[float, np.ndarray]] = []
        self._roll_planes: List[Tuple[float, np.ndarray]] = []

    # ------------------------------------------------------------------
    def _sample(self, image: np.ndarray) -> np.ndarray:
        step = self.config.sample_step
        return image[::step, ::step]

    def _precompute(self, params: Parameters, camera: CameraParameters) -> None:
        """Synthesize pitch-only and roll-only planes across the deviation."""
        pitch_planes: List[Tuple[float, np.ndarray]] = []
        roll_planes: List[Tuple[float, np.ndarray]] = []
        if params.precompute_planes and params.precomputed_plane_pairs_count > 0:
            angles = np.linspace(
                -params.max_deviation,
                params.max_deviation,
                params.precomputed_plane_pairs_count,
            )
            for angle in angles:
                for pitch, roll, target in (
                    (angle, 0.0, pitch_planes),
                    (0.0, angle, roll_planes),
                ):
                    rotation = tilt_rotation(params.rotation, pitch, roll)
                    T = make_transform(rotation, params.ground_plane_offset)
                    plane = self._sample(self.projector.convert(T, camera))
                    target.append((float(angle), plane))
            self.logger.debug(f"Precomputed {len(angles)} plane pairs")
        self._pitch_planes = pitch_planes
        self._roll_planes = roll_planes

    def _refresh(self) -> Tuple[Parameters, CameraParameters | None]:
        updated, params = self.parameters.get_updated_parameters()
        camera = self.camera_model.get_parameters()
        with self._lock:
            if camera is not None and (
                updated or self._params is None or self._camera != camera
            ):
                self._precompute(params, camera)
                self._camera = camera
            self._params = params
        return params, camera

    @staticmethod
    def _best_angle(
        planes: List[Tuple[float, np.ndarray]], depth: np.ndarray
    ) -> float:
        best_angle, best_error = 0.0, math.inf
        for angle, plane in planes:
            with np.errstate(invalid="ignore"):
                diff = np.abs(plane - depth)
            valid = np.isfinite(diff)
            if not valid.any():
                continue
            error = float(diff[valid].mean())
            if error < best_error:
                best_angle, best_error = angle, error
        return best_angle

    def _seed(
        self, params: Parameters, camera: CameraParameters, depth: np.ndarray, valid: np.ndarray
    ) -> np.ndarray | None:
        """Inlier mask from the best precomputed pitch/roll pair."""
        with self._lock:
            pitch_planes, roll_planes = self._pitch_planes, self._roll_planes
        if not pitch_planes:
            return None
        pitch = self._best_angle(pitch_planes, depth)
        roll = self._best_angle(roll_planes, depth)
        rotation = tilt_rotation(params.rotation, pitch, roll)
        T = make_transform(rotation, params.ground_plane_offset)
        plane = self._sample(self.projector.convert(T, camera))
        with np.errstate(invalid="ignore"):
            diff = np.abs(plane - depth)[valid]
        finite = np.isfinite(diff)
        if not finite.any():
            return None
        threshold = max(
            self.config.residual_factor * float(np.median(diff[finite])),
            self.config.min_residual,
        )
        seed = finite & (diff <= threshold)
        self.logger.debug(
            f"Seed pair: pitch {math.degrees(pitch):.2f}, roll {math.degrees(roll):.2f} "
            f"[degree], {int(seed.sum())} inliers"
        )
        return seed

    # ------------------------------------------------------------------
    def estimate(self, depth: np.ndarray, iterations: int) -> AngleResult:
        params, camera = self._refresh()
        if camera is None:
            self.logger.warning("No camera model, skipping estimation")
            return 0.0, 0.0

        step = self.config.sample_step
        sampled = self._sample(depth)
        us = np.arange(0, camera.width, step, dtype=np.float64)
        vs = np.arange(0, camera.height, step, dtype=np.float64)
        mx = ((us - camera.center_x) / camera.focal_x)[None, :]
        my = ((vs - camera.center_y) / camera.focal_y)[:, None]
        with np.errstate(invalid="ignore"):
            valid = np.isfinite(sampled) & (sampled > 0)
        z = np.where(valid, sampled, 0.0)
        points = np.stack(
            [np.broadcast_to(mx, z.shape) * z, np.broadcast_to(my, z.shape) * z, z],
            axis=-1,
        )[valid]
        if len(points) < self.config.min_points:
            self.logger.warning(f"Only {len(points)} valid points, no estimate")
            return 0.0, 0.0
        points = points @ params.rotation.as_matrix()

        inliers = self._seed(params, camera, sampled, valid)
        if inliers is None or np.count_nonzero(inliers) < self.config.min_points:
            inliers = np.ones(len(points), dtype=bool)

        coeffs = fit_plane(points[inliers])
        for _ in range(max(int(iterations), 0)):
            residuals = np.abs(
                points[:, 2] - (coeffs[0] * points[:, 0] + coeffs[1] * points[:, 1] + coeffs[2])
            )
            threshold = max(
                self.config.residual_factor * float(np.median(residuals[inliers])),
                self.config.min_residual,
            )
            updated = residuals <= threshold
            if np.count_nonzero(updated) < self.config.min_points:
                break
            if np.array_equal(updated, inliers):
                break
            inliers = updated
            coeffs = fit_plane(points[inliers])

        pitch, roll = angles_from_coefficients(coeffs)
        self.logger.debug(
            f"Estimated pitch {math.degrees(pitch):.3f}, roll {math.degrees(roll):.3f} "
            f"[degree] from {int(np.count_nonzero(inliers))} points"
        )
        return pitch, roll


__all__ = ["IterativeAngleEstimator", "fit_plane", "angles_from_coefficients"]
