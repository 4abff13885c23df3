"""Reference depth input filter.

Only depth that could belong to the ground plane survives filtering: the
borders are the nearest and farthest plane depths reachable within the
allowed angular deviation around the nominal calibration.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

import numpy as np

from geometry.camera_model import CameraModel, CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.logger import Logger, LoggerType
from utils.math_utils import make_transform, tilt_rotation

from .interfaces import DepthFilter, VisualizerInterface
from .parameters import CalibrationParameters


@dataclass(frozen=True)
class InputFilterConfig:
    """
    - max_nan_ratio: frames with more invalid pixels are unusable.
    - max_zero_ratio: frames with more zero pixels are unusable.
    - min_data_ratio: frames with less valid data are unusable.
    - max_error: noise allowance beyond the farthest border (meters).
    - threshold_from_ground: allowance before the nearest border (meters).
    """

    max_nan_ratio: float = 0.5
    max_zero_ratio: float = 0.1
    min_data_ratio: float = 0.3
    max_error: float = 0.02
    threshold_from_ground: float = 0.05
    debug: bool = False


class InputFilter(DepthFilter):
    def __init__(
        self,
        camera_model: CameraModel,
        parameters: CalibrationParameters,
        visualizer: VisualizerInterface | None = None,
        config: InputFilterConfig | None = None,
        projector: PlaneProjector | None = None,
        logger: LoggerType | None = None,
    ) -> None:
        self.camera_model = camera_model
        self.parameters = parameters
        self.visualizer = visualizer
        self.config = config or InputFilterConfig()
        self.projector = projector or PlaneProjector()
        self.logger = logger or Logger.get_logger("calibration.input_filter")
        self._lock = threading.Lock()
        self._camera: CameraParameters | None = None
        self._min_border: np.ndarray | None = None
        self._max_border: np.ndarray | None = None

    def update_config(self, config: InputFilterConfig) -> None:
        self.config = config

    def update_borders(self) -> None:
        """Rebuild the borders from the current calibration and intrinsics."""
        camera = self.camera_model.get_parameters()
        if camera is None:
            return
        params = self.parameters.get_parameters()
        deviation = params.max_deviation
        tilts = [
            (0.0, 0.0),
            (deviation, 0.0),
            (-deviation, 0.0),
            (0.0, deviation),
            (0.0, -deviation),
        ]
        planes = []
        for pitch, roll in tilts:
            rotation = tilt_rotation(params.rotation, pitch, roll)
            T = make_transform(rotation, params.ground_plane_offset)
            planes.append(self.projector.convert(T, camera))
        stack = np.stack(planes)
        min_border = np.fmin.reduce(stack, axis=0)
        max_border = np.fmax.reduce(stack, axis=0)
        with self._lock:
            self._camera = camera
            self._min_border = min_border
            self._max_border = max_border
        self.logger.debug(
            f"Input borders rebuilt for +-{np.degrees(deviation):.2f} degree"
        )

    def _borders(self):
        camera = self.camera_model.get_parameters()
        with self._lock:
            stale = self._min_border is None or self._camera != camera
        if stale:
            self.update_borders()
        with self._lock:
            return self._min_border, self._max_border

    def filter(self, depth: np.ndarray) -> None:
        min_border, max_border = self._borders()
        if min_border is None:
            return
        cfg = self.config
        with np.errstate(invalid="ignore"):
            data = np.isfinite(depth) & (depth != 0)
            too_near = depth < (min_border - cfg.threshold_from_ground)
            too_far = depth > (max_border + cfg.max_error)
        depth[data & (too_near | too_far)] = np.nan

        if cfg.debug and self.visualizer is not None:
            self.visualizer.publish_image("debug/input_filtered", depth)

    def is_usable(self, depth: np.ndarray) -> bool:
        total = depth.size
        if total == 0:
            return False
        nan_count = int(np.count_nonzero(np.isnan(depth)))
        zero_count = int(np.count_nonzero(depth == 0))
        data_count = int(np.count_nonzero(np.isfinite(depth) & (depth != 0)))
        nan_ratio = nan_count / total
        zero_ratio = zero_count / total
        data_ratio = data_count / total

        cfg = self.config
        usable = (
            nan_ratio <= cfg.max_nan_ratio
            and zero_ratio <= cfg.max_zero_ratio
            and data_ratio >= cfg.min_data_ratio
        )
        if not usable:
            log = self.logger.warning if cfg.debug else self.logger.debug
            log(
                f"Unusable input: nan {nan_ratio:.3f}, zero {zero_ratio:.3f}, "
                f"data {data_ratio:.3f}"
            )
        return usable


__all__ = ["InputFilter", "InputFilterConfig"]
