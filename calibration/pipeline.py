"""Calibration decision pipeline.

Every frame runs through a fixed sequence of gates. Any gate may end the
frame early, in which case the previously accepted calibration stays in
place:

1. geometric pre-check of the raw depth in the current calibration frame
2. input filtering and usability classification
3. hysteresis: keep the prior plane while nothing changed and no data lies
   below it
4. angle estimation
5. angle deviation validation
6. discontinuity report (warning only)
7. plane re-synthesis and height consistency of the raw depth
8. global fit validation
9. commit and angle-change notification
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from geometry.camera_model import CameraModel, CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.error_tracker import ErrorTracker
from utils.logger import Logger, LoggerType
from utils.math_utils import make_transform, tilt_rotation
from utils.settings import PlaneCheckCfg, plane_check as PLANE_CHECK_CFG

from .checks import height_consistency, precheck
from .extrinsics import ExtrinsicTransform
from .interfaces import (
    AngleEstimator,
    AngleResult,
    DepthFilter,
    PlaneValidator,
    VisualizerInterface,
)
from .parameters import CalibrationParameters


class PipelineState(Enum):
    AWAITING_INPUTS = "awaiting_inputs"
    READY = "ready"
    REJECTED = "rejected"
    COMMITTED = "committed"


class RejectReason(Enum):
    NONE = "none"
    SHAPE_MISMATCH = "shape_mismatch"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    SLOPE = "slope"
    STEEP_SLOPE = "steep_slope"
    UNUSABLE_INPUT = "unusable_input"
    STILL_VALID = "still_valid"
    ANGLE_DEVIATION = "angle_deviation"
    OBSTACLES = "obstacles"
    POOR_FIT = "poor_fit"
    TRANSFORM_UNAVAILABLE = "transform_unavailable"


_PRECHECK_REASONS = {
    "samples": RejectReason.INSUFFICIENT_SAMPLES,
    "slope": RejectReason.SLOPE,
    "steep": RejectReason.STEEP_SLOPE,
}


@dataclass(frozen=True)
class FrameResult:
    """Outcome of one frame.

    ``result`` holds the raw estimate in radians once step 4 ran.
    ``discontinuity`` flags a jump larger than the configured angle change.
    """

    state: PipelineState
    reason: RejectReason = RejectReason.NONE
    result: Optional[AngleResult] = None
    discontinuity: bool = False

    @property
    def committed(self) -> bool:
        return self.state is PipelineState.COMMITTED


@dataclass(frozen=True)
class CalibrationState:
    """Snapshot of the accepted calibration; arrays are read-only."""

    last_valid_result: AngleResult = (0.0, 0.0)
    last_valid_plane: Optional[np.ndarray] = None
    last_valid_transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    last_raw_result: AngleResult = (0.0, 0.0)


@dataclass(frozen=True)
class AngleChange:
    """Previous and new accepted angles in degrees."""

    previous_pitch: float
    previous_roll: float
    pitch: float
    roll: float

    def __str__(self) -> str:
        return (
            f"px [degree]: {self.previous_pitch} -> {self.pitch}, "
            f"py [degree]: {self.previous_roll} -> {self.roll}"
        )


@dataclass(frozen=True)
class PipelineOptions:
    always_update: bool = False
    iterations: int = 10
    debug: bool = False


AngleChangeListener = Callable[[AngleChange], None]


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


class CalibrationPipeline:
    """Decides whether a new ground-plane estimate replaces the current one.

    Owned by one producer thread; other threads read :attr:`state`
    snapshots.
    """

    def __init__(
        self,
        camera_model: CameraModel,
        parameters: CalibrationParameters,
        depth_filter: DepthFilter,
        estimator: AngleEstimator,
        validator: PlaneValidator,
        visualizer: VisualizerInterface | None = None,
        projector: PlaneProjector | None = None,
        options: PipelineOptions | None = None,
        check_cfg: PlaneCheckCfg = PLANE_CHECK_CFG,
        logger: LoggerType | None = None,
    ) -> None:
        self.camera_model = camera_model
        self.parameters = parameters
        self.depth_filter = depth_filter
        self.estimator = estimator
        self.validator = validator
        self.visualizer = visualizer
        self.projector = projector or PlaneProjector()
        self.options = options or PipelineOptions()
        self.check_cfg = check_cfg
        self.logger = logger or Logger.get_logger("calibration.pipeline")
        self._lock = threading.Lock()
        self._state = CalibrationState(last_valid_transform=_frozen(np.eye(4)))
        self._extrinsic: ExtrinsicTransform | None = None
        self._listeners: List[AngleChangeListener] = []

    # ------------------------------------------------------------------
    @property
    def state(self) -> CalibrationState:
        with self._lock:
            return self._state

    @property
    def extrinsic(self) -> ExtrinsicTransform | None:
        with self._lock:
            return self._extrinsic

    def snapshot(self) -> Tuple[ExtrinsicTransform | None, CalibrationState]:
        """Extrinsic and calibration state taken under one lock."""
        with self._lock:
            return self._extrinsic, self._state

    def add_listener(self, listener: AngleChangeListener) -> None:
        self._listeners.append(listener)

    def reset(self, extrinsic: ExtrinsicTransform) -> None:
        """Forget the accepted calibration and start over from ``extrinsic``."""
        self.logger.info("Sensor transform changed, resetting calibration")
        with self._lock:
            self._extrinsic = extrinsic
            self._state = CalibrationState(
                last_valid_transform=_frozen(extrinsic.transform)
            )
        self.parameters.update(extrinsic.offset, extrinsic.rotation)
        self.depth_filter.update_borders()

    def update_extrinsic(self, extrinsic: ExtrinsicTransform) -> bool:
        """Reset if ``extrinsic`` differs from the known one; return whether it did."""
        current = self.extrinsic
        if current is not None and current == extrinsic:
            return False
        self.reset(extrinsic)
        return True

    # ------------------------------------------------------------------
    def _reject(
        self,
        reason: RejectReason,
        message: str,
        result: AngleResult | None = None,
        discontinuity: bool = False,
    ) -> FrameResult:
        log = self.logger.warning if self.options.debug else self.logger.debug
        log(message)
        return FrameResult(PipelineState.REJECTED, reason, result, discontinuity)

    def _publish_cloud(self, name: str, transform: np.ndarray, camera: CameraParameters) -> None:
        if self.options.debug and self.visualizer is not None:
            self.visualizer.publish_cloud(name, transform, camera)

    def _notify(self, change: AngleChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                ErrorTracker.report(e, self.logger, "Angle change listener failed")

    def run(self, depth: np.ndarray) -> FrameResult:
        """Process one depth frame (float meters, NaN for invalid pixels)."""
        options = self.options
        camera = self.camera_model.get_parameters()
        extrinsic = self.extrinsic
        if camera is None or extrinsic is None:
            return FrameResult(PipelineState.AWAITING_INPUTS)
        if depth.shape != camera.shape:
            return self._reject(
                RejectReason.SHAPE_MISMATCH,
                f"Depth shape {depth.shape} does not match camera {camera.shape}",
            )

        raw = np.array(depth, dtype=np.float32, copy=True)
        work = raw.copy()
        params = self.parameters.get_parameters()
        self._publish_cloud("debug/uncalibrated_ground", params.get_transform(), camera)

        # 1. geometric pre-check
        check = precheck(raw, camera, params.rotation.as_matrix(), self.check_cfg)
        if not check.passed:
            return self._reject(
                _PRECHECK_REASONS[check.failure],
                f"Pre-check failed ({check.failure}): samples {check.valid_samples}, "
                f"slope x {check.avg_slope_x:.3f}, y {check.avg_slope_y:.3f}, "
                f"steep x {check.steep_x} ({check.avg_steep_x:.3f}), "
                f"steep y {check.steep_y} ({check.avg_steep_y:.3f})",
            )

        # 2. input filtering
        self.depth_filter.filter(work)
        if not self.depth_filter.is_usable(work):
            return self._reject(
                RejectReason.UNUSABLE_INPUT, "Input data not usable, not going to calibrate"
            )

        # 3. hysteresis
        state = self.state
        if not options.always_update and state.last_valid_plane is not None:
            parameters_updated = self.parameters.parameters_updated()
            gone_bad = self.validator.ground_plane_has_data_below(
                state.last_valid_plane, work
            )
            if not parameters_updated and not gone_bad:
                self.logger.debug("Last calibration data still works, not going to calibrate")
                return FrameResult(PipelineState.REJECTED, RejectReason.STILL_VALID)

        # 4. estimate
        params = self.parameters.get_parameters()
        result = self.estimator.estimate(work, options.iterations)
        pitch, roll = float(result[0]), float(result[1])
        result = (pitch, roll)
        if options.debug:
            self.logger.info(
                f"Calibration result angles [degree]: {math.degrees(pitch)}, "
                f"{math.degrees(roll)}"
            )
        rotation = tilt_rotation(params.rotation, pitch, roll)
        transform = make_transform(rotation, params.ground_plane_offset)
        self._publish_cloud("debug/calibration_result", transform, camera)

        # 5. deviation
        if not self.validator.angle_offset_valid(result):
            return self._reject(
                RejectReason.ANGLE_DEVIATION,
                f"Calibration angles too big ( > {math.degrees(params.deviation)} "
                f"[degree]): {math.degrees(pitch)}, {math.degrees(roll)}",
                result,
            )

        # 6. discontinuity
        previous_raw = state.last_raw_result
        pitch_jump = math.degrees(abs(pitch - previous_raw[0]))
        roll_jump = math.degrees(abs(roll - previous_raw[1]))
        with self._lock:
            self._state = replace(self._state, last_raw_result=result)
        discontinuity = max(pitch_jump, roll_jump) > self.check_cfg.max_angle_change
        if discontinuity:
            log = self.logger.warning if options.debug else self.logger.debug
            log(
                f"Too big change of angles. pitch diff [degree]: {pitch_jump}, "
                f"roll diff [degree]: {roll_jump}"
            )

        # 7. re-synthesis and height consistency
        plane = self.projector.convert(transform, camera)
        heights = height_consistency(
            raw,
            camera,
            rotation.as_matrix(),
            extrinsic.sensor_height,
            self.check_cfg,
        )
        if not heights.passed:
            return self._reject(
                RejectReason.OBSTACLES,
                f"There would be taller obstacles: {heights.obstacle_pixels} pixels, "
                f"mean height {heights.mean_obstacle_height:.3f} m",
                result,
                discontinuity,
            )

        # 8. global fit
        if not self.validator.ground_plane_fits_data(plane, work):
            return self._reject(
                RejectReason.POOR_FIT,
                "Calibration turned out bad: data does not fit good enough",
                result,
                discontinuity,
            )

        # 9. commit
        with self._lock:
            previous = self._state.last_valid_result
            self._state = CalibrationState(
                last_valid_result=result,
                last_valid_plane=_frozen(plane),
                last_valid_transform=_frozen(transform),
                last_raw_result=self._state.last_raw_result,
            )
        change = AngleChange(
            previous_pitch=math.degrees(previous[0]),
            previous_roll=math.degrees(previous[1]),
            pitch=math.degrees(pitch),
            roll=math.degrees(roll),
        )
        self.logger.info(f"Updated the calibration angles: {change}")
        self._notify(change)
        return FrameResult(PipelineState.COMMITTED, RejectReason.NONE, result, discontinuity)


__all__ = [
    "PipelineState",
    "RejectReason",
    "FrameResult",
    "CalibrationState",
    "AngleChange",
    "PipelineOptions",
    "CalibrationPipeline",
]
