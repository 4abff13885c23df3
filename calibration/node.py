"""Runtime glue: wires the calibration components to incoming data."""

from __future__ import annotations

import math
import time
from typing import Callable, List, Optional

import numpy as np

from geometry.camera_model import CameraModel, CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.config import ConfigStore, PlaneCalibrationConfig
from utils.error_tracker import TransformLookupError
from utils.logger import Logger, LoggerType, ThrottledLogger

from .estimator import IterativeAngleEstimator
from .extrinsics import ExtrinsicTransform, Lookup, LookupTransformSource, ManualTransformSource
from .input_filter import InputFilter, InputFilterConfig
from .interfaces import AngleEstimator, VisualizerInterface
from .parameters import CalibrationParameters
from .pipeline import (
    AngleChangeListener,
    CalibrationPipeline,
    FrameResult,
    PipelineOptions,
    PipelineState,
    RejectReason,
)
from .publisher import TransformBroadcaster, TransformPublisher
from .validation import CalibrationValidation, ValidationConfig


def _filter_config(cfg: PlaneCalibrationConfig) -> InputFilterConfig:
    return InputFilterConfig(
        max_nan_ratio=cfg.input_max_nan_ratio,
        max_zero_ratio=cfg.input_max_zero_ratio,
        min_data_ratio=cfg.input_min_data_ratio,
        max_error=cfg.input_max_noise,
        threshold_from_ground=cfg.input_threshold_from_ground,
        debug=cfg.debug,
    )


def _validation_config(cfg: PlaneCalibrationConfig) -> ValidationConfig:
    return ValidationConfig(
        too_low_buffer=cfg.input_max_noise,
        max_too_low_ratio=cfg.plane_max_too_low_ratio,
        max_mean=cfg.plane_max_mean,
        debug=cfg.debug,
    )


def _pipeline_options(cfg: PlaneCalibrationConfig) -> PipelineOptions:
    return PipelineOptions(
        always_update=cfg.always_update, iterations=cfg.iterations, debug=cfg.debug
    )


class PlaneCalibrationNode:
    """Rate-limited depth calibration loop.

    Parameters
    ----------
    store:
        Live options; the node subscribes to it for reconfiguration.
    lookup:
        ``lookup(target, source) -> 4x4`` used when the manual ground
        transform is disabled.
    estimator_factory:
        Builds the angle estimator once the camera model is known; defaults
        to :class:`IterativeAngleEstimator`.
    clock:
        Monotonic time source in seconds.
    """

    def __init__(
        self,
        store: ConfigStore,
        lookup: Lookup | None = None,
        visualizer: VisualizerInterface | None = None,
        broadcaster: TransformBroadcaster | None = None,
        estimator_factory: Callable[[CameraModel, CalibrationParameters], AngleEstimator]
        | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: LoggerType | None = None,
    ) -> None:
        self.store = store
        self.visualizer = visualizer
        self.broadcaster = broadcaster or TransformBroadcaster()
        self.estimator_factory = estimator_factory or IterativeAngleEstimator
        self.clock = clock
        self.logger = logger or Logger.get_logger("calibration.node")
        self._throttled = ThrottledLogger(self.logger, clock=clock)

        self.camera_model = CameraModel()
        self.projector = PlaneProjector()
        self.manual_source = ManualTransformSource(store)
        self.lookup_source = LookupTransformSource(lookup, store) if lookup else None

        self.parameters: CalibrationParameters | None = None
        self.input_filter: InputFilter | None = None
        self.validation: CalibrationValidation | None = None
        self.pipeline: CalibrationPipeline | None = None
        self._listeners: List[AngleChangeListener] = []
        self._last_call: float | None = None
        self._debug: bool | None = None

        cfg = store.config
        self.publisher = TransformPublisher(
            None,
            self.broadcaster,
            camera_frame=cfg.camera_depth_frame,
            result_frame=cfg.result_frame,
            camera_model=self.camera_model,
            visualizer=visualizer,
        )

        self.store.subscribe(self.reconfigure)
        self.logger.info("Plane calibration node initialized")

    # ------------------------------------------------------------------
    def add_angle_listener(self, listener: AngleChangeListener) -> None:
        self._listeners.append(listener)
        if self.pipeline is not None:
            self.pipeline.add_listener(listener)

    def reconfigure(self, version: int, cfg: PlaneCalibrationConfig) -> None:
        """Apply option record ``version`` to every constructed component."""
        if self._debug != cfg.debug:
            self._debug = cfg.debug
            self.logger.info(f"Debug {'enabled' if cfg.debug else 'disabled'}")

        if self.parameters is None:
            self.parameters = CalibrationParameters(
                precompute_planes=cfg.precompute_planes,
                precomputed_plane_pairs_count=cfg.precomputed_plane_pairs_count,
            )
        self.parameters.update_deviations(math.radians(cfg.max_deviation_degrees))
        self.parameters.update_precomputation(
            cfg.precompute_planes, cfg.precomputed_plane_pairs_count
        )

        if self.input_filter is not None:
            self.input_filter.update_config(_filter_config(cfg))
            self.input_filter.update_borders()
        if self.validation is not None:
            self.validation.update_config(_validation_config(cfg))
        if self.pipeline is not None:
            self.pipeline.options = _pipeline_options(cfg)
        self.publisher.camera_frame = cfg.camera_depth_frame
        self.publisher.result_frame = cfg.result_frame
        self.logger.debug(f"Applied options version {version}")

    def on_camera_info(self, camera: CameraParameters) -> None:
        if self.visualizer is not None:
            self.visualizer.set_camera_model(camera)
        self.camera_model.set_parameters(camera)

    # ------------------------------------------------------------------
    def _construct(self, cfg: PlaneCalibrationConfig) -> None:
        if self.input_filter is None:
            self.input_filter = InputFilter(
                self.camera_model,
                self.parameters,
                self.visualizer,
                _filter_config(cfg),
                projector=self.projector,
            )
        if self.validation is None:
            self.validation = CalibrationValidation(
                self.parameters, _validation_config(cfg), self.visualizer
            )
        if self.pipeline is None:
            self.pipeline = CalibrationPipeline(
                self.camera_model,
                self.parameters,
                self.input_filter,
                self.estimator_factory(self.camera_model, self.parameters),
                self.validation,
                visualizer=self.visualizer,
                projector=self.projector,
                options=_pipeline_options(cfg),
            )
            for listener in self._listeners:
                self.pipeline.add_listener(listener)
            self.publisher.pipeline = self.pipeline

    def _resolve(self, cfg: PlaneCalibrationConfig) -> ExtrinsicTransform | None:
        if cfg.use_manual_ground_transform:
            source = self.manual_source
        elif self.lookup_source is not None:
            source = self.lookup_source
        else:
            self._throttled.warning("No transform lookup available, enable the manual transform")
            return None
        try:
            return source.resolve()
        except TransformLookupError as e:
            self.logger.warning(f"{e}")
            return None

    def _publish(self, stamp: float, debug: bool) -> None:
        self.publisher.publish(stamp, debug)

    def on_depth_image(
        self, depth: np.ndarray, stamp: float | None = None
    ) -> Optional[FrameResult]:
        """Handle one depth frame; returns ``None`` when the frame was not run."""
        now = self.clock()
        stamp = now if stamp is None else stamp
        _, cfg = self.store.latest()

        if (
            self._last_call is not None
            and cfg.calibration_rate > 0
            and now < self._last_call + 1.0 / cfg.calibration_rate
        ):
            self._publish(stamp, cfg.debug)
            return None
        self._last_call = now

        if not cfg.enable:
            if cfg.debug:
                self._throttled.info("Calibration disabled, not calibrating")
            return None

        if not self.camera_model.ready or self.parameters is None:
            self._publish(stamp, cfg.debug)
            return FrameResult(PipelineState.AWAITING_INPUTS)

        self._construct(cfg)

        extrinsic = self._resolve(cfg)
        if extrinsic is None:
            # keep the last known extrinsic and skip the frame
            self._publish(stamp, cfg.debug)
            if self.pipeline.extrinsic is None:
                return FrameResult(PipelineState.AWAITING_INPUTS)
            return FrameResult(PipelineState.REJECTED, RejectReason.TRANSFORM_UNAVAILABLE)

        self.pipeline.update_extrinsic(extrinsic)
        result = self.pipeline.run(depth)
        self._publish(stamp, cfg.debug)
        return result


__all__ = ["PlaneCalibrationNode"]
