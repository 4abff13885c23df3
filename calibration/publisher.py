"""Camera to calibrated ground transform output."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, List

import numpy as np

from geometry.camera_model import CameraModel
from utils.logger import Logger, LoggerType
from utils.math_utils import invert_transform

from .interfaces import VisualizerInterface
from .pipeline import CalibrationPipeline, CalibrationState


@dataclass(frozen=True)
class StampedTransform:
    """One broadcast transform: ``child`` pose expressed in ``parent``."""

    parent: str
    child: str
    transform: np.ndarray
    stamp: float


Broadcast = Callable[[StampedTransform], None]


class TransformBroadcaster:
    """Keeps the latest transform per child frame and forwards it to sinks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[str, StampedTransform] = {}
        self._sinks: List[Broadcast] = []

    def add_sink(self, sink: Broadcast) -> None:
        self._sinks.append(sink)

    def send(self, stamped: StampedTransform) -> None:
        with self._lock:
            self._latest[stamped.child] = stamped
            sinks = list(self._sinks)
        for sink in sinks:
            sink(stamped)

    def latest(self, child: str) -> StampedTransform | None:
        with self._lock:
            return self._latest.get(child)


def output_transform(
    last_valid_transform: np.ndarray, extrinsic_transform: np.ndarray | None
) -> np.ndarray:
    """``inverse(last_valid * inverse(extrinsic))``; identity without extrinsic."""
    if extrinsic_transform is None:
        return np.eye(4)
    camera_from_detected_ground = last_valid_transform @ invert_transform(
        extrinsic_transform
    )
    return invert_transform(camera_from_detected_ground)


class TransformPublisher:
    """Emits the camera to calibrated ground transform on every frame.

    Without a pipeline, or before the pipeline has an extrinsic, the output
    is the identity.
    """

    def __init__(
        self,
        pipeline: CalibrationPipeline | None,
        broadcaster: TransformBroadcaster,
        camera_frame: str = "camera_depth_optical_frame",
        result_frame: str = "ground_plane_frame",
        camera_model: CameraModel | None = None,
        visualizer: VisualizerInterface | None = None,
        logger: LoggerType | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.broadcaster = broadcaster
        self.camera_frame = camera_frame
        self.result_frame = result_frame
        self.camera_model = camera_model
        self.visualizer = visualizer
        self.logger = logger or Logger.get_logger("calibration.publisher")

    def publish(self, stamp: float, debug: bool = False) -> np.ndarray:
        """Broadcast and return the current output transform."""
        if self.pipeline is None:
            extrinsic, state = None, CalibrationState()
        else:
            extrinsic, state = self.pipeline.snapshot()
        transform = output_transform(
            state.last_valid_transform,
            extrinsic.transform if extrinsic is not None else None,
        )
        self.broadcaster.send(
            StampedTransform(self.camera_frame, self.result_frame, transform, stamp)
        )

        if debug and extrinsic is not None:
            self.broadcaster.send(
                StampedTransform(
                    self.camera_frame,
                    "detected_ground",
                    np.array(state.last_valid_transform),
                    stamp,
                )
            )
            camera = self.camera_model.get_parameters() if self.camera_model else None
            if self.visualizer is not None and camera is not None:
                self.visualizer.publish_cloud(
                    "debug/calibrated_plane", state.last_valid_transform, camera
                )
        return transform


__all__ = [
    "StampedTransform",
    "TransformBroadcaster",
    "TransformPublisher",
    "output_transform",
]
