"""Online ground-plane calibration of depth cameras."""

from .parameters import CalibrationParameters, Parameters
from .extrinsics import (
    ExtrinsicTransform,
    LookupTransformSource,
    ManualTransformSource,
    TransformBuffer,
)
from .interfaces import (
    AngleEstimator,
    DepthFilter,
    PlaneValidator,
    TransformSource,
    VisualizerInterface,
)
from .input_filter import InputFilter, InputFilterConfig
from .validation import CalibrationValidation, ValidationConfig
from .estimator import IterativeAngleEstimator
from .checks import height_consistency, precheck
from .pipeline import (
    AngleChange,
    CalibrationPipeline,
    CalibrationState,
    FrameResult,
    PipelineOptions,
    PipelineState,
    RejectReason,
)
from .publisher import StampedTransform, TransformBroadcaster, TransformPublisher
from .node import PlaneCalibrationNode

__all__ = [
    "CalibrationParameters",
    "Parameters",
    "ExtrinsicTransform",
    "LookupTransformSource",
    "ManualTransformSource",
    "TransformBuffer",
    "AngleEstimator",
    "DepthFilter",
    "PlaneValidator",
    "TransformSource",
    "VisualizerInterface",
    "InputFilter",
    "InputFilterConfig",
    "CalibrationValidation",
    "ValidationConfig",
    "IterativeAngleEstimator",
    "height_consistency",
    "precheck",
    "AngleChange",
    "CalibrationPipeline",
    "CalibrationState",
    "FrameResult",
    "PipelineOptions",
    "PipelineState",
    "RejectReason",
    "StampedTransform",
    "TransformBroadcaster",
    "TransformPublisher",
    "PlaneCalibrationNode",
]
