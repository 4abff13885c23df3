import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
import math
from dataclasses import dataclass, field

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from calibration.estimator import IterativeAngleEstimator
from calibration.extrinsics import ExtrinsicTransform
from calibration.input_filter import InputFilter
from calibration.interfaces import AngleEstimator, DepthFilter
from calibration.parameters import CalibrationParameters
from calibration.pipeline import (
    CalibrationPipeline,
    PipelineOptions,
    PipelineState,
    RejectReason,
)
from calibration.validation import CalibrationValidation
from utils.settings import PlaneCheckCfg
from tests.scenes import OFFSET, camera_model, plane_depth, with_box


@dataclass
class StubFilter(DepthFilter):
    usable: bool = True

    def filter(self, depth):
        pass

    def is_usable(self, depth):
        return self.usable


@dataclass
class CountingEstimator(AngleEstimator):
    parameters: CalibrationParameters
    result: tuple = (0.0, 0.0)
    calls: int = 0
    iterations: list = field(default_factory=list)

    def estimate(self, depth, iterations):
        self.calls += 1
        self.iterations.append(iterations)
        self.parameters.get_updated_parameters()
        return self.result


def make_pipeline(
    estimator=None,
    depth_filter=None,
    options=None,
    check_cfg=PlaneCheckCfg(),
    reset=True,
):
    camera = camera_model()
    params = CalibrationParameters(max_deviation=math.radians(5.0))
    pipeline = CalibrationPipeline(
        camera,
        params,
        depth_filter or StubFilter(),
        estimator or CountingEstimator(params),
        CalibrationValidation(params),
        options=options,
        check_cfg=check_cfg,
    )
    if reset:
        pipeline.reset(ExtrinsicTransform(OFFSET, Rotation.identity()))
    return pipeline


def make_reference_pipeline():
    camera = camera_model()
    params = CalibrationParameters(max_deviation=math.radians(5.0))
    pipeline = CalibrationPipeline(
        camera,
        params,
        InputFilter(camera, params),
        IterativeAngleEstimator(camera, params),
        CalibrationValidation(params),
    )
    pipeline.reset(ExtrinsicTransform(OFFSET, Rotation.identity()))
    return pipeline


def test_awaiting_inputs_without_extrinsic():
    pipeline = make_pipeline(reset=False)
    result = pipeline.run(plane_depth())
    assert result.state is PipelineState.AWAITING_INPUTS
    assert pipeline.estimator.calls == 0


def test_flat_frame_commits_with_reference_collaborators():
    pipeline = make_reference_pipeline()
    result = pipeline.run(plane_depth())
    assert result.committed
    state = pipeline.state
    assert state.last_valid_result == pytest.approx((0.0, 0.0), abs=1e-6)
    assert state.last_valid_plane is not None
    assert np.allclose(state.last_valid_plane, 1.0)


def test_tilted_frame_commits_estimated_angles():
    pipeline = make_reference_pipeline()
    result = pipeline.run(plane_depth(pitch_deg=2.0, roll_deg=-1.0))
    assert result.committed
    pitch, roll = pipeline.state.last_valid_result
    assert pitch == pytest.approx(math.radians(2.0), abs=2e-4)
    assert roll == pytest.approx(math.radians(-1.0), abs=2e-4)


def test_hysteresis_skips_second_identical_frame():
    pipeline = make_pipeline()
    depth = plane_depth()
    assert pipeline.run(depth).committed
    assert pipeline.estimator.calls == 1

    result = pipeline.run(depth)
    assert result.reason is RejectReason.STILL_VALID
    assert pipeline.estimator.calls == 1


def test_parameter_update_defeats_hysteresis():
    pipeline = make_pipeline()
    depth = plane_depth()
    pipeline.run(depth)
    pipeline.parameters.update_deviation(math.radians(4.0))
    assert pipeline.run(depth).committed
    assert pipeline.estimator.calls == 2


def test_data_below_defeats_hysteresis():
    pipeline = make_pipeline()
    pipeline.run(plane_depth())
    lowered = np.full((480, 640), 1.2, dtype=np.float32)
    pipeline.run(lowered)
    assert pipeline.estimator.calls == 2


def test_always_update_bypasses_hysteresis():
    pipeline = make_pipeline(options=PipelineOptions(always_update=True, iterations=3))
    depth = plane_depth()
    pipeline.run(depth)
    pipeline.run(depth)
    assert pipeline.estimator.calls == 2
    assert pipeline.estimator.iterations == [3, 3]


def test_extrinsic_change_resets_state():
    pipeline = make_pipeline()
    depth = plane_depth()
    pipeline.estimator.result = (math.radians(1.0), 0.0)
    assert pipeline.run(depth).committed

    same = ExtrinsicTransform(OFFSET.copy(), Rotation.identity())
    assert not pipeline.update_extrinsic(same)
    assert pipeline.state.last_valid_plane is not None

    moved = ExtrinsicTransform(np.array([0.0, 0.0, 1.1]), Rotation.identity())
    assert pipeline.update_extrinsic(moved)
    state = pipeline.state
    assert state.last_valid_plane is None
    assert state.last_valid_result == (0.0, 0.0)
    assert np.allclose(state.last_valid_transform, moved.transform)
    assert np.allclose(pipeline.parameters.get_parameters().ground_plane_offset, [0, 0, 1.1])

    pipeline.estimator.result = (0.0, 0.0)
    pipeline.run(plane_depth(offset=[0.0, 0.0, 1.1]))
    assert pipeline.estimator.calls == 2


@pytest.mark.parametrize(
    "angles",
    [(math.radians(6.0), 0.0), (0.0, -math.radians(6.0)), (-0.2, 0.2)],
)
def test_excessive_angles_rejected(angles):
    pipeline = make_pipeline()
    pipeline.estimator.result = angles
    before = pipeline.state
    result = pipeline.run(plane_depth())
    assert result.reason is RejectReason.ANGLE_DEVIATION
    assert pipeline.state.last_valid_plane is None
    assert pipeline.state.last_valid_result == before.last_valid_result


def test_rejections_keep_accepted_state():
    pipeline = make_pipeline(options=PipelineOptions(always_update=True))
    pipeline.run(plane_depth())
    accepted = pipeline.state
    pipeline.estimator.result = (0.5, 0.0)
    pipeline.run(plane_depth())
    state = pipeline.state
    assert state.last_valid_result == accepted.last_valid_result
    assert state.last_valid_plane is accepted.last_valid_plane
    assert np.array_equal(state.last_valid_transform, accepted.last_valid_transform)


def test_discontinuity_is_only_a_warning():
    pipeline = make_pipeline(options=PipelineOptions(always_update=True))
    depth = plane_depth()
    assert pipeline.run(depth).committed

    pipeline.estimator.result = (0.02, 0.0)
    result = pipeline.run(depth)
    assert result.committed
    assert result.discontinuity

    pipeline.estimator.result = (0.021, 0.0)
    result = pipeline.run(depth)
    assert result.committed
    assert not result.discontinuity


def test_discontinuity_compares_with_last_raw_result():
    pipeline = make_pipeline(options=PipelineOptions(always_update=True))
    pipeline.estimator.result = (0.02, 0.0)
    pipeline.run(with_box(plane_depth()))
    assert pipeline.state.last_raw_result == (0.0, 0.0)

    pipeline = make_pipeline(
        options=PipelineOptions(always_update=True),
        check_cfg=PlaneCheckCfg(max_avg_steep_slope=1e9),
    )
    pipeline.estimator.result = (0.02, 0.0)
    result = pipeline.run(with_box(plane_depth()))
    assert result.reason is RejectReason.OBSTACLES
    assert result.discontinuity
    assert pipeline.state.last_raw_result == (0.02, 0.0)


def test_obstacle_rejected_by_height_check():
    pipeline = make_pipeline(check_cfg=PlaneCheckCfg(max_avg_steep_slope=1e9))
    result = pipeline.run(with_box(plane_depth()))
    assert result.reason is RejectReason.OBSTACLES
    assert pipeline.estimator.calls == 1
    assert pipeline.state.last_valid_plane is None


def test_steep_scene_rejected_before_estimation():
    pipeline = make_pipeline()
    result = pipeline.run(with_box(plane_depth()))
    assert result.reason is RejectReason.STEEP_SLOPE
    assert pipeline.estimator.calls == 0


def test_sloped_scene_rejected():
    pipeline = make_pipeline()
    result = pipeline.run(plane_depth(pitch_deg=20.0))
    assert result.reason is RejectReason.SLOPE


def test_unusable_input_rejected():
    pipeline = make_pipeline(depth_filter=StubFilter(usable=False))
    result = pipeline.run(plane_depth())
    assert result.reason is RejectReason.UNUSABLE_INPUT
    assert pipeline.estimator.calls == 0


def test_shape_mismatch_rejected():
    pipeline = make_pipeline()
    result = pipeline.run(np.ones((240, 320), dtype=np.float32))
    assert result.reason is RejectReason.SHAPE_MISMATCH


def test_commit_notifies_listeners():
    pipeline = make_pipeline(options=PipelineOptions(always_update=True))
    changes = []

    def broken(change):
        raise RuntimeError("listener failure")

    pipeline.add_listener(broken)
    pipeline.add_listener(changes.append)
    pipeline.estimator.result = (math.radians(1.0), math.radians(-0.5))
    assert pipeline.run(plane_depth()).committed
    pipeline.estimator.result = (math.radians(0.5), 0.0)
    assert pipeline.run(plane_depth()).committed

    assert len(changes) == 2
    first, second = changes
    assert (first.previous_pitch, first.previous_roll) == (0.0, 0.0)
    assert first.pitch == pytest.approx(1.0)
    assert first.roll == pytest.approx(-0.5)
    assert second.previous_pitch == pytest.approx(1.0)
    assert "px [degree]" in str(second)


def test_input_is_not_modified():
    pipeline = make_reference_pipeline()
    depth = plane_depth()
    depth[0, 0] = 0.2
    original = depth.copy()
    pipeline.run(depth)
    assert np.array_equal(depth, original, equal_nan=True)
