import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from calibration.estimator import IterativeAngleEstimator, angles_from_coefficients, fit_plane
from calibration.parameters import CalibrationParameters
from geometry.camera_model import CameraModel
from utils.math_utils import axis_rotation
from tests.scenes import OFFSET, camera_model, plane_depth, with_box


def make_estimator(rotation=None, precompute=True):
    params = CalibrationParameters(
        max_deviation=math.radians(5.0),
        ground_plane_offset=OFFSET,
        rotation=rotation,
        precompute_planes=precompute,
        precomputed_plane_pairs_count=10,
    )
    return IterativeAngleEstimator(camera_model(), params), params


def test_fit_plane_coefficients():
    rng = np.random.default_rng(0)
    xy = rng.uniform(-1, 1, size=(200, 2))
    z = 0.1 * xy[:, 0] - 0.2 * xy[:, 1] + 3.0
    coeffs = fit_plane(np.column_stack([xy, z]))
    assert coeffs == pytest.approx([0.1, -0.2, 3.0])


def test_angles_from_coefficients_inverse_of_tilt():
    pitch, roll = math.radians(3.0), math.radians(-2.0)
    normal = axis_rotation(pitch, roll).apply([0.0, 0.0, 1.0])
    a, b = -normal[0] / normal[2], -normal[1] / normal[2]
    assert angles_from_coefficients(np.array([a, b, 0.0])) == pytest.approx((pitch, roll))


@pytest.mark.parametrize("precompute", [True, False])
def test_recovers_tilt(precompute):
    estimator, _ = make_estimator(precompute=precompute)
    pitch, roll = estimator.estimate(plane_depth(pitch_deg=2.0, roll_deg=-1.5), 10)
    assert pitch == pytest.approx(math.radians(2.0), abs=1e-4)
    assert roll == pytest.approx(math.radians(-1.5), abs=1e-4)


def test_recovers_tilt_around_rotated_base():
    base = axis_rotation(math.radians(20.0), 0.0)
    estimator, _ = make_estimator(rotation=base)
    depth = plane_depth(pitch_deg=-1.0, roll_deg=2.5, base=base)
    pitch, roll = estimator.estimate(depth, 10)
    assert pitch == pytest.approx(math.radians(-1.0), abs=1e-4)
    assert roll == pytest.approx(math.radians(2.5), abs=1e-4)


def test_outliers_are_discarded():
    estimator, _ = make_estimator()
    depth = with_box(plane_depth(pitch_deg=1.0), value=0.7)
    pitch, roll = estimator.estimate(depth, 10)
    assert pitch == pytest.approx(math.radians(1.0), abs=1e-4)
    assert roll == pytest.approx(0.0, abs=1e-4)


def test_estimate_clears_updated_flag():
    estimator, params = make_estimator()
    assert params.parameters_updated()
    estimator.estimate(plane_depth(), 1)
    assert not params.parameters_updated()


def test_too_few_points():
    estimator, _ = make_estimator()
    depth = np.full((480, 640), np.nan, dtype=np.float32)
    assert estimator.estimate(depth, 10) == (0.0, 0.0)


def test_no_camera():
    params = CalibrationParameters(max_deviation=0.1, ground_plane_offset=OFFSET)
    estimator = IterativeAngleEstimator(CameraModel(), params)
    assert estimator.estimate(plane_depth(), 10) == (0.0, 0.0)
