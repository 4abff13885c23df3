import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
import math

import numpy as np
import pytest

from geometry.camera_model import CameraParameters
from geometry.plane_projection import PlaneProjector, depth_errors, plane_coefficients
from utils.error_tracker import CameraModelError
from utils.math_utils import axis_rotation, make_transform
from tests.scenes import CAMERA


def test_flat_plane_depth_at_center():
    T = make_transform(np.eye(3), [0.0, 0.0, 1.0])
    depth = PlaneProjector().convert(T, CAMERA)
    assert depth.shape == (480, 640)
    assert depth.dtype == np.float32
    assert depth[240, 320] == pytest.approx(1.0)


def test_untilted_plane_is_constant_depth():
    T = make_transform(np.eye(3), [0.0, 0.0, 2.5])
    depth = PlaneProjector().convert(T, CAMERA)
    assert np.allclose(depth, 2.5)


def test_convert_is_bit_identical():
    projector = PlaneProjector()
    T = make_transform(axis_rotation(0.05, -0.03), [0.1, -0.2, 1.3])
    first = projector.convert(T, CAMERA)
    second = projector.convert(T, CAMERA)
    assert first.tobytes() == second.tobytes()
    assert PlaneProjector().convert(T, CAMERA).tobytes() == first.tobytes()


def test_tilted_plane_follows_ray_equation():
    pitch = math.radians(3.0)
    T = make_transform(axis_rotation(pitch, 0.0), [0.0, 0.0, 1.0])
    depth = PlaneProjector().convert(T, CAMERA)
    my = (0 - CAMERA.center_y) / CAMERA.focal_y
    assert depth[0, 320] == pytest.approx(1.0 / (1.0 - math.tan(pitch) * my), rel=1e-5)


def test_plane_coefficients_hesse_form():
    T = make_transform(np.eye(3), [0.0, 0.0, 1.5])
    a, b, c, d = plane_coefficients(T)
    assert (a, b, c) == pytest.approx((0.0, 0.0, 1.0))
    assert d == pytest.approx(-1.5)


def test_multipliers_recomputed_on_camera_change():
    projector = PlaneProjector()
    T = make_transform(np.eye(3), [0.0, 0.0, 1.0])
    small = CameraParameters(16.0, 12.0, 20.0, 20.0, 32, 24)
    assert projector.convert(T, CAMERA).shape == (480, 640)
    assert projector.convert(T, small).shape == (24, 32)


def test_errors_of_matching_and_offset_images():
    projector = PlaneProjector()
    T = make_transform(np.eye(3), [0.0, 0.0, 1.0])
    plane = projector.convert(T, CAMERA)
    errors = projector.get_errors(T, CAMERA, plane.copy())
    assert errors.mean == 0.0
    assert errors.valid_count == 640 * 480

    shifted = plane + np.float32(0.1)
    shifted[:10] = np.nan
    errors = projector.get_errors(T, CAMERA, shifted)
    assert errors.valid_count == 640 * 470
    assert errors.mean == pytest.approx(0.1, abs=1e-5)
    assert errors.min == 0.0
    assert errors.max == pytest.approx(0.1, abs=1e-5)


def test_all_nan_image_gives_nan_mean():
    projector = PlaneProjector()
    T = make_transform(np.eye(3), [0.0, 0.0, 1.0])
    depth = np.full((480, 640), np.nan, dtype=np.float32)
    errors = projector.get_errors(T, CAMERA, depth)
    assert errors.valid_count == 0
    assert not math.isfinite(errors.mean)


def test_depth_errors_direct():
    plane = np.array([[1.0, 2.0], [np.nan, 4.0]], dtype=np.float32)
    depth = np.array([[1.5, 2.0], [3.0, np.nan]], dtype=np.float32)
    errors = depth_errors(plane, depth)
    assert errors.valid_count == 2
    assert errors.mean == pytest.approx(0.25)
    assert errors.max == pytest.approx(0.5)


def test_invalid_intrinsics_rejected():
    with pytest.raises(CameraModelError):
        CameraParameters(320.0, 240.0, 0.0, 500.0, 640, 480)
    with pytest.raises(CameraModelError):
        CameraParameters(320.0, 240.0, 500.0, 500.0, 0, 480)
