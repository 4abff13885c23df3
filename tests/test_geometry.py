import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
import threading

import numpy as np

from geometry.camera_model import CameraModel, CameraParameters
from geometry.depth_projection import (
    backproject,
    height_above_ground,
    points_in_frame,
    valid_depth_mask,
)
from utils.math_utils import axis_rotation
from tests.scenes import CAMERA, plane_depth


def test_camera_parameters_matrix_roundtrip():
    K = CAMERA.K
    assert np.allclose(K, [[500, 0, 320], [0, 500, 240], [0, 0, 1]])
    assert CameraParameters.from_matrix(K, 640, 480) == CAMERA
    assert CAMERA.shape == (480, 640)


def test_camera_model_replaced_wholesale():
    model = CameraModel()
    assert not model.ready
    model.update(10.0, 20.0, 30.0, 40.0, 50, 60)
    params = model.get_parameters()
    assert params == CameraParameters(10.0, 20.0, 30.0, 40.0, 50, 60)
    model.set_parameters(CAMERA)
    assert model.get_parameters() is CAMERA
    assert params.width == 50


def test_camera_model_concurrent_updates():
    model = CameraModel(CAMERA)
    other = CameraParameters(1.0, 1.0, 2.0, 2.0, 4, 3)
    seen = set()

    def writer():
        for _ in range(500):
            model.set_parameters(other)
            model.set_parameters(CAMERA)

    t = threading.Thread(target=writer)
    t.start()
    for _ in range(500):
        seen.add(model.get_parameters())
    t.join()
    assert seen <= {CAMERA, other}


def test_backproject_center_and_corner():
    depth = np.full((480, 640), 2.0, dtype=np.float32)
    points = backproject(depth, CAMERA)
    assert np.allclose(points[240, 320], [0.0, 0.0, 2.0])
    assert np.allclose(points[0, 0], [-320 / 500 * 2.0, -240 / 500 * 2.0, 2.0])


def test_valid_mask_excludes_nan_zero_and_far():
    depth = np.array([[np.nan, 0.0], [1.0, 4.0]], dtype=np.float32)
    assert valid_depth_mask(depth, 3.5).tolist() == [[False, False], [True, False]]


def test_points_in_frame_rotates_into_plane_frame():
    rotation = axis_rotation(0.3, 0.0)
    depth = plane_depth(base=rotation)
    points, mask = points_in_frame(depth, CAMERA, rotation.as_matrix(), 3.5)
    assert mask.all()
    assert np.allclose(points[..., 2], points[240, 320, 2], atol=1e-5)


def test_height_above_ground_signs():
    depth = plane_depth()
    depth[0, 0] = 0.9
    heights, mask = height_above_ground(depth, CAMERA, np.eye(3), -1.0, 3.5)
    assert heights.shape == (int(mask.sum()),)
    assert np.isclose(heights[0], -0.1, atol=1e-6)
    assert np.allclose(heights[1:], 0.0)
