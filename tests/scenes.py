"""Synthetic depth scenes shared by the tests."""

import math

import numpy as np
from scipy.spatial.transform import Rotation

from geometry.camera_model import CameraModel, CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.math_utils import make_transform, tilt_rotation

CAMERA = CameraParameters(
    center_x=320.0, center_y=240.0, focal_x=500.0, focal_y=500.0, width=640, height=480
)
OFFSET = np.array([0.0, 0.0, 1.0])


def camera_model() -> CameraModel:
    return CameraModel(CAMERA)


def plane_depth(
    pitch_deg: float = 0.0,
    roll_deg: float = 0.0,
    base: Rotation | None = None,
    offset=OFFSET,
) -> np.ndarray:
    base = base if base is not None else Rotation.identity()
    rotation = tilt_rotation(base, math.radians(pitch_deg), math.radians(roll_deg))
    return PlaneProjector().convert(make_transform(rotation, offset), CAMERA)


def with_box(depth: np.ndarray, value: float = 0.9) -> np.ndarray:
    """Place a 60x60 pixel block at constant depth ``value`` in the middle."""
    depth = depth.copy()
    depth[200:260, 300:360] = value
    return depth
