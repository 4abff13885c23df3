from .camera_model import CameraModel, CameraParameters
from .plane_projection import (
    PlaneErrors,
    PlaneProjector,
    depth_errors,
    plane_coefficients,
    ray_multipliers,
)
from .depth_projection import (
    backproject,
    height_above_ground,
    points_in_frame,
    valid_depth_mask,
)

__all__ = [
    "CameraModel",
    "CameraParameters",
    "PlaneErrors",
    "PlaneProjector",
    "depth_errors",
    "plane_coefficients",
    "ray_multipliers",
    "backproject",
    "height_above_ground",
    "points_in_frame",
    "valid_depth_mask",
]
