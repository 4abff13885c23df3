from __future__ import annotations
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

__all__ = [
    "axis_rotation",
    "tilt_rotation",
    "make_transform",
    "decompose_transform",
    "invert_transform",
    "rotations_equal",
]


def axis_rotation(rx: float, ry: float, rz: float = 0.0) -> Rotation:
    """Return ``Rx(rx) * Ry(ry) * Rz(rz)`` (radians, intrinsic order)."""
    return Rotation.from_euler("XYZ", [rx, ry, rz])


def tilt_rotation(base: Rotation, pitch: float, roll: float) -> Rotation:
    """Compose ``base`` with a pitch about X followed by a roll about Y."""
    return base * axis_rotation(pitch, roll)


def make_transform(R: np.ndarray | Rotation, t: np.ndarray) -> np.ndarray:
    """Build a homogeneous transform from ``R`` and ``t``."""
    if isinstance(R, Rotation):
        R = R.as_matrix()
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).flatten()
    return T


def decompose_transform(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return rotation matrix and translation vector from a transform."""
    return T[:3, :3], T[:3, 3]


def invert_transform(T: np.ndarray) -> np.ndarray:
    """Return the inverse of a homogeneous transform."""
    R, t = decompose_transform(T)
    R_inv = R.T
    t_inv = -R_inv @ t
    return make_transform(R_inv, t_inv)


def rotations_equal(a: Rotation, b: Rotation) -> bool:
    """Exact matrix comparison of two rotations."""
    return bool(np.array_equal(a.as_matrix(), b.as_matrix()))
