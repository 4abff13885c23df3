"""Sensor extrinsic transforms and the sources that resolve them."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from utils.config import ConfigStore
from utils.error_tracker import TransformLookupError
from utils.logger import Logger, LoggerType
from utils.math_utils import axis_rotation, invert_transform, make_transform

from .interfaces import TransformSource

_Z_AXIS = np.array([0.0, 0.0, 1.0])


@dataclass(frozen=True, eq=False)
class ExtrinsicTransform:
    """Offset from the sensor to the ground reference plus the ground plane
    orientation, both expressed in the sensor frame."""

    offset: np.ndarray
    rotation: Rotation

    def __post_init__(self) -> None:
        offset = np.array(self.offset, dtype=np.float64).reshape(3)
        offset.setflags(write=False)
        object.__setattr__(self, "offset", offset)

    @property
    def transform(self) -> np.ndarray:
        """``translation(offset) * rotation`` as a 4x4 matrix."""
        return make_transform(self.rotation, self.offset)

    @property
    def sensor_height(self) -> float:
        """Height of the sensor above the ground plane it describes.

        A ground point ``p`` satisfies ``(R.T @ p)_z == -sensor_height``.
        """
        return float(-(self.rotation.as_matrix().T @ self.offset)[2])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExtrinsicTransform):
            return NotImplemented
        return bool(
            np.array_equal(self.offset, other.offset)
            and np.array_equal(self.rotation.as_matrix(), other.rotation.as_matrix())
        )

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None


class ManualTransformSource(TransformSource):
    """Extrinsic from the manual ``x, y, z`` and ``p*_degree`` options."""

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def resolve(self) -> ExtrinsicTransform:
        cfg = self.store.config
        rotation = axis_rotation(
            math.radians(cfg.px_degree),
            math.radians(cfg.py_degree),
            math.radians(cfg.pz_degree),
        )
        return ExtrinsicTransform(np.array([cfg.x, cfg.y, cfg.z]), rotation)


Lookup = Callable[[str, str], np.ndarray]


class LookupTransformSource(TransformSource):
    """Extrinsic derived from a ``ground <- camera`` transform lookup.

    ``lookup(target_frame, source_frame)`` returns the 4x4 transform mapping
    camera coordinates into the ground frame. The ground reference is the
    point where the optical axis meets the ground plane.
    """

    def __init__(
        self,
        lookup: Lookup,
        store: ConfigStore,
        logger: LoggerType | None = None,
    ) -> None:
        self.lookup = lookup
        self.store = store
        self.logger = logger or Logger.get_logger("calibration.extrinsics")

    def resolve(self) -> ExtrinsicTransform:
        cfg = self.store.config
        try:
            T = np.asarray(
                self.lookup(cfg.ground_frame, cfg.camera_depth_frame), dtype=np.float64
            )
        except TransformLookupError:
            raise
        except LookupError as exc:
            raise TransformLookupError(
                f"No transform {cfg.ground_frame} <- {cfg.camera_depth_frame}: {exc}"
            ) from exc
        if T.shape != (4, 4):
            raise TransformLookupError(f"Expected a 4x4 transform, got {T.shape}")

        sensor_height = T[2, 3]
        z_component = (T[:3, :3] @ _Z_AXIS)[2]
        if abs(z_component) < 1e-9:
            raise TransformLookupError("Sensor optical axis is parallel to the ground")
        offset = (-sensor_height / z_component) * _Z_AXIS
        self.logger.debug(f"Sensor height from lookup: {sensor_height:.3f} m")
        rotation = Rotation.from_matrix(invert_transform(T)[:3, :3])
        return ExtrinsicTransform(offset, rotation)


class TransformBuffer:
    """In-memory store of named static transforms usable as a ``lookup``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._transforms: Dict[Tuple[str, str], np.ndarray] = {}

    def set_transform(self, target: str, source: str, T: np.ndarray) -> None:
        T = np.array(T, dtype=np.float64)
        with self._lock:
            self._transforms[(target, source)] = T

    def clear(self) -> None:
        with self._lock:
            self._transforms.clear()

    def __call__(self, target: str, source: str) -> np.ndarray:
        with self._lock:
            if (target, source) in self._transforms:
                return self._transforms[(target, source)].copy()
            if (source, target) in self._transforms:
                return invert_transform(self._transforms[(source, target)])
        raise TransformLookupError(f"Unknown transform {target} <- {source}")


__all__ = [
    "ExtrinsicTransform",
    "ManualTransformSource",
    "LookupTransformSource",
    "TransformBuffer",
]
