"""Thread-safe store of the current extrinsic ground-plane calibration."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from utils.math_utils import make_transform


def _vector(value) -> np.ndarray:
    vec = np.array(value, dtype=np.float64).reshape(3)
    return vec


def _check_deviation(value: float) -> float:
    value = float(value)
    if value < 0.0:
        raise ValueError(f"Deviation must not be negative, got {value}")
    return value


@dataclass
class Parameters:
    """One consistent snapshot of the calibration record.

    - ground_plane_offset: sensor origin to ground reference (sensor frame).
    - rotation: ground plane orientation relative to the sensor.
    - max_deviation / deviation: angular tolerance in radians.
    - precompute_planes / precomputed_plane_pairs_count: estimator hints.
    - version: incremented by every mutation of the store.
    """

    ground_plane_offset: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: Rotation = field(default_factory=Rotation.identity)
    max_deviation: float = 0.0
    deviation: float = 0.0
    precompute_planes: bool = True
    precomputed_plane_pairs_count: int = 20
    version: int = 0

    def get_transform(self) -> np.ndarray:
        """``translation(ground_plane_offset) * rotation`` as a 4x4 matrix."""
        return make_transform(self.rotation, self.ground_plane_offset)

    def copy(self) -> "Parameters":
        return Parameters(
            ground_plane_offset=self.ground_plane_offset.copy(),
            rotation=copy.deepcopy(self.rotation),
            max_deviation=self.max_deviation,
            deviation=self.deviation,
            precompute_planes=self.precompute_planes,
            precomputed_plane_pairs_count=self.precomputed_plane_pairs_count,
            version=self.version,
        )


class CalibrationParameters:
    """Calibration record plus an "updated since last read" flag.

    Every accessor copies the record in or out under one lock, so readers
    never see a partially applied mutation. Each mutator marks the record as
    updated; only :meth:`get_updated_parameters` clears the mark.
    """

    def __init__(
        self,
        max_deviation: float = 0.0,
        ground_plane_offset=None,
        rotation: Rotation | None = None,
        precompute_planes: bool = True,
        precomputed_plane_pairs_count: int = 20,
    ) -> None:
        max_deviation = _check_deviation(max_deviation)
        self._lock = threading.Lock()
        self._parameters = Parameters(
            ground_plane_offset=_vector(
                ground_plane_offset if ground_plane_offset is not None else np.zeros(3)
            ),
            rotation=copy.deepcopy(rotation) if rotation is not None else Rotation.identity(),
            max_deviation=max_deviation,
            deviation=max_deviation,
            precompute_planes=bool(precompute_planes),
            precomputed_plane_pairs_count=int(precomputed_plane_pairs_count),
        )
        self._updated = True

    def _touch(self) -> None:
        # caller holds the lock
        self._parameters.version += 1
        self._updated = True

    # ------------------------------------------------------------------
    def get_updated_parameters(self) -> Tuple[bool, Parameters]:
        """Return ``(was_updated, snapshot)`` and clear the updated mark."""
        with self._lock:
            updated = self._updated
            snapshot = self._parameters.copy()
            self._updated = False
        return updated, snapshot

    def get_parameters(self) -> Parameters:
        with self._lock:
            return self._parameters.copy()

    def parameters_updated(self) -> bool:
        with self._lock:
            return self._updated

    def get_transform(self) -> np.ndarray:
        with self._lock:
            return self._parameters.get_transform()

    # ------------------------------------------------------------------
    def update(self, ground_plane_offset, rotation: Rotation) -> None:
        """Replace offset and rotation together; resets the working deviation."""
        offset = _vector(ground_plane_offset)
        rotation = copy.deepcopy(rotation)
        with self._lock:
            self._parameters.ground_plane_offset = offset
            self._parameters.rotation = rotation
            self._parameters.deviation = self._parameters.max_deviation
            self._touch()

    def update_offset(self, ground_plane_offset) -> None:
        offset = _vector(ground_plane_offset)
        with self._lock:
            self._parameters.ground_plane_offset = offset
            self._touch()

    def update_rotation(self, rotation: Rotation) -> None:
        rotation = copy.deepcopy(rotation)
        with self._lock:
            self._parameters.rotation = rotation
            self._touch()

    def update_deviations(self, value: float) -> None:
        """Set both the maximum and the working deviation."""
        value = _check_deviation(value)
        with self._lock:
            self._parameters.max_deviation = value
            self._parameters.deviation = value
            self._touch()

    def update_deviation(self, value: float) -> None:
        """Set only the working deviation."""
        value = _check_deviation(value)
        with self._lock:
            self._parameters.deviation = value
            self._touch()

    def update_precomputation(self, enable: bool, plane_pair_count: int) -> None:
        with self._lock:
            self._parameters.precompute_planes = bool(enable)
            self._parameters.precomputed_plane_pairs_count = int(plane_pair_count)
            self._touch()

    def replace(self, parameters: Parameters) -> None:
        """Replace the whole record."""
        _check_deviation(parameters.max_deviation)
        _check_deviation(parameters.deviation)
        record = parameters.copy()
        with self._lock:
            record.version = self._parameters.version
            self._parameters = record
            self._touch()
