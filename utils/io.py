"""File I/O helpers for depth frames, images and calibration data."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Tuple

import cv2
import numpy as np

from utils.settings import DEPTH_EXT


def load_json(path: str | Path) -> Any:
    """Load JSON data from ``path``."""
    with open(path, "r") as f:
        return json.load(f)


def save_json(path: str | Path, data: Any) -> None:
    """Write data as JSON to ``path``."""
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def load_npy(path: str | Path) -> np.ndarray:
    """Load an ``.npy`` array."""
    return np.load(path)


def save_npy(path: str | Path, arr: np.ndarray) -> None:
    """Save an array to an ``.npy`` file."""
    np.save(path, arr)


def load_depth(path: str | Path, depth_scale: float = 1.0) -> np.ndarray:
    """Load a depth frame as float32 meters; zero raw values become NaN."""
    depth = load_npy(path)
    if np.issubdtype(depth.dtype, np.integer):
        raw = depth
        depth = raw.astype(np.float32) * depth_scale
        depth[raw == 0] = np.nan
    return depth.astype(np.float32, copy=False)


def list_depth_frames(data_dir: str | Path) -> List[Path]:
    """Return sorted depth frame files in ``data_dir``."""
    return sorted(Path(data_dir).glob(f"*{DEPTH_EXT}"))


def load_extrinsics(
    json_path: str | Path, from_key: str, to_key: str
) -> Tuple[np.ndarray, np.ndarray]:
    """Return rotation matrix and translation vector from ``json_path``."""
    data = load_json(json_path)
    key = f"{from_key}_to_{to_key}"
    R = np.asarray(data[key]["R"], dtype=np.float64)
    t = np.asarray(data[key]["t"], dtype=np.float64)
    return R, t


def depth_to_colormap(depth: np.ndarray) -> np.ndarray:
    """Color-map a float depth image; invalid pixels are drawn black."""
    valid = np.isfinite(depth)
    d8 = np.zeros(depth.shape, dtype=np.uint8)
    if valid.any():
        filled = np.where(valid, depth, np.min(depth[valid])).astype(np.float32)
        d8 = cv2.normalize(filled, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    cimg = cv2.applyColorMap(d8, cv2.COLORMAP_JET)
    cimg[~valid] = 0
    return cimg


def write_image(path: str | Path, img: np.ndarray) -> None:
    """Save an image to disk."""
    cv2.imwrite(str(path), img)
