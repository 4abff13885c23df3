# vision/visualizer.py
"""Debug sinks for intermediate depth images and plane clouds."""

from __future__ import annotations

import re
import threading
from pathlib import Path

import numpy as np

from calibration.interfaces import VisualizerInterface
from geometry.camera_model import CameraParameters
from geometry.depth_projection import backproject
from geometry.plane_projection import PlaneProjector
from utils.io import depth_to_colormap, save_npy, write_image
from utils.logger import Logger, LoggerType
from utils.settings import IMAGE_EXT, paths


def _file_stem(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name.strip("/"))


class NullVisualizer(VisualizerInterface):
    """Discards everything."""

    def publish_image(self, name: str, data: np.ndarray) -> None:
        pass

    def publish_cloud(
        self, name: str, plane_transform: np.ndarray, camera: CameraParameters
    ) -> None:
        pass


class DepthVisualizer(VisualizerInterface):
    """Write debug outputs to ``out_dir``.

    Images become color-mapped PNGs (plus the raw array when ``keep_raw``),
    plane clouds become PLY files. Each name overwrites its previous file.
    """

    def __init__(
        self,
        out_dir: str | Path = paths.DEBUG_DIR,
        keep_raw: bool = False,
        max_range: float = 3.5,
        projector: PlaneProjector | None = None,
        logger: LoggerType | None = None,
    ) -> None:
        self.out_dir = Path(out_dir)
        self.keep_raw = keep_raw
        self.max_range = max_range
        self.projector = projector or PlaneProjector()
        self.logger = logger or Logger.get_logger("vision.visualizer")
        self._lock = threading.Lock()
        self._camera: CameraParameters | None = None

    def set_camera_model(self, camera: CameraParameters) -> None:
        with self._lock:
            self._camera = camera

    def publish_image(self, name: str, data: np.ndarray) -> None:
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            stem = _file_stem(name)
            image = np.asarray(data, dtype=np.float32)
            write_image(self.out_dir / f"{stem}{IMAGE_EXT}", depth_to_colormap(image))
            if self.keep_raw:
                save_npy(self.out_dir / f"{stem}.npy", image)
        except Exception as e:
            self.logger.error(f"Failed to publish image {name}: {e}")

    def plane_points(
        self, plane_transform: np.ndarray, camera: CameraParameters
    ) -> np.ndarray:
        """Camera-space points of the synthesized plane within range."""
        depth = self.projector.convert(plane_transform, camera)
        with np.errstate(invalid="ignore"):
            valid = np.isfinite(depth) & (depth > 0) & (depth <= self.max_range)
        return backproject(depth, camera)[valid]

    def publish_cloud(
        self, name: str, plane_transform: np.ndarray, camera: CameraParameters
    ) -> None:
        try:
            import open3d as o3d

            points = self.plane_points(plane_transform, camera)
            pcd = o3d.geometry.PointCloud()
            pcd.points = o3d.utility.Vector3dVector(points)
            self.out_dir.mkdir(parents=True, exist_ok=True)
            path = self.out_dir / f"{_file_stem(name)}.ply"
            o3d.io.write_point_cloud(str(path), pcd)
            self.logger.debug(f"Saved {len(points)} points to {path}")
        except Exception as e:
            self.logger.error(f"Failed to publish cloud {name}: {e}")


__all__ = ["DepthVisualizer", "NullVisualizer"]
