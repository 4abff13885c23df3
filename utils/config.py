# utils/config.py
"""Configuration loader with YAML backend and the live option store."""

from __future__ import annotations

import threading
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, cast

from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException

from utils.error_tracker import ConfigError
from utils.logger import Logger
from utils.settings import paths

DEFAULT_CONFIG_PATH = paths.DEFAULT_CONFIG
SECTION = "plane_calibration"


@dataclass(frozen=True)
class PlaneCalibrationConfig:
    """Live-reloadable options of the calibration node.

    Angles in option files are degrees; they are converted to radians where
    the options are applied.
    """

    enable: bool = True
    debug: bool = False
    calibration_rate: float = 1.0

    ground_frame: str = "base_footprint"
    camera_depth_frame: str = "camera_depth_optical_frame"
    result_frame: str = "ground_plane_frame"

    use_manual_ground_transform: bool = False
    always_update: bool = False
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    px_degree: float = 0.0
    py_degree: float = 0.0
    pz_degree: float = 0.0

    max_deviation_degrees: float = 5.0
    iterations: int = 10
    precompute_planes: bool = True
    precomputed_plane_pairs_count: int = 20

    input_max_nan_ratio: float = 0.5
    input_max_zero_ratio: float = 0.1
    input_min_data_ratio: float = 0.3
    input_max_noise: float = 0.02
    input_threshold_from_ground: float = 0.05

    plane_max_too_low_ratio: float = 0.05
    plane_max_mean: float = 0.05


class ConfigLoader:
    """Strategy interface for config loading."""

    def load(self, filename: str) -> Dict[str, Any]:
        raise NotImplementedError


class YamlConfigLoader(ConfigLoader):
    def load(self, filename: str) -> Dict[str, Any]:
        """Load YAML file and return plain ``dict`` data."""

        cfg = OmegaConf.load(filename)
        return cast(Dict[str, Any], OmegaConf.to_container(cfg, resolve=True))


def build_config(
    data: Dict[str, Any] | None, base: PlaneCalibrationConfig | None = None
) -> PlaneCalibrationConfig:
    """Merge ``data`` over ``base`` with type validation from the schema."""

    schema = OmegaConf.structured(base or PlaneCalibrationConfig())
    OmegaConf.set_readonly(schema, False)
    try:
        merged = OmegaConf.merge(schema, data or {})
        return cast(PlaneCalibrationConfig, OmegaConf.to_object(merged))
    except OmegaConfBaseException as exc:
        raise ConfigError(f"Invalid calibration options: {exc}") from exc


def load_config(
    filename: Path | str = DEFAULT_CONFIG_PATH,
    loader: ConfigLoader | None = None,
) -> PlaneCalibrationConfig:
    """Read the ``plane_calibration`` section of an option file."""

    logger = Logger.get_logger("utils.config")
    loader = loader or YamlConfigLoader()
    try:
        data = loader.load(str(filename))
    except (OSError, OmegaConfBaseException) as exc:
        logger.error(f"Failed to load config: {exc}")
        raise ConfigError(f"Cannot read {filename}: {exc}") from exc

    data = data or {}
    logging_cfg = data.get("logging")
    if logging_cfg:
        Logger.configure(
            level=logging_cfg.get("level"),
            log_dir=logging_cfg.get("log_dir"),
            json_format=logging_cfg.get("json"),
        )
    cfg = build_config(data.get(SECTION, {}))
    logger.info(f"Config loaded from {filename}")
    return cfg


Subscriber = Callable[[int, PlaneCalibrationConfig], None]


class ConfigStore:
    """Versioned option record, swapped atomically on every update.

    Consumers pull ``latest()`` at the top of an operation instead of reading
    fields from a shared mutable object.
    """

    def __init__(self, config: PlaneCalibrationConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._config = config or PlaneCalibrationConfig()
        self._version = 0
        self._subscribers: List[Subscriber] = []
        self.logger = Logger.get_logger("utils.config.store")

    def latest(self) -> Tuple[int, PlaneCalibrationConfig]:
        with self._lock:
            return self._version, self._config

    @property
    def config(self) -> PlaneCalibrationConfig:
        return self.latest()[1]

    def subscribe(self, callback: Subscriber) -> None:
        """Register ``callback``; it is called once with the current record."""
        with self._lock:
            self._subscribers.append(callback)
            version, config = self._version, self._config
        callback(version, config)

    def _swap(self, config: PlaneCalibrationConfig) -> Tuple[int, List[Subscriber]]:
        # caller holds the lock
        self._version += 1
        self._config = config
        return self._version, list(self._subscribers)

    def _notify(
        self, version: int, config: PlaneCalibrationConfig, subscribers: List[Subscriber]
    ) -> int:
        self.logger.debug(f"Options updated to version {version}")
        for callback in subscribers:
            callback(version, config)
        return version

    def replace(self, config: PlaneCalibrationConfig) -> int:
        """Swap in a complete record and notify subscribers."""
        with self._lock:
            version, subscribers = self._swap(config)
        return self._notify(version, config, subscribers)

    def update(self, **changes: Any) -> int:
        """Replace the named options; unknown names raise ``ConfigError``."""
        known = {f.name for f in fields(PlaneCalibrationConfig)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigError(f"Unknown options: {', '.join(unknown)}")
        with self._lock:
            config = build_config(changes, base=self._config)
            version, subscribers = self._swap(config)
        return self._notify(version, config, subscribers)

    def reload(self, filename: Path | str = DEFAULT_CONFIG_PATH) -> int:
        return self.replace(load_config(filename))


__all__ = [
    "PlaneCalibrationConfig",
    "ConfigLoader",
    "YamlConfigLoader",
    "ConfigStore",
    "build_config",
    "load_config",
]
