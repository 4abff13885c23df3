"""Project wide configuration dataclasses and default values."""

from dataclasses import dataclass
from pathlib import Path
import math

# Root dir
BASE_DIR = Path(__file__).resolve().parent.parent

# Depth frames are stored as float32 meters in .npy files
DEPTH_EXT = ".npy"
IMAGE_EXT = ".png"


@dataclass(frozen=True)
class Paths:
    """
    Dataclass aggregating all important filesystem paths used in the project.
    """

    CONF_DIR: Path = BASE_DIR / "conf"
    DEFAULT_CONFIG: Path = CONF_DIR / "plane_calibration.yaml"
    DEBUG_DIR: Path = BASE_DIR / ".debug"
    LOG_DIR: Path = BASE_DIR / ".logs"


paths = Paths()


@dataclass(frozen=True)
class LoggingCfg:
    """
    Logging configuration for the project.

    - level: Log level ("INFO", "DEBUG", etc.)
    - level_env: Environment variable overriding ``level``.
    - json: Enable/disable structured JSON logging.
    - to_file: Also write a timestamped log file into ``log_dir``.
    - log_dir: Directory where log files are stored.
    - throttle_period: Seconds between repeats of a throttled message.
    - log_format: Console log output format.
    - log_file_format: File log output format.
    - progress_bar_format: TQDM progress bar format.
    """

    level: str = "INFO"
    level_env: str = "PLANE_CALIBRATION_LOG_LEVEL"
    json: bool = False
    to_file: bool = True
    log_dir: Path = Path(".logs")
    throttle_period: float = 5.0
    log_format: str = (
        "<green>{time:MM-DD HH:mm:ss}</green>"
        "[<level>{level:.3}</level>]"
        "[<cyan>{extra[module]:.24}</cyan>:<cyan>{line:<3}</cyan>]"
        "<level>{message}</level>"
    )
    log_file_format: str = "{time:YYYY-MM-DD HH:mm:ss}[{level}][{file}:{line}]{message}"
    progress_bar_format: str = (
        "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
    )


logging = LoggingCfg()


@dataclass(frozen=True)
class PlaneCheckCfg:
    """
    Empirically tuned thresholds of the calibration gates.

    Pre-check (raw depth, current calibration frame):
    - max_range: depth beyond this (meters) is ignored.
    - stride: pixel offset of the finite differences.
    - steep_slope: |dz| / |dxy| above this marks a steep sample (~10 deg).
    - min_valid_samples: frames with fewer difference samples are skipped.
    - max_avg_slope: limit of the mean slope ratio per image axis.
    - max_avg_steep_slope: limit of the mean slope ratio of steep samples.
    - min_steep_samples: axes with this many steep samples or fewer are exempt.

    Candidate checks:
    - max_angle_change: per-frame jump (degrees) reported as a discontinuity.
    - height_threshold: |height above ground| (meters) of an obstacle pixel.
    - max_obstacle_pixels: more obstacle pixels than this reject a candidate.
    """

    max_range: float = 3.5
    stride: int = 2
    steep_slope: float = math.tan(0.17453)
    min_valid_samples: int = 40000
    max_avg_slope: float = 0.13
    max_avg_steep_slope: float = 0.32
    min_steep_samples: int = 10
    max_angle_change: float = 0.8
    height_threshold: float = 0.04
    max_obstacle_pixels: int = 10


plane_check = PlaneCheckCfg()


@dataclass(frozen=True)
class EstimatorCfg:
    """
    Defaults of the reference plane-angle estimator.

    - min_points: fewer valid points than this yield a zero correction.
    - residual_factor: inliers keep residuals below factor * median residual.
    - min_residual: residual floor (meters) so a perfect fit keeps its points.
    - sample_step: pixel subsampling of the depth image.
    """

    min_points: int = 500
    residual_factor: float = 3.0
    min_residual: float = 0.005
    sample_step: int = 2


estimator = EstimatorCfg()

__all__ = [
    "Paths",
    "LoggingCfg",
    "PlaneCheckCfg",
    "EstimatorCfg",
    "DEPTH_EXT",
    "IMAGE_EXT",
    "paths",
    "logging",
    "plane_check",
    "estimator",
]
