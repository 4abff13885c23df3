# cli/plane_calibration.py
"""Offline replay of the ground-plane calibration and plane synthesis."""

from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

import numpy as np

from calibration.extrinsics import TransformBuffer
from calibration.node import PlaneCalibrationNode
from calibration.pipeline import AngleChange
from calibration.publisher import StampedTransform
from geometry.camera_model import CameraParameters
from geometry.plane_projection import PlaneProjector
from utils.cli import Command, CommandDispatcher
from utils.config import ConfigStore, load_config
from utils.io import (
    depth_to_colormap,
    list_depth_frames,
    load_depth,
    load_extrinsics,
    save_npy,
    write_image,
)
from utils.logger import Logger
from utils.math_utils import axis_rotation, make_transform, tilt_rotation
from utils.settings import DEPTH_EXT, IMAGE_EXT, paths
from vision.visualizer import DepthVisualizer, NullVisualizer


def _add_camera_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--fx", type=float, default=500.0)
    parser.add_argument("--fy", type=float, default=500.0)
    parser.add_argument("--cx", type=float, default=None, help="Default: width / 2")
    parser.add_argument("--cy", type=float, default=None, help="Default: height / 2")


def _camera_from_args(args: argparse.Namespace) -> CameraParameters:
    return CameraParameters(
        center_x=args.cx if args.cx is not None else args.width / 2.0,
        center_y=args.cy if args.cy is not None else args.height / 2.0,
        focal_x=args.fx,
        focal_y=args.fy,
        width=args.width,
        height=args.height,
    )


def _matrix_str(T: np.ndarray) -> str:
    return np.array2string(T, precision=4, suppress_small=True)


# ----------------------------------------------------------------------
def add_replay_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("data_dir", type=Path, help=f"Directory of *{DEPTH_EXT} depth frames")
    parser.add_argument("--config", type=Path, default=paths.DEFAULT_CONFIG)
    parser.add_argument(
        "--depth-scale",
        type=float,
        default=0.001,
        help="Meters per unit for integer depth frames",
    )
    parser.add_argument(
        "--extrinsics",
        type=Path,
        default=None,
        help="JSON with R/t of <camera_frame>_to_<ground_frame>; disables the manual transform",
    )
    parser.add_argument("--debug-dir", type=Path, default=None)
    _add_camera_args(parser)


def run_replay(args: argparse.Namespace) -> int:
    logger = Logger.get_logger("cli.plane_calibration.replay")
    store = ConfigStore(load_config(args.config))
    cfg = store.config

    lookup = None
    if args.extrinsics is not None:
        R, t = load_extrinsics(args.extrinsics, cfg.camera_depth_frame, cfg.ground_frame)
        lookup = TransformBuffer()
        lookup.set_transform(cfg.ground_frame, cfg.camera_depth_frame, make_transform(R, t))
        store.update(use_manual_ground_transform=False)

    frames = list_depth_frames(args.data_dir)
    if not frames:
        logger.error(f"No depth frames in {args.data_dir}")
        return 1

    period = 1.0 / cfg.calibration_rate if cfg.calibration_rate > 0 else 1.0
    clock_time = [0.0]
    visualizer = DepthVisualizer(args.debug_dir) if args.debug_dir else NullVisualizer()
    node = PlaneCalibrationNode(
        store, lookup=lookup, visualizer=visualizer, clock=lambda: clock_time[0]
    )

    changes: list[AngleChange] = []
    node.add_angle_listener(changes.append)

    def _log_transform(stamped: StampedTransform) -> None:
        logger.debug(
            f"{stamped.parent} -> {stamped.child} @ {stamped.stamp:.2f}:\n"
            f"{_matrix_str(stamped.transform)}"
        )

    node.broadcaster.add_sink(_log_transform)
    node.on_camera_info(_camera_from_args(args))

    outcomes: dict[str, int] = {}
    for idx, path in enumerate(Logger.progress(frames, desc="Frames")):
        clock_time[0] = idx * period
        depth = load_depth(path, args.depth_scale)
        result = node.on_depth_image(depth)
        key = "skipped" if result is None else result.reason.value
        if result is not None and result.committed:
            key = "committed"
        outcomes[key] = outcomes.get(key, 0) + 1

    logger.info(f"Processed {len(frames)} frames: {outcomes}")
    for change in changes:
        logger.info(f"Angle update {change}")
    latest = node.broadcaster.latest(store.config.result_frame)
    if latest is not None:
        logger.info(f"Final transform:\n{_matrix_str(latest.transform)}")
    log_file = Logger.get_log_file()
    if log_file is not None:
        logger.info(f"Log written to {log_file}")
    return 0


# ----------------------------------------------------------------------
def add_synthesize_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("out", type=Path, help="Output file stem")
    parser.add_argument("--offset", type=float, nargs=3, default=[0.0, 0.0, 1.0])
    parser.add_argument("--px", type=float, default=0.0, help="Base pitch [degree]")
    parser.add_argument("--py", type=float, default=0.0, help="Base roll [degree]")
    parser.add_argument("--pz", type=float, default=0.0, help="Base yaw [degree]")
    parser.add_argument("--pitch", type=float, default=0.0, help="Tilt about X [degree]")
    parser.add_argument("--roll", type=float, default=0.0, help="Tilt about Y [degree]")
    _add_camera_args(parser)


def run_synthesize(args: argparse.Namespace) -> None:
    logger = Logger.get_logger("cli.plane_calibration.synthesize")
    camera = _camera_from_args(args)
    base = axis_rotation(
        math.radians(args.px), math.radians(args.py), math.radians(args.pz)
    )
    rotation = tilt_rotation(base, math.radians(args.pitch), math.radians(args.roll))
    depth = PlaneProjector().convert(make_transform(rotation, args.offset), camera)

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    save_npy(out.with_suffix(DEPTH_EXT), depth)
    write_image(out.with_suffix(IMAGE_EXT), depth_to_colormap(depth))
    logger.info(f"Plane depth written to {out.with_suffix(DEPTH_EXT)}")


def create_cli() -> CommandDispatcher:
    return CommandDispatcher(
        "Ground-plane calibration tools",
        [
            Command("replay", run_replay, add_replay_args, "Replay recorded depth frames"),
            Command(
                "synthesize",
                run_synthesize,
                add_synthesize_args,
                "Write the depth image of a plane",
            ),
        ],
    )


def main() -> None:
    logger = Logger.get_logger("cli.plane_calibration")
    sys.exit(create_cli().run(logger=logger))


if __name__ == "__main__":
    main()
