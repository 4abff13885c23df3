import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
import json

import numpy as np

from cli.plane_calibration import create_cli
from utils.io import save_npy
from tests.scenes import plane_depth


def test_synthesize_writes_depth_and_preview(tmp_path):
    out = tmp_path / "plane"
    create_cli().run(
        ["synthesize", str(out), "--pitch", "2", "--offset", "0", "0", "1.5"],
        track_exceptions=False,
    )
    depth = np.load(out.with_suffix(".npy"))
    assert depth.shape == (480, 640)
    assert abs(depth[240, 320] - 1.5) < 1e-5
    assert out.with_suffix(".png").exists()


def test_replay_runs_over_frames(tmp_path):
    frames = tmp_path / "frames"
    frames.mkdir()
    for idx, pitch in enumerate([0.0, 0.0, 1.0]):
        save_npy(frames / f"{idx:04d}.npy", plane_depth(pitch_deg=pitch))
    config = tmp_path / "options.yaml"
    config.write_text(
        "plane_calibration:\n"
        "  use_manual_ground_transform: true\n"
        "  z: 1.0\n"
    )
    create_cli().run(
        ["replay", str(frames), "--config", str(config), "--debug-dir", str(tmp_path / "dbg")],
        track_exceptions=False,
    )


def test_replay_with_extrinsics_file(tmp_path):
    frames = tmp_path / "frames"
    frames.mkdir()
    save_npy(frames / "0000.npy", plane_depth())
    config = tmp_path / "options.yaml"
    config.write_text("plane_calibration:\n  debug: true\n")
    extrinsics = tmp_path / "extrinsics.json"
    extrinsics.write_text(
        json.dumps(
            {
                "camera_depth_optical_frame_to_base_footprint": {
                    "R": [[1, 0, 0], [0, -1, 0], [0, 0, -1]],
                    "t": [0, 0, 1],
                }
            }
        )
    )
    create_cli().run(
        [
            "replay",
            str(frames),
            "--config",
            str(config),
            "--extrinsics",
            str(extrinsics),
            "--debug-dir",
            str(tmp_path / "dbg"),
        ],
        track_exceptions=False,
    )


def test_replay_without_frames_fails(tmp_path):
    code = create_cli().run(["replay", str(tmp_path)], track_exceptions=False)
    assert code == 1


def test_missing_command_prints_help():
    assert create_cli().run([], track_exceptions=False) == 2
