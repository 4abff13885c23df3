"""Debug visualization sinks.

Intermediate depth images are written as color-mapped PNGs with OpenCV and
synthesized plane clouds as PLY files with Open3D.
"""

from .visualizer import DepthVisualizer, NullVisualizer

__all__ = [
    "DepthVisualizer",
    "NullVisualizer",
]
