"""
Dataset loaders feeding image/disparity pairs to the visual odometry.
"""

from .kitti_stereo import KITTIStereoDataset

__all__ = ["KITTIStereoDataset"]
