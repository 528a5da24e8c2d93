"""
Containers for the outputs of the tracker: keyframe point clouds and the
camera trajectory.
"""

from .point_cloud import PointCloud, PointWithInfo
from .trajectory import Trajectory

__all__ = ["PointCloud", "PointWithInfo", "Trajectory"]
