"""
Frontend module for torchvo.

This module contains the stereo frames tracked by the visual odometry, the
three buffer slots they rotate through, and the pose estimators.
"""

from .frame import BaseFrame, StereoFrame, TemplateData, Warp
from .odometry import (
    BasePoseEstimator,
    DirectPoseEstimator,
    OptimizerStatistics,
    SolverStatus,
)
from .slots import FrameRole, FrameSlots

__all__ = [
    "BaseFrame",
    "StereoFrame",
    "TemplateData",
    "Warp",
    "FrameRole",
    "FrameSlots",
    "BasePoseEstimator",
    "DirectPoseEstimator",
    "OptimizerStatistics",
    "SolverStatus",
]
