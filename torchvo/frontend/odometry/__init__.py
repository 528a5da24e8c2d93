"""
Odometry module for torchvo.

Pose estimators align a frame against a templated reference frame and report
per-pyramid-level convergence statistics alongside the estimated transform.
"""

from .base import BasePoseEstimator, OptimizerStatistics, SolverStatus
from .direct import DirectPoseEstimator

__all__ = [
    "BasePoseEstimator",
    "OptimizerStatistics",
    "SolverStatus",
    "DirectPoseEstimator",
]
