"""
TorchVO

A PyTorch-based stereo visual odometry front-end. Each image/disparity pair is
aligned against a keyframe by direct photometric optimization; keyframing
rules decide when the keyframe is replaced, and each retired keyframe is
exported as a weighted point cloud.

Major Components:
- Frontend: Stereo frames, frame buffer slots and the direct pose estimator
- Backend: SE(3) geometry
- Mapping: Keyframe point clouds and the camera trajectory
- SLAM: The visual odometry session and the sequence runner
- Datasets: KITTI stereo loader
"""
from torchvo.backend import SE3
from torchvo.datasets import KITTIStereoDataset
from torchvo.frontend import (
    BasePoseEstimator,
    DirectPoseEstimator,
    FrameRole,
    OptimizerStatistics,
    SolverStatus,
    StereoFrame,
)
from torchvo.mapping import PointCloud, PointWithInfo, Trajectory
from torchvo.parameters import AlgorithmParameters
from torchvo.slam import (
    ErrorKind,
    InvalidInputError,
    KeyframingReason,
    Result,
    VisualOdometry,
    run_sequence,
)
from torchvo.version import __version__

__all__ = [
    "AlgorithmParameters",
    "VisualOdometry",
    "Result",
    "KeyframingReason",
    "ErrorKind",
    "InvalidInputError",
    "run_sequence",
    "StereoFrame",
    "FrameRole",
    "BasePoseEstimator",
    "DirectPoseEstimator",
    "OptimizerStatistics",
    "SolverStatus",
    "SE3",
    "PointCloud",
    "PointWithInfo",
    "Trajectory",
    "KITTIStereoDataset",
    "__version__",
]
