"""
Geometry backend for torchvo.

Rigid body transformations (SE(3)) and rotation parameterizations used by the
pose estimator and the keyframing decision logic.
"""

from .se3 import (
    SE3,
    as_pose,
    euler_to_rotation_matrix,
    inverse_transform,
    rotation_matrix_to_euler,
    skew,
)

__all__ = [
    "SE3",
    "as_pose",
    "inverse_transform",
    "skew",
    "euler_to_rotation_matrix",
    "rotation_matrix_to_euler",
]
