from typing import Union

import numpy as np
import torch

PoseLike = Union[torch.Tensor, np.ndarray]


class SE3:
    """
    SE(3) rigid body transformation.

    Poses in torchvo are plain 4x4 float64 tensors; this class wraps the
    rotation and translation blocks for the operations the tracker needs
    (exponential map, inverse, composition, point transforms).
    """

    def __init__(self, rotation: torch.Tensor, translation: torch.Tensor):
        """
        Initialize SE(3) transformation.

        Args:
            rotation: 3x3 rotation matrix
            translation: 3D translation vector
        """
        self.R = rotation
        self.t = translation

    @classmethod
    def from_matrix(cls, matrix: PoseLike) -> "SE3":
        """
        Create SE(3) object from a 4x4 transformation matrix.

        Args:
            matrix: 4x4 transformation matrix (tensor or array)

        Returns:
            SE3 object
        """
        matrix = as_pose(matrix)
        return cls(matrix[:3, :3], matrix[:3, 3])

    @classmethod
    def exp(cls, xi: torch.Tensor) -> "SE3":
        """
        Exponential map from se(3) to SE(3).

        Args:
            xi: 6D twist (rho, phi); first 3 elements translate,
                last 3 elements rotate

        Returns:
            SE3 object
        """
        if xi.shape != (6,):
            raise ValueError(f"Expected 6D vector, got {tuple(xi.shape)}")

        xi = xi.to(torch.float64)
        rho = xi[:3]
        phi = xi[3:]
        theta = torch.linalg.norm(phi)
        eye = torch.eye(3, dtype=torch.float64, device=xi.device)
        K = skew(phi)

        if theta < 1e-8:
            R = eye + K
            V = eye + 0.5 * K
        else:
            K2 = K @ K
            theta2 = theta * theta
            R = eye + torch.sin(theta) / theta * K + (1 - torch.cos(theta)) / theta2 * K2
            V = (
                eye
                + (1 - torch.cos(theta)) / theta2 * K
                + (theta - torch.sin(theta)) / (theta2 * theta) * K2
            )

        return cls(R, V @ rho)

    def to_matrix(self) -> torch.Tensor:
        matrix = torch.eye(4, dtype=self.R.dtype, device=self.R.device)
        matrix[:3, :3] = self.R
        matrix[:3, 3] = self.t
        return matrix

    def inverse(self) -> "SE3":
        R_inv = self.R.transpose(0, 1)
        return SE3(R_inv, -R_inv @ self.t)

    def compose(self, other: "SE3") -> "SE3":
        """Compose with another transformation: self * other"""
        return SE3(self.R @ other.R, self.R @ other.t + self.t)

    def transform_points(self, points: torch.Tensor) -> torch.Tensor:
        """
        Transform a batch of points.

        Args:
            points: (N, 3) or homogeneous (N, 4) points

        Returns:
            Transformed (N, 3) points
        """
        return points[:, :3] @ self.R.transpose(0, 1) + self.t

    def __repr__(self) -> str:
        return f"SE3(R=\n{self.R},\nt={self.t})"


def as_pose(matrix: PoseLike) -> torch.Tensor:
    """
    Convert a pose-like value into a 4x4 float64 tensor.

    Args:
        matrix: 4x4 tensor or array

    Returns:
        4x4 float64 tensor (a new tensor, never a view of the input)
    """
    pose = torch.as_tensor(matrix, dtype=torch.float64).clone()
    if pose.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got {tuple(pose.shape)}")
    return pose


def inverse_transform(T: torch.Tensor) -> torch.Tensor:
    """Closed-form inverse of a 4x4 rigid transform."""
    return SE3.from_matrix(T).inverse().to_matrix()


def skew(v: torch.Tensor) -> torch.Tensor:
    """
    Create the skew-symmetric matrix of a 3D vector.

    Args:
        v: 3D vector

    Returns:
        3x3 skew-symmetric matrix
    """
    zero = torch.zeros((), dtype=v.dtype, device=v.device)
    return torch.stack(
        [
            torch.stack([zero, -v[2], v[1]]),
            torch.stack([v[2], zero, -v[0]]),
            torch.stack([-v[1], v[0], zero]),
        ]
    )


def euler_to_rotation_matrix(euler: torch.Tensor) -> torch.Tensor:
    """
    Convert Euler angles to a rotation matrix using the ZYX convention.

    Args:
        euler: Euler angles [roll, pitch, yaw] in radians

    Returns:
        3x3 rotation matrix
    """
    euler = torch.as_tensor(euler, dtype=torch.float64)
    roll, pitch, yaw = euler
    cr, sr = torch.cos(roll), torch.sin(roll)
    cp, sp = torch.cos(pitch), torch.sin(pitch)
    cy, sy = torch.cos(yaw), torch.sin(yaw)

    return torch.stack(
        [
            torch.stack([cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr]),
            torch.stack([sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr]),
            torch.stack([-sp, cp * sr, cp * cr]),
        ]
    )


def rotation_matrix_to_euler(R: torch.Tensor) -> torch.Tensor:
    """
    Convert a rotation matrix to Euler angles using the ZYX convention.

    Args:
        R: 3x3 rotation matrix, or a 4x4 transform whose rotation block is used

    Returns:
        Euler angles [roll, pitch, yaw] in radians
    """
    R = torch.as_tensor(R, dtype=torch.float64)[:3, :3]

    # Gimbal lock
    if abs(R[2, 0]) > 0.99999:
        pitch = -torch.sign(R[2, 0]) * torch.pi / 2
        yaw = torch.atan2(-R[1, 2], R[1, 1])
        roll = torch.zeros((), dtype=torch.float64)
    else:
        pitch = -torch.asin(R[2, 0])
        roll = torch.atan2(R[2, 1], R[2, 2])
        yaw = torch.atan2(R[1, 0], R[0, 0])

    return torch.stack([roll, pitch, yaw])
