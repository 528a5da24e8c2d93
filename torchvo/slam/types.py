from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import torch

from ..frontend.odometry.base import OptimizerStatistics
from ..mapping.point_cloud import PointCloud


class KeyframingReason(Enum):
    """Why a frame did or did not become a keyframe."""

    FIRST_FRAME = 0
    NO_KEYFRAME = 1
    LARGE_TRANSLATION = 2
    LARGE_ROTATION = 3
    SMALL_FRACTION_OF_GOOD_POINTS = 4
    ESTIMATION_FAILED = 5

    def __str__(self) -> str:
        return self.name


class ErrorKind(Enum):
    """Kinds of caller errors rejected at the tracker's API boundary."""

    EMPTY_INPUT = 0  # Empty image or disparity
    NO_REFERENCE_FRAME = 1  # Reference template queried before the first frame


class InvalidInputError(ValueError):
    """Raised when the tracker is called with input it cannot process."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def _identity(n: int):
    return lambda: torch.eye(n, dtype=torch.float64)


@dataclass
class Result:
    """Outcome of one ``VisualOdometry.add_frame`` call."""

    success: bool = False
    displacement: torch.Tensor = field(default_factory=_identity(4))
    covariance: torch.Tensor = field(default_factory=_identity(6))
    optimizer_statistics: List[OptimizerStatistics] = field(default_factory=list)
    is_keyframe: bool = False
    keyframing_reason: KeyframingReason = KeyframingReason.NO_KEYFRAME
    point_cloud: Optional[PointCloud] = None

    @classmethod
    def first_frame(cls, num_levels: int) -> "Result":
        """
        Result of the call that bootstraps the reference frame.

        Args:
            num_levels: Number of pyramid levels

        Returns:
            Unsuccessful keyframe result with one empty statistics entry per level
        """
        return cls(
            success=False,
            optimizer_statistics=[OptimizerStatistics() for _ in range(num_levels)],
            is_keyframe=True,
            keyframing_reason=KeyframingReason.FIRST_FRAME,
            point_cloud=None,
        )
