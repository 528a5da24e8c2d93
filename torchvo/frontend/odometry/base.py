from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

import torch

from ..frame import BaseFrame


class SolverStatus(Enum):
    """Termination status of the optimizer at one pyramid level."""

    OK = 0
    ERROR = 1


@dataclass
class OptimizerStatistics:
    """Convergence statistics of one pyramid level."""

    final_error: float = 0.0  # Sum of weighted squared residuals
    num_pixels: int = 0  # Number of points contributing to the error
    num_iterations: int = 0
    status: SolverStatus = SolverStatus.OK


class BasePoseEstimator(ABC):
    """
    Base class for estimators aligning a frame against a templated reference.

    Statistics are indexed by pyramid level, with level 0 the finest. The
    estimator keeps the per-point weights of its last call so the tracker
    can judge point quality and export weighted point clouds.
    """

    @abstractmethod
    def estimate_pose(
        self, reference: BaseFrame, current: BaseFrame, seed_pose: torch.Tensor
    ) -> Tuple[List[OptimizerStatistics], torch.Tensor]:
        """
        Estimate the transform from the reference to the current frame.

        Args:
            reference: Templated reference frame
            current: Frame holding raw data
            seed_pose: 4x4 initial guess

        Returns:
            Tuple of (statistics per pyramid level, estimated 4x4 transform)
        """
        pass

    @abstractmethod
    def get_weights(self) -> torch.Tensor:
        """
        Get the weights of the reference template points at the test level.

        Returns:
            (N,) tensor, one weight per template point
        """
        pass

    def get_fraction_of_good_points(self, threshold: float) -> float:
        """
        Get the fraction of points whose weight exceeds a threshold.

        Args:
            threshold: Weight a point must exceed to count as good

        Returns:
            Fraction in [0, 1]; 0 when there are no points
        """
        weights = self.get_weights()
        if weights.numel() == 0:
            return 0.0
        return float((weights > threshold).sum().item()) / weights.numel()

    def get_covariance(self) -> torch.Tensor:
        """Covariance of the last estimate (6x6)."""
        return torch.eye(6, dtype=torch.float64)
