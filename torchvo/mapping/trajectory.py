from pathlib import Path
from typing import Iterator, List, Union

import numpy as np
import torch

from ..backend.se3 import PoseLike, as_pose


class Trajectory:
    """Append-only ordered sequence of 4x4 poses."""

    def __init__(self):
        self._poses: List[torch.Tensor] = []

    def append(self, pose: PoseLike):
        self._poses.append(as_pose(pose))

    def back(self) -> torch.Tensor:
        """
        Get the most recent pose.

        Raises:
            IndexError: if the trajectory is empty
        """
        if not self._poses:
            raise IndexError("back() called on an empty trajectory")
        return self._poses[-1]

    def __len__(self) -> int:
        return len(self._poses)

    def __getitem__(self, index: int) -> torch.Tensor:
        return self._poses[index]

    def __iter__(self) -> Iterator[torch.Tensor]:
        return iter(self._poses)

    def as_array(self) -> np.ndarray:
        """Return the poses as an (N, 4, 4) array."""
        if not self._poses:
            return np.zeros((0, 4, 4), dtype=np.float64)
        return torch.stack(self._poses).cpu().numpy()

    def save(self, path: Union[str, Path]):
        """
        Write the trajectory in KITTI odometry format.

        Each line holds the top 3x4 block of one pose, row-major.
        """
        rows = self.as_array()[:, :3, :4].reshape(-1, 12)
        np.savetxt(path, rows, fmt="%.9e")
