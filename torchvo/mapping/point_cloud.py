from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np
import torch

Color = Tuple[int, int, int, int]


@dataclass
class PointWithInfo:
    """A tracked 3D point with its colour and the estimator weight."""

    xyzw: torch.Tensor  # homogeneous point (4,)
    rgba: Color = (0, 0, 0, 255)
    weight: float = 0.0


class PointCloud:
    """
    Ordered collection of points emitted at a keyframe event.

    The cloud is built once with a fixed size and filled by index assignment,
    mirroring how the tracker extracts it from the outgoing reference frame.
    """

    def __init__(self, num_points: int = 0, pose: Optional[torch.Tensor] = None):
        """
        Initialize point cloud.

        Args:
            num_points: Number of default points to allocate
            pose: Optional pose the cloud is expressed in
        """
        self._points: List[PointWithInfo] = [
            PointWithInfo(torch.zeros(4, dtype=torch.float64)) for _ in range(num_points)
        ]
        self.pose = pose

    def __len__(self) -> int:
        return len(self._points)

    def __getitem__(self, index: int) -> PointWithInfo:
        return self._points[index]

    def __setitem__(self, index: int, point: PointWithInfo):
        self._points[index] = point

    def __iter__(self) -> Iterator[PointWithInfo]:
        return iter(self._points)

    def append(self, point: PointWithInfo):
        self._points.append(point)

    def points_array(self) -> np.ndarray:
        """Return the points as an (N, 4) array."""
        if not self._points:
            return np.zeros((0, 4), dtype=np.float64)
        return torch.stack([p.xyzw for p in self._points]).cpu().numpy()

    def colors_array(self) -> np.ndarray:
        """Return the colours as an (N, 4) uint8 array."""
        return np.array([p.rgba for p in self._points], dtype=np.uint8).reshape(-1, 4)

    def weights_array(self) -> np.ndarray:
        return np.array([p.weight for p in self._points], dtype=np.float32)
