"""
Stereo frames and their leveled point templates.

A frame moves through three states: empty (no data), raw (image and disparity
stored, image pyramid built) and templated (trackable points extracted at
every pyramid level, so the frame can serve as the alignment reference).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
import torch

from ..parameters import AlgorithmParameters


class Warp:
    """Pinhole projection of camera-frame points into one pyramid level."""

    def __init__(self, camera_intrinsics: torch.Tensor):
        self.camera_intrinsics = camera_intrinsics
        self.fx = float(camera_intrinsics[0, 0])
        self.fy = float(camera_intrinsics[1, 1])
        self.cx = float(camera_intrinsics[0, 2])
        self.cy = float(camera_intrinsics[1, 2])

    def project(self, points: torch.Tensor) -> torch.Tensor:
        """
        Project points to sub-pixel image coordinates.

        Args:
            points: (N, 3) or homogeneous (N, 4) points in the camera frame

        Returns:
            (N, 2) tensor of (u, v) coordinates
        """
        z = points[:, 2]
        u = self.fx * points[:, 0] / z + self.cx
        v = self.fy * points[:, 1] / z + self.cy
        return torch.stack([u, v], dim=1)

    def image_points(self, points: torch.Tensor) -> torch.Tensor:
        """Project points and round to integer pixel coordinates."""
        return torch.round(self.project(points)).to(torch.long)

    def get_image_point(self, point: torch.Tensor) -> Tuple[int, int]:
        u, v = self.image_points(point.reshape(1, -1))[0].tolist()
        return u, v


@dataclass
class TemplateData:
    """Trackable points of a frame at one pyramid level."""

    points: torch.Tensor  # (N, 4) homogeneous points in the frame's camera
    intensities: torch.Tensor  # (N,) reference intensities
    warp: Warp

    @property
    def num_points(self) -> int:
        return int(self.points.shape[0])


class BaseFrame(ABC):
    """
    Interface of a frame held by one of the tracker's buffer slots.
    """

    @abstractmethod
    def set_data(self, image: np.ndarray, disparity: np.ndarray):
        """Store raw sensor data, dropping any previous template."""
        pass

    @abstractmethod
    def has_template(self) -> bool:
        pass

    @abstractmethod
    def set_template(self):
        """Promote the raw data into leveled templates."""
        pass

    @abstractmethod
    def clear(self):
        pass

    @abstractmethod
    def empty(self) -> bool:
        pass

    @abstractmethod
    def num_levels(self) -> int:
        pass

    @abstractmethod
    def get_template_data_at_level(self, level: int) -> TemplateData:
        pass

    @abstractmethod
    def image_at_level(self, level: int) -> torch.Tensor:
        pass

    @abstractmethod
    def gradients_at_level(self, level: int) -> Tuple[torch.Tensor, torch.Tensor]:
        pass


class StereoFrame(BaseFrame):
    """
    Frame built from a rectified left image and its disparity map.

    The image pyramid and gradients are computed when data is set; point
    templates are only extracted when the frame is promoted to reference.
    """

    def __init__(
        self,
        camera_intrinsics: torch.Tensor,
        baseline: float,
        params: AlgorithmParameters,
    ):
        """
        Initialize stereo frame.

        Args:
            camera_intrinsics: 3x3 intrinsics of the left camera
            baseline: Stereo baseline (same unit as the reconstructed points)
            params: Algorithm parameters with a resolved pyramid level count
        """
        if params.num_pyramid_levels <= 0:
            raise ValueError("StereoFrame requires a resolved num_pyramid_levels")
        if baseline <= 0:
            raise ValueError(f"Stereo baseline must be positive, got {baseline}")

        self.camera_intrinsics = torch.as_tensor(camera_intrinsics, dtype=torch.float64)
        self.baseline = float(baseline)
        self.params = params

        self.logger = logging.getLogger(self.__class__.__name__)

        self._image: Optional[np.ndarray] = None
        self._disparity: Optional[np.ndarray] = None
        self._pyramid: List[torch.Tensor] = []
        self._gradients: List[Tuple[torch.Tensor, torch.Tensor]] = []
        self._disparities: List[np.ndarray] = []
        self._templates: List[TemplateData] = []

    @property
    def image(self) -> Optional[np.ndarray]:
        """Full resolution grayscale image, or None when empty."""
        return self._image

    @property
    def disparity(self) -> Optional[np.ndarray]:
        return self._disparity

    def set_data(self, image: np.ndarray, disparity: np.ndarray):
        """
        Store a new image/disparity pair and build the image pyramid.

        Args:
            image: Grayscale (H, W) or BGR (H, W, 3) image
            disparity: (H, W) disparity map in pixels
        """
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if image.shape[:2] != disparity.shape[:2]:
            raise ValueError(
                f"Image and disparity sizes differ: {image.shape[:2]} vs {disparity.shape[:2]}"
            )

        self._image = image.copy()
        self._disparity = disparity.astype(np.float32)
        self._templates = []

        self._pyramid = []
        self._gradients = []
        self._disparities = []

        level_image = image.astype(np.float32)
        level_disparity = self._disparity
        for level in range(self.params.num_pyramid_levels):
            if level > 0:
                level_image = cv2.pyrDown(level_image)
                h, w = level_image.shape[:2]
                level_disparity = 0.5 * cv2.resize(
                    level_disparity, (w, h), interpolation=cv2.INTER_NEAREST
                )

            gx = cv2.Sobel(level_image, cv2.CV_32F, 1, 0, ksize=3) / 8.0
            gy = cv2.Sobel(level_image, cv2.CV_32F, 0, 1, ksize=3) / 8.0

            self._pyramid.append(torch.from_numpy(level_image).to(torch.float64))
            self._gradients.append(
                (
                    torch.from_numpy(gx).to(torch.float64),
                    torch.from_numpy(gy).to(torch.float64),
                )
            )
            self._disparities.append(level_disparity)

    def has_template(self) -> bool:
        return len(self._templates) > 0

    def set_template(self):
        """
        Extract trackable points at every pyramid level.

        Points are pixels with enough gradient and a valid disparity,
        back-projected with the level intrinsics.
        """
        if self.empty():
            raise ValueError("set_template() called on a frame without data")

        self._templates = [
            self._extract_template(level) for level in range(self.num_levels())
        ]
        self.logger.debug(
            "Template points per level: "
            + ", ".join(str(t.num_points) for t in self._templates)
        )

    def clear(self):
        self._image = None
        self._disparity = None
        self._pyramid = []
        self._gradients = []
        self._disparities = []
        self._templates = []

    def empty(self) -> bool:
        return self._image is None

    def num_levels(self) -> int:
        return self.params.num_pyramid_levels

    def get_template_data_at_level(self, level: int) -> TemplateData:
        if not self.has_template():
            raise ValueError("Frame has no template")
        return self._templates[level]

    def image_at_level(self, level: int) -> torch.Tensor:
        return self._pyramid[level]

    def gradients_at_level(self, level: int) -> Tuple[torch.Tensor, torch.Tensor]:
        return self._gradients[level]

    def intrinsics_at_level(self, level: int) -> torch.Tensor:
        """
        Intrinsics of a pyramid level.

        pyrDown halves the image around pixel centres, so the principal point
        maps as (c + 0.5) / 2^level - 0.5.
        """
        scale = 2.0**level
        K = self.camera_intrinsics.clone()
        K[0, 0] /= scale
        K[1, 1] /= scale
        K[0, 2] = (K[0, 2] + 0.5) / scale - 0.5
        K[1, 2] = (K[1, 2] + 0.5) / scale - 0.5
        return K

    def _extract_template(self, level: int) -> TemplateData:
        K = self.intrinsics_at_level(level)
        warp = Warp(K)

        image = self._pyramid[level]
        gx, gy = self._gradients[level]
        disparity = torch.from_numpy(self._disparities[level]).to(torch.float64)

        magnitude = torch.sqrt(gx**2 + gy**2)
        mask = (
            (magnitude >= self.params.min_saliency)
            & (disparity >= self.params.min_valid_disparity)
            & (disparity <= self.params.max_valid_disparity)
        )
        # Sobel responses on the border are unreliable
        mask[0, :] = False
        mask[-1, :] = False
        mask[:, 0] = False
        mask[:, -1] = False

        v, u = torch.nonzero(mask, as_tuple=True)
        d = disparity[v, u]

        z = warp.fx * self.baseline / d
        x = (u.to(torch.float64) - warp.cx) * z / warp.fx
        y = (v.to(torch.float64) - warp.cy) * z / warp.fy
        points = torch.stack([x, y, z, torch.ones_like(z)], dim=1)

        return TemplateData(
            points=points,
            intensities=image[v, u],
            warp=warp,
        )
