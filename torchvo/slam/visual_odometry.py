"""
Stereo visual odometry front-end.

This module tracks the camera against a keyframe: every new image/disparity
pair is aligned to the current reference frame, the estimate is validated,
and the keyframing rules decide whether the reference must be replaced. A
keyframe transition re-anchors tracking on the last good intermediate frame
and emits a point cloud of the outgoing reference.
"""
import logging
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from ..backend.se3 import PoseLike, as_pose, inverse_transform, rotation_matrix_to_euler
from ..frontend.frame import BaseFrame, StereoFrame
from ..frontend.odometry import (
    BasePoseEstimator,
    DirectPoseEstimator,
    OptimizerStatistics,
    SolverStatus,
)
from ..frontend.slots import FrameRole, FrameSlots
from ..mapping.point_cloud import PointCloud, PointWithInfo
from ..mapping.trajectory import Trajectory
from ..parameters import AlgorithmParameters
from .types import ErrorKind, InvalidInputError, KeyframingReason, Result

FrameFactory = Callable[[torch.Tensor, float, AlgorithmParameters], BaseFrame]


class VisualOdometry:
    """
    Keyframe-based stereo visual odometry.

    One instance is one tracking session. ``add_frame`` mutates the frame
    buffers and the accumulated pose in place and must not be called
    concurrently on the same instance.
    """

    def __init__(
        self,
        camera_intrinsics: Union[torch.Tensor, np.ndarray],
        baseline: float,
        image_size: Tuple[int, int],
        params: Union[AlgorithmParameters, Dict, None] = None,
        pose_estimator: Optional[BasePoseEstimator] = None,
        frame_factory: FrameFactory = StereoFrame,
    ):
        """
        Initialize the visual odometry session.

        Args:
            camera_intrinsics: 3x3 intrinsics of the left camera
            baseline: Stereo baseline
            image_size: (rows, cols) of the input images
            params: AlgorithmParameters or a configuration dictionary
            pose_estimator: Estimator to use (DirectPoseEstimator by default)
            frame_factory: Callable building a frame from
                (camera_intrinsics, baseline, params)
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if params is None:
            params = AlgorithmParameters()
        elif isinstance(params, dict):
            params = AlgorithmParameters.from_config(params)

        rows, cols = image_size
        self._params = params.with_image_size(rows, cols)
        self.image_size = (int(rows), int(cols))

        self.camera_intrinsics = torch.as_tensor(camera_intrinsics, dtype=torch.float64)
        if self.camera_intrinsics.shape != (3, 3):
            raise ValueError(
                f"Expected 3x3 camera intrinsics, got {tuple(self.camera_intrinsics.shape)}"
            )
        self.baseline = float(baseline)

        if pose_estimator is None:
            pose_estimator = DirectPoseEstimator(self._params)
        self._pose_estimator = pose_estimator

        self._slots = FrameSlots(
            [
                frame_factory(self.camera_intrinsics, self.baseline, self._params)
                for _ in FrameRole
            ]
        )
        self._T_kf = torch.eye(4, dtype=torch.float64)
        self._trajectory = Trajectory()
        self.frame_idx = 0

        self.logger.info(
            f"Visual odometry on {cols}x{rows} images with "
            f"{self._params.num_pyramid_levels} pyramid levels"
        )

    @property
    def params(self) -> AlgorithmParameters:
        return self._params

    @property
    def num_levels(self) -> int:
        return self._params.num_pyramid_levels

    @property
    def trajectory(self) -> Trajectory:
        return self._trajectory

    @property
    def slots(self) -> FrameSlots:
        return self._slots

    @property
    def pose_estimator(self) -> BasePoseEstimator:
        return self._pose_estimator

    @property
    def accumulated_pose(self) -> torch.Tensor:
        """Transform accumulated since the last keyframe."""
        return self._T_kf.clone()

    def add_frame(
        self,
        image: np.ndarray,
        disparity: np.ndarray,
        guess: Optional[PoseLike] = None,
    ) -> Result:
        """
        Track a new image/disparity pair.

        Args:
            image: Grayscale or BGR image
            disparity: Disparity map of the same size
            guess: 4x4 motion guess relative to the previous frame
                (identity when omitted)

        Returns:
            Result of this step. Tracking failures are reported in the result,
            they are never raised.

        Raises:
            InvalidInputError: if the image or the disparity is empty
        """
        if (
            image is None
            or disparity is None
            or np.asarray(image).size == 0
            or np.asarray(disparity).size == 0
        ):
            raise InvalidInputError(ErrorKind.EMPTY_INPUT, "empty image/disparity")

        guess = torch.eye(4, dtype=torch.float64) if guess is None else as_pose(guess)
        slots = self._slots
        slots.current.set_data(image, disparity)
        self.frame_idx += 1

        if not slots.reference.has_template():
            slots.swap(FrameRole.REFERENCE, FrameRole.CURRENT)
            slots.reference.set_template()
            self._trajectory.append(self._T_kf)
            self.logger.info(f"Reference frame initialized at frame {self.frame_idx}")
            return Result.first_frame(self.num_levels)

        result = Result()
        T_guess = self._T_kf @ guess
        result.optimizer_statistics, T_est = self._pose_estimator.estimate_pose(
            slots.reference, slots.current, T_guess
        )
        T_est = as_pose(T_est)
        result.covariance = self._pose_estimator.get_covariance()

        if not self.check_result(result.optimizer_statistics):
            self.logger.info("Initial pose estimation failed")
            result.keyframing_reason = KeyframingReason.ESTIMATION_FAILED
            result.is_keyframe = False
            result.success = False
            # keep the frame as a backup keyframe candidate
            slots.swap(FrameRole.CURRENT, FrameRole.PREVIOUS)
            return result

        result.keyframing_reason = self.should_keyframe(T_est)
        result.is_keyframe = result.keyframing_reason != KeyframingReason.NO_KEYFRAME

        if not result.is_keyframe:
            slots.swap(FrameRole.CURRENT, FrameRole.PREVIOUS)
            result.displacement = T_est @ inverse_transform(self._T_kf)
            self._T_kf = T_est
            result.success = True
            return result

        self._transition_keyframe(result, guess)
        return result

    def _transition_keyframe(self, result: Result, guess: torch.Tensor):
        """
        Replace the reference frame after a keyframe trigger.

        The previous frame becomes the new reference and the current frame is
        re-estimated against it. Without a previous frame the current frame
        is adopted directly and the step is reported as unsuccessful.
        """
        slots = self._slots
        self.logger.info(f"Keyframing: {result.keyframing_reason}")

        self._T_kf = torch.eye(4, dtype=torch.float64)
        result.point_cloud = self._point_cloud_from_reference()

        # Keyframed twice in a row, nothing to re-estimate against
        if slots.previous.empty():
            slots.swap(FrameRole.CURRENT, FrameRole.REFERENCE)
            slots.reference.set_template()
            slots.current.clear()
            self.logger.info("Could not obtain intermediate frame!")
            result.success = False
            return

        slots.swap(FrameRole.PREVIOUS, FrameRole.REFERENCE)
        slots.previous.clear()
        slots.reference.set_template()

        result.optimizer_statistics, T_est = self._pose_estimator.estimate_pose(
            slots.reference, slots.current, guess
        )
        T_est = as_pose(T_est)
        result.covariance = self._pose_estimator.get_covariance()
        result.displacement = T_est.clone()
        self._T_kf = T_est

        if not self.check_result(result.optimizer_statistics):
            self.logger.info("Keyframe pose re-estimation failed")
            result.keyframing_reason = KeyframingReason.ESTIMATION_FAILED
            result.success = False
            return

        result.keyframing_reason = self.should_keyframe(T_est)
        if result.keyframing_reason != KeyframingReason.NO_KEYFRAME:
            self.logger.info("Backup keyframe failed keyframe requirements!")
            result.success = False
        else:
            result.success = True

    def check_result(self, stats: Sequence[OptimizerStatistics]) -> bool:
        """
        Decide whether an estimate is acceptable.

        The error per pixel at the test level must not exceed
        ``max_solution_error`` and no level from the coarsest down to the
        test level may report a solver error. Finer levels are not checked.

        Args:
            stats: Optimizer statistics indexed by pyramid level

        Returns:
            True if the estimate is accepted
        """
        test_level = self._params.max_test_level
        checked_levels = range(len(stats) - 1, test_level - 1, -1)

        final = stats[test_level]
        if final.num_pixels > 0:
            error_ratio = final.final_error / final.num_pixels
        else:
            error_ratio = float("inf")

        if error_ratio > self._params.max_solution_error:
            summary = ", ".join(
                f"{i}: {stats[i].final_error:g}({stats[i].num_pixels})" for i in checked_levels
            )
            self.logger.info(f"Error exceeded: {summary}")
            return False

        for i in checked_levels:
            if stats[i].status == SolverStatus.ERROR:
                return False

        return True

    def should_keyframe(self, pose: PoseLike) -> KeyframingReason:
        """
        Classify an accepted estimate.

        Checks run in a fixed order and the first one that fires wins:
        translation, rotation, fraction of good points.

        Args:
            pose: 4x4 estimated transform

        Returns:
            The keyframing reason, NO_KEYFRAME if tracking can continue
        """
        pose = as_pose(pose)

        t_norm = float((pose[:3, 3] ** 2).sum())
        if t_norm > self._params.min_translation_mag_to_keyframe**2:
            self.logger.debug("LARGE_TRANSLATION")
            return KeyframingReason.LARGE_TRANSLATION

        r_norm = float((rotation_matrix_to_euler(pose) ** 2).sum())
        if r_norm > self._params.min_rotation_mag_to_keyframe**2:
            self.logger.debug("LARGE_ROTATION")
            return KeyframingReason.LARGE_ROTATION

        frac_good = self._pose_estimator.get_fraction_of_good_points(
            self._params.good_point_threshold
        )
        if frac_good < self._params.max_fraction_of_good_points_to_keyframe:
            self.logger.debug(f"SMALL_FRACTION_OF_GOOD_POINTS ({frac_good:.3f})")
            return KeyframingReason.SMALL_FRACTION_OF_GOOD_POINTS

        return KeyframingReason.NO_KEYFRAME

    def num_points_at_level(self, level: int = -1) -> int:
        """
        Number of template points of the reference frame.

        Args:
            level: Pyramid level, negative for the test level

        Returns:
            Point count, 0 before the first frame
        """
        if level < 0:
            level = self._params.max_test_level

        reference = self._slots.reference
        if not reference.has_template():
            return 0
        return reference.get_template_data_at_level(level).num_points

    def points_at_level(self, level: int = -1) -> torch.Tensor:
        """
        Template points of the reference frame.

        Args:
            level: Pyramid level, negative for the test level

        Returns:
            (N, 4) homogeneous points

        Raises:
            InvalidInputError: if no reference frame has been set
        """
        reference = self._slots.reference
        if not reference.has_template():
            raise InvalidInputError(
                ErrorKind.NO_REFERENCE_FRAME, "no reference frame has been set"
            )
        if level < 0:
            level = self._params.max_test_level
        return reference.get_template_data_at_level(level).points

    def _point_cloud_from_reference(self) -> Optional[PointCloud]:
        """
        Build the point cloud of the reference frame at the test level.

        Each point carries the intensity it projects onto in the reference
        image (0 outside the image) and its estimator weight.

        Returns:
            PointCloud, or None if points and weights disagree in count
        """
        level = self._params.max_test_level
        reference = self._slots.reference
        points = self.points_at_level(level)
        weights = self._pose_estimator.get_weights()

        n = points.shape[0]
        if n != len(weights):
            self.logger.warning(f"size mismatch [{n} != {len(weights)}]")
            return None

        template = reference.get_template_data_at_level(level)
        image = reference.image_at_level(level)
        height, width = image.shape

        uv = template.warp.image_points(points)
        u, v = uv[:, 0], uv[:, 1]
        inside = (u >= 0) & (u < width) & (v >= 0) & (v < height)
        samples = image[v.clamp(0, height - 1), u.clamp(0, width - 1)]
        samples = torch.where(inside, samples, torch.zeros_like(samples))
        gray = samples.round().clamp(0, 255).to(torch.uint8).tolist()

        cloud = PointCloud(n)
        for i in range(n):
            c = gray[i]
            cloud[i] = PointWithInfo(points[i].clone(), (c, c, c, 255), float(weights[i]))

        return cloud
