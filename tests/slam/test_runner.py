import unittest

import cv2
import numpy as np
import torch

from torchvo.backend.se3 import inverse_transform
from torchvo.frontend.odometry import BasePoseEstimator, OptimizerStatistics
from torchvo.slam import run_sequence

SIZE = (120, 160)


def translation(x=0.0, z=0.0):
    T = torch.eye(4, dtype=torch.float64)
    T[0, 3] = x
    T[2, 3] = z
    return T


class InMemoryStereoDataset:
    """Repeats one textured frame with a constant disparity."""

    def __init__(self, num_frames):
        rng = np.random.default_rng(0)
        image = cv2.GaussianBlur(rng.uniform(0, 255, SIZE).astype(np.float32), (0, 0), 2.0)
        self.image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        self.disparity = np.full(SIZE, 20.0, dtype=np.float32)
        self.num_frames = num_frames

    def __len__(self):
        return self.num_frames

    def __getitem__(self, idx):
        return {"image": self.image, "disparity": self.disparity}

    def get_camera_intrinsics(self):
        return np.array([[100.0, 0.0, 80.0], [0.0, 100.0, 60.0], [0.0, 0.0, 1.0]])

    def get_camera_baseline(self):
        return 0.5

    def get_image_size(self):
        return SIZE


class ReplayEstimator(BasePoseEstimator):
    """Returns scripted (accepted, pose) outcomes with all points good."""

    def __init__(self, script):
        self.script = list(script)
        self._weights = torch.zeros(0, dtype=torch.float64)

    def estimate_pose(self, reference, current, seed_pose):
        accepted, pose = self.script.pop(0)
        stats = [
            OptimizerStatistics(final_error=10.0 if accepted else 1e9, num_pixels=100)
            for _ in range(reference.num_levels())
        ]
        n = reference.get_template_data_at_level(0).num_points
        self._weights = torch.ones(n, dtype=torch.float64)
        return stats, pose.clone()

    def get_weights(self):
        return self._weights


LARGE = translation(z=0.5)


class TestRunSequence(unittest.TestCase):
    def run_script(self, num_frames, script):
        dataset = InMemoryStereoDataset(num_frames)
        estimator = ReplayEstimator(script)
        return run_sequence(
            dataset, {"min_saliency": 1.0}, progress=False, pose_estimator=estimator
        )

    def test_chains_tracked_steps(self):
        T1 = translation(x=0.01)
        T2 = translation(x=0.02)
        trajectory, summary = self.run_script(3, [(True, T1), (True, T2)])

        torch.testing.assert_close(trajectory[0], torch.eye(4, dtype=torch.float64))
        torch.testing.assert_close(trajectory[1], inverse_transform(T1))
        torch.testing.assert_close(trajectory[2], inverse_transform(T2))
        self.assertEqual(summary["num_success"], 2)
        self.assertEqual(summary["num_unchained"], 0)

    def test_keyframe_chains_from_tracked_backup(self):
        T1 = translation(x=0.01)
        T_backup = translation(x=0.02)
        trajectory, summary = self.run_script(3, [(True, T1), (True, LARGE), (True, T_backup)])

        torch.testing.assert_close(trajectory[2], trajectory[1] @ inverse_transform(T_backup))
        self.assertEqual(summary["num_keyframes"], 2)
        self.assertEqual(summary["num_unchained"], 0)

    def test_keyframe_holds_pose_after_rejected_backup(self):
        """Test a backup frame with no tracked pose does not extend the chain."""
        T1 = translation(x=0.01)
        script = [
            (True, T1),
            (False, LARGE),
            (True, LARGE),
            (True, translation(x=0.02)),
        ]
        trajectory, summary = self.run_script(4, script)

        torch.testing.assert_close(trajectory[2], trajectory[1])
        torch.testing.assert_close(trajectory[3], trajectory[1])
        self.assertEqual(summary["num_failures"], 1)
        self.assertEqual(summary["num_unchained"], 1)
        self.assertEqual(summary["num_success"], 2)
