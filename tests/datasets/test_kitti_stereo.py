import cv2
import numpy as np
import pytest
import torch

from torchvo.datasets import KITTIStereoDataset
from torchvo.slam import KeyframingReason, run_sequence

P0 = "7.0e+02 0.0 6.0e+02 0.0 0.0 7.0e+02 1.8e+02 0.0 0.0 0.0 1.0 0.0"
P1 = "7.0e+02 0.0 6.0e+02 -3.5e+02 0.0 7.0e+02 1.8e+02 0.0 0.0 0.0 1.0 0.0"


def write_sequence(root, num_frames=3, with_poses=True, with_times=True):
    """Create a small KITTI-like sequence with textured stereo pairs."""
    sequence = root / "sequences" / "04"
    (sequence / "image_0").mkdir(parents=True)
    (sequence / "image_1").mkdir(parents=True)

    rng = np.random.default_rng(0)
    base = rng.uniform(0, 255, (64, 96)).astype(np.float32)
    base = cv2.GaussianBlur(base, (0, 0), 1.5)
    base = cv2.normalize(base, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

    for i in range(num_frames):
        left = np.roll(base, i, axis=1)
        right = np.roll(left, -8, axis=1)
        cv2.imwrite(str(sequence / "image_0" / f"{i:06d}.png"), left)
        cv2.imwrite(str(sequence / "image_1" / f"{i:06d}.png"), right)

    (sequence / "calib.txt").write_text(f"P0: {P0}\nP1: {P1}\n")

    if with_times:
        np.savetxt(sequence / "times.txt", np.arange(num_frames) * 0.1)

    if with_poses:
        (root / "poses").mkdir()
        poses = np.tile(np.eye(4)[:3].reshape(1, 12), (num_frames, 1))
        poses[:, 11] = np.arange(num_frames) * 0.5
        np.savetxt(root / "poses" / "04.txt", poses)

    return root


@pytest.fixture
def kitti_root(tmp_path):
    return write_sequence(tmp_path)


def test_calibration(kitti_root):
    dataset = KITTIStereoDataset(kitti_root, 4)

    assert dataset.sequence_id == "04"
    assert len(dataset) == 3
    np.testing.assert_allclose(
        dataset.get_camera_intrinsics(),
        [[700.0, 0.0, 600.0], [0.0, 700.0, 180.0], [0.0, 0.0, 1.0]],
    )
    assert dataset.get_camera_baseline() == pytest.approx(0.5)
    assert dataset.get_image_size() == (64, 96)


def test_getitem(kitti_root):
    dataset = KITTIStereoDataset(kitti_root, "04", num_disparities=16, block_size=5)
    sample = dataset[1]

    assert sample["frame_idx"] == 1
    assert sample["image"].shape == (64, 96)
    assert sample["image"].dtype == np.uint8
    assert sample["disparity"].shape == (64, 96)
    assert sample["disparity"].dtype == np.float32
    assert np.all(sample["disparity"] >= 0.0)
    assert sample["timestamp"] == pytest.approx(0.1)
    assert sample["gt_pose"][2, 3] == pytest.approx(0.5)

    with pytest.raises(IndexError):
        dataset[3]


def test_optional_files_missing(tmp_path):
    root = write_sequence(tmp_path, with_poses=False, with_times=False)
    dataset = KITTIStereoDataset(root, "04", num_disparities=16)

    assert dataset.get_trajectory() is None
    sample = dataset[2]
    assert sample["gt_pose"] is None
    assert sample["timestamp"] == 2.0


def test_missing_sequence(tmp_path):
    with pytest.raises(ValueError):
        KITTIStereoDataset(tmp_path, "07")


def test_invalid_disparity_range(kitti_root):
    with pytest.raises(ValueError):
        KITTIStereoDataset(kitti_root, "04", num_disparities=20)


def test_run_sequence(kitti_root):
    dataset = KITTIStereoDataset(kitti_root, "04", num_disparities=16, block_size=5)
    params = {"min_saliency": 1.0, "min_image_dimension_for_pyramid": 16}

    trajectory, summary = run_sequence(dataset, params, progress=False)

    assert len(trajectory) == len(dataset)
    torch.testing.assert_close(trajectory[0], torch.eye(4, dtype=torch.float64))
    assert summary["num_frames"] == 3
    assert summary["keyframing_reasons"][str(KeyframingReason.FIRST_FRAME)] == 1
    assert summary["num_keyframes"] >= 1
    assert sum(summary["keyframing_reasons"].values()) == 3


def test_run_sequence_max_frames(kitti_root):
    dataset = KITTIStereoDataset(kitti_root, "04", num_disparities=16, block_size=5)
    trajectory, summary = run_sequence(
        dataset, {"min_saliency": 1.0}, max_frames=2, progress=False
    )
    assert len(trajectory) == 2
    assert summary["num_frames"] == 2
