import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from torch.utils.data import Dataset


class KITTIStereoDataset(Dataset):
    """
    KITTI Odometry stereo sequences as image/disparity pairs.

    Directory structure:
    dataset_path/
        ├── sequences/
        │   ├── 00/
        │   │   ├── image_0/              # Left grayscale images
        │   │   ├── image_1/              # Right grayscale images
        │   │   ├── calib.txt             # Projection matrices P0..P3
        │   │   └── times.txt             # Timestamps (optional)
        │   └── ...
        └── poses/
            ├── 00.txt                    # Ground truth poses (optional)
            └── ...

    Disparity is computed on the fly with semi-global block matching.
    """

    def __init__(
        self,
        dataset_path: Union[str, Path],
        sequence_id: Union[str, int] = "00",
        num_disparities: int = 64,
        block_size: int = 9,
    ):
        """
        Initialize KITTI stereo dataset.

        Args:
            dataset_path: Path to the KITTI odometry dataset root
            sequence_id: Sequence ID ('00' to '21')
            num_disparities: SGBM disparity search range (multiple of 16)
            block_size: SGBM matching block size (odd)
        """
        self.dataset_path = Path(dataset_path)

        # Ensure sequence_id is a 2-digit string
        if isinstance(sequence_id, int):
            sequence_id = f"{sequence_id:02d}"
        self.sequence_id = sequence_id
        self.sequence_path = self.dataset_path / "sequences" / self.sequence_id

        if num_disparities <= 0 or num_disparities % 16 != 0:
            raise ValueError(f"num_disparities must be a positive multiple of 16, got {num_disparities}")

        self.left_files, self.right_files = self._load_file_lists()
        self.camera_intrinsics, self.baseline = self._load_calibration()
        self.timestamps = self._load_timestamps()
        self.poses = self._load_poses()

        self.stereo_matcher = cv2.StereoSGBM_create(
            minDisparity=0,
            numDisparities=num_disparities,
            blockSize=block_size,
            P1=8 * block_size * block_size,
            P2=32 * block_size * block_size,
            uniquenessRatio=10,
            speckleWindowSize=100,
            speckleRange=2,
            mode=cv2.STEREO_SGBM_MODE_SGBM,
        )

    def _load_file_lists(self) -> Tuple[List[Path], List[Path]]:
        if not self.sequence_path.exists():
            raise ValueError(f"Sequence {self.sequence_id} not found at {self.sequence_path}")

        left_files = sorted((self.sequence_path / "image_0").glob("*.png"))
        right_files = sorted((self.sequence_path / "image_1").glob("*.png"))
        if not left_files:
            raise ValueError(f"No image files found in {self.sequence_path / 'image_0'}")

        if len(left_files) != len(right_files):
            logging.warning(
                f"Number of right images ({len(right_files)}) doesn't match number of left images ({len(left_files)})"
            )
        num_frames = min(len(left_files), len(right_files))
        return left_files[:num_frames], right_files[:num_frames]

    def _load_calibration(self) -> Tuple[Optional[np.ndarray], Optional[float]]:
        """Read the left intrinsics and the baseline from P0/P1."""
        calib_file = self.sequence_path / "calib.txt"
        if not calib_file.exists():
            logging.warning(f"Calibration file not found: {calib_file}")
            return None, None

        calib_data = {}
        with open(calib_file, "r") as f:
            for line in f:
                if ":" not in line:
                    continue
                key, value = line.split(":", 1)
                calib_data[key.strip()] = np.array([float(x) for x in value.split()])

        if "P0" not in calib_data or "P1" not in calib_data:
            logging.warning(f"P0/P1 missing from {calib_file}")
            return None, None

        P_left = calib_data["P0"].reshape(3, 4)
        P_right = calib_data["P1"].reshape(3, 4)
        baseline = abs(P_right[0, 3] / P_right[0, 0])

        return P_left[:, :3].copy(), float(baseline)

    def _load_timestamps(self) -> Optional[np.ndarray]:
        times_file = self.sequence_path / "times.txt"
        if not times_file.exists():
            return None
        return np.loadtxt(times_file, dtype=np.float64).reshape(-1)

    def _load_poses(self) -> Optional[np.ndarray]:
        """Load ground truth poses if available."""
        pose_file = self.dataset_path / "poses" / f"{self.sequence_id}.txt"
        if not pose_file.exists():
            logging.warning(f"Ground truth poses not found: {pose_file}")
            return None

        values = np.loadtxt(pose_file, dtype=np.float64).reshape(-1, 12)
        poses = np.tile(np.eye(4), (values.shape[0], 1, 1))
        poses[:, :3, :4] = values.reshape(-1, 3, 4)
        return poses

    def __len__(self) -> int:
        return len(self.left_files)

    def _read_gray(self, path: Path) -> np.ndarray:
        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise IOError(f"Failed to load image: {path}")
        return image

    def compute_disparity(self, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        """
        Compute a disparity map in pixels; unmatched pixels are 0.
        """
        disparity = self.stereo_matcher.compute(left, right).astype(np.float32) / 16.0
        disparity[disparity < 0] = 0.0
        return disparity

    def __getitem__(self, idx: int) -> Dict[str, Any]:
        if idx < 0 or idx >= len(self):
            raise IndexError(f"Index {idx} out of range for sequence {self.sequence_id}")

        left = self._read_gray(self.left_files[idx])
        right = self._read_gray(self.right_files[idx])

        return {
            "frame_idx": idx,
            "image": left,
            "disparity": self.compute_disparity(left, right),
            "timestamp": self.get_timestamp(idx),
            "gt_pose": self.get_pose_at_index(idx),
        }

    def get_timestamp(self, idx: int) -> float:
        """
        Timestamp of a frame; the frame index when times.txt is missing.
        """
        if self.timestamps is None or idx >= len(self.timestamps):
            return float(idx)
        return float(self.timestamps[idx])

    def get_pose_at_index(self, idx: int) -> Optional[np.ndarray]:
        """Get the ground truth pose at a specific index."""
        if self.poses is None or idx >= len(self.poses):
            return None
        return self.poses[idx]

    def get_camera_intrinsics(self) -> Optional[np.ndarray]:
        """Get the 3x3 intrinsics of the left camera."""
        return self.camera_intrinsics

    def get_camera_baseline(self) -> Optional[float]:
        """Get stereo camera baseline."""
        return self.baseline

    def get_trajectory(self) -> Optional[np.ndarray]:
        """Get full ground truth trajectory of the sequence."""
        return self.poses

    def get_image_size(self) -> Tuple[int, int]:
        """(rows, cols) of the sequence images."""
        return self._read_gray(self.left_files[0]).shape[:2]
