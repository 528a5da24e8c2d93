"""
Run the stereo visual odometry over a dataset sequence.
"""
import argparse
import logging
from collections import Counter
from typing import Any, Dict, Optional, Tuple, Union

import torch
from torch.utils.data import Dataset
from tqdm import tqdm

from ..backend.se3 import inverse_transform
from ..frontend.odometry import BasePoseEstimator
from ..datasets.kitti_stereo import KITTIStereoDataset
from ..mapping.trajectory import Trajectory
from ..parameters import AlgorithmParameters
from .types import KeyframingReason
from .visual_odometry import VisualOdometry


def run_sequence(
    dataset: Dataset,
    params: Union[AlgorithmParameters, Dict, None] = None,
    max_frames: Optional[int] = None,
    progress: bool = True,
    pose_estimator: Optional[BasePoseEstimator] = None,
) -> Tuple[Trajectory, Dict[str, Any]]:
    """
    Track every frame of a stereo sequence.

    The world pose of each frame is chained from the per-step displacements
    of successful results; frames that fail to track keep the last pose.

    A keyframe step re-anchors on the last buffered frame. When that frame
    was itself rejected its world pose is unknown, so the step keeps the last
    pose instead of chaining. After a keyframe step without a buffered frame
    the new reference is placed at the last pose, so the motion of that one
    step is missing from the trajectory.

    Args:
        dataset: Dataset yielding dicts with 'image' and 'disparity', and
            exposing get_camera_intrinsics(), get_camera_baseline() and
            get_image_size()
        params: AlgorithmParameters or a configuration dictionary
        max_frames: Stop after this many frames
        progress: Show a progress bar
        pose_estimator: Estimator to use (DirectPoseEstimator by default)

    Returns:
        Tuple of (camera-to-world trajectory, results summary)
    """
    camera_intrinsics = dataset.get_camera_intrinsics()
    baseline = dataset.get_camera_baseline()
    if camera_intrinsics is None or baseline is None:
        raise ValueError("Dataset has no stereo calibration")

    vo = VisualOdometry(
        camera_intrinsics,
        baseline,
        dataset.get_image_size(),
        params,
        pose_estimator=pose_estimator,
    )

    num_frames = len(dataset)
    if max_frames is not None:
        num_frames = min(num_frames, max_frames)

    world_trajectory = Trajectory()
    T_w_c = torch.eye(4, dtype=torch.float64)
    reasons = Counter()
    num_success = 0
    num_keyframes = 0
    num_points = 0
    num_unchained = 0
    # Whether the buffered frame a keyframe step falls back to has a known pose
    backup_tracked = False

    for idx in tqdm(range(num_frames), desc="Tracking", disable=not progress):
        sample = dataset[idx]
        result = vo.add_frame(sample["image"], sample["disparity"])

        if result.success:
            num_success += 1
            if result.is_keyframe and not backup_tracked:
                logging.debug(f"Frame {idx}: backup frame was not tracked, pose held")
                num_unchained += 1
            else:
                T_w_c = T_w_c @ inverse_transform(result.displacement)

        # Only an accepted non-keyframe step leaves a tracked frame buffered
        backup_tracked = (
            not result.is_keyframe
            and result.keyframing_reason == KeyframingReason.NO_KEYFRAME
        )

        if result.is_keyframe:
            num_keyframes += 1
        if result.point_cloud is not None:
            num_points += len(result.point_cloud)

        reasons[str(result.keyframing_reason)] += 1
        world_trajectory.append(T_w_c)

    summary = {
        "num_frames": num_frames,
        "num_success": num_success,
        "num_keyframes": num_keyframes,
        "num_failures": reasons[str(KeyframingReason.ESTIMATION_FAILED)],
        "num_map_points": num_points,
        "num_unchained": num_unchained,
        "keyframing_reasons": dict(reasons),
    }
    return world_trajectory, summary


def main(argv=None):
    parser = argparse.ArgumentParser(description="Stereo visual odometry on a KITTI sequence")
    parser.add_argument("dataset_path", help="KITTI odometry dataset root")
    parser.add_argument("--sequence", default="00", help="Sequence ID")
    parser.add_argument("--config", default=None, help="YAML file with algorithm parameters")
    parser.add_argument("--max-frames", type=int, default=None)
    parser.add_argument("--output", default="trajectory.txt", help="KITTI format trajectory file")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    dataset = KITTIStereoDataset(args.dataset_path, args.sequence)
    params = AlgorithmParameters.from_yaml(args.config) if args.config else None

    trajectory, summary = run_sequence(dataset, params, max_frames=args.max_frames)
    trajectory.save(args.output)

    logging.info(f"Trajectory with {len(trajectory)} poses written to {args.output}")
    for key, value in summary.items():
        logging.info(f"{key}: {value}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
