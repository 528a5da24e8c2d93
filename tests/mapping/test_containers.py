import numpy as np
import pytest
import torch

from torchvo.mapping import PointCloud, PointWithInfo, Trajectory


def test_point_cloud_preallocated():
    cloud = PointCloud(3)
    assert len(cloud) == 3
    assert all(p.rgba == (0, 0, 0, 255) and p.weight == 0.0 for p in cloud)

    point = torch.tensor([1.0, 2.0, 3.0, 1.0], dtype=torch.float64)
    cloud[1] = PointWithInfo(point, (10, 10, 10, 255), 0.5)
    assert cloud[1].weight == 0.5

    np.testing.assert_allclose(cloud.points_array()[1], [1.0, 2.0, 3.0, 1.0])
    assert cloud.colors_array().dtype == np.uint8
    assert cloud.colors_array().shape == (3, 4)
    np.testing.assert_allclose(cloud.weights_array(), [0.0, 0.5, 0.0])


def test_point_cloud_append_and_empty():
    cloud = PointCloud()
    assert cloud.points_array().shape == (0, 4)
    assert cloud.colors_array().shape == (0, 4)

    cloud.append(PointWithInfo(torch.ones(4, dtype=torch.float64)))
    assert len(cloud) == 1


def test_trajectory():
    trajectory = Trajectory()
    assert len(trajectory) == 0
    with pytest.raises(IndexError):
        trajectory.back()

    pose = np.eye(4)
    pose[0, 3] = 1.5
    trajectory.append(np.eye(4))
    trajectory.append(pose)

    assert len(trajectory) == 2
    assert trajectory.back().dtype == torch.float64
    assert float(trajectory.back()[0, 3]) == 1.5
    assert trajectory.as_array().shape == (2, 4, 4)

    # Appended poses are copies
    pose[0, 3] = 0.0
    assert float(trajectory[1][0, 3]) == 1.5


def test_trajectory_save_kitti_format(tmp_path):
    trajectory = Trajectory()
    pose = torch.eye(4, dtype=torch.float64)
    pose[:3, 3] = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
    trajectory.append(torch.eye(4, dtype=torch.float64))
    trajectory.append(pose)

    path = tmp_path / "trajectory.txt"
    trajectory.save(path)

    rows = np.loadtxt(path)
    assert rows.shape == (2, 12)
    np.testing.assert_allclose(rows[1].reshape(3, 4), pose[:3, :4].numpy())
