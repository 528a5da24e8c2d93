import numpy as np
import pytest
import torch

from torchvo.frontend.frame import StereoFrame
from torchvo.frontend.slots import FrameRole, FrameSlots
from torchvo.parameters import AlgorithmParameters


@pytest.fixture
def frames():
    params = AlgorithmParameters(num_pyramid_levels=1, min_saliency=0.0)
    K = torch.eye(3, dtype=torch.float64)
    return [StereoFrame(K, 1.0, params) for _ in range(3)]


def test_initial_roles(frames):
    slots = FrameSlots(frames)
    assert slots.reference is frames[0]
    assert slots.current is frames[1]
    assert slots.previous is frames[2]
    assert [slots.index_of(role) for role in FrameRole] == [0, 1, 2]


def test_swap_exchanges_frames_without_copying(frames):
    slots = FrameSlots(frames)
    slots.swap(FrameRole.REFERENCE, FrameRole.CURRENT)

    assert slots.reference is frames[1]
    assert slots.current is frames[0]
    assert slots.previous is frames[2]

    slots.swap(FrameRole.CURRENT, FrameRole.PREVIOUS)
    assert slots.current is frames[2]
    assert slots.previous is frames[0]
    assert {id(slots[role]) for role in FrameRole} == {id(f) for f in frames}


def test_templated_roles(frames):
    slots = FrameSlots(frames)
    assert slots.templated_roles() == []

    image = np.tile(np.arange(16, dtype=np.uint8) * 10, (16, 1))
    disparity = np.full((16, 16), 4.0, dtype=np.float32)
    slots.current.set_data(image, disparity)
    slots.current.set_template()
    assert slots.templated_roles() == [FrameRole.CURRENT]

    slots.swap(FrameRole.CURRENT, FrameRole.REFERENCE)
    assert slots.templated_roles() == [FrameRole.REFERENCE]


def test_requires_three_frames(frames):
    with pytest.raises(ValueError):
        FrameSlots(frames[:2])


def test_requires_distinct_frames(frames):
    with pytest.raises(ValueError):
        FrameSlots([frames[0], frames[0], frames[1]])
