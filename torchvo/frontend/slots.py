from enum import Enum
from typing import Dict, List, Sequence

from .frame import BaseFrame


class FrameRole(Enum):
    """Role a buffered frame plays for the tracker."""

    REFERENCE = 0  # Templated frame new frames are aligned against
    CURRENT = 1  # Frame being tracked in this call
    PREVIOUS = 2  # Last tracked frame, kept as a backup keyframe candidate


class FrameSlots:
    """
    Three frame buffers whose roles rotate without copying frame data.

    The frames live in a fixed list for the whole session. Roles are indices
    into that list, so promoting a buffer to a new role is an index exchange.
    """

    def __init__(self, frames: Sequence[BaseFrame]):
        """
        Initialize frame slots.

        Args:
            frames: Exactly three distinct frame objects
        """
        if len(frames) != len(FrameRole):
            raise ValueError(f"Expected {len(FrameRole)} frames, got {len(frames)}")
        if len({id(f) for f in frames}) != len(frames):
            raise ValueError("Frame slots must hold distinct frame objects")

        self._frames: List[BaseFrame] = list(frames)
        self._index: Dict[FrameRole, int] = {role: role.value for role in FrameRole}

    def __getitem__(self, role: FrameRole) -> BaseFrame:
        return self._frames[self._index[role]]

    @property
    def reference(self) -> BaseFrame:
        return self[FrameRole.REFERENCE]

    @property
    def current(self) -> BaseFrame:
        return self[FrameRole.CURRENT]

    @property
    def previous(self) -> BaseFrame:
        return self[FrameRole.PREVIOUS]

    def swap(self, first: FrameRole, second: FrameRole):
        """Exchange the frames held by two roles."""
        self._index[first], self._index[second] = self._index[second], self._index[first]

    def templated_roles(self) -> List[FrameRole]:
        return [role for role in FrameRole if self[role].has_template()]

    def index_of(self, role: FrameRole) -> int:
        """Position of the frame playing ``role`` in the fixed frame list."""
        return self._index[role]
