"""
Stereo visual odometry session: the keyframing state machine, its result
types and a sequence runner.
"""

from .runner import run_sequence
from .types import ErrorKind, InvalidInputError, KeyframingReason, Result
from .visual_odometry import VisualOdometry

__all__ = [
    "VisualOdometry",
    "Result",
    "KeyframingReason",
    "ErrorKind",
    "InvalidInputError",
    "run_sequence",
]
