"""
Algorithm parameters for the visual odometry session.

Parameters are immutable once a session starts. They can be built from a plain
configuration dictionary (the same style the rest of the library uses for its
components) or from a YAML file.
"""
import dataclasses
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlgorithmParameters:
    """Configuration of the tracker, the keyframing rules and the estimator."""

    # Pyramid
    num_pyramid_levels: int = -1  # <= 0 means derive from the image size
    min_image_dimension_for_pyramid: int = 40
    max_test_level: int = 0

    # Result validation
    max_solution_error: float = 1e3

    # Keyframing
    min_translation_mag_to_keyframe: float = 0.1
    min_rotation_mag_to_keyframe: float = math.radians(2.5)
    max_fraction_of_good_points_to_keyframe: float = 0.6
    good_point_threshold: float = 0.75

    # Pose estimator
    max_iterations: int = 50
    parameter_tolerance: float = 1e-6
    function_tolerance: float = 1e-6
    huber_scale: float = 1.345
    min_num_pixels_to_work: int = 16

    # Template extraction
    min_saliency: float = 5.0
    min_valid_disparity: float = 1.0
    max_valid_disparity: float = 512.0

    def __post_init__(self):
        if self.min_image_dimension_for_pyramid <= 0:
            raise ValueError("min_image_dimension_for_pyramid must be positive")
        if self.max_test_level < 0:
            raise ValueError(f"max_test_level must be >= 0, got {self.max_test_level}")
        if self.num_pyramid_levels > 0 and self.max_test_level >= self.num_pyramid_levels:
            raise ValueError(
                f"max_test_level ({self.max_test_level}) must be smaller than "
                f"num_pyramid_levels ({self.num_pyramid_levels})"
            )
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if not 0.0 <= self.max_fraction_of_good_points_to_keyframe <= 1.0:
            raise ValueError("max_fraction_of_good_points_to_keyframe must be in [0, 1]")
        if self.min_valid_disparity > self.max_valid_disparity:
            raise ValueError("min_valid_disparity must not exceed max_valid_disparity")

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "AlgorithmParameters":
        """
        Create parameters from a configuration dictionary.

        Args:
            config: Mapping of parameter names to values. Missing keys take
                their defaults, unknown keys are ignored with a warning.

        Returns:
            AlgorithmParameters
        """
        config = config if config is not None else {}
        known = {f.name: f for f in dataclasses.fields(cls)}

        values = {}
        for key, value in config.items():
            if key not in known:
                logger.warning(f"Ignoring unknown parameter '{key}'")
                continue
            values[key] = type(known[key].default)(value)

        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "AlgorithmParameters":
        """
        Load parameters from a YAML file.

        The file may hold the parameters at the top level or under an
        ``algorithm`` key.
        """
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError(f"Expected a mapping in {path}, got {type(config).__name__}")

        return cls.from_config(config.get("algorithm", config))

    def with_image_size(self, rows: int, cols: int) -> "AlgorithmParameters":
        """
        Resolve the number of pyramid levels for a given image size.

        Returns:
            A copy with ``num_pyramid_levels`` set. Parameters that already
            fix the level count are returned unchanged.
        """
        if self.num_pyramid_levels > 0:
            return self

        num_levels = 1 + int(
            round(math.log2(min(rows, cols) / float(self.min_image_dimension_for_pyramid)))
        )
        num_levels = max(num_levels, 1)
        logger.info(f"auto pyramid level set to {num_levels}")

        return dataclasses.replace(self, num_pyramid_levels=num_levels)

    def to_dict(self) -> Dict:
        return dataclasses.asdict(self)
