import logging
import math

import pytest

from torchvo.parameters import AlgorithmParameters


def test_defaults():
    params = AlgorithmParameters()
    assert params.num_pyramid_levels == -1
    assert params.max_test_level == 0
    assert params.max_solution_error == 1e3
    assert params.min_translation_mag_to_keyframe == 0.1
    assert params.min_rotation_mag_to_keyframe == pytest.approx(math.radians(2.5))
    assert params.max_fraction_of_good_points_to_keyframe == 0.6
    assert params.good_point_threshold == 0.75


def test_parameters_are_immutable():
    params = AlgorithmParameters()
    with pytest.raises(Exception):
        params.max_test_level = 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_test_level": -1},
        {"num_pyramid_levels": 2, "max_test_level": 2},
        {"min_image_dimension_for_pyramid": 0},
        {"max_iterations": 0},
        {"max_fraction_of_good_points_to_keyframe": 1.5},
        {"min_valid_disparity": 10.0, "max_valid_disparity": 5.0},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        AlgorithmParameters(**kwargs)


def test_auto_pyramid_levels(caplog):
    with caplog.at_level(logging.INFO):
        params = AlgorithmParameters().with_image_size(376, 1241)
    # 1 + round(log2(376 / 40))
    assert params.num_pyramid_levels == 4
    assert "auto pyramid level set to 4" in caplog.text


def test_auto_pyramid_levels_small_image():
    params = AlgorithmParameters().with_image_size(20, 30)
    assert params.num_pyramid_levels == 1


def test_auto_pyramid_levels_rejects_test_level():
    with pytest.raises(ValueError):
        AlgorithmParameters(max_test_level=3).with_image_size(120, 160)


def test_fixed_pyramid_levels_kept():
    params = AlgorithmParameters(num_pyramid_levels=2)
    assert params.with_image_size(480, 640) is params


def test_from_config(caplog):
    config = {"max_test_level": 1, "max_solution_error": 500, "unknown_key": 3}
    with caplog.at_level(logging.WARNING):
        params = AlgorithmParameters.from_config(config)

    assert params.max_test_level == 1
    assert params.max_solution_error == 500.0
    assert isinstance(params.max_solution_error, float)
    assert "unknown_key" in caplog.text


def test_from_config_empty():
    assert AlgorithmParameters.from_config(None) == AlgorithmParameters()


def test_from_yaml(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("algorithm:\n  max_test_level: 1\n  min_saliency: 2.5\n")

    params = AlgorithmParameters.from_yaml(path)
    assert params.max_test_level == 1
    assert params.min_saliency == 2.5


def test_from_yaml_top_level(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("good_point_threshold: 0.5\n")
    assert AlgorithmParameters.from_yaml(path).good_point_threshold == 0.5


def test_from_yaml_not_a_mapping(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        AlgorithmParameters.from_yaml(path)


def test_to_dict_round_trip():
    params = AlgorithmParameters(max_test_level=1, huber_scale=2.0)
    assert AlgorithmParameters.from_config(params.to_dict()) == params
