import dataclasses
import json
import logging

import pytest

from annflow.training.config import (
    LEARN_MAX_ITERATION_DEFAULT,
    LearnConfig,
    load_config,
)


def test_defaults():
    config = LearnConfig()
    assert config.max_iteration == LEARN_MAX_ITERATION_DEFAULT
    assert config.terminated_threshold == pytest.approx(0.001)
    assert config.learning_rate == 1.0
    assert not config.learning_rate_fixed
    assert not config.terminate_error
    assert config.learning_bias
    assert config.inverse_learning
    assert not config.bidirection_learning
    assert config.random_z_data
    assert config.markov_steps == 1


def test_flat_keys_and_field_names_are_read():
    config = LearnConfig.from_mapping(
        {
            "net_learn_max_iteration": "25",
            "net_learn_rate": 0.2,
            "net_learn_rate_fixed": "yes",
            "terminate_error": True,
            "nf_bidirection_learning": 1,
            "seed": 9,
            "hidden": [4, 4],
        }
    )
    assert config.max_iteration == 25
    assert config.learning_rate == pytest.approx(0.2)
    assert config.learning_rate_fixed
    assert config.terminate_error
    assert config.bidirection_learning
    assert config.seed == 9
    assert config.extra == {"hidden": [4, 4]}
    assert config.get("hidden") == [4, 4]
    assert config.get("net_learn_rate") == pytest.approx(0.2)


def test_malformed_values_fall_back_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        config = LearnConfig.from_mapping(
            {
                "net_learn_max_iteration": "many",
                "net_learn_rate": "nan",
                "net_resample": "perhaps",
                "rn_markov_steps": True,
            }
        )
    assert config.max_iteration == LEARN_MAX_ITERATION_DEFAULT
    assert config.learning_rate == 1.0
    assert not config.resample
    assert config.markov_steps == 1
    assert "net_learn_max_iteration" in caplog.text
    assert "net_resample" in caplog.text


def test_markov_steps_clamped_to_one():
    assert LearnConfig.from_mapping({"rn_markov_steps": 0}).markov_steps == 1
    assert LearnConfig.from_mapping({"rn_markov_steps": 3}).markov_steps == 3


def test_merge_returns_new_instance():
    base = LearnConfig.from_mapping({"net_learn_rate": 0.5, "note": "a"})
    merged = base.merge({"net_learn_rate": 0.25, "other": 1})
    assert base.learning_rate == 0.5
    assert merged.learning_rate == 0.25
    assert merged.extra == {"note": "a", "other": 1}
    assert base.merge(None) is base
    with pytest.raises(dataclasses.FrozenInstanceError):
        base.learning_rate = 0.1  # type: ignore[misc]


def test_to_mapping_round_trip():
    config = LearnConfig.from_mapping({"net_learn_terminate_error": True, "seed": 4})
    assert LearnConfig.from_mapping(config.to_mapping()) == config


def test_load_config_json_and_yaml(tmp_path):
    json_path = tmp_path / "learn.json"
    json_path.write_text(json.dumps({"net_learn_max_iteration": 12}))
    assert load_config(json_path).max_iteration == 12

    yaml_path = tmp_path / "learn.yaml"
    yaml_path.write_text("net_learn_rate: 0.3\nnf_inverse_learning: false\n")
    config = load_config(yaml_path)
    assert config.learning_rate == pytest.approx(0.3)
    assert not config.inverse_learning

    empty = tmp_path / "empty.yml"
    empty.write_text("")
    assert load_config(empty) == LearnConfig()


def test_load_config_rejects_bad_files(tmp_path):
    bad_suffix = tmp_path / "learn.toml"
    bad_suffix.write_text("")
    with pytest.raises(ValueError):
        load_config(bad_suffix)

    not_mapping = tmp_path / "list.json"
    not_mapping.write_text("[1, 2]")
    with pytest.raises(TypeError):
        load_config(not_mapping)


def test_discriminate_steps_default_and_floor():
    assert LearnConfig().discriminate_steps == 1
    assert LearnConfig.from_mapping({"gan_discriminate_steps": 3}).discriminate_steps == 3
    assert LearnConfig.from_mapping({"gan_discriminate_steps": 0}).discriminate_steps == 1
