import numpy as np
import pytest

from annflow.core.topology import NetworkAssoc
from annflow.core.types import DOING, DONE
from annflow.core.values import to_floats
from annflow.data.synthetic import unit_interval_samples
from annflow.gen import NormalizingFlow
from annflow.training.config import LearnConfig
from annflow.training.control import LearnControl


def _weights(nf):
    return [to_floats([edge.weight.value])[0] for edge in NetworkAssoc(nf.decoder).edges()]


def test_inverse_only_flow_starts_from_unit_weights():
    nf = NormalizingFlow(config=LearnConfig(seed=1))
    nf.initialize(2, hidden=[3])
    assert nf.inverse_only
    assert nf.z_dim == 2
    assert set(_weights(nf)) == {1.0}


def test_bidirectional_flow_starts_from_random_weights():
    nf = NormalizingFlow(config=LearnConfig(seed=1, bidirection_learning=True))
    nf.initialize(2)
    assert not nf.inverse_only
    assert len(set(_weights(nf))) > 1


def test_latent_draws_follow_config():
    nf = NormalizingFlow(config=LearnConfig(seed=5, random_z_data=False))
    nf.initialize(3, z_dim=2)
    assert nf.sample_z(4).shape == (4, 2)
    assert not nf.sample_z(4).any()

    seeded = [NormalizingFlow(config=LearnConfig(seed=5)) for _ in range(2)]
    for nf in seeded:
        nf.initialize(3, z_dim=2)
    np.testing.assert_allclose(seeded[0].sample_z(3), seeded[1].sample_z(3))


def test_make_records_pairs_latent_with_observed():
    nf = NormalizingFlow(config=LearnConfig(seed=2))
    nf.initialize(2, z_dim=1)
    records = nf.make_records([[0.2, 0.4], [0.6, 0.8]])
    assert len(records) == 2
    assert len(records[0].input) == 1
    assert to_floats(records[1].output) == pytest.approx([0.6, 0.8])


def test_inverse_learning_runs_and_restores_mode():
    nf = NormalizingFlow(config=LearnConfig(seed=3, learning_rate=0.05))
    nf.initialize(2)
    samples = unit_interval_samples(8, 2, seed=3)
    error = nf.learn(samples, max_iteration=3)
    assert error is not None
    assert nf.iterations == 3
    assert nf.bp.inverse_mode
    assert _weights(nf) != [1.0] * 4


def _record_modes(nf, monkeypatch):
    modes = []
    update = nf.bp.update_weights_biases

    def spy(*args, **kwargs):
        modes.append(nf.bp.inverse_mode)
        return update(*args, **kwargs)

    monkeypatch.setattr(nf.bp, "update_weights_biases", spy)
    return modes


def test_bidirectional_batch_alternates_within_each_step(monkeypatch):
    config = LearnConfig(seed=4, learning_rate=0.05, bidirection_learning=True)
    nf = NormalizingFlow(config=config)
    nf.initialize(2)
    modes = _record_modes(nf, monkeypatch)
    nf.learn(unit_interval_samples(8, 2, seed=4), max_iteration=2)
    assert modes == [False, True, False, True]
    assert nf.iterations == 2
    assert nf.bp.inverse_mode


def test_bidirectional_per_record_alternates_per_record(monkeypatch):
    config = LearnConfig(seed=4, learning_rate=0.05, bidirection_learning=True)
    nf = NormalizingFlow(config=config)
    nf.initialize(2)
    modes = _record_modes(nf, monkeypatch)
    nf.learn(unit_interval_samples(2, 2, seed=4), per_record=True, max_iteration=1)
    assert modes == [False, True, False, True]
    assert nf.iterations == 1
    assert nf.bp.inverse_mode


def test_ordinary_flow_runs_one_pass_per_step(monkeypatch):
    nf = NormalizingFlow(config=LearnConfig(seed=4, inverse_learning=False))
    nf.initialize(2)
    modes = _record_modes(nf, monkeypatch)
    nf.learn(unit_interval_samples(4, 2, seed=4), max_iteration=2)
    assert modes == [False, False]
    assert not nf.bp.inverse_mode


def test_rejected_learn_leaves_latent_stream_and_counters():
    nf = NormalizingFlow(config=LearnConfig(seed=8))
    twin = NormalizingFlow(config=LearnConfig(seed=8))
    for flow in (nf, twin):
        flow.initialize(2)
    with nf.learn_lock:
        assert nf.learn(unit_interval_samples(4, 2, seed=8), max_iteration=2) is None
    assert nf.iterations == 0
    np.testing.assert_allclose(nf.sample_z(3), twin.sample_z(3))


def test_stop_during_bidirectional_step_ends_learning():
    config = LearnConfig(seed=9, learning_rate=0.05, bidirection_learning=True)
    nf = NormalizingFlow(config=config)
    nf.initialize(2)
    control = LearnControl()
    kinds = []

    def stop_on_first_step(event):
        kinds.append(event.kind)
        if event.kind == DOING:
            control.stop()

    nf.learn(unit_interval_samples(4, 2, seed=9), listeners=[stop_on_first_step], control=control, max_iteration=5)
    assert nf.iterations == 1
    assert kinds == [DOING, DONE]


def test_generate_and_decode_shapes():
    nf = NormalizingFlow(config=LearnConfig(seed=6))
    nf.initialize(3, z_dim=2)
    generated = nf.generate(4)
    assert len(generated) == 4
    assert all(len(x) == 3 for x in generated)
    assert all(0.0 <= v <= 1.0 for x in generated for v in x)
    assert len(nf.decode([0.0, 0.0])) == 3
    assert nf.describe().startswith("NormalizingFlow(nf: z=2")
