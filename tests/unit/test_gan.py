import numpy as np
import pytest

from annflow.core.activations import Identity, Logistic
from annflow.core.topology import Network, NetworkAssoc
from annflow.core.values import ScalarValue, to_floats
from annflow.data.synthetic import unit_interval_samples
from annflow.gen import GenerativeAdversarialNetwork
from annflow.gen.gan import (
    AdversarialBackpropagator,
    DecoderBackpropagator,
    fake_error,
    real_error,
)
from annflow.training.config import LearnConfig


def _scorer(weight):
    # Logistic centred at 0.5: a bias of 0.5 scores an input of 0 at exactly 0.5.
    net = Network(Logistic(), backpropagator=AdversarialBackpropagator(), name="scorer")
    net.initialize(1, 1)
    NetworkAssoc(net).set_weights(weight)
    net.output_layer[0].bias = ScalarValue(0.5)
    return net


def test_real_and_fake_errors_push_score_apart():
    net = _scorer(0.0)
    net.evaluate([0.0])
    neuron = net.output_layer[0]
    assert to_floats([neuron.output]) == pytest.approx([0.5])
    # f'(a) = 0.5 * 0.5 * 0.5
    assert to_floats([real_error(neuron)]) == pytest.approx([0.25])
    assert to_floats([fake_error(neuron)]) == pytest.approx([-0.25])


def test_labels_pick_the_error_direction():
    net = _scorer(0.0)
    net.evaluate([0.0])
    layer = net.output_layer
    assert to_floats(net.bp.output_errors(layer, [ScalarValue(1.0)])) == pytest.approx([0.25])
    assert to_floats(net.bp.output_errors(layer, [ScalarValue(0.0)])) == pytest.approx([-0.25])
    assert net.bp.output_errors(layer, None) is None


def test_input_errors_carry_score_back_through_weights():
    net = _scorer(2.0)
    errors = net.bp.input_errors(net, [ScalarValue(0.0)])
    assert to_floats(errors) == pytest.approx([0.5])


def test_decoder_error_adds_adversarial_push():
    adversary = _scorer(2.0)
    decoder = Network(Identity(), backpropagator=DecoderBackpropagator(adversary), name="decoder")
    decoder.initialize(1, 1)
    decoder.evaluate([1.0])
    errors = decoder.bp.output_errors(decoder.output_layer, [ScalarValue(1.0)])
    # squared error 1 plus push 0.5 scaled by the identity derivative
    assert to_floats(errors) == pytest.approx([1.5])

    plain = Network(Identity(), backpropagator=DecoderBackpropagator(), name="plain")
    plain.initialize(1, 1)
    plain.evaluate([1.0])
    assert to_floats(plain.bp.output_errors(plain.output_layer, [ScalarValue(1.0)])) == pytest.approx([1.0])


def test_initialize_mirrors_decoder_in_adversary():
    gan = GenerativeAdversarialNetwork(config=LearnConfig(seed=1))
    assert gan.initialize(3, z_dim=2, hidden=[4, 5])
    assert [layer.size() for layer in gan.decoder.layers] == [2, 4, 5, 3]
    assert [layer.size() for layer in gan.adversary.layers] == [3, 5, 4, 1]
    assert isinstance(gan.adversary.activation, Logistic)
    assert gan.can_learn()
    assert 0.0 < gan.score([0.1, 0.2, 0.3]) < 1.0
    assert gan.describe().startswith("GenerativeAdversarialNetwork(gan: z=2")


def test_adversary_records_alternate_real_and_generated():
    gan = GenerativeAdversarialNetwork(config=LearnConfig(seed=2))
    gan.initialize(2, z_dim=1, hidden=[3])
    sample = gan.make_records([[0.2, 0.4], [0.6, 0.8]])
    records = gan.adversary_records(sample)
    assert [to_floats(rec.output) for rec in records] == [[1.0], [0.0], [1.0], [0.0]]
    assert to_floats(records[0].input) == pytest.approx([0.2, 0.4])
    assert all(len(rec.input) == 2 for rec in records)

    decoder_records = gan.decoder_records(sample)
    assert len(decoder_records) == 2
    assert all(len(rec.input) == 1 for rec in decoder_records)
    assert to_floats(decoder_records[1].output) == pytest.approx([0.6, 0.8])


def test_learning_updates_both_networks_deterministically():
    def trained(seed):
        gan = GenerativeAdversarialNetwork(config=LearnConfig(seed=seed, learning_rate=0.2))
        gan.initialize(2, z_dim=2, hidden=[3])
        before = (NetworkAssoc(gan.decoder).parameters(), NetworkAssoc(gan.adversary).parameters())
        error = gan.learn(unit_interval_samples(6, 2, seed=seed), max_iteration=3)
        assert error is not None
        assert gan.iterations == 3
        after = (NetworkAssoc(gan.decoder).parameters(), NetworkAssoc(gan.adversary).parameters())
        assert before[0] != after[0]
        assert before[1] != after[1]
        return after

    assert trained(11) == trained(11)


def test_per_record_learning_runs_every_discriminate_step(monkeypatch):
    config = LearnConfig(seed=3, learning_rate=0.2, discriminate_steps=2)
    gan = GenerativeAdversarialNetwork(config=config)
    gan.initialize(2, z_dim=1)
    calls = []
    update = gan.adversary.bp.update_weights_biases

    def spy(*args, **kwargs):
        calls.append(1)
        return update(*args, **kwargs)

    monkeypatch.setattr(gan.adversary.bp, "update_weights_biases", spy)
    error = gan.learn(unit_interval_samples(3, 2, seed=3), per_record=True, max_iteration=1)
    assert error is not None
    assert gan.iterations == 1
    # 3 records, 2 adversary steps each, one real and one generated record per step
    assert len(calls) == 3 * 2 * 2


def test_generate_stays_in_activation_range():
    gan = GenerativeAdversarialNetwork(config=LearnConfig(seed=5))
    gan.initialize(2, z_dim=2)
    samples = gan.generate(4)
    assert np.shape(samples) == (4, 2)
    assert all(0.0 <= v <= 1.0 for x in samples for v in x)
