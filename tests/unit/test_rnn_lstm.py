import pytest

from annflow.core.activations import Identity, Tanh
from annflow.core.topology import NetworkAssoc
from annflow.core.values import IndexedValue, ScalarValue, record, to_floats
from annflow.rnn import LongShortTermMemory, RecurrentNetwork
from annflow.rnn.lstm import fold_gates
from annflow.rnn.recurrent import OUTIN, PARALLEL
from annflow.training.config import LearnConfig
from annflow.training.trainer import Trainer


def _rnn(layout, n_states, hidden=None, markov_steps=1):
    rnn = RecurrentNetwork(Identity(), layout=layout, markov_steps=markov_steps)
    rnn.initialize(1, 1, hidden, n_states)
    NetworkAssoc(rnn).set_weights(1.0)
    return rnn


def _sequence_error(model, seq):
    outputs = model.evaluate(seq)
    return sum(abs(to_floats(out)[0] - to_floats(rec.output)[0]) for out, rec in zip(outputs, seq))


def test_unknown_layout_is_rejected():
    with pytest.raises(ValueError):
        RecurrentNetwork(layout="diagonal")


def test_parallel_layout_feeds_previous_state_by_rib():
    rnn = _rnn(PARALLEL, 2)
    assert rnn.state(1).output_layer.prev_layer_implicit is rnn.state(0).output_layer
    assert rnn.evaluate([[3.0]]) == [[ScalarValue(3.0)], [ScalarValue(3.0)]]


def test_outin_layout_reads_one_input_per_state():
    rnn = _rnn(OUTIN, 2)
    assert rnn.evaluate([[1.0], [2.0]]) == [[ScalarValue(1.0)], [ScalarValue(3.0)]]


def test_outin_links_target_first_hidden_layer():
    rnn = _rnn(OUTIN, 2, hidden=[2])
    hidden = rnn.state(1).layers[1]
    assert rnn.state(0).output_layer in hidden.outside_prev_layers


def test_markov_steps_link_farther_states():
    rnn = _rnn(OUTIN, 3, markov_steps=2)
    sources = rnn.state(2).output_layer.outside_prev_layers
    assert sources == [rnn.state(1).output_layer, rnn.state(0).output_layer]
    assert len(rnn) == 3


def test_recurrent_learning_reduces_sequence_error():
    rnn = _rnn(OUTIN, 2)
    seq = [record([1.0], [2.0]), record([1.0], [4.0])]
    before = _sequence_error(rnn, seq)
    trainer = Trainer(rnn, LearnConfig(learning_rate_fixed=True))
    error = trainer.learn([seq], learning_rate=0.05, max_iteration=30)
    assert error is not None
    assert trainer.iteration == 30
    assert _sequence_error(rnn, seq) < before


def test_recurrent_per_sequence_learning_runs():
    rnn = _rnn(PARALLEL, 2, hidden=[2])
    seq = [record([0.5], [0.2]), record([0.0], [0.4])]
    error = rnn.backpropagate_each([seq, []], 0.1)
    assert error is not None
    assert len(error) == 1


def test_fold_gates_combines_cell_state_and_output():
    cell, output = fold_gates(
        ScalarValue(0.5), ScalarValue(1.0), ScalarValue(1.0), ScalarValue(2.0), ScalarValue(0.0), Identity()
    )
    assert cell == ScalarValue(2.0)
    assert output == ScalarValue(2.0)
    cell, output = fold_gates(
        ScalarValue(0.5), ScalarValue(1.0), ScalarValue(0.5), ScalarValue(2.0), ScalarValue(4.0), Identity()
    )
    assert cell == ScalarValue(4.0)
    assert output == ScalarValue(2.0)


def test_cell_evaluator_runs_every_gate():
    lstm = LongShortTermMemory(Identity(), aux=None)
    lstm.initialize(1, 1, None, 1)
    neuron = lstm.state(0).output_layer[0]
    assert lstm.state(0).output_layer.cell is lstm.cell
    neuron.bias = IndexedValue([ScalarValue(v) for v in (0.5, 1.0, 1.0, 2.0)], lstm.cursor)

    assert lstm.evaluate([[0.0]]) == [[ScalarValue(2.0)]]
    assert neuron.cell_state == ScalarValue(2.0)
    assert neuron.cell_output == ScalarValue(2.0)
    assert lstm.cursor.index == 0


def test_lstm_learning_visits_gates_and_resets_cursor():
    lstm = LongShortTermMemory(Tanh())
    lstm.initialize(1, 1, [2], 2)
    NetworkAssoc(lstm).randomize_weights(7)
    seq = [record([0.3], [0.6]), record([0.6], [0.9])]
    trainer = Trainer(lstm, LearnConfig(learning_rate=0.1))
    error = trainer.learn([seq], max_iteration=3)
    assert error is not None
    assert len(error) == 1
    assert lstm.cursor.index == 0
    assert trainer.learn_one([seq], max_iteration=2) is not None
    assert lstm.cursor.index == 0


def test_recurrent_learn_shortcuts_use_trainer():
    rnn = _rnn(PARALLEL, 2)
    seq = [record([1.0], [2.0]), record([0.0], [2.5])]
    done = []
    error = rnn.learn([seq], listeners=[done.append], learning_rate=0.1, max_iteration=2)
    assert error is not None
    assert [event.kind for event in done] == ["doing", "doing", "done"]
    assert rnn.learn_one([seq], config=LearnConfig(learning_rate=0.1), max_iteration=1) is not None
