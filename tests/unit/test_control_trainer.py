import logging
import threading

import pytest

from annflow.core.activations import Identity
from annflow.core.topology import Network, NetworkAssoc
from annflow.core.types import DOING, DONE
from annflow.core.values import record, to_floats
from annflow.training.config import LearnConfig
from annflow.training.control import LearnControl
from annflow.training.trainer import Trainer


class _Recorder:
    def __init__(self):
        self.doing = []
        self.done = []

    def on_doing(self, event):
        self.doing.append(event)

    def on_done(self, event):
        self.done.append(event)


def _identity_net():
    net = Network(Identity())
    net.initialize(1, 1)
    NetworkAssoc(net).set_weights(1.0)
    return net


def test_control_state_machine():
    control = LearnControl()
    assert not control.pause()
    assert not control.resume()
    assert not control.stop()
    assert control.start()
    assert not control.start()
    assert control.pause()
    assert control.paused
    assert not control.pause()
    assert control.resume()
    assert control.checkpoint()
    assert control.stop()
    assert not control.checkpoint()
    assert not control.started


def test_single_iteration_reaches_target():
    net = _identity_net()
    recorder = _Recorder()
    trainer = Trainer(net, listeners=[recorder])
    error = trainer.learn([record([1.0], [2.0])], max_iteration=1, learning_rate=0.5)
    assert to_floats(error) == [1.0]
    assert to_floats(net.evaluate([1.0])) == [pytest.approx(2.0)]
    assert trainer.iteration == 1
    assert [e.kind for e in recorder.doing] == [DOING]
    assert [e.kind for e in recorder.done] == [DONE]
    assert recorder.done[0].message.startswith("At final iteration 1\nThe learned result is:\n")
    assert not trainer.running


def test_terminate_error_stops_below_threshold():
    net = _identity_net()
    config = LearnConfig(terminate_error=True, learning_rate_fixed=True)
    trainer = Trainer(net, config)
    trainer.learn([record([1.0], [2.0])], learning_rate=0.5, terminated_threshold=0.5, max_iteration=10)
    assert trainer.iteration == 2


def test_runs_to_max_iteration_without_termination():
    net = _identity_net()
    trainer = Trainer(net, LearnConfig(learning_rate=0.1))
    trainer.learn_one([record([1.0], [2.0]), record([2.0], [3.0])], max_iteration=4)
    assert trainer.iteration == 4


def test_learning_rate_schedule():
    trainer = Trainer(_identity_net())
    assert trainer.calc_learning_rate(0.5, 0) == 0.5
    assert trainer.calc_learning_rate(0.5, 1) == 0.5
    assert trainer.calc_learning_rate(0.5, 4) == pytest.approx(0.25)
    fixed = Trainer(_identity_net(), LearnConfig(learning_rate_fixed=True))
    assert fixed.calc_learning_rate(0.5, 4) == 0.5


def test_resample_is_seeded_bootstrap():
    records = list(range(6))
    first = Trainer(_identity_net(), LearnConfig(resample=True, seed=3))
    second = Trainer(_identity_net(), LearnConfig(resample=True, seed=3))
    assert first.resample(records, 1) == records
    drawn = first.resample(records, 2)
    assert drawn == second.resample(records, 2)
    assert len(drawn) == len(records)
    assert set(drawn) <= set(records)
    assert Trainer(_identity_net()).resample(records, 5) == records


def test_rejected_calls_return_none(caplog):
    net = _identity_net()
    trainer = Trainer(net)
    with caplog.at_level(logging.WARNING):
        assert net.learn_lock.acquire()
        try:
            assert trainer.learn([record([1.0], [2.0])]) is None
        finally:
            net.learn_lock.release()
        assert Trainer(Network()).learn([record([1.0], [2.0])]) is None
    assert "already learning" in caplog.text
    assert "nothing to learn" in caplog.text


def test_pause_blocks_at_checkpoint_until_resumed():
    net = _identity_net()
    control = LearnControl()
    recorder = _Recorder()

    def pause_once(event):
        if len(recorder.doing) == 1:
            control.pause()

    class _Pauser:
        def on_doing(self, event):
            pause_once(event)

    trainer = Trainer(net, LearnConfig(learning_rate=0.1), [recorder, _Pauser()], control)
    worker = threading.Thread(target=trainer.learn, args=([record([1.0], [5.0])],), kwargs={"max_iteration": 5})
    worker.start()
    try:
        assert control.wait_until_blocked(5)
        assert len(recorder.doing) == 1
        assert control.paused
    finally:
        control.resume()
        worker.join(5)
    assert not worker.is_alive()
    assert len(recorder.doing) == 5
    assert len(recorder.done) == 1


def test_stop_from_listener_finishes_current_iteration():
    net = _identity_net()
    control = LearnControl()
    recorder = _Recorder()

    def stopper(event):
        if event.kind == DOING:
            control.stop()

    trainer = Trainer(net, LearnConfig(learning_rate=0.1), [recorder, stopper], control)
    trainer.learn([record([1.0], [5.0])], max_iteration=50)
    assert trainer.iteration == 1
    assert len(recorder.done) == 1


def test_listener_failures_are_logged(caplog):
    def broken(event):
        raise RuntimeError("listener bug")

    trainer = Trainer(_identity_net(), listeners=[broken])
    with caplog.at_level(logging.ERROR):
        trainer.learn([record([1.0], [2.0])], max_iteration=1)
    assert "Listener" in caplog.text
    trainer.remove_listener(broken)
    assert trainer.listeners == []
