import csv
import json
from pathlib import Path

import numpy as np
import pytest

from annflow.core.types import DOING, DONE, LearnEvent
from annflow.data import available_datasets, get_dataset, register_dataset
from annflow.data.registry import DataSpec, DatasetSpec
from annflow.reporting import CsvSink, JsonlSink, PlotAdapter, write_summary
from annflow.reporting.summary import compute_auc


def _event(iteration, error, kind=DOING):
    return LearnEvent(kind=kind, name="backpropagate", iteration=iteration, max_iteration=3, error=error)


def test_synthetic_datasets_are_registered_and_seeded():
    assert {"sine", "sine-sequence", "gaussian"} <= set(available_datasets())

    first = get_dataset("sine", n_points=8, seed=1)
    second = get_dataset("sine", n_points=8, seed=1)
    assert len(first) == 8
    assert first.items == second.items
    assert first.data_spec.task_type == "regression"

    sequences = get_dataset("sine-sequence", n_sequences=3, length=4)
    assert len(sequences) == 3
    assert all(len(seq) == 4 for seq in sequences.items)
    assert sequences.data_spec.length == 4
    # each window predicts the next point of the wave
    assert sequences.items[0][0].output == sequences.items[0][1].input

    samples = get_dataset("gaussian", n_samples=5, dim=3).items
    assert np.asarray(samples).shape == (5, 3)
    assert np.all((np.asarray(samples) > 0) & (np.asarray(samples) < 1))


def test_registry_rejects_unknown_and_invalid():
    with pytest.raises(KeyError):
        get_dataset("missing")

    @register_dataset("broken-task")
    def _broken(**_):
        return DatasetSpec("broken-task", [], DataSpec(d_in=1, d_out=1, task_type="vision"), {})

    with pytest.raises(ValueError):
        get_dataset("broken-task")


def test_jsonl_and_csv_sinks_share_row_schema(tmp_path):
    jsonl = JsonlSink(tmp_path / "metrics.jsonl", seed=3, sha="abc")
    sink = CsvSink(tmp_path / "metrics.csv")
    for i, error in enumerate([0.5, float("nan"), 0.25], start=1):
        jsonl.on_doing(_event(i, error))
        sink.on_doing(_event(i, error))

    rows = [json.loads(line) for line in jsonl.path.read_text().splitlines()]
    assert rows[0] == {"seed": 3, "sha": "abc", "iteration": 1, "mode": "backpropagate", "error": 0.5}
    assert "error" not in rows[1]

    with sink.path.open(newline="") as handle:
        table = list(csv.DictReader(handle))
    assert [row["iteration"] for row in table] == ["1", "2", "3"]
    assert table[1]["error"] == ""


def test_summary_is_stable(tmp_path):
    metrics = tmp_path / "metrics.jsonl"
    metrics.write_text(
        "\n".join(json.dumps({"iteration": i, "seed": 1, "error": e}) for i, e in enumerate([1.0, 0.5, 0.25], 1))
    )
    path = write_summary(metrics, tmp_path / "summary.json", tail=2)
    summary = json.loads(Path(path).read_text())
    stats = summary["metrics"]["error"]
    assert summary["records"] == 3
    assert summary["tail_window"] == 2
    assert set(summary["metrics"]) == {"error"}
    assert summary["iterations"] == 3
    assert stats["first"] == 1.0
    assert stats["argmin"] == 2
    assert stats["last"] == 0.25
    assert stats["tail_auc"] == pytest.approx(0.375)
    assert compute_auc([]) == 0.0


def test_plot_adapter_writes_curve_on_done(tmp_path):
    adapter = PlotAdapter(tmp_path, enable_plots=True)
    adapter.on_doing(_event(1, 0.4))
    adapter.on_doing(_event(2, 0.2))
    adapter.on_done(_event(2, 0.2, kind=DONE))
    assert adapter.plot_path == tmp_path / "errors.png"
    assert adapter.plot_path.exists()

    disabled = PlotAdapter(tmp_path / "off")
    disabled.on_doing(_event(1, 0.4))
    disabled.on_done(_event(1, 0.4, kind=DONE))
    assert disabled.plot_path is None
    assert not (tmp_path / "off").exists()
