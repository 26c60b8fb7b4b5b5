import json
from pathlib import Path

import pytest

from annflow.training import pipelines


def _config(tmp_path, name, run):
    config = pipelines.load_preset(name)
    config["train"]["run_dir"] = str(tmp_path / run)
    return config


def test_pipeline_produces_artifacts(tmp_path):
    config = _config(tmp_path, "sine-mlp", "run")
    config["train"]["learn"]["net_learn_max_iteration"] = 5

    result = pipelines.run_pipeline(config)
    assert result.iterations == 5
    run_dir = Path(config["train"]["run_dir"])
    for name in ("metrics.jsonl", "metrics.csv", "manifest.json", "summary.json", "params.json", "config.json"):
        assert (run_dir / name).exists(), name

    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["config"]["train"]["seed"] == 7
    assert manifest["dataset"]["type"] == "synthetic"
    assert manifest["model"].startswith("Network(network: 1-4-1")

    metrics = [json.loads(line) for line in Path(result.metrics_path).read_text().splitlines() if line]
    assert [entry["iteration"] for entry in metrics] == [1, 2, 3, 4, 5]
    first = metrics[0]
    assert first["mode"] == "backpropagate"
    assert first["seed"] == 7
    assert "sha" in first
    assert all("error" in entry for entry in metrics)

    csv_lines = (run_dir / "metrics.csv").read_text().splitlines()
    assert csv_lines[0] == "iteration,mode,error"
    assert len(csv_lines) == 6

    summary = json.loads(Path(result.summary_path).read_text())
    assert summary["records"] == 5
    assert set(summary["metrics"]) == {"error"}

    params = json.loads(Path(result.params_path).read_text())
    assert [layer["size"] for layer in params["networks"][0]["layers"]] == [1, 4, 1]


def test_pipeline_is_deterministic(tmp_path):
    config = _config(tmp_path, "sine-mlp", "run_a")
    config["train"]["learn"]["net_learn_max_iteration"] = 6
    first = pipelines.run_pipeline(config)

    config["train"]["run_dir"] = str(tmp_path / "run_b")
    second = pipelines.run_pipeline(config)

    assert Path(first.metrics_path).read_bytes() == Path(second.metrics_path).read_bytes()
    assert Path(first.summary_path).read_bytes() == Path(second.summary_path).read_bytes()
    assert Path(first.params_path).read_bytes() == Path(second.params_path).read_bytes()


@pytest.mark.parametrize(
    "name",
    ["sine-mlp-online", "sine-stack", "sequence-rnn", "sequence-lstm", "nf-flow", "gan-gaussian"],
)
def test_every_preset_runs(tmp_path, name):
    config = _config(tmp_path, name, name)
    config["train"]["learn"]["net_learn_max_iteration"] = 2
    result = pipelines.run_pipeline(config)
    assert result.iterations >= 1
    assert Path(result.metrics_path).read_text().strip()
    params = json.loads(Path(result.params_path).read_text())
    assert params["networks"]


def test_pipeline_rejects_unknown_choices(tmp_path):
    config = _config(tmp_path, "sine-mlp", "bad_mode")
    config["train"]["mode"] = "minibatch"
    with pytest.raises(ValueError):
        pipelines.run_pipeline(config)

    config = _config(tmp_path, "sine-mlp", "bad_kind")
    config["model"]["kind"] = "transformer"
    with pytest.raises(ValueError):
        pipelines.run_pipeline(config)

    with pytest.raises(KeyError):
        pipelines.load_preset("missing")
