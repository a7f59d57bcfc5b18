from __future__ import annotations

import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

import scripts.pipelines.predict_m3f_dyads as predict_script
from src.m3f import predict_cli
from src.m3f.predict import predict_dyads
from src.m3f.samples import M3FSampleSet
from src.m3f.synthetic import generate_synthetic_dyads, generate_synthetic_samples


def _write_inputs(tmp_path: Path) -> tuple[Path, Path, M3FSampleSet, pd.DataFrame]:
    samples = generate_synthetic_samples(
        n_users=8, n_items=6, n_factors=2, n_user_topics=3, n_item_topics=2, n_samples=4
    )
    samples_path = tmp_path / "samples.npz"
    samples.save_npz(samples_path)

    dyads = generate_synthetic_dyads(8, 6, n_dyads=25, random_seed=5, n_user_topics=3, n_item_topics=2)
    dyads["rating"] = np.linspace(1.0, 5.0, len(dyads))
    dyads_path = tmp_path / "dyads.csv"
    dyads.to_csv(dyads_path, index=False)
    return samples_path, dyads_path, samples, dyads


def test_cli_writes_predictions_config_and_metrics(tmp_path: Path) -> None:
    samples_path, dyads_path, samples, dyads = _write_inputs(tmp_path)
    out_dir = tmp_path / "out"

    predict_cli.main(
        [
            "--samples",
            str(samples_path),
            "--dyads",
            str(dyads_path),
            "--output-dir",
            str(out_dir),
            "--chunk-size",
            "7",
            "--n-jobs",
            "2",
            "--validate",
        ]
    )

    out = pd.read_csv(out_dir / "predictions.csv")
    expected = predict_dyads(dyads["user"].to_numpy(), dyads["item"].to_numpy(), samples)
    assert np.allclose(out["pred"].to_numpy(), expected)

    cfg = json.loads((out_dir / "config.json").read_text())
    assert cfg["artifact_type"] == "m3f_predictions"
    assert cfg["n_samples"] == 4
    assert cfg["terms"] == {"add_base": True, "add_c": True, "add_d": True}

    metrics = json.loads((out_dir / "metrics.json").read_text())
    rmse = float(np.sqrt(np.mean(np.square(expected - dyads["rating"].to_numpy()))))
    assert metrics["n_obs"] == len(dyads)
    assert metrics["rmse"] == pytest.approx(rmse)


def test_cli_uses_topic_columns_and_term_flags(tmp_path: Path) -> None:
    samples_path, dyads_path, samples, dyads = _write_inputs(tmp_path)
    out_dir = tmp_path / "out_topics"

    predict_cli.main(
        [
            "--samples",
            str(samples_path),
            "--dyads",
            str(dyads_path),
            "--output-dir",
            str(out_dir),
            "--z-u-col",
            "z_u",
            "--z-m-col",
            "z_m",
            "--no-base",
            "--n-draws",
            "1",
        ]
    )

    out = pd.read_csv(out_dir / "predictions.csv")
    users = dyads["user"].to_numpy()
    items = dyads["item"].to_numpy()
    s = samples[0]
    expected = (
        s.d[items - 1, dyads["z_u"].to_numpy() - 1]
        + s.c[users - 1, dyads["z_m"].to_numpy() - 1]
    )
    assert np.allclose(out["pred"].to_numpy(), expected)


def test_cli_reports_missing_columns(tmp_path: Path) -> None:
    samples_path, _, _, _ = _write_inputs(tmp_path)
    dyads_path = tmp_path / "bad.csv"
    pd.DataFrame({"u": [1], "i": [1]}).to_csv(dyads_path, index=False)

    with pytest.raises(SystemExit, match="missing required columns"):
        predict_cli.main(
            ["--samples", str(samples_path), "--dyads", str(dyads_path), "--output-dir", str(tmp_path)]
        )


def test_cli_rejects_invalid_ids_when_validating(tmp_path: Path) -> None:
    samples_path, _, _, _ = _write_inputs(tmp_path)
    dyads_path = tmp_path / "oob.csv"
    pd.DataFrame({"user": [99], "item": [1]}).to_csv(dyads_path, index=False)

    with pytest.raises(SystemExit, match="Invalid prediction inputs"):
        predict_cli.main(
            [
                "--samples",
                str(samples_path),
                "--dyads",
                str(dyads_path),
                "--output-dir",
                str(tmp_path / "out"),
                "--validate",
            ]
        )


def test_script_wrapper_reads_sys_argv(tmp_path: Path, monkeypatch) -> None:
    samples_path, dyads_path, _, _ = _write_inputs(tmp_path)
    parquet_path = tmp_path / "dyads.parquet"
    pd.read_csv(dyads_path).to_parquet(parquet_path, index=False)
    out_dir = tmp_path / "script_out"

    argv = [
        "predict_m3f_dyads",
        "--samples",
        str(samples_path),
        "--dyads",
        str(parquet_path),
        "--output-dir",
        str(out_dir),
        "--n-jobs",
        "1",
    ]
    monkeypatch.setattr(sys, "argv", argv)
    predict_script.main()

    assert (out_dir / "predictions.csv").exists()
    assert (out_dir / "metrics.json").exists()
