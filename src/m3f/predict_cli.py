#!/usr/bin/env python3
"""
Score (user, item) dyads with M3F posterior samples.

Inputs:
  - --samples: `.npz` written by `M3FSampleSet.save_npz`, or an ArviZ NetCDF trace (`.nc`).
  - --dyads: CSV or Parquet with 1-based user/item id columns, optional sampled topic columns
    (z_u / z_m) and an optional rating column.

Outputs under --output-dir:
  - predictions.csv (input columns + `pred`)
  - config.json
  - metrics.json (only when --rating-col is present in the dyads file)
"""

from __future__ import annotations

import argparse
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import time

import numpy as np
import pandas as pd

from .metrics import PredictionErrorStats
from .predict import DEFAULT_CHUNK_SIZE, PredictionTerms, predict_dyads
from .samples import load_samples
from .validation import M3FInputError

LOGGER = logging.getLogger(__name__)

MAX_NUM_THREADS = 8


def _setup_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s", force=True)
    for noisy in ("arviz",):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Posterior-predictive scores for M3F dyads.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--samples",
        type=Path,
        required=True,
        help="Posterior samples (.npz sample set or ArviZ .nc trace).",
    )
    parser.add_argument(
        "--dyads", type=Path, required=True, help="CSV or Parquet file of dyads to score."
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Output directory (writes predictions.csv, config.json, metrics.json).",
    )
    parser.add_argument("--user-col", type=str, default="user", help="1-based user id column.")
    parser.add_argument("--item-col", type=str, default="item", help="1-based item id column.")
    parser.add_argument(
        "--z-u-col",
        type=str,
        default=None,
        help="Optional column of sampled user topics (1-based). Omit to integrate topics out.",
    )
    parser.add_argument(
        "--z-m-col",
        type=str,
        default=None,
        help="Optional column of sampled item topics (1-based). Omit to integrate topics out.",
    )
    parser.add_argument(
        "--rating-col",
        type=str,
        default="rating",
        help="Rating column used for RMSE/MAE when present in the dyads file.",
    )
    parser.add_argument(
        "--n-draws",
        type=int,
        default=0,
        help="Number of posterior draws to average over (0 = all).",
    )
    parser.add_argument("--no-base", action="store_true", help="Exclude chi + <a, b>.")
    parser.add_argument(
        "--no-c-offsets", action="store_true", help="Exclude item-topic offsets c."
    )
    parser.add_argument(
        "--no-d-offsets", action="store_true", help="Exclude user-topic offsets d."
    )
    parser.add_argument(
        "--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Dyads per work unit."
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=min(MAX_NUM_THREADS, os.cpu_count() or 1),
        help="Worker threads for scoring.",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Check id ranges and sample shapes before scoring (off by default).",
    )
    return parser.parse_args(argv)


def _read_dyads(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Dyads file not found: {path}")
    if path.suffix.lower() == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def main(argv: list[str] | None = None) -> None:
    _setup_logging()
    args = parse_args(argv)

    if not args.samples.exists():
        raise SystemExit(f"Samples file not found: {args.samples}")
    dyads = _read_dyads(args.dyads)

    required = [args.user_col, args.item_col]
    for optional in (args.z_u_col, args.z_m_col):
        if optional is not None:
            required.append(optional)
    missing = [c for c in required if c not in dyads.columns]
    if missing:
        raise SystemExit(f"Dyads file missing required columns: {missing}")

    n_draws = int(args.n_draws) if int(args.n_draws) > 0 else None
    try:
        samples = load_samples(args.samples, n_draws=n_draws)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    terms = PredictionTerms(
        add_base=not args.no_base,
        add_c=not args.no_c_offsets,
        add_d=not args.no_d_offsets,
    )
    LOGGER.info(
        "[m3f_predict] Start dyads=%d samples=%d terms=%s n_jobs=%d chunk_size=%d",
        len(dyads),
        len(samples),
        terms,
        int(args.n_jobs),
        int(args.chunk_size),
    )

    z_u = dyads[args.z_u_col].to_numpy() if args.z_u_col is not None else None
    z_m = dyads[args.z_m_col].to_numpy() if args.z_m_col is not None else None

    t_start = time.time()
    try:
        preds = predict_dyads(
            dyads[args.user_col].to_numpy(),
            dyads[args.item_col].to_numpy(),
            samples,
            z_u,
            z_m,
            terms,
            chunk_size=int(args.chunk_size),
            n_jobs=int(args.n_jobs),
            validate=bool(args.validate),
        )
    except M3FInputError as exc:
        raise SystemExit(f"Invalid prediction inputs: {exc}") from exc
    elapsed = time.time() - t_start
    LOGGER.info("[m3f_predict] Scored %d dyads in %.2fs", preds.size, elapsed)

    out_dir = args.output_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    out_df = dyads.copy()
    out_df["pred"] = preds
    preds_path = out_dir / "predictions.csv"
    out_df.to_csv(preds_path, index=False)

    config = {
        "artifact_type": "m3f_predictions",
        "created_at": datetime.now().isoformat(timespec="seconds"),
        "samples": str(args.samples),
        "dyads": str(args.dyads),
        "n_dyads": int(preds.size),
        "n_samples": int(len(samples)),
        "terms": {"add_base": terms.add_base, "add_c": terms.add_c, "add_d": terms.add_d},
        "z_u_col": args.z_u_col,
        "z_m_col": args.z_m_col,
        "chunk_size": int(args.chunk_size),
        "n_jobs": int(args.n_jobs),
        "validate": bool(args.validate),
        "elapsed_sec": float(elapsed),
    }
    config_path = out_dir / "config.json"
    config_path.write_text(json.dumps(config, indent=2))

    metrics_path = None
    if args.rating_col in dyads.columns:
        stats = PredictionErrorStats()
        stats.update(pred=preds, y_true=dyads[args.rating_col].to_numpy(dtype=np.float64))
        metrics = stats.to_metrics()
        metrics_path = out_dir / "metrics.json"
        metrics_path.write_text(json.dumps(metrics, indent=2))
        LOGGER.info(
            "[m3f_predict] n_obs=%d rmse=%.4f mae=%.4f",
            metrics["n_obs"],
            metrics["rmse"],
            metrics["mae"],
        )

    print(f"[m3f_predict] Wrote predictions: {preds_path}", flush=True)
    print(f"[m3f_predict] Wrote config: {config_path}", flush=True)
    if metrics_path is not None:
        print(f"[m3f_predict] Wrote metrics: {metrics_path}", flush=True)


if __name__ == "__main__":
    main()
