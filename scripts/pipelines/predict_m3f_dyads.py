#!/usr/bin/env python3
"""
Score (user, item) dyads with M3F posterior samples.

Thin wrapper around `src.m3f.predict_cli` so the CLI can be run from a checkout without
installing the package:

  python scripts/pipelines/predict_m3f_dyads.py --samples samples.npz --dyads test.csv \
      --output-dir output/m3f_predict
"""

from __future__ import annotations

from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.m3f.predict_cli import main  # noqa: E402


if __name__ == "__main__":
    main()
