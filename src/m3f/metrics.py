"""Streaming prediction-error aggregation."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class PredictionErrorStats:
    """Running squared and absolute error sums over scored chunks."""

    n: int = 0
    sum_sq_err: float = 0.0
    sum_abs_err: float = 0.0

    def update(self, *, pred: np.ndarray, y_true: np.ndarray) -> None:
        pred = np.asarray(pred, dtype=np.float64)
        if pred.size == 0:
            return
        err = pred - np.asarray(y_true, dtype=np.float64)
        self.n += int(err.size)
        self.sum_sq_err += float(np.sum(np.square(err)))
        self.sum_abs_err += float(np.sum(np.abs(err)))

    def to_metrics(self) -> dict[str, float]:
        if self.n == 0:
            return {"n_obs": 0, "rmse": float("nan"), "mae": float("nan")}
        rmse = float(np.sqrt(self.sum_sq_err / float(self.n)))
        mae = float(self.sum_abs_err / float(self.n))
        return {"n_obs": int(self.n), "rmse": rmse, "mae": mae}
