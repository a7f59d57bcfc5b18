"""
Posterior-predictive scoring for M3F-TIB dyads.

For every posterior draw t and dyad e = (u, j):

  pred_t[e] = d_t[j, z_u]            (user-topic offset; expectation over theta_u if z_u absent)
            + c_t[u, z_m]            (item-topic offset; expectation over theta_m if z_m absent)
            + chi_t + <a_t[u], b_t[j]>

Predictions are accumulated over draws and divided by T only when T > 1. With a single draw the
unscaled sum is returned, which is how the sampler computes partial residuals.

The dyad range is split into contiguous chunks that own disjoint output slices; each chunk runs
the full draw loop, so chunks can be scored on a thread pool without locking.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Optional, Sequence

import numpy as np

from .samples import M3FSample
from .topic_offsets import add_topic_offsets
from .validation import validate_prediction_inputs

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100_000


@dataclass(frozen=True)
class PredictionTerms:
    """Which model terms contribute to a prediction (applied to every draw)."""

    add_base: bool = True  # chi + <a, b>
    add_c: bool = True  # item-topic offsets c
    add_d: bool = True  # user-topic offsets d


def _score_chunk(
    users: np.ndarray,
    items: np.ndarray,
    samples: Sequence[M3FSample],
    z_u: Optional[np.ndarray],
    z_m: Optional[np.ndarray],
    terms: PredictionTerms,
    n_user_topics: int,
    n_item_topics: int,
    n_factors: int,
    out: np.ndarray,
) -> None:
    u_idx = users - 1
    m_idx = items - 1
    for sample in samples:
        if terms.add_d and n_user_topics > 0:
            add_topic_offsets(users, items, n_user_topics, sample.log_theta_u, sample.d, z_u, out)
        if terms.add_c and n_item_topics > 0:
            add_topic_offsets(items, users, n_item_topics, sample.log_theta_m, sample.c, z_m, out)
        if terms.add_base:
            if n_factors > 0:
                out += sample.chi + np.einsum(
                    "nf,nf->n", sample.a[u_idx], sample.b[m_idx], optimize=True
                )
            else:
                out += sample.chi


def _chunk_bounds(n: int, chunk_size: int) -> list[tuple[int, int]]:
    step = max(int(chunk_size), 1)
    return [(start, min(start + step, n)) for start in range(0, n, step)]


def predict_dyads(
    users: np.ndarray,
    items: np.ndarray,
    samples: Sequence[M3FSample],
    z_u: Optional[np.ndarray] = None,
    z_m: Optional[np.ndarray] = None,
    terms: PredictionTerms = PredictionTerms(),
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    n_jobs: int = 1,
    validate: bool = False,
) -> np.ndarray:
    """
    Score (user, item) dyads under a sequence of posterior draws.

    Parameters
    ----------
    users, items : np.ndarray
        (N,) 1-based entity ids.
    samples : Sequence[M3FSample]
        Posterior draws, e.g. an `M3FSampleSet`. KU, KM and F are read from the first draw.
    z_u, z_m : np.ndarray, optional
        (N,) 1-based sampled user / item topics. None integrates the topic out.
    terms : PredictionTerms
        Which terms to include.
    chunk_size : int
        Maximum dyads per work unit.
    n_jobs : int
        Worker threads used for chunks (1 = run inline).
    validate : bool
        Run `validate_prediction_inputs` first. Off by default: malformed inputs otherwise give
        undefined results rather than an error.

    Returns
    -------
    np.ndarray
        (N,) predictions in dyad order; the mean over draws when T > 1, the plain sum when T == 1.
    """
    if validate:
        validate_prediction_inputs(users, items, samples, z_u, z_m)

    users = np.asarray(users, dtype=np.int64).reshape(-1)
    items = np.asarray(items, dtype=np.int64).reshape(-1)
    if z_u is not None:
        z_u = np.asarray(z_u, dtype=np.int64).reshape(-1)
    if z_m is not None:
        z_m = np.asarray(z_m, dtype=np.int64).reshape(-1)

    n = int(users.size)
    n_samples = len(samples)
    logger.info("Running M3F prediction for %d dyads over %d samples", n, n_samples)

    preds = np.zeros(n, dtype=np.float64)
    if n_samples == 0 or n == 0:
        logger.info("Finished M3F prediction")
        return preds

    first = samples[0]
    n_user_topics = first.n_user_topics
    n_item_topics = first.n_item_topics
    n_factors = first.n_factors

    def _run(bounds: tuple[int, int]) -> None:
        start, stop = bounds
        _score_chunk(
            users[start:stop],
            items[start:stop],
            samples,
            None if z_u is None else z_u[start:stop],
            None if z_m is None else z_m[start:stop],
            terms,
            n_user_topics,
            n_item_topics,
            n_factors,
            preds[start:stop],
        )

    chunks = _chunk_bounds(n, chunk_size)
    if int(n_jobs) > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=min(int(n_jobs), len(chunks))) as executor:
            for _ in executor.map(_run, chunks):
                pass
    else:
        for bounds in chunks:
            _run(bounds)

    if n_samples > 1:
        preds /= n_samples

    logger.info("Finished M3F prediction")
    return preds


def partial_residuals(
    ratings: np.ndarray,
    users: np.ndarray,
    items: np.ndarray,
    sample: M3FSample,
    z_u: Optional[np.ndarray] = None,
    z_m: Optional[np.ndarray] = None,
    terms: PredictionTerms = PredictionTerms(),
    **kwargs,
) -> np.ndarray:
    """
    Residuals of `ratings` after removing the selected terms of a single draw.

    This is the single-sample (unaveraged) use of `predict_dyads`, e.g. leaving out one term
    to form the residual that the sampler conditions on when redrawing that term.
    """
    preds = predict_dyads(users, items, [sample], z_u, z_m, terms, **kwargs)
    return np.asarray(ratings, dtype=np.float64).reshape(-1) - preds
