"""
Synthetic M3F posterior samples and dyads.

Draws look like sampler output: Gaussian factors and offsets, and per-entity topic distributions
stored as normalized log-probabilities. Useful for tests and for smoke-running the CLI.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from .samples import M3FSampleSet


def _log_softmax(x: np.ndarray) -> np.ndarray:
    if x.shape[-1] == 0:
        return x
    shifted = x - np.max(x, axis=-1, keepdims=True)
    return shifted - np.log(np.sum(np.exp(shifted), axis=-1, keepdims=True))


def generate_synthetic_samples(
    n_users: int = 50,
    n_items: int = 40,
    n_factors: int = 3,
    n_user_topics: int = 2,
    n_item_topics: int = 2,
    n_samples: int = 10,
    random_seed: int = 42,
    offset_scale: float = 0.5,
) -> M3FSampleSet:
    """
    Generate a stacked set of random posterior draws.

    Parameters
    ----------
    n_users, n_items : int
        Number of users and items.
    n_factors : int
        Latent factor dimension F (0 disables the bilinear term).
    n_user_topics, n_item_topics : int
        KU and KM (0 disables the corresponding offsets).
    n_samples : int
        Number of draws T.
    random_seed : int
        Seed for reproducibility.
    offset_scale : float
        Standard deviation of the c and d offsets.

    Returns
    -------
    M3FSampleSet
    """
    rng = np.random.default_rng(random_seed)
    t = int(n_samples)
    return M3FSampleSet(
        chi=rng.normal(3.5, 0.1, size=t),
        a=rng.normal(0.0, 0.5, size=(t, n_users, n_factors)),
        b=rng.normal(0.0, 0.5, size=(t, n_items, n_factors)),
        log_theta_u=_log_softmax(rng.normal(0.0, 1.0, size=(t, n_users, n_user_topics))),
        log_theta_m=_log_softmax(rng.normal(0.0, 1.0, size=(t, n_items, n_item_topics))),
        c=rng.normal(0.0, offset_scale, size=(t, n_users, n_item_topics)),
        d=rng.normal(0.0, offset_scale, size=(t, n_items, n_user_topics)),
    )


def generate_synthetic_dyads(
    n_users: int,
    n_items: int,
    n_dyads: int,
    random_seed: int = 42,
    n_user_topics: int = 0,
    n_item_topics: int = 0,
) -> pd.DataFrame:
    """Random 1-based dyads; adds z_u / z_m columns when topic counts are given."""
    rng = np.random.default_rng(random_seed)
    df = pd.DataFrame(
        {
            "user": rng.integers(1, n_users + 1, size=n_dyads),
            "item": rng.integers(1, n_items + 1, size=n_dyads),
        }
    )
    if n_user_topics > 0:
        df["z_u"] = rng.integers(1, n_user_topics + 1, size=n_dyads)
    if n_item_topics > 0:
        df["z_m"] = rng.integers(1, n_item_topics + 1, size=n_dyads)
    return df
