"""
Topic-indexed offset contributions for M3F predictions.

Written from the perspective of the user-topic offsets `d`: the primary entity (user) owns the
topic distribution, the secondary entity (item) keys the offset table. Swap the roles to get the
item-topic offsets `c`:

  d:  primary=users, secondary=items, log_theta=log_theta_u, offsets=d (M, KU), assignment=z_u
  c:  primary=items, secondary=users, log_theta=log_theta_m, offsets=c (U, KM), assignment=z_m

Three evaluation modes, chosen per call:
  - "assigned": a sampled topic is given per dyad -> point lookup offsets[secondary, z].
  - "marginal": no topics, K > 1 -> expectation sum_k offsets[secondary, k] * exp(log_theta[primary, k]).
  - "single":   no topics, K == 1 -> offsets[secondary, 0] (the K = 1 expectation has weight 1).

Ids and topic ids are 1-based. Nothing is validated here.
"""

from __future__ import annotations

from typing import Literal, Optional

import numpy as np


TopicMode = Literal["assigned", "marginal", "single"]


def select_topic_mode(assignment: Optional[np.ndarray], n_topics: int) -> TopicMode:
    """Pick how a topic dimension is evaluated for one call."""
    if assignment is not None:
        return "assigned"
    if int(n_topics) > 1:
        return "marginal"
    return "single"


def topic_offset_contribution(
    primary_ids: np.ndarray,
    secondary_ids: np.ndarray,
    n_topics: int,
    log_theta: np.ndarray,
    offsets: np.ndarray,
    assignment: Optional[np.ndarray] = None,
    *,
    mode: Optional[TopicMode] = None,
) -> np.ndarray:
    """
    Return the per-dyad offset contribution of one topic dimension.

    Parameters
    ----------
    primary_ids : np.ndarray
        (N,) 1-based ids of the entity owning the topic distribution.
    secondary_ids : np.ndarray
        (N,) 1-based ids of the entity keying the offset table.
    n_topics : int
        Number of topics K for this dimension.
    log_theta : np.ndarray
        (n_primary, K) log topic probabilities.
    offsets : np.ndarray
        (n_secondary, K) offset table.
    assignment : np.ndarray, optional
        (N,) 1-based sampled topic per dyad. None integrates the topic out.
    mode : TopicMode, optional
        Force a mode instead of deriving it from `assignment` and `n_topics`.

    Returns
    -------
    np.ndarray
        (N,) float64 contributions.
    """
    if mode is None:
        mode = select_topic_mode(assignment, n_topics)
    sec = np.asarray(secondary_ids, dtype=np.int64) - 1

    if mode == "assigned":
        z = np.asarray(assignment, dtype=np.int64) - 1
        return offsets[sec, z]

    if mode == "single":
        return offsets[sec, 0]

    prim = np.asarray(primary_ids, dtype=np.int64) - 1
    k = int(n_topics)
    weights = np.exp(log_theta[prim, :k])
    return np.einsum("nk,nk->n", offsets[sec, :k], weights, optimize=True)


def add_topic_offsets(
    primary_ids: np.ndarray,
    secondary_ids: np.ndarray,
    n_topics: int,
    log_theta: np.ndarray,
    offsets: np.ndarray,
    assignment: Optional[np.ndarray],
    out: np.ndarray,
) -> None:
    """Add one topic dimension's offset contribution into `out` in place."""
    out += topic_offset_contribution(
        primary_ids, secondary_ids, n_topics, log_theta, offsets, assignment
    )
