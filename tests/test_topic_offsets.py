from __future__ import annotations

import numpy as np
import pytest

from src.m3f.topic_offsets import (
    add_topic_offsets,
    select_topic_mode,
    topic_offset_contribution,
)


def _log_softmax(x: np.ndarray) -> np.ndarray:
    shifted = x - x.max(axis=1, keepdims=True)
    return shifted - np.log(np.exp(shifted).sum(axis=1, keepdims=True))


def test_select_topic_mode_three_way() -> None:
    z = np.asarray([1, 2], dtype=np.int64)
    assert select_topic_mode(z, 3) == "assigned"
    assert select_topic_mode(z, 1) == "assigned"
    assert select_topic_mode(None, 3) == "marginal"
    assert select_topic_mode(None, 1) == "single"


def test_assigned_topics_use_point_lookup() -> None:
    # offsets keyed by secondary id (rows), indexed by topic (cols)
    offsets = np.asarray([[1.0, 2.0, 3.0], [10.0, 20.0, 30.0]])
    log_theta = np.zeros((2, 3))
    primary = np.asarray([1, 2, 2])
    secondary = np.asarray([2, 1, 2])
    z = np.asarray([3, 1, 2])

    out = np.zeros(3)
    add_topic_offsets(primary, secondary, 3, log_theta, offsets, z, out)

    assert np.allclose(out, [30.0, 1.0, 20.0])


def test_single_topic_lookup_matches_expectation() -> None:
    offsets = np.asarray([[0.5], [-1.25], [2.0]])
    log_theta = np.zeros((2, 1))  # log(1)
    primary = np.asarray([1, 2, 1, 2])
    secondary = np.asarray([3, 1, 2, 3])

    direct = topic_offset_contribution(primary, secondary, 1, log_theta, offsets, None, mode="single")
    expected = topic_offset_contribution(
        primary, secondary, 1, log_theta, offsets, None, mode="marginal"
    )

    assert np.allclose(direct, [2.0, 0.5, -1.25, 2.0])
    assert np.array_equal(direct, expected)


def test_marginal_contribution_matches_weighted_sum() -> None:
    logits = np.asarray([[0.2, -1.0, 0.7], [1.5, 0.0, -0.3]])
    log_theta = _log_softmax(logits)
    offsets = np.asarray([[1.0, -2.0, 0.5], [3.0, 0.25, -1.0]])
    primary = np.asarray([1, 2])
    secondary = np.asarray([2, 1])

    out = np.zeros(2)
    add_topic_offsets(primary, secondary, 3, log_theta, offsets, None, out)

    probs = np.exp(logits) / np.exp(logits).sum(axis=1, keepdims=True)
    manual0 = sum(offsets[1, k] * probs[0, k] for k in range(3))
    manual1 = sum(offsets[0, k] * probs[1, k] for k in range(3))
    assert out[0] == pytest.approx(manual0)
    assert out[1] == pytest.approx(manual1)


def test_add_topic_offsets_accumulates_into_existing_values() -> None:
    offsets = np.asarray([[2.0, 4.0]])
    log_theta = np.log(np.asarray([[0.25, 0.75]]))
    out = np.asarray([1.0, -1.0])

    add_topic_offsets(np.asarray([1, 1]), np.asarray([1, 1]), 2, log_theta, offsets, None, out)

    assert np.allclose(out, [1.0 + 3.5, -1.0 + 3.5])


def test_role_swap_reads_table_by_secondary_and_theta_by_primary() -> None:
    # Users own the distribution, items key the table (d offsets).
    log_theta_u = np.log(np.asarray([[1.0, 0.0 + 1e-300], [1e-300, 1.0]]))
    d = np.asarray([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])  # (n_items=3, KU=2)
    users = np.asarray([1, 2])
    items = np.asarray([3, 3])

    contrib = topic_offset_contribution(users, items, 2, log_theta_u, d, None)

    # user 1 -> topic 1, user 2 -> topic 2, both on item 3's row
    assert np.allclose(contrib, [5.0, 6.0])
