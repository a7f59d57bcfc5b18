"""
Opt-in strict input checks for M3F prediction.

The scorer itself never validates (malformed ids give undefined numbers, as in the sampler's
own prediction routine). These checks are a stricter superset, enabled only via
`predict_dyads(..., validate=True)` or the CLI `--validate` flag.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .samples import M3FSample


class M3FInputError(ValueError):
    """Raised by strict validation when prediction inputs are malformed."""


def _check_ids(ids: np.ndarray, *, name: str, upper: int) -> None:
    if ids.size == 0:
        return
    if not np.issubdtype(ids.dtype, np.integer):
        if not np.all(np.isfinite(ids)) or np.any(ids != np.round(ids)):
            raise M3FInputError(f"{name} must contain integer ids")
    lo = int(np.min(ids))
    hi = int(np.max(ids))
    if lo < 1 or hi > int(upper):
        raise M3FInputError(f"{name} ids must lie in [1, {upper}], got range [{lo}, {hi}]")


def validate_prediction_inputs(
    users: np.ndarray,
    items: np.ndarray,
    samples: Sequence[M3FSample],
    z_u: Optional[np.ndarray] = None,
    z_m: Optional[np.ndarray] = None,
) -> None:
    """Raise `M3FInputError` if dyads, assignments or samples are inconsistent."""
    users = np.asarray(users)
    items = np.asarray(items)
    if users.ndim != 1 or items.ndim != 1:
        raise M3FInputError(f"users and items must be 1D; got {users.shape} and {items.shape}")
    if users.shape != items.shape:
        raise M3FInputError(
            f"users and items must have the same length; got {users.size} vs {items.size}"
        )
    if len(samples) == 0:
        return

    first = samples[0]
    for t, s in enumerate(samples):
        for field in ("a", "b", "log_theta_u", "log_theta_m", "c", "d"):
            got = getattr(s, field).shape
            want = getattr(first, field).shape
            if got != want:
                raise M3FInputError(f"Sample {t} field {field} has shape {got}, expected {want}")

    if first.b.shape[1] != first.n_factors:
        raise M3FInputError(
            f"a and b must share the factor dimension; got {first.n_factors} vs {first.b.shape[1]}"
        )
    if first.d.shape != (first.n_items, first.n_user_topics):
        raise M3FInputError(
            f"d must have shape (n_items, KU)=({first.n_items}, {first.n_user_topics}); got {first.d.shape}"
        )
    if first.c.shape != (first.n_users, first.n_item_topics):
        raise M3FInputError(
            f"c must have shape (n_users, KM)=({first.n_users}, {first.n_item_topics}); got {first.c.shape}"
        )
    if first.log_theta_u.shape[0] != first.n_users:
        raise M3FInputError("log_theta_u must have one row per user")
    if first.log_theta_m.shape[0] != first.n_items:
        raise M3FInputError("log_theta_m must have one row per item")

    _check_ids(users, name="users", upper=first.n_users)
    _check_ids(items, name="items", upper=first.n_items)

    for name, z, k in (("z_u", z_u, first.n_user_topics), ("z_m", z_m, first.n_item_topics)):
        if z is None:
            continue
        z = np.asarray(z)
        if z.shape != users.shape:
            raise M3FInputError(f"{name} must have one topic per dyad; got shape {z.shape}")
        if k > 0:
            _check_ids(z, name=name, upper=k)
