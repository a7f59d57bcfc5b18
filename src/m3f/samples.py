"""
Posterior sample records for the M3F topic-indexed-bias model.

A Gibbs sampler for Mixed Membership Matrix Factorization produces, per draw:

  chi          global offset (scalar)
  a, b         user / item latent factor vectors
  logthetaU    per-user log topic probabilities over KU user topics
  logthetaM    per-item log topic probabilities over KM item topics
  c, d         topic-indexed offsets

Notes on conventions:
  - Arrays are stored row-per-entity: `a` is (n_users, F), `b` is (n_items, F),
    `log_theta_u` is (n_users, KU), `log_theta_m` is (n_items, KM).
  - `d` is (n_items, KU): keyed by item, indexed by the *user's* topic.
    `c` is (n_users, KM): keyed by user, indexed by the *item's* topic.
  - Sampler records (`M3FSample.from_mapping`, default layout="columns") hold one *column* per
    entity instead: `a` is (F, U), `logthetaU` is (KU, U), `d` is (KU, M), `c` is (KM, U).
    They are transposed on read.
  - F, KU and KM may be 0 (zero-width arrays), meaning the term is absent.
  - `M3FSampleSet` stacks the same fields along a leading draw axis of length T.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Literal, Mapping, Sequence

import numpy as np


RecordLayout = Literal["columns", "rows"]

# Field names used by the sampler output, with the snake_case aliases accepted here.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "chi": ("chi",),
    "a": ("a",),
    "b": ("b",),
    "log_theta_u": ("logthetaU", "log_theta_u"),
    "log_theta_m": ("logthetaM", "log_theta_m"),
    "c": ("c",),
    "d": ("d",),
}


def _lookup(mapping: Mapping[str, object], field: str) -> object | None:
    for name in FIELD_ALIASES[field]:
        if name in mapping:
            return mapping[name]
    return None


def _as_matrix(
    value: object, *, name: str, layout: RecordLayout, n_entities: int | None = None
) -> np.ndarray:
    """Return a (entities, dim) matrix from a record field stored in `layout`."""
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 1:
        # Flat fields hold a single dimension (F == 1 or K == 1), one value per entity.
        if arr.size == 0:
            if n_entities is None:
                raise ValueError(f"Cannot infer the entity count of empty field {name}")
            return np.zeros((n_entities, 0))
        arr = arr.reshape(-1, 1)
    elif arr.ndim == 2:
        if layout == "columns":
            arr = arr.T
    else:
        raise ValueError(f"Expected {name} to be 1D or 2D, got shape {arr.shape}")
    if n_entities is not None and arr.shape[0] != n_entities:
        if arr.shape[1] == 0 and arr.shape[0] == 0:
            return np.zeros((n_entities, 0))
        raise ValueError(
            f"Expected {name} to cover {n_entities} entities, got shape {np.shape(value)} "
            f"(layout={layout})"
        )
    return np.ascontiguousarray(arr)


@dataclass(frozen=True)
class M3FSample:
    """One posterior draw of the M3F-TIB parameters."""

    chi: float
    a: np.ndarray  # (U, F)
    b: np.ndarray  # (M, F)
    log_theta_u: np.ndarray  # (U, KU)
    log_theta_m: np.ndarray  # (M, KM)
    c: np.ndarray  # (U, KM)
    d: np.ndarray  # (M, KU)

    @property
    def n_users(self) -> int:
        return int(self.a.shape[0])

    @property
    def n_items(self) -> int:
        return int(self.b.shape[0])

    @property
    def n_factors(self) -> int:
        return int(self.a.shape[1])

    @property
    def n_user_topics(self) -> int:
        return int(self.log_theta_u.shape[1])

    @property
    def n_item_topics(self) -> int:
        return int(self.log_theta_m.shape[1])

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, object], layout: RecordLayout = "columns"
    ) -> "M3FSample":
        """
        Build a sample from named fields (`chi`, `a`, `b`, `logthetaU`, `logthetaM`, `c`, `d`).

        With layout="columns" (sampler records) every matrix holds one column per entity:
        a (F, U), b (F, M), logthetaU (KU, U), logthetaM (KM, M), c (KM, U), d (KU, M).
        With layout="rows" the same fields are already (entities, dim). Flat 1D fields are read
        as a single dimension in either layout.

        `logthetaU`/`d` and `logthetaM`/`c` may be omitted together, which means the
        corresponding topic dimension is absent (K = 0).
        """
        if layout not in ("columns", "rows"):
            raise ValueError(f"Unknown record layout: {layout}")
        missing = [f for f in ("chi", "a", "b") if _lookup(mapping, f) is None]
        if missing:
            raise ValueError(f"Sample record missing required fields: {missing}")

        a = _as_matrix(_lookup(mapping, "a"), name="a", layout=layout)
        b = _as_matrix(_lookup(mapping, "b"), name="b", layout=layout)
        n_users = int(a.shape[0])
        n_items = int(b.shape[0])

        def _topic_pair(theta_field: str, offset_field: str, n_theta: int, n_offset: int):
            theta = _lookup(mapping, theta_field)
            offsets = _lookup(mapping, offset_field)
            if theta is None and offsets is None:
                return np.zeros((n_theta, 0)), np.zeros((n_offset, 0))
            if theta is None or offsets is None:
                raise ValueError(
                    f"Sample record must provide both {FIELD_ALIASES[theta_field][0]} and "
                    f"{offset_field}, or neither"
                )
            return (
                _as_matrix(theta, name=theta_field, layout=layout, n_entities=n_theta),
                _as_matrix(offsets, name=offset_field, layout=layout, n_entities=n_offset),
            )

        log_theta_u, d = _topic_pair("log_theta_u", "d", n_users, n_items)
        log_theta_m, c = _topic_pair("log_theta_m", "c", n_items, n_users)
        return cls(
            chi=float(np.asarray(_lookup(mapping, "chi"), dtype=np.float64).reshape(-1)[0]),
            a=a,
            b=b,
            log_theta_u=log_theta_u,
            log_theta_m=log_theta_m,
            c=c,
            d=d,
        )


@dataclass(frozen=True)
class M3FSampleSet:
    """T posterior draws stacked along a leading draw axis."""

    chi: np.ndarray  # (T,)
    a: np.ndarray  # (T, U, F)
    b: np.ndarray  # (T, M, F)
    log_theta_u: np.ndarray  # (T, U, KU)
    log_theta_m: np.ndarray  # (T, M, KM)
    c: np.ndarray  # (T, U, KM)
    d: np.ndarray  # (T, M, KU)

    def __len__(self) -> int:
        return int(self.chi.shape[0])

    def __getitem__(self, t: int) -> M3FSample:
        return M3FSample(
            chi=float(self.chi[t]),
            a=self.a[t],
            b=self.b[t],
            log_theta_u=self.log_theta_u[t],
            log_theta_m=self.log_theta_m[t],
            c=self.c[t],
            d=self.d[t],
        )

    def __iter__(self) -> Iterator[M3FSample]:
        for t in range(len(self)):
            yield self[t]

    def subset(self, n_draws: int) -> "M3FSampleSet":
        """Keep the first `n_draws` draws."""
        if int(n_draws) > len(self):
            raise ValueError(f"n_draws={n_draws} exceeds available samples={len(self)}")
        sl = slice(0, int(n_draws))
        return M3FSampleSet(
            chi=self.chi[sl],
            a=self.a[sl],
            b=self.b[sl],
            log_theta_u=self.log_theta_u[sl],
            log_theta_m=self.log_theta_m[sl],
            c=self.c[sl],
            d=self.d[sl],
        )

    @classmethod
    def from_samples(cls, samples: Sequence[M3FSample]) -> "M3FSampleSet":
        if len(samples) == 0:
            raise ValueError("Cannot stack an empty sequence of samples")
        return cls(
            chi=np.asarray([s.chi for s in samples], dtype=np.float64),
            a=np.stack([s.a for s in samples]),
            b=np.stack([s.b for s in samples]),
            log_theta_u=np.stack([s.log_theta_u for s in samples]),
            log_theta_m=np.stack([s.log_theta_m for s in samples]),
            c=np.stack([s.c for s in samples]),
            d=np.stack([s.d for s in samples]),
        )

    def save_npz(self, path: Path) -> None:
        """Save to a compressed .npz file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            path,
            chi=np.asarray(self.chi, dtype=np.float64),
            a=np.asarray(self.a, dtype=np.float64),
            b=np.asarray(self.b, dtype=np.float64),
            logthetaU=np.asarray(self.log_theta_u, dtype=np.float64),
            logthetaM=np.asarray(self.log_theta_m, dtype=np.float64),
            c=np.asarray(self.c, dtype=np.float64),
            d=np.asarray(self.d, dtype=np.float64),
        )

    @staticmethod
    def load_npz(path: Path) -> "M3FSampleSet":
        """Load from a .npz file written by `save_npz`."""
        with np.load(path) as npz:
            required = ("chi", "a", "b", "logthetaU", "logthetaM", "c", "d")
            missing = [k for k in required if k not in npz.files]
            if missing:
                raise ValueError(f"Sample archive {path} missing arrays: {missing}")
            return M3FSampleSet(
                chi=np.asarray(npz["chi"], dtype=np.float64).reshape(-1),
                a=np.asarray(npz["a"], dtype=np.float64),
                b=np.asarray(npz["b"], dtype=np.float64),
                log_theta_u=np.asarray(npz["logthetaU"], dtype=np.float64),
                log_theta_m=np.asarray(npz["logthetaM"], dtype=np.float64),
                c=np.asarray(npz["c"], dtype=np.float64),
                d=np.asarray(npz["d"], dtype=np.float64),
            )

    @classmethod
    def from_inference_data(cls, idata, n_draws: int | None = None) -> "M3FSampleSet":
        """
        Extract draws from an ArviZ InferenceData posterior group.

        Chains are stacked into a single sample axis (chain-major). Non-sample dimensions keep
        their stored order, so traces use the row-per-entity layout: `a` is (chain, draw, user,
        factor), `d` is (chain, draw, item, user_topic) and so on.
        """
        if not hasattr(idata, "posterior"):
            raise ValueError("InferenceData has no posterior group")
        post = idata.posterior.stack(sample=("chain", "draw"))

        n_samples = int(post.sizes["sample"])
        if n_draws is not None:
            if int(n_draws) > n_samples:
                raise ValueError(f"n_draws={n_draws} exceeds available samples={n_samples}")
            post = post.isel(sample=slice(0, int(n_draws)))
            n_samples = int(n_draws)

        def _get(field: str, ndim: int) -> np.ndarray | None:
            for name in FIELD_ALIASES[field]:
                if name in post:
                    arr = np.asarray(post[name].transpose("sample", ...).to_numpy(), dtype=np.float64)
                    if arr.ndim != ndim:
                        raise ValueError(
                            f"Expected {name} to have {ndim} dims after stacking, got shape {arr.shape}"
                        )
                    return arr
            return None

        chi = _get("chi", 1)
        a = _get("a", 3)
        b = _get("b", 3)
        if chi is None or a is None or b is None:
            raise ValueError("Posterior must contain chi, a and b")

        def _topic_pair(theta_field: str, offset_field: str, n_theta: int, n_offset: int):
            theta = _get(theta_field, 3)
            offsets = _get(offset_field, 3)
            if theta is None and offsets is None:
                return np.zeros((n_samples, n_theta, 0)), np.zeros((n_samples, n_offset, 0))
            if theta is None or offsets is None:
                raise ValueError(
                    f"Posterior must contain both {FIELD_ALIASES[theta_field][0]} and "
                    f"{offset_field}, or neither"
                )
            return theta, offsets

        n_users = int(a.shape[1])
        n_items = int(b.shape[1])
        log_theta_u, d = _topic_pair("log_theta_u", "d", n_users, n_items)
        log_theta_m, c = _topic_pair("log_theta_m", "c", n_items, n_users)
        return cls(chi=chi, a=a, b=b, log_theta_u=log_theta_u, log_theta_m=log_theta_m, c=c, d=d)

    @classmethod
    def load_netcdf(cls, path: Path, n_draws: int | None = None) -> "M3FSampleSet":
        """Load draws from an ArviZ NetCDF trace file."""
        import arviz as az

        return cls.from_inference_data(az.from_netcdf(path), n_draws=n_draws)


def load_samples(path: Path, n_draws: int | None = None) -> M3FSampleSet:
    """Load a sample set from `.npz` or ArviZ `.nc`, keeping the first `n_draws` draws."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".npz":
        samples = M3FSampleSet.load_npz(path)
        return samples.subset(n_draws) if n_draws is not None else samples
    if suffix in (".nc", ".netcdf"):
        return M3FSampleSet.load_netcdf(path, n_draws=n_draws)
    raise ValueError(f"Unsupported sample file type: {path.name} (expected .npz or .nc)")
