"""
Spatial weights and neighborhood aggregation for SpotScape.

``aggregate`` is the single smoothing primitive every score engine is
built on: a per-spot signal, a neighbor index and an optional domain
constraint go in, a smoothed signal with the same labels comes out.
"""

from typing import Literal, Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse

from ..errors import DimensionMismatchError, EmptyInputError, _preview
from ..utils.sparse import sweep_sparse
from .neighbors import NeighborIndex

__all__ = [
    'aggregate',
    'aggregation_weights',
    'align_to_index',
    'row_normalize_weights',
    'DEFAULT_POWER',
    'DEFAULT_SELF_DISTANCE',
]

# Exponent of the inverse-distance weights
DEFAULT_POWER = 2.0

# Distance assigned to the center spot itself, in lattice steps.
# At the default power the center weighs 4x an adjacent spot.
DEFAULT_SELF_DISTANCE = 0.5

Signal = Union[pd.Series, pd.DataFrame, np.ndarray]


def align_to_index(
    values: Union[pd.Series, pd.DataFrame],
    index: NeighborIndex,
    name: str = "signal"
) -> Union[pd.Series, pd.DataFrame]:
    """
    Reorder a per-spot table to the order of a neighbor index.

    Raises
    ------
    DimensionMismatchError
        If the table and the index do not cover the same spots.
    """
    if values.index.has_duplicates:
        dups = values.index[values.index.duplicated()].unique()
        raise DimensionMismatchError(f"{name} has duplicated spot ids: {_preview(dups)}")

    missing = index.spot_ids.difference(values.index)
    extra = values.index.difference(index.spot_ids)
    if len(missing) > 0 or len(extra) > 0:
        parts = []
        if len(missing) > 0:
            parts.append(f"missing {len(missing)} spot(s): {_preview(missing)}")
        if len(extra) > 0:
            parts.append(f"{len(extra)} unknown spot(s): {_preview(extra)}")
        raise DimensionMismatchError(
            f"{name} does not match the neighbor index ({'; '.join(parts)})"
        )

    return values.reindex(index.spot_ids)


def _label_codes(labels, index: NeighborIndex) -> np.ndarray:
    """Integer codes for opaque labels in index order; -1 for missing."""
    if isinstance(labels, pd.Series):
        labels = align_to_index(labels, index, name="cluster_labels")
        raw = labels.to_numpy(dtype=object)
    else:
        raw = np.asarray(labels, dtype=object)
        if raw.shape[0] != index.n_spots:
            raise DimensionMismatchError(
                f"cluster_labels has {raw.shape[0]} entries, neighbor index has {index.n_spots} spots"
            )

    missing = pd.isna(raw)
    as_str = np.array([str(x) for x in raw], dtype=object)
    codes, _ = pd.factorize(as_str)
    codes = codes.astype(np.int64)
    codes[missing] = -1
    return codes


def aggregation_weights(
    index: NeighborIndex,
    method: Literal["mean", "weighted"] = "mean",
    cluster_labels=None,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE
) -> sparse.csr_matrix:
    """
    Weight matrix used by ``aggregate``.

    Row ``i`` holds the weights of spot ``i`` itself and of its neighbors,
    with neighbors from another cluster dropped when ``cluster_labels`` is
    given.

    Parameters
    ----------
    index : NeighborIndex
        Neighbor index (self entries are added if absent).
    method : {"mean", "weighted"}, default "mean"
        - "mean": every member weighs 1
        - "weighted": w = 1 / d^power, the center at ``self_distance``
    cluster_labels : Series or array-like, optional
        Categorical label per spot; neighbors must share the center's label.
    power : float, default 2.0
        Inverse-distance exponent.
    self_distance : float, default 0.5
        Distance given to the center spot, in lattice steps. Must be > 0.

    Returns
    -------
    sparse.csr_matrix
        Shape (n_spots, n_spots), in index order.
    """
    if method not in ("mean", "weighted"):
        raise ValueError(f"Unknown method: {method}")
    if self_distance <= 0:
        raise ValueError("self_distance must be positive")

    n = index.n_spots
    rows = index.row_positions()
    cols = index.indices
    dist = index.distances

    not_self = rows != cols
    rows, cols, dist = rows[not_self], cols[not_self], dist[not_self]

    if cluster_labels is not None:
        codes = _label_codes(cluster_labels, index)
        same = (codes[rows] == codes[cols]) & (codes[rows] >= 0)
        rows, cols, dist = rows[same], cols[same], dist[same]

    if method == "mean":
        w = np.ones(len(rows))
        w_self = 1.0
    else:
        # co-located duplicates count as close as the center
        w = 1.0 / np.power(np.maximum(dist, self_distance), power)
        w_self = 1.0 / self_distance ** power

    diag = np.arange(n)
    W = sparse.csr_matrix(
        (
            np.concatenate([w, np.full(n, w_self)]),
            (np.concatenate([rows, diag]), np.concatenate([cols, diag])),
        ),
        shape=(n, n)
    )
    return W


def aggregate(
    signal: Signal,
    index: NeighborIndex,
    method: Literal["mean", "weighted"] = "mean",
    cluster_labels=None,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE,
    zero_fill: bool = False,
    weights: Optional[sparse.spmatrix] = None
) -> Signal:
    """
    Smooth a per-spot signal over each spot's neighborhood.

    The output at spot s is the (weighted) mean of the signal over s and
    its neighbors. Missing values are left out of both the sum and the
    total weight, so a neighborhood with no observed value yields NaN.

    Parameters
    ----------
    signal : Series, DataFrame or np.ndarray
        Per-spot values. Series / DataFrame rows are matched to the index
        by spot id (any order); arrays must be in index order. DataFrame
        columns (or 2D array columns) are aggregated independently.
    index : NeighborIndex
        Neighbor index from ``build_neighbor_index``.
    method : {"mean", "weighted"}, default "mean"
        - "mean": arithmetic mean over the neighborhood
        - "weighted": inverse-distance weighted mean, w = 1 / d^power
    cluster_labels : Series or array-like, optional
        Domain / cluster label per spot. If given, only neighbors with the
        same label as the center contribute.
    power : float, default 2.0
        Inverse-distance exponent for ``method="weighted"``.
    self_distance : float, default 0.5
        Distance assigned to the center spot for ``method="weighted"``.
    zero_fill : bool, default False
        Treat missing values as 0 instead of excluding them.
    weights : sparse matrix, optional
        Precomputed ``aggregation_weights`` to reuse across signals.

    Returns
    -------
    Same type as ``signal``
        Smoothed signal with the input's labels and order.

    Examples
    --------
    >>> index = build_neighbor_index(coords, radius=1)
    >>> smoothed = aggregate(tumor_es, index, method="weighted",
    ...                      cluster_labels=domains)
    """
    if index.n_spots == 0:
        raise EmptyInputError("Neighbor index has zero spots")

    is_pandas = isinstance(signal, (pd.Series, pd.DataFrame))
    if is_pandas:
        original_index = signal.index
        aligned = align_to_index(signal, index)
        values = aligned.to_numpy(dtype=np.float64)
    else:
        values = np.asarray(signal, dtype=np.float64)
        if values.shape[0] != index.n_spots:
            raise DimensionMismatchError(
                f"signal has {values.shape[0]} rows, neighbor index has {index.n_spots} spots"
            )

    one_dim = values.ndim == 1
    if one_dim:
        values = values[:, None]

    if weights is None:
        weights = aggregation_weights(
            index, method=method, cluster_labels=cluster_labels,
            power=power, self_distance=self_distance
        )

    observed = ~np.isnan(values)
    if zero_fill:
        values = np.where(observed, values, 0.0)
        observed = np.ones_like(observed)
    else:
        values = np.where(observed, values, 0.0)

    numerator = weights @ values
    denominator = weights @ observed.astype(np.float64)

    with np.errstate(invalid="ignore", divide="ignore"):
        result = np.where(denominator > 0, numerator / denominator, np.nan)

    if one_dim:
        result = result[:, 0]

    if not is_pandas:
        return result

    if isinstance(signal, pd.Series):
        out = pd.Series(result, index=index.spot_ids, name=signal.name)
    else:
        out = pd.DataFrame(result, index=index.spot_ids, columns=signal.columns)
    return out.reindex(original_index)


def row_normalize_weights(W: sparse.spmatrix) -> sparse.csr_matrix:
    """
    Row-normalize weight matrix (each row sums to 1).

    Rows without any weight are left empty.
    """
    row_sums = np.asarray(W.sum(axis=1)).ravel()
    row_sums[row_sums == 0] = 1.0
    return sweep_sparse(W, margin=0, stats=row_sums, fun="divide").tocsr()

