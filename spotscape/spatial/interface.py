"""
Tumor-normal interface (TNI) detection for SpotScape.

Scores every spot by how its tumor signal mixes with its surroundings,
then classifies spots in three steps:

1. ``define_tni_region``: band-pass the score into TNI / nTNI
2. ``group_tni_types``: name TNI spots by the domains meeting around them
3. ``tni_class``: split each group into tumor-side and normal-side spots

``identify_tni`` runs the whole chain from coordinates.
"""

from typing import Literal, Optional, Tuple

import numpy as np
import pandas as pd

from ..errors import EmptyInputError, InvalidThresholdError
from ..utils.scaling import rescale_max
from .neighbors import NeighborIndex, build_neighbor_index, DEFAULT_RADIUS
from .weights import (
    DEFAULT_POWER,
    DEFAULT_SELF_DISTANCE,
    aggregate,
    align_to_index,
)

__all__ = [
    'calc_tni_score',
    'calc_tni_components',
    'define_tni_region',
    'group_tni_types',
    'tni_class',
    'identify_tni',
    'DEFAULT_TNI_BAND',
    'TNI_LABEL',
    'NON_TNI_LABEL',
    'OTHERS_LABEL',
]

DEFAULT_TNI_BAND = (0.2, 0.8)

TNI_LABEL = "TNI"
NON_TNI_LABEL = "nTNI"
OTHERS_LABEL = "others"


def _as_series(values, name: str) -> pd.Series:
    if isinstance(values, pd.Series):
        return values
    if isinstance(values, pd.DataFrame):
        if values.shape[1] != 1:
            raise ValueError(f"{name} must be a single column, got {values.shape[1]}")
        return values.iloc[:, 0]
    return pd.Series(np.asarray(values), name=name)


def _check_not_empty(values: pd.Series, name: str) -> None:
    if len(values) == 0:
        raise EmptyInputError(f"{name} is empty")


# =============================================================================
# TNI score
# =============================================================================

def calc_tni_components(
    enrichment: pd.Series,
    index: NeighborIndex,
    domains: pd.Series,
    method: Literal["mean", "weighted"] = "weighted",
    context_method: Literal["mean", "weighted"] = "mean",
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE
) -> pd.DataFrame:
    """
    Intermediate quantities of the TNI score.

    Parameters
    ----------
    enrichment : pd.Series
        Tumor enrichment per spot, already normalized by the caller.
    index : NeighborIndex
        Neighbor index over the same spots.
    domains : pd.Series
        Domain / cluster label per spot.
    method : {"mean", "weighted"}, default "weighted"
        Within-domain smoothing of the enrichment.
    context_method : {"mean", "weighted"}, default "mean"
        Cross-domain smoothing that produces the score.
    power, self_distance : float
        Inverse-distance weighting parameters.

    Returns
    -------
    pd.DataFrame
        Indexed like ``enrichment``, with columns:
        - 'domain_es': enrichment smoothed within each domain
        - 'tni_score': 'domain_es' smoothed across domains, clipped at 0
        - 'transition': |tni_score - domain_es|, 0 inside pure regions
    """
    enrichment = _as_series(enrichment, "enrichment")
    _check_not_empty(enrichment, "enrichment")

    domain_es = aggregate(
        enrichment, index, method=method, cluster_labels=domains,
        power=power, self_distance=self_distance
    )
    context = aggregate(
        domain_es, index, method=context_method,
        power=power, self_distance=self_distance
    )
    context = context.clip(lower=0)

    return pd.DataFrame({
        'domain_es': domain_es,
        'tni_score': context,
        'transition': (context - domain_es).abs(),
    }, index=enrichment.index)


def calc_tni_score(
    enrichment: pd.Series,
    index: NeighborIndex,
    domains: pd.Series,
    method: Literal["mean", "weighted"] = "weighted",
    context_method: Literal["mean", "weighted"] = "mean",
    rescale: bool = False,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE
) -> pd.Series:
    """
    Tumor-normal interface score per spot.

    The enrichment is first smoothed inside each domain (so noise is
    averaged without leaking across tissue borders) and then smoothed
    over the full neighborhood. Spots deep inside a pure tumor or pure
    normal domain keep their extreme value, while spots whose
    neighborhood straddles a domain border take intermediate values,
    which ``define_tni_region`` picks up with a band-pass.

    Parameters
    ----------
    enrichment : pd.Series
        Tumor enrichment per spot (abundance and library-size normalized).
    index : NeighborIndex
        Neighbor index over the same spots.
    domains : pd.Series
        Domain / cluster label per spot.
    method : {"mean", "weighted"}, default "weighted"
        Within-domain smoothing method.
    context_method : {"mean", "weighted"}, default "mean"
        Cross-domain smoothing method.
    rescale : bool, default False
        Divide by the maximum observed score to map onto [0, 1].
    power, self_distance : float
        Inverse-distance weighting parameters.

    Returns
    -------
    pd.Series
        Score in [0, max] (or [0, 1] with ``rescale``), named 'tni_score'.

    Examples
    --------
    >>> index = build_neighbor_index(coords, radius=1)
    >>> score = calc_tni_score(tumor_es, index, domains, rescale=True)
    >>> regions = define_tni_region(score, minval=0.2, maxval=0.8)
    """
    components = calc_tni_components(
        enrichment, index, domains, method=method,
        context_method=context_method, power=power, self_distance=self_distance
    )
    score = components['tni_score']
    if rescale:
        score = rescale_max(score)
    return score.rename('tni_score')


# =============================================================================
# Region classification
# =============================================================================

def define_tni_region(
    scores: pd.Series,
    minval: float,
    maxval: float,
    index: Optional[NeighborIndex] = None,
    min_neighbors: int = 0,
    labels: Tuple[str, str] = (TNI_LABEL, NON_TNI_LABEL)
) -> pd.Series:
    """
    Band-pass a continuous score into TNI / non-TNI labels.

    A spot is TNI iff minval <= score <= maxval. Spots below the band are
    interior normal, spots above it interior tumor; both are non-TNI, as
    are spots with a missing score.

    Parameters
    ----------
    scores : pd.Series
        Score per spot (e.g. from ``calc_tni_score``).
    minval, maxval : float
        Inclusive band limits.
    index : NeighborIndex, optional
        Neighbor index used to despeckle the labels.
    min_neighbors : int, default 0
        With ``index``, TNI spots with fewer TNI neighbors than this are
        relabeled non-TNI. Evaluated on the labels before relabeling.
    labels : tuple of str, default ("TNI", "nTNI")
        Names of the in-band and out-of-band labels.

    Returns
    -------
    pd.Series
        Label per spot, same index as ``scores``.

    Raises
    ------
    EmptyInputError
        If ``scores`` is empty.
    InvalidThresholdError
        If ``minval > maxval`` or a limit is not finite.
    """
    scores = _as_series(scores, "scores")
    _check_not_empty(scores, "scores")

    if not (np.isfinite(minval) and np.isfinite(maxval)):
        raise InvalidThresholdError(f"Thresholds must be finite: minval={minval}, maxval={maxval}")
    if minval > maxval:
        raise InvalidThresholdError(f"minval ({minval}) must not exceed maxval ({maxval})")

    tni_label, other_label = labels
    values = scores.to_numpy(dtype=np.float64)
    with np.errstate(invalid="ignore"):
        in_band = (values >= minval) & (values <= maxval)

    if index is not None and min_neighbors > 0:
        flags = align_to_index(pd.Series(in_band, index=scores.index), index, name="scores")
        flag_arr = flags.to_numpy(dtype=bool)

        rows = index.row_positions()
        cols = index.indices
        counted = (rows != cols) & flag_arr[cols]
        tni_neighbors = np.bincount(rows[counted], minlength=index.n_spots)

        keep = pd.Series(flag_arr & (tni_neighbors >= min_neighbors), index=index.spot_ids)
        in_band = keep.reindex(scores.index).to_numpy(dtype=bool)

    return pd.Series(
        np.where(in_band, tni_label, other_label),
        index=scores.index,
        name='tni_region'
    )


def group_tni_types(
    regions: pd.Series,
    domains: pd.Series,
    index: NeighborIndex,
    tni_label: str = TNI_LABEL,
    sep: str = "_"
) -> pd.Series:
    """
    Name TNI spots by the combination of domains around them.

    For each TNI spot the domain labels of the spot and its neighbors
    are collected; the group name joins the sorted unique labels, e.g.
    "Domain_1_Domain_3". Spots whose neighborhood holds a single domain
    are not transitional and are left out.

    Parameters
    ----------
    regions : pd.Series
        Output of ``define_tni_region``.
    domains : pd.Series
        Domain / cluster label per spot (opaque strings).
    index : NeighborIndex
        Neighbor index over the same spots.
    tni_label : str, default "TNI"
        Label marking TNI spots in ``regions``.
    sep : str, default "_"
        Separator between domain names.

    Returns
    -------
    pd.Series
        Group name for the qualifying TNI spots only, in ``regions`` order.
        Empty if no spot qualifies.
    """
    regions = _as_series(regions, "regions")
    _check_not_empty(regions, "regions")

    regions_aligned = align_to_index(regions, index, name="regions")
    domains_aligned = align_to_index(_as_series(domains, "domains"), index, name="domains")

    is_tni = (regions_aligned == tni_label).to_numpy()
    domain_arr = domains_aligned.to_numpy(dtype=object)
    missing = pd.isna(domain_arr)

    groups = {}
    for i in np.flatnonzero(is_tni):
        start, end = index.indptr[i], index.indptr[i + 1]
        members = np.concatenate([[i], index.indices[start:end]])
        present = {str(domain_arr[j]) for j in members if not missing[j]}
        if len(present) >= 2:
            groups[index.spot_ids[i]] = sep.join(sorted(present))

    if not groups:
        return pd.Series([], index=regions.index[:0], dtype=object, name='tni_group')

    selected = [spot for spot in regions.index if spot in groups]
    return pd.Series(
        [groups[spot] for spot in selected],
        index=pd.Index(selected, name=regions.index.name),
        dtype=object,
        name='tni_group'
    )


def tni_class(
    groups: pd.Series,
    es: pd.Series,
    index: Optional[NeighborIndex] = None,
    method: Literal["neighbors", "median"] = "neighbors",
    tumor_label: str = "tumor_boundary",
    normal_label: str = "normal_boundary",
    others: str = OTHERS_LABEL,
    by_group: bool = False,
    sep: str = "_"
) -> pd.Series:
    """
    Assign each grouped TNI spot to the tumor or normal side.

    The spot's tumor abundance is compared with a reference taken from
    its own group: a spot above the reference faces the tumor, otherwise
    it faces the normal tissue.

    Parameters
    ----------
    groups : pd.Series
        Output of ``group_tni_types`` (grouped spots only).
    es : pd.Series
        Tumor abundance per spot, for all spots. Defines the output index.
    index : NeighborIndex, optional
        Required for ``method="neighbors"``.
    method : {"neighbors", "median"}, default "neighbors"
        - "neighbors": mean ES over the spot and its same-group neighbors
        - "median": median ES of the whole group
    tumor_label, normal_label : str
        Labels for the two sides.
    others : str, default "others"
        Label for spots outside any TNI group.
    by_group : bool, default False
        Prefix labels with the group name, e.g. "Domain_1_Domain_3_tumor_boundary".
    sep : str, default "_"
        Separator used with ``by_group``.

    Returns
    -------
    pd.Series
        Class per spot, indexed like ``es``. Grouped spots whose own ES or
        reference is missing get NaN.
    """
    es = _as_series(es, "es")
    _check_not_empty(es, "es")
    groups = _as_series(groups, "groups")

    result = pd.Series(others, index=es.index, dtype=object, name='tni_class')
    if len(groups) == 0:
        return result

    unknown = groups.index.difference(es.index)
    if len(unknown) > 0:
        raise KeyError(f"Grouped spots missing from es: {list(unknown[:5])}")

    es_values = es.astype(np.float64)

    if method == "neighbors":
        if index is None:
            raise ValueError("method='neighbors' requires a neighbor index")
        grouped_es = es_values.where(es_values.index.isin(groups.index))
        group_labels = groups.reindex(es_values.index)
        reference = aggregate(
            grouped_es, index, method="mean", cluster_labels=group_labels
        ).reindex(groups.index)
    elif method == "median":
        group_es = es_values.reindex(groups.index)
        reference = group_es.groupby(groups).transform("median")
    else:
        raise ValueError(f"Unknown method: {method}")

    own = es_values.reindex(groups.index)
    side = np.where(own.to_numpy() > reference.to_numpy(), tumor_label, normal_label)

    if by_group:
        side = [f"{g}{sep}{s}" for g, s in zip(groups.to_numpy(), side)]

    result.loc[groups.index] = side

    # No side without an ES value to compare
    unknown_side = own.isna().to_numpy() | reference.isna().to_numpy()
    result.loc[groups.index[unknown_side]] = np.nan
    return result


def identify_tni(
    coords: pd.DataFrame,
    enrichment: pd.Series,
    domains: pd.Series,
    radius: float = DEFAULT_RADIUS,
    minval: float = DEFAULT_TNI_BAND[0],
    maxval: float = DEFAULT_TNI_BAND[1],
    es: Optional[pd.Series] = None,
    min_neighbors: int = 0,
    rescale: bool = True,
    class_method: Literal["neighbors", "median"] = "neighbors",
    by_group: bool = False,
    index: Optional[NeighborIndex] = None,
    verbose: bool = False
) -> pd.DataFrame:
    """
    Full TNI workflow: neighbor index, score, regions, groups and classes.

    Parameters
    ----------
    coords : pd.DataFrame
        Coordinate table ('x', 'y'; index = spot ids).
    enrichment : pd.Series
        Tumor enrichment per spot.
    domains : pd.Series
        Domain / cluster label per spot.
    radius : float, default 1.0
        Neighborhood radius in lattice steps.
    minval, maxval : float, default 0.2, 0.8
        TNI band on the (rescaled) score.
    es : pd.Series, optional
        Tumor abundance for the tumor/normal side call. Defaults to
        ``enrichment``.
    min_neighbors : int, default 0
        Despeckle threshold for ``define_tni_region``.
    rescale : bool, default True
        Rescale the score to [0, 1] before thresholding.
    class_method : {"neighbors", "median"}, default "neighbors"
        Reference used by ``tni_class``.
    by_group : bool, default False
        Prefix classes with their group name.
    index : NeighborIndex, optional
        Reuse a prebuilt index instead of building one from ``coords``.
    verbose : bool, default False
        Print progress information.

    Returns
    -------
    pd.DataFrame
        One row per spot (``enrichment`` order) with columns
        'tni_score', 'tni_region', 'tni_group' (NaN outside groups),
        'tni_class'.

    Examples
    --------
    >>> result = identify_tni(coords, tumor_es, domains, radius=1)
    >>> result['tni_class'].value_counts()
    """
    enrichment = _as_series(enrichment, "enrichment")
    _check_not_empty(enrichment, "enrichment")

    if index is None:
        if verbose:
            print(f"  Building neighbor index (radius={radius})...")
        index = build_neighbor_index(coords, radius=radius)

    if verbose:
        print("  Scoring tumor-normal interface...")
    score = calc_tni_score(enrichment, index, domains, rescale=rescale)
    regions = define_tni_region(
        score, minval=minval, maxval=maxval,
        index=index, min_neighbors=min_neighbors
    )

    groups = group_tni_types(regions, domains, index)
    classes = tni_class(
        groups, enrichment if es is None else es,
        index=index, method=class_method, by_group=by_group
    )

    if verbose:
        n_tni = int((regions == TNI_LABEL).sum())
        print(f"  {n_tni}/{len(regions)} TNI spots in {groups.nunique()} group(s)")

    return pd.DataFrame({
        'tni_score': score,
        'tni_region': regions,
        'tni_group': groups.reindex(enrichment.index),
        'tni_class': classes.reindex(enrichment.index),
    }, index=enrichment.index)
