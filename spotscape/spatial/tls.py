"""
Tertiary lymphoid structure (TLS) scoring for SpotScape.

A TLS score combines two gene-signature scores with the co-distribution
of plasma/B cells and T cells. Each component is smoothed within its
tissue domain, rescaled to [0, 1], and the three are merged by a
pluggable combination rule.
"""

from typing import Callable, Dict, Literal, Optional, Union

import numpy as np
import pandas as pd

from ..errors import DimensionMismatchError, EmptyInputError
from ..utils.scaling import rescale_minmax
from .neighbors import NeighborIndex
from .weights import DEFAULT_POWER, DEFAULT_SELF_DISTANCE, aggregate

__all__ = [
    'calc_tls_score',
    'combine_tls_components',
    'TLS_COMBINERS',
]


def _mean(components: pd.DataFrame) -> pd.Series:
    return components.mean(axis=1, skipna=False)


def _geometric(components: pd.DataFrame) -> pd.Series:
    values = components.to_numpy(dtype=np.float64)
    with np.errstate(invalid="ignore"):
        geo = np.power(np.clip(values, 0, None).prod(axis=1), 1.0 / values.shape[1])
    return pd.Series(geo, index=components.index)


def _min(components: pd.DataFrame) -> pd.Series:
    return components.min(axis=1, skipna=False)


def _max(components: pd.DataFrame) -> pd.Series:
    return components.max(axis=1, skipna=False)


# Combination rules: component table (spots × 3) -> score per spot
TLS_COMBINERS: Dict[str, Callable[[pd.DataFrame], pd.Series]] = {
    "mean": _mean,
    "geometric": _geometric,
    "min": _min,
    "max": _max,
}


def combine_tls_components(
    components: pd.DataFrame,
    combine: Union[str, Callable[[pd.DataFrame], pd.Series]] = "mean"
) -> pd.Series:
    """
    Merge TLS components into one score per spot.

    Parameters
    ----------
    components : pd.DataFrame
        Spots × components table.
    combine : str or callable, default "mean"
        A name from ``TLS_COMBINERS`` ("mean", "geometric", "min", "max")
        or a function taking the component table and returning a Series.

    Returns
    -------
    pd.Series
        Combined score, indexed like ``components``.
    """
    if isinstance(combine, str):
        if combine not in TLS_COMBINERS:
            raise ValueError(
                f"Unknown combine rule: {combine}. Use one of {list(TLS_COMBINERS)} or a callable."
            )
        combine = TLS_COMBINERS[combine]

    score = combine(components)
    if not isinstance(score, pd.Series):
        score = pd.Series(np.asarray(score, dtype=np.float64), index=components.index)
    if len(score) != len(components):
        raise DimensionMismatchError(
            f"combine returned {len(score)} values for {len(components)} spots"
        )
    return score.reindex(components.index)


def calc_tls_score(
    signature1: pd.Series,
    signature2: pd.Series,
    codistribution: pd.Series,
    index: NeighborIndex,
    domains: Optional[pd.Series] = None,
    method: Literal["mean", "weighted"] = "weighted",
    combine: Union[str, Callable[[pd.DataFrame], pd.Series]] = "mean",
    rescale: bool = True,
    power: float = DEFAULT_POWER,
    self_distance: float = DEFAULT_SELF_DISTANCE
) -> pd.DataFrame:
    """
    Score tertiary lymphoid structures per spot.

    Parameters
    ----------
    signature1, signature2 : pd.Series
        Per-spot gene-signature scores (e.g. a TLS hallmark signature and
        a B-cell follicle signature).
    codistribution : pd.Series
        Plasma/B-cell × T-cell co-distribution per spot, e.g. a column of
        ``calc_codistribution``.
    index : NeighborIndex
        Neighbor index over the same spots.
    domains : pd.Series, optional
        Domain / cluster label per spot; smoothing stays inside domains.
    method : {"mean", "weighted"}, default "weighted"
        Aggregation method for every component.
    combine : str or callable, default "mean"
        Combination rule, see ``combine_tls_components``.
    rescale : bool, default True
        Min-max rescale each aggregated component to [0, 1] before
        combining, which bounds the built-in combined scores to [0, 1].
    power, self_distance : float
        Inverse-distance weighting parameters.

    Returns
    -------
    pd.DataFrame
        Indexed like ``signature1``; one column per aggregated component
        (named after the input Series, or 'signature1', 'signature2',
        'codistribution') plus 'tls_score'.

    Examples
    --------
    >>> codist = calc_codistribution(props[["B_cell", "T_cell"]])
    >>> tls = calc_tls_score(sig_tls, sig_bcell, codist["B_cell_T_cell"],
    ...                      index, domains=domains)
    >>> tls['tls_score'].nlargest(10)
    """
    defaults = ("signature1", "signature2", "codistribution")
    inputs = [signature1, signature2, codistribution]

    names = []
    for default, values in zip(defaults, inputs):
        name = values.name if isinstance(values, pd.Series) and values.name is not None else default
        if name in names or name == "tls_score":
            name = default
        names.append(name)

    spot_order = signature1.index
    columns = {}
    for name, default, values in zip(names, defaults, inputs):
        if len(values) == 0:
            raise EmptyInputError(f"{default} is empty")
        if not isinstance(values, pd.Series):
            values = pd.Series(np.asarray(values), index=spot_order)

        missing = spot_order.difference(values.index)
        extra = values.index.difference(spot_order)
        if len(missing) > 0 or len(extra) > 0:
            raise DimensionMismatchError(
                f"{default} does not cover the same spots as signature1 "
                f"({len(missing)} missing, {len(extra)} extra)"
            )
        columns[name] = values.astype(np.float64).reindex(spot_order)

    table = pd.DataFrame(columns, index=spot_order)

    smoothed = aggregate(
        table, index, method=method, cluster_labels=domains,
        power=power, self_distance=self_distance
    )

    if rescale:
        smoothed = rescale_minmax(smoothed)

    smoothed['tls_score'] = combine_tls_components(smoothed[names], combine=combine)
    return smoothed

