"""
Cell-type co-distribution and immune infiltration for SpotScape.

Works on deconvolved cell-type proportion tables (spots × cell types):
pairwise co-distribution signals per spot, immune enrichment/diversity
indices per spot, and Moran's I as a spatial autocorrelation check for
any per-spot score.
"""

import warnings
from itertools import combinations
from typing import Dict, Literal, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from ..errors import EmptyInputError
from .neighbors import NeighborIndex
from .weights import align_to_index, row_normalize_weights

__all__ = [
    'calc_codistribution',
    'codistribution_pair',
    'calc_immune_infiltration',
    'calc_morans_i',
]


def _check_proportions(proportions: pd.DataFrame) -> pd.DataFrame:
    if not isinstance(proportions, pd.DataFrame):
        raise TypeError("proportions must be a DataFrame (spots × cell types)")
    if proportions.shape[0] == 0 or proportions.shape[1] == 0:
        raise EmptyInputError(f"Proportion table is empty: shape {proportions.shape}")
    return proportions


def _pair_score(
    a: np.ndarray,
    b: np.ndarray,
    method: str
) -> np.ndarray:
    if method == "product":
        return a * b
    elif method == "min":
        return np.minimum(a, b)
    elif method == "geometric":
        with np.errstate(invalid="ignore"):
            return np.sqrt(np.clip(a, 0, None) * np.clip(b, 0, None))
    raise ValueError(f"Unknown method: {method}")


def codistribution_pair(
    proportions: pd.DataFrame,
    type_a: str,
    type_b: str,
    method: Literal["product", "min", "geometric"] = "product",
    min_prop: float = 0.0
) -> pd.Series:
    """
    Co-distribution of two cell types at every spot.

    High only where both proportions are non-negligible. All methods are
    symmetric in ``type_a`` and ``type_b``.

    Parameters
    ----------
    proportions : pd.DataFrame
        Cell-type proportions (spots × cell types).
    type_a, type_b : str
        Column names of the two cell types.
    method : {"product", "min", "geometric"}, default "product"
        - "product": p_a * p_b
        - "min": min(p_a, p_b), the overlap of the two proportions
        - "geometric": sqrt(p_a * p_b)
    min_prop : float, default 0.0
        Proportions strictly below this are treated as absent (0); a
        proportion equal to ``min_prop`` counts.

    Returns
    -------
    pd.Series
        Score per spot, named "{type_a}_{type_b}".
    """
    proportions = _check_proportions(proportions)
    for cell_type in (type_a, type_b):
        if cell_type not in proportions.columns:
            raise KeyError(f"Cell type not in proportion table: {cell_type}")

    a = proportions[type_a].to_numpy(dtype=np.float64)
    b = proportions[type_b].to_numpy(dtype=np.float64)
    if min_prop > 0:
        a = np.where(a < min_prop, 0.0, a)
        b = np.where(b < min_prop, 0.0, b)

    return pd.Series(
        _pair_score(a, b, method),
        index=proportions.index,
        name=f"{type_a}_{type_b}"
    )


def calc_codistribution(
    proportions: pd.DataFrame,
    cell_types: Optional[Sequence[str]] = None,
    method: Literal["product", "min", "geometric"] = "product",
    min_prop: float = 0.0,
    sort: bool = False,
    sep: str = "_"
) -> pd.DataFrame:
    """
    Pairwise cell-type co-distribution scores per spot.

    Parameters
    ----------
    proportions : pd.DataFrame
        Cell-type proportions (spots × cell types), rows summing to <= 1.
    cell_types : sequence of str, optional
        Restrict to these cell types. Default: all columns.
    method : {"product", "min", "geometric"}, default "product"
        Pair score, see ``codistribution_pair``.
    min_prop : float, default 0.0
        Proportions strictly below this are treated as absent; a
        proportion equal to ``min_prop`` counts.
    sort : bool, default False
        Sort the two types inside each pair name and the pair columns
        alphabetically. Otherwise table order is kept.
    sep : str, default "_"
        Separator between the two cell-type names.

    Returns
    -------
    pd.DataFrame
        Spots × pairs, one column per unordered pair of cell types,
        indexed like ``proportions``.

    Examples
    --------
    >>> codist = calc_codistribution(props, cell_types=["B_cell", "Plasma", "T_CD4"])
    >>> codist.columns.tolist()
    ['B_cell_Plasma', 'B_cell_T_CD4', 'Plasma_T_CD4']
    """
    proportions = _check_proportions(proportions)

    if cell_types is None:
        cell_types = list(proportions.columns)
    else:
        cell_types = list(dict.fromkeys(cell_types))
        unknown = [t for t in cell_types if t not in proportions.columns]
        if unknown:
            raise KeyError(f"Cell type(s) not in proportion table: {unknown}")

    if len(cell_types) < 2:
        raise EmptyInputError("At least two cell types are needed for co-distribution")

    values = proportions[cell_types].to_numpy(dtype=np.float64)
    if min_prop > 0:
        values = np.where(values < min_prop, 0.0, values)

    columns: Dict[str, np.ndarray] = {}
    for i, j in combinations(range(len(cell_types)), 2):
        a_name, b_name = cell_types[i], cell_types[j]
        if sort and str(b_name) < str(a_name):
            a_name, b_name = b_name, a_name
        columns[f"{a_name}{sep}{b_name}"] = _pair_score(values[:, i], values[:, j], method)

    result = pd.DataFrame(columns, index=proportions.index)
    if sort:
        result = result[sorted(result.columns)]
    return result


def calc_immune_infiltration(
    proportions: pd.DataFrame,
    immune_types: Sequence[str],
    min_prop: float = 0.0,
    normalize: bool = False,
    zero_fill: bool = False
) -> pd.DataFrame:
    """
    Immune enrichment and diversity indices per spot.

    Parameters
    ----------
    proportions : pd.DataFrame
        Cell-type proportions (spots × cell types).
    immune_types : sequence of str
        Cell types counted as immune. Types missing from the table are
        dropped with a warning.
    min_prop : float, default 0.0
        Immune types with a proportion strictly below this are left out
        of the diversity index; a proportion equal to ``min_prop`` counts.
    normalize : bool, default False
        Divide the diversity by log(k), k = number of immune types, so it
        lies in [0, 1].
    zero_fill : bool, default False
        Treat missing proportions as 0. By default they are skipped, and
        a spot with every immune type missing gets NaN in both columns.

    Returns
    -------
    pd.DataFrame
        Indexed like ``proportions``, columns:
        - 'enrichment': summed immune proportion over observed types
        - 'diversity': Shannon entropy of the immune proportions at or
          above ``min_prop``, renormalized to sum to 1 (0 if none qualify)

    Examples
    --------
    >>> infil = calc_immune_infiltration(props, ["B_cell", "T_CD4", "T_CD8", "Macrophage"],
    ...                                  min_prop=0.01)
    """
    proportions = _check_proportions(proportions)

    immune_types = list(dict.fromkeys(immune_types))
    present = [t for t in immune_types if t in proportions.columns]
    absent = [t for t in immune_types if t not in proportions.columns]

    if absent:
        warnings.warn(
            f"{len(absent)} immune type(s) not in proportion table, ignored: {', '.join(map(str, absent))}",
            RuntimeWarning
        )
    if not present:
        raise EmptyInputError("None of the immune types are present in the proportion table")

    immune = proportions[present].to_numpy(dtype=np.float64)
    if zero_fill:
        immune = np.where(np.isnan(immune), 0.0, immune)

    observed = ~np.isnan(immune)
    any_observed = observed.any(axis=1)
    immune = np.where(observed, immune, 0.0)

    enrichment = np.where(any_observed, immune.sum(axis=1), np.nan)

    counted = np.where(immune >= min_prop, immune, 0.0)
    totals = counted.sum(axis=1, keepdims=True)
    with np.errstate(invalid="ignore", divide="ignore"):
        p = np.where(totals > 0, counted / totals, 0.0)
        terms = np.where(p > 0, -p * np.log(p), 0.0)
    diversity = np.where(any_observed, terms.sum(axis=1), np.nan)

    if normalize and len(present) > 1:
        diversity = diversity / np.log(len(present))

    return pd.DataFrame({
        'enrichment': enrichment,
        'diversity': diversity,
    }, index=proportions.index)


def calc_morans_i(
    values: pd.Series,
    index: NeighborIndex,
    n_permutations: int = 0,
    seed: Optional[int] = None
) -> Dict[str, float]:
    """
    Calculate Moran's I spatial autocorrelation of a per-spot score.

    Uses binary, row-normalized weights over the neighbor index. Spots
    with a missing value are dropped together with their edges.

    Parameters
    ----------
    values : pd.Series
        Score per spot.
    index : NeighborIndex
        Neighbor index over the same spots.
    n_permutations : int, default 0
        Number of permutations for significance testing.
    seed : int, optional
        Random seed.

    Returns
    -------
    dict
        Dictionary with 'I' (Moran's I), 'expected' (expected under null),
        and 'pvalue', 'zscore' if permutations > 0.

    Examples
    --------
    >>> result = calc_morans_i(tni_score, index, n_permutations=999, seed=0)
    >>> print(f"Moran's I: {result['I']:.3f}, p-value: {result['pvalue']:.4f}")
    """
    if len(values) == 0:
        raise EmptyInputError("values is empty")

    aligned = align_to_index(values, index, name="values").to_numpy(dtype=np.float64)
    keep = ~np.isnan(aligned)

    rows = index.row_positions()
    cols = index.indices
    edge = rows != cols
    W = sparse.csr_matrix(
        (np.ones(edge.sum()), (rows[edge], cols[edge])),
        shape=(index.n_spots, index.n_spots)
    )
    W = W[keep][:, keep]
    W = row_normalize_weights(W)

    x = aligned[keep]
    n = len(x)
    if n < 2:
        return {'I': np.nan, 'expected': np.nan, 'pvalue': np.nan, 'zscore': np.nan}

    z = x - np.mean(x)
    denominator = z @ z
    S0 = W.sum()

    if denominator == 0 or S0 == 0:
        return {'I': np.nan, 'expected': np.nan, 'pvalue': np.nan, 'zscore': np.nan}

    I = (n / S0) * ((z @ (W @ z)) / denominator)
    expected = -1 / (n - 1)

    result = {'I': float(I), 'expected': expected}

    if n_permutations > 0:
        rng = np.random.default_rng(seed)

        perm_I = np.zeros(n_permutations)
        for p in range(n_permutations):
            z_perm = rng.permutation(z)
            perm_I[p] = (n / S0) * ((z_perm @ (W @ z_perm)) / denominator)

        result['pvalue'] = float(np.mean(np.abs(perm_I) >= np.abs(I)))
        std = np.std(perm_I)
        result['zscore'] = float((I - np.mean(perm_I)) / std) if std > 0 else np.nan

    return result
