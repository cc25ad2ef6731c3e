"""
Gene table utilities for SpotScape.

Duplicate handling and case-insensitive gene lookup for expression
matrices (genes × spots) before ligand-receptor scoring.
"""

from collections import Counter
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


def rm_duplicates(
    mat: pd.DataFrame,
    keep: str = "max_sum"
) -> pd.DataFrame:
    """
    Remove duplicate gene rows, keeping one row per gene.

    Parameters
    ----------
    mat : pd.DataFrame
        Expression matrix (genes × spots).
    keep : str, default "max_sum"
        Strategy for keeping duplicates:
        - "max_sum": Keep row with highest total expression
        - "first": Keep first occurrence
        - "last": Keep last occurrence

    Returns
    -------
    pd.DataFrame
        Matrix with unique row labels, in original row order.

    Examples
    --------
    >>> df = pd.DataFrame(
    ...     [[1, 2], [3, 4], [5, 6]],
    ...     index=["A", "B", "A"],
    ...     columns=["S1", "S2"]
    ... )
    >>> rm_duplicates(df)
       S1  S2
    B   3   4
    A   5   6
    """
    if keep not in ("max_sum", "first", "last"):
        raise ValueError(f"Unknown keep strategy: {keep}")

    row_names = list(mat.index)
    counts = Counter(row_names)
    if all(c == 1 for c in counts.values()):
        return mat

    sums = np.nansum(mat.to_numpy(dtype=np.float64), axis=1)
    best: Dict[str, int] = {}
    for i, gene in enumerate(row_names):
        if gene not in best or keep == "last":
            best[gene] = i
        elif keep == "max_sum" and sums[i] > sums[best[gene]]:
            best[gene] = i

    return mat.iloc[sorted(best.values())]


def match_genes(
    query_genes: List[str],
    reference_genes: List[str],
    case_sensitive: bool = False
) -> Dict[str, Optional[str]]:
    """
    Match query genes to reference genes, handling case differences.

    Parameters
    ----------
    query_genes : list
        Genes to match.
    reference_genes : list
        Reference gene set.
    case_sensitive : bool, default False
        Whether matching is case-sensitive.

    Returns
    -------
    dict
        Mapping from query gene to matched reference gene (or None).
        Exact matches win over case-insensitive ones.

    Examples
    --------
    >>> match_genes(["tp53", "BRCA1"], ["TP53", "BRCA1", "EGFR"])
    {'tp53': 'TP53', 'BRCA1': 'BRCA1'}
    """
    ref_set = set(reference_genes)
    if case_sensitive:
        return {g: g if g in ref_set else None for g in query_genes}

    ref_lookup = {}
    for g in reference_genes:
        ref_lookup.setdefault(str(g).upper(), g)

    return {
        gene: gene if gene in ref_set else ref_lookup.get(str(gene).upper())
        for gene in query_genes
    }
