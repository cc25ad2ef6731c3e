"""
Sparse matrix utilities for SpotScape.

Row/column-wise operations on scipy sparse matrices that touch only the
stored entries.
"""

from typing import Callable, Literal, Union
import numpy as np
from scipy import sparse

_SWEEP_FUNCTIONS = {
    "subtract": np.subtract,
    "-": np.subtract,
    "add": np.add,
    "+": np.add,
    "multiply": np.multiply,
    "*": np.multiply,
    "divide": np.divide,
    "/": np.divide,
}


def sweep_sparse(
    m: sparse.spmatrix,
    margin: Literal[0, 1],
    stats: np.ndarray,
    fun: Union[str, Callable] = "subtract"
) -> sparse.spmatrix:
    """
    Sweep out array summaries from sparse matrices.

    Applies an operation between the stored entries of each row/column
    and the corresponding statistic. Implicit zeros are left untouched.

    Parameters
    ----------
    m : sparse.spmatrix
        Input sparse matrix.
    margin : {0, 1}
        0 = operate on rows (apply stats to each row)
        1 = operate on columns (apply stats to each column)
    stats : np.ndarray
        Statistics array. Length must match the size of the margin dimension.
    fun : str or callable, default "subtract"
        "subtract", "add", "multiply", "divide" (or their operator symbols),
        or a custom function f(x, s) -> result.

    Returns
    -------
    sparse.spmatrix
        CSR for row operations, CSC for column operations.

    Examples
    --------
    >>> row_sums = np.asarray(W.sum(axis=1)).ravel()
    >>> W_norm = sweep_sparse(W, margin=0, stats=row_sums, fun="divide")
    """
    if isinstance(fun, str):
        if fun not in _SWEEP_FUNCTIONS:
            raise ValueError(
                f"Unknown function '{fun}'. Use one of {list(_SWEEP_FUNCTIONS)} or pass a callable."
            )
        f = _SWEEP_FUNCTIONS[fun]
    else:
        f = fun

    stats = np.asarray(stats, dtype=np.float64)

    if margin == 0:
        m = m.tocsr().astype(np.float64, copy=True)
        if len(stats) != m.shape[0]:
            raise ValueError(f"stats has {len(stats)} entries, matrix has {m.shape[0]} rows")
        owner = np.repeat(np.arange(m.shape[0]), np.diff(m.indptr))
    elif margin == 1:
        m = m.tocsc().astype(np.float64, copy=True)
        if len(stats) != m.shape[1]:
            raise ValueError(f"stats has {len(stats)} entries, matrix has {m.shape[1]} columns")
        owner = np.repeat(np.arange(m.shape[1]), np.diff(m.indptr))
    else:
        raise ValueError("margin must be 0 (rows) or 1 (columns)")

    m.data = f(m.data, stats[owner])
    return m
