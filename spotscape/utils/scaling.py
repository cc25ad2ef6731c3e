"""
Score scaling helpers for SpotScape.
"""

import warnings
from typing import Union

import numpy as np
import pandas as pd


def rescale_minmax(
    values: Union[pd.Series, pd.DataFrame],
    epsilon: float = 1e-12
) -> Union[pd.Series, pd.DataFrame]:
    """
    Rescale values (per column for DataFrames) to [0, 1].

    Missing values stay missing. Constant inputs map to 0 with a
    RuntimeWarning, since they carry no contrast.

    Parameters
    ----------
    values : Series or DataFrame
        Scores to rescale.
    epsilon : float
        Ranges below this are treated as constant.

    Returns
    -------
    Same type as input, same labels.
    """
    if isinstance(values, pd.Series):
        return rescale_minmax(values.to_frame(), epsilon=epsilon).iloc[:, 0].rename(values.name)

    data = values.to_numpy(dtype=np.float64)
    if data.shape[0] == 0:
        return values.astype(np.float64)

    with warnings.catch_warnings():
        # all-NaN columns are reported below, not by numpy
        warnings.simplefilter("ignore", RuntimeWarning)
        lo = np.nanmin(data, axis=0, keepdims=True)
        hi = np.nanmax(data, axis=0, keepdims=True)

    span = hi - lo
    flat = ~(span > epsilon)
    if flat.any():
        names = [str(c) for c, f in zip(values.columns, flat.ravel()) if f]
        warnings.warn(
            f"{len(names)} column(s) are constant or empty ({', '.join(names)}); "
            "rescaled values set to 0.",
            RuntimeWarning
        )

    with np.errstate(invalid="ignore", divide="ignore"):
        scaled = np.where(flat, 0.0, (data - lo) / np.where(flat, 1.0, span))
    scaled = np.where(np.isnan(data), np.nan, scaled)

    return pd.DataFrame(scaled, index=values.index, columns=values.columns)


def rescale_max(values: pd.Series) -> pd.Series:
    """Divide by the maximum observed value (no shift); all-zero stays zero."""
    peak = np.nanmax(values.to_numpy(dtype=np.float64)) if len(values) else np.nan
    if not np.isfinite(peak) or peak <= 0:
        return values.astype(np.float64)
    return values / peak
