"""
Spot coordinate handling for SpotScape.

Extracts a canonical coordinate table (spot id -> x, y) from the
containers spatial platforms ship, and optionally snaps the spots onto
an ideal lattice with unit spacing so that radius queries downstream
can be expressed in lattice steps.
"""

import re
import warnings
from typing import Literal, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.spatial import KDTree

from ..errors import (
    DimensionMismatchError,
    EmptyCoordinatesError,
    MissingCoordinatesError,
    _preview,
)

__all__ = [
    'load_coordinates',
    'hex_correct_coordinates',
    'square_correct_coordinates',
    'estimate_lattice_step',
    'COORDINATE_COLUMNS',
]

# Column pairs searched in metadata tables, in priority order.
# The "array" pairs are integer lattice indices, not geometric positions.
COORDINATE_COLUMNS = [
    ("x", "y"),
    ("imagecol", "imagerow"),
    ("pxl_col_in_fullres", "pxl_row_in_fullres"),
    ("array_col", "array_row"),
    ("col", "row"),
]
_ARRAY_COLUMNS = {("array_col", "array_row"), ("col", "row")}

_PACKED_PATTERN = re.compile(
    r"^\s*(-?\d+(?:\.\d+)?)\s*[xX]\s*(-?\d+(?:\.\d+)?)\s*$"
)

_HEX_ROW_HEIGHT = np.sqrt(3) / 2


def _platform_geometry(platform: str) -> str:
    key = str(platform).lower()
    if key in ("visium", "hex", "hexagonal"):
        return "hex"
    if key in ("st", "square", "grid"):
        return "square"
    raise ValueError(
        f"Unknown platform: {platform}. Use 'visium' (hexagonal) or 'st' (square)."
    )


def estimate_lattice_step(coords: Union[pd.DataFrame, np.ndarray]) -> float:
    """
    Estimate the lattice spacing as the median nearest-neighbor distance.

    Parameters
    ----------
    coords : DataFrame or np.ndarray
        Coordinates of shape (n_spots, 2).

    Returns
    -------
    float
        Median distance to the nearest other spot. Returns 1.0 when fewer
        than two distinct spots are available.
    """
    xy = np.asarray(coords, dtype=np.float64)
    if xy.shape[0] < 2:
        return 1.0

    tree = KDTree(xy)
    distances, _ = tree.query(xy, k=2)
    nearest = distances[:, 1]
    nearest = nearest[nearest > 0]

    if len(nearest) == 0:
        return 1.0
    return float(np.median(nearest))


def _snap_hex(major: np.ndarray, minor: np.ndarray, step: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Snap (major, minor) positions to a hexagonal lattice.

    ``major`` runs along the spot lines (spacing ``step``), ``minor``
    across them (spacing step * sqrt(3)/2). Adjacent lines are shifted by
    half a step, so in doubled-width indices (line + position) keeps a
    constant parity.
    """
    lines = np.rint((minor - minor.min()) / (step * _HEX_ROW_HEIGHT)).astype(np.int64)

    half_units = (major - major.min()) / (step / 2)
    positions = np.rint(half_units).astype(np.int64)

    ref_parity = (lines[0] + positions[0]) % 2
    off = (lines + positions) % 2 != ref_parity
    residual = half_units - positions
    positions[off] += np.where(residual[off] > 0, 1, -1)

    return positions * 0.5, lines * _HEX_ROW_HEIGHT


def hex_correct_coordinates(
    coords: pd.DataFrame,
    axis: Literal["horizontal", "vertical"] = "horizontal",
    step: Optional[float] = None
) -> pd.DataFrame:
    """
    Re-project spots onto an ideal hexagonal lattice with unit spacing.

    Parameters
    ----------
    coords : DataFrame
        Coordinate table with 'x' and 'y' columns.
    axis : {"horizontal", "vertical"}, default "horizontal"
        Orientation of the spot lines.
        - "horizontal": spots lie in rows, alternate rows offset by half a step
        - "vertical": spots lie in columns, alternate columns offset
    step : float, optional
        Raw distance between adjacent spots. Estimated if None.

    Returns
    -------
    DataFrame
        New table with the same index; adjacent spots are exactly 1 apart.

    Examples
    --------
    >>> noisy = coords + np.random.normal(scale=2.0, size=coords.shape)
    >>> ideal = hex_correct_coordinates(noisy, axis="horizontal")
    """
    if step is None:
        step = estimate_lattice_step(coords[["x", "y"]])

    x = coords["x"].to_numpy(dtype=np.float64)
    y = coords["y"].to_numpy(dtype=np.float64)

    if axis == "horizontal":
        new_x, new_y = _snap_hex(x, y, step)
    elif axis == "vertical":
        new_y, new_x = _snap_hex(y, x, step)
    else:
        raise ValueError(f"Unknown axis: {axis}. Use 'horizontal' or 'vertical'.")

    return pd.DataFrame({"x": new_x, "y": new_y}, index=coords.index.copy())


def square_correct_coordinates(
    coords: pd.DataFrame,
    step: Optional[float] = None
) -> pd.DataFrame:
    """Snap spots onto a square grid with unit spacing."""
    if step is None:
        step = estimate_lattice_step(coords[["x", "y"]])

    x = coords["x"].to_numpy(dtype=np.float64)
    y = coords["y"].to_numpy(dtype=np.float64)

    return pd.DataFrame({
        "x": np.rint((x - x.min()) / step),
        "y": np.rint((y - y.min()) / step),
    }, index=coords.index.copy())


def _from_columns(table: pd.DataFrame, geometry: str) -> Optional[pd.DataFrame]:
    for xcol, ycol in COORDINATE_COLUMNS:
        if xcol in table.columns and ycol in table.columns:
            x = pd.to_numeric(table[xcol], errors="coerce").to_numpy(dtype=np.float64)
            y = pd.to_numeric(table[ycol], errors="coerce").to_numpy(dtype=np.float64)

            if (xcol, ycol) in _ARRAY_COLUMNS and geometry == "hex":
                # Visium array_col advances by 2 between row neighbours
                x = x * 0.5
                y = y * _HEX_ROW_HEIGHT

            return pd.DataFrame({"x": x, "y": y}, index=table.index.copy())
    return None


def _from_packed(names: Sequence) -> Optional[pd.DataFrame]:
    """Decode spot names like '12x34' into coordinates."""
    xs, ys = [], []
    for name in names:
        match = _PACKED_PATTERN.match(str(name))
        if match is None:
            return None
        xs.append(float(match.group(1)))
        ys.append(float(match.group(2)))

    return pd.DataFrame({"x": xs, "y": ys}, index=pd.Index(list(names)))


def _is_anndata_like(obj) -> bool:
    return hasattr(obj, "obs") and hasattr(obj, "obsm")


def _extract(source, spot_ids, geometry: str) -> Optional[pd.DataFrame]:
    if isinstance(source, pd.DataFrame):
        found = _from_columns(source, geometry)
        if found is None and len(source.index) > 0:
            found = _from_packed(source.index)
        return found

    if _is_anndata_like(source):
        obs_names = pd.Index(source.obs.index)
        spatial = None
        try:
            spatial = source.obsm["spatial"]
        except (KeyError, TypeError):
            spatial = None

        if spatial is not None:
            spatial = np.asarray(spatial, dtype=np.float64)
            if spatial.ndim == 2 and spatial.shape[1] >= 2:
                return pd.DataFrame(
                    {"x": spatial[:, 0], "y": spatial[:, 1]},
                    index=obs_names.copy()
                )

        found = _from_columns(source.obs, geometry)
        if found is None and len(obs_names) > 0:
            found = _from_packed(obs_names)
        return found

    if isinstance(source, np.ndarray) and source.ndim == 2:
        if source.shape[1] < 2:
            return None
        xy = source[:, :2].astype(np.float64)
        index = pd.Index(spot_ids) if spot_ids is not None else pd.RangeIndex(len(xy))
        if len(index) != len(xy):
            raise DimensionMismatchError(
                f"spot_ids has {len(index)} entries but coordinates have {len(xy)} rows"
            )
        return pd.DataFrame({"x": xy[:, 0], "y": xy[:, 1]}, index=index)

    if isinstance(source, (list, tuple, pd.Index, pd.Series, np.ndarray)):
        names = list(source)
        if len(names) == 0:
            return pd.DataFrame({"x": [], "y": []})
        found = _from_packed(names)
        if found is not None and spot_ids is not None:
            if len(spot_ids) != len(found):
                raise DimensionMismatchError(
                    f"spot_ids has {len(spot_ids)} entries but {len(found)} packed coordinates given"
                )
            found.index = pd.Index(spot_ids)
        return found

    return None


def load_coordinates(
    source,
    spot_ids: Optional[Sequence] = None,
    platform: str = "visium",
    hex_correct: bool = False,
    axis: Literal["horizontal", "vertical"] = "horizontal",
    reset: bool = False
) -> pd.DataFrame:
    """
    Build the canonical coordinate table for a set of spots.

    Parameters
    ----------
    source : DataFrame, AnnData-like, np.ndarray or sequence of str
        Where to read coordinates from:
        - DataFrame: metadata with a known column pair (see COORDINATE_COLUMNS)
          or spot names of the form "12x34" as index
        - AnnData-like: ``obsm["spatial"]``, then ``obs`` column pairs,
          then packed ``obs_names``
        - np.ndarray: (n_spots, 2) array, rows matched to ``spot_ids``
        - sequence of str: packed "XxY" spot names
    spot_ids : sequence, optional
        Spot identities for array input (or to relabel packed input).
    platform : str, default "visium"
        "visium" for hexagonal spot layouts, "st" for square grids.
    hex_correct : bool, default False
        Snap spots onto the ideal lattice of the platform with unit spacing.
    axis : {"horizontal", "vertical"}, default "horizontal"
        Orientation of the hexagonal spot lines (ignored for square grids).
    reset : bool, default False
        Write the resulting table back into ``source.obsm["spatial"]``
        (AnnData-like sources only).

    Returns
    -------
    DataFrame
        Columns 'x', 'y'; index = spot ids in input order.

    Raises
    ------
    MissingCoordinatesError
        If no supported source yields usable coordinates.
    EmptyCoordinatesError
        If the source holds zero spots.
    DimensionMismatchError
        If spot ids are duplicated or do not match the coordinate rows.

    Examples
    --------
    >>> coords = load_coordinates(adata, platform="visium", hex_correct=True)
    >>> coords = load_coordinates(["10x12", "11x12", "10x13"], platform="st")
    """
    geometry = _platform_geometry(platform)

    if source is None:
        raise MissingCoordinatesError("No coordinate source given")

    coords = _extract(source, spot_ids, geometry)

    if coords is None:
        raise MissingCoordinatesError(
            f"Could not find spatial coordinates in {type(source).__name__}: "
            f"expected one of the column pairs {COORDINATE_COLUMNS}, "
            "obsm['spatial'], an (n, 2) array or spot names like '12x34'"
        )

    if len(coords) == 0:
        raise EmptyCoordinatesError("Coordinate table has zero spots")

    if coords.index.has_duplicates:
        dups = coords.index[coords.index.duplicated()].unique()
        raise DimensionMismatchError(f"Duplicated spot ids: {_preview(dups)}")

    bad = ~np.isfinite(coords[["x", "y"]].to_numpy()).all(axis=1)
    if bad.any():
        raise MissingCoordinatesError(
            f"Non-finite coordinates for spot(s): {_preview(coords.index[bad])}"
        )

    if hex_correct:
        if geometry == "hex":
            coords = hex_correct_coordinates(coords, axis=axis)
        else:
            coords = square_correct_coordinates(coords)

    if reset:
        if _is_anndata_like(source):
            source.obsm["spatial"] = coords[["x", "y"]].to_numpy()
        else:
            warnings.warn(
                "reset=True only applies to AnnData-like sources; ignoring.",
                RuntimeWarning
            )

    return coords
