"""
Spatial neighbor index for SpotScape.

Builds, once per (coordinate table, radius), the list of spots within a
radius of every spot. Radii are expressed in lattice steps: radius 1 is
the immediate ring of a hexagonal lattice, radius 2 the first two rings.
The same index is reused by every aggregation and classification step.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

import numpy as np
import pandas as pd
from scipy.spatial import KDTree
from scipy.spatial.distance import cdist

from ..errors import DimensionMismatchError, EmptyCoordinatesError, _preview
from .coords import estimate_lattice_step

__all__ = [
    'NeighborIndex',
    'build_neighbor_index',
    'DEFAULT_RADIUS',
    'DEFAULT_TOLERANCE',
    'BRUTE_FORCE_MAX_SPOTS',
]

DEFAULT_RADIUS = 1.0

# Slack added to the cutoff, in lattice steps. On an ideal hexagonal
# lattice ring k+1 starts more than 0.08 steps beyond k for k <= 6.
DEFAULT_TOLERANCE = 0.05

# Dense pairwise distances beyond this size are refused
BRUTE_FORCE_MAX_SPOTS = 5000


@dataclass(frozen=True, eq=False)
class NeighborIndex:
    """
    Neighbors within a radius for every spot.

    Stored in CSR layout: the neighbors of spot ``i`` (position in
    ``spot_ids``) are ``indices[indptr[i]:indptr[i+1]]`` with matching
    ``distances`` in lattice-step units, sorted by distance then position.

    Attrs:
        .spot_ids (pd.Index): spot identities, in coordinate-table order
        .indptr (ndarray[int]): row pointers, length n_spots + 1
        .indices (ndarray[int]): neighbor positions
        .distances (ndarray[float]): neighbor distances in lattice steps
        .radius (float): radius used to build the index, in lattice steps
        .step (float): raw distance of one lattice step
        .include_self (bool): whether each spot lists itself
        .tolerance (float): slack added to the cutoff, in lattice steps
    """

    spot_ids: pd.Index
    indptr: np.ndarray
    indices: np.ndarray
    distances: np.ndarray
    radius: float
    step: float
    include_self: bool
    tolerance: float = DEFAULT_TOLERANCE

    def __len__(self) -> int:
        return len(self.spot_ids)

    @property
    def n_spots(self) -> int:
        return len(self.spot_ids)

    def row_positions(self) -> np.ndarray:
        """Center position of every stored (center, neighbor) entry."""
        return np.repeat(np.arange(self.n_spots), np.diff(self.indptr))

    def position(self, spot) -> int:
        return int(self.spot_ids.get_loc(spot))

    def neighbors(self, spot) -> pd.DataFrame:
        """Neighbors of one spot with their distances."""
        i = self.position(spot)
        start, end = self.indptr[i], self.indptr[i + 1]
        return pd.DataFrame({
            'neighbor': self.spot_ids[self.indices[start:end]],
            'distance': self.distances[start:end],
        })

    def sizes(self) -> pd.Series:
        """Number of neighbors per spot."""
        return pd.Series(np.diff(self.indptr), index=self.spot_ids, name='n_neighbors')

    def restrict(self, radius: float) -> "NeighborIndex":
        """
        Derive the index for a smaller radius without a new spatial query.

        Parameters
        ----------
        radius : float
            New radius in lattice steps, at most ``self.radius``.
        """
        if radius > self.radius:
            raise ValueError(
                f"Cannot restrict an index of radius {self.radius} to larger radius {radius}"
            )
        if radius < 0:
            raise ValueError("radius must be non-negative")

        keep = self.distances <= _cutoff(radius, self.tolerance)
        rows = self.row_positions()[keep]

        indptr = np.zeros(self.n_spots + 1, dtype=np.int64)
        np.cumsum(np.bincount(rows, minlength=self.n_spots), out=indptr[1:])

        return NeighborIndex(
            spot_ids=self.spot_ids,
            indptr=indptr,
            indices=self.indices[keep],
            distances=self.distances[keep],
            radius=float(radius),
            step=self.step,
            include_self=self.include_self,
            tolerance=self.tolerance,
        )


def _cutoff(radius: float, tolerance: float) -> float:
    """Distance cutoff in lattice steps; radius 0 gets no slack."""
    return radius + tolerance if radius > 0 else 0.0


def _as_xy(coords) -> tuple:
    if isinstance(coords, pd.DataFrame):
        if coords.index.has_duplicates:
            dups = coords.index[coords.index.duplicated()].unique()
            raise DimensionMismatchError(f"Duplicated spot ids in coordinates: {_preview(dups)}")
        if "x" in coords.columns and "y" in coords.columns:
            xy = coords[["x", "y"]].to_numpy(dtype=np.float64)
        else:
            xy = coords.iloc[:, :2].to_numpy(dtype=np.float64)
        return xy, pd.Index(coords.index)

    xy = np.asarray(coords, dtype=np.float64)
    if xy.size == 0:
        raise EmptyCoordinatesError("Cannot build a neighbor index over zero spots")
    if xy.ndim != 2 or xy.shape[1] < 2:
        raise ValueError("coords must have shape (n_spots, 2)")
    return xy[:, :2], pd.RangeIndex(xy.shape[0])


def build_neighbor_index(
    coords: Union[pd.DataFrame, np.ndarray],
    radius: float = DEFAULT_RADIUS,
    include_self: bool = False,
    step: Optional[float] = None,
    method: Literal["kdtree", "brute"] = "kdtree",
    tolerance: float = DEFAULT_TOLERANCE
) -> NeighborIndex:
    """
    Find the neighbors of every spot within a radius.

    Parameters
    ----------
    coords : DataFrame or np.ndarray
        Coordinate table ('x', 'y' columns, index = spot ids) or an
        (n_spots, 2) array.
    radius : float, default 1.0
        Neighborhood radius in lattice steps. 0 keeps only the spot itself.
    include_self : bool, default False
        Whether each spot is listed among its own neighbors.
    step : float, optional
        Raw distance of one lattice step. Estimated as the median
        nearest-neighbor distance if None; pass 1.0 to use raw units.
    method : {"kdtree", "brute"}, default "kdtree"
        - "kdtree": radius queries on a KD-tree (sub-quadratic)
        - "brute": dense pairwise distance matrix, only for small inputs
    tolerance : float, default 0.05
        Slack added to the cutoff, in lattice steps. Up to radius 6 the
        neighbors of an ideal hexagonal lattice are exactly its first
        ``radius`` rings.

    Returns
    -------
    NeighborIndex

    Raises
    ------
    EmptyCoordinatesError
        If the coordinate table has zero spots.
    DimensionMismatchError
        If the coordinate table has duplicated spot ids.

    Examples
    --------
    >>> index = build_neighbor_index(coords, radius=2)
    >>> index.sizes().describe()
    """
    xy, spot_ids = _as_xy(coords)
    n_spots = xy.shape[0]

    if n_spots == 0:
        raise EmptyCoordinatesError("Cannot build a neighbor index over zero spots")
    if radius < 0:
        raise ValueError("radius must be non-negative")

    if step is None:
        step = estimate_lattice_step(xy)
    if step <= 0:
        raise ValueError("step must be positive")

    cutoff = _cutoff(radius, tolerance) * step

    if method == "kdtree":
        tree = KDTree(xy)
        neighbor_lists = tree.query_ball_point(xy, r=cutoff)
        lengths = np.fromiter((len(nb) for nb in neighbor_lists), dtype=np.int64, count=n_spots)
        rows = np.repeat(np.arange(n_spots), lengths)
        cols = (
            np.concatenate([np.asarray(nb, dtype=np.int64) for nb in neighbor_lists])
            if lengths.sum() > 0 else np.zeros(0, dtype=np.int64)
        )
        dist = np.linalg.norm(xy[rows] - xy[cols], axis=1)
    elif method == "brute":
        if n_spots > BRUTE_FORCE_MAX_SPOTS:
            raise ValueError(
                f"Brute-force neighbor search is limited to {BRUTE_FORCE_MAX_SPOTS} spots "
                f"(got {n_spots}); use method='kdtree'"
            )
        full = cdist(xy, xy)
        rows, cols = np.nonzero(full <= cutoff)
        dist = full[rows, cols]
    else:
        raise ValueError(f"Unknown method: {method}")

    if not include_self:
        keep = rows != cols
        rows, cols, dist = rows[keep], cols[keep], dist[keep]
    else:
        # radius 0 still lists the spot itself
        missing_self = np.setdiff1d(np.arange(n_spots), rows[rows == cols])
        if len(missing_self) > 0:
            rows = np.concatenate([rows, missing_self])
            cols = np.concatenate([cols, missing_self])
            dist = np.concatenate([dist, np.zeros(len(missing_self))])

    order = np.lexsort((cols, dist, rows))
    rows, cols, dist = rows[order], cols[order], dist[order]

    indptr = np.zeros(n_spots + 1, dtype=np.int64)
    np.cumsum(np.bincount(rows, minlength=n_spots), out=indptr[1:])

    return NeighborIndex(
        spot_ids=spot_ids,
        indptr=indptr,
        indices=cols.astype(np.int64),
        distances=dist / step,
        radius=float(radius),
        step=float(step),
        include_self=include_self,
        tolerance=tolerance,
    )

