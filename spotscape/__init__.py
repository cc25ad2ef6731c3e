"""
SpotScape: Spatial scoring of spot-based transcriptomics

Scores tissue organization on lattice-arrayed spatial transcriptomics
(Visium hexagonal, ST square): tumor-normal interfaces, tertiary
lymphoid structures, ligand-receptor communication and cell-type
co-distribution, all built on one neighborhood aggregation primitive.

Quick Start:
------------
    >>> import pandas as pd
    >>> from spotscape import load_coordinates, build_neighbor_index, identify_tni
    >>>
    >>> # Coordinates (index = spot ids) and per-spot inputs
    >>> coords = load_coordinates(metadata, platform="visium", hex_correct=True)
    >>> index = build_neighbor_index(coords, radius=1)
    >>>
    >>> # Tumor-normal interface
    >>> tni = identify_tni(coords, tumor_es, domains, index=index)
    >>> tni['tni_class'].value_counts()

Ligand-receptor scoring:
------------------------
    >>> from spotscape import load_lr_database, calc_lr_scores
    >>>
    >>> lr_pairs = load_lr_database()
    >>> index = build_neighbor_index(coords, radius=2)
    >>> scores = calc_lr_scores(expression, index, lr_pairs)  # pairs × spots
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    SpotScapeError,
    MissingCoordinatesError,
    EmptyInputError,
    EmptyCoordinatesError,
    InvalidThresholdError,
    DimensionMismatchError,
    MissingGeneError,
)

# Spatial model and score engines
from .spatial import (
    # Coordinates and neighbors
    load_coordinates,
    estimate_lattice_step,
    hex_correct_coordinates,
    NeighborIndex,
    build_neighbor_index,
    # Aggregation
    aggregate,
    aggregation_weights,
    row_normalize_weights,
    # TNI
    calc_tni_score,
    define_tni_region,
    group_tni_types,
    tni_class,
    identify_tni,
    # TLS
    calc_tls_score,
    # L-R network
    load_lr_database,
    calc_effective_expression,
    calc_lr_scores,
    aggregate_pathway_scores,
    # Co-distribution
    calc_codistribution,
    codistribution_pair,
    calc_immune_infiltration,
    calc_morans_i,
    # Defaults
    DEFAULT_RADIUS,
    DEFAULT_POWER,
    DEFAULT_SELF_DISTANCE,
    DEFAULT_SECRETED_RADIUS,
    DEFAULT_CONTACT_RADIUS,
    DEFAULT_TNI_BAND,
)

# Utilities
from .utils import (
    rm_duplicates,
    match_genes,
    rescale_minmax,
)

__all__ = [
    "__version__",
    # Errors
    "SpotScapeError",
    "MissingCoordinatesError",
    "EmptyInputError",
    "EmptyCoordinatesError",
    "InvalidThresholdError",
    "DimensionMismatchError",
    "MissingGeneError",
    # Coordinates and neighbors
    "load_coordinates",
    "estimate_lattice_step",
    "hex_correct_coordinates",
    "NeighborIndex",
    "build_neighbor_index",
    # Aggregation
    "aggregate",
    "aggregation_weights",
    "row_normalize_weights",
    # TNI
    "calc_tni_score",
    "define_tni_region",
    "group_tni_types",
    "tni_class",
    "identify_tni",
    # TLS
    "calc_tls_score",
    # L-R network
    "load_lr_database",
    "calc_effective_expression",
    "calc_lr_scores",
    "aggregate_pathway_scores",
    # Co-distribution
    "calc_codistribution",
    "codistribution_pair",
    "calc_immune_infiltration",
    "calc_morans_i",
    # Defaults
    "DEFAULT_RADIUS",
    "DEFAULT_POWER",
    "DEFAULT_SELF_DISTANCE",
    "DEFAULT_SECRETED_RADIUS",
    "DEFAULT_CONTACT_RADIUS",
    "DEFAULT_TNI_BAND",
    # Utilities
    "rm_duplicates",
    "match_genes",
    "rescale_minmax",
]
