"""
SpotScape spatial analysis functions.

This module provides utilities for spot-level spatial transcriptomics:
- Coordinate loading and lattice correction
- Radius neighbor indexing
- Neighborhood aggregation and spatial weights
- Tumor-normal interface (TNI) scoring and classification
- Tertiary lymphoid structure (TLS) scoring
- Ligand-receptor diffusion and interaction scoring
- Cell-type co-distribution and immune infiltration

Examples
--------
>>> from spotscape.spatial import load_coordinates, build_neighbor_index
>>> from spotscape.spatial import identify_tni, calc_lr_scores
>>>
>>> # Coordinates on the ideal hexagonal lattice
>>> coords = load_coordinates(adata, platform="visium", hex_correct=True)
>>> index = build_neighbor_index(coords, radius=1)
>>>
>>> # Tumor-normal interface
>>> tni = identify_tni(coords, tumor_es, domains, index=index)
>>>
>>> # Ligand-receptor interaction scoring
>>> lr_pairs = load_lr_database()
>>> lr_index = build_neighbor_index(coords, radius=2)
>>> lr_scores = calc_lr_scores(expression, lr_index, lr_pairs)
"""

# Coordinates
from .coords import (
    load_coordinates,
    estimate_lattice_step,
    hex_correct_coordinates,
    square_correct_coordinates,
    COORDINATE_COLUMNS,
)

# Neighbor index
from .neighbors import (
    NeighborIndex,
    build_neighbor_index,
    DEFAULT_RADIUS,
    DEFAULT_TOLERANCE,
    BRUTE_FORCE_MAX_SPOTS,
)

# Aggregation and spatial weights
from .weights import (
    aggregate,
    aggregation_weights,
    align_to_index,
    row_normalize_weights,
    DEFAULT_POWER,
    DEFAULT_SELF_DISTANCE,
)

# Tumor-normal interface
from .interface import (
    calc_tni_score,
    calc_tni_components,
    define_tni_region,
    group_tni_types,
    tni_class,
    identify_tni,
    DEFAULT_TNI_BAND,
)

# Tertiary lymphoid structures
from .tls import (
    calc_tls_score,
    combine_tls_components,
    TLS_COMBINERS,
)

# Ligand-receptor network scoring
from .lr_network import (
    load_lr_database,
    split_complex,
    calc_effective_expression,
    resolve_complex,
    calc_lr_scores,
    aggregate_pathway_scores,
    DEFAULT_SECRETED_RADIUS,
    DEFAULT_CONTACT_RADIUS,
)

# Co-distribution and infiltration
from .colocalization import (
    calc_codistribution,
    codistribution_pair,
    calc_immune_infiltration,
    calc_morans_i,
)

__all__ = [
    # Coordinates
    "load_coordinates",
    "estimate_lattice_step",
    "hex_correct_coordinates",
    "square_correct_coordinates",
    "COORDINATE_COLUMNS",
    # Neighbors
    "NeighborIndex",
    "build_neighbor_index",
    "DEFAULT_RADIUS",
    "DEFAULT_TOLERANCE",
    "BRUTE_FORCE_MAX_SPOTS",
    # Weights
    "aggregate",
    "aggregation_weights",
    "align_to_index",
    "row_normalize_weights",
    "DEFAULT_POWER",
    "DEFAULT_SELF_DISTANCE",
    # Interface
    "calc_tni_score",
    "calc_tni_components",
    "define_tni_region",
    "group_tni_types",
    "tni_class",
    "identify_tni",
    "DEFAULT_TNI_BAND",
    # TLS
    "calc_tls_score",
    "combine_tls_components",
    "TLS_COMBINERS",
    # L-R network
    "load_lr_database",
    "split_complex",
    "calc_effective_expression",
    "resolve_complex",
    "calc_lr_scores",
    "aggregate_pathway_scores",
    "DEFAULT_SECRETED_RADIUS",
    "DEFAULT_CONTACT_RADIUS",
    # Co-distribution
    "calc_codistribution",
    "codistribution_pair",
    "calc_immune_infiltration",
    "calc_morans_i",
]
