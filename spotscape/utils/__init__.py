"""
SpotScape utility functions.

This module provides core utilities for:
- Sparse matrix operations
- Gene table handling
- Score rescaling
"""

from .sparse import sweep_sparse

from .genes import (
    rm_duplicates,
    match_genes,
)

from .scaling import (
    rescale_minmax,
    rescale_max,
)

__all__ = [
    # Sparse utilities
    "sweep_sparse",
    # Gene utilities
    "rm_duplicates",
    "match_genes",
    # Scaling
    "rescale_minmax",
    "rescale_max",
]
