#!/usr/bin/env python3
"""
Tests for SpotScape utility modules.

Run with: python -m pytest tests/test_utils.py -v
Or directly: python tests/test_utils.py
"""

import numpy as np
import pandas as pd
import pytest
from scipy import sparse


def test_sparse_utilities():
    """Test sparse matrix utilities."""
    from spotscape.utils import sweep_sparse

    print("Testing sparse utilities...")

    # Test sweep_sparse row subtraction
    data = np.array([[1, 2, 3], [4, 5, 6], [7, 8, 9]], dtype=float)
    m = sparse.csr_matrix(data)
    row_means = np.array([2, 5, 8], dtype=float)
    result = sweep_sparse(m, margin=0, stats=row_means, fun="subtract")
    expected = np.array([[-1, 0, 1], [-1, 0, 1], [-1, 0, 1]], dtype=float)
    assert np.allclose(result.toarray(), expected), "sweep_sparse row failed"
    print("  ✓ sweep_sparse row subtraction")

    # Test column operation
    data = np.array([[2, 4, 6], [4, 8, 12]], dtype=float)
    m = sparse.csr_matrix(data)
    col_sums = np.array([6, 12, 18], dtype=float)
    result = sweep_sparse(m, margin=1, stats=col_sums, fun="divide")
    expected = np.array([[1 / 3, 1 / 3, 1 / 3], [2 / 3, 2 / 3, 2 / 3]], dtype=float)
    assert np.allclose(result.toarray(), expected), "sweep_sparse col failed"
    print("  ✓ sweep_sparse column division")

    # Implicit zeros stay zero
    data = np.array([[0, 2], [3, 0]], dtype=float)
    result = sweep_sparse(sparse.csr_matrix(data), margin=0, stats=[10, 10], fun="+")
    assert np.allclose(result.toarray(), [[0, 12], [13, 0]]), "sweep_sparse touched zeros"
    print("  ✓ sweep_sparse leaves implicit zeros")

    with pytest.raises(ValueError):
        sweep_sparse(sparse.csr_matrix(data), margin=0, stats=[1, 2, 3])
    with pytest.raises(ValueError):
        sweep_sparse(sparse.csr_matrix(data), margin=0, stats=[1, 2], fun="power")
    print("  ✓ sweep_sparse argument checks")


def test_gene_utilities():
    """Test gene symbol utilities."""
    from spotscape.utils import rm_duplicates, match_genes

    print("\nTesting gene utilities...")

    # Test rm_duplicates
    df = pd.DataFrame(
        [[1, 2], [3, 4], [5, 6]], index=["A", "B", "A"], columns=["S1", "S2"]
    )
    result = rm_duplicates(df)
    assert len(result) == 2, "rm_duplicates length failed"
    assert result.loc["A", "S1"] == 5, "rm_duplicates wrong row kept"
    assert list(result.index) == ["B", "A"], "rm_duplicates order failed"
    assert rm_duplicates(df, keep="first").loc["A", "S1"] == 1
    print("  ✓ rm_duplicates")

    # Test match_genes
    query = ["tp53", "BRCA1", "egfr", "KRAS"]
    reference = ["TP53", "BRCA1", "EGFR", "MYC"]
    result = match_genes(query, reference, case_sensitive=False)
    assert result["tp53"] == "TP53", "match_genes failed"
    assert result["KRAS"] is None, "match_genes false positive"
    assert match_genes(query, reference, case_sensitive=True)["tp53"] is None
    print("  ✓ match_genes")


def test_scaling_utilities():
    """Test score rescaling."""
    from spotscape.utils import rescale_minmax, rescale_max

    print("\nTesting scaling utilities...")

    s = pd.Series([2.0, 4.0, np.nan, 6.0], index=list("abcd"), name="score")
    scaled = rescale_minmax(s)
    assert scaled.name == "score"
    assert np.allclose(scaled.dropna(), [0, 0.5, 1])
    assert np.isnan(scaled["c"])
    print("  ✓ rescale_minmax Series")

    df = pd.DataFrame({"a": [1.0, 3.0], "flat": [5.0, 5.0]})
    with pytest.warns(RuntimeWarning):
        scaled = rescale_minmax(df)
    assert np.allclose(scaled["a"], [0, 1])
    assert np.allclose(scaled["flat"], 0)
    print("  ✓ rescale_minmax constant column")

    assert np.allclose(rescale_max(pd.Series([0.0, 2.0, 4.0])), [0, 0.5, 1])
    assert np.allclose(rescale_max(pd.Series([0.0, 0.0])), 0)
    print("  ✓ rescale_max")


def main():
    """Run all tests."""
    print("=" * 50)
    print("SpotScape Utility Module Tests")
    print("=" * 50)

    test_sparse_utilities()
    test_gene_utilities()
    test_scaling_utilities()

    print("\n" + "=" * 50)
    print("All tests passed! ✓")
    print("=" * 50)


if __name__ == "__main__":
    main()
