#!/usr/bin/env python3
"""
Tests for the SpotScape neighborhood aggregation primitive.

Run with: python -m pytest tests/test_weights.py -v
Or directly: python tests/test_weights.py
"""

import numpy as np
import pandas as pd
import pytest


def hex_grid(n_rows=6, n_cols=6, step=1.0):
    """Ideal horizontal hex lattice, spot ids 'r{row}c{col}'."""
    rows, cols = np.meshgrid(np.arange(n_rows), np.arange(n_cols), indexing="ij")
    rows, cols = rows.ravel(), cols.ravel()
    x = (cols + 0.5 * (rows % 2)) * step
    y = rows * np.sqrt(3) / 2 * step
    ids = [f"r{r}c{c}" for r, c in zip(rows, cols)]
    return pd.DataFrame({"x": x, "y": y}, index=ids)


def hex_ring():
    """Center spot plus its six neighbors."""
    angles = np.arange(6) * np.pi / 3
    x = np.concatenate([[0.0], np.cos(angles)])
    y = np.concatenate([[0.0], np.sin(angles)])
    return pd.DataFrame({"x": x, "y": y}, index=[f"s{i}" for i in range(7)])


def test_hex_ring_scenario():
    """Test weighted aggregation at the center of a mixed hex ring."""
    from spotscape.spatial import build_neighbor_index, aggregate

    print("Testing hex ring scenario...")

    coords = hex_ring()
    index = build_neighbor_index(coords, radius=1)
    es = pd.Series([0.9, 0.9, 0.9, 0.9, 0.1, 0.1, 0.1], index=coords.index)

    weighted = aggregate(es, index, method="weighted")
    assert 0.1 < weighted["s0"] < 0.9
    # center weighs 4, each neighbor 1: (4*0.9 + 3*0.9 + 3*0.1) / 10
    assert np.isclose(weighted["s0"], 0.66)
    print("  ✓ weighted center strictly inside (0.1, 0.9)")

    mean = aggregate(es, index, method="mean")
    assert np.isclose(mean["s0"], (4 * 0.9 + 3 * 0.1) / 7)
    print("  ✓ mean center")


def test_uniform_fixed_point():
    """Test a uniform signal is returned unchanged."""
    from spotscape.spatial import build_neighbor_index, aggregate

    print("Testing fixed point...")

    coords = hex_grid(8, 8)
    domains = pd.Series(np.where(coords["x"] < 4, "left", "right"), index=coords.index)
    index = build_neighbor_index(coords, radius=2)
    signal = pd.Series(3.7, index=coords.index)

    for method in ["mean", "weighted"]:
        out = aggregate(signal, index, method=method)
        assert np.allclose(out, 3.7)
        out = aggregate(signal, index, method=method, cluster_labels=domains)
        assert np.allclose(out, 3.7)
    print("  ✓ uniform signal unchanged (mean, weighted, domain-aware)")


def test_single_domain_equivalence():
    """Test domain-aware aggregation with one domain equals unrestricted."""
    from spotscape.spatial import build_neighbor_index, aggregate

    print("Testing single-domain equivalence...")

    coords = hex_grid(6, 6)
    index = build_neighbor_index(coords, radius=1.5)
    rng = np.random.default_rng(7)
    signal = pd.Series(rng.random(len(coords)), index=coords.index)
    one_domain = pd.Series("tissue", index=coords.index)

    for method in ["mean", "weighted"]:
        free = aggregate(signal, index, method=method)
        constrained = aggregate(signal, index, method=method, cluster_labels=one_domain)
        assert np.allclose(free, constrained)
    print("  ✓ identical results")


def test_idempotent_on_constant_region():
    """Test re-aggregating a locally constant region changes nothing there."""
    from spotscape.spatial import build_neighbor_index, aggregate

    print("Testing idempotence on constant regions...")

    coords = hex_grid(10, 10)
    index = build_neighbor_index(coords, radius=1)
    rows = np.array([int(s[1:s.index("c")]) for s in coords.index])
    signal = pd.Series(np.where(rows < 5, 2.0, 0.0), index=coords.index)

    once = aggregate(signal, index, method="weighted")
    twice = aggregate(once, index, method="weighted")

    # rows 0-2 stay at 2 after two passes of radius-1 smoothing
    deep = rows <= 2
    assert np.allclose(once[deep], 2.0)
    assert np.allclose(twice[deep], 2.0)
    assert np.allclose(twice[deep], once[deep])
    print("  ✓ interior unchanged by second pass")


def test_missing_values_and_labels():
    """Test NaN handling, zero fill and missing cluster labels."""
    from spotscape.spatial import build_neighbor_index, aggregate

    print("Testing missing values...")

    coords = hex_ring()
    index = build_neighbor_index(coords, radius=1)

    signal = pd.Series([np.nan, 1, 1, 1, 1, 1, 1], index=coords.index)
    out = aggregate(signal, index, method="mean")
    assert np.isclose(out["s0"], 1.0)
    print("  ✓ NaN excluded from numerator and denominator")

    filled = aggregate(signal, index, method="mean", zero_fill=True)
    assert np.isclose(filled["s0"], 6 / 7)
    print("  ✓ zero_fill")

    all_nan = pd.Series(np.nan, index=coords.index)
    assert aggregate(all_nan, index).isna().all()
    print("  ✓ all-missing neighborhood gives NaN")

    labels = pd.Series(["a", "a", "a", None, "b", "b", "b"], index=coords.index)
    values = pd.Series(np.arange(7, dtype=float), index=coords.index)
    out = aggregate(values, index, cluster_labels=labels)
    assert out["s3"] == 3.0  # missing label matches only itself
    print("  ✓ missing label matches only self")


def test_input_types_and_order():
    """Test Series, DataFrame and array inputs keep their layout."""
    from spotscape.spatial import build_neighbor_index, aggregate
    from spotscape.errors import DimensionMismatchError

    print("Testing input types...")

    coords = hex_grid(4, 4)
    index = build_neighbor_index(coords, radius=1)
    rng = np.random.default_rng(11)
    table = pd.DataFrame(rng.random((16, 3)), index=coords.index, columns=["a", "b", "c"])

    shuffled = table.sample(frac=1, random_state=0)
    out = aggregate(shuffled, index, method="weighted")
    assert isinstance(out, pd.DataFrame)
    assert list(out.index) == list(shuffled.index)
    assert list(out.columns) == ["a", "b", "c"]

    by_column = aggregate(table["b"], index, method="weighted")
    assert np.allclose(out["b"].reindex(table.index), by_column)
    print("  ✓ DataFrame columns independent, order preserved")

    arr = aggregate(table.to_numpy(), index, method="weighted")
    assert isinstance(arr, np.ndarray)
    assert np.allclose(arr, out.reindex(table.index).to_numpy())
    print("  ✓ ndarray in index order")

    with pytest.raises(DimensionMismatchError):
        aggregate(table["a"].iloc[:-1], index)
    with pytest.raises(DimensionMismatchError):
        aggregate(np.zeros(3), index)
    print("  ✓ spot mismatch rejected")


def test_aggregation_weights():
    """Test the weight matrix behind aggregate."""
    from spotscape.spatial import build_neighbor_index, aggregation_weights

    print("Testing aggregation_weights...")

    coords = hex_ring()
    index = build_neighbor_index(coords, radius=1)

    W = aggregation_weights(index, method="weighted", power=2, self_distance=0.5)
    assert np.isclose(W[0, 0], 4.0)
    assert np.isclose(W[0, 1], 1.0)

    W_mean = aggregation_weights(index, method="mean")
    assert np.allclose(W_mean.diagonal(), 1.0)
    assert W_mean[0].nnz == 7

    with pytest.raises(ValueError):
        aggregation_weights(index, self_distance=0)
    print("  ✓ inverse-distance and uniform weights")


def main():
    """Run all aggregation tests."""
    print("=" * 50)
    print("SpotScape Aggregation Tests")
    print("=" * 50)

    test_hex_ring_scenario()
    test_uniform_fixed_point()
    test_single_domain_equivalence()
    test_idempotent_on_constant_region()
    test_missing_values_and_labels()
    test_input_types_and_order()
    test_aggregation_weights()

    print("\n" + "=" * 50)
    print("All aggregation tests passed! ✓")
    print("=" * 50)


if __name__ == "__main__":
    main()
