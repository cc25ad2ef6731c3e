#!/usr/bin/env python3
"""
Tests for SpotScape TLS scoring.

Run with: python -m pytest tests/test_tls.py -v
Or directly: python tests/test_tls.py
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


def lymphoid_tissue():
    """Grid with a lymphoid aggregate around r4c4."""
    coords = hex_grid(9, 9)
    center = coords.loc["r4c4"].to_numpy()
    dist = np.hypot(coords["x"] - center[0], coords["y"] - center[1])
    bump = np.exp(-dist ** 2 / 2)

    rng = np.random.default_rng(2)
    sig1 = pd.Series(bump + rng.normal(scale=0.01, size=len(coords)),
                     index=coords.index, name="tls_signature")
    sig2 = pd.Series(bump * 2 + 0.1, index=coords.index, name="bcell_signature")
    codist = pd.Series(bump * 0.3, index=coords.index, name="B_cell_T_cell")
    return coords, sig1, sig2, codist


def test_tls_score():
    """Test TLS score range, hotspot and component columns."""
    from spotscape.spatial import build_neighbor_index, calc_tls_score

    print("Testing calc_tls_score...")

    coords, sig1, sig2, codist = lymphoid_tissue()
    index = build_neighbor_index(coords, radius=1)

    tls = calc_tls_score(sig1, sig2, codist, index)
    assert list(tls.columns) == ["tls_signature", "bcell_signature", "B_cell_T_cell", "tls_score"]
    assert list(tls.index) == list(coords.index)
    assert tls["tls_score"].between(0, 1).all()
    assert tls["tls_score"].idxmax() == "r4c4"
    print("  ✓ score in [0, 1] peaking at the aggregate")

    for rule in ["geometric", "min", "max"]:
        scored = calc_tls_score(sig1, sig2, codist, index, combine=rule)
        assert scored["tls_score"].between(0, 1).all()
    print("  ✓ built-in combination rules")

    custom = calc_tls_score(sig1, sig2, codist, index,
                            combine=lambda comp: comp["B_cell_T_cell"])
    assert np.allclose(custom["tls_score"], custom["B_cell_T_cell"])
    print("  ✓ custom combination callable")

    unnamed = calc_tls_score(sig1.rename(None), sig2.rename(None), codist.rename(None), index)
    assert list(unnamed.columns) == ["signature1", "signature2", "codistribution", "tls_score"]
    print("  ✓ default component names")


def test_tls_domains():
    """Test domain-constrained smoothing of TLS components."""
    from spotscape.spatial import build_neighbor_index, calc_tls_score

    print("Testing calc_tls_score with domains...")

    coords, sig1, sig2, codist = lymphoid_tissue()
    index = build_neighbor_index(coords, radius=1)
    domains = pd.Series(np.where(coords["x"] < 4, "A", "B"), index=coords.index)

    free = calc_tls_score(sig1, sig2, codist, index, rescale=False)
    constrained = calc_tls_score(sig1, sig2, codist, index, domains=domains, rescale=False)
    assert not np.allclose(free["tls_score"], constrained["tls_score"])

    one_domain = pd.Series("A", index=coords.index)
    same = calc_tls_score(sig1, sig2, codist, index, domains=one_domain, rescale=False)
    assert np.allclose(free["tls_score"], same["tls_score"])
    print("  ✓ domains change smoothing only across borders")


def test_tls_errors():
    """Test TLS error contracts."""
    from spotscape.spatial import build_neighbor_index, calc_tls_score
    from spotscape.errors import DimensionMismatchError, EmptyInputError

    print("Testing calc_tls_score errors...")

    coords, sig1, sig2, codist = lymphoid_tissue()
    index = build_neighbor_index(coords, radius=1)

    with pytest.raises(DimensionMismatchError):
        calc_tls_score(sig1, sig2.iloc[:-3], codist, index)
    with pytest.raises(EmptyInputError):
        calc_tls_score(sig1, pd.Series([], dtype=float), codist, index)
    with pytest.raises(ValueError):
        calc_tls_score(sig1, sig2, codist, index, combine="median")
    print("  ✓ error contracts")


def main():
    """Run all TLS tests."""
    print("=" * 50)
    print("SpotScape TLS Tests")
    print("=" * 50)

    test_tls_score()
    test_tls_domains()
    test_tls_errors()

    print("\n" + "=" * 50)
    print("All TLS tests passed! ✓")
    print("=" * 50)


if __name__ == "__main__":
    main()
