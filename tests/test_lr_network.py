#!/usr/bin/env python3
"""
Tests for SpotScape ligand-receptor diffusion and interaction scoring.

Run with: python -m pytest tests/test_lr_network.py -v
Or directly: python tests/test_lr_network.py
"""

import os
import tempfile
import warnings

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


def make_lr_pairs():
    from spotscape.spatial.lr_network import SECRETED, CONTACT

    return pd.DataFrame([
        ("CXCL12", "CXCR4", "CXCL", SECRETED),
        ("CD274", "PDCD1", "PD-L1", CONTACT),
        ("TGFB1", "TGFBR1+TGFBR2", "TGFb", SECRETED),
    ], columns=["ligand", "receptor", "pathway", "annotation"])


def make_expression(coords, seed=0):
    """Genes × spots; PDCD1 deliberately absent."""
    rng = np.random.default_rng(seed)
    genes = ["CXCL12", "CXCR4", "CD274", "TGFB1", "TGFBR1", "TGFBR2", "ACTB"]
    return pd.DataFrame(
        rng.gamma(2.0, 1.0, size=(len(genes), len(coords))),
        index=genes, columns=coords.index
    )


def test_load_lr_database():
    """Test built-in and custom L-R tables."""
    from spotscape.spatial import load_lr_database, split_complex

    print("Testing load_lr_database...")

    lr = load_lr_database()
    assert list(lr.columns) == ["ligand", "receptor", "pathway", "annotation"]
    assert set(lr["annotation"]) == {"Secreted Signaling", "Cell-Cell Contact", "ECM-Receptor"}
    assert "TGFBR1+TGFBR2" in set(lr["receptor"])
    print("  ✓ built-in database")

    assert split_complex("IL6R + IL6ST") == ["IL6R", "IL6ST"]
    assert split_complex("CXCR4") == ["CXCR4"]
    print("  ✓ split_complex")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "pairs.tsv")
        pd.DataFrame({"ligand": ["A"], "receptor": ["B+C"]}).to_csv(path, sep="\t", index=False)
        custom = load_lr_database("custom", custom_path=path)
        assert custom.loc[0, "annotation"] == "Secreted Signaling"
        assert custom.loc[0, "pathway"] == ""

        bad = os.path.join(tmp, "bad.csv")
        pd.DataFrame({"source": ["A"]}).to_csv(bad, index=False)
        with pytest.raises(ValueError):
            load_lr_database("custom", custom_path=bad)
    print("  ✓ custom database")

    with pytest.raises(ValueError):
        load_lr_database("custom")
    with pytest.raises(ValueError):
        load_lr_database("cellchat")
    print("  ✓ error contracts")


def test_missing_receptor_scenario():
    """Test a pair with an absent receptor scores NaN without raising."""
    from spotscape.spatial import build_neighbor_index, calc_lr_scores
    from spotscape.errors import MissingGeneError

    print("Testing missing receptor...")

    coords = hex_grid(5, 5, step=100.0)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords)
    lr = make_lr_pairs()

    with pytest.warns(RuntimeWarning, match="PDCD1"):
        scores = calc_lr_scores(expression, index, lr)

    assert list(scores.index) == ["CXCL12_CXCR4", "CD274_PDCD1", "TGFB1_TGFBR1+TGFBR2"]
    assert list(scores.columns) == list(expression.columns)
    assert scores.loc["CD274_PDCD1"].isna().all()
    assert scores.drop("CD274_PDCD1").notna().all().all()
    print("  ✓ missing pair is all-NaN, others scored")

    with pytest.raises(MissingGeneError) as err:
        calc_lr_scores(expression, index, lr, strict=True)
    assert err.value.genes == ["PDCD1"]
    assert isinstance(err.value, KeyError)
    print("  ✓ strict mode raises MissingGeneError")


def test_uniform_expression():
    """Test uniform expression is unchanged by diffusion."""
    from spotscape.spatial import build_neighbor_index, calc_lr_scores

    print("Testing uniform expression...")

    coords = hex_grid(5, 5)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords)
    expression.loc[:] = 2.0
    lr = make_lr_pairs().drop(index=1)

    expected = {"product": 4.0, "geometric": 2.0, "mean": 2.0, "min": 2.0}
    for method, value in expected.items():
        scores = calc_lr_scores(expression, index, lr, method=method)
        assert np.allclose(scores.to_numpy(), value)
    print("  ✓ all scoring methods")


def test_diffusion_ranges():
    """Test secreted ligands reach farther than contact ligands."""
    from spotscape.spatial import build_neighbor_index, calc_effective_expression

    print("Testing diffusion ranges...")

    coords = hex_grid(5, 5)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords)
    expression.loc[:] = 0.0
    expression.loc[["CXCL12", "CD274", "CXCR4"], "r2c2"] = 1.0

    effective = calc_effective_expression(
        expression, index, make_lr_pairs(),
        secreted_radius=2, contact_radius=1
    )
    ligand, receptor = effective["ligand"], effective["receptor"]
    assert effective["missing"] == ["PDCD1"]
    assert list(ligand.columns) == list(expression.columns)

    # r0c2 is two rows away from r2c2 (distance sqrt(3))
    assert ligand.loc["CXCL12", "r2c2"] > ligand.loc["CXCL12", "r0c2"] > 0
    assert ligand.loc["CD274", "r0c2"] == 0
    assert ligand.loc["CD274", "r2c3"] > 0
    assert receptor.loc["CXCR4", "r0c2"] == 0
    print("  ✓ secreted vs contact reach")

    with pytest.raises(ValueError):
        calc_effective_expression(expression, index.restrict(1), make_lr_pairs())
    print("  ✓ index radius must cover the diffusion radius")


def test_complexes():
    """Test multi-subunit receptor resolution."""
    from spotscape.spatial import build_neighbor_index, calc_lr_scores, resolve_complex
    from spotscape.errors import MissingGeneError

    print("Testing complexes...")

    coords = hex_grid(4, 4)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords)
    expression.loc["TGFB1"] = 1.0
    expression.loc["TGFBR1"] = 1.0
    expression.loc["TGFBR2"] = 4.0
    lr = make_lr_pairs().iloc[[2]]

    by_min = calc_lr_scores(expression, index, lr, complex_method="min")
    assert np.allclose(by_min.iloc[0], 1.0)
    by_geo = calc_lr_scores(expression, index, lr, complex_method="geometric")
    assert np.allclose(by_geo.iloc[0], 2.0)
    print("  ✓ min and geometric subunit combination")

    effective = pd.DataFrame({"s1": [1.0, 3.0]}, index=["A", "B"])
    assert resolve_complex(effective, "A+B")["s1"] == 1.0
    with pytest.raises(MissingGeneError):
        resolve_complex(effective, "A+C")
    print("  ✓ resolve_complex")


def test_chunking_and_threads():
    """Test chunked, threaded diffusion matches the serial result."""
    from spotscape.spatial import build_neighbor_index, calc_effective_expression

    print("Testing chunking and threads...")

    coords = hex_grid(6, 6)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords, seed=3)
    lr = make_lr_pairs()

    serial = calc_effective_expression(expression, index, lr)

    calls = []
    threaded = calc_effective_expression(
        expression, index, lr, n_jobs=2, chunk_size=1,
        progress_callback=lambda done, total: calls.append((done, total))
    )

    assert np.allclose(serial["ligand"].loc[threaded["ligand"].index], threaded["ligand"])
    assert np.allclose(serial["receptor"], threaded["receptor"])
    assert calls[-1][0] == calls[-1][1] == len(calls)
    print("  ✓ identical results, progress reported")


def test_input_checks():
    """Test expression alignment checks."""
    from spotscape.spatial import build_neighbor_index, calc_lr_scores
    from spotscape.errors import DimensionMismatchError

    print("Testing input checks...")

    coords = hex_grid(4, 4)
    index = build_neighbor_index(coords, radius=2)
    expression = make_expression(coords)
    lr = make_lr_pairs().drop(index=1)

    with pytest.raises(DimensionMismatchError):
        calc_lr_scores(expression.iloc[:, :-1], index, lr)

    # Duplicated gene rows keep the highest-expressed copy
    dup = pd.concat([expression, expression.loc[["CXCR4"]] * 0])
    with pytest.warns(RuntimeWarning):
        dup_scores = calc_lr_scores(dup, index, lr)
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        ref_scores = calc_lr_scores(expression, index, lr)
    assert np.allclose(dup_scores, ref_scores)
    print("  ✓ spot mismatch and duplicated genes")


def test_pathway_aggregation():
    """Test per-pathway aggregation with missing pairs."""
    from spotscape.spatial import aggregate_pathway_scores

    print("Testing aggregate_pathway_scores...")

    lr = pd.DataFrame({
        "ligand": ["CCL19", "CCL21", "CD274"],
        "receptor": ["CCR7", "CCR7", "PDCD1"],
        "pathway": ["CCL", "CCL", "PD-L1"],
    })
    scores = pd.DataFrame(
        [[1.0, 2.0], [3.0, np.nan], [np.nan, np.nan]],
        index=["CCL19_CCR7", "CCL21_CCR7", "CD274_PDCD1"],
        columns=["s1", "s2"]
    )

    mean = aggregate_pathway_scores(scores, lr)
    assert mean.loc["CCL", "s1"] == 2.0
    assert mean.loc["CCL", "s2"] == 2.0
    assert mean.loc["PD-L1"].isna().all()

    total = aggregate_pathway_scores(scores, lr, method="sum")
    assert total.loc["CCL", "s1"] == 4.0
    assert np.isnan(total.loc["PD-L1", "s1"])

    with pytest.raises(ValueError):
        aggregate_pathway_scores(scores, lr.drop(columns="pathway"))
    print("  ✓ mean / sum with missing pairs")


def main():
    """Run all L-R network tests."""
    print("=" * 50)
    print("SpotScape Ligand-Receptor Tests")
    print("=" * 50)

    test_load_lr_database()
    test_missing_receptor_scenario()
    test_uniform_expression()
    test_diffusion_ranges()
    test_complexes()
    test_chunking_and_threads()
    test_input_checks()
    test_pathway_aggregation()

    print("\n" + "=" * 50)
    print("All L-R network tests passed! ✓")
    print("=" * 50)


if __name__ == "__main__":
    main()
