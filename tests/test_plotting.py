#!/usr/bin/env python3
"""
Tests for SpotScape plotting helpers.

Run with: python tests/test_plotting.py
"""

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for testing
import matplotlib.pyplot as plt


def test_label_colors():
    """Test label to color mapping."""
    from spotscape.plotting import label_colors

    print("Testing label_colors...")

    labels = pd.Series(["tumor_boundary", "others", "normal_boundary", "others", None])
    colors = label_colors(labels)

    assert set(colors) == {"tumor_boundary", "normal_boundary", "others"}
    assert colors["others"] == "#d3d3d3"
    assert colors["normal_boundary"] != colors["tumor_boundary"]
    assert all(c.startswith("#") and len(c) == 7 for c in colors.values())
    print("  ✓ hex colors, grey background")

    # Same label set, same colors, regardless of order
    again = label_colors(list(reversed(labels.dropna().tolist())))
    assert again == colors
    print("  ✓ deterministic")

    many = label_colors([f"group{i}" for i in range(30)], cmap="viridis")
    assert len(set(many.values())) == 30
    print("  ✓ continuous colormap")


def test_label_colors_scatter():
    """Test the mapping plugs into a scatter plot."""
    from spotscape.plotting import label_colors

    print("Testing label_colors in a scatter...")

    rng = np.random.default_rng(0)
    coords = rng.random((40, 2))
    classes = pd.Series(rng.choice(["tumor_boundary", "normal_boundary", "others"], 40))
    colors = label_colors(classes)

    fig, ax = plt.subplots()
    ax.scatter(coords[:, 0], coords[:, 1], c=classes.map(colors).tolist())
    plt.close()
    print("  ✓ scatter")


def main():
    """Run all plotting tests."""
    print("=" * 50)
    print("SpotScape Plotting Tests")
    print("=" * 50)

    test_label_colors()
    test_label_colors_scatter()

    print("\n" + "=" * 50)
    print("All plotting tests passed! ✓")
    print("=" * 50)


if __name__ == "__main__":
    main()
