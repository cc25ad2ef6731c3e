"""
SpotScape plotting helpers.

Dependencies
------------
Required: matplotlib

Examples
--------
>>> from spotscape.plotting import label_colors
>>>
>>> colors = label_colors(tni['tni_class'])
>>> ax.scatter(coords['x'], coords['y'], c=tni['tni_class'].map(colors))
"""

from typing import Dict, Iterable

import pandas as pd

try:
    import matplotlib.pyplot as plt
    import matplotlib.colors as mcolors
    MATPLOTLIB_AVAILABLE = True
except ImportError:
    MATPLOTLIB_AVAILABLE = False

OTHERS_COLOR = "#d3d3d3"


def _check_matplotlib():
    """Check if matplotlib is available."""
    if not MATPLOTLIB_AVAILABLE:
        raise ImportError(
            "matplotlib required for plotting. "
            "Install with: pip install matplotlib"
        )


def label_colors(
    labels: Iterable,
    cmap: str = "tab20",
    others: str = "others"
) -> Dict[str, str]:
    """
    Map a set of categorical labels to hex colors.

    Labels are sorted and assigned colors from ``cmap`` in order, so the
    same label set always gets the same colors. The ``others`` label is
    always light grey.

    Parameters
    ----------
    labels : iterable
        Labels (e.g. ``tni['tni_class']``); duplicates and missing values
        are ignored.
    cmap : str, default "tab20"
        Matplotlib colormap name.
    others : str, default "others"
        Background label drawn in grey.

    Returns
    -------
    dict
        Label -> "#rrggbb".
    """
    _check_matplotlib()

    unique = sorted({str(x) for x in labels if not pd.isna(x)})
    colored = [lab for lab in unique if lab != others]

    colormap = plt.get_cmap(cmap)
    n = len(colored)
    n_colors = getattr(colormap, "N", 256)

    colors = {}
    for i, lab in enumerate(colored):
        if n_colors < 256:
            rgba = colormap(i % n_colors)
        else:
            rgba = colormap(i / max(n - 1, 1))
        colors[lab] = mcolors.to_hex(rgba)

    if others in unique:
        colors[others] = OTHERS_COLOR
    return colors


__all__ = [
    "label_colors",
    "MATPLOTLIB_AVAILABLE",
]
