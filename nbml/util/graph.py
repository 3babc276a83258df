"""Quick line plots of series."""

from __future__ import annotations

from typing import Iterable, Sequence

import matplotlib.pyplot as plt
from matplotlib.figure import Figure


def plot(series: Iterable[Sequence[float]]) -> Figure:
    """Draw each series as a line against its index and show the figure."""
    fig, ax = plt.subplots()
    for values in series:
        values = list(values)
        ax.plot(range(len(values)), values)
    plt.show()
    return fig


def plot_pair(pairs: Iterable[tuple[Sequence[float], Sequence[float]]]) -> Figure:
    """Draw each ``(x, y)`` pair as a line with ``y`` on the horizontal axis and show it."""
    fig, ax = plt.subplots()
    for x, y in pairs:
        ax.plot(list(y), list(x))
    plt.show()
    return fig