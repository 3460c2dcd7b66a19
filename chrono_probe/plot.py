from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from chrono_probe.errors import InsufficientDataError
from chrono_probe.regression import fit_points
from chrono_probe.results import ResultSet


SCALES = ("loglog", "linear")


def time_plot_frame(
    df: pd.DataFrame,
    path: Path,
    *,
    scale: str = "loglog",
    fit: bool = True,
    title: str | None = None,
    x_label: str = "Input size",
    y_label: str = "Time per call (s)",
) -> Path:
    """
    Plot a long-format frame (algorithm, size, time, failed) as one series per
    algorithm, with the fitted power law n -> e^b n^a when `fit` is set.
    Failure rows are skipped.
    """
    if scale not in SCALES:
        raise ValueError(f"scale must be one of {SCALES} (got {scale!r}).")

    fig, ax = plt.subplots(figsize=(7, 5))

    ok = df[~df["failed"].astype(bool)] if "failed" in df.columns else df
    for algorithm, sub in ok.groupby("algorithm", sort=False):
        n = sub["size"].to_numpy(dtype=float)
        t = sub["time"].to_numpy(dtype=float)
        line, = ax.plot(n, t, "o-", ms=4, label=str(algorithm))

        if not fit:
            continue
        try:
            res = fit_points(n, t)
        except InsufficientDataError:
            continue
        # Plot fitted power-law curve for visualization
        n_pos = n[n > 0]
        n_fit = np.linspace(n_pos.min(), n_pos.max(), 200)
        t_fit = np.exp(res.intercept) * n_fit**res.slope
        ax.plot(n_fit, t_fit, "--", color=line.get_color(), alpha=0.7,
                label=f"{algorithm} fit: O(n^{res.slope:.2f})")

    if scale == "loglog":
        ax.set_xscale("log")
        ax.set_yscale("log")
        x_label += " (log scale)"
        y_label += " (log scale)"
    ax.set_xlabel(x_label)
    ax.set_ylabel(y_label)
    ax.set_title(title or "Empirical time complexity")
    ax.legend()
    ax.grid(True, which="both", ls="--", alpha=0.4)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=200)
    plt.close(fig)
    return path


def time_plot(results: ResultSet, path: Path, **kwargs) -> Path:
    """Plot a ResultSet; see time_plot_frame for the options."""
    if results.target_precision is not None and "title" not in kwargs:
        kwargs["title"] = f"Empirical time complexity (relative error {results.target_precision:g})"
    return time_plot_frame(results.to_frame(), path, **kwargs)
