"""Plotting utilities for sample-complexity studies."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from ..Experiment import IDENTIFIED, TrialResult


def plot_pull_histogram(
    results: Sequence[TrialResult],
    output_path: Path,
    *,
    title: str,
    bins: int = 30,
    marker: Optional[float] = None,
) -> None:
    """Histogram of total pulls over finished trials, failed identifications stacked in red."""

    finished = [r for r in results if r.outcome == IDENTIFIED]
    if not finished:
        raise ValueError("No finished trials to plot.")
    ok = np.array([r.total_pulls for r in finished if r.succeeded], dtype=float)
    wrong = np.array([r.total_pulls for r in finished if not r.succeeded], dtype=float)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.hist(
        [ok, wrong],
        bins=bins,
        stacked=True,
        color=["#2c7fb8", "#d7301f"],
        label=["correct basis", "wrong basis"],
    )
    if marker is not None and np.isfinite(marker):
        ax.axvline(marker, color="black", linestyle="--", linewidth=1.0, label="mean")
    ax.set_xlabel("total pulls")
    ax.set_ylabel("trials")
    ax.set_title(title)
    ax.legend()
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)
