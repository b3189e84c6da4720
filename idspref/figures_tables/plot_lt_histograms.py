"""Looking-time histograms faceted by lab (inspection only)."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Headless backend
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns


def plot_lt_histograms(
    trials: pd.DataFrame,
    out_path: Path,
    col: str = "Lab",
    value: str = "LT",
    col_wrap: int = 5,
) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    grid = sns.displot(
        data=trials,
        x=value,
        col=col,
        col_wrap=col_wrap,
        bins=20,
        height=2.2,
        aspect=1.2,
        facet_kws={"sharey": False},
    )
    grid.set_titles("{col_name}", size=8)
    grid.set_axis_labels(f"{value} (s)", "Trials")
    grid.figure.tight_layout()
    grid.figure.savefig(out_path, dpi=160, facecolor="white")
    plt.close(grid.figure)
    return out_path
