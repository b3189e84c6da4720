"""
Subject-level aggregation of cleaned trials.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from .constants import AGGREGATE_KEYS, SUBJECT_KEYS


def mean_by_keys(
    df: pd.DataFrame,
    value_col: str,
    out_col: str,
    keys: list[str] | None = None,
) -> pd.DataFrame:
    if keys is None:
        keys = AGGREGATE_KEYS
    return (
        df.groupby(keys, as_index=False, observed=True)[value_col]
        .mean()
        .rename(columns={value_col: out_col})
    )


def aggregate_subjects(trials: pd.DataFrame) -> pd.DataFrame:
    """One row per subject x condition with the mean of log(LT)."""
    logged = trials.assign(LogLT=np.log(trials["LT"]))
    return mean_by_keys(logged, "LogLT", "MeanLogLT")


def pivot_conditions(agg: pd.DataFrame) -> pd.DataFrame:
    """
    Reshape subject x condition rows to one row per subject with paired
    IDS/ADS columns plus Diff and Prop. A subject lacking one condition
    keeps a NaN in that column (and in Diff/Prop).
    """
    paired = agg.pivot_table(
        index=SUBJECT_KEYS,
        columns="Condition",
        values="MeanLogLT",
        aggfunc="mean",
        observed=True,
    )
    paired = paired.reindex(columns=["IDS", "ADS"])
    paired.columns.name = None
    paired = paired.reset_index()
    paired["Diff"] = paired["IDS"] - paired["ADS"]
    paired["Prop"] = paired["IDS"] / (paired["IDS"] + paired["ADS"])
    return paired


def complete_pairs(paired: pd.DataFrame) -> pd.DataFrame:
    return paired.dropna(subset=["IDS", "ADS"]).copy()


def summarize_by_lab(paired: pd.DataFrame) -> pd.DataFrame:
    complete = complete_pairs(paired)
    if complete.empty:
        return pd.DataFrame(columns=["Lab", "Method", "n_subjects", "mean_age", "mean_diff", "sd_diff"])
    summary = complete.groupby(["Lab", "Method"], as_index=False).agg(
        n_subjects=("Subject", "nunique"),
        mean_age=("Age", "mean"),
        mean_diff=("Diff", "mean"),
        sd_diff=("Diff", "std"),
    )
    return summary.sort_values("Lab").reset_index(drop=True)
