"""
Trial cleaning + subject-level QC.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .constants import DEFAULT_MIN_LT, DEFAULT_MIN_TRIALS_PER_TYPE, DEFAULT_Z_THRESHOLD

ZERO_SPREAD_RTOL = 1e-12


@dataclass
class CleaningCriteria:
    min_lt: float = DEFAULT_MIN_LT
    z_threshold: float = DEFAULT_Z_THRESHOLD
    min_trials_per_type: int = DEFAULT_MIN_TRIALS_PER_TYPE

    def __post_init__(self) -> None:
        if not np.isfinite(self.min_lt) or self.min_lt <= 0:
            raise ValueError(f"min_lt must be positive, got {self.min_lt!r}")
        if not np.isfinite(self.z_threshold) or self.z_threshold <= 0:
            raise ValueError(f"z_threshold must be positive, got {self.z_threshold!r}")
        if int(self.min_trials_per_type) != self.min_trials_per_type or self.min_trials_per_type <= 0:
            raise ValueError(
                f"min_trials_per_type must be a positive integer, got {self.min_trials_per_type!r}"
            )


def drop_short_trials(df: pd.DataFrame, min_lt: float = DEFAULT_MIN_LT) -> pd.DataFrame:
    return df[df["LT"] >= min_lt].copy()


def compute_subject_zscores(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-subject mean log LT and its z-score across subjects.

    When the spread of subject means is zero or undefined (fewer than two
    subjects) every z-score is 0.0, so the outlier filter keeps everyone.
    A spread within rounding error of the means counts as zero.
    """
    if df.empty:
        return pd.DataFrame(columns=["Subject", "MeanLogLT", "z"])

    subject_means = (
        np.log(df["LT"]).groupby(df["Subject"]).mean().rename("MeanLogLT").reset_index()
    )
    center = subject_means["MeanLogLT"].mean()
    spread = subject_means["MeanLogLT"].std()
    tolerance = ZERO_SPREAD_RTOL * max(1.0, abs(center))
    if np.isfinite(spread) and spread > tolerance:
        subject_means["z"] = (subject_means["MeanLogLT"] - center) / spread
    else:
        subject_means["z"] = 0.0
    return subject_means


def drop_outlier_subjects(df: pd.DataFrame, z_threshold: float = DEFAULT_Z_THRESHOLD) -> pd.DataFrame:
    zscores = compute_subject_zscores(df)
    keep = set(zscores.loc[zscores["z"].abs() < z_threshold, "Subject"])
    return df[df["Subject"].isin(keep)].copy()


def count_condition_trials(df: pd.DataFrame) -> pd.DataFrame:
    counts = df.groupby(["Subject", "Condition"]).size().unstack(fill_value=0)
    return counts.reindex(columns=["IDS", "ADS"], fill_value=0)


def drop_sparse_subjects(
    df: pd.DataFrame,
    min_trials_per_type: int = DEFAULT_MIN_TRIALS_PER_TYPE,
) -> pd.DataFrame:
    if df.empty:
        return df.copy()
    counts = count_condition_trials(df)
    valid = (counts["IDS"] >= min_trials_per_type) & (counts["ADS"] >= min_trials_per_type)
    return df[df["Subject"].isin(set(valid[valid].index))].copy()


def _flow_row(step: str, before: pd.DataFrame, after: pd.DataFrame) -> dict[str, object]:
    return {
        "step": step,
        "trials_removed": int(len(before) - len(after)),
        "subjects_removed": int(before["Subject"].nunique() - after["Subject"].nunique()),
        "trials_remaining": int(len(after)),
        "subjects_remaining": int(after["Subject"].nunique()),
    }


def clean_trials(
    df: pd.DataFrame,
    criteria: CleaningCriteria | None = None,
    verbose: bool = True,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Apply the three exclusion filters in order and return the surviving
    trials plus a participant-flow table.

    Order matters: the outlier z-scores are computed on the trials left
    after the short-LT filter, and the trial counts on what is left after
    the outlier filter.
    """
    if criteria is None:
        criteria = CleaningCriteria()

    flow = [
        {
            "step": "raw",
            "trials_removed": 0,
            "subjects_removed": 0,
            "trials_remaining": int(len(df)),
            "subjects_remaining": int(df["Subject"].nunique()),
        }
    ]

    step1 = drop_short_trials(df, criteria.min_lt)
    flow.append(_flow_row(f"lt_below_{criteria.min_lt:g}", df, step1))

    step2 = drop_outlier_subjects(step1, criteria.z_threshold)
    flow.append(_flow_row(f"subject_abs_z_ge_{criteria.z_threshold:g}", step1, step2))

    step3 = drop_sparse_subjects(step2, criteria.min_trials_per_type)
    flow.append(_flow_row(f"fewer_than_{criteria.min_trials_per_type}_per_condition", step2, step3))

    exclusions = pd.DataFrame(flow)
    if verbose:
        for row in flow[1:]:
            print(
                f"  [QC] {row['step']}: -{row['trials_removed']} trials, "
                f"-{row['subjects_removed']} subjects "
                f"({row['subjects_remaining']} subjects remaining)"
            )

    if step3.empty:
        raise RuntimeError("No trials remain after cleaning; check the QC thresholds.")

    return step3.reset_index(drop=True), exclusions
