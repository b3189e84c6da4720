"""
Synthetic multi-lab IDS/ADS dataset and trial-file IO.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from .constants import (
    BILINGUAL_STATUS,
    LAB_AGE_RANGE,
    LAB_EFFECT_MAX,
    LAB_LABELS,
    LANGUAGES,
    LT_CEILING,
    LT_LOG_MEAN,
    LT_LOG_SD,
    METHODS,
    N_LABS,
    N_SUBJECTS_PER_LAB,
    N_TRIALS_PER_SUBJECT,
    SESSIONS,
    SUBJECT_AGE_SPREAD,
    SUBJECT_OFFSET_MAX,
    TRIAL_COLUMNS,
    TRIALS_PER_BLOCK,
)


@dataclass
class SimulationDesign:
    n_labs: int = N_LABS
    n_subjects: int = N_SUBJECTS_PER_LAB
    n_trials: int = N_TRIALS_PER_SUBJECT
    seed: int | None = None

    def __post_init__(self) -> None:
        for name in ("n_labs", "n_subjects", "n_trials"):
            value = getattr(self, name)
            if int(value) != value or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.n_trials % TRIALS_PER_BLOCK != 0:
            raise ValueError(
                f"n_trials must be a multiple of {TRIALS_PER_BLOCK}, got {self.n_trials}"
            )
        if self.n_labs > len(LAB_LABELS):
            raise ValueError(f"n_labs must be <= {len(LAB_LABELS)}, got {self.n_labs}")


def assign_block(trial: pd.Series) -> pd.Series:
    return (trial.astype(int) - 1) // TRIALS_PER_BLOCK + 1


def _balanced_conditions(n_groups: int, rng: np.random.Generator) -> np.ndarray:
    # One shuffled {IDS, IDS, ADS, ADS} per subject x block.
    half = TRIALS_PER_BLOCK // 2
    base = np.array(["IDS"] * half + ["ADS"] * half)
    return rng.permuted(np.tile(base, (n_groups, 1)), axis=1).ravel()


def simulate_trials(design: SimulationDesign | None = None) -> pd.DataFrame:
    """
    Simulate one trial-level dataset shaped like the multi-lab collection.

    Looking times are log-normal around ``LT_LOG_MEAN``; IDS trials get an
    extra lab-specific shift in [0, 0.5). Each subject adds a constant
    offset in [0, 0.5) to every trial and values are capped at
    ``LT_CEILING``. Without ``design.seed`` every call differs.
    """
    if design is None:
        design = SimulationDesign()
    rng = np.random.default_rng(design.seed)

    labs = list(LAB_LABELS[: design.n_labs])
    grid = pd.MultiIndex.from_product(
        [labs, range(1, design.n_subjects + 1), range(1, design.n_trials + 1)],
        names=["Lab", "SubjectIndex", "Trial"],
    ).to_frame(index=False)
    grid["Subject"] = grid["Lab"] + "-" + grid["SubjectIndex"].astype(str)
    grid["Block"] = assign_block(grid["Trial"])

    n_blocks = len(grid) // TRIALS_PER_BLOCK
    grid["Condition"] = _balanced_conditions(n_blocks, rng)

    lab_info = pd.DataFrame(
        {
            "Lab": labs,
            "LabEffect": rng.uniform(0, LAB_EFFECT_MAX, size=len(labs)),
            "LabAge": np.round(rng.uniform(*LAB_AGE_RANGE, size=len(labs))),
            "Method": rng.choice(METHODS, size=len(labs)),
        }
    )

    subjects = grid[["Lab", "Subject"]].drop_duplicates().reset_index(drop=True)
    n_subj = len(subjects)
    subjects["SubjectOffset"] = rng.uniform(0, SUBJECT_OFFSET_MAX, size=n_subj)
    subjects["Session"] = rng.choice(SESSIONS, size=n_subj)
    subjects["Language"] = rng.choice(LANGUAGES, size=n_subj)
    subjects["Bilingual"] = rng.choice(BILINGUAL_STATUS, size=n_subj)
    subjects = subjects.merge(lab_info, on="Lab", how="left")
    lab_age = subjects["LabAge"].to_numpy()
    subjects["Age"] = np.round(
        rng.uniform(lab_age - SUBJECT_AGE_SPREAD, lab_age + SUBJECT_AGE_SPREAD),
        2,
    )

    trials = grid.merge(subjects.drop(columns=["Lab"]), on="Subject", how="left")
    log_mean = LT_LOG_MEAN + np.where(trials["Condition"] == "IDS", trials["LabEffect"], 0.0)
    lt = rng.lognormal(mean=log_mean, sigma=LT_LOG_SD) + trials["SubjectOffset"].to_numpy()
    trials["LT"] = np.minimum(lt, LT_CEILING)

    # Same row order as load_trials.
    trials = trials.sort_values(["Lab", "Subject", "Trial"]).reset_index(drop=True)
    return trials[TRIAL_COLUMNS]


def load_trials(path: Path) -> pd.DataFrame:
    """Read a trial-level CSV with the simulated schema (``Block`` optional)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trial file not found: {path}")
    df = pd.read_csv(path, encoding="utf-8-sig")

    required = [col for col in TRIAL_COLUMNS if col != "Block"]
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"Trial file {path} is missing columns: {missing}")

    df["Trial"] = pd.to_numeric(df["Trial"], errors="coerce")
    df["LT"] = pd.to_numeric(df["LT"], errors="coerce")
    df["Age"] = pd.to_numeric(df["Age"], errors="coerce")
    df["Condition"] = df["Condition"].astype(str).str.strip().str.upper()
    df = df.dropna(subset=["Subject", "Trial", "LT", "Age"])
    df = df[df["Condition"].isin({"IDS", "ADS"})].copy()
    df["Trial"] = df["Trial"].astype(int)
    if "Block" not in df.columns:
        df["Block"] = assign_block(df["Trial"])
    for col in ("Lab", "Method", "Session", "Subject", "Language", "Bilingual"):
        df[col] = df[col].astype(str)

    return df[TRIAL_COLUMNS].sort_values(["Lab", "Subject", "Trial"]).reset_index(drop=True)


def save_trials(df: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8-sig")
    return path
