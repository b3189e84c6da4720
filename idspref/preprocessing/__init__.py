"""Simulation, cleaning and aggregation helpers."""

from .simulate import SimulationDesign, simulate_trials, load_trials, save_trials
from .qc import (
    CleaningCriteria,
    clean_trials,
    compute_subject_zscores,
    drop_outlier_subjects,
    drop_short_trials,
    drop_sparse_subjects,
)
from .features import (
    aggregate_subjects,
    complete_pairs,
    mean_by_keys,
    pivot_conditions,
    summarize_by_lab,
)

__all__ = [
    "SimulationDesign",
    "simulate_trials",
    "load_trials",
    "save_trials",
    "CleaningCriteria",
    "clean_trials",
    "compute_subject_zscores",
    "drop_outlier_subjects",
    "drop_short_trials",
    "drop_sparse_subjects",
    "aggregate_subjects",
    "complete_pairs",
    "mean_by_keys",
    "pivot_conditions",
    "summarize_by_lab",
]
