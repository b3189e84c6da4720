"""Shared fixtures for the IDS preference test suite."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from idspref.preprocessing.constants import TRIAL_COLUMNS
from idspref.preprocessing.simulate import SimulationDesign, simulate_trials


@pytest.fixture(scope="session")
def small_design() -> SimulationDesign:
    """6 labs x 10 subjects x 16 trials, seeded."""
    return SimulationDesign(n_labs=6, n_subjects=10, seed=11)


@pytest.fixture(scope="session")
def small_trials(small_design: SimulationDesign) -> pd.DataFrame:
    return simulate_trials(small_design)


@pytest.fixture(scope="session")
def full_trials() -> pd.DataFrame:
    """Default 20 x 30 x 16 design, seeded."""
    return simulate_trials(SimulationDesign(seed=7))


def make_subject(
    subject: str,
    ids_lt: list[float],
    ads_lt: list[float],
    lab: str = "lab01",
    age: float = 6.0,
) -> pd.DataFrame:
    """Hand-built trial rows for one subject (IDS trials first)."""
    lts = list(ids_lt) + list(ads_lt)
    conditions = ["IDS"] * len(ids_lt) + ["ADS"] * len(ads_lt)
    trials = np.arange(1, len(lts) + 1)
    return pd.DataFrame(
        {
            "Lab": lab,
            "Method": "singlescreen",
            "Session": "first",
            "Subject": subject,
            "Language": "English",
            "Bilingual": "monolingual",
            "Age": age,
            "Trial": trials,
            "Block": (trials - 1) // 4 + 1,
            "Condition": conditions,
            "LT": lts,
        }
    )[TRIAL_COLUMNS]


@pytest.fixture
def subject_factory():
    return make_subject
