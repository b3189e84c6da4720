"""IDS-preference statistical models."""

from .utils import (
    ModelFit,
    center_predictors,
    compare_models,
    drop1,
    fit_mixedlm,
    fit_summary_row,
    fixed_effects_table,
    random_effects_table,
)
from .paired_tests import one_sample_test, run_paired_tests
from .hypotheses import ModelSuite, run_core_models, run_trial_order_model
from .moderators import condition_trends, run_moderator, run_moderators

__all__ = [
    "ModelFit",
    "center_predictors",
    "compare_models",
    "drop1",
    "fit_mixedlm",
    "fit_summary_row",
    "fixed_effects_table",
    "random_effects_table",
    "one_sample_test",
    "run_paired_tests",
    "ModelSuite",
    "run_core_models",
    "run_trial_order_model",
    "condition_trends",
    "run_moderator",
    "run_moderators",
]
