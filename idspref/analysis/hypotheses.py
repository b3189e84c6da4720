"""
Core IDS-preference mixed models.

Models (ML, grouped by lab, subject effects nested as variance components):
    paired_intercept         Diff ~ 1                      (1 | Lab)
    condition                MeanLogLT ~ ConditionC        (1 + ConditionC | Lab) + (1 | Subject)
    condition_age            + AgeC + ConditionC:AgeC
    condition_age_quadratic  + AgeC2 + ConditionC:AgeC2
    condition_age_cubic      + AgeC3 + ConditionC:AgeC3
    trial_order              LogLT ~ ConditionC * TrialC * AgeC (trial level)
                             (1 + ConditionC + TrialC | Lab) + (1 + ConditionC | Subject)

Age enters the lab random effects of no model; lab slopes cover ConditionC
(and TrialC at trial level) only.

Nested pairs are compared by likelihood ratio; drop1 tables give
single-term deletion tests for the cubic age model and the trial model.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from idspref.analysis.utils import (
    SUBJECT_CONDITION_SLOPE,
    SUBJECT_INTERCEPT,
    ModelFit,
    center_predictors,
    compare_models,
    drop1,
    expand_terms,
    fit_mixedlm,
    report_fit,
)
from idspref.preprocessing.features import complete_pairs

AGGREGATE_LAB_RE = "1 + ConditionC"
TRIAL_LAB_RE = "1 + ConditionC + TrialC"

CONDITION_TERMS = ["ConditionC"]
CONDITION_AGE_TERMS = expand_terms("ConditionC", "AgeC")
QUADRATIC_TERMS = CONDITION_AGE_TERMS + ["AgeC2", "ConditionC:AgeC2"]
CUBIC_TERMS = QUADRATIC_TERMS + ["AgeC3", "ConditionC:AgeC3"]
TRIAL_ORDER_TERMS = expand_terms("ConditionC", "TrialC", "AgeC")


@dataclass
class ModelSuite:
    fits: list[ModelFit] = field(default_factory=list)
    comparisons: list[dict[str, object]] = field(default_factory=list)
    drop1_tables: list[pd.DataFrame] = field(default_factory=list)

    def add(self, fit: ModelFit, verbose: bool = True) -> ModelFit:
        report_fit(fit, verbose=verbose)
        self.fits.append(fit)
        return fit

    def compare(self, reduced: ModelFit, full: ModelFit, verbose: bool = True) -> dict[str, object]:
        row = compare_models(reduced, full)
        self.comparisons.append(row)
        if verbose and np.isfinite(row["p"]):
            print(
                f"  [LRT] {row['comparison']}: chi2({row['df']})={row['lr_stat']:.3f}, p={row['p']:.4g}"
            )
        return row

    def extend(self, other: "ModelSuite") -> None:
        self.fits.extend(other.fits)
        self.comparisons.extend(other.comparisons)
        self.drop1_tables.extend(other.drop1_tables)

    def drop1_table(self) -> pd.DataFrame:
        tables = [t for t in self.drop1_tables if not t.empty]
        if not tables:
            return pd.DataFrame()
        return pd.concat(tables, ignore_index=True)


def fit_paired_intercept(paired: pd.DataFrame) -> ModelFit:
    data = complete_pairs(paired)
    return fit_mixedlm("paired_intercept", data, [], response="Diff", re_formula="1")


def run_core_models(
    agg: pd.DataFrame,
    trials: pd.DataFrame,
    paired: pd.DataFrame,
    verbose: bool = True,
) -> ModelSuite:
    """Fit the condition, age, age-polynomial and trial-order models."""
    suite = ModelSuite()
    data = center_predictors(agg)

    suite.add(fit_paired_intercept(paired), verbose=verbose)

    aggregate_kwargs = {
        "response": "MeanLogLT",
        "re_formula": AGGREGATE_LAB_RE,
        "vc_formula": SUBJECT_INTERCEPT,
    }
    condition = suite.add(fit_mixedlm("condition", data, CONDITION_TERMS, **aggregate_kwargs), verbose)
    condition_age = suite.add(
        fit_mixedlm("condition_age", data, CONDITION_AGE_TERMS, **aggregate_kwargs), verbose
    )
    suite.compare(condition, condition_age, verbose=verbose)

    quadratic = suite.add(
        fit_mixedlm("condition_age_quadratic", data, QUADRATIC_TERMS, **aggregate_kwargs), verbose
    )
    cubic = suite.add(fit_mixedlm("condition_age_cubic", data, CUBIC_TERMS, **aggregate_kwargs), verbose)
    suite.compare(condition_age, quadratic, verbose=verbose)
    suite.compare(quadratic, cubic, verbose=verbose)
    if cubic.ok:
        suite.drop1_tables.append(drop1(cubic, data, CUBIC_TERMS, verbose=verbose, **aggregate_kwargs))

    suite.extend(run_trial_order_model(trials, verbose=verbose))
    return suite


def run_trial_order_model(trials: pd.DataFrame, verbose: bool = True) -> ModelSuite:
    suite = ModelSuite()
    data = center_predictors(trials.assign(LogLT=np.log(trials["LT"])))
    trial_kwargs = {
        "response": "LogLT",
        "re_formula": TRIAL_LAB_RE,
        "vc_formula": SUBJECT_CONDITION_SLOPE,
    }
    fit = suite.add(fit_mixedlm("trial_order", data, TRIAL_ORDER_TERMS, **trial_kwargs), verbose)
    if fit.ok:
        suite.drop1_tables.append(drop1(fit, data, TRIAL_ORDER_TERMS, verbose=verbose, **trial_kwargs))
    return suite
