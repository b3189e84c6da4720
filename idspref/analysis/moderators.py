"""
Moderator analyses (Method, Session, Language, Bilingual).

For each moderator the full model

    MeanLogLT ~ ConditionC * C(moderator, Sum) * AgeC

is compared against the moderator-free ConditionC * AgeC model, and the
condition effect (slope of ConditionC at mean age) is estimated within
every moderator level. Per-level trends use the sum-to-zero contrast matrix
and the fixed-effect covariance; p-values are not adjusted for
multiplicity.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from patsy.contrasts import Sum
from scipy import stats

from idspref.analysis.hypotheses import (
    AGGREGATE_LAB_RE,
    CONDITION_AGE_TERMS,
    ModelSuite,
)
from idspref.analysis.utils import (
    SUBJECT_INTERCEPT,
    ModelFit,
    center_predictors,
    expand_terms,
    fit_mixedlm,
)
from idspref.preprocessing.constants import MODERATORS

TREND_COLUMNS = [
    "moderator",
    "level",
    "n_subjects",
    "trend",
    "se",
    "z",
    "p",
    "ci_low",
    "ci_high",
]


def sum_coded_term(moderator: str) -> str:
    return f"C({moderator}, Sum)"


def moderator_terms(moderator: str) -> list[str]:
    return expand_terms("ConditionC", sum_coded_term(moderator), "AgeC")


def _find_param(names: list[str], pieces: set[str]) -> int | None:
    for idx, name in enumerate(names):
        if set(name.split(":")) == pieces:
            return idx
    return None


def condition_trends(
    fit: ModelFit,
    moderator: str,
    levels: list[str],
    slope_term: str = "ConditionC",
) -> pd.DataFrame:
    """
    Slope of ``slope_term`` within each moderator level.

    With sum coding the level-k slope is b_slope + sum_j M[k, j] * b_{slope:mod[j]},
    where M is the contrast matrix for the sorted levels.
    """
    if not fit.ok:
        return pd.DataFrame(columns=TREND_COLUMNS)

    result = fit.result
    fe_names = list(result.fe_params.index)
    k_fe = len(fe_names)
    beta = np.asarray(result.fe_params, dtype=float)
    cov = np.asarray(result.cov_params(), dtype=float)[:k_fe, :k_fe]

    contrast = Sum().code_without_intercept(levels)
    base_idx = fe_names.index(slope_term)
    interaction_idx = []
    for suffix in contrast.column_suffixes:
        pieces = {slope_term, f"{sum_coded_term(moderator)}{suffix}"}
        interaction_idx.append(_find_param(fe_names, pieces))

    crit = stats.norm.ppf(0.975)
    rows = []
    for k, level in enumerate(levels):
        weights = np.zeros(k_fe)
        weights[base_idx] = 1.0
        for j, idx in enumerate(interaction_idx):
            if idx is not None:
                weights[idx] = contrast.matrix[k, j]
        estimate = float(weights @ beta)
        se = float(np.sqrt(weights @ cov @ weights))
        z = estimate / se if se > 0 else np.nan
        rows.append(
            {
                "moderator": moderator,
                "level": level,
                "trend": estimate,
                "se": se,
                "z": z,
                "p": float(2 * stats.norm.sf(abs(z))) if np.isfinite(z) else np.nan,
                "ci_low": estimate - crit * se,
                "ci_high": estimate + crit * se,
            }
        )
    return pd.DataFrame(rows)


def run_moderator(
    agg: pd.DataFrame,
    moderator: str,
    baseline: ModelFit | None = None,
    verbose: bool = True,
) -> tuple[ModelSuite, pd.DataFrame]:
    if moderator not in agg.columns:
        raise ValueError(f"Unknown moderator column: {moderator}")

    suite = ModelSuite()
    data = center_predictors(agg.assign(**{moderator: agg[moderator].astype(str)}))
    levels = sorted(data[moderator].unique())
    if len(levels) < 2:
        if verbose:
            print(f"  [WARN] {moderator}: only {len(levels)} level(s) observed; skipped")
        suite.comparisons.append(
            {
                "comparison": f"moderator {moderator}",
                "reduced": "condition_age",
                "full": f"moderator_{moderator.lower()}",
                "note": f"skipped: {len(levels)} level(s)",
            }
        )
        return suite, pd.DataFrame(columns=TREND_COLUMNS)

    kwargs = {
        "response": "MeanLogLT",
        "re_formula": AGGREGATE_LAB_RE,
        "vc_formula": SUBJECT_INTERCEPT,
    }
    if baseline is None:
        baseline = fit_mixedlm("condition_age", data, CONDITION_AGE_TERMS, **kwargs)
    full = suite.add(
        fit_mixedlm(f"moderator_{moderator.lower()}", data, moderator_terms(moderator), **kwargs),
        verbose=verbose,
    )
    row = suite.compare(baseline, full, verbose=verbose)
    row["comparison"] = f"moderator {moderator}"

    trends = condition_trends(full, moderator, levels)
    if not trends.empty:
        n_subjects = data.groupby(moderator)["Subject"].nunique()
        trends.insert(2, "n_subjects", trends["level"].map(n_subjects).astype(int))
        trends = trends[TREND_COLUMNS]
        if verbose:
            for _, trend in trends.iterrows():
                print(
                    f"  [TREND] {moderator}={trend['level']}: {trend['trend']:.3f} "
                    f"(SE {trend['se']:.3f}, p={trend['p']:.4g})"
                )
    return suite, trends


def run_moderators(
    agg: pd.DataFrame,
    baseline: ModelFit | None = None,
    moderators: tuple[str, ...] = MODERATORS,
    verbose: bool = True,
) -> tuple[ModelSuite, pd.DataFrame]:
    suite = ModelSuite()
    trend_tables = []
    for moderator in moderators:
        if verbose:
            print(f"\n[MODERATOR] {moderator}")
        mod_suite, trends = run_moderator(agg, moderator, baseline=baseline, verbose=verbose)
        suite.extend(mod_suite)
        if not trends.empty:
            trend_tables.append(trends)
    trends = pd.concat(trend_tables, ignore_index=True) if trend_tables else pd.DataFrame(columns=TREND_COLUMNS)
    return suite, trends
