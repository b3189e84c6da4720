"""Tests for the mixed-model helpers, moderator trends and model suite."""

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from idspref.analysis.hypotheses import CUBIC_TERMS, run_core_models
from idspref.analysis.moderators import condition_trends, moderator_terms, run_moderator
from idspref.analysis.utils import (
    SUBJECT_INTERCEPT,
    ModelFit,
    center_predictors,
    compare_models,
    droppable_terms,
    expand_terms,
    fit_mixedlm,
    fit_summary_row,
    fixed_effects_table,
    random_effects_table,
)
from idspref.preprocessing.features import aggregate_subjects, pivot_conditions
from idspref.preprocessing.qc import clean_trials


def _fake_fit(name, llf, n_params, converged=True):
    result = SimpleNamespace(llf=llf, params=list(range(n_params)))
    return ModelFit(
        name=name,
        formula="y ~ x",
        re_formula="1",
        vc_formula=None,
        n_obs=10,
        n_groups=2,
        result=result,
        converged=converged,
    )


@pytest.fixture(scope="module")
def cleaned(small_trials):
    cleaned, _ = clean_trials(small_trials, verbose=False)
    return cleaned


@pytest.fixture(scope="module")
def aggregate(cleaned):
    return aggregate_subjects(cleaned)


class TestTerms:
    def test_expand_terms(self):
        assert expand_terms("A", "B") == ["A", "B", "A:B"]
        assert expand_terms("A", "B", "C") == ["A", "B", "C", "A:B", "A:C", "B:C", "A:B:C"]

    def test_droppable_respects_marginality(self):
        assert droppable_terms(expand_terms("A", "B", "C")) == ["A:B:C"]
        assert droppable_terms(CUBIC_TERMS) == ["ConditionC:AgeC", "ConditionC:AgeC2", "ConditionC:AgeC3"]

    def test_moderator_terms_use_sum_coding(self):
        terms = moderator_terms("Method")
        assert "ConditionC:C(Method, Sum)" in terms
        assert terms[-1] == "ConditionC:C(Method, Sum):AgeC"


class TestCentering:
    def test_centered_means(self, cleaned):
        data = center_predictors(cleaned)
        for col in ("ConditionC", "AgeC", "TrialC"):
            assert data[col].mean() == pytest.approx(0.0, abs=1e-10)
        assert np.allclose(data["AgeC2"], data["AgeC"] ** 2)

    def test_condition_contrast(self, aggregate):
        data = center_predictors(aggregate)
        ids = data.loc[data["Condition"] == "IDS", "ConditionC"].unique()
        ads = data.loc[data["Condition"] == "ADS", "ConditionC"].unique()
        assert ids[0] - ads[0] == pytest.approx(1.0)
        assert ids[0] == pytest.approx(0.5)


class TestCompareModels:
    def test_likelihood_ratio(self):
        row = compare_models(_fake_fit("reduced", -10.0, 3), _fake_fit("full", -7.0, 4))
        assert row["lr_stat"] == pytest.approx(6.0)
        assert row["df"] == 1
        assert row["p"] == pytest.approx(stats.chi2.sf(6.0, 1))

    def test_failed_fit_reported(self):
        failed = ModelFit("full", "y ~ x", "1", None, 10, 2, error="LinAlgError: singular")
        row = compare_models(_fake_fit("reduced", -10.0, 3), failed)
        assert np.isnan(row["p"])
        assert "full" in row["note"]

    def test_negative_lr_truncated(self):
        row = compare_models(_fake_fit("reduced", -7.0, 3), _fake_fit("full", -7.001, 4))
        assert row["lr_stat"] == 0.0
        assert row["p"] == pytest.approx(1.0)


class TestConditionTrends:
    def test_sum_coded_slopes(self):
        names = [
            "Intercept",
            "ConditionC",
            "ConditionC:C(Method, Sum)[S.a]",
            "ConditionC:C(Method, Sum)[S.b]",
        ]
        result = SimpleNamespace(
            fe_params=pd.Series([1.0, 0.5, 0.1, -0.3], index=names),
            cov_params=lambda: np.eye(4) * 0.01,
        )
        fit = ModelFit("m", "y ~ x", "1", None, 10, 2, result=result, converged=True)
        trends = condition_trends(fit, "Method", ["a", "b", "c"]).set_index("level")
        assert trends.loc["a", "trend"] == pytest.approx(0.6)
        assert trends.loc["b", "trend"] == pytest.approx(0.2)
        assert trends.loc["c", "trend"] == pytest.approx(0.7)
        assert trends.loc["a", "se"] == pytest.approx(np.sqrt(0.02))
        assert trends.loc["c", "se"] == pytest.approx(np.sqrt(0.03))
        assert trends.loc["b", "p"] == pytest.approx(2 * stats.norm.sf(0.2 / np.sqrt(0.02)))

    def test_failed_fit_gives_empty(self):
        failed = ModelFit("m", "y ~ x", "1", None, 10, 2, error="boom")
        assert condition_trends(failed, "Method", ["a", "b"]).empty


class TestFitting:
    def test_condition_model(self, aggregate):
        data = center_predictors(aggregate)
        fit = fit_mixedlm(
            "condition",
            data,
            ["ConditionC"],
            re_formula="1 + ConditionC",
            vc_formula=SUBJECT_INTERCEPT,
        )
        assert fit.ok, fit.error
        assert fit.n_groups == aggregate["Lab"].nunique()
        assert fit.result.fe_params["ConditionC"] > 0

        table = fixed_effects_table(fit)
        assert set(table["term"]) == {"Intercept", "ConditionC"}
        assert (table["ci_low"] <= table["beta"]).all()

        row = fit_summary_row(fit)
        assert row["model"] == "condition"
        assert row["formula"] == "MeanLogLT ~ ConditionC"

        random = random_effects_table(fit)
        assert "Subject" in set(random["group"])
        assert "Residual" in set(random["component"])

    def test_fit_error_is_captured(self, aggregate):
        data = center_predictors(aggregate)
        fit = fit_mixedlm("broken", data, ["ConditionC"], response="MeanLogLT", re_formula="1 + NotAColumn")
        assert not fit.ok
        assert fit.error
        assert fixed_effects_table(fit).empty

    def test_non_convergence_is_reported(self, aggregate):
        data = center_predictors(aggregate)
        fit = fit_mixedlm(
            "condition_short",
            data,
            ["ConditionC"],
            re_formula="1 + ConditionC",
            vc_formula=SUBJECT_INTERCEPT,
            maxiter=1,
        )
        assert fit.ok, fit.error
        assert not fit.converged
        assert fit.warning_msgs

        row = fit_summary_row(fit)
        assert row["converged"] is False
        assert row["warning_count"] == len(fit.warning_msgs)
        assert row["warning_msg"] == " | ".join(fit.warning_msgs)

    def test_moderator_trends_per_level(self, aggregate):
        suite, trends = run_moderator(aggregate, "Bilingual", verbose=False)
        levels = sorted(aggregate["Bilingual"].unique())
        assert trends["level"].tolist() == levels
        assert len(suite.comparisons) == 1
        assert suite.comparisons[0]["comparison"] == "moderator Bilingual"

    def test_moderator_single_level_skipped(self, aggregate):
        data = aggregate.assign(Session="first")
        suite, trends = run_moderator(data, "Session", verbose=False)
        assert trends.empty
        assert not suite.fits
        assert "skipped" in suite.comparisons[0]["note"]

    def test_core_suite(self, aggregate, cleaned):
        paired = pivot_conditions(aggregate)
        suite = run_core_models(aggregate, cleaned, paired, verbose=False)
        names = [f.name for f in suite.fits]
        for expected in (
            "paired_intercept",
            "condition",
            "condition_age",
            "condition_age_quadratic",
            "condition_age_cubic",
            "trial_order",
        ):
            assert expected in names
        assert len(suite.comparisons) == 3
        drop1 = suite.drop1_table()
        assert "ConditionC:TrialC:AgeC" in set(drop1["term"])
