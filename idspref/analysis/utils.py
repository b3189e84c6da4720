"""
Mixed-model utilities
=====================

Shared helpers for the lab/subject mixed-effects models:

- predictor centering (condition code, age, trial position)
- MixedLM fitting with convergence-warning capture
- coefficient / variance-component extraction
- likelihood-ratio comparisons and single-term deletion (drop1)

All models are grouped by ``Lab``; subject-level random effects enter as
variance components nested in lab. Fits use maximum likelihood so nested
fixed-effect structures can be compared with LR tests.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats
from sklearn.preprocessing import StandardScaler
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from idspref.preprocessing.constants import CONDITION_CODES


SUBJECT_INTERCEPT = {"Subject": "0 + C(Subject)"}
SUBJECT_CONDITION_SLOPE = {
    "Subject": "0 + C(Subject)",
    "SubjectCondition": "0 + C(Subject):ConditionC",
}


@dataclass
class ModelFit:
    name: str
    formula: str
    re_formula: str | None
    vc_formula: dict[str, str] | None
    n_obs: int
    n_groups: int
    result: object | None = None
    converged: bool = False
    warning_msgs: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def boundary_warning(self) -> bool:
        return any("boundary" in msg.lower() for msg in self.warning_msgs)

    @property
    def llf(self) -> float:
        return float(getattr(self.result, "llf", np.nan)) if self.ok else np.nan

    @property
    def n_params(self) -> int:
        return int(len(self.result.params)) if self.ok else 0


def center_predictors(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add mean-centered model predictors.

    ConditionC codes IDS as +0.5 and ADS as -0.5 before centering. AgeC2 and
    AgeC3 are raw powers of the centered age for the polynomial models.
    """
    result = df.copy()
    scaler = StandardScaler(with_std=False)

    if "Condition" in result.columns:
        result["ConditionCode"] = result["Condition"].map(CONDITION_CODES).astype(float)
        result["ConditionC"] = scaler.fit_transform(result[["ConditionCode"]]).ravel()
    if "Age" in result.columns:
        result["AgeC"] = scaler.fit_transform(result[["Age"]].astype(float)).ravel()
        result["AgeC2"] = result["AgeC"] ** 2
        result["AgeC3"] = result["AgeC"] ** 3
    if "Trial" in result.columns:
        result["TrialC"] = scaler.fit_transform(result[["Trial"]].astype(float)).ravel()

    return result


def build_formula(response: str, fixed_terms: list[str]) -> str:
    rhs = " + ".join(fixed_terms) if fixed_terms else "1"
    return f"{response} ~ {rhs}"


def fit_mixedlm(
    name: str,
    data: pd.DataFrame,
    fixed_terms: list[str],
    response: str = "MeanLogLT",
    re_formula: str | None = "1",
    vc_formula: dict[str, str] | None = None,
    method: str = "lbfgs",
    maxiter: int = 200,
) -> ModelFit:
    """
    Fit one ML mixed model grouped by lab.

    Convergence warnings are recorded on the returned fit and fitting
    errors are caught into ``ModelFit.error``; the structure is never
    altered or retried here.
    """
    formula = build_formula(response, fixed_terms)
    fit = ModelFit(
        name=name,
        formula=formula,
        re_formula=re_formula,
        vc_formula=vc_formula,
        n_obs=int(len(data)),
        n_groups=int(data["Lab"].nunique()) if "Lab" in data.columns else 0,
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        try:
            model = smf.mixedlm(
                formula,
                data=data,
                groups=data["Lab"],
                re_formula=re_formula,
                vc_formula=vc_formula,
            )
            result = model.fit(reml=False, method=method, maxiter=maxiter)
        except Exception as exc:
            fit.error = f"{type(exc).__name__}: {exc}"
            result = None

    for warn in caught:
        if issubclass(warn.category, ConvergenceWarning):
            fit.warning_msgs.append(str(warn.message))

    fit.result = result
    if result is not None:
        fit.converged = bool(getattr(result, "converged", False))
    return fit


def report_fit(fit: ModelFit, verbose: bool = True) -> None:
    if not verbose:
        return
    if not fit.ok:
        print(f"  [WARN] {fit.name}: fit failed ({fit.error})")
    elif not fit.converged:
        detail = " | ".join(fit.warning_msgs) or "optimizer did not converge"
        print(f"  [WARN] {fit.name}: not converged ({detail})")
    else:
        print(f"  [MODEL] {fit.name}: llf={fit.llf:.2f}, n={fit.n_obs}")
        for msg in fit.warning_msgs:
            print(f"  [WARN] {fit.name}: {msg}")


def get_term(result: object, term: str) -> dict[str, float]:
    params = getattr(result, "params", {})
    bse = getattr(result, "bse", {})
    tvalues = getattr(result, "tvalues", {})
    pvalues = getattr(result, "pvalues", {})
    return {
        "beta": float(params.get(term, np.nan)),
        "se": float(bse.get(term, np.nan)),
        "z": float(tvalues.get(term, np.nan)),
        "p": float(pvalues.get(term, np.nan)),
    }


def fit_summary_row(fit: ModelFit) -> dict[str, object]:
    result = fit.result
    return {
        "model": fit.name,
        "formula": fit.formula,
        "re_formula": fit.re_formula,
        "vc_formula": "; ".join(f"{k}={v}" for k, v in (fit.vc_formula or {}).items()),
        "n_obs": fit.n_obs,
        "n_labs": fit.n_groups,
        "converged": fit.converged,
        "warning_count": len(fit.warning_msgs),
        "boundary_warning": fit.boundary_warning,
        "warning_msg": " | ".join(fit.warning_msgs),
        "fit_error": fit.error,
        "llf": fit.llf,
        "aic": float(getattr(result, "aic", np.nan)) if fit.ok else np.nan,
        "bic": float(getattr(result, "bic", np.nan)) if fit.ok else np.nan,
    }


def fixed_effects_table(fit: ModelFit) -> pd.DataFrame:
    columns = ["model", "term", "beta", "se", "z", "p", "ci_low", "ci_high"]
    if not fit.ok:
        return pd.DataFrame(columns=columns)
    crit = stats.norm.ppf(0.975)
    rows = []
    for term in fit.result.fe_params.index:
        values = get_term(fit.result, term)
        rows.append(
            {
                "model": fit.name,
                "term": term,
                **values,
                "ci_low": values["beta"] - crit * values["se"],
                "ci_high": values["beta"] + crit * values["se"],
            }
        )
    return pd.DataFrame(rows, columns=columns)


def random_effects_table(fit: ModelFit) -> pd.DataFrame:
    """Lab-level covariance entries and subject variance components."""
    columns = ["model", "group", "component", "variance"]
    if not fit.ok:
        return pd.DataFrame(columns=columns)
    result = fit.result
    rows = []
    cov_re = result.cov_re
    for name in cov_re.index:
        rows.append(
            {
                "model": fit.name,
                "group": "Lab",
                "component": "Intercept" if name in {"Group", "Intercept"} else str(name),
                "variance": float(cov_re.loc[name, name]),
            }
        )
    vcomp = np.atleast_1d(getattr(result, "vcomp", []))
    exog_vc = getattr(result.model, "exog_vc", None)
    vc_names = list(getattr(exog_vc, "names", None) or sorted((fit.vc_formula or {}).keys()))
    for name, value in zip(vc_names, vcomp):
        rows.append({"model": fit.name, "group": "Subject", "component": str(name), "variance": float(value)})
    rows.append({"model": fit.name, "group": "Residual", "component": "Residual", "variance": float(result.scale)})
    return pd.DataFrame(rows, columns=columns)


def compare_models(reduced: ModelFit, full: ModelFit, label: str | None = None) -> dict[str, object]:
    """Likelihood-ratio test of a nested pair of ML fits."""
    row: dict[str, object] = {
        "comparison": label or f"{reduced.name} vs {full.name}",
        "reduced": reduced.name,
        "full": full.name,
        "llf_reduced": reduced.llf,
        "llf_full": full.llf,
        "df": np.nan,
        "lr_stat": np.nan,
        "p": np.nan,
        "converged": reduced.converged and full.converged,
        "note": "",
    }
    if not (reduced.ok and full.ok):
        failed = [f.name for f in (reduced, full) if not f.ok]
        row["note"] = f"fit failed: {', '.join(failed)}"
        return row

    df_diff = full.n_params - reduced.n_params
    lr_stat = 2.0 * (full.llf - reduced.llf)
    if lr_stat < 0:
        row["note"] = f"negative LR ({lr_stat:.4g}) truncated to 0"
        lr_stat = 0.0
    row["df"] = int(df_diff)
    row["lr_stat"] = float(lr_stat)
    row["p"] = float(stats.chi2.sf(lr_stat, df_diff)) if df_diff > 0 else np.nan
    return row


def _is_marginal(term: str, other: str) -> bool:
    parts = set(term.split(":"))
    other_parts = set(other.split(":"))
    return term != other and parts < other_parts


def droppable_terms(fixed_terms: list[str]) -> list[str]:
    """Terms not contained in any higher-order interaction."""
    return [t for t in fixed_terms if not any(_is_marginal(t, o) for o in fixed_terms)]


def drop1(
    full: ModelFit,
    data: pd.DataFrame,
    fixed_terms: list[str],
    response: str = "MeanLogLT",
    re_formula: str | None = "1",
    vc_formula: dict[str, str] | None = None,
    verbose: bool = True,
) -> pd.DataFrame:
    """Single-term deletion LR tests against an already fitted full model."""
    rows = []
    for term in droppable_terms(fixed_terms):
        reduced_terms = [t for t in fixed_terms if t != term]
        reduced = fit_mixedlm(
            f"{full.name} - {term}",
            data,
            reduced_terms,
            response=response,
            re_formula=re_formula,
            vc_formula=vc_formula,
        )
        report_fit(reduced, verbose=verbose)
        row = compare_models(reduced, full, label=f"drop {term}")
        rows.append({"model": full.name, "term": term, **row})
    return pd.DataFrame(rows)


def expand_terms(*factors: str) -> list[str]:
    """Full factorial term list, e.g. ('A', 'B') -> ['A', 'B', 'A:B']."""
    terms: list[str] = []
    for factor in factors:
        terms = terms + [factor] + [f"{t}:{factor}" for t in terms]
    return sorted(terms, key=lambda t: t.count(":"))
