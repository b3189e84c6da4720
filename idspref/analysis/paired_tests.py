"""
Paired IDS/ADS preference tests.

One-sample t-tests on the per-subject preference scores:
    - Diff (IDS - ADS mean log LT) against 0
    - Prop (IDS / (IDS + ADS)) against 0.5
with the standardized effect size d = (mean - popmean) / SD.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy import stats


def one_sample_test(values: pd.Series, popmean: float = 0.0) -> dict[str, object]:
    values = pd.Series(values, dtype=float).dropna()
    n = int(len(values))
    if n < 2:
        raise ValueError(f"One-sample test needs at least 2 values, got {n}")

    constant = values.nunique() == 1
    mean = float(values.iloc[0]) if constant else float(values.mean())
    sd = 0.0 if constant else float(values.std(ddof=1))
    delta = mean - popmean

    if not constant:
        t_stat, p_val = stats.ttest_1samp(values, popmean)
        return {
            "n": n,
            "mean": mean,
            "sd": sd,
            "t": float(t_stat),
            "df": n - 1,
            "p": float(p_val),
            "d": delta / sd,
            "degenerate": False,
        }

    # Zero variance: every value equals the mean.
    if delta == 0:
        t_stat, p_val, d = 0.0, 1.0, 0.0
    else:
        t_stat = float(np.copysign(np.inf, delta))
        p_val = 0.0
        d = t_stat
    return {
        "n": n,
        "mean": mean,
        "sd": sd,
        "t": t_stat,
        "df": n - 1,
        "p": p_val,
        "d": d,
        "degenerate": True,
    }


def run_paired_tests(paired: pd.DataFrame, verbose: bool = True) -> pd.DataFrame:
    incomplete = paired[paired[["IDS", "ADS"]].isna().any(axis=1)]
    if not incomplete.empty and verbose:
        print(f"  [WARN] {len(incomplete)} subjects lack an IDS/ADS pair; excluded from paired tests")

    rows = []
    for measure, popmean in (("Diff", 0.0), ("Prop", 0.5)):
        result = one_sample_test(paired[measure], popmean)
        rows.append(
            {
                "measure": measure,
                "popmean": popmean,
                "n_excluded_unpaired": int(len(incomplete)),
                **result,
            }
        )
        if verbose:
            print(
                f"  [TEST] {measure} vs {popmean:g}: t({result['df']})={result['t']:.3f}, "
                f"p={result['p']:.4g}, d={result['d']:.3f}"
            )
    return pd.DataFrame(rows)
