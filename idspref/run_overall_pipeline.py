"""
Simulate (or load), clean, aggregate and model the IDS preference data.

Usage:
    python -m idspref
    python -m idspref --seed 2024 --z-threshold 2.5 --min-trials 3
    python -m idspref --data data/trials.csv --no-figures
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from idspref.analysis.hypotheses import ModelSuite, run_core_models
from idspref.analysis.moderators import run_moderators
from idspref.analysis.paired_tests import run_paired_tests
from idspref.analysis.utils import fit_summary_row, fixed_effects_table, random_effects_table
from idspref.preprocessing.constants import (
    DEFAULT_MIN_LT,
    DEFAULT_MIN_TRIALS_PER_TYPE,
    DEFAULT_Z_THRESHOLD,
    OUTPUTS_DIR,
    get_output_dir,
)
from idspref.preprocessing.features import aggregate_subjects, pivot_conditions, summarize_by_lab
from idspref.preprocessing.qc import CleaningCriteria, clean_trials
from idspref.preprocessing.simulate import SimulationDesign, load_trials, simulate_trials


@dataclass
class PipelineResult:
    trials: pd.DataFrame
    cleaned: pd.DataFrame
    exclusions: pd.DataFrame
    aggregate: pd.DataFrame
    paired: pd.DataFrame
    lab_summary: pd.DataFrame
    paired_tests: pd.DataFrame
    models: ModelSuite
    moderator_trends: pd.DataFrame
    tables: dict[str, pd.DataFrame] = field(default_factory=dict)
    figure_path: Path | None = None


def _concat(frames: list[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in frames if not f.empty]
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)


def build_tables(result: PipelineResult) -> dict[str, pd.DataFrame]:
    fits = result.models.fits
    return {
        "exclusions": result.exclusions,
        "lab_summary": result.lab_summary,
        "paired_tests": result.paired_tests,
        "model_fits": pd.DataFrame([fit_summary_row(f) for f in fits]),
        "fixed_effects": _concat([fixed_effects_table(f) for f in fits]),
        "random_effects": _concat([random_effects_table(f) for f in fits]),
        "model_comparisons": pd.DataFrame(result.models.comparisons),
        "drop1": result.models.drop1_table(),
        "moderator_trends": result.moderator_trends,
    }


def save_tables(tables: dict[str, pd.DataFrame], output_dir: Path, verbose: bool = True) -> None:
    stats_dir = get_output_dir("stats", root=output_dir)
    for name, table in tables.items():
        out_path = stats_dir / f"{name}.csv"
        table.to_csv(out_path, index=False, encoding="utf-8-sig")
        if verbose:
            print(f"  [SAVE] {out_path}")


def run_pipeline(
    criteria: CleaningCriteria | None = None,
    design: SimulationDesign | None = None,
    data_path: Path | None = None,
    output_dir: Path | None = None,
    make_figures: bool = True,
    save: bool = True,
    verbose: bool = True,
) -> PipelineResult:
    if criteria is None:
        criteria = CleaningCriteria()
    if output_dir is None:
        output_dir = OUTPUTS_DIR

    if verbose:
        print("=" * 60)
        print("IDS PREFERENCE ANALYSIS")
        print("=" * 60)

    if data_path is not None:
        trials = load_trials(data_path)
        source = str(data_path)
    else:
        trials = simulate_trials(design)
        source = "simulation" if design is None or design.seed is None else f"simulation (seed={design.seed})"
    if verbose:
        print(
            f"\n[1/5] Trials: {len(trials)} rows, {trials['Subject'].nunique()} subjects, "
            f"{trials['Lab'].nunique()} labs [{source}]"
        )

    if verbose:
        print("\n[2/5] Cleaning...")
    cleaned, exclusions = clean_trials(trials, criteria, verbose=verbose)

    figure_path = None
    if make_figures and save:
        from idspref.figures_tables.plot_lt_histograms import plot_lt_histograms

        figure_path = plot_lt_histograms(
            cleaned, get_output_dir("figures", root=output_dir) / "lt_histogram_by_lab.png"
        )
        if verbose:
            print(f"  [SAVE] {figure_path}")

    if verbose:
        print("\n[3/5] Aggregating...")
    aggregate = aggregate_subjects(cleaned)
    paired = pivot_conditions(aggregate)
    lab_summary = summarize_by_lab(paired)
    if verbose:
        print(f"  [INFO] {len(aggregate)} subject x condition rows, {len(paired)} subjects")

    if verbose:
        print("\n[4/5] Paired preference tests...")
    paired_tests = run_paired_tests(paired, verbose=verbose)

    if verbose:
        print("\n[5/5] Mixed models...")
    models = run_core_models(aggregate, cleaned, paired, verbose=verbose)
    baseline = next((f for f in models.fits if f.name == "condition_age" and f.ok), None)
    moderator_suite, trends = run_moderators(aggregate, baseline=baseline, verbose=verbose)
    models.extend(moderator_suite)

    result = PipelineResult(
        trials=trials,
        cleaned=cleaned,
        exclusions=exclusions,
        aggregate=aggregate,
        paired=paired,
        lab_summary=lab_summary,
        paired_tests=paired_tests,
        models=models,
        moderator_trends=trends,
        figure_path=figure_path,
    )
    result.tables = build_tables(result)

    if save:
        if verbose:
            print("\n[OUTPUT]")
        save_tables(result.tables, Path(output_dir), verbose=verbose)

    if verbose:
        n_failed = sum(not f.converged for f in models.fits)
        if n_failed:
            print(f"\n[WARN] {n_failed} of {len(models.fits)} models did not converge cleanly")
        print("\nDone.")
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate/clean/model the multi-lab IDS preference dataset.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m idspref
    python -m idspref --seed 2024
    python -m idspref --data data/trials.csv --z-threshold 2.5
        """,
    )
    parser.add_argument(
        "--z-threshold",
        type=float,
        default=DEFAULT_Z_THRESHOLD,
        help=f"Exclude subjects with |z| of mean log LT at or above this (default: {DEFAULT_Z_THRESHOLD:g}).",
    )
    parser.add_argument(
        "--min-trials",
        type=int,
        default=DEFAULT_MIN_TRIALS_PER_TYPE,
        help=f"Minimum surviving trials per condition (default: {DEFAULT_MIN_TRIALS_PER_TYPE}).",
    )
    parser.add_argument(
        "--min-lt",
        type=float,
        default=DEFAULT_MIN_LT,
        help=f"Drop trials with LT below this many seconds (default: {DEFAULT_MIN_LT:g}).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for the simulated dataset.")
    parser.add_argument("--data", type=Path, default=None, help="Trial-level CSV to analyze instead of simulating.")
    parser.add_argument("--output-dir", type=Path, default=OUTPUTS_DIR, help="Directory for stats and figures.")
    parser.add_argument("--no-figures", action="store_true", help="Skip the LT histogram figure.")
    parser.add_argument("--no-save", action="store_true", help="Run without writing outputs.")
    parser.add_argument("--quiet", action="store_true", help="Suppress verbose output.")
    return parser


def main(argv: list[str] | None = None) -> int:
    if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8")

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        criteria = CleaningCriteria(
            min_lt=args.min_lt,
            z_threshold=args.z_threshold,
            min_trials_per_type=args.min_trials,
        )
    except ValueError as exc:
        parser.error(str(exc))

    design = SimulationDesign(seed=args.seed) if args.data is None else None
    run_pipeline(
        criteria=criteria,
        design=design,
        data_path=args.data,
        output_dir=args.output_dir,
        make_figures=not args.no_figures,
        save=not args.no_save,
        verbose=not args.quiet,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
