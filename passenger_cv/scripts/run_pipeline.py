#!/usr/bin/env python3
"""
run_pipeline.py

Command-line driver: read a passenger CSV, run the full comparison and print
the leaderboard.

    passenger-cv data/titanic3.csv --folds 5 --seed 42 \
        --families baseline ridge lasso cart --report reports/leaderboard.json \
        --pdp age
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from passenger_cv.config import DEFAULT_FAMILIES, N_FOLDS, SEED, PipelineConfig
from passenger_cv.exceptions import PipelineError
from passenger_cv.pipeline import PipelineResult, run_pipeline
from passenger_cv.Stage_5_Training.model_families import FAMILIES

log = logging.getLogger("RunPipeline")
console = Console()


def _n_jobs(value: str):
    return float(value) if "." in value else int(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cross-validated comparison of classifier families on a passenger table.")
    parser.add_argument("csv", type=Path, help="Raw passenger CSV.")
    parser.add_argument("--seed", type=int, default=SEED)
    parser.add_argument("--folds", type=int, default=N_FOLDS)
    parser.add_argument("--families", nargs="+", default=list(DEFAULT_FAMILIES),
                        choices=sorted(FAMILIES), metavar="FAMILY",
                        help="Model families to compare (default: all).")
    parser.add_argument("--n-jobs", type=_n_jobs, default=None,
                        help="Workers: int, fraction of cores (e.g. 0.5), or -1 for all.")
    parser.add_argument("--report", type=Path, default=None,
                        help="Write the leaderboard + comparison JSON here.")
    parser.add_argument("--pdp", nargs="+", default=None, metavar="FEATURE",
                        help="Partial dependence for one feature (or two for a 2-way sweep).")
    return parser


def print_leaderboard(result: PipelineResult) -> None:
    table = Table(title="Cross-validated accuracy", show_lines=True)
    table.add_column("Rank", justify="right")
    table.add_column("Model", style="cyan", no_wrap=True)
    for col in ("Mean", "Std", "Min", "Median", "Max"):
        table.add_column(col, justify="right")
    for rank, e in enumerate(result.leaderboard, 1):
        table.add_row(str(rank), e.model_name, f"{e.mean_accuracy:.4f}", f"{e.std_accuracy:.4f}",
                      f"{e.min:.4f}", f"{e.median:.4f}", f"{e.max:.4f}")
    console.print(table)

    cmp = result.leaderboard.comparison
    if cmp is not None:
        colour = "green" if cmp.significant else "yellow"
        console.print(
            f"[bold {colour}]{cmp.model_name} vs {cmp.baseline_name}: "
            f"Δ={cmp.mean_difference:+.4f}, corrected p={cmp.p_value:.4f} "
            f"(paired t p={cmp.naive_p_value:.4f})[/bold {colour}]")
    for name, err in result.family_errors.items():
        console.print(f"[red]{name} failed: {escape(str(err))}[/red]")

    imp = Table(title=f"Permutation importance ({result.best_model.family})")
    imp.add_column("Predictor", style="cyan")
    imp.add_column("Accuracy drop", justify="right")
    for feature, score in result.importance.items():
        imp.add_row(str(feature), f"{score:.4f}")
    console.print(imp)


def print_partial_dependence(result: PipelineResult, features: List[str]) -> None:
    target = features[0] if len(features) == 1 else tuple(features[:2])
    points = result.analyzer.partial_dependence(target)
    table = Table(title=f"Partial dependence: {target}")
    for f in features[:2]:
        table.add_column(f, style="cyan")
    table.add_column("P(survived)", justify="right")
    for p in points:
        table.add_row(*[str(v) for v in p.values], f"{p.mean_predicted_probability:.4f}")
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.csv.exists():
        log.error(f"Input file not found: {args.csv}")
        return 2

    raw = pd.read_csv(args.csv)
    log.info(f"Loaded {args.csv}: {raw.shape[0]} rows × {raw.shape[1]} cols")
    config = PipelineConfig(seed=args.seed, n_folds=args.folds,
                            families=tuple(args.families), n_jobs=args.n_jobs)
    try:
        result = run_pipeline(raw, config)
    except PipelineError as e:
        console.print(f"[bold red]Pipeline aborted: {escape(str(e))}[/bold red]")
        return 1

    print_leaderboard(result)
    if args.pdp:
        print_partial_dependence(result, args.pdp)
    if args.report:
        result.leaderboard.to_json(args.report)
        console.print(f"Report saved to: [bold blue]{args.report}[/bold blue]")
    return 0


def cli() -> None:
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s | %(levelname)s | %(message)s")
    sys.exit(main())


if __name__ == "__main__":
    cli()
