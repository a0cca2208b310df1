"""
CLI for two-group differential abundance over Dirichlet Monte Carlo instances.

Samples Monte Carlo instances of each sample's composition, transforms them
to a log-ratio basis (optionally with a log-normal scale model), and runs
either Welch + Wilcoxon tests or the Bayesian log-fold-change test once per
instance before averaging.

Usage:
    compdiff ttest \\
        --counts data/counts.csv \\
        --metadata data/metadata.csv \\
        --condition-col group \\
        --output results/ttest \\
        --mc-samples 128 --gamma 0.5 --bayes --seed 42

Outputs (in --output):
    ttest_results.csv       per-feature expected statistics
    parameters.json         run parameters and provenance
    pvalue_histograms.png   instance-1 p-value histograms (--hist-plot, classical only)
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from compdiff.cli._validators import (
    _denominator,
    _non_negative_int,
    _positive_float,
    _positive_int,
)

logger = logging.getLogger(__name__)


def setup_parser(subparsers: argparse._SubParsersAction) -> None:
    """Add the ttest subcommand to the parser."""
    parser = subparsers.add_parser(
        "ttest",
        help="Welch/Wilcoxon or Bayesian tests over Monte Carlo instances",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Input / output
    parser.add_argument(
        "--counts", "-c",
        type=Path,
        default=None,
        help="Count table CSV/TSV (features × samples, first column feature IDs)",
    )
    parser.add_argument(
        "--metadata", "-m",
        type=Path,
        default=None,
        help="Sample metadata CSV/TSV (first column sample IDs)",
    )
    parser.add_argument(
        "--condition-col",
        type=str,
        default="condition",
        help="Metadata column with the two condition labels (default: condition)",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output directory for results",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML/JSON config file; explicit CLI flags override its values",
    )

    # Sampling
    parser.add_argument(
        "--mc-samples",
        type=_positive_int,
        default=128,
        help="Dirichlet Monte Carlo instances per sample (default: 128)",
    )
    parser.add_argument(
        "--denom",
        type=_denominator,
        default="all",
        help="Log-ratio denominator: 'all', 'iqlr', or comma-separated feature IDs "
             "(default: all)",
    )
    parser.add_argument(
        "--gamma",
        type=_positive_float,
        default=None,
        help="Scale model standard deviation in log2 units (default: no scale model)",
    )
    parser.add_argument(
        "--seed",
        type=_non_negative_int,
        default=None,
        help="Random seed for sampling and null draws",
    )

    # Test
    parser.add_argument(
        "--bayes",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Bayesian log-fold-change test instead of Welch + Wilcoxon",
    )
    parser.add_argument(
        "--paired",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Paired tests: k-th sample of the reference level pairs with the "
             "k-th sample of the other level",
    )
    parser.add_argument(
        "--workers", "-j",
        type=_positive_int,
        default=1,
        help="Threads for the per-instance loop (default: 1)",
    )
    parser.add_argument(
        "--hist-plot",
        action="store_true",
        default=False,
        help="Save p-value histograms of the first instance (classical path only)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Report progress once per Monte Carlo instance",
    )

    parser.set_defaults(func=run_ttest_command)


# Config file values bypass argparse type conversion, so they are re-checked
_VALUE_CHECKS = {
    "mc_samples": _positive_int,
    "workers": _positive_int,
    "gamma": _positive_float,
    "seed": _non_negative_int,
    "denom": _denominator,
}
_FLAG_ARGS = ("bayes", "paired", "hist_plot")


def _check_merged_args(args: argparse.Namespace) -> argparse.Namespace:
    """
    Validate and convert values after merging a config file.

    Raises:
        ValueError: If a value fails its command-line validator or a flag is
            not a boolean.
    """
    for dest, check in _VALUE_CHECKS.items():
        value = getattr(args, dest)
        if value is None:
            continue
        if isinstance(value, bool) or (isinstance(value, float) and dest != "gamma"):
            raise ValueError(f"invalid {dest}: {value!r}")
        try:
            setattr(args, dest, check(value))
        except (argparse.ArgumentTypeError, TypeError, ValueError) as e:
            raise ValueError(f"invalid {dest}: {e}") from e

    for dest in _FLAG_ARGS:
        value = getattr(args, dest)
        if not isinstance(value, bool):
            raise ValueError(f"{dest} must be true or false, got {value!r}")
    return args


def run_ttest_command(args: argparse.Namespace) -> int:
    """Execute the ttest subcommand."""
    from compdiff.cli.config import load_config, merge_config_with_args
    from compdiff.core.sampling import sample_clr
    from compdiff.io.loaders import load_conditions, load_counts
    from compdiff.io.writers import write_parameters, write_result_table
    from compdiff.stats.ttest import ClassicalTTestResult, run_ttest, split_seed

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    if args.config is not None:
        try:
            config = load_config(args.config)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        args = merge_config_with_args(config, args, getattr(args, '_raw_args', None))

    for name in ("counts", "metadata", "output"):
        if getattr(args, name) is None:
            print(f"Error: --{name} is required (on the command line or in --config)")
            return 1

    try:
        args = _check_merged_args(args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    denom = args.denom
    sampling_seed, test_seed = split_seed(args.seed)

    print("=" * 70)
    print("  Scale-aware Differential Abundance (Monte Carlo t-test)")
    print("=" * 70)
    print(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print()

    try:
        print(f"Loading counts: {args.counts}")
        counts = load_counts(args.counts)
        print(f"  {counts.shape[0]} features × {counts.shape[1]} samples")

        print(f"Loading metadata: {args.metadata}")
        conditions = load_conditions(args.metadata, args.condition_col, counts.columns)

        print(f"\nSampling {args.mc_samples} Monte Carlo instances "
              f"(denom={denom}, gamma={args.gamma})...")
        mc = sample_clr(
            counts,
            conditions,
            mc_samples=args.mc_samples,
            denom=denom,
            gamma=args.gamma,
            seed=sampling_seed,
        )

        output_dir = Path(args.output)
        output_dir.mkdir(parents=True, exist_ok=True)
        hist_path = output_dir / "pvalue_histograms.png"

        print(f"Testing {'Bayesian log-fold-change' if args.bayes else 'Welch + Wilcoxon'} "
              f"(paired={args.paired}, workers={args.workers})...")
        result = run_ttest(
            mc,
            conditions,
            paired=args.paired,
            bayes_est=args.bayes,
            seed=test_seed,
            n_workers=args.workers,
            verbose=args.verbose,
            hist_plot=hist_path if (args.hist_plot and not args.bayes) else None,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    table_path = write_result_table(result.table, output_dir / "ttest_results.csv")
    write_parameters(
        {
            "counts": args.counts,
            "metadata": args.metadata,
            "condition_col": args.condition_col,
            "levels": list(result.levels),
            "mc_samples": args.mc_samples,
            "denom": denom,
            "gamma": args.gamma,
            "seed": args.seed,
            "sampling_seed": sampling_seed,
            "test_seed": test_seed,
            "bayes_est": args.bayes,
            "paired": args.paired,
            "n_features": mc.n_features,
            "n_samples": mc.n_samples,
            "timestamp": datetime.now().isoformat(),
        },
        output_dir / "parameters.json",
    )

    print(f"\nResults: {table_path}")
    if args.hist_plot and args.bayes:
        print("  Note: --hist-plot applies to the classical path only; skipped")
    elif args.hist_plot:
        print(f"P-value histograms: {hist_path}")

    p_column = "we_eBH" if isinstance(result, ClassicalTTestResult) else "p_val"
    n_sig = int((result.table[p_column] < 0.05).sum())
    print(f"\n{n_sig}/{len(result.table)} features with {p_column} < 0.05")
    print(f"Completed: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    return 0
