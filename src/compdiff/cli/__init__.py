"""
compdiff CLI - Command-line interface for scale-aware differential abundance.

Commands:
    compdiff ttest   - Welch/Wilcoxon or Bayesian tests over Dirichlet Monte Carlo instances
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for compdiff."""
    parser = argparse.ArgumentParser(
        prog="compdiff",
        description="Scale-aware differential abundance for compositional count data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  ttest         Two-group tests over Dirichlet Monte Carlo instances

Examples:
  compdiff ttest --counts counts.csv --metadata meta.csv --condition-col group --output results/
  compdiff ttest --counts counts.csv --metadata meta.csv --bayes --gamma 0.5 --seed 1 --output results/
  compdiff ttest --config run.yaml
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from compdiff.cli import ttest
    ttest.setup_parser(subparsers)

    raw_args = list(sys.argv[1:] if args is None else args)
    parsed_args = parser.parse_args(raw_args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    parsed_args._raw_args = raw_args
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
