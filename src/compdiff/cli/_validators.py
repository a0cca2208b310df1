"""argparse ``type=`` callables for the compdiff CLI.

Bad values such as ``--mc-samples 0``, ``--gamma -1`` or an empty
``--denom`` are rejected at parse time, before any file is read.
"""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """Monte Carlo sample counts and worker counts (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _non_negative_int(value: str) -> int:
    """Seeds (>= 0, as accepted by numpy SeedSequence)."""
    ivalue = int(value)
    if ivalue < 0:
        raise argparse.ArgumentTypeError(f"{value} is not a non-negative integer")
    return ivalue


def _positive_float(value: str) -> float:
    """Scale-model standard deviation in log2 units (> 0)."""
    fvalue = float(value)
    if not fvalue > 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive float")
    return fvalue


def _denominator(value) -> str | list[str]:
    """
    Log-ratio denominator: ``all``, ``iqlr``, or comma-separated feature IDs.

    Also accepts a list, as given in a config file.
    """
    if isinstance(value, (list, tuple)):
        features = [str(v).strip() for v in value]
    elif value in ("all", "iqlr"):
        return value
    else:
        features = [v.strip() for v in str(value).split(",")]

    features = [f for f in features if f]
    if not features:
        raise argparse.ArgumentTypeError(f"invalid denominator {value!r}")
    return features
