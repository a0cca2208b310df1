"""
Wilcoxon rank tests across features.

Unpaired designs use the rank-sum (Mann-Whitney U) test; paired designs use
the signed-rank test on matched differences (k-th reference sample minus
k-th other sample). Both delegate to scipy, which picks the exact null
distribution for small samples without ties and the tie-corrected normal
approximation (with continuity correction) otherwise. scipy makes that
choice once per call, so rows with and without ties are tested in separate
batches and each feature gets the null its own values call for.

Rows carrying no rank information (all values tied, or all paired
differences zero) get p = 1. Any non-finite p-value scipy returns for other
degenerate rows is also mapped to 1.
"""

from __future__ import annotations

import warnings

import numpy as np
from numpy.typing import NDArray
from scipy import stats as scipy_stats


def _row_has_ties(v: NDArray[np.float64]) -> NDArray[np.bool_]:
    """True for every row of ``v`` holding a repeated value."""
    return (np.diff(np.sort(v, axis=1), axis=1) == 0).any(axis=1)


def _tie_batches(tied: NDArray[np.bool_]) -> list[NDArray[np.intp]]:
    return [rows for rows in (np.flatnonzero(~tied), np.flatnonzero(tied)) if rows.size]


def _rank_sum_pvalues(a: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
    p = np.ones(a.shape[0])
    with np.errstate(divide='ignore', invalid='ignore'), warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        for rows in _tie_batches(_row_has_ties(np.hstack([a, b]))):
            res = scipy_stats.mannwhitneyu(
                a[rows], b[rows], axis=1, alternative="two-sided",
                use_continuity=True, method="auto",
            )
            p[rows] = np.atleast_1d(np.asarray(res.pvalue, dtype=np.float64))
    return p


def _signed_rank_pvalues(d: NDArray[np.float64]) -> NDArray[np.float64]:
    p = np.ones(d.shape[0])
    has_zero = (d == 0).any(axis=1)

    with np.errstate(divide='ignore', invalid='ignore'), warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        warnings.simplefilter("ignore", UserWarning)

        clean = np.flatnonzero(~has_zero)
        if clean.size:
            for rows in _tie_batches(_row_has_ties(np.abs(d[clean]))):
                res = scipy_stats.wilcoxon(
                    d[clean[rows]], axis=1, zero_method="wilcox", correction=True,
                    alternative="two-sided",
                )
                p[clean[rows]] = np.atleast_1d(np.asarray(res.pvalue, dtype=np.float64))

        # Zero differences are dropped per row, so sample sizes vary
        for row in np.flatnonzero(has_zero):
            nonzero = d[row][d[row] != 0]
            if nonzero.size == 0:
                continue
            res = scipy_stats.wilcoxon(
                nonzero, zero_method="wilcox", correction=True,
                alternative="two-sided",
            )
            p[row] = float(res.pvalue)

    return p


def wilcoxon_test(
    x: NDArray[np.float64],
    group: NDArray,
    paired: bool = False,
) -> NDArray[np.float64]:
    """
    Two-sided Wilcoxon p-value for every feature (row) of ``x``.

    Args:
        x: Matrix (n_features, n_samples).
        group: Binary assignment per sample, 1 = reference level.
        paired: Use the signed-rank test on matched pairs.

    Returns:
        Array (n_features,) of p-values in [0, 1].

    Raises:
        ValueError: If shapes disagree, a group is empty, or a paired design
            has unequal group sizes.
    """
    x = np.asarray(x, dtype=np.float64)
    group = np.asarray(group)
    if x.ndim != 2:
        raise ValueError(f"x must be 2D, got shape {x.shape}")
    if group.shape != (x.shape[1],):
        raise ValueError(
            f"group length ({group.size}) must match number of columns ({x.shape[1]})"
        )

    ref_idx = np.flatnonzero(group == 1)
    other_idx = np.flatnonzero(group == 0)
    if ref_idx.size == 0 or other_idx.size == 0:
        raise ValueError("both groups must contain at least one sample")

    p = np.ones(x.shape[0])

    if paired:
        if ref_idx.size != other_idx.size:
            raise ValueError(
                f"paired test requires equal group sizes, "
                f"got {ref_idx.size} and {other_idx.size}"
            )
        d = x[:, ref_idx] - x[:, other_idx]
        informative = np.flatnonzero((d != 0).any(axis=1))
        if informative.size:
            p[informative] = _signed_rank_pvalues(d[informative])
    else:
        informative = np.flatnonzero(np.ptp(x, axis=1) > 0)
        if informative.size:
            p[informative] = _rank_sum_pvalues(
                x[np.ix_(informative, ref_idx)],
                x[np.ix_(informative, other_idx)],
            )

    p[~np.isfinite(p)] = 1.0
    return np.clip(p, 0.0, 1.0)
