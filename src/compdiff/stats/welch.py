"""
Vectorized Welch t-test across features.

Computes, for every row of a features × samples matrix, the Welch t
statistic, Welch-Satterthwaite degrees of freedom, log-fold-change
(difference of group means), its standard error, and the two-sided
p-value. The paired variant is a one-sample t-test on matched differences.

The Welch-Satterthwaite approximation:

    SE² = s_1²/n_1 + s_0²/n_0
    df  = SE⁴ / [ (s_1²/n_1)² / (n_1 - 1) + (s_0²/n_0)² / (n_0 - 1) ]

Degenerate rows are resolved explicitly instead of producing NaN:
    - a group with one observation contributes variance 0
    - if the Welch denominator is 0, df falls back to max(n_1 + n_0 - 2, 1)
    - if SE == 0, p = 1 when the mean difference is 0, else p = 0

References:
    - Welch, B.L. (1947). Biometrika 34(1-2):28-35.
    - Satterthwaite, F.E. (1946). Biometrics Bulletin 2(6):110-114.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy import stats as scipy_stats


@dataclass(frozen=True)
class WelchStatistics:
    """Per-feature Welch t-test results for one matrix.

    Attributes:
        t: t statistic, (mean_ref - mean_other) / se. ±inf when se == 0 and
            the difference is non-zero.
        df: Welch-Satterthwaite degrees of freedom (n_pairs - 1 if paired).
        lfc: Observed log-fold-change, mean_ref - mean_other (or mean paired
            difference).
        se: Standard error of ``lfc``.
        p_value: Two-sided p-value in [0, 1].
    """

    t: NDArray[np.float64]
    df: NDArray[np.float64]
    lfc: NDArray[np.float64]
    se: NDArray[np.float64]
    p_value: NDArray[np.float64]

    @property
    def num_denom(self) -> NDArray[np.float64]:
        """(n_features, 2) array: observed log-fold-change and its standard error."""
        return np.column_stack([self.lfc, self.se])


def _row_var(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Sample variance per row (ddof=1); 0 for single-column input."""
    if x.shape[1] < 2:
        return np.zeros(x.shape[0])
    return x.var(axis=1, ddof=1)


def _t_and_p(
    lfc: NDArray[np.float64],
    se: NDArray[np.float64],
    df: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    positive = se > 0
    safe_se = np.where(positive, se, 1.0)

    t = np.where(
        positive,
        lfc / safe_se,
        np.where(lfc == 0, 0.0, np.copysign(np.inf, lfc)),
    )
    p = np.where(
        positive,
        2.0 * scipy_stats.t.sf(np.abs(t), df),
        np.where(lfc == 0, 1.0, 0.0),
    )
    return t, np.clip(p, 0.0, 1.0)


def welch_ttest(
    x: NDArray[np.float64],
    group: NDArray,
    paired: bool = False,
) -> WelchStatistics:
    """
    Welch t-test for every feature (row) of ``x``.

    Args:
        x: Matrix (n_features, n_samples).
        group: Binary assignment per sample, 1 = reference level.
        paired: If True, the k-th reference sample is paired with the k-th
            other sample and a one-sample test is run on the differences.

    Returns:
        WelchStatistics

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
    n1, n0 = ref_idx.size, other_idx.size
    if n1 == 0 or n0 == 0:
        raise ValueError("both groups must contain at least one sample")

    # Translation-invariant; makes constant rows exactly zero
    x = x - x[:, :1]

    if paired:
        if n1 != n0:
            raise ValueError(
                f"paired test requires equal group sizes, got {n1} and {n0}"
            )
        d = x[:, ref_idx] - x[:, other_idx]
        lfc = d.mean(axis=1)
        se = np.sqrt(_row_var(d) / n1)
        df = np.full(x.shape[0], float(max(n1 - 1, 1)))
        t, p = _t_and_p(lfc, se, df)
        return WelchStatistics(t=t, df=df, lfc=lfc, se=se, p_value=p)

    a = x[:, ref_idx]
    b = x[:, other_idx]
    lfc = a.mean(axis=1) - b.mean(axis=1)

    se1_sq = _row_var(a) / n1
    se0_sq = _row_var(b) / n0
    se_sq = se1_sq + se0_sq
    se = np.sqrt(se_sq)

    denom = np.zeros_like(se_sq)
    if n1 > 1:
        denom += se1_sq ** 2 / (n1 - 1)
    if n0 > 1:
        denom += se0_sq ** 2 / (n0 - 1)

    fallback_df = float(max(n1 + n0 - 2, 1))
    has_denom = denom > 0
    df = np.where(has_denom, se_sq ** 2 / np.where(has_denom, denom, 1.0), fallback_df)

    t, p = _t_and_p(lfc, se, df)
    return WelchStatistics(t=t, df=df, lfc=lfc, se=se, p_value=p)
