"""
Per-instance t-test engine over Monte Carlo instances.

Runs a two-group test once per Monte Carlo instance and combines the results
into one expected value per feature. Two named operations return two result
types that share the feature-ID index:

Classical path (``ttest_classical``):
    For each instance, Welch's t-test and the Wilcoxon test produce a raw
    p-value per feature, each corrected with Benjamini-Hochberg within the
    instance. The expected value of each of the four quantities is the mean
    across instances:

        we_ep, we_eBH   Welch p-value and BH-adjusted p-value
        wi_ep, wi_eBH   Wilcoxon p-value and BH-adjusted p-value

Bayesian path (``ttest_bayesian``):
    For each instance, the observed log-fold-change (lfc_obs) and its
    standard error are computed, and one null log-fold-change is drawn per
    feature as StudentT(df) * se, i.e. what lfc_obs would look like with no
    group difference and the same dispersion. Across all instances:

        diff    = |lfc_obs| - |lfc_null|
        p_val   = fraction of instances with diff <= 0
        lfc_est = mean(diff)
        lfc_obs = mean(lfc_obs)

    Every instance owns a generator spawned from one SeedSequence, so each
    null draw belongs to exactly one (feature, instance) cell and results do
    not depend on execution order.

Accumulators are (n_features, n_instances) arrays; each instance writes only
its own column, once. Aggregation runs after every column is filled.

Example:
    >>> from compdiff.core.sampling import sample_clr
    >>> mc = sample_clr(counts, conditions, mc_samples=128, seed=0)
    >>> res = ttest_bayesian(mc, conditions, seed=1)
    >>> res.table.sort_values("p_val").head()
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence, Union

import numpy as np
import pandas as pd
from numpy.random import SeedSequence
from numpy.typing import NDArray

from compdiff.core.design import TwoGroupDesign, build_two_group_design
from compdiff.core.mc_instances import MonteCarloInstances
from compdiff.stats.multitest import fdr_correction
from compdiff.stats.welch import welch_ttest
from compdiff.stats.wilcoxon import wilcoxon_test

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

CLASSICAL_COLUMNS = ("we_ep", "we_eBH", "wi_ep", "wi_eBH")
BAYESIAN_COLUMNS = ("lfc_est", "lfc_obs", "p_val")


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class ClassicalTTestResult:
    """Expected Welch and Wilcoxon p-values across Monte Carlo instances.

    Attributes:
        table: DataFrame indexed by feature ID with columns
            ``we_ep, we_eBH, wi_ep, wi_eBH``.
        first_instance: Raw and BH-adjusted p-values of instance 0
            (columns ``we_p, we_BH, wi_p, wi_BH``), for diagnostics.
        levels: Condition levels, reference first.
        paired: Whether paired tests were run.
        n_instances: Number of Monte Carlo instances aggregated.
    """

    table: pd.DataFrame
    first_instance: pd.DataFrame
    levels: tuple[str, str]
    paired: bool
    n_instances: int


@dataclass(frozen=True)
class BayesianTTestResult:
    """Bayesian log-fold-change test across Monte Carlo instances.

    Attributes:
        table: DataFrame indexed by feature ID with columns
            ``lfc_est, lfc_obs, p_val``.
        levels: Condition levels, reference first. ``lfc_obs`` is
            mean(reference) - mean(other).
        paired: Whether paired tests were run.
        n_instances: Number of Monte Carlo instances aggregated.
        seed: Seed of the null-draw SeedSequence.
    """

    table: pd.DataFrame
    levels: tuple[str, str]
    paired: bool
    n_instances: int
    seed: int | None


TTestResult = Union[ClassicalTTestResult, BayesianTTestResult]


# =============================================================================
# Accumulators
# =============================================================================


@dataclass
class ClassicalAccumulator:
    """Per-instance classical p-values, (n_features, n_instances) each."""

    welch_p: NDArray[np.float64]
    welch_bh: NDArray[np.float64]
    wilcoxon_p: NDArray[np.float64]
    wilcoxon_bh: NDArray[np.float64]

    @classmethod
    def allocate(cls, n_features: int, n_instances: int) -> ClassicalAccumulator:
        shape = (n_features, n_instances)
        return cls(
            welch_p=np.ones(shape),
            welch_bh=np.ones(shape),
            wilcoxon_p=np.ones(shape),
            wilcoxon_bh=np.ones(shape),
        )


@dataclass
class BayesianAccumulator:
    """Per-instance t, observed and null log-fold-changes."""

    t: NDArray[np.float64]
    lfc_obs: NDArray[np.float64]
    lfc_null: NDArray[np.float64]

    @classmethod
    def allocate(cls, n_features: int, n_instances: int) -> BayesianAccumulator:
        shape = (n_features, n_instances)
        return cls(
            t=np.full(shape, np.nan),
            lfc_obs=np.full(shape, np.nan),
            lfc_null=np.full(shape, np.nan),
        )


# =============================================================================
# Per-instance tests
# =============================================================================


def classical_instance(
    x: NDArray[np.float64],
    design: TwoGroupDesign,
) -> tuple[NDArray[np.float64], ...]:
    """
    Classical tests for one instance matrix.

    Returns:
        (welch_p, welch_bh, wilcoxon_p, wilcoxon_bh), each (n_features,).
    """
    we_p = welch_ttest(x, design.group, design.paired).p_value
    wi_p = wilcoxon_test(x, design.group, design.paired)
    return we_p, fdr_correction(we_p, method="BH"), wi_p, fdr_correction(wi_p, method="BH")


def bayesian_instance(
    x: NDArray[np.float64],
    design: TwoGroupDesign,
    rng: np.random.Generator,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Observed statistics and one null log-fold-change draw per feature.

    Returns:
        (t, lfc_obs, lfc_null), each (n_features,).
    """
    welch = welch_ttest(x, design.group, design.paired)
    lfc_obs, se = welch.num_denom.T
    lfc_null = rng.standard_t(welch.df) * se
    return welch.t, lfc_obs, lfc_null


# =============================================================================
# Aggregation
# =============================================================================


def aggregate_classical(
    acc: ClassicalAccumulator,
    feature_ids: Sequence[str] | pd.Index,
) -> pd.DataFrame:
    """Row means of the four classical accumulators."""
    return pd.DataFrame(
        {
            "we_ep": acc.welch_p.mean(axis=1),
            "we_eBH": acc.welch_bh.mean(axis=1),
            "wi_ep": acc.wilcoxon_p.mean(axis=1),
            "wi_eBH": acc.wilcoxon_bh.mean(axis=1),
        },
        index=pd.Index(feature_ids),
        columns=list(CLASSICAL_COLUMNS),
    )


def aggregate_bayesian(
    acc: BayesianAccumulator,
    feature_ids: Sequence[str] | pd.Index,
) -> pd.DataFrame:
    """
    Empirical p-value and log-fold-change estimates over all instances.

    Raises:
        RuntimeError: If any accumulator cell was never filled.
    """
    if np.isnan(acc.lfc_obs).any() or np.isnan(acc.lfc_null).any():
        raise RuntimeError("Bayesian accumulator has unfilled instance columns")

    diff = np.abs(acc.lfc_obs) - np.abs(acc.lfc_null)
    return pd.DataFrame(
        {
            "lfc_est": diff.mean(axis=1),
            "lfc_obs": acc.lfc_obs.mean(axis=1),
            # Empirical CDF of diff evaluated at 0
            "p_val": (diff <= 0).mean(axis=1),
        },
        index=pd.Index(feature_ids),
        columns=list(BAYESIAN_COLUMNS),
    )


# =============================================================================
# Orchestration
# =============================================================================


def log_progress(current: int, total: int) -> None:
    """Default verbose progress hook: logs roughly every 10% of instances."""
    step = max(total // 10, 1)
    if current == total or current % step == 0:
        logger.info(f"  MC instance {current}/{total} ({100 * current / total:.0f}%)")


def _resolve_design(
    mc: MonteCarloInstances,
    conditions: Sequence[str] | None,
    paired: bool,
) -> TwoGroupDesign:
    if conditions is None:
        conditions = mc.conditions
    return build_two_group_design(
        conditions,
        n_samples=mc.n_samples,
        paired=paired,
        stored_conditions=mc.conditions,
    )


def _run_instances(
    mc: MonteCarloInstances,
    task: Callable[[int, NDArray[np.float64]], None],
    n_workers: int,
    progress: ProgressCallback | None,
) -> None:
    """Run ``task(i, x)`` on every instance matrix, serially or on a thread pool."""
    n_instances = mc.n_instances
    if n_workers <= 1:
        for i, x in mc.iter_instances():
            task(i, x)
            if progress is not None:
                progress(i + 1, n_instances)
        return

    def sliced(i: int) -> None:
        task(i, mc.slice_instance(i))

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(sliced, i) for i in range(n_instances)]
        for done, future in enumerate(as_completed(futures), start=1):
            future.result()
            if progress is not None:
                progress(done, n_instances)


def ttest_classical(
    mc: MonteCarloInstances,
    conditions: Sequence[str] | None = None,
    paired: bool = False,
    n_workers: int = 1,
    progress: ProgressCallback | None = None,
    verbose: bool = False,
    hist_plot: str | Path | None = None,
) -> ClassicalTTestResult:
    """
    Expected Welch and Wilcoxon p-values across Monte Carlo instances.

    Args:
        mc: Monte Carlo instances (the sample provider).
        conditions: Condition label per sample. Defaults to the conditions
            stored on ``mc``; when given, must agree with them.
        paired: Run paired tests (k-th reference sample pairs with k-th
            other sample).
        n_workers: Threads used to map over instances.
        progress: Called as ``progress(current, total)`` once per instance.
        verbose: Log progress when no ``progress`` hook is supplied.
        hist_plot: If set, save p-value histograms of instance 0 to this path.

    Returns:
        ClassicalTTestResult

    Raises:
        ValueError: If the conditions do not define a valid two-group design.
    """
    design = _resolve_design(mc, conditions, paired)
    if progress is None and verbose:
        progress = log_progress

    acc = ClassicalAccumulator.allocate(mc.n_features, mc.n_instances)

    def task(i: int, x: NDArray[np.float64]) -> None:
        we_p, we_bh, wi_p, wi_bh = classical_instance(x, design)
        acc.welch_p[:, i] = we_p
        acc.welch_bh[:, i] = we_bh
        acc.wilcoxon_p[:, i] = wi_p
        acc.wilcoxon_bh[:, i] = wi_bh

    logger.info(
        f"Running Welch and Wilcoxon tests over {mc.n_instances} MC instances "
        f"({design.levels[0]} n={design.n_reference} vs "
        f"{design.levels[1]} n={design.n_other}, paired={paired})"
    )
    _run_instances(mc, task, n_workers, progress)

    first_instance = pd.DataFrame(
        {
            "we_p": acc.welch_p[:, 0],
            "we_BH": acc.welch_bh[:, 0],
            "wi_p": acc.wilcoxon_p[:, 0],
            "wi_BH": acc.wilcoxon_bh[:, 0],
        },
        index=mc.feature_ids,
    )

    result = ClassicalTTestResult(
        table=aggregate_classical(acc, mc.feature_ids),
        first_instance=first_instance,
        levels=design.levels,
        paired=paired,
        n_instances=mc.n_instances,
    )

    if hist_plot is not None:
        from compdiff.viz.pvalues import plot_pvalue_histograms

        fig = plot_pvalue_histograms(result)
        fig.save(hist_plot)
        fig.close()

    return result


def ttest_bayesian(
    mc: MonteCarloInstances,
    conditions: Sequence[str] | None = None,
    paired: bool = False,
    seed: int | None = None,
    n_workers: int = 1,
    progress: ProgressCallback | None = None,
    verbose: bool = False,
) -> BayesianTTestResult:
    """
    Bayesian log-fold-change test across Monte Carlo instances.

    Args:
        mc: Monte Carlo instances (the sample provider).
        conditions: Condition label per sample. Defaults to the conditions
            stored on ``mc``; when given, must agree with them.
        paired: Use mean paired differences as the log-fold-change.
        seed: Seed for the null draws. Fixed seed gives bit-identical output
            regardless of ``n_workers``.
        n_workers: Threads used to map over instances.
        progress: Called as ``progress(current, total)`` once per instance.
        verbose: Log progress when no ``progress`` hook is supplied.

    Returns:
        BayesianTTestResult

    Raises:
        ValueError: If the conditions do not define a valid two-group design.
    """
    design = _resolve_design(mc, conditions, paired)
    if progress is None and verbose:
        progress = log_progress

    acc = BayesianAccumulator.allocate(mc.n_features, mc.n_instances)
    instance_seeds = SeedSequence(seed).spawn(mc.n_instances)

    def task(i: int, x: NDArray[np.float64]) -> None:
        rng = np.random.default_rng(instance_seeds[i])
        t, lfc_obs, lfc_null = bayesian_instance(x, design, rng)
        acc.t[:, i] = t
        acc.lfc_obs[:, i] = lfc_obs
        acc.lfc_null[:, i] = lfc_null

    logger.info(
        f"Running Bayesian log-fold-change test over {mc.n_instances} MC instances "
        f"({design.levels[0]} n={design.n_reference} vs "
        f"{design.levels[1]} n={design.n_other}, paired={paired})"
    )
    _run_instances(mc, task, n_workers, progress)

    return BayesianTTestResult(
        table=aggregate_bayesian(acc, mc.feature_ids),
        levels=design.levels,
        paired=paired,
        n_instances=mc.n_instances,
        seed=seed,
    )


def run_ttest(
    mc: MonteCarloInstances,
    conditions: Sequence[str] | None = None,
    paired: bool = False,
    bayes_est: bool = True,
    seed: int | None = None,
    n_workers: int = 1,
    progress: ProgressCallback | None = None,
    verbose: bool = False,
    hist_plot: str | Path | None = None,
) -> TTestResult:
    """
    Dispatch to ``ttest_bayesian`` or ``ttest_classical``.

    The return type identifies the path taken; both carry ``.table`` indexed
    by feature ID. ``seed`` applies to the Bayesian path only, ``hist_plot``
    to the classical path only.
    """
    if bayes_est:
        return ttest_bayesian(
            mc, conditions, paired=paired, seed=seed,
            n_workers=n_workers, progress=progress, verbose=verbose,
        )
    return ttest_classical(
        mc, conditions, paired=paired, n_workers=n_workers,
        progress=progress, verbose=verbose, hist_plot=hist_plot,
    )


def split_seed(seed: int | None) -> tuple[int, int]:
    """
    Derive independent (sampling, null-draw) seeds from one user seed.

    ``sample_clr`` and ``ttest_bayesian`` both spawn child streams from their
    seed, and child ``j`` does not depend on how many children are spawned.
    Passing them one seed would give sample ``j``'s Dirichlet draws and
    instance ``j``'s null draws the same random numbers.
    """
    sampling_ss, test_ss = SeedSequence(seed).spawn(2)
    return (
        int(sampling_ss.generate_state(1)[0]),
        int(test_ss.generate_state(1)[0]),
    )


def run_differential_abundance(
    counts: pd.DataFrame | NDArray,
    conditions: Sequence[str],
    paired: bool = False,
    mc_samples: int = 128,
    denom: str | Sequence[str] | Sequence[int] = "all",
    gamma: float | None = None,
    bayes_est: bool = False,
    seed: int | None = None,
    n_workers: int = 1,
    verbose: bool = False,
) -> TTestResult:
    """
    Sample Monte Carlo instances from counts, then test them.

    The seed is split into independent streams for sampling and for the
    Bayesian null draws.

    Example:
        >>> res = run_differential_abundance(counts, ["NS"] * 7 + ["S"] * 7, seed=42)
        >>> res.table[res.table["we_eBH"] < 0.05]
    """
    from compdiff.core.sampling import sample_clr

    sampling_seed, test_seed = split_seed(seed)
    mc = sample_clr(
        counts,
        conditions,
        mc_samples=mc_samples,
        denom=denom,
        gamma=gamma,
        seed=sampling_seed,
    )
    return run_ttest(
        mc,
        conditions,
        paired=paired,
        bayes_est=bayes_est,
        seed=test_seed,
        n_workers=n_workers,
        verbose=verbose,
    )
