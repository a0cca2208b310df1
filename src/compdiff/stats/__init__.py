"""
Statistical testing over Monte Carlo instances.

Exports core functions for:
- Per-feature Welch t-test and Wilcoxon tests on one instance matrix
- Multiple testing correction (FDR)
- Classical and Bayesian aggregation across instances
"""

from .multitest import fdr_correction
from .ttest import (
    BayesianTTestResult,
    ClassicalTTestResult,
    aggregate_bayesian,
    aggregate_classical,
    run_differential_abundance,
    run_ttest,
    split_seed,
    ttest_bayesian,
    ttest_classical,
)
from .welch import WelchStatistics, welch_ttest
from .wilcoxon import wilcoxon_test

__all__ = [
    "WelchStatistics",
    "welch_ttest",
    "wilcoxon_test",
    "fdr_correction",
    "ClassicalTTestResult",
    "BayesianTTestResult",
    "aggregate_classical",
    "aggregate_bayesian",
    "ttest_classical",
    "ttest_bayesian",
    "run_ttest",
    "run_differential_abundance",
    "split_seed",
]
