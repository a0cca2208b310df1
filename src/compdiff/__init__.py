"""
compdiff - Scale-aware differential abundance for compositional count data

Draws Dirichlet Monte Carlo instances of each sample's composition, moves
them into a log-ratio basis (optionally with scale-model noise), and runs
Welch, Wilcoxon or Bayesian log-fold-change tests once per instance before
averaging into per-feature estimates.
"""

__version__ = "0.1.0"

from compdiff.core.mc_instances import MonteCarloInstances
from compdiff.core.sampling import sample_clr
from compdiff.stats.ttest import (
    BayesianTTestResult,
    ClassicalTTestResult,
    run_differential_abundance,
    run_ttest,
    ttest_bayesian,
    ttest_classical,
)

__all__ = [
    "MonteCarloInstances",
    "sample_clr",
    "ttest_classical",
    "ttest_bayesian",
    "run_ttest",
    "run_differential_abundance",
    "ClassicalTTestResult",
    "BayesianTTestResult",
]
