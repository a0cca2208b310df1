"""
Diagnostic visualizations.

Modules:
    core: Figure wrapper with consistent save/close
    pvalues: P-value histograms for the classical t-test path
"""

from compdiff.viz.core import Figure
from compdiff.viz.pvalues import plot_pvalue_histograms

__all__ = ["Figure", "plot_pvalue_histograms"]
