"""
Core data structures: Monte Carlo instance container, two-group design and
Dirichlet sampling.
"""

from compdiff.core.design import TwoGroupDesign, build_two_group_design
from compdiff.core.mc_instances import MonteCarloInstances
from compdiff.core.sampling import sample_clr

__all__ = [
    "MonteCarloInstances",
    "TwoGroupDesign",
    "build_two_group_design",
    "sample_clr",
]
