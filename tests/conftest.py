"""
Pytest configuration and shared fixtures.

Provides synthetic count tables and a factory that wraps hand-built instance
matrices in a MonteCarloInstances container, so engine tests can control the
exact values every instance sees.
"""

import numpy as np
import pandas as pd
import pytest

from compdiff.core.mc_instances import MonteCarloInstances


def generate_count_table(
    n_features: int = 10,
    n_per_group: int = 7,
    shifted: tuple[int, ...] = (),
    fold: float = 10.0,
    depth: int = 20000,
    seed: int = 42,
    exact: bool = False,
) -> tuple[pd.DataFrame, list[str]]:
    """
    Multinomial counts for two groups of samples.

    Features listed in ``shifted`` are ``fold`` times more abundant (before
    closure) in the "S" group than in the "NS" group. With ``exact=True``
    counts are the rounded expected values instead of multinomial draws, so
    only sequencing depth varies between samples of one group.

    Returns:
        (counts DataFrame features × samples, conditions list)
    """
    rng = np.random.default_rng(seed)
    base = np.full(n_features, 1.0)
    conditions = ["NS"] * n_per_group + ["S"] * n_per_group

    columns = {}
    for j, cond in enumerate(conditions):
        weights = base.copy()
        if cond == "S":
            weights[list(shifted)] *= fold
        props = weights / weights.sum()
        sample_depth = int(depth * rng.uniform(0.5, 1.5))
        if exact:
            columns[f"{cond}_{j:02d}"] = np.round(sample_depth * props).astype(int)
        else:
            columns[f"{cond}_{j:02d}"] = rng.multinomial(sample_depth, props)

    counts = pd.DataFrame(columns, index=[f"feature_{i}" for i in range(n_features)])
    return counts, conditions


def build_instances(
    matrices: list[np.ndarray],
    conditions: list[str],
    feature_ids: list[str] | None = None,
) -> MonteCarloInstances:
    """
    Wrap per-instance (features × samples) matrices as MonteCarloInstances.

    ``matrices[i][:, j]`` becomes column ``i`` of sample ``j``'s draws.
    """
    stacked = np.stack(matrices, axis=2)  # features × samples × instances
    n_features, n_samples, _ = stacked.shape
    if feature_ids is None:
        feature_ids = [f"feature_{i}" for i in range(n_features)]
    instances = {
        f"sample_{j:02d}": stacked[:, j, :].copy() for j in range(n_samples)
    }
    return MonteCarloInstances(
        instances=instances,
        feature_ids=feature_ids,
        conditions=conditions,
    )


@pytest.fixture
def two_group_conditions():
    """7 vs 7 condition vector."""
    return ["NS"] * 7 + ["S"] * 7


@pytest.fixture
def null_instances(two_group_conditions):
    """10 features × 14 samples, 2 instances, one distribution for everyone."""
    rng = np.random.default_rng(7)
    matrices = [rng.normal(0.0, 1.0, size=(10, 14)) for _ in range(2)]
    return build_instances(matrices, two_group_conditions)


@pytest.fixture
def shifted_instances(two_group_conditions):
    """
    100 instances; features 0 and 1 are 10× (log2 ≈ 3.32) higher in the
    reference group "NS", the other 8 features share one distribution.
    """
    rng = np.random.default_rng(11)
    group = np.array([c == "NS" for c in two_group_conditions])
    matrices = []
    for _ in range(100):
        x = rng.normal(0.0, 0.5, size=(10, 14))
        x[:2, group] += np.log2(10.0)
        matrices.append(x)
    return build_instances(matrices, two_group_conditions)


@pytest.fixture
def count_table():
    """Null count table, 10 features × 14 samples."""
    return generate_count_table()
