"""Tests for the MonteCarloInstances container and instance slicing."""

import numpy as np
import pytest

from compdiff.core.mc_instances import MonteCarloInstances
from conftest import build_instances


def _draws(n_features=3, n_instances=4, n_samples=2, seed=0):
    rng = np.random.default_rng(seed)
    return {
        f"S{j}": rng.normal(size=(n_features, n_instances)) for j in range(n_samples)
    }


class TestConstruction:

    def test_shape_properties(self):
        mc = MonteCarloInstances(_draws(), ["f1", "f2", "f3"], ["A", "B"])
        assert mc.n_features == 3
        assert mc.n_samples == 2
        assert mc.n_instances == 4
        assert list(mc.sample_ids) == ["S0", "S1"]
        assert list(mc.feature_ids) == ["f1", "f2", "f3"]
        assert mc.conditions == ("A", "B")

    def test_mismatched_sample_shapes_rejected(self):
        draws = _draws()
        draws["S1"] = np.zeros((3, 5))
        with pytest.raises(ValueError, match="all samples must share one shape"):
            MonteCarloInstances(draws, ["f1", "f2", "f3"], ["A", "B"])

    def test_feature_count_mismatch_rejected(self):
        with pytest.raises(ValueError, match="feature_ids length"):
            MonteCarloInstances(_draws(), ["f1", "f2"], ["A", "B"])

    def test_conditions_length_mismatch_rejected(self):
        with pytest.raises(ValueError, match="conditions length"):
            MonteCarloInstances(_draws(), ["f1", "f2", "f3"], ["A", "B", "B"])

    def test_non_array_rejected(self):
        draws = _draws()
        draws["S0"] = [[1.0, 2.0]]
        with pytest.raises(TypeError):
            MonteCarloInstances(draws, ["f1", "f2", "f3"], ["A", "B"])

    def test_duplicate_feature_ids_rejected(self):
        with pytest.raises(ValueError, match="unique"):
            MonteCarloInstances(_draws(), ["f1", "f1", "f3"], ["A", "B"])


class TestSliceInstance:

    def test_column_i_of_every_sample(self):
        draws = _draws()
        mc = MonteCarloInstances(draws, ["f1", "f2", "f3"], ["A", "B"])
        x = mc.slice_instance(2)
        assert x.shape == (3, 2)
        np.testing.assert_array_equal(x[:, 0], draws["S0"][:, 2])
        np.testing.assert_array_equal(x[:, 1], draws["S1"][:, 2])

    def test_slice_does_not_alias_storage(self):
        mc = MonteCarloInstances(_draws(), ["f1", "f2", "f3"], ["A", "B"])
        x = mc.slice_instance(0)
        before = mc.instances["S0"][:, 0].copy()
        x[:] = 999.0
        np.testing.assert_array_equal(mc.instances["S0"][:, 0], before)

    def test_input_arrays_not_aliased(self):
        draws = _draws()
        mc = MonteCarloInstances(draws, ["f1", "f2", "f3"], ["A", "B"])
        original = mc.slice_instance(0).copy()
        draws["S0"][:] = -1.0
        np.testing.assert_array_equal(mc.slice_instance(0), original)

    def test_stored_draws_read_only(self):
        mc = MonteCarloInstances(_draws(), ["f1", "f2", "f3"], ["A", "B"])
        with pytest.raises(ValueError):
            mc.instances["S0"][0, 0] = 1.0

    @pytest.mark.parametrize("i", [-1, 4, 100])
    def test_out_of_range(self, i):
        mc = MonteCarloInstances(_draws(), ["f1", "f2", "f3"], ["A", "B"])
        with pytest.raises(IndexError):
            mc.slice_instance(i)

    def test_iter_instances_matches_slices(self):
        rng = np.random.default_rng(3)
        matrices = [rng.normal(size=(4, 6)) for _ in range(3)]
        mc = build_instances(matrices, ["A"] * 3 + ["B"] * 3)
        for i, x in mc.iter_instances():
            np.testing.assert_array_equal(x, matrices[i])
