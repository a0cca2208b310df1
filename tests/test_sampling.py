"""
Tests for Dirichlet Monte Carlo sampling and the log-ratio transform.
"""

import numpy as np
import pandas as pd
import pytest

from compdiff.core.sampling import (
    dirichlet_log2_draws,
    sample_clr,
    select_denominator,
)
from conftest import generate_count_table


class TestDirichletDraws:

    def test_proportions_sum_to_one(self):
        rng = np.random.default_rng(0)
        log2_p = dirichlet_log2_draws(np.array([10, 0, 5, 300]), 50, rng)
        assert log2_p.shape == (4, 50)
        np.testing.assert_allclose((2.0 ** log2_p).sum(axis=0), 1.0)

    def test_zero_counts_stay_finite(self):
        rng = np.random.default_rng(0)
        log2_p = dirichlet_log2_draws(np.array([0, 0, 0, 1]), 200, rng)
        assert np.isfinite(log2_p).all()

    def test_posterior_mean_tracks_counts(self):
        rng = np.random.default_rng(1)
        counts = np.array([1000, 3000])
        p = 2.0 ** dirichlet_log2_draws(counts, 2000, rng)
        assert p[1].mean() == pytest.approx(3000.5 / 4001.0, abs=0.005)


class TestSelectDenominator:

    @pytest.fixture
    def draws(self):
        rng = np.random.default_rng(2)
        return [dirichlet_log2_draws(np.arange(1, 9) * 10, 20, rng) for _ in range(4)]

    def test_all(self, draws):
        idx = select_denominator(draws, pd.Index([f"f{i}" for i in range(8)]), "all")
        np.testing.assert_array_equal(idx, np.arange(8))

    def test_feature_names(self, draws):
        ids = pd.Index([f"f{i}" for i in range(8)])
        idx = select_denominator(draws, ids, ["f5", "f2"])
        np.testing.assert_array_equal(idx, [2, 5])

    def test_positions(self, draws):
        ids = pd.Index([f"f{i}" for i in range(8)])
        np.testing.assert_array_equal(select_denominator(draws, ids, [3, 1]), [1, 3])

    def test_iqlr_subset(self, draws):
        ids = pd.Index([f"f{i}" for i in range(8)])
        idx = select_denominator(draws, ids, "iqlr")
        assert 0 < idx.size <= 8

    @pytest.mark.parametrize("denom", ["median", ["missing"], [], [8]])
    def test_invalid(self, draws, denom):
        ids = pd.Index([f"f{i}" for i in range(8)])
        with pytest.raises(ValueError):
            select_denominator(draws, ids, denom)


class TestSampleClr:

    def test_shapes_and_labels(self, count_table):
        counts, conditions = count_table
        mc = sample_clr(counts, conditions, mc_samples=32, seed=0)
        assert mc.n_features == 10
        assert mc.n_samples == 14
        assert mc.n_instances == 32
        assert list(mc.sample_ids) == list(counts.columns)
        assert list(mc.feature_ids) == list(counts.index)
        assert mc.conditions == tuple(conditions)
        assert not mc.scaled

    def test_clr_rows_centered(self, count_table):
        counts, conditions = count_table
        mc = sample_clr(counts, conditions, mc_samples=16, seed=0)
        for _, x in mc.iter_instances():
            np.testing.assert_allclose(x.mean(axis=0), 0.0, atol=1e-10)

    def test_explicit_denominator_centered(self, count_table):
        counts, conditions = count_table
        mc = sample_clr(counts, conditions, mc_samples=16, denom=["feature_0", "feature_1"], seed=0)
        x = mc.slice_instance(0)
        np.testing.assert_allclose(x[:2].mean(axis=0), 0.0, atol=1e-10)
        assert mc.denom == "custom(2)"

    def test_seed_reproducible(self, count_table):
        counts, conditions = count_table
        a = sample_clr(counts, conditions, mc_samples=16, gamma=0.5, seed=3)
        b = sample_clr(counts, conditions, mc_samples=16, gamma=0.5, seed=3)
        c = sample_clr(counts, conditions, mc_samples=16, gamma=0.5, seed=4)
        np.testing.assert_array_equal(a.slice_instance(5), b.slice_instance(5))
        assert not np.array_equal(a.slice_instance(5), c.slice_instance(5))

    def test_gamma_adds_per_sample_offset(self, count_table):
        counts, conditions = count_table
        plain = sample_clr(counts, conditions, mc_samples=64, seed=9)
        scaled = sample_clr(counts, conditions, mc_samples=64, gamma=1.0, seed=9)
        assert scaled.scaled
        # Same Dirichlet streams, so the difference is a constant column shift
        diff = scaled.slice_instance(0) - plain.slice_instance(0)
        np.testing.assert_allclose(diff - diff[:1], 0.0, atol=1e-10)
        offsets = np.concatenate(
            [(scaled.slice_instance(i) - plain.slice_instance(i))[0] for i in range(64)]
        )
        assert offsets.std() == pytest.approx(1.0, abs=0.15)

    def test_explicit_scale_samples(self, count_table):
        counts, conditions = count_table
        scale = np.full((14, 8), 2.0)
        plain = sample_clr(counts, conditions, mc_samples=8, seed=1)
        mc = sample_clr(counts, conditions, mc_samples=8, scale_samples=scale, seed=1)
        x = mc.slice_instance(0)
        # log2 proportions plus 2, no centering
        np.testing.assert_allclose(np.log2((2.0 ** (x - 2.0)).sum(axis=0)), 0.0, atol=1e-10)
        assert not np.allclose(x, plain.slice_instance(0))

    def test_all_zero_feature_dropped(self, count_table):
        counts, conditions = count_table
        counts = counts.copy()
        counts.loc["feature_3"] = 0
        mc = sample_clr(counts, conditions, mc_samples=16, seed=0)
        assert "feature_3" not in mc.feature_ids
        assert mc.n_features == 9

    def test_array_input(self):
        counts = np.array([[10, 0, 5, 7], [100, 80, 90, 120]])
        mc = sample_clr(counts, ["A", "A", "B", "B"], mc_samples=16, seed=1,
                        feature_ids=["otu1", "otu2"])
        assert list(mc.feature_ids) == ["otu1", "otu2"]
        assert mc.n_samples == 4

    def test_low_mc_samples_warns(self, count_table):
        counts, conditions = count_table
        with pytest.warns(UserWarning, match="mc_samples"):
            sample_clr(counts, conditions, mc_samples=4, seed=0)

    def test_non_integer_counts_warn(self, count_table):
        counts, conditions = count_table
        with pytest.warns(UserWarning, match="not integer-valued"):
            sample_clr(counts + 0.3, conditions, mc_samples=16, seed=0)


class TestSampleClrValidation:

    def test_negative_counts(self, count_table):
        counts, conditions = count_table
        counts = counts.copy()
        counts.iloc[0, 0] = -1
        with pytest.raises(ValueError, match="non-negative"):
            sample_clr(counts, conditions, mc_samples=16)

    def test_conditions_length(self, count_table):
        counts, conditions = count_table
        with pytest.raises(ValueError, match="Mismatch between length of conditions"):
            sample_clr(counts, conditions[:-1], mc_samples=16)

    def test_gamma_and_scale_exclusive(self, count_table):
        counts, conditions = count_table
        with pytest.raises(ValueError, match="mutually exclusive"):
            sample_clr(counts, conditions, mc_samples=16, gamma=0.5,
                       scale_samples=np.zeros((14, 16)))

    @pytest.mark.parametrize("gamma", [0.0, -1.0])
    def test_gamma_positive(self, count_table, gamma):
        counts, conditions = count_table
        with pytest.raises(ValueError, match="gamma must be positive"):
            sample_clr(counts, conditions, mc_samples=16, gamma=gamma)

    def test_scale_samples_shape(self, count_table):
        counts, conditions = count_table
        with pytest.raises(ValueError, match="scale_samples must have shape"):
            sample_clr(counts, conditions, mc_samples=16, scale_samples=np.zeros((14, 3)))

    def test_zero_total_sample(self, count_table):
        counts, conditions = count_table
        counts = counts.copy()
        counts.iloc[:, 2] = 0
        with pytest.raises(ValueError, match="zero total counts"):
            sample_clr(counts, conditions, mc_samples=16)

    def test_mc_samples_positive(self, count_table):
        counts, conditions = count_table
        with pytest.raises(ValueError, match="mc_samples must be positive"):
            sample_clr(counts, conditions, mc_samples=0)

    def test_single_feature(self):
        counts, conditions = generate_count_table(n_features=2)
        counts.iloc[1] = 0
        with pytest.raises(ValueError, match="at least two features"):
            sample_clr(counts, conditions, mc_samples=16)
