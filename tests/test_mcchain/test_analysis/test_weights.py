"""Tests for importance-weight utilities."""

import numpy as np
import pytest

from mcchain.analysis.weights import (
    ResampleMethod,
    effective_sample_size,
    normalize_weights,
    resample_indices,
)
from mcchain.utils.exceptions import InputError


class TestNormalizeWeights:
    """Test weight normalization."""

    def test_sums_to_one(self) -> None:
        w = normalize_weights([0.0, np.log(3.0)])
        assert np.allclose(w, [0.25, 0.75])

    def test_large_log_weights(self) -> None:
        w = normalize_weights([1000.0, 1000.0])
        assert np.allclose(w, [0.5, 0.5])

    def test_zero_weight(self) -> None:
        w = normalize_weights([0.0, -np.inf])
        assert np.array_equal(w, [1.0, 0.0])

    def test_all_zero(self) -> None:
        w = normalize_weights([-np.inf, -np.inf])
        assert np.array_equal(w, [0.0, 0.0])

    def test_input_unchanged(self) -> None:
        log_w = np.array([1.0, 2.0])
        normalize_weights(log_w)
        assert np.array_equal(log_w, [1.0, 2.0])


class TestEffectiveSampleSize:
    """Test the effective sample size."""

    def test_uniform(self) -> None:
        assert effective_sample_size(np.zeros(10)) == pytest.approx(10.0)

    def test_degenerate(self) -> None:
        assert effective_sample_size([0.0, -np.inf, -np.inf]) == pytest.approx(1.0)

    def test_all_zero(self) -> None:
        assert effective_sample_size([-np.inf, -np.inf]) == 0.0

    def test_between(self) -> None:
        ess = effective_sample_size([0.0, np.log(3.0)])
        assert ess == pytest.approx(1.0 / (0.25**2 + 0.75**2))


class TestResampleIndices:
    """Test resampling."""

    @pytest.mark.parametrize("method", list(ResampleMethod))
    def test_one_hot(self, method) -> None:
        rng = np.random.default_rng(1)
        indices = resample_indices([0.0, 0.0, 2.0], rng, method)
        assert np.array_equal(indices, [2, 2, 2])

    def test_systematic_uniform(self) -> None:
        rng = np.random.default_rng(1)
        indices = resample_indices(np.ones(4), rng, "systematic")
        assert np.array_equal(indices, [0, 1, 2, 3])

    def test_multinomial_frequencies(self) -> None:
        rng = np.random.default_rng(2)
        counts = np.zeros(2)
        for _ in range(200):
            counts += np.bincount(resample_indices([1.0, 3.0], rng), minlength=2)
        assert counts[1] / counts.sum() == pytest.approx(0.75, abs=0.05)

    def test_reproducible(self) -> None:
        a = resample_indices([1.0, 2.0, 3.0], np.random.default_rng(7))
        b = resample_indices([1.0, 2.0, 3.0], np.random.default_rng(7))
        assert np.array_equal(a, b)

    @pytest.mark.parametrize("weights", [[1.0, -1.0], [0.0, 0.0]])
    def test_invalid_weights(self, weights) -> None:
        with pytest.raises(InputError):
            resample_indices(weights, np.random.default_rng(0))

    def test_unknown_method(self) -> None:
        with pytest.raises(InputError):
            resample_indices([1.0, 1.0], np.random.default_rng(0), "residual")
