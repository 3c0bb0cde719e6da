"""Tests for the spectral/statistics toolkit."""

import numpy as np
import pytest

from tahqiq import spectral


class TestFourier:
    def test_dft_matches_direct_sum(self):
        rng = np.random.RandomState(0)
        x = rng.randn(32)
        n = np.arange(32)
        direct = np.array([np.sum(x * np.exp(-2j * np.pi * k * n / 32)) for k in range(32)])
        np.testing.assert_allclose(spectral.dft(x), direct, atol=1e-9)

    def test_empty_signal(self):
        assert spectral.dft([]).size == 0
        assert spectral.magnitude_spectrum([]).size == 0
        assert spectral.power_spectrum([]).size == 0

    def test_half_spectrum_length(self):
        assert spectral.magnitude_spectrum(np.ones(2048), half=True).size == 1024
        assert spectral.magnitude_spectrum(np.ones(5), half=True).size == 3

    def test_power_peak_at_signal_frequency(self):
        n = 128
        t = np.arange(n)
        power = spectral.power_spectrum(np.sin(2 * np.pi * 8 * t / n))
        assert int(np.argmax(power[:n // 2])) == 8


class TestStatistics:
    def test_degenerate_inputs_are_neutral(self):
        assert spectral.mean([]) == 0.0
        assert spectral.mean([3.0]) == 3.0
        assert spectral.variance([3.0]) == 0.0
        assert spectral.std([]) == 0.0
        assert spectral.rms([]) == 0.0
        assert spectral.zero_crossing_rate([1.0]) == 0.0

    def test_population_variance(self):
        assert spectral.variance([1, 2, 3, 4]) == pytest.approx(1.25)
        assert spectral.std([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)

    def test_rms(self):
        assert spectral.rms([3, -3, 3, -3]) == pytest.approx(3.0)

    def test_euclidean_distance_ignores_z(self):
        assert spectral.euclidean_distance((0, 0, 5), (3, 4, -2)) == pytest.approx(5.0)


class TestPearson:
    def test_self_correlation(self):
        x = np.random.RandomState(1).randn(50)
        assert spectral.pearson(x, x) == pytest.approx(1.0)

    def test_anti_correlation(self):
        x = np.arange(20, dtype=float)
        assert spectral.pearson(x, -x) == pytest.approx(-1.0)

    def test_constant_sequence_is_zero(self):
        assert spectral.pearson([1, 2, 3, 4], [5, 5, 5, 5]) == 0.0

    def test_empty_is_zero(self):
        assert spectral.pearson([], [1, 2]) == 0.0

    def test_common_prefix(self):
        assert spectral.pearson([1, 2, 3], [1, 2, 3, 100, -100]) == pytest.approx(1.0)


class TestEntropy:
    def test_uniform_distribution_is_one(self):
        assert spectral.shannon_entropy(np.ones(16)) == pytest.approx(1.0)

    def test_single_spike_is_zero(self):
        x = np.zeros(16)
        x[3] = 5.0
        assert spectral.shannon_entropy(x) == pytest.approx(0.0)

    def test_unnormalized_bits(self):
        assert spectral.shannon_entropy(np.ones(8), normalized=False) == pytest.approx(3.0)

    def test_all_zero(self):
        assert spectral.shannon_entropy(np.zeros(8)) == 0.0


class TestShortTime:
    def test_zero_crossing_rate_alternating(self):
        x = np.array([1, -1] * 50, dtype=float)
        assert spectral.zero_crossing_rate(x) == pytest.approx(99 / 100)

    def test_frame_starts(self):
        assert list(spectral.frame_starts(4096, 1024, 512)) == [0, 512, 1024, 1536, 2048, 2560]
        assert list(spectral.frame_starts(1000, 1024, 512)) == []

    def test_short_time_rms_shape(self):
        env = spectral.short_time_rms(np.ones(4096), 1024, 512)
        assert env.shape == (6,)
        np.testing.assert_allclose(env, 1.0)

    def test_moving_average(self):
        np.testing.assert_allclose(spectral.moving_average([1, 2, 3, 4, 5], 3), [2, 3, 4])
