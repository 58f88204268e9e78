"""
Tests for the Koopman mean smoother and the Durbin-Koopman simulation smoother.
"""

import numpy as np
import pytest

from dsge_forecast.errors import ConfigurationError
from dsge_forecast.forecast import forecast
from dsge_forecast.smoothers import (durbin_koopman_smoother, koopman_smoother,
                                     simulate_observables, smooth)
from dsge_forecast.system import compute_system


class TestKoopmanSmoother:

    def test_exact_observations(self, ar1_system, ar1_data):
        _, _, obs = ar1_data
        states, shocks, _ = koopman_smoother(ar1_system, obs)

        x = obs[:, 0]
        np.testing.assert_allclose(states[:, 0], x, atol=1e-8)
        np.testing.assert_allclose(states[1:, 1], x[:-1], atol=1e-8)
        # Shocks are pinned down from the second period on
        np.testing.assert_allclose(shocks[1:, 0], x[1:] - 0.9 * x[:-1], atol=1e-8)

    def test_known_shock_sequence(self, ar1_system):
        # x_t = 0.9 x_{t-1} + ε_t observed without error, starting from rest
        shocks_true = np.array([0.5, -1.2, 0.3, 0.8, -0.4, 1.1, -0.7, 0.2, 0.6, -0.9])
        x = np.zeros(10)
        prev = 0.0
        for t, eps in enumerate(shocks_true):
            prev = 0.9 * prev + eps
            x[t] = prev

        states, shocks, _ = koopman_smoother(ar1_system, x[:, None],
                                             s0=np.zeros(2), P0=np.zeros((2, 2)))
        np.testing.assert_allclose(shocks[:, 0], shocks_true, atol=1e-6)

        path = forecast(ar1_system, states[-1], 4)
        decay = 0.9 ** np.arange(1, 5)
        np.testing.assert_allclose(path.states[:, 0], decay * states[-1, 0], atol=1e-10)
        np.testing.assert_allclose(path.obs[:, 0], decay * x[-1], atol=1e-6)

    @pytest.mark.parametrize('P0_scale', [0.0, 10.0])
    def test_noiseless_states_recovered(self, ar1_model, P0_scale):
        silent = compute_system(ar1_model, ar1_model.parameter_snapshot({'sigma': 0.0}))
        true_states = np.zeros((10, 2))
        s = np.array([2.0, 1.0])
        for t in range(10):
            s = silent.TTT @ s
            true_states[t] = s
        y = silent.observables(true_states)

        s0 = np.array([2.0, 1.0]) if P0_scale == 0.0 else np.zeros(2)
        states, shocks, _ = koopman_smoother(silent, y, s0=s0, P0=P0_scale * np.eye(2))
        np.testing.assert_allclose(states, true_states, atol=1e-8)
        np.testing.assert_allclose(shocks, 0.0, atol=1e-12)

    def test_missing_period_interpolation(self, ar1_system):
        rho = 0.9
        y = np.array([[0.5], [1.0], [np.nan], [-0.4], [0.2]])
        states, _, _ = koopman_smoother(ar1_system, y)

        expected = rho * (y[1, 0] + y[3, 0]) / (1 + rho ** 2)
        assert states[2, 0] == pytest.approx(expected, abs=1e-8)

    def test_state_identity(self, nk_system, nk_df):
        # s_t = TTT s_{t-1} + RRR ε_t + CCC holds for the smoothed quantities
        states, shocks, initial = koopman_smoother(nk_system, nk_df.to_numpy())
        lagged = np.vstack([initial, states[:-1]])
        rebuilt = lagged @ nk_system.TTT.T + shocks @ nk_system.RRR.T + nk_system.CCC
        np.testing.assert_allclose(rebuilt, states, atol=1e-7)

    def test_smoothed_observables_fit_data(self, nk_system, nk_df):
        path = smooth(nk_system, nk_df.to_numpy())
        np.testing.assert_allclose(nk_system.observables(path.states), nk_df.to_numpy(),
                                   atol=1e-6)
        assert path.pseudo.shape == (nk_df.shape[0], 2)
        np.testing.assert_allclose(path.final_state, path.states[-1])


class TestDurbinKoopmanSmoother:

    def test_draw_fits_observed_data(self, ar1_system, ar1_data):
        _, _, obs = ar1_data
        rng = np.random.default_rng(3)
        states, shocks, _ = durbin_koopman_smoother(ar1_system, obs, rng)

        np.testing.assert_allclose(states[:, 0], obs[:, 0], atol=1e-6)
        np.testing.assert_allclose(shocks[1:, 0], obs[1:, 0] - 0.9 * obs[:-1, 0], atol=1e-6)

    def test_draws_center_on_mean_smoother(self, ar1_system):
        y = np.array([[0.5], [1.0], [np.nan], [-0.4], [0.2]])
        mean_states, _, _ = koopman_smoother(ar1_system, y)

        rng = np.random.default_rng(4)
        draws = np.array([durbin_koopman_smoother(ar1_system, y, rng)[0][2, 0]
                          for _ in range(500)])

        # Posterior sd of the missing value is sqrt(1 / (1 + ρ²)) ≈ 0.74
        assert draws.mean() == pytest.approx(mean_states[2, 0], abs=0.15)
        assert draws.std() == pytest.approx(np.sqrt(1 / (1 + 0.81)), rel=0.15)

    def test_reproducible_with_seed(self, nk_system, nk_df):
        y = nk_df.to_numpy()
        a = smooth(nk_system, y, draw_states=True, rng=np.random.default_rng(7))
        b = smooth(nk_system, y, draw_states=True, rng=np.random.default_rng(7))
        np.testing.assert_array_equal(a.states, b.states)

    def test_requires_rng(self, ar1_system, ar1_data):
        with pytest.raises(ConfigurationError):
            smooth(ar1_system, ar1_data[2], draw_states=True)


def test_simulate_observables_shapes(nk_system):
    n = nk_system.n_states
    states, shocks, obs, initial = simulate_observables(
        nk_system, np.zeros(n), np.zeros((n, n)), 8, np.random.default_rng(0))
    assert states.shape == (8, n)
    assert shocks.shape == (8, nk_system.n_shocks)
    assert obs.shape == (8, 3)
    np.testing.assert_allclose(initial, 0.0)
