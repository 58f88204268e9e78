"""
Tests for shock decompositions, trends and impulse responses.
"""

import numpy as np
import pytest

from dsge_forecast.decomposition import (deterministic_trends, impulse_responses,
                                         impulse_responses_to_shock,
                                         shock_decompositions, trends)
from dsge_forecast.errors import ConfigurationError
from dsge_forecast.forecast import forecast
from dsge_forecast.smoothers import smooth
from dsge_forecast.system import compute_system


class TestShockDecomposition:

    def test_components_sum_to_path(self, nk_system, nk_df):
        horizon = 8
        path = smooth(nk_system, nk_df.to_numpy())
        fcast = forecast(nk_system, path.states[-1], horizon)

        shockdec = shock_decompositions(nk_system, path.shocks, horizon)
        dettrend = deterministic_trends(nk_system, path.initial_state,
                                        path.states.shape[0] + horizon)

        full_states = np.vstack([path.states, fcast.states])
        full_obs = np.vstack([nk_system.observables(path.states), fcast.obs])

        np.testing.assert_allclose(dettrend['states'] + shockdec['states'].sum(axis=2),
                                   full_states, atol=1e-7)
        np.testing.assert_allclose(dettrend['obs'] + shockdec['obs'].sum(axis=2),
                                   full_obs, atol=1e-7)

    def test_shapes(self, nk_system):
        shocks = np.zeros((10, nk_system.n_shocks))
        shockdec = shock_decompositions(nk_system, shocks, 4)
        assert shockdec['states'].shape == (14, nk_system.n_states, nk_system.n_shocks)
        assert shockdec['obs'].shape == (14, 3, nk_system.n_shocks)
        assert shockdec['pseudo'].shape == (14, 2, nk_system.n_shocks)

    def test_single_shock_contribution(self, ar1_system):
        shocks = np.array([[1.0], [0.0], [0.0]])
        shockdec = shock_decompositions(ar1_system, shocks, 2)
        np.testing.assert_allclose(shockdec['obs'][:, 0, 0], 0.9 ** np.arange(5))

    def test_forecast_shock_shape_checked(self, ar1_system):
        with pytest.raises(ConfigurationError):
            shock_decompositions(ar1_system, np.zeros((3, 1)), 2,
                                 forecastshocks=np.zeros((3, 1)))


class TestTrends:

    def test_trends_are_constants(self, nk_system):
        trend = trends(nk_system)
        np.testing.assert_allclose(trend['states'], nk_system.CCC)
        np.testing.assert_allclose(trend['obs'], nk_system.DD)
        np.testing.assert_allclose(trend['pseudo'], nk_system.DD_pseudo)

    def test_deterministic_trend_decays_to_constant(self, ar1_model):
        system = compute_system(ar1_model, ar1_model.parameter_snapshot({'mu': 1.5}))
        dettrend = deterministic_trends(system, np.array([2.0, 0.0]), 3)
        np.testing.assert_allclose(dettrend['obs'][:, 0], 1.5 + 2.0 * 0.9 ** np.arange(1, 4))


class TestImpulseResponses:

    def test_one_standard_deviation(self, ar1_model):
        system = compute_system(ar1_model, ar1_model.parameter_snapshot({'sigma': 2.0}))
        irf = impulse_responses(system, 5)

        assert irf['obs'].shape == (5, 1, 1)
        np.testing.assert_allclose(irf['obs'][:, 0, 0], 2.0 * 0.9 ** np.arange(5))
        np.testing.assert_allclose(irf['pseudo'][0, 0, 0], 2.0)

    def test_targeted_impact(self, nk_model, nk_system):
        target = nk_system.ZZ[nk_model.observable_index('obs_nominalrate')]
        irf = impulse_responses_to_shock(nk_system, 10, nk_model.shock_index('rm_sh'),
                                         target, 0.25)
        assert irf['obs'].shape == (10, 3)
        assert irf['obs'][0, 2] == pytest.approx(0.25)

    def test_named_shock_size(self, nk_model, nk_system):
        shock = nk_model.shock_index('d_sh')
        irf_all = impulse_responses(nk_system, 6)
        irf_one = impulse_responses_to_shock(nk_system, 6, shock)
        np.testing.assert_allclose(irf_one['obs'], irf_all['obs'][:, :, shock])

    def test_target_without_value(self, nk_model, nk_system):
        with pytest.raises(ConfigurationError):
            impulse_responses_to_shock(nk_system, 6, 0, nk_system.ZZ[0])
