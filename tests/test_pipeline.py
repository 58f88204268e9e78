"""
Tests for the forecast pipeline: request validation, per-draw outputs and
the blocked draw loop.
"""

import numpy as np
import pandas as pd
import pytest

from dsge_forecast.draws import DrawSource
from dsge_forecast.errors import ConfigurationError, SolverError
from dsge_forecast.models import AR1Model
from dsge_forecast.output import MatFileSink
from dsge_forecast.pipeline import (add_requisite_output_vars, assemble_block_outputs,
                                    forecast_one, forecast_one_draw, get_class,
                                    get_product, prepare_forecast_inputs)


def run(model, input_type, cond_type, output_vars, df=None, **kwargs):
    return forecast_one(model, input_type, cond_type, output_vars, df=df,
                        verbose='none', **kwargs)


class TestOutputVars:

    def test_product_and_class(self):
        assert get_product('bddforecastobs') == 'bddforecast'
        assert get_class('bddforecastobs') == 'obs'
        assert get_product('histstdshocks') == 'hist'
        assert get_class('histstdshocks') == 'stdshocks'
        assert get_class('dettrendpseudo') == 'pseudo'

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            get_product('nowcastobs')
        with pytest.raises(ConfigurationError):
            get_class('histobs')

    def test_requisite_outputs(self):
        output_vars = add_requisite_output_vars(['forecastobs', 'shockdecobs'])
        assert output_vars == ['forecastobs', 'shockdecobs', 'bddforecastobs',
                               'dettrendobs', 'trendobs']

    def test_no_bounded_forecasts(self):
        output_vars = add_requisite_output_vars(['forecastobs', 'forecastobs'], bdd_fcast=False)
        assert output_vars == ['forecastobs']


class TestPrepareInputs:

    def test_invalid_types(self, ar1_model, ar1_df):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'posterior', 'none', ['forecastobs'], ar1_df)
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'mode', 'partial', ['forecastobs'], ar1_df)
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'mode', 'none', ['forecastobs'], ar1_df,
                                    smooth_conditional='filter')

    def test_subset_requires_inds(self, ar1_model, ar1_df):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'subset', 'none', ['forecastobs'], ar1_df)

    def test_data_required(self, ar1_model):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'init', 'none', ['forecastobs'])

    def test_irfs_without_data(self, ar1_model):
        inputs = prepare_forecast_inputs(ar1_model, 'init', 'none', ['irfobs'])
        assert inputs.irfs_only
        assert inputs.data is None

    def test_bounded_defaults(self, ar1_model, nk_model, ar1_df, nk_df):
        ar1_inputs = prepare_forecast_inputs(ar1_model, 'init', 'none', ['forecastobs'], ar1_df)
        assert ar1_inputs.output_vars == ['forecastobs']
        assert ar1_inputs.floor is None

        nk_inputs = prepare_forecast_inputs(nk_model, 'init', 'none', ['forecastobs'], nk_df)
        assert nk_inputs.output_vars == ['forecastobs', 'bddforecastobs']
        assert nk_inputs.floor.obs_index == 2

    def test_bounded_without_bounded_observable(self, ar1_model, ar1_df):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(ar1_model, 'init', 'none', ['bddforecastobs'], ar1_df)

    def test_prior_drops_bounded_observables(self, nk_model, nk_df):
        inputs = prepare_forecast_inputs(nk_model, 'prior', 'none',
                                         ['forecastobs', 'forecastpseudo'], nk_df)
        assert 'bddforecastobs' not in inputs.output_vars
        assert 'bddforecastpseudo' in inputs.output_vars

    def test_decompositions_need_baseline_policy(self, nk_model, nk_df):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(nk_model, 'init', 'none', ['shockdecobs'], nk_df,
                                    regime='strict_taylor')

    def test_conditional_horizon(self, ar1_df):
        model = AR1Model(settings={'forecast_horizons': 2, 'n_conditional_periods': 2})
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(model, 'init', 'full', ['forecastobs'], ar1_df)

    @pytest.mark.parametrize('mode', ['cond', 'deviations'])
    def test_conditional_horizon_checked_before_solving(self, ar1_df, mode, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("system built before the request was validated")

        monkeypatch.setattr('dsge_forecast.pipeline.compute_system', fail)
        model = AR1Model(settings={'forecast_horizons': 2, 'n_conditional_periods': 3})
        with pytest.raises(ConfigurationError, match='must cover'):
            run(model, 'init', 'full', ['forecastobs'], ar1_df, smooth_conditional=mode,
                cond_deviation_obs_shocks=pd.DataFrame({'obs_x': [0.1, 0.0, -0.1]}))

    def test_conditional_horizon_may_equal_periods_outside_history(self, ar1_df):
        model = AR1Model(settings={'forecast_horizons': 2, 'n_conditional_periods': 2})
        inputs = prepare_forecast_inputs(model, 'init', 'full', ['forecastobs'], ar1_df,
                                         smooth_conditional='cond')
        assert inputs.n_cond == 2

    def test_deviations_require_data(self, ar1_df):
        model = AR1Model(settings={'n_conditional_periods': 2})
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(model, 'init', 'full', ['forecastobs'], ar1_df,
                                    smooth_conditional='deviations')
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(model, 'init', 'full', ['forecastobs'], ar1_df,
                                    smooth_conditional='deviations',
                                    cond_deviation_obs_shocks=pd.DataFrame({'obs_x': [0.1]}))

    def test_irf_target_needs_shock(self, nk_model):
        with pytest.raises(ConfigurationError):
            prepare_forecast_inputs(nk_model, 'init', 'none', ['irfobs'],
                                    irf_target='obs_nominalrate')


class TestSingleDraw:

    def test_output_shapes_and_values(self, ar1_model, ar1_df):
        result = run(ar1_model, 'init', 'none', ['histstates', 'forecastobs', 'forecastpseudo'],
                     ar1_df)
        outputs = result['outputs']

        assert result['n_draws'] == 1
        assert outputs['histstates'].shape == (1, 40, 2)
        assert outputs['forecastobs'].shape == (1, 12, 1)
        assert outputs['forecastpseudo'].shape == (1, 12, 1)

        x_T = ar1_df['obs_x'].iloc[-1]
        np.testing.assert_allclose(outputs['forecastobs'][0, :, 0],
                                   x_T * 0.9 ** np.arange(1, 13), atol=1e-8)

    def test_filter_and_smoother_agree_on_final_state(self, ar1_model, ar1_df):
        filtered = run(ar1_model, 'init', 'none', ['forecastobs'], ar1_df)['outputs']
        smoothed = run(ar1_model, 'init', 'none', ['forecastobs', 'histstates'],
                       ar1_df)['outputs']
        np.testing.assert_allclose(filtered['forecastobs'], smoothed['forecastobs'], atol=1e-8)

    def test_standardized_shocks(self, ar1_df):
        model = AR1Model()
        model.parameters[1].value = 2.0
        outputs = run(model, 'init', 'none', ['histshocks', 'histstdshocks'], ar1_df)['outputs']
        np.testing.assert_allclose(outputs['histstdshocks'], outputs['histshocks'] / 2.0)

    def test_failure_propagates(self, ar1_model, ar1_df):
        draws = DrawSource(mode=np.array([1.5, 1.0, 0.0]))
        with pytest.raises(SolverError):
            run(ar1_model, 'mode', 'none', ['forecastobs'], ar1_df, draws=draws)

    def test_forecast_one_draw_rejects(self, ar1_model, ar1_df):
        inputs = prepare_forecast_inputs(ar1_model, 'mode', 'none', ['forecastobs'], ar1_df)
        explosive = np.array([1.5, 1.0, 0.0])

        assert forecast_one_draw(ar1_model, inputs, explosive, verbose='none') == {}
        with pytest.raises(SolverError):
            forecast_one_draw(ar1_model, inputs, explosive, reject_failures=False)

    def test_irfs_only(self, ar1_model):
        outputs = run(ar1_model, 'init', 'none', ['irfobs', 'irfstates'])['outputs']
        assert outputs['irfobs'].shape == (1, 20, 1, 1)
        assert outputs['irfstates'].shape == (1, 20, 2, 1)
        np.testing.assert_allclose(outputs['irfobs'][0, :3, 0, 0], [1.0, 0.9, 0.81])

    def test_targeted_irf(self, nk_model):
        outputs = run(nk_model, 'init', 'none', ['irfobs'], irf_shock='rm_sh',
                      irf_target='obs_nominalrate', irf_target_value=0.25)['outputs']
        assert outputs['irfobs'].shape == (1, 20, 3)
        assert outputs['irfobs'][0, 0, 2] == pytest.approx(0.25)


class TestDrawBlocks:

    def test_draw_shocks_blocks(self, ar1_df):
        model = AR1Model(settings={'n_forecast_draws': 10, 'forecast_block_size': 4, 'seed': 3})
        result = run(model, 'init_draw_shocks', 'none', ['forecastobs'], ar1_df)

        assert result['n_draws'] == 10
        assert result['n_rejected'] == 0
        fcast = result['outputs']['forecastobs']
        assert fcast.shape == (10, 12, 1)
        assert not np.allclose(fcast[0], fcast[1])

    def test_seeded_runs_reproduce(self, ar1_df):
        settings = {'n_forecast_draws': 4, 'forecast_block_size': 3, 'seed': 8}
        a = run(AR1Model(settings=settings), 'init_draw_shocks', 'none', ['forecastobs'], ar1_df)
        b = run(AR1Model(settings=settings), 'init_draw_shocks', 'none', ['forecastobs'], ar1_df)
        np.testing.assert_array_equal(a['outputs']['forecastobs'], b['outputs']['forecastobs'])

    def test_parallel_matches_sequential(self, ar1_df):
        settings = {'n_forecast_draws': 6, 'forecast_block_size': 3, 'seed': 5}
        sequential = run(AR1Model(settings=settings), 'init_draw_shocks', 'none',
                         ['forecastobs', 'histstates'], ar1_df)
        parallel = run(AR1Model(settings={**settings, 'use_parallel_workers': True, 'n_jobs': 2,
                                          'parallel_backend': 'threading'}),
                       'init_draw_shocks', 'none', ['forecastobs', 'histstates'], ar1_df)
        for var in ('forecastobs', 'histstates'):
            np.testing.assert_array_equal(sequential['outputs'][var], parallel['outputs'][var])

    def test_prior_draws(self, ar1_df):
        model = AR1Model(settings={'n_forecast_draws': 5, 'seed': 0})
        fcast = run(model, 'prior', 'none', ['forecastobs'], ar1_df)['outputs']['forecastobs']
        assert fcast.shape == (5, 12, 1)
        # Mean forecasts differ only through the drawn parameters
        assert len(np.unique(np.round(fcast[:, 0, 0], 10))) == 5

    def test_ensemble_order(self, ar1_df):
        model = AR1Model(settings={'forecast_block_size': 25,
                                   'forecast_uncertainty_override': False,
                                   'use_parallel_workers': True, 'n_jobs': 4,
                                   'parallel_backend': 'threading'})
        rho = np.linspace(0.1, 0.9, 100)
        draws = DrawSource(draws=np.column_stack([rho, np.ones(100), np.zeros(100)]))
        result = run(model, 'full', 'none', ['forecastobs'], ar1_df, draws=draws)

        fcast = result['outputs']['forecastobs']
        assert fcast.shape == (100, 12, 1)
        x_T = ar1_df['obs_x'].iloc[-1]
        np.testing.assert_allclose(fcast[:, 0, 0], rho * x_T, atol=1e-6)

    def test_rejected_draws_dropped(self, ar1_df):
        model = AR1Model(settings={'forecast_block_size': 2,
                                   'forecast_uncertainty_override': False})
        draws = DrawSource(draws=np.array([[0.9, 1.0, 0.0], [1.5, 1.0, 0.0], [0.5, 1.0, 0.0]]))
        result = run(model, 'full', 'none', ['forecastobs'], ar1_df, draws=draws)

        assert result['n_draws'] == 3
        assert result['rejected_inds'] == [1]
        fcast = result['outputs']['forecastobs']
        assert fcast.shape == (2, 12, 1)

        x_T = ar1_df['obs_x'].iloc[-1]
        np.testing.assert_allclose(fcast[1, 0, 0], 0.5 * x_T, atol=1e-6)

    def test_rejected_draws_abort(self, ar1_df):
        model = AR1Model(settings={'draw_failure_policy': 'abort'})
        draws = DrawSource(draws=np.array([[0.9, 1.0, 0.0], [1.5, 1.0, 0.0]]))
        with pytest.raises(RuntimeError):
            run(model, 'full', 'none', ['forecastobs'], ar1_df, draws=draws)

    def test_subset(self, ar1_df):
        draws = DrawSource(draws=np.array([[0.9, 1.0, 0.0], [0.5, 1.0, 0.0], [0.1, 1.0, 0.0]]))
        model = AR1Model(settings={'forecast_uncertainty_override': False})
        result = run(model, 'subset', 'none', ['forecastobs'], ar1_df, draws=draws,
                     subset_inds=[0, 2])
        fcast = result['outputs']['forecastobs']
        assert fcast.shape == (2, 12, 1)

        x_T = ar1_df['obs_x'].iloc[-1]
        np.testing.assert_allclose(fcast[:, 0, 0], [0.9 * x_T, 0.1 * x_T], atol=1e-6)

    def test_start_block(self, ar1_df):
        model = AR1Model(settings={'n_forecast_draws': 6, 'forecast_block_size': 2,
                                   'forecast_start_block': 1, 'seed': 2})
        fcast = run(model, 'init_draw_shocks', 'none', ['forecastobs'], ar1_df)['outputs']
        assert fcast['forecastobs'].shape == (4, 12, 1)

    def test_mat_file_sink(self, ar1_df, tmp_path):
        model = AR1Model(settings={'n_forecast_draws': 4, 'forecast_block_size': 2, 'seed': 1})
        sink = MatFileSink(str(tmp_path))
        result = run(model, 'init_draw_shocks', 'none', ['forecastobs', 'histstates'], ar1_df,
                     sink=sink)

        assert set(result['outputs']) == {'forecastobs', 'histstates'}
        assert sink.read('forecastobs').shape == (4, 12, 1)
        assert sink.read('histstates').shape == (4, 40, 2)
        assert sink.block_files('forecastobs') == []

    def test_assemble_skips_empty(self):
        outputs = [{'forecastobs': np.ones((3, 1))}, {}, {'forecastobs': np.zeros((3, 1))}]
        assembled, kept = assemble_block_outputs(outputs)
        assert assembled['forecastobs'].shape == (2, 3, 1)
        np.testing.assert_array_equal(kept, [0, 2])


class TestConditionalPipeline:

    @pytest.fixture
    def cond_settings(self):
        return {'n_conditional_periods': 2, 'forecast_horizons': 6}

    def test_nowcast_reported_as_history(self, cond_settings, ar1_df):
        model = AR1Model(settings=cond_settings)
        outputs = run(model, 'init', 'full', ['histstates', 'forecastobs'], ar1_df)['outputs']

        assert outputs['histstates'].shape == (1, 40, 2)
        assert outputs['forecastobs'].shape == (1, 4, 1)
        x_T = ar1_df['obs_x'].iloc[-1]
        np.testing.assert_allclose(outputs['forecastobs'][0, :, 0],
                                   x_T * 0.9 ** np.arange(1, 5), atol=1e-8)

    def test_nowcast_reported_as_forecast(self, cond_settings, ar1_df):
        model = AR1Model(settings={**cond_settings, 'nowcast_reporting': 'forecast'})
        outputs = run(model, 'init', 'full', ['histstates', 'forecastobs'], ar1_df)['outputs']

        assert outputs['histstates'].shape == (1, 38, 2)
        assert outputs['forecastobs'].shape == (1, 6, 1)
        np.testing.assert_allclose(outputs['forecastobs'][0, :2, 0],
                                   ar1_df['obs_x'].iloc[-2:], atol=1e-8)

    def test_conditional_deviations_hit_nowcast(self, cond_settings, ar1_df):
        model = AR1Model(settings=cond_settings)
        outputs = run(model, 'init', 'full', ['histstates', 'forecastobs'], ar1_df,
                      smooth_conditional='cond')['outputs']

        assert outputs['histstates'].shape == (1, 38, 2)
        assert outputs['forecastobs'].shape == (1, 6, 1)
        np.testing.assert_allclose(outputs['forecastobs'][0, :2, 0],
                                   ar1_df['obs_x'].iloc[-2:], atol=1e-6)

    def test_supplied_deviations(self, cond_settings, ar1_df):
        model = AR1Model(settings=cond_settings)
        deviations = pd.DataFrame({'obs_x': [0.5, 0.0]})
        outputs = run(model, 'init', 'full', ['forecastobs'], ar1_df,
                      smooth_conditional='deviations',
                      cond_deviation_obs_shocks=deviations)['outputs']

        x_main = ar1_df['obs_x'].iloc[-3]
        expected = x_main * 0.9 ** np.arange(1, 7)
        expected[0] += 0.5
        np.testing.assert_allclose(outputs['forecastobs'][0, :, 0], expected, atol=1e-6)

    def test_shocked_observable_forecast(self, ar1_df):
        model = AR1Model(settings={'nowcast_reporting': 'forecast'})
        result = run(model, 'init', 'none', ['forecastobs', 'shockdecobs'], ar1_df,
                     cond_obs_shocks={'obs_x': 1.0})

        uncond = result['outputs']['forecastobs'][0, :, 0]
        cond = result['cond_outputs']['forecastobs'][0, :, 0]
        assert cond.shape == uncond.shape
        assert cond[0] == pytest.approx(uncond[0] + 1.0, abs=1e-6)
        assert cond[1] == pytest.approx(0.9 * (uncond[0] + 1.0), abs=1e-6)
        assert 'shockdecobs' in result['outputs']
        assert 'shockdecobs' not in result['cond_outputs']

    def test_shocked_observable_with_irfs_only(self, ar1_model):
        with pytest.warns(UserWarning):
            result = run(ar1_model, 'init', 'none', ['irfobs'], cond_obs_shocks={'obs_x': 1.0})
        assert 'cond_outputs' not in result


class TestNKPipeline:

    def test_bounded_forecast_respects_floor(self, nk_model, nk_df):
        outputs = run(nk_model, 'init', 'none', ['forecastobs'], nk_df)['outputs']
        assert outputs['bddforecastobs'].shape == (1, 12, 3)
        assert outputs['bddforecastobs'][0, :, 2].min() >= -1e-8

    def test_alternative_policy(self, nk_model, nk_df):
        baseline = run(nk_model, 'init', 'none', ['forecastobs', 'histstates'], nk_df,
                       bdd_fcast=False)['outputs']
        alternative = run(nk_model, 'init', 'none', ['forecastobs', 'histstates'], nk_df,
                          bdd_fcast=False, regime='strict_taylor')['outputs']

        # Histories use the baseline rule, forecasts the alternative one
        np.testing.assert_allclose(alternative['histstates'], baseline['histstates'])
        assert not np.allclose(alternative['forecastobs'], baseline['forecastobs'])

    def test_shock_decomposition_adds_up(self, nk_model, nk_system, nk_df):
        outputs = run(nk_model, 'init', 'none', ['shockdecobs', 'forecastobs', 'histstates'],
                      nk_df, bdd_fcast=False)['outputs']

        n_periods = nk_df.shape[0] + 12
        assert outputs['shockdecobs'].shape == (1, n_periods, 3, nk_system.n_shocks)
        assert outputs['dettrendobs'].shape == (1, n_periods, 3)
        assert outputs['trendobs'].shape == (1, 3)

        path = np.vstack([nk_system.observables(outputs['histstates'][0]),
                          outputs['forecastobs'][0]])
        rebuilt = outputs['dettrendobs'][0] + outputs['shockdecobs'][0].sum(axis=2)
        np.testing.assert_allclose(rebuilt, path, atol=1e-6)

    def test_filtered_shocks_in_shockdec(self, nk_model, nk_df):
        outputs = run(nk_model, 'init', 'none', ['shockdecobs'], nk_df, bdd_fcast=False,
                      use_filtered_shocks_in_shockdec=True)['outputs']
        assert outputs['shockdecobs'].shape[1] == nk_df.shape[0] + 12
