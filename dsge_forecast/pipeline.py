"""
Forecast Pipeline
=================

Drives forecasts over parameter draws:

1. prepare_forecast_inputs: validate the request and shape the data
2. forecast_one_draw: history, forecasts, decompositions and impulse
   responses for one parameter vector
3. forecast_one: loop over draw blocks, map draws over workers, assemble
   and persist each block

Output variables are named '<product><class>', e.g. 'histstates',
'bddforecastobs', 'shockdecpseudo'. Arrays are time-major; per-draw
decompositions are (n_periods x n_vars x n_shocks). Block outputs stack
draws along a new leading axis.
"""

import gc
import time
import warnings
from dataclasses import dataclass, replace
from datetime import datetime
from functools import partial
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .data import COND_TYPES, df_to_matrix, split_conditional
from .decomposition import (deterministic_trends, impulse_responses,
                            impulse_responses_to_shock, shock_decompositions,
                            trends)
from .draws import (INPUT_TYPES, SINGLE_DRAW_TYPES, DrawSource,
                    forecast_block_inds, forecast_uncertainty, load_draws,
                    n_forecast_draws)
from .errors import ConfigurationError, FilterDomainError, SolverError
from .forecast import (FloorConstraint, conditional_deviations, deviation_shocks,
                       forecast, transplant_forecast, transplant_forecast_observables,
                       transplant_history)
from .kalman import filter_shocks, kalman_filter
from .model import DSGEModel, PolicyRegime
from .output import InMemorySink
from .smoothers import smooth
from .system import compute_system
from .utils import draw_degenerate_normal, info_print, standardize_shocks


OUTPUT_PRODUCTS = ('bddforecast', 'forecast', 'hist', 'shockdec', 'dettrend', 'trend', 'irf')

PRODUCT_CLASSES = {
    'hist': ('states', 'pseudo', 'shocks', 'stdshocks'),
    'forecast': ('states', 'obs', 'pseudo', 'shocks', 'stdshocks'),
    'bddforecast': ('states', 'obs', 'pseudo', 'shocks', 'stdshocks'),
    'shockdec': ('states', 'obs', 'pseudo'),
    'dettrend': ('states', 'obs', 'pseudo'),
    'trend': ('states', 'obs', 'pseudo'),
    'irf': ('states', 'obs', 'pseudo'),
}

SMOOTH_CONDITIONAL = ('hist_cond', 'cond', 'deviations')

# Not computed for the conditional-on-observable-shocks forecast
DECOMPOSITION_PRODUCTS = ('shockdec', 'dettrend', 'trend')


def get_product(output_var: str) -> str:
    """'bddforecastobs' -> 'bddforecast'"""
    for product in OUTPUT_PRODUCTS:
        if output_var.startswith(product):
            return product
    raise ConfigurationError(f"Unknown output variable: {output_var}")


def get_class(output_var: str) -> str:
    """'bddforecastobs' -> 'obs'"""
    product = get_product(output_var)
    output_class = output_var[len(product):]
    if output_class not in PRODUCT_CLASSES[product]:
        raise ConfigurationError(f"Unknown output variable: {output_var}")
    return output_class


def add_requisite_output_vars(output_vars: Sequence[str], bdd_fcast: bool = True) -> List[str]:
    """
    Add outputs needed alongside the requested ones.

    - bddforecast<class> for every forecast<class> (if bdd_fcast)
    - dettrend<class> and trend<class> for every shockdec<class>
    """
    output_vars = list(dict.fromkeys(output_vars))
    for var in output_vars:
        get_class(var)

    extra = []
    if bdd_fcast:
        extra += [f"bdd{var}" for var in output_vars if get_product(var) == 'forecast']
    for var in output_vars:
        if get_product(var) == 'shockdec':
            extra += [f"dettrend{get_class(var)}", f"trend{get_class(var)}"]

    return list(dict.fromkeys(output_vars + extra))


@dataclass
class ForecastInputs:
    """Validated request shared by every draw of a forecast."""
    input_type: str
    cond_type: str
    output_vars: List[str]
    data: Optional[np.ndarray]
    n_cond: int = 0
    regime: Optional[PolicyRegime] = None
    uncertainty: bool = False
    smooth_conditional: str = 'hist_cond'
    floor: Optional[FloorConstraint] = None
    cond_deviation_shock_inds: Optional[List[int]] = None
    cond_deviation_obs: Optional[np.ndarray] = None
    use_filtered_shocks_in_shockdec: bool = False
    irf_shock: Optional[str] = None
    irf_target: Optional[str] = None
    irf_target_value: Optional[float] = None
    subset_inds: Optional[np.ndarray] = None

    @property
    def products(self) -> set:
        return {get_product(var) for var in self.output_vars}

    @property
    def irfs_only(self) -> bool:
        return self.products == {'irf'}

    @property
    def conditional(self) -> bool:
        return self.cond_type in ('semi', 'full')


def prepare_forecast_inputs(model: DSGEModel, input_type: str, cond_type: str,
                            output_vars: Sequence[str], df: Optional[pd.DataFrame] = None,
                            subset_inds: Optional[Sequence[int]] = None,
                            regime=None, bdd_fcast: Optional[bool] = None,
                            smooth_conditional: str = 'hist_cond',
                            cond_deviation_shocks: Optional[Sequence[str]] = None,
                            cond_deviation_obs_shocks: Optional[pd.DataFrame] = None,
                            use_filtered_shocks_in_shockdec: bool = False,
                            irf_shock: Optional[str] = None,
                            irf_target: Optional[str] = None,
                            irf_target_value: Optional[float] = None) -> ForecastInputs:
    """
    Validate a forecast request and shape the data.

    Args:
        model: DSGE model
        input_type: Source of parameter draws (see draws.INPUT_TYPES)
        cond_type: 'none', 'semi' or 'full'
        output_vars: Requested output variables
        df: Observables, conditional rows last when cond_type is not 'none'
        subset_inds: Draw indices for input_type 'subset'
        regime: Policy regime key or object
        bdd_fcast: Add bounded forecasts for every forecast output. Defaults
            to whether the model has a bounded observable configured.
        smooth_conditional: 'hist_cond' smooths history and conditional data
            together; 'cond' and 'deviations' smooth history only and turn
            conditional deviations into shocks
        cond_deviation_shocks: Shocks allowed to explain conditional
            deviations (all if None)
        cond_deviation_obs_shocks: Observable deviations for
            smooth_conditional 'deviations' (n_cond rows)
        use_filtered_shocks_in_shockdec: Decompose filtered, not smoothed, shocks
        irf_shock: Compute impulse responses to this shock only
        irf_target: Observable, pseudo-observable or state whose impact
            response is fixed to irf_target_value
        irf_target_value: Impact response of irf_target (or shock size)

    Returns:
        ForecastInputs

    Raises:
        ConfigurationError: Invalid request
    """
    if input_type not in INPUT_TYPES:
        raise ConfigurationError(f"Invalid input_type: {input_type}. Allowed: {list(INPUT_TYPES)}")
    if cond_type not in COND_TYPES:
        raise ConfigurationError(f"Invalid cond_type: {cond_type}. Allowed: {list(COND_TYPES)}")
    if smooth_conditional not in SMOOTH_CONDITIONAL:
        raise ConfigurationError(
            f"smooth_conditional cannot be {smooth_conditional}. "
            f"Allowed: {list(SMOOTH_CONDITIONAL)}")
    if input_type == 'subset' and (subset_inds is None or len(subset_inds) == 0):
        raise ConfigurationError("Must supply nonempty subset_inds if input_type = 'subset'")

    if bdd_fcast is None:
        bdd_fcast = model.get_setting('bounded_observable') is not None
    output_vars = add_requisite_output_vars(output_vars, bdd_fcast=bdd_fcast)
    if input_type == 'prior':
        output_vars = [var for var in output_vars if var != 'bddforecastobs']

    products = {get_product(var) for var in output_vars}

    regime = model.get_regime(regime)
    if not regime.is_baseline and products & set(DECOMPOSITION_PRODUCTS):
        raise ConfigurationError(
            "Only histories, forecasts, and IRFs can be computed under an alternative policy")

    floor = None
    if 'bddforecast' in products:
        floor = FloorConstraint.from_model(model)

    inputs = ForecastInputs(
        input_type=input_type, cond_type=cond_type, output_vars=output_vars,
        data=None, regime=regime,
        uncertainty=forecast_uncertainty(model, input_type),
        smooth_conditional=smooth_conditional, floor=floor,
        use_filtered_shocks_in_shockdec=use_filtered_shocks_in_shockdec,
        irf_shock=irf_shock, irf_target=irf_target, irf_target_value=irf_target_value,
        subset_inds=None if subset_inds is None else np.asarray(subset_inds, dtype=int))

    if irf_shock is not None:
        model.shock_index(irf_shock)
    if irf_target is not None and irf_shock is None:
        raise ConfigurationError("irf_target requires irf_shock")

    if cond_deviation_shocks is not None:
        inputs.cond_deviation_shock_inds = [model.shock_index(name)
                                            for name in cond_deviation_shocks]

    if inputs.irfs_only:
        return inputs

    if df is None:
        raise ConfigurationError("Data must be supplied unless only IRFs are requested")
    data = df_to_matrix(df, model.observable_names)

    n_cond = int(model.get_setting('n_conditional_periods'))
    horizon = int(model.get_setting('forecast_horizons'))

    if cond_type == 'none':
        inputs.n_cond = 0
    else:
        split_conditional(data, cond_type, n_cond)
        inputs.n_cond = n_cond
        if smooth_conditional == 'hist_cond' and horizon <= n_cond:
            raise ConfigurationError(
                f"forecast_horizons ({horizon}) must exceed n_conditional_periods ({n_cond})")
        if smooth_conditional != 'hist_cond' and horizon < n_cond:
            raise ConfigurationError(
                f"forecast_horizons ({horizon}) must cover n_conditional_periods ({n_cond}) "
                f"when smooth_conditional is '{smooth_conditional}'")

        if smooth_conditional == 'deviations':
            if cond_deviation_obs_shocks is None:
                raise ConfigurationError(
                    "cond_deviation_obs_shocks cannot be empty if smooth_conditional "
                    "is set to 'deviations'")
            deviations = df_to_matrix(cond_deviation_obs_shocks, model.observable_names)
            if deviations.shape[0] != n_cond:
                raise ConfigurationError(
                    f"cond_deviation_obs_shocks has {deviations.shape[0]} rows, "
                    f"expected n_conditional_periods = {n_cond}")
            inputs.cond_deviation_obs = deviations

    inputs.data = data
    return inputs


def _irf_target_row(model: DSGEModel, system, name: str) -> np.ndarray:
    if name in model.observable_names:
        return system.ZZ[model.observable_index(name)]
    if name in model.pseudo_observable_names:
        return system.ZZ_pseudo[model.pseudo_observable_index(name)]
    row = np.zeros(system.n_states)
    row[model.state_index(name)] = 1.0
    return row


def _forecast_one_draw(model: DSGEModel, inputs: ForecastInputs, params: np.ndarray,
                       rng: np.random.Generator) -> Dict[str, np.ndarray]:
    output_vars = inputs.output_vars
    products = inputs.products
    uncertainty = inputs.uncertainty
    cov_scale = model.get_setting('initial_cov_scale')

    p = model.parameter_snapshot(params)
    system = compute_system(model, p)
    output = {}

    data = inputs.data
    n_cond = inputs.n_cond
    conditional = inputs.conditional
    mode = inputs.smooth_conditional
    hist_cond = conditional and mode == 'hist_cond'
    dev_cond = conditional and mode != 'hist_cond'
    horizon = int(model.get_setting('forecast_horizons'))

    if data is not None:
        n_main = data.shape[0] - n_cond
        smooth_data = data if hist_cond else data[:n_main]

    # Reported history ends at n_report; later smoothed periods go to the forecast
    if hist_cond and model.get_setting('nowcast_reporting') == 'history':
        n_report = data.shape[0]
    elif data is not None:
        n_report = n_main

    forecast_horizon = horizon - n_cond if hist_cond else horizon

    ### 1. Smoothed histories

    run_smoother = bool(products & {'hist', 'shockdec', 'dettrend'}) or \
        (conditional and not inputs.irfs_only)

    if run_smoother:
        smoothed = smooth(system, smooth_data, draw_states=uncertainty, rng=rng,
                          initial_cov_scale=cov_scale)
        histstates, histshocks, histpseudo = smoothed.states, smoothed.shocks, smoothed.pseudo

        output['histstates'] = transplant_history(histstates, n_report)
        output['histshocks'] = transplant_history(histshocks, n_report)
        output['histpseudo'] = transplant_history(histpseudo, n_report)
        if 'histstdshocks' in output_vars:
            output['histstdshocks'] = standardize_shocks(output['histshocks'], system.QQ)

        if dev_cond:
            # Unconditional forecast over the conditional periods
            uncond = forecast(system, histstates[-1], n_cond)
            if mode == 'cond':
                deviations = conditional_deviations(data[n_main:], uncond.obs)
            else:
                deviations = inputs.cond_deviation_obs
            forecast_deviation_shocks = deviation_shocks(
                system, deviations, inputs.cond_deviation_shock_inds,
                draw_states=uncertainty, rng=rng)

    ### 2. Forecasts

    if products & {'forecast', 'bddforecast'}:
        if run_smoother:
            # Smoothed s_{T|T}, or a draw from p(s_T | data) if uncertainty
            s_T = histstates[-1]
        else:
            kal = kalman_filter(system, smooth_data, initial_cov_scale=cov_scale)
            s_T = draw_degenerate_normal(kal['s_T'], kal['P_T'], rng) if uncertainty \
                else kal['s_T']

        fcast_system = system
        if not inputs.regime.is_baseline:
            fcast_system = compute_system(model, p, inputs.regime, apply_altpolicy=True)

        shocks = forecast_deviation_shocks if dev_cond else None

        for product, floor in (('forecast', None), ('bddforecast', inputs.floor)):
            if product not in products:
                continue
            fpath = forecast(fcast_system, s_T, forecast_horizon, shocks=shocks,
                             draw_shocks=uncertainty, rng=rng, floor=floor)

            if hist_cond:
                output[f'{product}states'] = transplant_forecast(histstates, fpath.states, n_report)
                output[f'{product}shocks'] = transplant_forecast(histshocks, fpath.shocks, n_report)
                output[f'{product}pseudo'] = transplant_forecast(histpseudo, fpath.pseudo, n_report)
                output[f'{product}obs'] = transplant_forecast_observables(
                    histstates, fpath.obs, system, n_report)
            else:
                output[f'{product}states'] = fpath.states
                output[f'{product}shocks'] = fpath.shocks
                output[f'{product}pseudo'] = fpath.pseudo
                output[f'{product}obs'] = fpath.obs

            if f'{product}stdshocks' in output_vars:
                output[f'{product}stdshocks'] = standardize_shocks(
                    output[f'{product}shocks'], fcast_system.QQ)

    ### 3. Shock decompositions

    if 'shockdec' in products:
        if inputs.use_filtered_shocks_in_shockdec:
            shockdec_shocks = filter_shocks(system, smooth_data)
        else:
            shockdec_shocks = histshocks
        shockdec = shock_decompositions(system, shockdec_shocks, forecast_horizon)
        for output_class in ('states', 'obs', 'pseudo'):
            output[f'shockdec{output_class}'] = shockdec[output_class]

    ### 4. Trends

    if 'trend' in products:
        trend = trends(system)
        for output_class in ('states', 'obs', 'pseudo'):
            output[f'trend{output_class}'] = trend[output_class]

    ### 5. Deterministic trends

    if 'dettrend' in products:
        dettrend = deterministic_trends(system, smoothed.initial_state,
                                        histstates.shape[0] + forecast_horizon)
        for output_class in ('states', 'obs', 'pseudo'):
            output[f'dettrend{output_class}'] = dettrend[output_class]

    ### 6. Impulse responses

    if 'irf' in products:
        irf_system = system
        if not inputs.regime.is_baseline:
            irf_system = compute_system(model, p, inputs.regime, apply_altpolicy=True)
        irf_horizon = int(model.get_setting('impulse_response_horizons'))

        if inputs.irf_shock is not None:
            target = None
            if inputs.irf_target is not None:
                target = _irf_target_row(model, irf_system, inputs.irf_target)
            irf = impulse_responses_to_shock(irf_system, irf_horizon,
                                             model.shock_index(inputs.irf_shock),
                                             target, inputs.irf_target_value)
        else:
            irf = impulse_responses(irf_system, irf_horizon)
        for output_class in ('states', 'obs', 'pseudo'):
            output[f'irf{output_class}'] = irf[output_class]

    return {var: output[var] for var in output_vars if var in output}


def forecast_one_draw(model: DSGEModel, inputs: ForecastInputs, params: np.ndarray,
                      seed=None, verbose: str = 'low',
                      reject_failures: bool = True) -> Dict[str, np.ndarray]:
    """
    Compute all requested outputs for one parameter vector.

    Args:
        model: DSGE model
        inputs: Validated request (from prepare_forecast_inputs)
        params: Parameter vector
        seed: Seed of this draw's random number generator
        verbose: 'none', 'low' or 'high'
        reject_failures: Return an empty dict when the draw has no unique
            stable solution or the filter leaves its domain. When False
            the error propagates.

    Returns:
        Dictionary of output arrays, empty for a rejected draw
    """
    rng = np.random.default_rng(seed)
    try:
        return _forecast_one_draw(model, inputs, params, rng)
    except (SolverError, FilterDomainError) as err:
        if not reject_failures:
            raise
        info_print(verbose, 'high', f"Draw rejected: {err}")
        return {}


def forecast_one_draw_cond_obs_shocks(model: DSGEModel, inputs: ForecastInputs,
                                      params: np.ndarray, cond_obs_shocks: Mapping[str, float],
                                      seed=None, verbose: str = 'low',
                                      reject_failures: bool = True
                                      ) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray]]:
    """
    Unconditional forecast and a forecast conditional on shocked observables.

    The conditional data adds each shock in cond_obs_shocks to its
    observable in the first conditional period. With cond_type 'none' that
    period is a new row built from the unconditional forecast, with the
    non-shocked observables left free.

    Args:
        model: DSGE model
        inputs: Validated request
        params: Parameter vector
        cond_obs_shocks: Observable name -> shock added to it
        seed: Seed of this draw's random number generator
        verbose: 'none', 'low' or 'high'
        reject_failures: See forecast_one_draw

    Returns:
        (unconditional_output, conditional_output), both empty for a
        rejected draw
    """
    seq = np.random.SeedSequence(seed)
    uncond_seed, cond_seed = seq.spawn(2)

    uncond_vars = list(inputs.output_vars)
    if 'forecastobs' not in uncond_vars:
        uncond_vars.append('forecastobs')
    uncond_inputs = replace(inputs, output_vars=uncond_vars, smooth_conditional='hist_cond')

    uncond = forecast_one_draw(model, uncond_inputs, params, uncond_seed, verbose,
                               reject_failures)
    if not uncond:
        return {}, {}

    cond_vars = [var for var in inputs.output_vars
                 if get_product(var) not in DECOMPOSITION_PRODUCTS]
    obs_inds = {name: model.observable_index(name) for name in cond_obs_shocks}
    data = inputs.data
    n_cond = inputs.n_cond

    if inputs.smooth_conditional in ('hist_cond', 'cond'):
        cond_data = data.copy()
        if inputs.conditional:
            row = data.shape[0] - n_cond
            missing = [name for name, i in obs_inds.items() if np.isnan(cond_data[row, i])]
            if missing:
                fill = _implied_observables(model, inputs, params, row)
                for name in missing:
                    cond_data[row, obs_inds[name]] = fill[obs_inds[name]]
            for name, shock in cond_obs_shocks.items():
                cond_data[row, obs_inds[name]] += shock
            cond_type, n_cond_new = inputs.cond_type, n_cond
        else:
            new_row = np.full(data.shape[1], np.nan)
            for name, shock in cond_obs_shocks.items():
                new_row[obs_inds[name]] = uncond['forecastobs'][0, obs_inds[name]] + shock
            cond_data = np.vstack([data, new_row])
            cond_type, n_cond_new = 'full', 1

        cond_inputs = replace(inputs, output_vars=cond_vars, cond_type=cond_type,
                               data=cond_data, n_cond=n_cond_new)
    else:
        n_dev = n_cond if inputs.conditional else 1
        deviations = np.full((n_dev, data.shape[1]), np.nan)
        for name, shock in cond_obs_shocks.items():
            deviations[:, obs_inds[name]] = shock
        cond_data = data if inputs.conditional else \
            np.vstack([data, np.full((1, data.shape[1]), np.nan)])
        cond_inputs = replace(inputs, output_vars=cond_vars,
                               cond_type=inputs.cond_type if inputs.conditional else 'full',
                               data=cond_data, n_cond=n_dev, cond_deviation_obs=deviations)

    cond = forecast_one_draw(model, cond_inputs, params, cond_seed, verbose, reject_failures)
    if not cond:
        return {}, {}

    if 'forecastobs' not in inputs.output_vars:
        del uncond['forecastobs']
    return uncond, cond


def _implied_observables(model: DSGEModel, inputs: ForecastInputs, params: np.ndarray,
                         row: int) -> np.ndarray:
    """Model-implied observables in one data row from the mean smoother."""
    system = compute_system(model, model.parameter_snapshot(params))
    path = smooth(system, inputs.data, initial_cov_scale=model.get_setting('initial_cov_scale'))
    return system.observables(path.states[row:row + 1])[0]


def assemble_block_outputs(outputs: Sequence[Dict[str, np.ndarray]]
                           ) -> Tuple[Dict[str, np.ndarray], np.ndarray]:
    """
    Stack the outputs of a block's draws along a new leading axis.

    Rejected draws (empty dicts) are skipped.

    Returns:
        (assembled outputs, positions of the kept draws within the block)
    """
    kept = np.array([i for i, out in enumerate(outputs) if out], dtype=int)
    if len(kept) == 0:
        return {}, kept

    keys = list(outputs[kept[0]])
    assembled = {key: np.stack([outputs[i][key] for i in kept]) for key in keys}
    return assembled, kept


def _map_draws(model: DSGEModel, worker, params: np.ndarray, seeds: List) -> List:
    """Apply worker to each draw, in parallel if configured. Order is preserved."""
    if model.get_setting('use_parallel_workers'):
        return Parallel(n_jobs=model.get_setting('n_jobs'),
                        backend=model.get_setting('parallel_backend'))(
            delayed(worker)(param, seed) for param, seed in zip(params, seeds))
    return [worker(param, seed) for param, seed in zip(params, seeds)]


def _base_entropy(model: DSGEModel) -> int:
    seed = model.get_setting('seed')
    if seed is None:
        return int(np.random.SeedSequence().entropy)
    return int(seed)


def forecast_one(model: DSGEModel, input_type: str, cond_type: str,
                 output_vars: Sequence[str], df: Optional[pd.DataFrame] = None,
                 draws: Optional[DrawSource] = None, sink=None, cond_sink=None,
                 subset_inds: Optional[Sequence[int]] = None,
                 regime=None, bdd_fcast: Optional[bool] = None,
                 cond_obs_shocks: Optional[Mapping[str, float]] = None,
                 smooth_conditional: str = 'hist_cond',
                 cond_deviation_shocks: Optional[Sequence[str]] = None,
                 cond_deviation_obs_shocks: Optional[pd.DataFrame] = None,
                 use_filtered_shocks_in_shockdec: bool = False,
                 irf_shock: Optional[str] = None, irf_target: Optional[str] = None,
                 irf_target_value: Optional[float] = None,
                 verbose: str = 'low') -> Dict:
    """
    Compute and persist forecast outputs for one input type and cond type.

    Args:
        model: DSGE model
        input_type: Source of parameter draws
        cond_type: 'none', 'semi' or 'full'
        output_vars: Requested output variables
        df: Observables (conditional rows last when cond_type is not 'none')
        draws: Posterior draws and summaries
        sink: Output sink (InMemorySink if None)
        cond_sink: Sink for the conditional-on-observable-shocks forecast
            (derived from sink if None)
        subset_inds: Draw indices for input_type 'subset'
        regime: Policy regime key or object
        bdd_fcast: See prepare_forecast_inputs
        cond_obs_shocks: Observable name -> shock for an additional
            conditional forecast
        smooth_conditional, cond_deviation_shocks, cond_deviation_obs_shocks,
        use_filtered_shocks_in_shockdec, irf_shock, irf_target,
        irf_target_value: See prepare_forecast_inputs
        verbose: 'none', 'low' or 'high'

    Returns:
        Summary with n_draws, n_rejected, rejected_inds, the final output
        variable list and the combined outputs of each sink
    """
    inputs = prepare_forecast_inputs(
        model, input_type, cond_type, output_vars, df=df, subset_inds=subset_inds,
        regime=regime, bdd_fcast=bdd_fcast, smooth_conditional=smooth_conditional,
        cond_deviation_shocks=cond_deviation_shocks,
        cond_deviation_obs_shocks=cond_deviation_obs_shocks,
        use_filtered_shocks_in_shockdec=use_filtered_shocks_in_shockdec,
        irf_shock=irf_shock, irf_target=irf_target, irf_target_value=irf_target_value)

    if cond_obs_shocks and inputs.irfs_only:
        warnings.warn("output_vars includes only IRFs. Skipping computation of "
                      "conditional forecast on shocks to observables.")
        cond_obs_shocks = None
    if cond_obs_shocks:
        for name in cond_obs_shocks:
            model.observable_index(name)

    sink = InMemorySink() if sink is None else sink
    if cond_obs_shocks and cond_sink is None:
        cond_sink = sink.derive('cond_obs_shocks')
    cond_vars = [var for var in inputs.output_vars
                 if get_product(var) not in DECOMPOSITION_PRODUCTS]

    info_print(verbose, 'low', f"Forecasting input_type = {input_type}, cond_type = {cond_type}...")
    info_print(verbose, 'low', f"Start time: {datetime.now()}")

    entropy = _base_entropy(model)
    policy = model.get_setting('draw_failure_policy')

    if cond_obs_shocks:
        worker = partial(_cond_obs_shocks_worker, model, inputs, dict(cond_obs_shocks),
                         verbose=verbose)
    else:
        worker = partial(forecast_one_draw, model, inputs, verbose=verbose)

    rejected = []

    ### Single-draw forecasts

    if input_type in SINGLE_DRAW_TYPES:
        begin_time = time.time()
        params = load_draws(model, input_type, draws)
        result = worker(params, [entropy, 0], reject_failures=False)

        outputs, cond_outputs = (result if cond_obs_shocks else (result, None))
        _write_block(sink, inputs.output_vars, [outputs], np.array([0]), 0)
        if cond_obs_shocks:
            _write_block(cond_sink, cond_vars, [cond_outputs], np.array([0]), 0)
        n_draws = 1

        info_print(verbose, 'low', f"\nTotal time to forecast: "
                   f"{(time.time() - begin_time) / 60:.4f} minutes")

    ### Multiple-draw forecasts

    else:
        if input_type == 'subset':
            n_source = n_forecast_draws(model, 'full', draws)
        else:
            n_source = n_forecast_draws(model, input_type, draws)
        block_inds, block_inds_thin = forecast_block_inds(
            n_source,
            int(model.get_setting('forecast_block_size')),
            int(model.get_setting('forecast_jstep')),
            subset_inds=inputs.subset_inds)
        n_blocks = len(block_inds)
        start_block = int(model.get_setting('forecast_start_block'))
        n_draws = int(sum(len(inds) for inds in block_inds_thin))

        total_time = 0.0
        for block in range(start_block, n_blocks):
            info_print(verbose, 'low', f"\nForecasting block {block + 1} of {n_blocks}...")
            begin_time = time.time()

            prior_rng = np.random.default_rng([entropy, block, 1])
            params = load_draws(model, input_type, draws, block_inds[block], rng=prior_rng)
            seeds = [[entropy, int(ind)] for ind in block_inds_thin[block]]

            results = _map_draws(model, worker, params, seeds)

            if cond_obs_shocks:
                cond_results = [res[1] for res in results]
                results = [res[0] for res in results]

            failed = [int(block_inds_thin[block][i])
                      for i, out in enumerate(results) if not out]
            if failed and policy == 'abort':
                raise RuntimeError(f"Block {block + 1}: draws {failed} have no unique "
                                   "stable solution or left the filter domain")
            rejected += failed

            _write_block(sink, inputs.output_vars, results, block_inds_thin[block], block)
            if cond_obs_shocks:
                _write_block(cond_sink, cond_vars, cond_results, block_inds_thin[block], block)

            del results, params
            gc.collect()

            # Time to complete this block, and expected time to completion
            block_time = time.time() - begin_time
            total_time += block_time
            blocks_elapsed = block - start_block + 1
            expected_remaining = (total_time / blocks_elapsed) * (n_blocks - block - 1)

            info_print(verbose, 'low', f"Completed {block + 1} of {n_blocks} blocks.")
            info_print(verbose, 'low', f"Total time elapsed: {total_time / 60:.4f} minutes")
            info_print(verbose, 'low', f"Expected time remaining: {expected_remaining / 60:.4f} minutes")

        if rejected:
            info_print(verbose, 'low', f"{len(rejected)} of {n_draws} draws rejected")

    summary = {
        'input_type': input_type,
        'cond_type': cond_type,
        'output_vars': inputs.output_vars,
        'n_draws': n_draws,
        'n_rejected': len(rejected),
        'rejected_inds': rejected,
        'outputs': sink.combine(inputs.output_vars),
    }
    if cond_obs_shocks:
        summary['cond_outputs'] = cond_sink.combine(cond_vars)
    return summary


def _cond_obs_shocks_worker(model, inputs, cond_obs_shocks, params, seed,
                            verbose='low', reject_failures=True):
    return forecast_one_draw_cond_obs_shocks(model, inputs, params, cond_obs_shocks,
                                             seed, verbose, reject_failures)


def _write_block(sink, output_vars: Sequence[str], results: Sequence[Dict],
                 draw_inds: np.ndarray, block: int) -> None:
    assembled, kept = assemble_block_outputs(results)
    for var in output_vars:
        if var in assembled:
            sink.write(var, assembled[var], np.asarray(draw_inds)[kept], block_number=block)
