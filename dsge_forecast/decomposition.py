"""
Shock Decompositions and Impulse Responses
==========================================

Splits a state path over history and forecast into:

- shock decompositions: the contribution of each shock alone, starting from
  a zero state with no constant term
- the deterministic trend: the path from the smoothed initial state with
  all shocks zero (includes CCC)

By linearity, deterministic trend + sum of shock contributions reproduces
the full path. Observables add the measurement constant DD only in the
deterministic trend.

Impulse responses are computed from the steady state (zero deviations),
without constants.

Output arrays are (n_periods x n_vars x n_shocks) for decompositions and
(horizon x n_vars x n_shocks) for impulse responses.
"""

from typing import Dict, Optional

import numpy as np

from .errors import ConfigurationError
from .state_space import System


def shock_decompositions(system: System, histshocks: np.ndarray, horizon: int,
                         forecastshocks: Optional[np.ndarray] = None
                         ) -> Dict[str, np.ndarray]:
    """
    Contribution of each shock to states, observables and pseudo-observables.

    Args:
        system: State-space system
        histshocks: Historical shocks (T x n_eps)
        horizon: Forecast periods appended after history
        forecastshocks: Forecast shocks (horizon x n_eps), zero if None

    Returns:
        Dictionary with 'states', 'obs', 'pseudo' arrays of shape
        (T + horizon) x n_vars x n_eps
    """
    histshocks = np.asarray(histshocks, dtype=float)
    if forecastshocks is None:
        forecastshocks = np.zeros((horizon, system.n_shocks))
    elif forecastshocks.shape != (horizon, system.n_shocks):
        raise ConfigurationError(
            f"Forecast shocks have shape {forecastshocks.shape}, expected "
            f"{(horizon, system.n_shocks)}")
    shocks = np.vstack([histshocks, forecastshocks])

    n_periods = shocks.shape[0]
    states = np.zeros((n_periods, system.n_states, system.n_shocks))

    for i in range(system.n_shocks):
        s = np.zeros(system.n_states)
        loading = system.RRR[:, i]
        for t in range(n_periods):
            s = system.TTT @ s + loading * shocks[t, i]
            states[t, :, i] = s

    return {
        'states': states,
        'obs': np.einsum('ij,tjk->tik', system.ZZ, states),
        'pseudo': np.einsum('ij,tjk->tik', system.ZZ_pseudo, states),
    }


def deterministic_trends(system: System, initial_state: np.ndarray,
                         n_periods: int) -> Dict[str, np.ndarray]:
    """
    Path from the smoothed initial state with all shocks set to zero.

    Args:
        system: State-space system
        initial_state: Smoothed s_0 (n_s,)
        n_periods: History plus forecast periods

    Returns:
        Dictionary with 'states', 'obs', 'pseudo' arrays (n_periods x n_vars)
    """
    states = np.zeros((n_periods, system.n_states))
    s = np.asarray(initial_state, dtype=float)
    for t in range(n_periods):
        s = system.TTT @ s + system.CCC
        states[t] = s

    return {
        'states': states,
        'obs': system.observables(states),
        'pseudo': system.pseudo_observables(states),
    }


def trends(system: System) -> Dict[str, np.ndarray]:
    """
    Constant terms of each equation.

    Returns:
        Dictionary with 'states' (CCC), 'obs' (DD) and 'pseudo' (DD_pseudo)
    """
    return {
        'states': np.array(system.CCC),
        'obs': np.array(system.DD),
        'pseudo': np.array(system.DD_pseudo),
    }


def impulse_responses(system: System, horizon: int,
                      shock_scales: Optional[np.ndarray] = None
                      ) -> Dict[str, np.ndarray]:
    """
    Responses to each shock from the steady state.

    Args:
        system: State-space system
        horizon: Number of periods
        shock_scales: Impulse size per shock, one standard deviation
            (sqrt of diag(QQ)) if None

    Returns:
        Dictionary with 'states', 'obs', 'pseudo' arrays of shape
        horizon x n_vars x n_eps
    """
    if shock_scales is None:
        shock_scales = np.sqrt(np.maximum(np.diag(system.QQ), 0.0))
    shock_scales = np.asarray(shock_scales, dtype=float)

    states = np.zeros((horizon, system.n_states, system.n_shocks))
    impulse = system.RRR * shock_scales[None, :]
    for t in range(horizon):
        states[t] = impulse
        impulse = system.TTT @ impulse

    return {
        'states': states,
        'obs': np.einsum('ij,tjk->tik', system.ZZ, states),
        'pseudo': np.einsum('ij,tjk->tik', system.ZZ_pseudo, states),
    }


def impulse_responses_to_shock(system: System, horizon: int, shock_index: int,
                               target: Optional[np.ndarray] = None,
                               target_value: Optional[float] = None
                               ) -> Dict[str, np.ndarray]:
    """
    Responses to a single shock, optionally scaled to hit a target on impact.

    Args:
        system: State-space system
        horizon: Number of periods
        shock_index: Shock to impulse
        target: Row vector over states (e.g. a row of ZZ) defining the
            variable whose impact response is fixed
        target_value: Impact response of the target variable. With no
            target the shock has size target_value (default one standard
            deviation).

    Returns:
        Dictionary with 'states', 'obs', 'pseudo' arrays of shape
        horizon x n_vars
    """
    loading = system.RRR[:, shock_index]
    if target is not None:
        if target_value is None:
            raise ConfigurationError("target_value is required with a target variable")
        impact = float(np.asarray(target) @ loading)
        if abs(impact) < 1e-12:
            raise ConfigurationError(
                f"Shock {shock_index} has no impact on the target variable")
        size = target_value / impact
    elif target_value is not None:
        size = float(target_value)
    else:
        size = float(np.sqrt(max(system.QQ[shock_index, shock_index], 0.0)))

    states = np.zeros((horizon, system.n_states))
    s = loading * size
    for t in range(horizon):
        states[t] = s
        s = system.TTT @ s

    return {
        'states': states,
        'obs': system.observables(states, include_constant=False),
        'pseudo': system.pseudo_observables(states, include_constant=False),
    }
