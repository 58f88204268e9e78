"""
State and Shock Smoothers
=========================

Two smoothers over a solved System:

- koopman_smoother: disturbance smoother returning E[s_t | y_{1:T}] and
  E[ε_t | y_{1:T}] (Koopman 1993, Durbin & Koopman 2012 ch. 4)
- durbin_koopman_smoother: simulation smoother returning one draw from
  p(s_{1:T}, ε_{1:T} | y_{1:T}) (Durbin & Koopman 2002)

The backward recursion runs on the prediction-form filter output:

    r_{t-1} = Z_t' F_t^{-1} v_t + L_t' r_t,    L_t = TTT (I - K_t Z_t)
    ŝ_t     = s_{t|t-1} + P_{t|t-1} r_{t-1}
    ε̂_t     = QQ RRR' r_{t-1}

with r_T = 0. Periods with no observed entries use r_{t-1} = TTT' r_t.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .errors import ConfigurationError
from .kalman import KalmanFilter
from .state_space import System
from .utils import draw_degenerate_normal, draw_shocks


@dataclass(frozen=True)
class SmoothedPath:
    """Smoother output, time-major."""
    states: np.ndarray          # (T x n_s)
    shocks: np.ndarray          # (T x n_eps)
    pseudo: np.ndarray          # (T x n_pseudo)
    initial_state: np.ndarray   # (n_s,) smoothed s_0

    @property
    def final_state(self) -> np.ndarray:
        return self.states[-1] if len(self.states) else self.initial_state


def _backward_pass(kf: KalmanFilter, kal: Dict) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    T_mat, Q, R = kf.T, kf.Q, kf.R
    T_obs = kf.s_pred.shape[0]

    states = np.zeros((T_obs, kf.n_s))
    shocks = np.zeros((T_obs, Q.shape[0]))
    r = np.zeros(kf.n_s)

    for t in range(T_obs - 1, -1, -1):
        mask = kf.masks[t]
        P_pred = kf.P_pred[t]

        if mask.any():
            Z_t = kf.Z[mask]
            F_inv = kf.F_inv[t]
            K = P_pred @ Z_t.T @ F_inv
            L = T_mat @ (np.eye(kf.n_s) - K @ Z_t)
            r = Z_t.T @ F_inv @ kf.v[t] + L.T @ r
        else:
            r = T_mat.T @ r

        states[t] = kf.s_pred[t] + P_pred @ r
        shocks[t] = Q @ R.T @ r

    initial_state = kal['s_0'] + kal['P_0'] @ T_mat.T @ r
    return states, shocks, initial_state


def koopman_smoother(system: System, y: np.ndarray, s0: Optional[np.ndarray] = None,
                     P0: Optional[np.ndarray] = None,
                     initial_cov_scale: float = 1e6,
                     check_support: bool = True
                     ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Mean state and shock smoother.

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y), NaN for missing entries
        s0, P0: Initial conditions, None for unconditional moments
        initial_cov_scale: Initial covariance scale for nonstationary systems
        check_support: See KalmanFilter

    Returns:
        states: Smoothed states (T x n_s)
        shocks: Smoothed shocks (T x n_eps)
        initial_state: Smoothed s_0 (n_s,)
    """
    kf = KalmanFilter(system, initial_cov_scale, check_support)
    kal = kf.filter(y, s0, P0)
    return _backward_pass(kf, kal)


def simulate_observables(system: System, s0: np.ndarray, P0: np.ndarray,
                         T_obs: int, rng: np.random.Generator
                         ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Simulate a state, shock and observable path from the model.

    Args:
        system: State-space system
        s0, P0: Initial state distribution
        T_obs: Number of periods
        rng: Random number generator

    Returns:
        (states, shocks, observables, initial_state)
    """
    initial_state = draw_degenerate_normal(s0, P0, rng)
    shocks = draw_shocks(system.QQ, T_obs, rng)
    meas_errors = draw_shocks(system.EE, T_obs, rng)

    states = np.zeros((T_obs, system.n_states))
    s = initial_state
    for t in range(T_obs):
        s = system.TTT @ s + system.RRR @ shocks[t] + system.CCC
        states[t] = s

    obs = system.observables(states) + meas_errors
    return states, shocks, obs, initial_state


def durbin_koopman_smoother(system: System, y: np.ndarray, rng: np.random.Generator,
                            s0: Optional[np.ndarray] = None,
                            P0: Optional[np.ndarray] = None,
                            initial_cov_scale: float = 1e6,
                            check_support: bool = True
                            ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Draw states and shocks from their joint posterior given the data.

    Simulates (s+, ε+, y+) from the model with the data's missing-value
    pattern, then returns s+ + (ŝ(y) - ŝ(y+)), and likewise for shocks
    and the initial state.

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y), NaN for missing entries
        rng: Random number generator
        s0, P0: Initial conditions, None for unconditional moments
        initial_cov_scale: Initial covariance scale for nonstationary systems
        check_support: See KalmanFilter

    Returns:
        states: Drawn states (T x n_s)
        shocks: Drawn shocks (T x n_eps)
        initial_state: Drawn s_0 (n_s,)
    """
    y = np.asarray(y, dtype=float)
    kf = KalmanFilter(system, initial_cov_scale, check_support)
    if s0 is None or P0 is None:
        s0_default, P0_default = kf.initial_conditions()
        s0 = s0_default if s0 is None else s0
        P0 = P0_default if P0 is None else P0

    states_plus, shocks_plus, y_plus, initial_plus = \
        simulate_observables(system, s0, P0, y.shape[0], rng)
    y_plus[np.isnan(y)] = np.nan

    states_hat, shocks_hat, initial_hat = _backward_pass(kf, kf.filter(y, s0, P0))
    states_hat_plus, shocks_hat_plus, initial_hat_plus = \
        _backward_pass(kf, kf.filter(y_plus, s0, P0))

    states = states_plus + states_hat - states_hat_plus
    shocks = shocks_plus + shocks_hat - shocks_hat_plus
    initial_state = initial_plus + initial_hat - initial_hat_plus
    return states, shocks, initial_state


def smooth(system: System, y: np.ndarray, s0: Optional[np.ndarray] = None,
           P0: Optional[np.ndarray] = None, draw_states: bool = False,
           rng: Optional[np.random.Generator] = None,
           initial_cov_scale: float = 1e6,
           check_support: bool = True) -> SmoothedPath:
    """
    Smooth states and shocks, then compute pseudo-observables.

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y)
        s0, P0: Initial conditions, None for unconditional moments
        draw_states: Use the simulation smoother instead of the mean smoother
        rng: Random number generator (required if draw_states)
        initial_cov_scale: Initial covariance scale for nonstationary systems
        check_support: See KalmanFilter

    Returns:
        SmoothedPath
    """
    if draw_states:
        if rng is None:
            raise ConfigurationError("A random number generator is required to draw states")
        states, shocks, initial_state = durbin_koopman_smoother(
            system, y, rng, s0, P0, initial_cov_scale, check_support)
    else:
        states, shocks, initial_state = koopman_smoother(
            system, y, s0, P0, initial_cov_scale, check_support)

    return SmoothedPath(states, shocks, system.pseudo_observables(states), initial_state)
