"""
Kalman Filter Implementation
=============================

Kalman filter for the linear state-space systems produced by the solver.
Handles missing observations (NaN) period by period, and singular
innovation covariances (observables measured without error) through the
pseudo-inverse and pseudo-determinant.

State-space form:
    s_t = TTT * s_{t-1} + RRR * ε_t + CCC      (State equation)
    y_t = ZZ * s_t + DD + u_t                  (Measurement equation)

where:
    s_t: State vector (n_s,)
    y_t: Observed variables (n_y,), NaN where missing
    ε_t ~ N(0, QQ): Structural shocks
    u_t ~ N(0, EE): Measurement errors

Data are time-major: y has shape (T x n_y).
"""

import numpy as np
from typing import Dict, Optional, Tuple
from scipy import linalg

from .errors import ConfigurationError, FilterDomainError
from .state_space import System
from .utils import (check_stability, is_positive_semidefinite,
                    pseudo_logdet_and_inverse, solve_lyapunov, symmetrize)


class KalmanFilter:
    """Kalman filter over a solved System."""

    range_tol = 1e-6

    def __init__(self, system: System, initial_cov_scale: float = 1e6,
                 check_support: bool = True):
        """
        Initialize Kalman filter.

        Args:
            system: Solved state-space system
            initial_cov_scale: Scale of the initial covariance when TTT has
                unit or explosive roots
            check_support: Raise when an observation lies outside the range of
                a singular innovation covariance. When False the update
                projects such observations onto that range.
        """
        self.system = system
        self.T = system.TTT
        self.R = system.RRR
        self.C = system.CCC
        self.Q = system.QQ
        self.Z = system.ZZ
        self.D = system.DD
        self.H = system.EE
        self.RQR = symmetrize(self.R @ self.Q @ self.R.T)
        self.initial_cov_scale = initial_cov_scale
        self.check_support = check_support

        self.n_s = system.n_states
        self.n_y = system.n_observables

        # Storage for filter output
        self.s_pred = None  # Predicted states s_{t|t-1}
        self.P_pred = None  # Predicted covariance P_{t|t-1}
        self.s_filt = None  # Filtered states s_{t|t}
        self.P_filt = None  # Filtered covariance P_{t|t}
        self.masks = None   # Observed entries per period
        self.v = None       # Innovations (observed entries only)
        self.F_inv = None   # (Pseudo-)inverse innovation variance
        self.loglh = None   # Per-period log-likelihood

    def initial_conditions(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Unconditional mean and covariance of the states.

        The mean solves (I - TTT)·s = CCC in the least-squares sense. The
        covariance solves the discrete Lyapunov equation when TTT is stable
        and is initial_cov_scale·I otherwise.

        Returns:
            (s0, P0)
        """
        s0 = linalg.lstsq(np.eye(self.n_s) - self.T, self.C)[0]

        stable, _ = check_stability(self.T)
        if stable:
            P0 = solve_lyapunov(self.T, self.RQR)
        else:
            P0 = self.initial_cov_scale * np.eye(self.n_s)

        return s0, P0

    def filter(self, y: np.ndarray, s0: Optional[np.ndarray] = None,
               P0: Optional[np.ndarray] = None) -> Dict:
        """
        Run Kalman filter forward pass.

        Args:
            y: Observed data (T x n_y), NaN for missing entries
            s0: Initial state mean (n_s,), None for the unconditional mean
            P0: Initial state covariance (n_s x n_s), None for unconditional

        Returns:
            Dictionary with filter output:
                log_likelihood, loglh, s_pred, P_pred, s_filt, P_filt,
                s_0, P_0, s_T, P_T

        Raises:
            FilterDomainError: A predicted or innovation covariance is not
                positive semidefinite, or an observation falls outside the range
                of a singular innovation covariance
        """
        y = np.asarray(y, dtype=float)
        if y.ndim != 2 or y.shape[1] != self.n_y:
            raise ConfigurationError(
                f"Data must be (T x {self.n_y}), got shape {y.shape}")

        s0_default, P0_default = (None, None)
        if s0 is None or P0 is None:
            s0_default, P0_default = self.initial_conditions()
        s0 = s0_default if s0 is None else np.asarray(s0, dtype=float)
        P0 = P0_default if P0 is None else np.asarray(P0, dtype=float)

        T_obs = y.shape[0]

        # Initialize storage
        self.s_pred = np.zeros((T_obs, self.n_s))
        self.P_pred = np.zeros((T_obs, self.n_s, self.n_s))
        self.s_filt = np.zeros((T_obs, self.n_s))
        self.P_filt = np.zeros((T_obs, self.n_s, self.n_s))
        self.masks = np.zeros((T_obs, self.n_y), dtype=bool)
        self.v = []
        self.F_inv = []
        self.loglh = np.zeros(T_obs)

        s_prev, P_prev = s0, P0
        for t in range(T_obs):
            self._predict_step(t, s_prev, P_prev)
            self._update_step(t, y[t])
            s_prev, P_prev = self.s_filt[t], self.P_filt[t]

        log_lik = float(np.sum(self.loglh))
        if not np.isfinite(log_lik):
            raise FilterDomainError("Non-finite log-likelihood")

        return {
            'log_likelihood': log_lik,
            'loglh': self.loglh,
            's_pred': self.s_pred,
            'P_pred': self.P_pred,
            's_filt': self.s_filt,
            'P_filt': self.P_filt,
            's_0': s0,
            'P_0': P0,
            's_T': self.s_filt[-1] if T_obs > 0 else s0,
            'P_T': self.P_filt[-1] if T_obs > 0 else P0,
        }

    def _predict_step(self, t: int, s_prev: np.ndarray, P_prev: np.ndarray):
        """
        Time update (prediction) step.

        Args:
            t: Time index being predicted
            s_prev: Filtered state at t-1
            P_prev: Filtered covariance at t-1
        """
        self.s_pred[t] = self.T @ s_prev + self.C
        P = symmetrize(self.T @ P_prev @ self.T.T + self.RQR)

        if not is_positive_semidefinite(P):
            raise FilterDomainError(
                f"Predicted state covariance not positive semidefinite at t = {t}",
                period=t)
        self.P_pred[t] = P

    def _update_step(self, t: int, y_t: np.ndarray):
        """
        Measurement update (correction) step on the observed entries of y_t.

        Args:
            t: Time index
            y_t: Observation at time t (n_y,), possibly with NaN
        """
        mask = ~np.isnan(y_t)
        self.masks[t] = mask
        s_pred, P_pred = self.s_pred[t], self.P_pred[t]

        if not mask.any():
            # Nothing observed: prediction is the update
            self.s_filt[t] = s_pred
            self.P_filt[t] = P_pred
            self.v.append(np.zeros(0))
            self.F_inv.append(np.zeros((0, 0)))
            return

        Z_t = self.Z[mask]
        H_t = self.H[np.ix_(mask, mask)]

        # Innovation and its variance
        v = y_t[mask] - Z_t @ s_pred - self.D[mask]
        F = symmetrize(Z_t @ P_pred @ Z_t.T + H_t)

        if not is_positive_semidefinite(F):
            raise FilterDomainError(
                f"Innovation covariance not positive semidefinite at t = {t}",
                period=t)

        logdet, F_inv, rank = pseudo_logdet_and_inverse(F)

        # Innovation outside the range of a singular F has probability zero
        outside = np.linalg.norm(v - F @ F_inv @ v)
        if self.check_support and outside > self.range_tol * max(1.0, np.linalg.norm(v)):
            raise FilterDomainError(
                f"Observation at t = {t} lies outside the support of the innovation "
                f"distribution (residual {outside:.3g})",
                period=t)

        # Kalman gain
        K = P_pred @ Z_t.T @ F_inv

        # Updated state and covariance (Joseph form)
        self.s_filt[t] = s_pred + K @ v
        I_KZ = np.eye(self.n_s) - K @ Z_t
        self.P_filt[t] = symmetrize(I_KZ @ P_pred @ I_KZ.T + K @ H_t @ K.T)

        self.v.append(v)
        self.F_inv.append(F_inv)

        # Log-likelihood: -0.5 * [rank * log(2π) + log|F|+ + v' F^+ v]
        self.loglh[t] = -0.5 * (rank * np.log(2 * np.pi) + logdet + v @ F_inv @ v)


def kalman_filter(system: System, y: np.ndarray, s0: Optional[np.ndarray] = None,
                  P0: Optional[np.ndarray] = None,
                  initial_cov_scale: float = 1e6) -> Dict:
    """
    Run the Kalman filter (convenience function).

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y)
        s0, P0: Initial conditions, None for unconditional moments
        initial_cov_scale: Initial covariance scale for nonstationary systems

    Returns:
        Filter output dictionary (see KalmanFilter.filter)
    """
    return KalmanFilter(system, initial_cov_scale).filter(y, s0, P0)


def kalman_likelihood(system: System, y: np.ndarray, s0: Optional[np.ndarray] = None,
                      P0: Optional[np.ndarray] = None) -> float:
    """
    Compute log-likelihood using Kalman filter (convenience function).

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y)
        s0, P0: Initial conditions

    Returns:
        Log-likelihood value
    """
    return kalman_filter(system, y, s0, P0)['log_likelihood']


def implied_shocks(system: System, states: np.ndarray, s0: np.ndarray) -> np.ndarray:
    """
    Shocks consistent with a state path.

    Projects s_t - TTT·s_{t-1} - CCC on the shock space with the
    QQ-weighted generalized inverse of RRR: ε_t = QQ·RRR'·(RRR·QQ·RRR')^+·(...).

    Args:
        system: State-space system
        states: State path (T x n_s)
        s0: State before the first period (n_s,)

    Returns:
        Shocks (T x n_eps)
    """
    lagged = np.vstack([s0[None, :], states[:-1]])
    residuals = states - lagged @ system.TTT.T - system.CCC
    RQR_pinv = linalg.pinv(symmetrize(system.RRR @ system.QQ @ system.RRR.T))
    loading = system.QQ @ system.RRR.T @ RQR_pinv
    return residuals @ loading.T


def filter_shocks(system: System, y: np.ndarray, s0: Optional[np.ndarray] = None,
                  P0: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Shocks implied by the filtered (not smoothed) states.

    Args:
        system: Solved state-space system
        y: Observed data (T x n_y)
        s0, P0: Initial conditions

    Returns:
        Filtered shocks (T x n_eps)
    """
    kal = kalman_filter(system, y, s0, P0)
    return implied_shocks(system, kal['s_filt'], kal['s_0'])
