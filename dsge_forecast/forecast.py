"""
Forecast Engine
===============

Iterates the transition equation forward from a terminal state:

    s_{T+h} = TTT·s_{T+h-1} + RRR·ε_{T+h} + CCC

with shocks that are zero, drawn from N(0, QQ), or supplied by the caller.

Bounded forecasts keep one observable (typically the nominal interest rate)
at or above a floor. Breaches are offset with anticipated policy shocks
realized in the first forecast period, solved so that every breached period
sits exactly on the floor. Periods the anticipated shocks cannot reach are
held at the floor with the contemporaneous policy shock.

Also contains the helpers that splice smoothed conditional-period output
into reported history and forecast arrays, and the translation of
conditional deviations into shocks.
"""

import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError
from .smoothers import smooth
from .state_space import System
from .system import compute_deviations_system
from .utils import draw_shocks as draw_shock_matrix


@dataclass(frozen=True)
class ForecastPath:
    """Forecast output, time-major."""
    states: np.ndarray   # (H x n_s)
    obs: np.ndarray      # (H x n_y)
    pseudo: np.ndarray   # (H x n_pseudo)
    shocks: np.ndarray   # (H x n_eps)
    bounded: bool = False


@dataclass(frozen=True)
class FloorConstraint:
    """
    Lower bound on one observable.

    Attributes:
        obs_index: Row of ZZ holding the bounded observable
        floor: Lowest admissible value
        shock_indices: Policy shocks ordered by anticipation horizon; the
            first is the contemporaneous shock, entry k is anticipated k
            periods ahead
        tol: Breach tolerance
    """
    obs_index: int
    floor: float
    shock_indices: Tuple[int, ...]
    tol: float = 1e-8

    @classmethod
    def from_model(cls, model) -> 'FloorConstraint':
        """Build the constraint from a model's bounded-forecast settings."""
        obs_name = model.get_setting('bounded_observable')
        shock_names = model.get_setting('anticipated_shocks')
        if obs_name is None:
            raise ConfigurationError(
                f"Model {model.name} has no bounded observable configured")
        if not shock_names:
            raise ConfigurationError(
                f"Model {model.name} has no anticipated shocks configured for "
                "bounded forecasts")
        return cls(obs_index=model.observable_index(obs_name),
                   floor=float(model.get_setting('forecast_floor_value')),
                   shock_indices=tuple(model.shock_index(name) for name in shock_names),
                   tol=float(model.get_setting('floor_tolerance')))


def simulate_states(system: System, s_T: np.ndarray, shocks: np.ndarray) -> np.ndarray:
    """
    Iterate the transition equation from s_T.

    Args:
        system: State-space system
        s_T: Initial state (n_s,)
        shocks: Shocks (H x n_eps)

    Returns:
        States (H x n_s)
    """
    states = np.zeros((shocks.shape[0], system.n_states))
    s = np.asarray(s_T, dtype=float)
    for t in range(shocks.shape[0]):
        s = system.TTT @ s + system.RRR @ shocks[t] + system.CCC
        states[t] = s
    return states


def forecast(system: System, s_T: np.ndarray, horizon: int,
             shocks: Optional[np.ndarray] = None, draw_shocks: bool = False,
             rng: Optional[np.random.Generator] = None,
             floor: Optional[FloorConstraint] = None) -> ForecastPath:
    """
    Forecast states, observables and pseudo-observables.

    Args:
        system: State-space system
        s_T: Terminal state (n_s,)
        horizon: Number of forecast periods
        shocks: Shocks (k x n_eps), k <= horizon, added to the first k rows
            of the baseline (zero or drawn) shocks
        draw_shocks: Draw baseline shocks from N(0, QQ)
        rng: Random number generator (required if draw_shocks)
        floor: Floor constraint for a bounded forecast

    Returns:
        ForecastPath
    """
    if horizon < 0:
        raise ConfigurationError(f"Forecast horizon must be non-negative, got {horizon}")

    if draw_shocks:
        if rng is None:
            raise ConfigurationError("A random number generator is required to draw shocks")
        all_shocks = draw_shock_matrix(system.QQ, horizon, rng)
    else:
        all_shocks = np.zeros((horizon, system.n_shocks))

    if shocks is not None:
        shocks = np.atleast_2d(np.asarray(shocks, dtype=float))
        if shocks.shape[0] > horizon or shocks.shape[1] != system.n_shocks:
            raise ConfigurationError(
                f"Supplied shocks have shape {shocks.shape}, horizon is {horizon} "
                f"with {system.n_shocks} shocks")
        all_shocks[:shocks.shape[0]] += shocks

    if floor is not None:
        all_shocks = enforce_floor(system, s_T, all_shocks, floor)

    states = simulate_states(system, s_T, all_shocks)
    return ForecastPath(states=states,
                        obs=system.observables(states),
                        pseudo=system.pseudo_observables(states),
                        shocks=all_shocks,
                        bounded=floor is not None)


def unit_responses(system: System, obs_index: int, shock_indices: Sequence[int],
                   horizon: int) -> np.ndarray:
    """
    Response of one observable to unit shocks in the first forecast period.

    Returns:
        M (horizon x len(shock_indices)), M[t, j] = ZZ[obs]·TTT^t·RRR[:, shock_j]
    """
    Z_r = system.ZZ[obs_index]
    impulse = system.RRR[:, list(shock_indices)]
    M = np.zeros((horizon, len(shock_indices)))
    for t in range(horizon):
        M[t] = Z_r @ impulse
        impulse = system.TTT @ impulse
    return M


def enforce_floor(system: System, s_T: np.ndarray, shocks: np.ndarray,
                  floor: FloorConstraint) -> np.ndarray:
    """
    Adjust policy shocks so the bounded observable never breaches the floor.

    Anticipated shocks realized in the first forecast period are solved
    jointly so that each breached period within their reach lands exactly on
    the floor. The binding set grows until no period in reach breaches.
    Remaining breaches are offset period by period with the contemporaneous
    policy shock.

    Args:
        system: State-space system
        s_T: Terminal state (n_s,)
        shocks: Baseline shocks (H x n_eps)
        floor: Floor constraint

    Returns:
        Adjusted shocks (H x n_eps)
    """
    shocks = np.array(shocks, dtype=float)
    horizon = shocks.shape[0]
    if horizon == 0:
        return shocks

    r = floor.obs_index
    lower = floor.floor - floor.tol
    ant = list(floor.shock_indices)

    path = simulate_states(system, s_T, shocks) @ system.ZZ[r] + system.DD[r]
    if np.all(path >= lower):
        return shocks

    n_reach = min(horizon, len(ant))
    M = unit_responses(system, r, ant, horizon)

    binding = []
    x = np.zeros(len(ant))
    for _ in range(n_reach):
        candidate = path + M @ x
        breaches = [t for t in range(n_reach) if t not in binding and candidate[t] < lower]
        if not breaches:
            break
        binding = sorted(binding + breaches)
        A = M[np.ix_(binding, binding)]
        x = np.zeros(len(ant))
        x[binding] = np.linalg.lstsq(A, floor.floor - path[binding], rcond=None)[0]

    shocks[0, ant] += x

    # Contemporaneous fallback
    k0 = ant[0]
    loading = system.RRR[:, k0]
    impact = system.ZZ[r] @ loading
    s = np.asarray(s_T, dtype=float)
    for t in range(horizon):
        s = system.TTT @ s + system.RRR @ shocks[t] + system.CCC
        level = system.ZZ[r] @ s + system.DD[r]
        if level < lower:
            if abs(impact) < 1e-12:
                warnings.warn(f"Contemporaneous policy shock does not move the bounded "
                              f"observable; floor breached at forecast period {t}")
                continue
            delta = (floor.floor - level) / impact
            shocks[t, k0] += delta
            s = s + loading * delta

    return shocks


# ----------------------------------------------------------------------
# Conditional forecasts
# ----------------------------------------------------------------------

def transplant_history(history: np.ndarray, n_hist: int) -> np.ndarray:
    """Keep the first n_hist periods of a smoothed series."""
    return history[:n_hist]


def transplant_forecast(history: np.ndarray, forecast_values: np.ndarray,
                        n_hist: int) -> np.ndarray:
    """Prepend smoothed periods after n_hist to a forecast series."""
    return np.concatenate([history[n_hist:], forecast_values], axis=0)


def transplant_forecast_observables(histstates: np.ndarray, forecastobs: np.ndarray,
                                    system: System, n_hist: int) -> np.ndarray:
    """Prepend model-implied observables of smoothed periods after n_hist."""
    return np.concatenate([system.observables(histstates[n_hist:]), forecastobs], axis=0)


def conditional_deviations(cond_data: np.ndarray, uncond_obs: np.ndarray) -> np.ndarray:
    """Deviations of conditional data from the unconditional forecast (NaN kept)."""
    return np.asarray(cond_data, dtype=float) - uncond_obs


def deviation_shocks(system: System, deviations: np.ndarray,
                     shock_inds: Optional[Sequence[int]] = None,
                     draw_states: bool = False,
                     rng: Optional[np.random.Generator] = None,
                     fit_tol: float = 1e-6) -> np.ndarray:
    """
    Shocks that reproduce observable deviations from a baseline path.

    Smooths the deviations on the deviations system starting from a known
    zero state.

    Args:
        system: Baseline system
        deviations: Observable deviations (n_cond x n_y), NaN where free
        shock_inds: Shocks allowed to move (all if None)
        draw_states: Draw shocks with the simulation smoother
        rng: Random number generator (required if draw_states)
        fit_tol: Tolerance for the fit check

    Returns:
        Shocks (n_cond x n_eps)
    """
    deviations = np.asarray(deviations, dtype=float)
    dev_system = compute_deviations_system(system, shock_inds)
    n = dev_system.n_states

    # Least-squares fit when the selected shocks cannot span the deviations
    path = smooth(dev_system, deviations, s0=np.zeros(n), P0=np.zeros((n, n)),
                  draw_states=draw_states, rng=rng, check_support=False)

    observed = ~np.isnan(deviations)
    if observed.any():
        fitted = dev_system.observables(path.states)
        misfit = np.max(np.abs(fitted[observed] - deviations[observed]))
        scale = max(1.0, np.max(np.abs(deviations[observed])))
        if misfit > fit_tol * scale:
            warnings.warn(f"Deviation shocks reproduce the conditional deviations only "
                          f"up to {misfit:.2e}; the selected shocks cannot span the "
                          "conditioned observables")

    return path.shocks
