"""
System Assembly
===============

Builds the full state-space System for a parameter draw: solve the model,
augment the states, then attach the measurement and pseudo-measurement
equations. Also builds the deviations system used to translate conditional
deviations into shocks.
"""

from typing import Mapping, Optional, Sequence, Union

import numpy as np

from .errors import ConfigurationError
from .model import DSGEModel, PolicyRegime
from .solver import DSGESolver
from .state_space import Measurement, PseudoMeasurement, System, Transition


def compute_system(model: DSGEModel, p: Mapping[str, float],
                   regime: Union[str, PolicyRegime, None] = None,
                   apply_altpolicy: bool = False) -> System:
    """
    Solve the model and assemble its state-space system.

    Args:
        model: DSGE model
        p: Parameter mapping (from model.parameter_snapshot)
        regime: Policy regime key or object
        apply_altpolicy: Solve under the regime's equilibrium conditions

    Returns:
        System with transition, measurement and pseudo-measurement

    Raises:
        SolverError: No unique stable solution for this draw
    """
    transition = DSGESolver(model).solve(p, regime, apply_altpolicy)
    measurement = model.measurement(p, transition)
    pseudo = model.pseudo_measurement(p, transition)

    if measurement.ZZ.shape[0] != model.n_observables:
        raise ConfigurationError(
            f"ZZ has {measurement.ZZ.shape[0]} rows, model declares "
            f"{model.n_observables} observables")
    if pseudo is not None and pseudo.ZZ_pseudo.shape[0] != model.n_pseudo_observables:
        raise ConfigurationError(
            f"ZZ_pseudo has {pseudo.ZZ_pseudo.shape[0]} rows, model declares "
            f"{model.n_pseudo_observables} pseudo-observables")

    return System(transition, measurement, pseudo)


def compute_deviations_system(system: System,
                              shock_inds: Optional[Sequence[int]] = None) -> System:
    """
    System mapping shocks to deviations from a baseline path.

    Dynamics are unchanged. All constants and measurement error are removed,
    and only the selected shocks keep their variance.

    Args:
        system: Baseline system
        shock_inds: Indices of shocks allowed to explain the deviations
            (all shocks if None)

    Returns:
        Deviations system
    """
    n_shocks = system.n_shocks
    if shock_inds is None:
        shock_inds = range(n_shocks)
    shock_inds = list(shock_inds)
    if any(i < 0 or i >= n_shocks for i in shock_inds):
        raise ConfigurationError(f"Deviation shock indices out of range: {shock_inds}")

    keep = np.zeros(n_shocks, dtype=bool)
    keep[shock_inds] = True
    QQ = np.where(np.outer(keep, keep), system.QQ, 0.0)

    transition = Transition(system.TTT, system.RRR, np.zeros(system.n_states))
    measurement = Measurement(system.ZZ, np.zeros(system.n_observables), QQ,
                              np.zeros((system.n_observables, system.n_observables)))
    pseudo = None
    if system.pseudo_measurement is not None:
        pseudo = PseudoMeasurement(system.ZZ_pseudo, np.zeros(system.n_pseudo))

    return System(transition, measurement, pseudo)
