"""
State-Space Containers
======================

Immutable containers for the structural forms fed to the solvers and for the
solved linear state-space system:

    Transition:   s_t = TTT·s_{t-1} + RRR·ε_t + CCC,      ε_t ~ N(0, QQ)
    Measurement:  y_t = ZZ·s_t + DD + u_t,                u_t ~ N(0, EE)
    Pseudo:       x_t = ZZ_pseudo·s_t + DD_pseudo

Arrays are converted to float and made read-only so that a System can be
shared across the filter, smoother and forecast stages of a draw.
"""

from dataclasses import dataclass, fields
from typing import Optional

import numpy as np

from .errors import ConfigurationError


def _frozen_array(x, ndim: int) -> np.ndarray:
    arr = np.array(x, dtype=float)
    if arr.ndim != ndim:
        raise ConfigurationError(f"Expected a {ndim}-d array, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


class _ArrayContainer:
    """Mixin converting every field to a read-only float array."""

    _ndims: dict = {}

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self._ndims:
                object.__setattr__(self, f.name, _frozen_array(value, self._ndims[f.name]))


@dataclass(frozen=True)
class StructuralForm(_ArrayContainer):
    """Γ0·y_t = Γ1·y_{t-1} + C + Ψ·ε_t + Π·η_t"""
    Gamma0: np.ndarray
    Gamma1: np.ndarray
    C: np.ndarray
    Psi: np.ndarray
    Pi: np.ndarray

    _ndims = {'Gamma0': 2, 'Gamma1': 2, 'C': 1, 'Psi': 2, 'Pi': 2}

    def __post_init__(self):
        super().__post_init__()
        n = self.Gamma0.shape[0]
        for name in ('Gamma1', 'Psi', 'Pi'):
            if getattr(self, name).shape[0] != n:
                raise ConfigurationError(f"{name} must have {n} rows")
        if self.Gamma0.shape != (n, n) or self.Gamma1.shape != (n, n) or self.C.shape != (n,):
            raise ConfigurationError("Inconsistent structural form dimensions")


@dataclass(frozen=True)
class KleinForm(_ArrayContainer):
    """
    A·E_t x_{t+1} = B·x_t with x = [predetermined; jumps].

    The first n_backward entries of x are predetermined.
    """
    A: np.ndarray
    B: np.ndarray
    n_backward: int

    _ndims = {'A': 2, 'B': 2}

    def __post_init__(self):
        super().__post_init__()
        if self.A.shape != self.B.shape or self.A.shape[0] != self.A.shape[1]:
            raise ConfigurationError("Klein form matrices must be square and conformable")
        if not 0 <= self.n_backward <= self.A.shape[0]:
            raise ConfigurationError("n_backward out of range")


@dataclass(frozen=True)
class Transition(_ArrayContainer):
    TTT: np.ndarray
    RRR: np.ndarray
    CCC: np.ndarray

    _ndims = {'TTT': 2, 'RRR': 2, 'CCC': 1}

    @property
    def n_states(self) -> int:
        return self.TTT.shape[0]

    @property
    def n_shocks(self) -> int:
        return self.RRR.shape[1]


@dataclass(frozen=True)
class Measurement(_ArrayContainer):
    ZZ: np.ndarray
    DD: np.ndarray
    QQ: np.ndarray
    EE: np.ndarray

    _ndims = {'ZZ': 2, 'DD': 1, 'QQ': 2, 'EE': 2}


@dataclass(frozen=True)
class PseudoMeasurement(_ArrayContainer):
    ZZ_pseudo: np.ndarray
    DD_pseudo: np.ndarray

    _ndims = {'ZZ_pseudo': 2, 'DD_pseudo': 1}


@dataclass(frozen=True)
class System:
    """Solved state-space system for one parameter draw and policy regime."""
    transition: Transition
    measurement: Measurement
    pseudo_measurement: Optional[PseudoMeasurement] = None

    def __post_init__(self):
        n_states = self.transition.n_states
        n_shocks = self.transition.n_shocks
        if self.transition.TTT.shape != (n_states, n_states) or \
                self.transition.CCC.shape != (n_states,):
            raise ConfigurationError("TTT must be square and CCC conformable")
        if self.measurement.ZZ.shape[1] != n_states:
            raise ConfigurationError(
                f"ZZ has {self.measurement.ZZ.shape[1]} columns, expected {n_states} states")
        if self.measurement.QQ.shape != (n_shocks, n_shocks):
            raise ConfigurationError("QQ must be n_shocks x n_shocks")
        n_obs = self.measurement.ZZ.shape[0]
        if self.measurement.DD.shape != (n_obs,) or self.measurement.EE.shape != (n_obs, n_obs):
            raise ConfigurationError("DD and EE must conform with ZZ")
        if self.pseudo_measurement is not None and \
                self.pseudo_measurement.ZZ_pseudo.shape[1] != n_states:
            raise ConfigurationError("ZZ_pseudo must have one column per state")

    # Shorthand accessors
    @property
    def TTT(self) -> np.ndarray:
        return self.transition.TTT

    @property
    def RRR(self) -> np.ndarray:
        return self.transition.RRR

    @property
    def CCC(self) -> np.ndarray:
        return self.transition.CCC

    @property
    def ZZ(self) -> np.ndarray:
        return self.measurement.ZZ

    @property
    def DD(self) -> np.ndarray:
        return self.measurement.DD

    @property
    def QQ(self) -> np.ndarray:
        return self.measurement.QQ

    @property
    def EE(self) -> np.ndarray:
        return self.measurement.EE

    @property
    def ZZ_pseudo(self) -> np.ndarray:
        if self.pseudo_measurement is None:
            return np.zeros((0, self.n_states))
        return self.pseudo_measurement.ZZ_pseudo

    @property
    def DD_pseudo(self) -> np.ndarray:
        if self.pseudo_measurement is None:
            return np.zeros(0)
        return self.pseudo_measurement.DD_pseudo

    @property
    def n_states(self) -> int:
        return self.transition.n_states

    @property
    def n_shocks(self) -> int:
        return self.transition.n_shocks

    @property
    def n_observables(self) -> int:
        return self.measurement.ZZ.shape[0]

    @property
    def n_pseudo(self) -> int:
        return self.ZZ_pseudo.shape[0]

    def observables(self, states: np.ndarray, include_constant: bool = True) -> np.ndarray:
        """Map a (T x n_states) state path to observables."""
        obs = states @ self.ZZ.T
        return obs + self.DD if include_constant else obs

    def pseudo_observables(self, states: np.ndarray, include_constant: bool = True) -> np.ndarray:
        """Map a (T x n_states) state path to pseudo-observables."""
        pseudo = states @ self.ZZ_pseudo.T
        return pseudo + self.DD_pseudo if include_constant else pseudo
