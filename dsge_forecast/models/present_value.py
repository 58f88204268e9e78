"""
Present-Value Model
===================

    z_t = ρ·z_{t-1} + ε_t
    y_t = a·E_t y_{t+1} + z_t

with unique stable solution y_t = z_t / (1 - aρ) when |a| < 1 and |ρ| < 1.
Both variables are observed in levels around their steady states
z* = μ and y* = μ / (1 - a).

gensys uses the states [z, y, Ey] with Ey_t = E_t y_{t+1}. Klein uses
[z; y] in deviations from the steady state, with z predetermined:

    [1 0] E_t [z_{t+1}]   [ ρ  0] [z_t]
    [0 a]     [y_{t+1}] = [-1  1] [y_t]
"""

from typing import Dict, Mapping, Optional

import numpy as np

from ..errors import SolverError
from ..model import DSGEModel, Parameter
from ..priors import create_prior
from ..state_space import (KleinForm, Measurement, PseudoMeasurement,
                           StructuralForm, Transition)


class PresentValueModel(DSGEModel):
    """Forward-looking present-value relation."""

    def __init__(self, settings: Optional[Dict] = None):
        super().__init__("Present value", settings)

        if self.solution_method == 'gensys':
            self.state_names = ['z', 'y', 'Ey']
        else:
            self.state_names = ['z', 'y']
        self.shock_names = ['z_sh']
        self.observable_names = ['obs_z', 'obs_y']
        self.pseudo_observable_names = ['discounted_y']

        self.parameters = [
            Parameter('rho', 0.8, create_prior('beta', mean=0.6, std=0.15),
                      "Persistence of the driving process"),
            Parameter('a', 0.9, create_prior('beta', mean=0.8, std=0.1),
                      "Discount factor"),
            Parameter('sig_z', 1.0, create_prior('invgamma', s=1.0, nu=4),
                      "Standard deviation of z_sh"),
            Parameter('mu', 2.0, None, "Steady state of z"),
        ]

    def derived_parameters(self, params: Mapping[str, float]) -> Dict[str, float]:
        return {'y_ss': params['mu'] / (1.0 - params['a'])}

    def steady_state(self, p: Mapping[str, float]) -> np.ndarray:
        return np.array([p['mu'], p['y_ss']])

    def eqcond(self, p: Mapping[str, float]) -> StructuralForm:
        z, y, Ey = 0, 1, 2

        Gamma0 = np.zeros((3, 3))
        Gamma1 = np.zeros((3, 3))
        Psi = np.zeros((3, 1))
        Pi = np.zeros((3, 1))

        # Driving process
        Gamma0[z, z] = 1.0
        Gamma1[z, z] = p['rho']
        Psi[z, 0] = 1.0

        # Present-value relation
        Gamma0[y, y] = 1.0
        Gamma0[y, Ey] = -p['a']
        Gamma0[y, z] = -1.0

        # Expectational error
        Gamma0[Ey, y] = 1.0
        Gamma1[Ey, Ey] = 1.0
        Pi[Ey, 0] = 1.0

        return StructuralForm(Gamma0, Gamma1, np.zeros(3), Psi, Pi)

    def klein_form(self, p: Mapping[str, float], steady_state: np.ndarray) -> KleinForm:
        # The level equations are linear, so A and B do not depend on the
        # point of expansion; the steady state must still solve them.
        z_ss, y_ss = steady_state
        gap = np.array([z_ss - (1.0 - p['rho']) * p['mu'] - p['rho'] * z_ss,
                        y_ss - p['a'] * y_ss - z_ss])
        if not np.all(np.isfinite(gap)) or np.max(np.abs(gap)) > 1e-8 * max(1.0, abs(y_ss)):
            raise SolverError(f"Steady state {steady_state} does not solve the model",
                              eu=(0, 0))

        A = np.array([[1.0, 0.0],
                      [0.0, p['a']]])
        B = np.array([[p['rho'], 0.0],
                      [-1.0, 1.0]])
        return KleinForm(A, B, n_backward=1)

    def klein_shock_loading(self, p: Mapping[str, float]) -> np.ndarray:
        return np.array([[1.0]])

    def measurement(self, p: Mapping[str, float], transition: Transition) -> Measurement:
        ZZ = np.zeros((2, self.n_states_augmented))
        ZZ[0, self.state_index('z')] = 1.0
        ZZ[1, self.state_index('y')] = 1.0
        return Measurement(ZZ=ZZ,
                           DD=self.steady_state(p),
                           QQ=np.array([[p['sig_z'] ** 2]]),
                           EE=np.zeros((2, 2)))

    def pseudo_measurement(self, p: Mapping[str, float],
                           transition: Transition) -> PseudoMeasurement:
        # (1 - aρ)·y_t, equal to z_t in equilibrium
        ZZ_pseudo = np.zeros((1, self.n_states_augmented))
        ZZ_pseudo[0, self.state_index('y')] = 1.0 - p['a'] * p['rho']
        return PseudoMeasurement(ZZ_pseudo, np.zeros(1))
