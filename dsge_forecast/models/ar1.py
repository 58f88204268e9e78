"""
AR(1) Model
===========

    x_t = ρ·x_{t-1} + ε_t,   ε_t ~ N(0, σ²)
    obs_x_t = μ + x_t

Augmented with x_t1 (= x_{t-1}) so that the pseudo-observable
x_change = x_t - x_{t-1} can be measured.
"""

from typing import Dict, Mapping, Optional

import numpy as np

from ..model import DSGEModel, Parameter
from ..priors import create_prior
from ..state_space import Measurement, PseudoMeasurement, StructuralForm, Transition


class AR1Model(DSGEModel):
    """Univariate AR(1)."""

    def __init__(self, settings: Optional[Dict] = None):
        super().__init__("AR(1)", settings)

        self.state_names = ['x']
        self.augmented_state_names = ['x_t1']
        self.shock_names = ['x_sh']
        self.observable_names = ['obs_x']
        self.pseudo_observable_names = ['x_change']

        self.parameters = [
            Parameter('rho', 0.9, create_prior('beta', mean=0.5, std=0.2),
                      "Persistence"),
            Parameter('sigma', 1.0, create_prior('invgamma', s=1.0, nu=4),
                      "Shock standard deviation"),
            Parameter('mu', 0.0, create_prior('normal', mean=0.0, std=1.0),
                      "Mean of the observable"),
        ]

    def eqcond(self, p: Mapping[str, float]) -> StructuralForm:
        return StructuralForm(Gamma0=np.eye(1),
                              Gamma1=np.array([[p['rho']]]),
                              C=np.zeros(1),
                              Psi=np.eye(1),
                              Pi=np.zeros((1, 0)))

    def augment_states(self, p, TTT, RRR, CCC):
        TTT_aug = np.zeros((2, 2))
        TTT_aug[:1, :1] = TTT
        TTT_aug[1, 0] = 1.0
        RRR_aug = np.vstack([RRR, np.zeros((1, RRR.shape[1]))])
        CCC_aug = np.append(CCC, 0.0)
        return TTT_aug, RRR_aug, CCC_aug

    def measurement(self, p: Mapping[str, float], transition: Transition) -> Measurement:
        return Measurement(ZZ=np.array([[1.0, 0.0]]),
                           DD=np.array([p['mu']]),
                           QQ=np.array([[p['sigma'] ** 2]]),
                           EE=np.zeros((1, 1)))

    def pseudo_measurement(self, p: Mapping[str, float],
                           transition: Transition) -> PseudoMeasurement:
        return PseudoMeasurement(ZZ_pseudo=np.array([[1.0, -1.0]]),
                                 DD_pseudo=np.zeros(1))
