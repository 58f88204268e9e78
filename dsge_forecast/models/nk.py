"""
Three-Equation New Keynesian Model
==================================

    IS:      y_t = E_t y_{t+1} - (1/σ)(R_t - E_t π_{t+1}) + z^d_t
    PC:      π_t = β·E_t π_{t+1} + κ·y_t + z^s_t
    Taylor:  R_t = ρ_R·R_{t-1} + (1 - ρ_R)(φ_π·π_t + φ_y·y_t) + rm_t

    z^d_t = ρ_d·z^d_{t-1} + ε^d_t
    z^s_t = ρ_s·z^s_{t-1} + ε^s_t
    rm_t  = ρ_m·rm_{t-1} + rm_ant1_{t-1} + ε^m_t

Anticipated policy shocks enter through the chain

    rm_antk_t = rm_ant(k+1)_{t-1} + ε^m_{k,t},   rm_antK_t = ε^m_{K,t}

so that ε^m_{k,t} (rm_shlk) moves rm k periods later. These shocks keep
the observed nominal rate above its floor in bounded forecasts.

Observables are output growth, inflation and the nominal rate (quarterly
percent). The augmented state y_t1 = y_{t-1} measures output growth.
"""

from typing import Dict, Mapping, Optional

import numpy as np

from ..model import DSGEModel, Parameter, PolicyRegime
from ..priors import create_prior
from ..state_space import Measurement, PseudoMeasurement, StructuralForm, Transition


def strict_taylor_eqcond(model: 'NKModel', p: Mapping[str, float]) -> StructuralForm:
    """Equilibrium conditions under a strict, non-inertial Taylor rule."""
    alt = dict(p)
    alt.update(phi_pi=2.5, rho_R=0.0)
    return model.eqcond(alt)


class NKModel(DSGEModel):
    """Three-equation New Keynesian model with anticipated policy shocks."""

    def __init__(self, n_anticipated: int = 4, settings: Optional[Dict] = None):
        """
        Initialize the model.

        Args:
            n_anticipated: Number of anticipated policy shock horizons
            settings: Overrides of the default settings
        """
        self.n_anticipated = n_anticipated
        ant_shocks = [f'rm_shl{k}' for k in range(1, n_anticipated + 1)]

        defaults = {
            'bounded_observable': 'obs_nominalrate',
            'forecast_floor_value': 0.0,
            'anticipated_shocks': ['rm_sh'] + ant_shocks,
        }
        defaults.update(settings or {})
        super().__init__("New Keynesian", defaults)

        self.state_names = (['y', 'pi', 'R', 'Ey', 'Epi', 'z_d', 'z_s', 'rm'] +
                            [f'rm_ant{k}' for k in range(1, n_anticipated + 1)])
        self.augmented_state_names = ['y_t1']
        self.shock_names = ['d_sh', 's_sh', 'rm_sh'] + ant_shocks
        self.observable_names = ['obs_gdp', 'obs_inflation', 'obs_nominalrate']
        self.pseudo_observable_names = ['output_gap', 'real_rate']

        self._set_default_parameters()

        self.add_regime(PolicyRegime('strict_taylor', strict_taylor_eqcond,
                                     "Taylor rule with φ_π = 2.5 and no smoothing"))

    def _set_default_parameters(self):
        self.parameters = [
            Parameter('sigma', 1.0, create_prior('normal', mean=1.0, std=0.25, lower=0.25),
                      "Inverse intertemporal elasticity"),
            Parameter('beta', 0.99, None, "Discount factor"),
            Parameter('kappa', 0.1, create_prior('gamma', mean=0.1, std=0.05),
                      "Phillips curve slope"),
            Parameter('phi_pi', 1.5, create_prior('normal', mean=1.5, std=0.25, lower=1.01),
                      "Policy response to inflation"),
            Parameter('phi_y', 0.125, create_prior('normal', mean=0.125, std=0.05, lower=0.0),
                      "Policy response to output"),
            Parameter('rho_R', 0.7, create_prior('beta', mean=0.7, std=0.1),
                      "Interest rate smoothing"),
            Parameter('rho_d', 0.8, create_prior('beta', mean=0.5, std=0.2),
                      "Demand shock persistence"),
            Parameter('rho_s', 0.5, create_prior('beta', mean=0.5, std=0.2),
                      "Supply shock persistence"),
            Parameter('rho_m', 0.3, create_prior('beta', mean=0.3, std=0.1),
                      "Policy shock persistence"),
            Parameter('sig_d', 0.5, create_prior('invgamma', s=0.5, nu=4),
                      "Std. dev. of demand shock"),
            Parameter('sig_s', 0.2, create_prior('invgamma', s=0.2, nu=4),
                      "Std. dev. of supply shock"),
            Parameter('sig_m', 0.1, create_prior('invgamma', s=0.1, nu=4),
                      "Std. dev. of policy shock"),
            Parameter('sig_ant', 0.05, None, "Std. dev. of anticipated policy shocks"),
            Parameter('pi_ss', 0.5, None, "Steady-state quarterly inflation"),
            Parameter('r_ss', 0.5, None, "Steady-state quarterly real rate"),
            Parameter('gamma_ss', 0.4, None, "Steady-state quarterly output growth"),
        ]

    def eqcond(self, p: Mapping[str, float]) -> StructuralForm:
        n = self.n_states
        idx = {name: i for i, name in enumerate(self.state_names)}
        sh = {name: i for i, name in enumerate(self.shock_names)}

        Gamma0 = np.zeros((n, n))
        Gamma1 = np.zeros((n, n))
        Psi = np.zeros((n, self.n_shocks))
        Pi = np.zeros((n, 2))

        # IS curve
        eq = idx['y']
        Gamma0[eq, idx['y']] = 1.0
        Gamma0[eq, idx['Ey']] = -1.0
        Gamma0[eq, idx['R']] = 1.0 / p['sigma']
        Gamma0[eq, idx['Epi']] = -1.0 / p['sigma']
        Gamma0[eq, idx['z_d']] = -1.0

        # Phillips curve
        eq = idx['pi']
        Gamma0[eq, idx['pi']] = 1.0
        Gamma0[eq, idx['Epi']] = -p['beta']
        Gamma0[eq, idx['y']] = -p['kappa']
        Gamma0[eq, idx['z_s']] = -1.0

        # Taylor rule
        eq = idx['R']
        Gamma0[eq, idx['R']] = 1.0
        Gamma0[eq, idx['pi']] = -(1.0 - p['rho_R']) * p['phi_pi']
        Gamma0[eq, idx['y']] = -(1.0 - p['rho_R']) * p['phi_y']
        Gamma0[eq, idx['rm']] = -1.0
        Gamma1[eq, idx['R']] = p['rho_R']

        # Expectational errors
        for i, (var, expectation) in enumerate((('y', 'Ey'), ('pi', 'Epi'))):
            eq = idx[expectation]
            Gamma0[eq, idx[var]] = 1.0
            Gamma1[eq, idx[expectation]] = 1.0
            Pi[eq, i] = 1.0

        # Exogenous processes
        for state, rho, shock in (('z_d', 'rho_d', 'd_sh'), ('z_s', 'rho_s', 's_sh')):
            eq = idx[state]
            Gamma0[eq, eq] = 1.0
            Gamma1[eq, eq] = p[rho]
            Psi[eq, sh[shock]] = 1.0

        eq = idx['rm']
        Gamma0[eq, eq] = 1.0
        Gamma1[eq, eq] = p['rho_m']
        Psi[eq, sh['rm_sh']] = 1.0
        if self.n_anticipated > 0:
            Gamma1[eq, idx['rm_ant1']] = 1.0

        # Anticipated policy shock chain
        for k in range(1, self.n_anticipated + 1):
            eq = idx[f'rm_ant{k}']
            Gamma0[eq, eq] = 1.0
            if k < self.n_anticipated:
                Gamma1[eq, idx[f'rm_ant{k + 1}']] = 1.0
            Psi[eq, sh[f'rm_shl{k}']] = 1.0

        return StructuralForm(Gamma0, Gamma1, np.zeros(n), Psi, Pi)

    def augment_states(self, p, TTT, RRR, CCC):
        n = self.n_states
        TTT_aug = np.zeros((n + 1, n + 1))
        TTT_aug[:n, :n] = TTT
        TTT_aug[n, self.state_index('y')] = 1.0

        RRR_aug = np.vstack([RRR, np.zeros((1, RRR.shape[1]))])
        CCC_aug = np.append(CCC, 0.0)
        return TTT_aug, RRR_aug, CCC_aug

    def measurement(self, p: Mapping[str, float], transition: Transition) -> Measurement:
        n = self.n_states_augmented
        ZZ = np.zeros((3, n))
        DD = np.zeros(3)

        # Output growth
        ZZ[0, self.state_index('y')] = 1.0
        ZZ[0, self.state_index('y_t1')] = -1.0
        DD[0] = p['gamma_ss']

        # Inflation
        ZZ[1, self.state_index('pi')] = 1.0
        DD[1] = p['pi_ss']

        # Nominal rate
        ZZ[2, self.state_index('R')] = 1.0
        DD[2] = p['r_ss'] + p['pi_ss']

        shock_sd = np.array([p['sig_d'], p['sig_s'], p['sig_m']] +
                            [p['sig_ant']] * self.n_anticipated)
        return Measurement(ZZ=ZZ, DD=DD, QQ=np.diag(shock_sd ** 2), EE=np.zeros((3, 3)))

    def pseudo_measurement(self, p: Mapping[str, float],
                           transition: Transition) -> PseudoMeasurement:
        ZZ_pseudo = np.zeros((2, self.n_states_augmented))
        ZZ_pseudo[0, self.state_index('y')] = 1.0
        ZZ_pseudo[1, self.state_index('R')] = 1.0
        ZZ_pseudo[1, self.state_index('Epi')] = -1.0
        return PseudoMeasurement(ZZ_pseudo, np.array([0.0, p['r_ss']]))
