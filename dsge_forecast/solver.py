"""
Rational Expectations Solver
=============================

Solves log-linearized DSGE models and augments the solution with auxiliary
states. Two solution methods are supported, selected by the model's
'solution_method' setting:

- 'gensys': Sims (2002), model in canonical form
      Γ0·y_t = Γ1·y_{t-1} + C + Ψ·ε_t + Π·η_t
- 'klein': Klein (2000), model in the form
      A·E_t x_{t+1} = B·x_t

Either way the result is the transition equation

    s_t = TTT·s_{t-1} + RRR·ε_t + CCC

over the augmented state vector (model states followed by auxiliary states).
"""

from typing import Mapping, Optional, Tuple, Union

import numpy as np

from .errors import ConfigurationError, SolverError
from .gensys import gensys
from .klein import klein
from .model import DSGEModel, PolicyRegime
from .state_space import KleinForm, StructuralForm, Transition


class DSGESolver:
    """Solver for a model's equilibrium conditions under a policy regime."""

    def __init__(self, model: DSGEModel):
        """
        Initialize DSGE solver.

        Args:
            model: Model supplying eqcond / klein_form and augment_states
        """
        self.model = model
        self.method = model.solution_method
        if self.method == 'gensys':
            self._solve_form = self._solve_gensys
        elif self.method == 'klein':
            self._solve_form = self._solve_klein
        else:
            raise ConfigurationError(f"Unknown solution method: {self.method}")

    def solve(self, p: Mapping[str, float],
              regime: Union[str, PolicyRegime, None] = None,
              apply_altpolicy: bool = False) -> Transition:
        """
        Solve the model and augment the states.

        Args:
            p: Parameter mapping (from model.parameter_snapshot)
            regime: Policy regime key or object
            apply_altpolicy: Use the regime's equilibrium conditions. When
                False the baseline conditions are used whatever the regime.

        Returns:
            Transition (TTT, RRR, CCC) over the augmented states

        Raises:
            SolverError: No unique stable solution for this draw
        """
        regime = self.model.get_regime(regime)
        form = self.equilibrium_conditions(p, regime, apply_altpolicy)

        TTT, RRR, CCC = self._solve_form(form, p)

        n = self.model.n_states
        if TTT.shape != (n, n):
            raise ConfigurationError(
                f"Solution has {TTT.shape[0]} states, model {self.model.name} "
                f"declares {n}")

        TTT_aug, RRR_aug, CCC_aug = self.model.augment_states(p, TTT, RRR, CCC)

        n_aug = self.model.n_states_augmented
        if TTT_aug.shape != (n_aug, n_aug):
            raise ConfigurationError(
                f"Augmented TTT has shape {TTT_aug.shape}, expected {(n_aug, n_aug)}")

        return Transition(TTT_aug, RRR_aug, CCC_aug)

    def equilibrium_conditions(self, p: Mapping[str, float], regime: PolicyRegime,
                               apply_altpolicy: bool) -> Union[StructuralForm, KleinForm]:
        if apply_altpolicy and not regime.is_baseline:
            return regime.eqcond(self.model, p)
        if self.method == 'gensys':
            return self.model.eqcond(p)
        return self.model.klein_form(p, self.model.steady_state(p))

    def _solve_gensys(self, form: StructuralForm, p: Mapping[str, float]
                      ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if not isinstance(form, StructuralForm):
            raise ConfigurationError("gensys requires a StructuralForm")

        TTT, CCC, RRR, _ = gensys(form.Gamma0, form.Gamma1, form.C, form.Psi, form.Pi,
                                  div=self.model.get_setting('gensys_div'),
                                  realsmall=self.model.get_setting('gensys_realsmall'))
        return TTT, RRR, CCC

    def _solve_klein(self, form: KleinForm, p: Mapping[str, float]
                     ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if not isinstance(form, KleinForm):
            raise ConfigurationError("Klein requires a KleinForm")

        TTT_jump, TTT_state = klein(form.A, form.B, form.n_backward,
                                    div=self.model.get_setting('klein_div'),
                                    realsmall=self.model.get_setting('klein_realsmall'))
        return klein_transition_matrices(self.model, p, TTT_state, TTT_jump)


def klein_transition_matrices(model: DSGEModel, p: Mapping[str, float],
                              TTT_state: np.ndarray, TTT_jump: np.ndarray
                              ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Stack a Klein solution into a gensys-style transition.

    With s_t = [k_t; u_t], k_t = P·k_{t-1} + R_k·ε_t and u_t = F·k_t:

        TTT = [[P,   0],
               [F·P, 0]],   RRR = [R_k; F·R_k],   CCC = 0

    Args:
        model: Model providing shock_loading
        p: Parameter mapping
        TTT_state: Law of motion P of the predetermined variables (n_k x n_k)
        TTT_jump: Decision rule F of the jump variables (n_u x n_k)

    Returns:
        (TTT, RRR, CCC)
    """
    n_k = TTT_state.shape[0]
    n = n_k + TTT_jump.shape[0]

    TTT = np.zeros((n, n))
    TTT[:n_k, :n_k] = TTT_state
    TTT[n_k:, :n_k] = TTT_jump @ TTT_state

    RRR = model.shock_loading(p, TTT_jump)
    if RRR.shape != (n, model.n_shocks):
        raise ConfigurationError(
            f"Shock loading has shape {RRR.shape}, expected {(n, model.n_shocks)}")

    return TTT, RRR, np.zeros(n)


def solve(model: DSGEModel, p: Mapping[str, float],
          regime: Union[str, PolicyRegime, None] = None,
          apply_altpolicy: bool = False) -> Transition:
    """
    Convenience function to solve a model in one step.

    Args:
        model: DSGE model
        p: Parameter mapping
        regime: Policy regime
        apply_altpolicy: Use the regime's equilibrium conditions

    Returns:
        Transition over the augmented states
    """
    return DSGESolver(model).solve(p, regime, apply_altpolicy)


def is_determinate(model: DSGEModel, p: Mapping[str, float]) -> bool:
    """True if the baseline equilibrium conditions have a unique stable solution."""
    try:
        solve(model, p)
    except SolverError:
        return False
    return True
