"""
DSGE Model Specification
=========================

Base class for DSGE models used by the forecast pipeline.

A model supplies:
- Names of model states, augmented states, shocks, observables and
  pseudo-observables
- Parameters with initial values and (optional) priors
- Equilibrium conditions in gensys form (eqcond) or Klein form (klein_form)
- Measurement and pseudo-measurement equations
- State augmentation (auxiliary lags, growth-rate helpers)
- Alternative monetary policy regimes

Parameter values are passed around as read-only mappings so that a draw's
parameters cannot be modified by any stage of the forecast.
"""

from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError
from .priors import Prior
from .settings import build_settings, get_setting
from .state_space import (KleinForm, Measurement, PseudoMeasurement,
                          StructuralForm, Transition)


class Parameter:
    """Model parameter with an initial value and optional prior."""

    def __init__(self, name: str, value: float, prior: Optional[Prior] = None,
                 description: str = ""):
        self.name = name
        self.value = float(value)
        self.prior = prior
        self.description = description

    @property
    def fixed(self) -> bool:
        return self.prior is None

    def __repr__(self) -> str:
        tag = "fixed" if self.fixed else type(self.prior).__name__
        return f"Parameter({self.name}={self.value:g}, {tag})"


class PolicyRegime:
    """
    Monetary policy regime.

    The baseline 'historical' regime uses the model's own equilibrium
    conditions. Alternative regimes supply a replacement eqcond callable
    with signature (model, params) -> StructuralForm (or KleinForm for
    models solved with Klein).
    """

    def __init__(self, key: str, eqcond: Optional[Callable] = None,
                 description: str = ""):
        self.key = key
        self.eqcond = eqcond
        self.description = description

    @property
    def is_baseline(self) -> bool:
        return self.eqcond is None

    def __repr__(self) -> str:
        return f"PolicyRegime('{self.key}')"


HISTORICAL = PolicyRegime('historical', description="Estimated policy rule")


class DSGEModel:
    """Base class for DSGE models."""

    def __init__(self, name: str = "DSGE Model",
                 settings: Optional[Dict] = None):
        """
        Initialize DSGE model.

        Args:
            name: Model name
            settings: Overrides of the default settings
        """
        self.name = name
        self.settings = build_settings(settings)

        # Variable names (to be filled by subclass)
        self.state_names: List[str] = []
        self.augmented_state_names: List[str] = []
        self.shock_names: List[str] = []
        self.observable_names: List[str] = []
        self.pseudo_observable_names: List[str] = []

        self.parameters: List[Parameter] = []
        self.regimes: Dict[str, PolicyRegime] = {HISTORICAL.key: HISTORICAL}

    def __repr__(self) -> str:
        return (f"{type(self).__name__}('{self.name}', states={self.n_states_augmented}, "
                f"shocks={self.n_shocks}, observables={self.n_observables})")

    # ------------------------------------------------------------------
    # Settings and dimensions
    # ------------------------------------------------------------------

    def get_setting(self, key: str):
        return get_setting(self.settings, key)

    @property
    def solution_method(self) -> str:
        return self.settings['solution_method']

    @property
    def all_state_names(self) -> List[str]:
        return list(self.state_names) + list(self.augmented_state_names)

    @property
    def n_states(self) -> int:
        return len(self.state_names)

    @property
    def n_states_augmented(self) -> int:
        return len(self.state_names) + len(self.augmented_state_names)

    @property
    def n_shocks(self) -> int:
        return len(self.shock_names)

    @property
    def n_observables(self) -> int:
        return len(self.observable_names)

    @property
    def n_pseudo_observables(self) -> int:
        return len(self.pseudo_observable_names)

    def _index(self, names: Sequence[str], name: str, kind: str) -> int:
        try:
            return list(names).index(name)
        except ValueError:
            raise ConfigurationError(f"Unknown {kind} '{name}' in model {self.name}")

    def state_index(self, name: str) -> int:
        return self._index(self.all_state_names, name, "state")

    def shock_index(self, name: str) -> int:
        return self._index(self.shock_names, name, "shock")

    def observable_index(self, name: str) -> int:
        return self._index(self.observable_names, name, "observable")

    def pseudo_observable_index(self, name: str) -> int:
        return self._index(self.pseudo_observable_names, name, "pseudo-observable")

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def parameter_names(self) -> List[str]:
        return [param.name for param in self.parameters]

    @property
    def n_parameters(self) -> int:
        return len(self.parameters)

    def parameter_values(self) -> np.ndarray:
        """Initial parameter vector."""
        return np.array([param.value for param in self.parameters])

    def parameter_snapshot(self, values: Optional[Union[Sequence[float], Mapping]] = None
                           ) -> Mapping[str, float]:
        """
        Build the read-only parameter mapping used by every stage of a draw.

        Args:
            values: Parameter vector (ordered as self.parameters), a mapping
                of parameter overrides, or None for initial values

        Returns:
            Read-only mapping including derived parameters
        """
        params = {param.name: param.value for param in self.parameters}

        if isinstance(values, Mapping):
            unknown = set(values) - set(params)
            if unknown:
                raise ConfigurationError(f"Unknown parameters: {sorted(unknown)}")
            params.update({key: float(val) for key, val in values.items()})
        elif values is not None:
            values = np.asarray(values, dtype=float).reshape(-1)
            if len(values) != self.n_parameters:
                raise ConfigurationError(
                    f"Parameter vector has length {len(values)}, "
                    f"model {self.name} has {self.n_parameters} parameters")
            params.update(zip(self.parameter_names, values.tolist()))

        params.update(self.derived_parameters(params))
        return MappingProxyType(params)

    def derived_parameters(self, params: Mapping[str, float]) -> Dict[str, float]:
        """Parameters computed from the primitive ones. Override in subclass."""
        return {}

    def draw_from_prior(self, rng: np.random.Generator) -> np.ndarray:
        """
        Draw a parameter vector from the prior.

        Parameters without a prior keep their initial value.
        """
        return np.array([param.value if param.fixed else param.prior.draw(rng)
                         for param in self.parameters])

    # ------------------------------------------------------------------
    # Policy regimes
    # ------------------------------------------------------------------

    def add_regime(self, regime: PolicyRegime) -> None:
        self.regimes[regime.key] = regime

    def get_regime(self, regime: Union[str, PolicyRegime, None]) -> PolicyRegime:
        if regime is None:
            return HISTORICAL
        if isinstance(regime, PolicyRegime):
            return regime
        if regime not in self.regimes:
            raise ConfigurationError(
                f"Unknown policy regime '{regime}'. Available: {list(self.regimes)}")
        return self.regimes[regime]

    # ------------------------------------------------------------------
    # Model equations (override in subclass)
    # ------------------------------------------------------------------

    def eqcond(self, p: Mapping[str, float]) -> StructuralForm:
        """Equilibrium conditions Γ0, Γ1, C, Ψ, Π for gensys."""
        raise NotImplementedError

    def steady_state(self, p: Mapping[str, float]) -> np.ndarray:
        """Steady-state levels of the model states, used by Klein models."""
        raise NotImplementedError

    def klein_form(self, p: Mapping[str, float], steady_state: np.ndarray) -> KleinForm:
        """Equilibrium conditions A, B for the Klein solver."""
        raise NotImplementedError

    def klein_shock_loading(self, p: Mapping[str, float]) -> np.ndarray:
        """Impact of shocks on the predetermined variables (n_k x n_shocks)."""
        raise NotImplementedError

    def shock_loading(self, p: Mapping[str, float], TTT_jump: np.ndarray) -> np.ndarray:
        """
        Shock impact on [predetermined; jumps] for a Klein solution.

        Shocks enter the predetermined block directly and the jump block
        through the decision rule u_t = TTT_jump·k_t.
        """
        R_k = self.klein_shock_loading(p)
        return np.vstack([R_k, TTT_jump @ R_k])

    def augment_states(self, p: Mapping[str, float], TTT: np.ndarray,
                       RRR: np.ndarray, CCC: np.ndarray
                       ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Extend the solved transition with auxiliary states.

        The default adds none. Overrides must keep the model-state block of
        the returned matrices equal to the input.
        """
        return TTT, RRR, CCC

    def measurement(self, p: Mapping[str, float], transition: Transition) -> Measurement:
        """Measurement equation ZZ, DD, QQ, EE."""
        raise NotImplementedError

    def pseudo_measurement(self, p: Mapping[str, float],
                           transition: Transition) -> Optional[PseudoMeasurement]:
        """Pseudo-measurement equation. None if the model defines no pseudo-observables."""
        return None
