"""
Parameter Draws
===============

Where forecast parameter vectors come from, and how a large draw ensemble
is split into blocks.

Input types:
- 'init': the model's initial parameter values
- 'mode', 'mean': a single posterior summary
- 'full': every (thinned) posterior draw
- 'subset': caller-selected posterior draws
- 'prior': draws from the prior, kept only if the model is determinate
- 'init_draw_shocks', 'mode_draw_shocks': repeated single parameter
  vectors, with uncertainty coming from drawn states and shocks
"""

import os
from typing import List, Optional, Sequence, Tuple

import numpy as np
import scipy.io

from .errors import ConfigurationError, SolverError
from .model import DSGEModel
from .system import compute_system


SINGLE_DRAW_TYPES = ('init', 'mode', 'mean')
MULTI_DRAW_TYPES = ('full', 'subset', 'prior', 'init_draw_shocks', 'mode_draw_shocks')
INPUT_TYPES = SINGLE_DRAW_TYPES + MULTI_DRAW_TYPES


class DrawSource:
    """
    Posterior draws and summaries.

    Args:
        draws: Posterior draws (n_draws x n_params)
        mode: Posterior mode (n_params,)
        mean: Posterior mean (n_params,), computed from draws if None
    """

    def __init__(self, draws: Optional[np.ndarray] = None,
                 mode: Optional[np.ndarray] = None,
                 mean: Optional[np.ndarray] = None):
        self.draws = None if draws is None else np.atleast_2d(np.asarray(draws, dtype=float))
        self.mode = None if mode is None else np.asarray(mode, dtype=float).ravel()
        self._mean = None if mean is None else np.asarray(mean, dtype=float).ravel()

    @classmethod
    def from_mat(cls, filepath: str) -> 'DrawSource':
        """
        Load posterior draws from a .mat file.

        Draws are read from 'mhparams' (or 'params'), summaries from 'mode'
        and 'mean' when present.
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File not found: {filepath}")
        mat = scipy.io.loadmat(filepath)
        draws = mat.get('mhparams', mat.get('params'))
        return cls(draws=draws, mode=mat.get('mode'), mean=mat.get('mean'))

    @property
    def n_draws(self) -> int:
        return 0 if self.draws is None else self.draws.shape[0]

    @property
    def mean(self) -> Optional[np.ndarray]:
        if self._mean is not None:
            return self._mean
        if self.draws is not None:
            return self.draws.mean(axis=0)
        return None

    def get(self, inds: Sequence[int]) -> np.ndarray:
        """Draws at the given indices (k x n_params)."""
        if self.draws is None:
            raise ConfigurationError("No posterior draws available")
        return self.draws[np.asarray(inds, dtype=int)]


def forecast_uncertainty(model: DSGEModel, input_type: str) -> bool:
    """
    Whether states and shocks are drawn (True) or set to their means.

    Defaults to False for single-draw types and 'prior', True for 'full',
    'subset' and the *_draw_shocks types. The model setting
    'forecast_uncertainty_override' takes precedence when not None.
    """
    override = model.get_setting('forecast_uncertainty_override')
    if override is not None:
        return bool(override)
    if input_type not in INPUT_TYPES:
        raise ConfigurationError(f"Invalid input_type: {input_type}")
    return input_type in ('full', 'subset', 'init_draw_shocks', 'mode_draw_shocks')


def n_forecast_draws(model: DSGEModel, input_type: str,
                     source: Optional[DrawSource] = None,
                     subset_inds: Optional[Sequence[int]] = None) -> int:
    """Number of parameter vectors the input type produces before thinning."""
    if input_type in SINGLE_DRAW_TYPES:
        return 1
    if input_type == 'full':
        if source is None or source.n_draws == 0:
            raise ConfigurationError("input_type 'full' requires posterior draws")
        return source.n_draws
    if input_type == 'subset':
        if subset_inds is None:
            raise ConfigurationError("input_type 'subset' requires subset_inds")
        return len(subset_inds)
    if input_type in MULTI_DRAW_TYPES:
        return int(model.get_setting('n_forecast_draws'))
    raise ConfigurationError(f"Invalid input_type: {input_type}")


def forecast_block_inds(n_draws: int, block_size: int, jstep: int = 1,
                        subset_inds: Optional[Sequence[int]] = None
                        ) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Split the (thinned) draw indices into blocks.

    Args:
        n_draws: Number of draws in the ensemble
        block_size: Thinned draws per block (the last block may be smaller)
        jstep: Keep every jstep-th draw
        subset_inds: Restrict to these draw indices

    Returns:
        block_inds: Source draw indices per block
        block_inds_thin: Output positions per block
    """
    if block_size < 1 or jstep < 1:
        raise ConfigurationError("block_size and jstep must be positive")

    if subset_inds is None:
        inds = np.arange(n_draws)
    else:
        inds = np.asarray(subset_inds, dtype=int)
        if np.any(inds < 0) or np.any(inds >= n_draws):
            raise ConfigurationError(f"subset_inds out of range for {n_draws} draws")
    inds = inds[::jstep]

    block_inds = []
    block_inds_thin = []
    for start in range(0, len(inds), block_size):
        stop = min(start + block_size, len(inds))
        block_inds.append(inds[start:stop])
        block_inds_thin.append(np.arange(start, stop))

    return block_inds, block_inds_thin


def draw_admissible_prior(model: DSGEModel, rng: np.random.Generator) -> np.ndarray:
    """
    Draw from the prior until the model has a unique stable solution.

    Raises:
        ConfigurationError: No admissible draw within n_prior_draw_attempts
    """
    attempts = int(model.get_setting('n_prior_draw_attempts'))
    for _ in range(attempts):
        values = model.draw_from_prior(rng)
        try:
            compute_system(model, model.parameter_snapshot(values))
        except SolverError:
            continue
        return values
    raise ConfigurationError(
        f"No determinate prior draw for model {model.name} after {attempts} attempts")


def load_draws(model: DSGEModel, input_type: str,
               source: Optional[DrawSource] = None,
               block_inds: Optional[Sequence[int]] = None,
               rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Parameter vectors for a forecast.

    Args:
        model: DSGE model
        input_type: One of INPUT_TYPES
        source: Posterior draws and summaries
        block_inds: Draw indices of the current block (multi-draw types)
        rng: Random number generator for prior draws

    Returns:
        (n_params,) for single-draw types, (k x n_params) otherwise
    """
    if input_type == 'init':
        return model.parameter_values()

    if input_type == 'mode':
        if source is None or source.mode is None:
            raise ConfigurationError("input_type 'mode' requires a posterior mode")
        return source.mode

    if input_type == 'mean':
        if source is None or source.mean is None:
            raise ConfigurationError("input_type 'mean' requires a posterior mean or draws")
        return source.mean

    if block_inds is None:
        raise ConfigurationError(f"input_type '{input_type}' requires block indices")
    k = len(block_inds)

    if input_type in ('full', 'subset'):
        if source is None:
            raise ConfigurationError(f"input_type '{input_type}' requires posterior draws")
        return source.get(block_inds)

    if input_type == 'init_draw_shocks':
        return np.tile(model.parameter_values(), (k, 1))

    if input_type == 'mode_draw_shocks':
        if source is None or source.mode is None:
            raise ConfigurationError("input_type 'mode_draw_shocks' requires a posterior mode")
        return np.tile(source.mode, (k, 1))

    if input_type == 'prior':
        if rng is None:
            raise ConfigurationError("Prior draws require a random number generator")
        return np.vstack([draw_admissible_prior(model, rng) for _ in range(k)])

    raise ConfigurationError(f"Invalid input_type: {input_type}")
