"""
Model Settings
==============

Default computational settings shared by all models. A model copies
DEFAULT_SETTINGS at construction time and applies its own overrides; the
resulting dict is read-only for the rest of the forecast.
"""

from typing import Any, Dict, Optional

from .errors import ConfigurationError


DEFAULT_SETTINGS = {
    # Solution
    'solution_method': 'gensys',      # 'gensys' or 'klein'
    'gensys_div': 1.0 + 1e-6,         # Stable/explosive cutoff for gensys
    'gensys_realsmall': 1e-6,         # Numerical zero for gensys rank checks
    'klein_div': 1.0 + 1e-6,          # Stable/explosive cutoff for Klein
    'klein_realsmall': 1e-6,          # Numerical zero for Klein

    # Horizons
    'forecast_horizons': 12,
    'impulse_response_horizons': 20,
    'n_conditional_periods': 1,       # Nowcast rows at the end of the data
    'nowcast_reporting': 'history',   # 'history' or 'forecast'

    # Draw blocks
    'forecast_block_size': 25,
    'forecast_jstep': 1,              # Thinning step over the draw ensemble
    'n_forecast_draws': 100,          # For prior and *_draw_shocks inputs
    'n_prior_draw_attempts': 100,
    'draw_failure_policy': 'drop',    # 'drop' or 'abort'
    'forecast_start_block': 0,        # Resume a blocked run at this block

    # Bounded forecasts
    'bounded_observable': None,
    'forecast_floor_value': 0.0,
    'floor_tolerance': 1e-8,
    'anticipated_shocks': [],         # Ordered by horizon, contemporaneous first

    # Uncertainty and parallelism
    'forecast_uncertainty_override': None,
    'use_parallel_workers': False,
    'n_jobs': -1,
    'parallel_backend': 'loky',
    'seed': None,

    # Filter initialization
    'initial_cov_scale': 1e6,
}

ALLOWED_VALUES = {
    'solution_method': ('gensys', 'klein'),
    'nowcast_reporting': ('history', 'forecast'),
    'draw_failure_policy': ('drop', 'abort'),
    'forecast_uncertainty_override': (None, True, False),
}


def build_settings(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge model-specific overrides into the default settings.

    Args:
        overrides: Dictionary of setting values to replace

    Returns:
        Validated settings dictionary
    """
    settings = {key: (list(val) if isinstance(val, list) else val)
                for key, val in DEFAULT_SETTINGS.items()}

    for key, val in (overrides or {}).items():
        if key not in DEFAULT_SETTINGS:
            raise ConfigurationError(f"Unknown setting: {key}")
        settings[key] = val

    validate_settings(settings)
    return settings


def validate_settings(settings: Dict[str, Any]) -> None:
    """Check enumerated and positive-integer settings."""
    for key, allowed in ALLOWED_VALUES.items():
        if settings[key] not in allowed:
            raise ConfigurationError(
                f"Invalid value for setting '{key}': {settings[key]!r}. "
                f"Allowed: {list(allowed)}")

    for key in ('forecast_horizons', 'impulse_response_horizons',
                'forecast_block_size', 'forecast_jstep', 'n_forecast_draws',
                'n_prior_draw_attempts'):
        if int(settings[key]) < 1:
            raise ConfigurationError(f"Setting '{key}' must be a positive integer")

    if int(settings['forecast_start_block']) < 0:
        raise ConfigurationError("Setting 'forecast_start_block' cannot be negative")

    if int(settings['n_conditional_periods']) < 0:
        raise ConfigurationError("Setting 'n_conditional_periods' cannot be negative")


def get_setting(settings: Dict[str, Any], key: str) -> Any:
    """Look up a setting, failing loudly on typos."""
    if key not in settings:
        raise ConfigurationError(f"Unknown setting: {key}")
    return settings[key]
