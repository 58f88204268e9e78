"""
DSGE Forecasting Package
========================

Forecasting with linearized DSGE models: solve each parameter draw into a
state-space system, filter and smooth the data, then compute forecasts,
bounded forecasts, shock decompositions and impulse responses over
ensembles of draws.

Modules:
    - errors: Exception types
    - settings: Default model settings
    - priors: Prior distribution classes
    - model: DSGE model base class and policy regimes
    - gensys, klein: Rational expectations solvers
    - solver, system: Solution and state-space assembly
    - kalman, smoothers: Filtering and smoothing
    - forecast, decomposition: Forecasts, shock decompositions, IRFs
    - draws, output, pipeline: Draw blocks, output sinks, forecast driver
    - data, plotting: Data I/O and figures
    - models: Example models
"""

__version__ = '0.1.0'
__author__ = 'David Guzzi'

from . import errors
from . import settings
from . import utils
from . import data
from .errors import ConfigurationError, FilterDomainError, SolverError
from .model import DSGEModel, Parameter, PolicyRegime
from .system import compute_system
from .kalman import kalman_filter
from .smoothers import smooth
from .forecast import forecast
from .draws import DrawSource
from .output import InMemorySink, MatFileSink
from .pipeline import forecast_one, forecast_one_draw

__all__ = [
    'errors', 'settings', 'utils', 'data',
    'ConfigurationError', 'FilterDomainError', 'SolverError',
    'DSGEModel', 'Parameter', 'PolicyRegime',
    'compute_system', 'kalman_filter', 'smooth', 'forecast',
    'DrawSource', 'InMemorySink', 'MatFileSink',
    'forecast_one', 'forecast_one_draw',
]
