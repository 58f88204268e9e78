import numpy as np
import pandas as pd
import pytest

from dsge_forecast.models import AR1Model, NKModel, PresentValueModel
from dsge_forecast.smoothers import simulate_observables
from dsge_forecast.system import compute_system


def simulate_data(model, n_periods, seed=0):
    """Simulate observables from a model at its initial parameters."""
    system = compute_system(model, model.parameter_snapshot())
    rng = np.random.default_rng(seed)
    n = system.n_states
    states, shocks, obs, _ = simulate_observables(system, np.zeros(n), np.zeros((n, n)),
                                                  n_periods, rng)
    return states, shocks, obs


@pytest.fixture
def ar1_model():
    return AR1Model()


@pytest.fixture
def ar1_system(ar1_model):
    return compute_system(ar1_model, ar1_model.parameter_snapshot())


@pytest.fixture
def ar1_data(ar1_model):
    states, shocks, obs = simulate_data(ar1_model, 40, seed=1)
    return states, shocks, obs


@pytest.fixture
def ar1_df(ar1_data):
    return pd.DataFrame(ar1_data[2], columns=['obs_x'])


@pytest.fixture
def pv_model():
    return PresentValueModel()


@pytest.fixture
def nk_model():
    return NKModel()


@pytest.fixture
def nk_system(nk_model):
    return compute_system(nk_model, nk_model.parameter_snapshot())


@pytest.fixture
def nk_df(nk_model):
    _, _, obs = simulate_data(nk_model, 60, seed=2)
    return pd.DataFrame(obs, columns=nk_model.observable_names)
