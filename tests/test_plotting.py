"""
Tests for plotting utilities.
"""

import os

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from dsge_forecast.plotting import (percentile_bands, plot_history_forecast,  # noqa: E402
                                    plot_irf, plot_shock_decomposition)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_percentile_bands():
    draws = np.arange(101.0)[:, None]
    median, bands = percentile_bands(draws, bands=(90,))
    assert median[0] == 50.0
    lower, upper = bands[90]
    assert lower[0] == pytest.approx(5.0)
    assert upper[0] == pytest.approx(95.0)


def test_history_forecast(tmp_path):
    rng = np.random.default_rng(0)
    path = os.path.join(tmp_path, 'fcast.png')
    fig = plot_history_forecast(rng.standard_normal((20, 10, 2)),
                                rng.standard_normal((20, 4, 2)),
                                ['obs_a', 'obs_b'], save_path=path)
    assert len(fig.axes) == 2
    assert os.path.exists(path)


def test_single_draw_history_forecast():
    fig = plot_history_forecast(np.zeros((10, 1)), np.ones((4, 1)), ['obs_a'])
    assert fig.axes[0].get_title() == 'obs_a'


def test_shock_decomposition(tmp_path):
    rng = np.random.default_rng(1)
    path = os.path.join(tmp_path, 'shockdec.png')
    fig = plot_shock_decomposition(rng.standard_normal((3, 12, 2, 3)),
                                   rng.standard_normal((3, 12, 2)), 1, 'obs_b',
                                   ['a', 'b', 'c'], trend=0.5, save_path=path)
    assert fig.axes[0].get_title() == 'Shock decomposition: obs_b'
    assert os.path.exists(path)


def test_irf_grid():
    fig = plot_irf(np.zeros((5, 10, 3, 2)), ['y', 'pi', 'R'], ['d_sh', 's_sh'], periods=6)
    assert len(fig.axes) == 6
