"""
Plotting Utilities
==================

Figures from assembled forecast outputs:
- History and forecast with percentile bands across draws
- Shock decomposition bars with the deterministic trend
- Impulse response grids
"""

from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np


def percentile_bands(draws: np.ndarray, bands: Sequence[float] = (68, 90)
                     ) -> Tuple[np.ndarray, dict]:
    """
    Median and central percentile bands over the leading draw axis.

    Args:
        draws: Output array (n_draws x T x ...)
        bands: Coverage of each band in percent

    Returns:
        median, {band: (lower, upper)}
    """
    draws = np.asarray(draws, dtype=float)
    median = np.median(draws, axis=0)
    out = {}
    for band in bands:
        tail = (100.0 - band) / 2.0
        out[band] = (np.percentile(draws, tail, axis=0),
                     np.percentile(draws, 100.0 - tail, axis=0))
    return median, out


def plot_history_forecast(history: np.ndarray, forecast: np.ndarray, var_names: list,
                          bands: Sequence[float] = (68, 90),
                          figsize: Tuple[int, int] = (12, 4),
                          save_path: Optional[str] = None, show: bool = False):
    """
    Plot history and forecast of each variable.

    Args:
        history: Histories (n_draws x T x n_vars), or (T x n_vars) for one draw
        forecast: Forecasts (n_draws x H x n_vars), or (H x n_vars)
        var_names: Names of variables
        bands: Percentile bands of the forecast to shade
        figsize: Figure size
        save_path: Path to save figure (optional)
        show: Display the figure

    Returns:
        matplotlib Figure
    """
    history = np.asarray(history, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    if history.ndim == 2:
        history = history[None]
    if forecast.ndim == 2:
        forecast = forecast[None]

    n_hist = history.shape[1]
    n_fcast = forecast.shape[1]
    hist_periods = np.arange(n_hist)
    # Forecast lines start at the last history period
    fcast_periods = np.arange(n_hist - 1, n_hist + n_fcast)

    hist_median = np.median(history, axis=0)
    fcast_median, fcast_bands = percentile_bands(forecast, bands)

    fig, axes = plt.subplots(1, len(var_names), figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i, var in enumerate(var_names):
        ax = axes[i]
        ax.plot(hist_periods, hist_median[:, i], 'k-', linewidth=1.5, label='History')

        anchor = hist_median[-1, i]
        for band in sorted(bands, reverse=True):
            lower, upper = fcast_bands[band]
            ax.fill_between(fcast_periods,
                            np.concatenate([[anchor], lower[:, i]]),
                            np.concatenate([[anchor], upper[:, i]]),
                            color='b', alpha=0.15, linewidth=0)
        ax.plot(fcast_periods, np.concatenate([[anchor], fcast_median[:, i]]),
                'b-', linewidth=1.5, label='Forecast')

        ax.axvline(x=n_hist - 1, color='k', linestyle=':', linewidth=0.5)
        ax.set_title(var)
        ax.set_xlabel('Periods')
        ax.grid(True, alpha=0.3)

    axes[0].legend()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    return fig


def plot_shock_decomposition(shockdec: np.ndarray, dettrend: np.ndarray,
                             var_index: int, var_name: str, shock_names: list,
                             trend: Optional[float] = None,
                             figsize: Tuple[int, int] = (12, 6),
                             save_path: Optional[str] = None, show: bool = False):
    """
    Stacked bars of each shock's contribution to one variable.

    Contributions are drawn relative to the trend; the line is the sum of
    all contributions and the deterministic trend.

    Args:
        shockdec: Shock decomposition (T x n_vars x n_shocks) or with a
            leading draw axis (the mean over draws is plotted)
        dettrend: Deterministic trend (T x n_vars), optionally with draws
        var_index: Variable to plot
        var_name: Name of the variable
        shock_names: Names of shocks
        trend: Constant subtracted from the deterministic trend (e.g. DD)
        figsize: Figure size
        save_path: Path to save figure (optional)
        show: Display the figure

    Returns:
        matplotlib Figure
    """
    shockdec = np.asarray(shockdec, dtype=float)
    dettrend = np.asarray(dettrend, dtype=float)
    if shockdec.ndim == 4:
        shockdec = shockdec.mean(axis=0)
    if dettrend.ndim == 3:
        dettrend = dettrend.mean(axis=0)

    contributions = shockdec[:, var_index, :]
    baseline = dettrend[:, var_index] - (0.0 if trend is None else trend)
    periods = np.arange(contributions.shape[0])

    fig, ax = plt.subplots(figsize=figsize)

    pos_bottom = np.zeros(len(periods))
    neg_bottom = np.zeros(len(periods))
    for j, shock in enumerate(shock_names):
        values = contributions[:, j]
        bottom = np.where(values >= 0, pos_bottom, neg_bottom)
        ax.bar(periods, values, bottom=bottom, label=shock, width=0.8)
        pos_bottom += np.maximum(values, 0)
        neg_bottom += np.minimum(values, 0)

    ax.plot(periods, contributions.sum(axis=1) + baseline, 'k-', linewidth=1.5,
            label=var_name)
    ax.plot(periods, baseline, 'k--', linewidth=1.0, label='Deterministic trend')
    ax.axhline(y=0, color='k', linewidth=0.5)
    ax.set_title(f'Shock decomposition: {var_name}')
    ax.set_xlabel('Periods')
    ax.legend(fontsize='small', ncol=2)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    return fig


def plot_irf(irfs: np.ndarray, var_names: list, shock_names: list,
             periods: Optional[int] = None, figsize: Tuple[int, int] = (12, 8),
             save_path: Optional[str] = None, show: bool = False):
    """
    Plot impulse response functions.

    Args:
        irfs: Impulse responses (periods x n_vars x n_shocks), or with a
            leading draw axis (the median over draws is plotted)
        var_names: Names of variables
        shock_names: Names of shocks
        periods: Number of periods to plot (all if None)
        figsize: Figure size
        save_path: Path to save figure (optional)
        show: Display the figure

    Returns:
        matplotlib Figure
    """
    irfs = np.asarray(irfs, dtype=float)
    if irfs.ndim == 4:
        irfs = np.median(irfs, axis=0)
    periods = irfs.shape[0] if periods is None else periods

    n_vars = len(var_names)
    n_shocks = len(shock_names)

    fig, axes = plt.subplots(n_vars, n_shocks, figsize=figsize, squeeze=False)

    for i, var in enumerate(var_names):
        for j, shock in enumerate(shock_names):
            ax = axes[i, j]
            ax.plot(range(periods), irfs[:periods, i, j], 'b-', linewidth=1.5)
            ax.axhline(y=0, color='k', linestyle='--', linewidth=0.5)
            ax.grid(True, alpha=0.3)

            if i == 0:
                ax.set_title(f'Shock: {shock}')
            if j == 0:
                ax.set_ylabel(var)
            if i == n_vars - 1:
                ax.set_xlabel('Periods')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    return fig
