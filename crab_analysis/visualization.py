"""
Visualization Module for the Crab Dactyl Analysis
==================================================

Publication-quality figures for:
- Calibration fits with confidence and prediction bands
- Linear vs quadratic model comparison
- Dactyl imputation (measured vs imputed RUD_V)
- Carapace size vs isotopes
- Correlation matrix heatmap
- Water vs carapace d18O by pool group
- Site map (plain coordinates, no basemap)

Figures only render results computed elsewhere.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path

from .config import (
    PLOT_STYLE, PLOT_PARAMS, COLORS, COLORMAPS, OUTPUT_DIR, COLS,
    ESTIMATE_COLS, ensure_output_dir
)
from .regression import predict


# ============================================================================
# PLOT SETUP
# ============================================================================

def setup_plot_style():
    """Apply publication-quality plot settings."""
    try:
        plt.style.use(PLOT_STYLE)
    except OSError:
        plt.style.use('seaborn-v0_8-whitegrid')
    plt.rcParams.update(PLOT_PARAMS)


def get_figure_path(filename, create_dir=True):
    """Get full path for saving figure."""
    if create_dir:
        ensure_output_dir()
    return Path(OUTPUT_DIR) / filename


def _finish(fig, save_path):
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"  Figure saved: {save_path}")


# ============================================================================
# CALIBRATION
# ============================================================================

def plot_regression_fit(model, diagnostics=None, confidence=0.95, ax=None,
                        figsize=(8, 6), save_path=None):
    """
    Training data, fitted curve, confidence band and prediction band.

    Parameters
    ----------
    model : FittedModel
    diagnostics : DataFrame, optional
        Output of regression_diagnostics(); high-leverage points are circled
    confidence : float
        Band level
    ax : matplotlib Axes, optional
    figsize : tuple
    save_path : str, optional

    Returns
    -------
    tuple
        (fig, ax)
    """
    setup_plot_style()
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    x = model.results.model.exog[:, 1]
    y = model.results.model.endog

    grid = pd.DataFrame({model.predictor: np.linspace(x.min(), x.max(), 200)})
    band = predict(model, grid, confidence=confidence).table

    ax.fill_between(grid[model.predictor], band['pi_lower'], band['pi_upper'],
                    color=COLORS['modern'], alpha=0.12, label=f'{confidence:.0%} prediction interval')
    ax.fill_between(grid[model.predictor], band['ci_lower'], band['ci_upper'],
                    color=COLORS['modern'], alpha=0.3, label=f'{confidence:.0%} confidence interval')
    ax.plot(grid[model.predictor], band['fit'], '-', color=COLORS['fit'], linewidth=2,
            label=f"Fit (R²={model.rsquared:.3f})")
    ax.plot(x, y, 'o', color=COLORS['modern'], markersize=7, markeredgecolor='navy',
            label=f'Modern (n={model.nobs})')

    if diagnostics is not None and diagnostics['high_leverage'].any():
        flagged = diagnostics[diagnostics['high_leverage']]
        ax.plot(flagged[model.predictor], flagged[model.response], 'o', markersize=14,
                markerfacecolor='none', markeredgecolor='red', markeredgewidth=2,
                label='High leverage')

    ax.set_xlabel(f'{model.predictor} (mm)')
    ax.set_ylabel(f'{model.response} (mm)')
    ax.set_title(model.equation(), fontsize=12)
    ax.legend(fontsize=9)

    _finish(fig, save_path)
    return fig, ax


def plot_model_selection(selection, figsize=(8, 6), save_path=None):
    """Linear and quadratic fits over the modern data with the decision."""
    setup_plot_style()
    fig, ax = plt.subplots(figsize=figsize)

    linear = selection.linear
    x = linear.results.model.exog[:, 1]
    y = linear.results.model.endog
    grid = np.linspace(x.min(), x.max(), 200)

    ax.plot(x, y, 'o', color=COLORS['modern'], markersize=7, label='Modern')
    ax.plot(grid, linear.evaluate(grid), '-', color='black', linewidth=2,
            label=f"Linear (R²adj={linear.rsquared_adj:.3f})")
    if selection.polynomial is not None:
        poly = selection.polynomial
        ax.plot(grid, poly.evaluate(grid), '--', color=COLORS['archaeological'], linewidth=2,
                label=f"Quadratic (R²adj={poly.rsquared_adj:.3f})")

    ax.set_xlabel(f'{linear.predictor} (mm)')
    ax.set_ylabel(f'{linear.response} (mm)')
    ax.set_title('Model selection', fontweight='bold')
    ax.annotate(selection.reason, xy=(0.02, 0.98), xycoords='axes fraction',
                ha='left', va='top', fontsize=9,
                bbox=dict(boxstyle='round', facecolor='white', alpha=0.8))
    ax.legend(loc='lower right')

    _finish(fig, save_path)
    return fig, ax


def plot_imputation(imputation, modern=None, figsize=(8, 6), save_path=None):
    """RUD_H vs RUD_V for modern, measured and imputed archaeological dactyls."""
    setup_plot_style()
    fig, ax = plt.subplots(figsize=figsize)

    model = imputation.model
    xcol, ycol = model.predictor, model.response
    specimens = imputation.specimens
    imputed = imputation.imputed_mask.reindex(specimens.index).fillna(False).astype(bool)

    if modern is not None:
        ax.plot(modern[xcol], modern[ycol], 'o', color=COLORS['modern'], alpha=0.6,
                label='Modern')
    ax.plot(specimens.loc[~imputed, xcol], specimens.loc[~imputed, ycol], 's',
            color=COLORS['archaeological'], label='Archaeological (measured)')
    ax.plot(specimens.loc[imputed, xcol], specimens.loc[imputed, ycol], 'D',
            color=COLORS['imputed'], markeredgecolor='black',
            label=f'Archaeological (imputed, n={int(imputed.sum())})')

    x_all = pd.to_numeric(specimens[xcol], errors='coerce').dropna()
    if modern is not None:
        x_all = pd.concat([x_all, pd.to_numeric(modern[xcol], errors='coerce').dropna()])
    if len(x_all) > 0:
        grid = np.linspace(x_all.min(), x_all.max(), 100)
        ax.plot(grid, model.evaluate(grid), '-', color=COLORS['fit'], linewidth=1.5,
                label=model.equation())

    ax.set_xlabel(f'{xcol} (mm)')
    ax.set_ylabel(f'{ycol} (mm)')
    ax.set_title('Dactyl imputation', fontweight='bold')
    ax.legend(fontsize=9)

    _finish(fig, save_path)
    return fig, ax


# ============================================================================
# ISOTOPES
# ============================================================================

def plot_size_isotope(estimates, correlations, size_col=None, figsize=None, save_path=None):
    """
    Estimated carapace height against each isotope, one panel per isotope.

    Horizontal bars show the prediction interval of each estimate.
    """
    setup_plot_style()
    size_col = size_col or ESTIMATE_COLS['fit']
    isotopes = list(correlations.keys())
    if figsize is None:
        figsize = (6 * len(isotopes), 5)
    fig, axes = plt.subplots(1, len(isotopes), figsize=figsize, squeeze=False)

    for ax, iso in zip(axes[0], isotopes):
        res = correlations[iso]
        data = estimates[[size_col, iso] +
                         [c for c in (ESTIMATE_COLS['pi_lower'], ESTIMATE_COLS['pi_upper'])
                          if c in estimates.columns]].dropna(subset=[size_col, iso])
        if ESTIMATE_COLS['pi_lower'] in data.columns:
            xerr = np.vstack([data[size_col] - data[ESTIMATE_COLS['pi_lower']],
                              data[ESTIMATE_COLS['pi_upper']] - data[size_col]])
        else:
            xerr = None
        ax.errorbar(data[size_col], data[iso], xerr=xerr, fmt='o',
                    color=COLORS['archaeological'], ecolor='lightgray', capsize=2)
        ax.set_xlabel(f'Estimated {COLS["ca_h"]} (mm)')
        ax.set_ylabel(f'{iso} (‰)')
        ax.annotate(f"r = {res.r:.2f} [{res.ci_low:.2f}, {res.ci_high:.2f}]\n"
                    f"p = {res.p_value:.3f}, n = {res.n}",
                    xy=(0.03, 0.97), xycoords='axes fraction', ha='left', va='top',
                    fontsize=10, bbox=dict(boxstyle='round', facecolor='white', alpha=0.8))

    _finish(fig, save_path)
    return fig, axes


def plot_correlation_matrix(matrix_result, figsize=(7, 6), save_path=None):
    """Heatmap of r with Holm-significant cells starred."""
    setup_plot_style()
    fig, ax = plt.subplots(figsize=figsize)

    r = matrix_result.r_matrix
    p = matrix_result.p_matrix
    labels = r.round(2).astype(str)
    for a in r.index:
        for b in r.columns:
            if a != b and p.loc[a, b] < matrix_result.alpha:
                labels.loc[a, b] += '*'

    sns.heatmap(r, annot=labels.values, fmt='', cmap=COLORMAPS['diverging'],
                vmin=-1, vmax=1, square=True, cbar_kws={'label': 'Pearson r'}, ax=ax)
    ax.set_title(f"Correlations ({matrix_result.correction_method}-adjusted, "
                 f"* p < {matrix_result.alpha})", fontsize=12)

    _finish(fig, save_path)
    return fig, ax


def plot_pool_groups(pool_result, group_col=None, figsize=(8, 6), save_path=None):
    """Carapace vs water d18O (VSMOW) per specimen, coloured by pool group."""
    setup_plot_style()
    group_col = group_col or COLS['pool_group']
    smow = COLS['d18o_smow']
    merged = pool_result['merged']

    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(data=merged, x=f'water_{smow}', y=f'carapace_{smow}',
                    hue=group_col, style=group_col, s=70, ax=ax)

    summary = pool_result['summary']
    if len(summary):
        ax.plot(summary['mean_water'], summary['mean_carapace'], 'k+', markersize=14,
                markeredgewidth=2, label='Group means')

    ax.set_xlabel('Water d18O (‰ VSMOW)')
    ax.set_ylabel('Carapace d18O (‰ VSMOW)')
    corr = pool_result.get('correlation')
    if corr is not None:
        ax.set_title(f"r = {corr.r:.2f}, p = {corr.p_value:.3f}, n = {corr.n}", fontsize=12)
    ax.legend(fontsize=9, title=group_col)

    _finish(fig, save_path)
    return fig, ax


def plot_site_map(sites, water=None, label_col=None, figsize=(7, 7), save_path=None):
    """Site and water sample coordinates (longitude / latitude)."""
    setup_plot_style()
    label_col = label_col or COLS['site']
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(sites[COLS['lon']], sites[COLS['lat']], '^', color=COLORS['archaeological'],
            markersize=10, label='Sites')
    if label_col in sites.columns:
        for _, row in sites.dropna(subset=[COLS['lon'], COLS['lat']]).iterrows():
            ax.annotate(str(row[label_col]), (row[COLS['lon']], row[COLS['lat']]),
                        xytext=(5, 5), textcoords='offset points', fontsize=9)
    if water is not None and COLS['lat'] in water.columns:
        ax.plot(water[COLS['lon']], water[COLS['lat']], 'o', color=COLORS['water'],
                markersize=6, alpha=0.7, label='Water samples')

    ax.set_xlabel('Longitude (°)')
    ax.set_ylabel('Latitude (°)')
    ax.set_aspect('equal', adjustable='datalim')
    ax.legend()

    _finish(fig, save_path)
    return fig, ax
