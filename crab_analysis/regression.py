"""
Regression Module: Carapace-Size Estimator

Ordinary least squares fits relating dactyl measurements to carapace height
on the modern reference collection, and prediction with confidence and
prediction intervals for any query table.

**Scientific Problem:**
Archaeological crab remains are mostly isolated dactyls. Carapace height
(CA_H), the body-size proxy, has to be estimated from the dactyl ventral
length (RUD_V) through a calibration fitted on modern specimens.

**Solution:**
1. Fit CA_H = α + β·RUD_V (and a quadratic variant) by OLS
2. Keep the quadratic model only if it clears an explicit F-test and
   adjusted R² rule (see ``select_model``)
3. Predict with the standard error of the fitted mean and a prediction
   interval for a new individual
4. Report residuals, leverage and Cook's distance per modern specimen

Fitted models and predictions are immutable records. Predictions are
returned as new tables and never touch the measured columns.
"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, Tuple, Optional, Any

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .config import (
    COLS, CONFIDENCE_LEVEL, MODEL_SELECTION, LEVERAGE_FACTOR, COOKS_FACTOR
)
from .exceptions import DegenerateFitWarning
from .statistical_tests import complete_cases


PREDICTION_COLUMNS = ['fit', 'se_fit', 'ci_lower', 'ci_upper', 'pi_lower', 'pi_upper']


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    OLS fit of ``response`` on a polynomial in ``predictor``.

    ``params`` holds (intercept, slope) or (intercept, slope, quadratic).
    ``residuals`` and ``fitted`` are indexed by the rows of the source table.
    """
    predictor: str
    response: str
    degree: int
    params: Tuple[float, ...]
    bse: Tuple[float, ...]
    rsquared: float
    rsquared_adj: float
    scale: float
    df_resid: float
    nobs: int
    aic: float
    bic: float
    fvalue: float
    f_pvalue: float
    residuals: pd.Series = field(repr=False)
    fitted: pd.Series = field(repr=False)
    label: str = ''
    results: Any = field(default=None, repr=False)

    @property
    def intercept(self) -> float:
        return self.params[0]

    @property
    def slope(self) -> float:
        return self.params[1]

    @property
    def quadratic(self) -> float:
        return self.params[2] if self.degree >= 2 else 0.0

    @property
    def sigma(self) -> float:
        """Residual standard error."""
        return float(np.sqrt(self.scale))

    def evaluate(self, x):
        """Model equation evaluated at ``x`` (no intervals)."""
        x = np.asarray(x, dtype=float)
        return sum(coef * x ** k for k, coef in enumerate(self.params))

    def equation(self) -> str:
        terms = f"{self.intercept:.4f} {'+' if self.slope >= 0 else '-'} {abs(self.slope):.4f}·{self.predictor}"
        if self.degree >= 2:
            terms += f" {'+' if self.quadratic >= 0 else '-'} {abs(self.quadratic):.6f}·{self.predictor}²"
        return f"{self.response} = {terms}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'predictor': self.predictor,
            'response': self.response,
            'degree': self.degree,
            'params': list(self.params),
            'bse': list(self.bse),
            'rsquared': self.rsquared,
            'rsquared_adj': self.rsquared_adj,
            'sigma': self.sigma,
            'scale': self.scale,
            'df_resid': self.df_resid,
            'nobs': self.nobs,
            'aic': self.aic,
            'bic': self.bic,
            'fvalue': self.fvalue,
            'f_pvalue': self.f_pvalue,
            'equation': self.equation(),
        }


@dataclass(frozen=True, eq=False)
class PredictionResult:
    """
    Per-row predictions from one model.

    ``table`` is indexed like the query and holds ``fit``, ``se_fit`` (SE of
    the fitted mean), ``ci_lower``/``ci_upper`` (mean) and
    ``pi_lower``/``pi_upper`` (new observation). Rows whose predictor was
    missing are NaN.
    """
    model: FittedModel
    confidence: float
    table: pd.DataFrame = field(repr=False)

    @property
    def fit(self) -> pd.Series:
        return self.table['fit']

    @property
    def n_predicted(self) -> int:
        return int(self.table['fit'].notna().sum())

    def attach(self, data: pd.DataFrame, names: Optional[Dict[str, str]] = None) -> pd.DataFrame:
        """
        Copy of ``data`` with the prediction columns added.

        ``names`` maps prediction columns to output column names; by default
        every column is prefixed with the response name.
        """
        if names is None:
            names = {col: f"{self.model.response}_{col}" for col in PREDICTION_COLUMNS}
        out = data.copy()
        for col, name in names.items():
            out[name] = self.table[col].reindex(out.index)
        return out


@dataclass(frozen=True, eq=False)
class ModelSelection:
    """Outcome of the linear vs quadratic comparison."""
    linear: FittedModel
    polynomial: Optional[FittedModel]
    selected: FittedModel
    f_statistic: float
    f_pvalue: float
    delta_adj_r2: float
    f_test_alpha: float
    min_delta_adj_r2: float
    reason: str

    @property
    def uses_polynomial(self) -> bool:
        return self.selected.degree > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'selected': self.selected.label,
            'selected_degree': self.selected.degree,
            'f_statistic': self.f_statistic,
            'f_pvalue': self.f_pvalue,
            'delta_adj_r2': self.delta_adj_r2,
            'f_test_alpha': self.f_test_alpha,
            'min_delta_adj_r2': self.min_delta_adj_r2,
            'reason': self.reason,
        }


# ============================================================================
# FITTING
# ============================================================================

def _design_matrix(x, degree: int) -> np.ndarray:
    """Columns 1, x, ..., x^degree."""
    x = np.asarray(x, dtype=float)
    return np.column_stack([x ** k for k in range(degree + 1)])


def fit_ols(
    data: pd.DataFrame,
    predictor: str,
    response: str,
    degree: int = 1,
    label: Optional[str] = None
) -> FittedModel:
    """
    Fit response = β0 + β1·x (+ β2·x²) by ordinary least squares.

    Parameters
    ----------
    data : DataFrame
        Table holding both columns; rows missing either value are dropped
        for this fit only
    predictor : str
        Predictor column
    response : str
        Response column
    degree : int
        1 (linear) or 2 (quadratic)
    label : str, optional
        Name used in reports and error messages

    Returns
    -------
    FittedModel

    Raises
    ------
    MissingDataError
        Fewer than degree + 2 complete rows (residual df must be positive)

    Warns
    -----
    DegenerateFitWarning
        Fewer distinct predictor values than coefficients, or a rank
        deficient design matrix. The fit is still returned.

    Notes
    -----
    Rows are sorted on (predictor, response) before fitting, so the same
    observations in any order give identical coefficients.
    """
    if degree not in (1, 2):
        raise ValueError(f"Only degree 1 or 2 is supported, got {degree}")
    if label is None:
        label = f"{response} ~ {predictor}" + (" (quadratic)" if degree == 2 else "")

    valid = complete_cases(data, [predictor, response], subset=label, n_required=degree + 2)
    valid = valid.sort_values([predictor, response], kind='mergesort')

    x = valid[predictor].to_numpy(dtype=float)
    y = valid[response].to_numpy(dtype=float)
    exog = _design_matrix(x, degree)

    n_distinct = np.unique(x).size
    if n_distinct <= degree or np.linalg.matrix_rank(exog) < exog.shape[1]:
        warnings.warn(
            f"{label}: predictor '{predictor}' has {n_distinct} distinct value(s) "
            f"for a degree-{degree} fit; coefficients are unstable",
            DegenerateFitWarning,
            stacklevel=2
        )

    # Exact fits give zero residual variance; statistics may be inf/nan there
    with np.errstate(divide='ignore', invalid='ignore'):
        results = sm.OLS(y, exog).fit()
        fvalue = float(results.fvalue)
        f_pvalue = float(results.f_pvalue)
        aic = float(results.aic)
        bic = float(results.bic)

    return FittedModel(
        predictor=predictor,
        response=response,
        degree=degree,
        params=tuple(float(p) for p in results.params),
        bse=tuple(float(s) for s in results.bse),
        rsquared=float(results.rsquared),
        rsquared_adj=float(results.rsquared_adj),
        scale=float(results.scale),
        df_resid=float(results.df_resid),
        nobs=int(results.nobs),
        aic=aic,
        bic=bic,
        fvalue=fvalue,
        f_pvalue=f_pvalue,
        residuals=pd.Series(results.resid, index=valid.index, name='residual'),
        fitted=pd.Series(results.fittedvalues, index=valid.index, name='fitted'),
        label=label,
        results=results,
    )


# ============================================================================
# PREDICTION
# ============================================================================

def predict(
    model: FittedModel,
    query: pd.DataFrame,
    confidence: float = CONFIDENCE_LEVEL
) -> PredictionResult:
    """
    Predict the response for every row of ``query``.

    Parameters
    ----------
    model : FittedModel
        Output of ``fit_ols``
    query : DataFrame
        Must contain ``model.predictor``
    confidence : float
        Level of both the mean confidence interval and the prediction
        interval

    Returns
    -------
    PredictionResult
        Rows with a missing predictor get NaN in every column.
    """
    if model.predictor not in query.columns:
        raise ValueError(
            f"Predictor '{model.predictor}' not found. Available: {list(query.columns)}"
        )

    x = pd.to_numeric(query[model.predictor], errors='coerce')
    valid = x.notna() & np.isfinite(x)
    table = pd.DataFrame(np.nan, index=query.index, columns=PREDICTION_COLUMNS)

    if valid.any():
        exog = _design_matrix(x[valid].to_numpy(dtype=float), model.degree)
        with np.errstate(divide='ignore', invalid='ignore'):
            frame = model.results.get_prediction(exog).summary_frame(alpha=1 - confidence)

        table.loc[valid, 'fit'] = frame['mean'].to_numpy()
        table.loc[valid, 'se_fit'] = frame['mean_se'].to_numpy()
        table.loc[valid, 'ci_lower'] = frame['mean_ci_lower'].to_numpy()
        table.loc[valid, 'ci_upper'] = frame['mean_ci_upper'].to_numpy()
        table.loc[valid, 'pi_lower'] = frame['obs_ci_lower'].to_numpy()
        table.loc[valid, 'pi_upper'] = frame['obs_ci_upper'].to_numpy()

    return PredictionResult(model=model, confidence=confidence, table=table)


# ============================================================================
# DIAGNOSTICS
# ============================================================================

def regression_diagnostics(
    model: FittedModel,
    leverage_factor: float = LEVERAGE_FACTOR,
    cooks_factor: float = COOKS_FACTOR,
    id_column: Optional[pd.Series] = None,
    verbose: bool = False
) -> pd.DataFrame:
    """
    Residual and influence diagnostics for each training observation.

    Parameters
    ----------
    model : FittedModel
    leverage_factor : float
        Flag h_ii > leverage_factor * p / n
    cooks_factor : float
        Flag Cook's D > cooks_factor / n
    id_column : Series, optional
        Specimen identifiers indexed like the training table, added as 'id'
    verbose : bool
        Print flagged observations

    Returns
    -------
    DataFrame
        Indexed like the training rows: predictor, response, fitted,
        residual, studentized, leverage, cooks_d, high_leverage, influential

    Notes
    -----
    Flags are informational; nothing is removed from the fit.
    """
    with np.errstate(divide='ignore', invalid='ignore'):
        influence = model.results.get_influence()
        leverage = np.asarray(influence.hat_matrix_diag)
        cooks = np.asarray(influence.cooks_distance[0])
        studentized = np.asarray(influence.resid_studentized_internal)

    n = model.nobs
    p = model.degree + 1
    index = model.residuals.index

    table = pd.DataFrame({
        'fitted': model.fitted.to_numpy(),
        'residual': model.residuals.to_numpy(),
        'studentized': studentized,
        'leverage': leverage,
        'cooks_d': cooks,
    }, index=index)
    table.insert(0, model.response, table['fitted'] + table['residual'])
    x = model.results.model.exog[:, 1]
    table.insert(0, model.predictor, x)
    table['high_leverage'] = table['leverage'] > leverage_factor * p / n
    table['influential'] = table['cooks_d'] > cooks_factor / n

    if id_column is not None:
        table.insert(0, 'id', id_column.reindex(index))

    if verbose:
        flagged = table[table['high_leverage'] | table['influential']]
        print(f"\nDiagnostics for {model.label} (n={n})")
        print(f"  Leverage threshold: {leverage_factor * p / n:.3f}   "
              f"Cook's D threshold: {cooks_factor / n:.3f}")
        if len(flagged) == 0:
            print("  No high-leverage or influential observations")
        for idx, row in flagged.iterrows():
            name = row['id'] if 'id' in flagged.columns else idx
            print(f"  ! {name}: {model.predictor}={row[model.predictor]:.2f}, "
                  f"h={row['leverage']:.3f}, D={row['cooks_d']:.3f}, "
                  f"r_std={row['studentized']:.2f}")

    return table


# ============================================================================
# MODEL SELECTION
# ============================================================================

def select_model(
    data: pd.DataFrame,
    predictor: str,
    response: str,
    f_test_alpha: Optional[float] = None,
    min_delta_adj_r2: Optional[float] = None,
    verbose: bool = True
) -> ModelSelection:
    """
    Choose between the linear and quadratic fit of response on predictor.

    Rule: the quadratic model is selected only if the nested-model F-test
    (quadratic vs linear) gives p < ``f_test_alpha`` AND the adjusted R²
    gain is at least ``min_delta_adj_r2``. Otherwise the linear model is
    canonical, including when the quadratic model cannot be estimated.

    Parameters
    ----------
    data : DataFrame
    predictor, response : str
    f_test_alpha : float, optional
        Defaults to MODEL_SELECTION['f_test_alpha']
    min_delta_adj_r2 : float, optional
        Defaults to MODEL_SELECTION['min_delta_adj_r2']
    verbose : bool
        Print the comparison and the decision

    Returns
    -------
    ModelSelection
    """
    if f_test_alpha is None:
        f_test_alpha = MODEL_SELECTION['f_test_alpha']
    if min_delta_adj_r2 is None:
        min_delta_adj_r2 = MODEL_SELECTION['min_delta_adj_r2']

    linear = fit_ols(data, predictor, response, degree=1)

    # Quadratic needs one more complete row than the linear fit
    n_complete = linear.nobs
    if n_complete < 4:
        polynomial = None
        f_stat = f_p = delta = np.nan
        reason = (f"linear retained: quadratic fit needs at least 4 observations, "
                  f"have {n_complete}")
    else:
        polynomial = fit_ols(data, predictor, response, degree=2)
        with np.errstate(divide='ignore', invalid='ignore'):
            f_stat, f_p, _ = polynomial.results.compare_f_test(linear.results)
        f_stat, f_p = float(f_stat), float(f_p)
        delta = polynomial.rsquared_adj - linear.rsquared_adj

        passes_f = np.isfinite(f_p) and f_p < f_test_alpha
        passes_r2 = np.isfinite(delta) and delta >= min_delta_adj_r2
        if passes_f and passes_r2:
            reason = (f"quadratic selected: F-test p={f_p:.4f} < {f_test_alpha} "
                      f"and ΔR²adj={delta:.4f} >= {min_delta_adj_r2}")
        elif not passes_f:
            reason = (f"linear retained: F-test p={f_p:.4f} not below {f_test_alpha}")
        else:
            reason = (f"linear retained: ΔR²adj={delta:.4f} below {min_delta_adj_r2}")

    selected = polynomial if reason.startswith('quadratic') else linear

    selection = ModelSelection(
        linear=linear,
        polynomial=polynomial,
        selected=selected,
        f_statistic=f_stat,
        f_pvalue=f_p,
        delta_adj_r2=delta,
        f_test_alpha=f_test_alpha,
        min_delta_adj_r2=min_delta_adj_r2,
        reason=reason,
    )

    if verbose:
        print("\n" + "=" * 70)
        print(f"MODEL SELECTION: {response} ~ {predictor}")
        print("=" * 70)
        print(f"Rule: quadratic only if F-test p < {f_test_alpha} "
              f"and ΔR²adj >= {min_delta_adj_r2}\n")
        print(f"{'Model':<12} {'n':<5} {'R²':<10} {'R²adj':<10} {'σ':<10} {'AIC':<10} {'Selected':<8}")
        print("-" * 70)
        for fitted in (linear, polynomial):
            if fitted is None:
                print(f"{'quadratic':<12} {'not estimable'}")
                continue
            name = 'linear' if fitted.degree == 1 else 'quadratic'
            mark = "✓" if fitted is selected else ""
            print(f"{name:<12} {fitted.nobs:<5} {fitted.rsquared:<10.4f} "
                  f"{fitted.rsquared_adj:<10.4f} {fitted.sigma:<10.4f} "
                  f"{fitted.aic:<10.2f} {mark:<8}")
        print("-" * 70)
        print(f"Decision: {reason}")
        print(f"Equation: {selected.equation()}")

    return selection


def fit_carapace_estimator(
    modern: pd.DataFrame,
    predictor: str = COLS['rud_v'],
    response: str = COLS['ca_h'],
    f_test_alpha: Optional[float] = None,
    min_delta_adj_r2: Optional[float] = None,
    verbose: bool = True
) -> ModelSelection:
    """
    Fit the carapace-size estimator (CA_H ~ RUD_V) on modern specimens.

    The estimator is ``selection.selected``; both candidate fits are kept on
    the returned record for reporting.
    """
    return select_model(
        modern, predictor, response,
        f_test_alpha=f_test_alpha,
        min_delta_adj_r2=min_delta_adj_r2,
        verbose=verbose
    )
