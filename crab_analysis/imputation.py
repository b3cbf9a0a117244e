"""
Missing-Dactyl Imputer and Composed Carapace Predictor

Broken archaeological dactyls often keep their height (RUD_H) but not
their ventral length (RUD_V). A second calibration, RUD_V ~ RUD_H on the
modern collection, fills those gaps so the carapace estimator can be
applied to every specimen with at least one dactyl measurement.

Chain:
    RUD_H --(imputer)--> RUD_V (only where missing) --(estimator)--> CA_H

Measured values are never overwritten and every step returns a new table.
This module also compares this study's calibration against a published
reference equation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

from .config import (
    COLS, CONFIDENCE_LEVEL, ESTIMATE_COLS, REFERENCE_EQUATIONS, DEFAULT_REFERENCE
)
from .exceptions import MissingDataError
from .regression import FittedModel, PredictionResult, fit_ols, predict
from .statistical_tests import WelchResult, welch_t_test


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True)
class ReferenceEquation:
    """Published linear equation: response = intercept + slope * predictor."""
    name: str
    predictor: str
    response: str
    intercept: float
    slope: float
    source: str = ''

    def predict(self, values) -> pd.Series:
        values = pd.to_numeric(pd.Series(values), errors='coerce')
        return self.intercept + self.slope * values

    def equation(self) -> str:
        return f"{self.response} = {self.intercept:.4f} + {self.slope:.4f}·{self.predictor}"


@dataclass(frozen=True, eq=False)
class ImputationResult:
    specimens: pd.DataFrame = field(repr=False)
    imputed_mask: pd.Series = field(repr=False)
    prediction: PredictionResult = field(repr=False)
    model: FittedModel = field(repr=False)

    @property
    def n_imputed(self) -> int:
        return int(self.imputed_mask.sum())


@dataclass(frozen=True, eq=False)
class ReferenceComparison:
    estimates: pd.DataFrame = field(repr=False)
    test: WelchResult
    model: FittedModel = field(repr=False)
    reference: ReferenceEquation

    def to_dict(self) -> Dict[str, Any]:
        out = self.test.to_dict()
        out['model'] = self.model.equation()
        out['reference'] = self.reference.equation()
        out['reference_source'] = self.reference.source
        return out


@dataclass(frozen=True, eq=False)
class CarapaceEstimate:
    specimens: pd.DataFrame = field(repr=False)
    imputation: ImputationResult = field(repr=False)
    prediction: PredictionResult = field(repr=False)

    @property
    def n_estimated(self) -> int:
        return self.prediction.n_predicted


# ============================================================================
# REFERENCE EQUATIONS
# ============================================================================

def get_reference_equation(name: str = DEFAULT_REFERENCE) -> ReferenceEquation:
    """Reference equation configured under ``name`` in REFERENCE_EQUATIONS."""
    if name not in REFERENCE_EQUATIONS:
        raise ValueError(
            f"Unknown reference equation: {name}. Available: {list(REFERENCE_EQUATIONS.keys())}"
        )
    return ReferenceEquation(name=name, **REFERENCE_EQUATIONS[name])


# ============================================================================
# IMPUTER
# ============================================================================

def fit_dactyl_imputer(
    modern: pd.DataFrame,
    predictor: str = COLS['rud_h'],
    response: str = COLS['rud_v']
) -> FittedModel:
    """Fit the linear imputer RUD_V ~ RUD_H on modern specimens."""
    return fit_ols(modern, predictor, response, degree=1,
                   label=f"{response} ~ {predictor} (imputer)")


def impute_missing_dactyl(
    specimens: pd.DataFrame,
    imputer: FittedModel,
    confidence: float = CONFIDENCE_LEVEL,
    verbose: bool = True
) -> ImputationResult:
    """
    Fill missing RUD_V from RUD_H.

    Parameters
    ----------
    specimens : DataFrame
        Archaeological specimens with the imputer's predictor and response
        columns
    imputer : FittedModel
        Output of ``fit_dactyl_imputer``
    confidence : float
        Interval level kept on the prediction record
    verbose : bool
        Print counts

    Returns
    -------
    ImputationResult
        ``specimens`` is a new table where the response column is filled
        wherever it was missing and the predictor was present. Rows with a
        measured response keep it exactly. ``imputed_mask`` marks the
        filled rows.
    """
    target = imputer.response
    source = imputer.predictor
    for col in (target, source):
        if col not in specimens.columns:
            raise ValueError(f"Column '{col}' not found. Available: {list(specimens.columns)}")

    measured = pd.to_numeric(specimens[target], errors='coerce')
    prediction = predict(imputer, specimens, confidence=confidence)

    fillable = measured.isna() & prediction.fit.notna()
    completed = specimens.copy()
    completed[target] = measured.where(~fillable, prediction.fit)

    if verbose:
        n_missing = int(measured.isna().sum())
        print(f"\nImputing {target} from {source}: {imputer.equation()}")
        print(f"  Measured {target}:            {int(measured.notna().sum())}")
        print(f"  Missing {target}:             {n_missing}")
        print(f"  Imputed from {source}:        {int(fillable.sum())}")
        print(f"  Still missing (no {source}):  {n_missing - int(fillable.sum())}")

    return ImputationResult(
        specimens=completed,
        imputed_mask=fillable.rename('imputed'),
        prediction=prediction,
        model=imputer,
    )


# ============================================================================
# REFERENCE COMPARISON
# ============================================================================

def compare_with_reference(
    data: pd.DataFrame,
    model: FittedModel,
    reference: Optional[ReferenceEquation] = None,
    confidence: float = CONFIDENCE_LEVEL,
    subset: Optional[str] = None,
    verbose: bool = True
) -> ReferenceComparison:
    """
    Compare this study's estimates with a published equation's estimates.

    Both equations are applied to the same rows (those with the predictor
    present) and the two estimate vectors are compared with Welch's t-test.

    Parameters
    ----------
    data : DataFrame
        Specimens to estimate
    model : FittedModel
        This study's calibration
    reference : ReferenceEquation, optional
        Defaults to the configured DEFAULT_REFERENCE
    confidence : float
        Confidence level of the mean-difference interval
    subset : str, optional
        Label of the filtered subset
    verbose : bool
        Print results

    Returns
    -------
    ReferenceComparison
        ``estimates`` has columns 'this_study' and 'reference'; the test
        difference is this_study - reference.
    """
    if reference is None:
        reference = get_reference_equation()
    if reference.predictor != model.predictor:
        raise ValueError(
            f"Reference '{reference.name}' uses predictor '{reference.predictor}', "
            f"model uses '{model.predictor}'"
        )

    x = pd.to_numeric(data[model.predictor], errors='coerce')
    rows = data.loc[x.notna()]
    if len(rows) == 0:
        raise MissingDataError((model.predictor,), 0, 2, subset)

    estimates = pd.DataFrame({
        model.predictor: x[x.notna()],
        'this_study': predict(model, rows).fit,
        'reference': reference.predict(x[x.notna()]).to_numpy(),
    }, index=rows.index)
    estimates['difference'] = estimates['this_study'] - estimates['reference']

    test = welch_t_test(
        estimates['this_study'], estimates['reference'],
        confidence=confidence, a_name='this_study', b_name=reference.name,
        subset=subset
    )

    if verbose:
        print("\n" + "=" * 70)
        print("THIS STUDY vs REFERENCE EQUATION")
        print("=" * 70)
        print(f"  This study: {model.equation()}")
        print(f"  Reference:  {reference.equation()}")
        if reference.source:
            print(f"              ({reference.source})")
        print(f"\n  n = {len(estimates)} specimens")
        print(f"  Mean estimate (this study): {test.mean_a:.2f}")
        print(f"  Mean estimate (reference):  {test.mean_b:.2f}")
        print(f"  Difference: {test.diff:.2f} "
              f"[{test.ci_low:.2f}, {test.ci_high:.2f}] ({confidence:.0%} CI)")
        print(f"  Welch t = {test.t:.3f}, df = {test.df:.1f}, p = {test.p_value:.4f}")

    return ReferenceComparison(estimates=estimates, test=test, model=model, reference=reference)


# ============================================================================
# COMPOSED PREDICTOR
# ============================================================================

def estimate_carapace_size(
    specimens: pd.DataFrame,
    estimator: FittedModel,
    imputer: FittedModel,
    confidence: float = CONFIDENCE_LEVEL,
    verbose: bool = True
) -> CarapaceEstimate:
    """
    Carapace-height estimate for every archaeological specimen.

    Uses measured RUD_V where present, imputed RUD_V otherwise, then applies
    the carapace estimator to the completed column.

    Parameters
    ----------
    specimens : DataFrame
        Archaeological specimens
    estimator : FittedModel
        Carapace-size estimator (selected model of ``fit_carapace_estimator``)
    imputer : FittedModel
        Output of ``fit_dactyl_imputer``
    confidence : float
        Prediction interval level
    verbose : bool
        Print counts

    Returns
    -------
    CarapaceEstimate
        ``specimens`` keeps every input row with ESTIMATE_COLS added.
        Specimens with neither RUD_V nor RUD_H keep NaN estimates.
    """
    if imputer.response != estimator.predictor:
        raise ValueError(
            f"Imputer fills '{imputer.response}' but the estimator needs '{estimator.predictor}'"
        )

    imputation = impute_missing_dactyl(specimens, imputer, confidence=confidence, verbose=verbose)
    prediction = predict(estimator, imputation.specimens, confidence=confidence)
    completed = prediction.attach(imputation.specimens, names=ESTIMATE_COLS)

    if verbose:
        n_total = len(completed)
        print(f"\nCarapace estimates: {prediction.n_predicted}/{n_total} specimens")
        print(f"  Estimator: {estimator.equation()}")
        fits = prediction.fit.dropna()
        if len(fits) > 0:
            print(f"  Estimated {estimator.response}: mean {fits.mean():.2f}, "
                  f"range {fits.min():.2f}-{fits.max():.2f}")
        if prediction.n_predicted < n_total:
            print(f"  {n_total - prediction.n_predicted} specimen(s) left unestimated "
                  f"(no {estimator.predictor} or {imputer.predictor})")

    return CarapaceEstimate(specimens=completed, imputation=imputation, prediction=prediction)
