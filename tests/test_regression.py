import numpy as np
import pandas as pd
import pytest

from crab_analysis.exceptions import DegenerateFitWarning, MissingDataError
from crab_analysis.regression import (
    fit_ols, predict, regression_diagnostics, select_model, fit_carapace_estimator
)


def _noisy_linear(n=12, seed=1):
    rng = np.random.default_rng(seed)
    x = np.linspace(8, 20, n)
    return pd.DataFrame({'RUD_V': x, 'CA_H': 1.5 + 2.0 * x + rng.normal(0, 0.5, n)})


def test_exact_fit_predicts_26_at_13(modern_exact):
    model = fit_ols(modern_exact, 'RUD_V', 'CA_H')
    assert model.intercept == pytest.approx(0.0, abs=1e-9)
    assert model.slope == pytest.approx(2.0)
    assert model.rsquared == pytest.approx(1.0)

    pred = predict(model, pd.DataFrame({'RUD_V': [13.0]}))
    assert pred.table.loc[0, 'fit'] == pytest.approx(26.0)
    assert pred.table.loc[0, 'se_fit'] == pytest.approx(0.0, abs=1e-6)


def test_refit_with_permuted_rows_gives_identical_coefficients():
    df = _noisy_linear()
    shuffled = df.sample(frac=1.0, random_state=7)
    a = fit_ols(df, 'RUD_V', 'CA_H')
    b = fit_ols(shuffled, 'RUD_V', 'CA_H')
    assert a.params == b.params
    assert a.bse == b.bse


def test_predict_at_training_point_matches_equation():
    df = _noisy_linear()
    model = fit_ols(df, 'RUD_V', 'CA_H')
    pred = predict(model, df)
    expected = model.intercept + model.slope * df['RUD_V']
    assert np.allclose(pred.fit.to_numpy(), expected.to_numpy())


def test_prediction_interval_wider_than_confidence_interval():
    df = _noisy_linear()
    model = fit_ols(df, 'RUD_V', 'CA_H')
    table = predict(model, pd.DataFrame({'RUD_V': [9.0, 14.0, 19.5]})).table
    assert (table['ci_lower'] <= table['fit']).all()
    assert (table['fit'] <= table['ci_upper']).all()
    assert (table['pi_lower'] < table['ci_lower']).all()
    assert (table['pi_upper'] > table['ci_upper']).all()


def test_missing_predictor_rows_get_nan():
    model = fit_ols(_noisy_linear(), 'RUD_V', 'CA_H')
    query = pd.DataFrame({'RUD_V': [10.0, np.nan, 15.0]}, index=['a', 'b', 'c'])
    pred = predict(model, query)
    assert list(pred.table.index) == ['a', 'b', 'c']
    assert pred.table.loc['b'].isna().all()
    assert pred.n_predicted == 2


def test_predict_requires_predictor_column():
    model = fit_ols(_noisy_linear(), 'RUD_V', 'CA_H')
    with pytest.raises(ValueError):
        predict(model, pd.DataFrame({'RUD_H': [5.0]}))


def test_attach_returns_copy_with_named_columns():
    df = _noisy_linear()
    model = fit_ols(df, 'RUD_V', 'CA_H')
    out = predict(model, df).attach(df, names={'fit': 'est', 'pi_upper': 'hi'})
    assert {'est', 'hi'} <= set(out.columns)
    assert 'est' not in df.columns


def test_too_few_rows_raises_missing_data_error():
    df = pd.DataFrame({'RUD_V': [10.0, 12.0, np.nan], 'CA_H': [20.0, 24.0, 28.0]})
    with pytest.raises(MissingDataError) as excinfo:
        fit_ols(df, 'RUD_V', 'CA_H')
    assert excinfo.value.n_available == 2
    assert excinfo.value.n_required == 3
    assert 'RUD_V' in str(excinfo.value)


def test_constant_predictor_warns_degenerate_fit():
    df = pd.DataFrame({'RUD_V': [12.0] * 5, 'CA_H': [23.0, 24.0, 25.0, 24.5, 23.5]})
    with pytest.warns(DegenerateFitWarning):
        model = fit_ols(df, 'RUD_V', 'CA_H')
    assert model.nobs == 5


def test_unsupported_degree():
    with pytest.raises(ValueError):
        fit_ols(_noisy_linear(), 'RUD_V', 'CA_H', degree=3)


def test_select_model_keeps_linear_for_exact_linear_data(modern_exact):
    selection = select_model(modern_exact, 'RUD_V', 'CA_H', verbose=False)
    assert not selection.uses_polynomial
    assert selection.selected is selection.linear
    assert selection.reason.startswith('linear retained')


def test_select_model_picks_quadratic_for_curved_data():
    x = np.arange(1.0, 21.0)
    wobble = np.where(np.arange(20) % 2 == 0, 0.1, -0.1)
    df = pd.DataFrame({'RUD_V': x, 'CA_H': 0.5 * x ** 2 + wobble})
    selection = select_model(df, 'RUD_V', 'CA_H', verbose=False)
    assert selection.uses_polynomial
    assert selection.f_pvalue < 0.05
    assert selection.delta_adj_r2 >= 0.01


def test_select_model_with_three_rows_skips_quadratic():
    df = pd.DataFrame({'RUD_V': [10.0, 12.0, 14.0], 'CA_H': [20.5, 23.8, 28.1]})
    selection = select_model(df, 'RUD_V', 'CA_H', verbose=False)
    assert selection.polynomial is None
    assert selection.selected.degree == 1


def test_fit_carapace_estimator_defaults(modern_exact):
    selection = fit_carapace_estimator(modern_exact, verbose=False)
    assert selection.selected.predictor == 'RUD_V'
    assert selection.selected.response == 'CA_H'
    assert selection.to_dict()['selected_degree'] == 1


def test_diagnostics_flag_high_leverage_point():
    x = np.array([1, 2, 3, 4, 5, 6, 7, 8, 9, 30], dtype=float)
    noise = np.array([0.2, -0.1, 0.05, -0.2, 0.1, 0.0, -0.05, 0.15, -0.1, 0.3])
    df = pd.DataFrame({'Spec_ID': [f"M{i}" for i in range(10)], 'RUD_V': x,
                       'CA_H': 2 * x + noise})
    model = fit_ols(df, 'RUD_V', 'CA_H')
    diag = regression_diagnostics(model, id_column=df['Spec_ID'])

    assert len(diag) == 10
    assert {'residual', 'leverage', 'cooks_d', 'high_leverage', 'influential'} <= set(diag.columns)
    flagged = diag[diag['high_leverage']]
    assert list(flagged['id']) == ['M9']


def test_to_dict_has_equation():
    model = fit_ols(_noisy_linear(), 'RUD_V', 'CA_H')
    info = model.to_dict()
    assert info['equation'].startswith('CA_H = ')
    assert info['nobs'] == 12
