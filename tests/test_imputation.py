import numpy as np
import pandas as pd
import pytest

from crab_analysis.imputation import (
    ReferenceEquation, fit_dactyl_imputer, impute_missing_dactyl,
    estimate_carapace_size, compare_with_reference, get_reference_equation
)
from crab_analysis.regression import fit_carapace_estimator, fit_ols


@pytest.fixture
def estimator(modern_exact):
    return fit_carapace_estimator(modern_exact, verbose=False).selected


@pytest.fixture
def imputer(modern_exact):
    return fit_dactyl_imputer(modern_exact)


def test_imputer_recovers_exact_relation(imputer):
    assert imputer.predictor == 'RUD_H'
    assert imputer.response == 'RUD_V'
    assert imputer.slope == pytest.approx(2.0)
    assert imputer.intercept == pytest.approx(0.0, abs=1e-9)


def test_missing_rud_v_imputed_then_estimated(archaeological_exact, estimator, imputer):
    result = estimate_carapace_size(archaeological_exact, estimator, imputer, verbose=False)
    out = result.specimens.set_index('Spec_ID')

    assert out.loc['A2', 'RUD_V'] == pytest.approx(10.0)
    assert out.loc['A2', 'CA_H_est'] == pytest.approx(20.0)
    assert result.imputation.n_imputed == 1


def test_measured_rud_v_never_overwritten(archaeological_exact, estimator, imputer):
    result = estimate_carapace_size(archaeological_exact, estimator, imputer, verbose=False)
    out = result.specimens.set_index('Spec_ID')

    # A1 has RUD_H = 9, which would impute 18
    assert out.loc['A1', 'RUD_V'] == 11.0
    assert out.loc['A4', 'RUD_V'] == 13.5
    assert out.loc['A1', 'CA_H_est'] == pytest.approx(22.0)
    assert not result.imputation.imputed_mask[archaeological_exact['Spec_ID'] == 'A1'].any()


def test_input_table_left_untouched(archaeological_exact, estimator, imputer):
    before = archaeological_exact.copy()
    estimate_carapace_size(archaeological_exact, estimator, imputer, verbose=False)
    pd.testing.assert_frame_equal(archaeological_exact, before)


def test_specimen_without_dactyl_measurements_stays_unestimated(archaeological_exact,
                                                                estimator, imputer):
    result = estimate_carapace_size(archaeological_exact, estimator, imputer, verbose=False)
    out = result.specimens.set_index('Spec_ID')
    assert np.isnan(out.loc['A3', 'RUD_V'])
    assert np.isnan(out.loc['A3', 'CA_H_est'])
    assert result.n_estimated == 3
    assert len(result.specimens) == 4


def test_estimate_columns_carry_intervals(archaeological_exact, estimator, imputer):
    out = estimate_carapace_size(archaeological_exact, estimator, imputer,
                                 verbose=False).specimens
    for col in ('CA_H_est', 'CA_H_se', 'CA_H_pi_lower', 'CA_H_pi_upper'):
        assert col in out.columns


def test_impute_requires_columns(imputer):
    with pytest.raises(ValueError):
        impute_missing_dactyl(pd.DataFrame({'RUD_V': [10.0]}), imputer, verbose=False)


def test_chain_mismatch_rejected(modern_exact, archaeological_exact, imputer):
    wrong_estimator = fit_ols(modern_exact, 'RUD_H', 'CA_H')
    with pytest.raises(ValueError):
        estimate_carapace_size(archaeological_exact, wrong_estimator, imputer, verbose=False)


def test_reference_comparison_identical_equation(modern_exact, estimator):
    reference = ReferenceEquation(name='doubling', predictor='RUD_V', response='CA_H',
                                  intercept=0.0, slope=2.0)
    data = pd.DataFrame({'RUD_V': [9.0, 11.0, 13.0, np.nan, 17.0]})
    comparison = compare_with_reference(data, estimator, reference, verbose=False)

    assert len(comparison.estimates) == 4
    assert np.allclose(comparison.estimates['difference'], 0.0, atol=1e-8)
    assert comparison.test.ci_contains_zero()
    assert comparison.to_dict()['reference'] == reference.equation()


def test_reference_comparison_detects_offset(estimator):
    reference = ReferenceEquation(name='shifted', predictor='RUD_V', response='CA_H',
                                  intercept=-5.0, slope=2.0)
    data = pd.DataFrame({'RUD_V': [9.0, 10.0, 11.0, 12.0, 13.0, 14.0]})
    comparison = compare_with_reference(data, estimator, reference, verbose=False)
    assert comparison.test.diff == pytest.approx(5.0)


def test_reference_predictor_must_match(modern_exact):
    model = fit_ols(modern_exact, 'RUD_H', 'CA_H')
    with pytest.raises(ValueError):
        compare_with_reference(pd.DataFrame({'RUD_H': [5.0, 6.0]}), model, verbose=False)


def test_configured_reference_equation():
    reference = get_reference_equation()
    assert reference.predictor == 'RUD_V'
    assert reference.response == 'CA_H'
    assert float(reference.predict([10.0]).iloc[0]) == pytest.approx(
        reference.intercept + 10.0 * reference.slope)
    with pytest.raises(ValueError):
        get_reference_equation('no-such-equation')


def test_default_reference_is_labelled_placeholder():
    reference = get_reference_equation()
    assert 'published' not in reference.name
    assert 'placeholder' in reference.name
    assert 'Placeholder' in reference.source
