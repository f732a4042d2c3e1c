"""
Unit Tests for Three-Sigma Error Models

Tests verify:
1. Empirical quantiles use linear interpolation and ignore NaNs
2. Percent-plus-quantile and climatological taper formulas
3. The taper never exceeds the flat percent error
4. Default parameters and overrides
5. Insufficient samples raise instead of defaulting
6. Errors are clipped at zero for negative values and samples
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from gauge_obs.errors import InsufficientData
from gauge_obs.normalize.schemas import ErrorModelKind
from gauge_obs.uncertainty.error_models import (
    DEFAULT_PARAMETERS,
    ErrorModel,
    clim_taper_3sd,
    pct_plus_quantile_3sd,
    sample_quantile,
)


# Fixtures
@pytest.fixture
def hundred_sample():
    """Historical sample 0, 1, ..., 100"""
    return np.arange(0, 101, dtype=float)


# Test Cases: Quantiles

def test_quantile_linear_interpolation():
    """Quantiles interpolate between order statistics"""
    sample = [1.0, 2.0, 3.0, 4.0, 5.0]

    assert sample_quantile(sample, 0.5) == pytest.approx(3.0)
    assert sample_quantile(sample, 0.25) == pytest.approx(2.0)
    assert sample_quantile(sample, 0.1) == pytest.approx(1.4)
    assert sample_quantile(sample, 0.0) == pytest.approx(1.0)
    assert sample_quantile(sample, 1.0) == pytest.approx(5.0)


def test_quantile_ignores_nan():
    """Missing values do not shift the quantile"""
    assert sample_quantile([1.0, np.nan, 3.0], 0.5) == pytest.approx(2.0)


@pytest.mark.parametrize("sample", [
    [],
    [5.0],
    [5.0, 5.0, 5.0],
    [1.0, np.nan, np.nan],
])
def test_quantile_insufficient_sample(sample):
    """Fewer than two distinct values is an error, not a zero"""
    with pytest.raises(InsufficientData):
        sample_quantile(sample, 0.5)


# Test Cases: Percent plus quantile

def test_pct_plus_quantile_formula():
    """error = Q(q_intercept) + pct_err * value"""
    errors = pct_plus_quantile_3sd([0.0, 100.0], [50.0, 0.0], q_intercept=0.5, pct_err=0.1)

    np.testing.assert_allclose(errors, [55.0, 50.0])


def test_pct_plus_quantile_defaults():
    """Defaults are the 0.5% quantile plus 10%"""
    sample = np.arange(0, 201, dtype=float)

    errors = pct_plus_quantile_3sd(sample, [100.0])

    assert errors[0] == pytest.approx(1.0 + 10.0)


def test_pct_plus_quantile_missing_value_gives_nan():
    """A missing observation gets a missing error"""
    errors = pct_plus_quantile_3sd([0.0, 100.0], [np.nan, 10.0])

    assert np.isnan(errors[0])
    assert np.isfinite(errors[1])


def test_pct_plus_quantile_negative_value_clipped():
    """A negative observation never yields a negative error"""
    errors = pct_plus_quantile_3sd([0.0, 100.0], [-1000.0, 10.0], q_intercept=0.5, pct_err=0.1)

    np.testing.assert_allclose(errors, [0.0, 51.0])


# Test Cases: Climatological taper

def test_clim_taper_minimum_at_climatology(hundred_sample):
    """At the climatological quantile only the intercept remains"""
    errors = clim_taper_3sd(hundred_sample, [50.0])

    assert errors[0] == pytest.approx(5.0)


@pytest.mark.parametrize("value,expected", [
    (0.0, 5.0),
    (60.0, 6.5),
    (100.0, 12.5),
    (200.0, 27.5),
])
def test_clim_taper_values(hundred_sample, value, expected):
    """error = Q(.05) + min(.15 * v, .15 * |v - Q(.5)|) with Q(.05)=5, Q(.5)=50"""
    errors = clim_taper_3sd(hundred_sample, [value])

    assert errors[0] == pytest.approx(expected)


def test_clim_taper_never_exceeds_flat_percent(hundred_sample):
    """The taper term is capped by pct_err * value"""
    values = np.linspace(0.0, 1000.0, 501)

    errors = clim_taper_3sd(hundred_sample, values)

    intercept = sample_quantile(hundred_sample, 0.05)
    assert np.all(errors - intercept <= 0.15 * values + 1e-12)


def test_clim_taper_grows_away_from_climatology(hundred_sample):
    """Errors do not decrease as values move further above the median"""
    values = np.linspace(50.0, 500.0, 91)

    errors = clim_taper_3sd(hundred_sample, values)

    assert np.all(np.diff(errors) >= 0)


def test_clim_taper_grows_below_climatology_until_cap(hundred_sample):
    """Moving below the median toward the cap also grows the error"""
    values = np.linspace(50.0, 25.0, 26)

    errors = clim_taper_3sd(hundred_sample, values)

    assert np.all(np.diff(errors) >= 0)


def test_clim_taper_sentinel_in_sample_clipped():
    """A -999999 fill value in the sample drags the intercept below zero; errors stay >= 0"""
    sample = [-999999.0, 10.0, 20.0, 30.0]

    errors = clim_taper_3sd(sample, [-999999.0, 10.0, 20.0, 30.0])

    assert sample_quantile(sample, 0.05) < 0
    assert np.all(errors >= 0.0)


def test_clim_taper_negative_value_clipped(hundred_sample):
    errors = clim_taper_3sd(hundred_sample, [-100.0])

    assert errors[0] == 0.0


def test_error_models_are_pure(hundred_sample):
    """Same inputs give the same outputs, inputs untouched"""
    values = np.array([10.0, 50.0, 90.0])
    before = values.copy()

    first = clim_taper_3sd(hundred_sample, values)
    second = clim_taper_3sd(hundred_sample, values)

    np.testing.assert_array_equal(first, second)
    np.testing.assert_array_equal(values, before)


# Test Cases: ErrorModel

class TestErrorModel:
    """Parameterized model dispatch"""

    def test_for_kind_uses_defaults(self):
        model = ErrorModel.for_kind("clim_taper")

        assert model.kind == ErrorModelKind.CLIM_TAPER
        assert model.q_intercept == DEFAULT_PARAMETERS[ErrorModelKind.CLIM_TAPER]['q_intercept']
        assert model.q_clim == 0.5
        assert model.pct_err == 0.15
        assert model.tag == "clim_taper"

    def test_for_kind_overrides(self):
        model = ErrorModel.for_kind(ErrorModelKind.PCT_PLUS_QUANTILE, pct_err=0.2, q_intercept=None)

        assert model.pct_err == 0.2
        assert model.q_intercept == 0.005
        assert model.q_clim is None

    def test_override_not_applicable(self):
        with pytest.raises(ValueError, match="does not apply"):
            ErrorModel.for_kind("pct_plus_quantile", q_clim=0.5)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            ErrorModel.for_kind("gaussian")

    def test_taper_requires_clim_quantile(self):
        with pytest.raises(ValueError):
            ErrorModel(kind=ErrorModelKind.CLIM_TAPER, q_intercept=0.05, pct_err=0.15)

    def test_quantile_out_of_range(self):
        with pytest.raises(ValueError):
            ErrorModel(kind=ErrorModelKind.PCT_PLUS_QUANTILE, q_intercept=1.5, pct_err=0.1)

    def test_estimate_dispatches(self, hundred_sample):
        taper = ErrorModel.for_kind("clim_taper")
        flat = ErrorModel.for_kind("pct_plus_quantile", q_intercept=0.05, pct_err=0.15)

        np.testing.assert_allclose(
            taper.estimate(hundred_sample, [100.0]),
            clim_taper_3sd(hundred_sample, [100.0])
        )
        assert flat.estimate_one(hundred_sample, 100.0) == pytest.approx(5.0 + 15.0)

    def test_estimate_insufficient_sample(self):
        model = ErrorModel.for_kind("pct_plus_quantile")

        with pytest.raises(InsufficientData):
            model.estimate([3.0, 3.0], [3.0])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
