"""
Test Suite for Forecasting Module
=================================

Tests for AutoARIMA order selection, forecasting and the naive benchmark.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dsreports.forecasting import AutoARIMA, naive_forecast, future_index


@pytest.fixture
def price_series():
    """Positive random walk with drift on business days."""
    np.random.seed(42)
    index = pd.bdate_range('2023-01-02', periods=150)
    values = 50 + np.cumsum(np.random.randn(150) * 0.5 + 0.1)
    return pd.Series(values, index=index, name='Close')


class TestFutureIndex:
    """Tests for future_index."""

    def test_business_days_skip_weekend(self):
        index = pd.bdate_range('2024-01-01', '2024-01-05')  # Monday to Friday
        result = future_index(index, 3)

        assert list(result) == list(pd.to_datetime(['2024-01-08', '2024-01-09', '2024-01-10']))

    def test_range_index_continues(self):
        result = future_index(pd.RangeIndex(0, 10), 3)
        assert list(result) == [10, 11, 12]


class TestAutoARIMA:
    """Tests for AutoARIMA class."""

    @pytest.fixture
    def model(self):
        return AutoARIMA(max_p=1, max_q=1, max_d=2)

    def test_init(self, model):
        assert model.max_p == 1
        assert model.max_q == 1
        assert model._is_fitted == False

    def test_fit_selects_lowest_aic(self, model, price_series):
        model.fit(price_series)

        assert model._is_fitted == True
        assert len(model.candidates_) == 4
        assert model.aic_ == pytest.approx(model.candidates_['aic'].min())
        assert list(model.candidates_['aic']) == sorted(model.candidates_['aic'])

    def test_fixed_order_skips_search(self, price_series):
        model = AutoARIMA(order=(1, 1, 0)).fit(price_series)

        assert model.order_ == (1, 1, 0)
        assert len(model.candidates_) == 1

    def test_fixed_d(self, price_series):
        model = AutoARIMA(max_p=1, max_q=0, d=0).fit(price_series)
        assert model.order_[1] == 0

    def test_fit_with_missing_values(self, model, price_series):
        gapped = price_series.copy()
        gapped.iloc[5] = np.nan

        with pytest.raises(ValueError, match="missing values"):
            model.fit(gapped)

    def test_forecast_before_fit(self, model):
        with pytest.raises(ValueError, match="must be fitted"):
            model.forecast(5)

    def test_forecast_shape_and_interval(self, model, price_series):
        forecast = model.fit(price_series).forecast(10)

        assert list(forecast.columns) == ['forecast', 'lower', 'upper']
        assert len(forecast) == 10
        assert forecast.index[0] > price_series.index[-1]
        assert forecast.index[0].dayofweek < 5
        assert (forecast['lower'] <= forecast['forecast']).all()
        assert (forecast['forecast'] <= forecast['upper']).all()

    def test_boxcox_forecast_on_original_scale(self, price_series):
        model = AutoARIMA(max_p=1, max_q=1, boxcox=True).fit(price_series)
        forecast = model.forecast(5)

        assert model.transformer_ is not None
        assert (forecast['forecast'] > 0).all()
        assert abs(forecast['forecast'].iloc[0] - price_series.iloc[-1]) < 10

    def test_wider_interval_for_smaller_alpha(self, model, price_series):
        model.fit(price_series)
        narrow = model.forecast(5, alpha=0.2)
        wide = model.forecast(5, alpha=0.01)

        assert ((wide['upper'] - wide['lower']) > (narrow['upper'] - narrow['lower'])).all()

    def test_summary(self, model, price_series):
        summary = model.fit(price_series).summary()

        assert summary['order'] == list(model.order_)
        assert summary['n_obs'] == 150
        assert summary['n_candidates'] == 4
        assert summary['boxcox_lambda'] is None


class TestOrderSelection:
    """Tests for AutoARIMA order selection with stubbed fits."""

    @staticmethod
    def stub_fits(aic_by_order, failing=()):
        """Return a _fit_order replacement with fixed AICs per (p, q)."""
        def fit_order(values, order):
            p, _, q = order
            if (p, q) in failing:
                raise np.linalg.LinAlgError("singular matrix")
            return SimpleNamespace(aic=aic_by_order[(p, q)])
        return fit_order

    def test_failed_fits_skipped(self, price_series):
        aic = {(0, 0): 120.0, (0, 1): 110.0, (1, 0): 90.0, (1, 1): 80.0}
        model = AutoARIMA(max_p=1, max_q=1, d=1)

        with patch.object(AutoARIMA, '_fit_order', side_effect=self.stub_fits(aic, failing={(1, 0), (1, 1)})):
            model.fit(price_series)

        assert model.order_ == (0, 1, 1)
        assert len(model.candidates_) == 2
        assert set(model.candidates_['p']) == {0}

    def test_non_finite_aic_skipped(self, price_series):
        aic = {(0, 0): 120.0, (0, 1): np.nan, (1, 0): np.inf, (1, 1): 130.0}
        model = AutoARIMA(max_p=1, max_q=1, d=1)

        with patch.object(AutoARIMA, '_fit_order', side_effect=self.stub_fits(aic)):
            model.fit(price_series)

        assert model.order_ == (0, 1, 0)
        assert list(model.candidates_['aic']) == [120.0, 130.0]

    def test_all_fits_fail(self, price_series):
        model = AutoARIMA(max_p=1, max_q=1, d=1)
        failing = {(0, 0), (0, 1), (1, 0), (1, 1)}

        with patch.object(AutoARIMA, '_fit_order', side_effect=self.stub_fits({}, failing=failing)):
            with pytest.raises(RuntimeError, match="No ARIMA model"):
                model.fit(price_series)
        assert model._is_fitted == False

    def test_equal_aic_prefers_fewer_parameters(self, price_series):
        aic = {(0, 0): 100.0, (0, 1): 100.0, (1, 0): 100.0, (1, 1): 100.0}
        model = AutoARIMA(max_p=1, max_q=1, d=1)

        with patch.object(AutoARIMA, '_fit_order', side_effect=self.stub_fits(aic)):
            model.fit(price_series)

        assert model.order_ == (0, 1, 0)

    def test_equal_aic_and_size_prefers_first_tried(self, price_series):
        aic = {(0, 0): 100.0, (0, 1): 90.0, (1, 0): 90.0, (1, 1): 90.0}
        model = AutoARIMA(max_p=1, max_q=1, d=1)

        with patch.object(AutoARIMA, '_fit_order', side_effect=self.stub_fits(aic)):
            model.fit(price_series)

        assert model.order_ == (0, 1, 1)
        assert model.aic_ == 90.0


class TestNaiveForecast:
    """Tests for naive_forecast."""

    def test_repeats_last_value(self, price_series):
        naive = naive_forecast(price_series, 4)

        assert len(naive) == 4
        assert (naive == price_series.iloc[-1]).all()
        assert naive.name == 'naive'

    def test_empty_series(self):
        with pytest.raises(ValueError):
            naive_forecast(pd.Series([], dtype=float), 3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
