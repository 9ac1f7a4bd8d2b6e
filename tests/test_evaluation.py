"""
Test Suite for Evaluation Module
================================

Tests for forecast, regression and classification metrics and the
diagnostic plots.
"""

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dsreports.evaluation import (
    mean_absolute_percentage_error, calculate_forecast_metrics,
    calculate_regression_metrics, calculate_classification_metrics,
    plot_forecast, plot_actual_vs_predicted, plot_residuals,
    plot_confusion_matrix, plot_roc_curves, plot_accuracy_comparison,
    plot_feature_importances, print_evaluation_report
)


class TestForecastMetrics:
    """Tests for MAPE and forecast metrics."""

    def test_mape(self):
        assert mean_absolute_percentage_error([100, 200], [110, 180]) == pytest.approx(10.0)

    def test_mape_skips_zero_actuals(self):
        assert mean_absolute_percentage_error([0, 100], [5, 90]) == pytest.approx(10.0)

    def test_mape_all_zero(self):
        with pytest.raises(ValueError, match="undefined"):
            mean_absolute_percentage_error([0, 0], [1, 2])

    def test_mape_shape_mismatch(self):
        with pytest.raises(ValueError, match="Shape mismatch"):
            mean_absolute_percentage_error([1, 2, 3], [1, 2])

    def test_forecast_metrics(self):
        metrics = calculate_forecast_metrics([10.0, 20.0, 30.0], [12.0, 18.0, 30.0])

        assert metrics['mae'] == pytest.approx(4 / 3)
        assert metrics['rmse'] == pytest.approx(np.sqrt(8 / 3))
        assert metrics['n_samples'] == 3


class TestRegressionMetrics:
    """Tests for calculate_regression_metrics."""

    def test_perfect_prediction(self):
        y = np.array([1.0, 2.0, 3.0, 4.0])
        metrics = calculate_regression_metrics(y, y)

        assert metrics['r2'] == pytest.approx(1.0)
        assert metrics['rmse'] == 0.0
        assert metrics['mape'] == 0.0

    def test_residual_statistics(self):
        metrics = calculate_regression_metrics([1.0, 2.0, 3.0], [0.0, 2.0, 3.0])

        assert metrics['mean_error'] == pytest.approx(1 / 3)
        assert metrics['max_error'] == pytest.approx(1.0)

    def test_mape_nan_when_all_zero(self):
        metrics = calculate_regression_metrics([0.0, 0.0], [1.0, -1.0])
        assert np.isnan(metrics['mape'])


class TestClassificationMetrics:
    """Tests for calculate_classification_metrics."""

    def test_counts(self):
        y_true = [1, 1, 0, 0, 1]
        y_pred = [1, 0, 0, 1, 1]
        metrics = calculate_classification_metrics(y_true, y_pred)

        assert metrics['accuracy'] == pytest.approx(0.6)
        assert metrics['precision'] == pytest.approx(2 / 3)
        assert metrics['recall'] == pytest.approx(2 / 3)
        assert metrics['labels'] == [0, 1]
        assert metrics['confusion_matrix'] == [[1, 1], [1, 2]]
        assert 'auc' not in metrics

    def test_auc_with_scores(self):
        y_true = [0, 0, 1, 1]
        metrics = calculate_classification_metrics(y_true, [0, 0, 1, 1], [0.1, 0.2, 0.8, 0.9])

        assert metrics['auc'] == pytest.approx(1.0)
        assert metrics['roc']['fpr'][0] == 0.0
        assert metrics['roc']['tpr'][-1] == 1.0

    def test_string_labels(self):
        metrics = calculate_classification_metrics(['Y', 'N', 'Y'], ['Y', 'Y', 'Y'], positive_label='Y')

        assert metrics['labels'] == ['N', 'Y']
        assert metrics['recall'] == pytest.approx(1.0)


class TestPlots:
    """Smoke tests for the evaluation plots."""

    @pytest.fixture
    def series_and_forecast(self):
        index = pd.bdate_range('2024-01-01', periods=60)
        series = pd.Series(np.linspace(10, 20, 60), index=index, name='Close')
        train, test = series.iloc[:50], series.iloc[50:]
        forecast = pd.DataFrame({
            'forecast': test.values + 0.5,
            'lower': test.values - 1,
            'upper': test.values + 2
        }, index=test.index)
        return train, test, forecast

    def test_plot_forecast(self, series_and_forecast, tmp_path):
        train, test, forecast = series_and_forecast
        path = tmp_path / 'forecast.png'
        fig = plot_forecast(train, test, forecast, history=20, save_path=str(path))

        assert isinstance(fig, plt.Figure)
        assert path.exists()
        plt.close(fig)

    def test_regression_plots(self):
        np.random.seed(42)
        y = np.random.randn(50)
        pred = y + np.random.randn(50) * 0.1

        for fig in (plot_actual_vs_predicted(y, pred), plot_residuals(y, pred)):
            assert isinstance(fig, plt.Figure)
            plt.close(fig)

    def test_classification_plots(self, tmp_path):
        metrics = calculate_classification_metrics([0, 0, 1, 1], [0, 1, 1, 1], [0.1, 0.6, 0.7, 0.9])
        scores = pd.DataFrame({'label': ['A', 'B'], 'accuracy': [0.75, 0.8]})

        figs = [
            plot_confusion_matrix(metrics['confusion_matrix'], metrics['labels']),
            plot_roc_curves({'Model': metrics}, save_path=str(tmp_path / 'roc.png')),
            plot_accuracy_comparison(scores),
            plot_feature_importances(pd.Series({'a': 0.6, 'b': 0.4}))
        ]
        assert all(isinstance(fig, plt.Figure) for fig in figs)
        assert (tmp_path / 'roc.png').exists()
        plt.close('all')


def test_print_evaluation_report(capsys):
    print_evaluation_report(
        {'Model A': {'accuracy': 0.9, 'auc': 0.95}, 'Model B': {'accuracy': 0.8}},
        title='HELD-OUT METRICS'
    )
    output = capsys.readouterr().out

    assert 'HELD-OUT METRICS' in output
    assert 'Model A' in output
    assert 'N/A' in output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
