"""
Test Suite for Report Output
============================

Tests for the HTML report builder, the narrative paragraphs and the
forecast export.
"""

import json

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dsreports.report import HtmlReport, figure_to_base64
from dsreports.narrative import (
    describe_dataset, describe_missing, describe_class_balance, describe_stationarity,
    describe_forecast_accuracy, describe_classifier_ranking, describe_regression,
    describe_stepwise, describe_auc
)
from dsreports.prediction import export_forecast, generate_prediction_report, print_prediction_results


class TestHtmlReport:
    """Tests for HtmlReport class."""

    @pytest.fixture
    def report(self):
        return HtmlReport("Loan <Approval>", subtitle="Classification")

    def test_text_is_escaped(self, report):
        report.add_heading("A & B").add_paragraph("x < y")
        page = report.render()

        assert "<title>Loan &lt;Approval&gt;</title>" in page
        assert "<h2>A &amp; B</h2>" in page
        assert "<p>x &lt; y</p>" in page

    def test_empty_paragraph_skipped(self, report):
        report.add_paragraph("").add_list([])
        assert report.blocks == []

    def test_add_table(self, report):
        report.add_table(pd.DataFrame({'accuracy': [0.8123456]}, index=['LDA']), caption="Scores")
        page = report.render()

        assert report.n_tables == 1
        assert "<table" in page
        assert "0.8123" in page
        assert "<h4>Scores</h4>" in page

    def test_add_figure_embeds_png(self, report):
        fig, ax = plt.subplots()
        ax.plot([1, 2, 3])
        report.add_figure(fig, caption="A line")

        assert report.n_figures == 1
        assert "data:image/png;base64," in report.blocks[0]
        assert "<figcaption>A line</figcaption>" in report.blocks[0]

    def test_add_image_file(self, report, tmp_path):
        fig, ax = plt.subplots()
        ax.plot([1, 2])
        path = tmp_path / 'plot.png'
        fig.savefig(path)
        plt.close(fig)

        report.add_image_file(str(path))
        assert "alt='plot.png'" in report.blocks[0]

    def test_save(self, report, tmp_path):
        report.add_paragraph("Body text")
        path = report.save(str(tmp_path / 'nested' / 'report.html'))

        content = Path(path).read_text(encoding='utf-8')
        assert content.startswith("<!doctype html>")
        assert "Body text" in content
        assert "Classification" in content

    def test_figure_to_base64_closes_figure(self):
        fig, _ = plt.subplots()
        number = fig.number
        encoded = figure_to_base64(fig)

        assert len(encoded) > 100
        assert number not in plt.get_fignums()


class TestNarrative:
    """Tests for the narrative paragraphs."""

    def test_describe_dataset(self):
        text = describe_dataset(1234, 13, "loan applications", "Loan_Status")
        assert "1,234 loan applications" in text
        assert "'Loan_Status'" in text

    def test_describe_missing_none(self):
        assert describe_missing({'a': 0}, 10, "the median") == (
            "There are no missing values, so no imputation is needed."
        )

    def test_describe_missing(self):
        text = describe_missing({'a': 2, 'b': 5}, 50, "the median")

        assert text.startswith("7 values are missing across 2 column(s) (a and b)")
        assert "'b' with 5 gaps (10.0% of rows)" in text
        assert text.endswith("filled using the median.")

    def test_describe_class_balance(self):
        text = describe_class_balance({'Y': 3, 'N': 1}, 'Loan_Status')
        assert "Y: 3 (75.0%) and N: 1 (25.0%)" in text

    def test_describe_stationarity(self):
        text = describe_stationarity(
            {'is_stationary': False, 'p_value': 0.8},
            {'is_stationary': True, 'p_value': 0.001},
            1
        )
        assert "raw series not stationary" in text
        assert "d = 1" in text

    @pytest.mark.parametrize("naive_mape, verdict", [
        (5.0, "beats"), (1.0, "does not beat"), (2.0, "ties with")
    ])
    def test_describe_forecast_accuracy(self, naive_mape, verdict):
        text = describe_forecast_accuracy(
            [1, 1, 0], {'mape': 2.0, 'rmse': 1.5}, 30, {'mape': naive_mape}
        )
        assert "ARIMA(1,1,0)" in text
        assert f"It {verdict} the naive" in text

    def test_describe_classifier_ranking(self):
        scores = pd.DataFrame({
            'label': ['Random Forest', 'LDA', 'KNN'],
            'accuracy': [0.70, 0.82, 0.75]
        })
        text = describe_classifier_ranking(scores)

        assert text.startswith("LDA performs best with a held-out accuracy of 82.0%")
        assert "Random Forest trails at 70.0%" in text
        assert "12.0 percentage points" in text

    def test_describe_classifier_ranking_single(self):
        scores = pd.DataFrame({'label': ['LDA'], 'accuracy': [0.8]})
        assert describe_classifier_ranking(scores) == "LDA reaches a held-out accuracy of 80.0%."

    def test_describe_regression(self):
        text = describe_regression({'r2': 0.5, 'rmse': 1000.0, 'mae': 800.0}, 'claim_amount')
        assert "explains 50.0% of the variance in 'claim_amount'" in text
        assert "RMSE of 1,000.00" in text

    def test_describe_stepwise(self):
        selection = {
            'terms': ['age', 'bmi'], 'dropped': ['region'], 'direction': 'both',
            'start_aic': 1500.0, 'final_aic': 1490.5
        }
        text = describe_stepwise(selection)

        assert "keeping 2 of 3 predictors" in text
        assert "Dropped: region." in text

    def test_describe_auc(self):
        text = describe_auc({'A': {'auc': 0.7}, 'B': {'auc': 0.9}})
        assert "B separates the classes best (AUC = 0.900)" in text
        assert describe_auc({}) == ""


class TestPredictionExport:
    """Tests for forecast export."""

    @pytest.fixture
    def forecast(self):
        index = pd.bdate_range('2024-03-01', periods=5)
        values = np.arange(5, dtype=float) + 100
        return pd.DataFrame({'forecast': values, 'lower': values - 2, 'upper': values + 2}, index=index)

    def test_export_forecast(self, forecast, tmp_path):
        path = export_forecast(forecast, str(tmp_path / 'out'), name='stock_forecast')

        assert Path(path).name == 'stock_forecast.csv'
        loaded = pd.read_csv(path)
        assert list(loaded.columns) == ['date', 'forecast', 'lower', 'upper']
        assert len(loaded) == 5

    def test_generate_prediction_report(self, forecast, tmp_path):
        output = tmp_path / 'forecast.json'
        report = generate_prediction_report(
            forecast, {'order': [1, 1, 0]}, {'mape': 1.2}, output_path=str(output)
        )

        assert report['horizon'] == 5
        assert report['holdout_metrics'] == {'mape': 1.2}
        saved = json.loads(output.read_text())
        assert saved['model']['order'] == [1, 1, 0]
        assert len(saved['forecast']) == 5

    def test_print_prediction_results(self, forecast, capsys):
        print_prediction_results(forecast, max_rows=3)
        output = capsys.readouterr().out

        assert "FORECAST - 5 STEPS" in output
        assert "2024-03-01" in output
        assert "... 2 more rows" in output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
