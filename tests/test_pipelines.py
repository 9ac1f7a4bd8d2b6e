"""
Test Suite for the Reports
==========================

End-to-end runs of the stock, loan and insurance reports (and the CLI) on
small synthetic datasets.
"""

import json

import pytest
import numpy as np
import pandas as pd
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dsreports.stock_forecast import prepare_series, run_stock_report
from dsreports.loan_approval import run_loan_report
from dsreports.insurance_claims import run_insurance_report
from main import main, run_reports


def make_stock_csv(path: Path, n_days: int = 260) -> int:
    """Write a daily price history with gaps; returns the number of gaps."""
    np.random.seed(42)
    dates = pd.bdate_range('2022-01-03', periods=n_days)
    close = 100 * np.exp(np.cumsum(np.random.randn(n_days) * 0.01 + 0.0005))
    df = pd.DataFrame({'Date': dates.strftime('%Y-%m-%d'), 'Close': close.round(4)})

    dropped = [15, 40, 41, 90, 150, 151, 152, 200]
    blanked = [60, 120, 230]
    df.loc[blanked, 'Close'] = np.nan
    df = df.drop(index=dropped)
    df.to_csv(path, index=False)
    return len(dropped) + len(blanked)


def make_loan_csv(path: Path, n: int = 240) -> int:
    """Write loan applications with missing values; returns the number of gaps."""
    np.random.seed(42)
    credit = np.random.choice([1.0, 0.0], n, p=[0.8, 0.2])
    income = np.random.lognormal(8.3, 0.5, n).round(0)
    approve = np.where(credit == 1.0, np.random.rand(n) < 0.8, np.random.rand(n) < 0.1)
    df = pd.DataFrame({
        'Loan_ID': [f'LP{i:04d}' for i in range(n)],
        'Gender': np.random.choice(['Male', 'Female'], n),
        'Married': np.random.choice(['Yes', 'No'], n),
        'Dependents': np.random.choice(['0', '1', '2', '3+'], n),
        'Education': np.random.choice(['Graduate', 'Not Graduate'], n),
        'Self_Employed': np.random.choice(['Yes', 'No'], n, p=[0.15, 0.85]),
        'ApplicantIncome': income,
        'CoapplicantIncome': np.random.lognormal(7, 1, n).round(0),
        'LoanAmount': (income / 40 + np.random.randn(n) * 10).round(0),
        'Loan_Amount_Term': np.random.choice([180.0, 360.0, 480.0], n),
        'Credit_History': credit,
        'Property_Area': np.random.choice(['Urban', 'Rural', 'Semiurban'], n),
        'Loan_Status': np.where(approve, 'Y', 'N')
    })
    df.loc[[1, 8, 30], 'Gender'] = np.nan
    df.loc[[4, 50, 77, 140], 'LoanAmount'] = np.nan
    df.loc[[9, 99], 'Credit_History'] = np.nan
    df.to_csv(path, index=False)
    return 9


def make_insurance_csv(path: Path, n: int = 400) -> int:
    """Write insurance policies with missing values; returns the number of gaps."""
    np.random.seed(42)
    age = np.random.randint(18, 80, n).astype(float)
    bmi = np.random.normal(27, 4, n).round(1)
    van = np.random.rand(n) < 0.3
    logit = -0.4 + 0.08 * (age - 50) + 0.1 * (bmi - 27) + 0.5 * van
    claim = (np.random.rand(n) < 1 / (1 + np.exp(-logit))).astype(int)
    amount = 2000 + 40 * age + 300 * van + 50 * bmi + np.random.randn(n) * 300

    df = pd.DataFrame({
        'policy_id': np.arange(n),
        'age': age,
        'bmi': bmi,
        'vehicle_value': np.random.normal(15000, 4000, n).round(0),
        'region': np.random.choice(['north', 'south', 'east'], n),
        'vehicle_type': np.where(van, 'van', 'car'),
        'claim': claim,
        'claim_amount': np.where(claim == 1, amount.round(2), np.nan)
    })
    df.loc[np.arange(0, 200, 10), 'bmi'] = np.nan
    df.loc[np.arange(5, 205, 10), 'vehicle_value'] = np.nan
    df.to_csv(path, index=False)
    return 40


@pytest.fixture
def config(tmp_path):
    """Small configuration pointing at synthetic data."""
    data = tmp_path / 'data'
    data.mkdir()
    gaps = {
        'stock': make_stock_csv(data / 'stock.csv'),
        'loan': make_loan_csv(data / 'loan.csv'),
        'insurance': make_insurance_csv(data / 'insurance.csv')
    }
    return {
        'gaps': gaps,
        'logging': {'level': 'WARNING', 'log_dir': None},
        'output': {'cache_dir': str(tmp_path / 'cache')},
        'stock': {
            'source': str(data / 'stock.csv'),
            'ticker': 'TEST',
            'holdout_days': 20,
            'forecast_horizon': 10,
            'boxcox': True,
            'arima': {'max_p': 1, 'max_q': 1}
        },
        'loan': {
            'source': str(data / 'loan.csv'),
            'id_column': 'Loan_ID',
            'target': 'Loan_Status',
            'positive_label': 'Y',
            'categorical_columns': [
                'Gender', 'Married', 'Dependents', 'Education',
                'Self_Employed', 'Credit_History', 'Property_Area'
            ],
            'test_size': 0.25,
            'cross_validation_folds': 5,
            'knn': {'k_values': [1, 3, 5, 7]},
            'models': {'random_forest': {'n_estimators': 30, 'n_jobs': 1}}
        },
        'insurance': {
            'source': str(data / 'insurance.csv'),
            'id_column': 'policy_id',
            'claim_target': 'claim',
            'amount_target': 'claim_amount',
            'positive_label': 1,
            'imputation': 'mice',
            'mice': {'max_iter': 5},
            'models': {'use': ['random_forest'], 'random_forest': {'n_estimators': 30, 'n_jobs': 1}}
        }
    }


class TestPrepareSeries:
    """Tests for prepare_series."""

    def test_business_day_gaps_become_missing(self):
        df = pd.DataFrame({
            'Date': ['2024-01-05', '2024-01-02', '2024-01-03', '2024-01-03'],
            'Close': [13.0, 10.0, 11.0, 11.5]
        })
        series = prepare_series(df, 'Date', 'Close')

        assert list(series.index.strftime('%Y-%m-%d')) == [
            '2024-01-02', '2024-01-03', '2024-01-04', '2024-01-05'
        ]
        assert series.iloc[1] == 11.5
        assert np.isnan(series.iloc[2])

    def test_unparseable_dates(self):
        df = pd.DataFrame({'Date': ['x', 'y'], 'Close': [1.0, 2.0]})
        with pytest.raises(ValueError, match="no parseable dates"):
            prepare_series(df, 'Date', 'Close')


class TestStockReport:
    """End-to-end stock forecast report."""

    def test_run(self, config, tmp_path):
        result = run_stock_report(config, output_dir=str(tmp_path / 'out'))

        assert result['n_imputed'] == config['gaps']['stock']
        assert result['series'].notna().all()
        assert len(result['forecast']) == 10
        assert len(result['holdout_forecast']) == 20
        assert result['metrics']['mape'] >= 0
        assert result['final_model'].order_ == result['model'].order_

        assert Path(result['html_path']).name == 'stock_forecast.html'
        html = Path(result['html_path']).read_text(encoding='utf-8')
        assert 'ARIMA' in html
        assert 'data:image/png;base64,' in html

        exported = pd.read_csv(result['csv_path'])
        assert list(exported.columns) == ['date', 'forecast', 'lower', 'upper']
        assert len(exported) == 10

        saved = json.loads((tmp_path / 'out' / 'predictions' / 'test_forecast.json').read_text())
        assert saved['horizon'] == 10


class TestLoanReport:
    """End-to-end loan approval report."""

    def test_run(self, config, tmp_path):
        result = run_loan_report(config, output_dir=str(tmp_path / 'out'))

        scores = result['scores']
        assert len(scores) == 5
        assert list(scores['accuracy']) == sorted(scores['accuracy'], reverse=True)
        assert scores['cv_accuracy'].notna().all()
        assert result['best_model'] == scores.iloc[0]['model']
        assert result['knn']['best_k'] in [1, 3, 5, 7]
        assert result['imputation']['total_imputed'] == config['gaps']['loan']
        assert result['imputation']['missing_after'] == {}

        assert (tmp_path / 'out' / 'models' / 'loan_classifiers.joblib').exists()
        html = Path(result['html_path']).read_text(encoding='utf-8')
        assert 'Loan Approval' in html
        assert 'Linear Discriminant Analysis' in html

    def test_model_subset_without_knn(self, config, tmp_path):
        config['loan']['models']['use'] = ['lda', 'logistic_regression']
        result = run_loan_report(config, output_dir=str(tmp_path / 'out'))

        assert result['knn'] is None
        assert set(result['scores']['model']) == {'lda', 'logistic_regression'}


class TestInsuranceReport:
    """End-to-end insurance claims report."""

    def test_run(self, config, tmp_path):
        result = run_insurance_report(config, output_dir=str(tmp_path / 'out'))

        assert result['imputation']['strategy'] == 'mice'
        assert result['imputation']['total_imputed'] == config['gaps']['insurance']

        regression = result['regression']
        assert regression['metrics']['Linear regression (stepwise AIC)']['r2'] > 0.3
        assert 'age' in regression['stepwise']['terms']

        scores = result['classification_scores']
        assert set(scores.index) == {
            'Logistic regression (full)', 'Logistic regression (stepwise AIC)', 'Random Forest'
        }
        assert scores['auc'].between(0, 1).all()

        html = Path(result['html_path']).read_text(encoding='utf-8')
        assert 'How large is a claim?' in html
        assert 'Will a policy claim?' in html


class TestMain:
    """Tests for the command line entry point."""

    @pytest.fixture
    def config_file(self, config, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({k: v for k, v in config.items() if k != 'gaps'}))
        return path

    def test_single_report(self, config_file, tmp_path, capsys):
        code = main(['--config', str(config_file), '--report', 'loan', '--output', str(tmp_path / 'cli')])

        assert code == 0
        assert (tmp_path / 'cli' / 'loan_approval.html').exists()
        assert 'RUN COMPLETE' in capsys.readouterr().out

    def test_missing_config(self, tmp_path):
        assert main(['--config', str(tmp_path / 'missing.yaml')]) == 1

    def test_missing_data_returns_error(self, config_file, tmp_path):
        code = main([
            '--config', str(config_file), '--report', 'stock',
            '--data', str(tmp_path / 'nope.csv'), '--output', str(tmp_path / 'cli')
        ])
        assert code == 1

    def test_data_override_requires_single_report(self, config):
        with pytest.raises(ValueError, match="single report"):
            run_reports('all', config, data='other.csv')

    def test_unknown_report(self, config):
        with pytest.raises(ValueError, match="Unknown report"):
            run_reports('weather', config)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
