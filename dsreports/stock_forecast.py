"""
Stock Forecast Report
=====================

Forecasts a daily stock price with an automatically selected ARIMA model.

Steps:
    1. Load the price history and put it on a business-day calendar
    2. Fill the gaps by Kalman smoothing
    3. Check stationarity (ADF) and stabilise variance (Box-Cox)
    4. Hold out the last days, select and fit ARIMA, score with MAPE
    5. Refit on the full history and export the forecast to CSV
    6. Write the HTML report
"""

import logging
from typing import Dict, Any, Optional

import pandas as pd
import matplotlib.pyplot as plt

from .data_loader import load_data, get_output_paths
from .eda import plot_time_series, plot_acf_pacf, plot_rolling_statistics
from .evaluation import calculate_forecast_metrics, plot_forecast
from .forecasting import AutoARIMA, naive_forecast, print_model_summary
from .imputation import impute_kalman
from .narrative import describe_missing, describe_stationarity, describe_forecast_accuracy
from .prediction import export_forecast, generate_prediction_report, print_prediction_results
from .preprocessing import adf_test, difference, chronological_split
from .report import HtmlReport

logger = logging.getLogger(__name__)


def prepare_series(
    df: pd.DataFrame,
    date_column: str,
    value_column: str,
    business_days: bool = True
) -> pd.Series:
    """
    Turn the raw table into a date-indexed price series.

    Rows are sorted by date, duplicate dates keep the last row, and with
    ``business_days`` the index is reindexed to every business day so that
    missing trading days show up as NaN.
    """
    dates = pd.to_datetime(df[date_column], errors='coerce')
    if dates.isna().all():
        raise ValueError(f"Column '{date_column}' contains no parseable dates")

    series = pd.Series(
        pd.to_numeric(df[value_column], errors='coerce').to_numpy(),
        index=dates,
        name=value_column
    )
    series = series[series.index.notna()].sort_index()
    series = series[~series.index.duplicated(keep='last')]

    if business_days:
        series = series.asfreq('B')

    return series


def run_stock_report(
    config: Dict[str, Any],
    source: Optional[str] = None,
    output_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the stock forecast report.

    Args:
        config: Full configuration dictionary
        source: Overrides the configured CSV location
        output_dir: Overrides the configured output directories

    Returns:
        Dictionary with metrics, the fitted models, the forecast and file paths
    """
    cfg = config.get('stock', {})
    paths = get_output_paths(config, output_dir)

    date_column = cfg.get('date_column', 'Date')
    value_column = cfg.get('value_column', 'Close')
    ticker = cfg.get('ticker', 'STOCK')
    holdout = int(cfg.get('holdout_days', 30))
    horizon = int(cfg.get('forecast_horizon', 30))
    alpha = cfg.get('interval_alpha', 0.05)
    arima_cfg = cfg.get('arima', {})

    print("\n" + "=" * 70)
    print(f"STOCK FORECAST REPORT: {ticker}")
    print("=" * 70)

    df = load_data(
        source or cfg.get('source', 'data/raw/stock.csv'),
        cache_dir=str(paths['cache']),
        expected_columns=[date_column, value_column]
    )
    raw = prepare_series(df, date_column, value_column, cfg.get('business_days', True))
    n_missing = int(raw.isna().sum())

    # Imputation
    kalman_model = cfg.get('kalman_model', 'local linear trend')
    series = impute_kalman(raw, model=kalman_model)

    # Stationarity
    adf_level = adf_test(series, alpha=arima_cfg.get('alpha', 0.05))
    adf_diff = adf_test(difference(series), alpha=arima_cfg.get('alpha', 0.05))

    # Holdout evaluation
    train, test = chronological_split(series, holdout)

    model = AutoARIMA(
        max_p=arima_cfg.get('max_p', 3),
        max_q=arima_cfg.get('max_q', 3),
        max_d=arima_cfg.get('max_d', 2),
        d=arima_cfg.get('d'),
        boxcox=cfg.get('boxcox', True),
        boxcox_lambda=cfg.get('boxcox_lambda'),
        alpha=arima_cfg.get('alpha', 0.05)
    ).fit(train)
    print_model_summary(model)

    holdout_forecast = model.forecast(len(test), alpha=alpha)
    holdout_forecast.index = test.index
    metrics = calculate_forecast_metrics(test.values, holdout_forecast['forecast'].values)

    naive = naive_forecast(train, len(test))
    naive.index = test.index
    benchmark = calculate_forecast_metrics(test.values, naive.values)

    logger.info(f"Holdout MAPE: ARIMA {metrics['mape']:.3f}% vs naive {benchmark['mape']:.3f}%")

    # Final model on the full history
    final = AutoARIMA(
        order=model.order_,
        boxcox=cfg.get('boxcox', True),
        boxcox_lambda=cfg.get('boxcox_lambda')
    ).fit(series)
    future = final.forecast(horizon, alpha=alpha)

    csv_path = export_forecast(future, str(paths['predictions']), name=f"{ticker.lower()}_forecast")
    print_prediction_results(future, csv_path)
    prediction_report = generate_prediction_report(
        future, final.summary(), metrics,
        output_path=str(paths['predictions'] / f"{ticker.lower()}_forecast.json")
    )

    # HTML report
    report = HtmlReport(cfg.get('title', f'Forecasting {ticker}'), subtitle=ticker)
    confidence = int(round((1 - alpha) * 100))

    report.add_heading("The data")
    report.add_paragraph(
        f"The series covers {len(raw):,} business days from {raw.index[0]:%d %B %Y} "
        f"to {raw.index[-1]:%d %B %Y}, using the '{value_column}' column."
    )
    report.add_figure(
        plot_time_series(raw, title=f'{ticker} {value_column}',
                         save_path=str(paths['figures'] / 'stock_01_series.png')),
        caption=f"Daily {value_column} with a linear trend."
    )
    report.add_paragraph(describe_missing(
        {value_column: n_missing}, len(raw), f"Kalman smoothing of a {kalman_model} model"
    ))
    report.add_figure(
        plot_rolling_statistics(series, window=min(50, max(2, len(series) // 10)),
                                save_path=str(paths['figures'] / 'stock_02_rolling.png')),
        caption="Rolling mean and standard deviation of the imputed series."
    )

    report.add_heading("Stationarity")
    report.add_paragraph(describe_stationarity(adf_level, adf_diff, model.order_[1]))
    report.add_table(
        pd.DataFrame(
            [adf_level, adf_diff],
            index=['Level', 'First difference']
        )[['statistic', 'p_value', 'used_lag', 'is_stationary']],
        caption="Augmented Dickey-Fuller tests"
    )
    report.add_figure(
        plot_acf_pacf(difference(series), save_path=str(paths['figures'] / 'stock_03_acf_pacf.png')),
        caption="Autocorrelation of the differenced series."
    )
    if model.transformer_ is not None:
        report.add_paragraph(
            f"A Box-Cox transform with λ = {model.transformer_.lambda_:.3f} stabilises the "
            f"variance before fitting; forecasts are transformed back to prices."
        )

    report.add_heading("Model selection and accuracy")
    report.add_paragraph(
        f"Candidate ARIMA orders up to p = {model.max_p} and q = {model.max_q} were compared "
        f"by AIC on the first {len(train):,} days; the last {len(test)} days were held out."
    )
    report.add_table(model.candidates_.head(10), caption="Best candidates by AIC", index=False)
    report.add_paragraph(describe_forecast_accuracy(list(model.order_), metrics, len(test), benchmark))
    report.add_table(
        pd.DataFrame(
            [metrics, benchmark],
            index=[f"ARIMA{model.order_}", "Naive (random walk)"]
        )[['mape', 'rmse', 'mae']],
        caption="Holdout accuracy"
    )
    report.add_figure(
        plot_forecast(train, test, holdout_forecast, title='Holdout forecast',
                      history=min(len(train), 250),
                      save_path=str(paths['figures'] / 'stock_04_holdout.png')),
        caption=f"Holdout forecast with {confidence}% interval."
    )

    report.add_heading("Forecast")
    report.add_paragraph(
        f"Refitting ARIMA{final.order_} on the full history gives the following "
        f"{horizon}-day forecast, ending at {future['forecast'].iloc[-1]:,.2f} "
        f"({confidence}% interval {future['lower'].iloc[-1]:,.2f} to {future['upper'].iloc[-1]:,.2f})."
    )
    report.add_figure(
        plot_forecast(series, None, future, title=f'{ticker}: {horizon}-day forecast',
                      history=min(len(series), 250),
                      save_path=str(paths['figures'] / 'stock_05_forecast.png')),
        caption=f"Forecast with {confidence}% interval."
    )
    report.add_table(future.head(10), caption="First forecast values")
    html_path = report.save(str(paths['reports'] / 'stock_forecast.html'))
    plt.close('all')

    result = {
        'series': series,
        'n_imputed': n_missing,
        'adf': {'level': adf_level, 'difference': adf_diff},
        'model': model,
        'final_model': final,
        'metrics': metrics,
        'benchmark': benchmark,
        'holdout_forecast': holdout_forecast,
        'forecast': future,
        'csv_path': csv_path,
        'prediction_report': prediction_report,
        'html_path': html_path
    }

    print(f"  • Selected model: ARIMA{model.order_}")
    print(f"  • Holdout MAPE: {metrics['mape']:.2f}% (naive {benchmark['mape']:.2f}%)")
    print(f"  • Forecast: {csv_path}")
    print(f"  • Report: {html_path}")

    return result
