"""
Prediction Export Module
========================

Writes the final forecast to disk.

Features:
    - Export forecast values (with interval) to CSV
    - JSON report with the chosen model and its holdout accuracy
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import pandas as pd

logger = logging.getLogger(__name__)


def export_forecast(
    forecast: pd.DataFrame,
    output_dir: str,
    name: str = "forecast",
    include_timestamp: bool = False
) -> str:
    """
    Export forecast values to a CSV file.

    Args:
        forecast: DataFrame indexed by date with forecast/lower/upper columns
        output_dir: Directory to save the file
        name: File name stem
        include_timestamp: Whether to add a timestamp to the filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{name}_{timestamp}.csv"
    else:
        filename = f"{name}.csv"

    df = forecast.copy()
    df.index.name = df.index.name or 'date'

    filepath = output_path / filename
    df.to_csv(filepath, float_format='%.4f')

    logger.info(f"Forecast exported to {filepath}")
    return str(filepath)


def generate_prediction_report(
    forecast: pd.DataFrame,
    model_summary: Dict[str, Any],
    metrics: Optional[Dict[str, Any]] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Summarise the final forecast.

    Args:
        forecast: Forecast DataFrame
        model_summary: ``AutoARIMA.summary()`` of the model that produced it
        metrics: Holdout accuracy of the same model order (optional)
        output_path: Path to save the report as JSON (optional)

    Returns:
        Report dictionary
    """
    report = {
        'generated_at': datetime.now().isoformat(),
        'model': model_summary,
        'horizon': int(len(forecast)),
        'start': str(forecast.index[0]) if len(forecast) else None,
        'end': str(forecast.index[-1]) if len(forecast) else None,
        'forecast': {
            str(idx): {col: float(row[col]) for col in forecast.columns}
            for idx, row in forecast.iterrows()
        }
    }

    if metrics:
        report['holdout_metrics'] = metrics

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def print_prediction_results(forecast: pd.DataFrame, csv_path: Optional[str] = None, max_rows: int = 10) -> None:
    """
    Print the first forecast rows to console.

    Args:
        forecast: Forecast DataFrame
        csv_path: Where the full forecast was written
        max_rows: Number of rows shown
    """
    print("\n" + "=" * 70)
    print(f"FORECAST - {len(forecast)} STEPS")
    print("=" * 70)

    print(f"\n{'Date':<22} {'Forecast':<15} {'Lower':<15} {'Upper':<15}")
    print("-" * 70)

    for idx, row in forecast.head(max_rows).iterrows():
        label = idx.strftime('%Y-%m-%d') if hasattr(idx, 'strftime') else str(idx)
        lower = row.get('lower', float('nan'))
        upper = row.get('upper', float('nan'))
        print(f"{label:<22} {row['forecast']:<15.4f} {lower:<15.4f} {upper:<15.4f}")

    if len(forecast) > max_rows:
        print(f"... {len(forecast) - max_rows} more rows")

    print("-" * 70)
    if csv_path:
        print(f"\nForecast exported to: {csv_path}")
    print("=" * 70 + "\n")
