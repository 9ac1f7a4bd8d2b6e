"""
Data Loader Module
==================

Handles configuration, CSV ingestion (local or over HTTP), validation and
basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - cache_path_for: Cache file name for a URL
    - fetch_csv: Download a CSV to a local cache
    - load_data: Load CSV data from a path or URL
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import hashlib
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple, Union
from urllib.parse import urlparse

import pandas as pd
import numpy as np
import requests
import yaml

logger = logging.getLogger(__name__)

DEFAULT_NA_VALUES = ["", "NA", "N/A", "na", "null", "?"]

USER_AGENT = "dsreports/1.0"


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_output_paths(config: Dict[str, Any], root: Optional[str] = None) -> Dict[str, Path]:
    """
    Resolve the output directories of a run, creating them.

    Args:
        config: Full configuration dictionary
        root: Replaces the configured directories with subfolders of ``root``

    Returns:
        Dictionary with reports, figures, predictions, models and cache paths
    """
    output = config.get('output', {})

    if root is not None:
        root = Path(root)
        paths = {
            'reports': root,
            'figures': root / 'figures',
            'predictions': root / 'predictions',
            'models': root / 'models',
            'cache': Path(output.get('cache_dir', 'data/raw/'))
        }
    else:
        paths = {
            'reports': Path(output.get('reports_path', 'reports/')),
            'figures': Path(output.get('figures_path', 'reports/figures/')),
            'predictions': Path(output.get('predictions_path', 'data/predictions/')),
            'models': Path(output.get('models_path', 'models/')),
            'cache': Path(output.get('cache_dir', 'data/raw/'))
        }

    for path in paths.values():
        path.mkdir(parents=True, exist_ok=True)

    return paths


def is_url(source: str) -> bool:
    """Return True when ``source`` looks like an http(s) URL."""
    return urlparse(str(source)).scheme in ("http", "https")


def cache_path_for(url: str, cache_dir: Union[str, Path]) -> Path:
    """
    Cache file for ``url``: the URL's file name tagged with a short hash of
    the full URL, so equal file names on different hosts or paths don't collide.
    """
    name = Path(urlparse(url).path).name or "download.csv"
    stem, suffix = Path(name).stem, Path(name).suffix or ".csv"
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10]
    return Path(cache_dir) / f"{stem}-{digest}{suffix}"


def fetch_csv(
    url: str,
    cache_path: Union[str, Path],
    timeout: float = 30.0,
    force: bool = False
) -> Path:
    """
    Download a CSV file over HTTP and store it in a local cache.

    Args:
        url: Location of the CSV file
        cache_path: File the download is written to
        timeout: Request timeout in seconds
        force: Re-download even when the cache file already exists

    Returns:
        Path to the cached file

    Raises:
        requests.RequestException: If the request fails
    """
    cache_path = Path(cache_path)

    if cache_path.exists() and not force:
        logger.info(f"Using cached copy of {url}: {cache_path}")
        return cache_path

    logger.info(f"Fetching {url}")
    try:
        response = requests.get(url, headers={'User-Agent': USER_AGENT}, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error requesting {url}: {e}")
        raise

    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_bytes(response.content)
    logger.info(f"Saved {len(response.content)} bytes to {cache_path}")

    return cache_path


def load_data(
    source: str,
    cache_dir: str = "data/raw/",
    expected_columns: Optional[List[str]] = None,
    parse_dates: Optional[List[str]] = None,
    index_col: Optional[str] = None,
    na_values: Optional[List[str]] = None,
    timeout: float = 30.0
) -> pd.DataFrame:
    """
    Load CSV data from a local path or an http(s) URL.

    URLs are downloaded once into ``cache_dir`` and read from there.

    Args:
        source: Local file path or URL of the CSV
        cache_dir: Directory for downloaded files
        expected_columns: Columns that must be present (optional validation)
        parse_dates: Columns to parse as dates
        index_col: Column to use as index (optional)
        na_values: Strings treated as missing
        timeout: HTTP timeout in seconds

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If a local data file doesn't exist
        ValueError: If expected columns are missing
    """
    if is_url(source):
        file_path = fetch_csv(source, cache_path_for(source, cache_dir), timeout=timeout)
    else:
        file_path = Path(source)
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(
        file_path,
        index_col=index_col,
        parse_dates=parse_dates,
        na_values=na_values if na_values is not None else DEFAULT_NA_VALUES,
        keep_default_na=True
    )
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns:
        present = set(df.columns)
        if index_col is not None:
            present.add(index_col)
        missing = [col for col in expected_columns if col not in present]
        if missing:
            raise ValueError(
                f"Missing expected columns {missing}. "
                f"Columns: {list(df.columns)}"
            )

    return df


def validate_data(
    df: pd.DataFrame,
    strict: bool = True,
    numeric_only: bool = False
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints.

    Checks:
        - All columns are numerical (only when ``numeric_only``)
        - Missing values
        - Duplicate rows
        - Potential outliers (> 4 std from the mean)

    Args:
        df: DataFrame to validate
        strict: If True, raise errors on validation failure
        numeric_only: Flag non-numeric columns as an issue

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    if numeric_only:
        non_numeric_cols = df.select_dtypes(exclude=[np.number]).columns.tolist()
        if non_numeric_cols:
            issue = f"Non-numeric columns found: {non_numeric_cols}"
            report["issues"].append(issue)
            logger.warning(issue)

    missing_counts = df.isnull().sum()
    total_missing = int(missing_counts.sum())
    report["missing_by_column"] = {
        col: int(n) for col, n in missing_counts[missing_counts > 0].items()
    }
    if total_missing > 0:
        missing_pct = (total_missing / (df.shape[0] * df.shape[1])) * 100
        issue = f"Missing values: {total_missing} ({missing_pct:.2f}%)"
        report["issues"].append(issue)
        logger.warning(issue)

    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    for col in df.select_dtypes(include=[np.number]).columns:
        col_std = df[col].std()
        col_mean = df[col].mean()
        if not col_std or np.isnan(col_std):
            continue
        outliers = int(((df[col] - col_mean).abs() > 4 * col_std).sum())
        if outliers > 0:
            issue = f"Column '{col}' has {outliers} potential outliers (>4 std)"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Shape, dtypes, missing counts and per-column statistics.

    Numeric columns get ``describe()`` plus skew and kurtosis; other
    columns get their number of distinct levels.
    """
    numeric = df.select_dtypes(include=[np.number])
    categorical = df.columns.difference(numeric.columns, sort=False)

    statistics = {}
    if not numeric.empty:
        described = numeric.describe().T
        described['skew'] = numeric.skew()
        described['kurtosis'] = numeric.kurtosis()
        statistics = {
            col: {key: float(value) for key, value in row.items()}
            for col, row in described.iterrows()
        }

    return {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "missing": {col: int(n) for col, n in df.isna().sum().items()},
        "levels": {col: int(df[col].nunique()) for col in categorical},
        "statistics": statistics
    }


def print_data_summary(df: pd.DataFrame) -> None:
    """Print column types, missing shares and numeric statistics."""
    summary = get_data_summary(df)
    n_rows = max(len(df), 1)

    print("\n" + "=" * 60)
    print(f"DATASET: {df.shape[0]} rows × {df.shape[1]} columns")
    print("=" * 60)
    for col in summary["columns"]:
        missing = summary["missing"][col]
        extra = f", {summary['levels'][col]} levels" if col in summary["levels"] else ""
        print(f"  {col:<25} {summary['dtypes'][col]:<10} {missing / n_rows:>6.1%} missing{extra}")

    if summary["statistics"]:
        print("-" * 60)
        print(pd.DataFrame(summary["statistics"]).T.round(3).to_string())
    print("=" * 60 + "\n")
