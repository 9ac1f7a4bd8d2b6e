"""
Exploratory Data Analysis (EDA) Module
======================================

Summary statistics and plots written before any model is fitted.

Functions:
    - plot_time_series: Line chart with a linear trend
    - plot_correlation_matrix: Correlation heatmap
    - plot_acf_pacf: Autocorrelation and partial autocorrelation
    - plot_distributions: Histograms with a normality test
    - plot_box_plots: Box plots by column
    - plot_missing_values: Missing counts per column
    - plot_categorical_counts: Level counts split by the target
    - plot_rolling_statistics: Rolling mean and standard deviation
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from statsmodels.graphics.tsaplots import plot_acf, plot_pacf

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def _grid(n_plots: int, figsize: Tuple[int, int]):
    n_rows = max(1, (n_plots + 1) // 2)
    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    return fig, axes.flatten()


def plot_time_series(
    series: pd.Series,
    title: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Line plot of a single series with its least-squares trend.

    Args:
        series: Time series (index on the x axis)
        title: Figure title
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(series.index, series.values, linewidth=0.8, alpha=0.9, label=series.name)

    observed = series.dropna()
    if len(observed) > 1:
        positions = np.arange(len(series))[series.notna().to_numpy()]
        z = np.polyfit(positions, observed.values, 1)
        p = np.poly1d(z)
        ax.plot(series.index, p(np.arange(len(series))), "r--", alpha=0.5,
                label=f'Trend (slope: {z[0]:.4f})')

    ax.set_title(title or f'{series.name}', fontsize=12, fontweight='bold')
    ax.set_xlabel('Date')
    ax.set_ylabel('Value')
    ax.legend(loc='upper left', fontsize=8)
    fig.autofmt_xdate()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Time series plot saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Lower-triangle heatmap of pairwise correlations between numeric columns.

    Args:
        df: Feature table (non-numeric columns are ignored)
        method: Any method accepted by DataFrame.corr
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_acf_pacf(
    series: pd.Series,
    lags: int = 40,
    figsize: Tuple[int, int] = (12, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Autocorrelation and partial autocorrelation side by side.

    Args:
        series: Time series without missing values
        lags: Number of lags shown (capped at half the series length)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    values = series.dropna()
    lags = max(1, min(lags, len(values) // 2 - 1))

    fig, axes = plt.subplots(1, 2, figsize=figsize)
    plot_acf(values, lags=lags, ax=axes[0])
    plot_pacf(values, lags=lags, ax=axes[1], method='ywm')
    axes[0].set_title(f'ACF: {series.name}', fontsize=10, fontweight='bold')
    axes[1].set_title(f'PACF: {series.name}', fontsize=10, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"ACF/PACF plot saved to {save_path}")

    return fig


def plot_distributions(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for numeric columns.

    Args:
        df: Feature table
        columns: Columns to plot (default: all numeric)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()

    fig, axes = _grid(len(columns), figsize)

    for idx, col in enumerate(columns):
        ax = axes[idx]
        values = df[col].dropna()

        sns.histplot(values, kde=True, ax=ax, bins=30, alpha=0.7)

        mean_val = values.mean()
        median_val = values.median()
        ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.2f}')
        ax.axvline(median_val, color='green', linestyle='--', label=f'Median: {median_val:.2f}')

        if len(values) >= 8 and values.nunique() > 1:
            _, p_value = stats.normaltest(values)
            normality = "Normal" if p_value > 0.05 else "Non-Normal"
            ax.set_title(f'{col} ({normality}, p={p_value:.3f})', fontsize=10, fontweight='bold')
        else:
            ax.set_title(f'{col}', fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Distribution Analysis', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_box_plots(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    by: Optional[str] = None,
    figsize: Tuple[int, int] = (14, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plots for outlier detection, optionally grouped by a class column.

    Args:
        df: Feature table
        columns: Columns to plot (default: all numeric except ``by``)
        by: Grouping column (e.g. the target)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = [c for c in df.select_dtypes(include=[np.number]).columns if c != by]

    fig, axes = _grid(len(columns), figsize)

    for idx, col in enumerate(columns):
        ax = axes[idx]
        if by is not None:
            sns.boxplot(data=df, x=by, y=col, ax=ax)
        else:
            sns.boxplot(data=df, y=col, ax=ax)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Box Plots - Outlier Detection', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def plot_missing_values(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (10, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of missing values per column.

    Returns:
        Matplotlib Figure object
    """
    missing = df.isna().sum()
    missing = missing[missing > 0].sort_values(ascending=False)

    fig, ax = plt.subplots(figsize=figsize)
    if missing.empty:
        ax.text(0.5, 0.5, 'No missing values', ha='center', va='center', fontsize=12)
        ax.set_axis_off()
    else:
        pct = missing / len(df) * 100
        ax.bar(missing.index.astype(str), missing.values, color='coral', alpha=0.8)
        for x, (count, p) in enumerate(zip(missing.values, pct.values)):
            ax.text(x, count, f'{p:.1f}%', ha='center', va='bottom', fontsize=8)
        ax.set_ylabel('Missing values')
        ax.tick_params(axis='x', rotation=45)

    ax.set_title('Missing Values by Column', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Missing value plot saved to {save_path}")

    return fig


def plot_categorical_counts(
    df: pd.DataFrame,
    columns: List[str],
    hue: Optional[str] = None,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Count plots of categorical columns, split by ``hue`` when given.

    Returns:
        Matplotlib Figure object
    """
    fig, axes = _grid(len(columns), figsize)

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.countplot(data=df, x=col, hue=hue, ax=ax)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')
        ax.tick_params(axis='x', rotation=30)

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Categorical Features', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Categorical count plots saved to {save_path}")

    return fig


def plot_rolling_statistics(
    series: pd.Series,
    window: int = 50,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot rolling mean and standard deviation to detect trends and volatility.

    Args:
        series: Time series
        window: Rolling window size
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(series.index, series.values, alpha=0.5, label='Original', linewidth=0.5)

    rolling_mean = series.rolling(window=window).mean()
    ax.plot(series.index, rolling_mean, color='red', label=f'Rolling Mean ({window})')

    rolling_std = series.rolling(window=window).std()
    ax.fill_between(
        series.index,
        rolling_mean - rolling_std,
        rolling_mean + rolling_std,
        alpha=0.2,
        color='red',
        label='±1 Std'
    )

    ax.set_title(f'Rolling Statistics: {series.name}', fontsize=12, fontweight='bold')
    ax.legend(fontsize=8, loc='upper left')
    fig.autofmt_xdate()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Rolling statistics plot saved to {save_path}")

    return fig


def describe_categoricals(df: pd.DataFrame, columns: Optional[List[str]] = None) -> Dict[str, Dict[str, int]]:
    """Level counts (missing values included as 'NaN') per categorical column."""
    if columns is None:
        columns = df.select_dtypes(exclude=[np.number]).columns.tolist()
    return {
        col: {str(level): int(n) for level, n in df[col].value_counts(dropna=False).items()}
        for col in columns
    }


def find_strong_correlations(corr_matrix: pd.DataFrame, threshold: float = 0.5) -> List[Dict[str, Any]]:
    """
    Pairs of distinct columns with ``|r| >= threshold``, strongest first.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Correlation threshold for "strong" correlation

    Returns:
        List of dicts with col1, col2 and correlation
    """
    strong_corr = []
    columns = corr_matrix.columns
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = corr_matrix.iloc[i, j]
            if pd.notna(corr_val) and abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": columns[i],
                    "col2": columns[j],
                    "correlation": float(corr_val)
                })

    return sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True)


def generate_eda_report(
    df: pd.DataFrame,
    output_dir: str = "reports/figures/",
    target: Optional[str] = None,
    categorical_columns: Optional[List[str]] = None,
    prefix: str = "eda",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate the EDA figures and statistics for a tabular dataset.

    Args:
        df: DataFrame to analyze
        output_dir: Directory to save figures
        target: Target column, used to split box and count plots
        categorical_columns: Categorical columns (default: non-numeric)
        prefix: Figure filename prefix
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and figure paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if categorical_columns is None:
        categorical_columns = df.select_dtypes(exclude=[np.number]).columns.tolist()
    categorical_columns = [c for c in categorical_columns if c in df.columns and c != target]
    numeric_columns = [
        c for c in df.select_dtypes(include=[np.number]).columns
        if c != target and c not in categorical_columns
    ]

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": {},
        "correlation_matrix": None,
        "strong_correlations": [],
        "missing": {col: int(n) for col, n in df.isna().sum().items()},
        "categorical_levels": describe_categoricals(df, categorical_columns),
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Plotting missing values...")
    path = output_dir / f"{prefix}_01_missing_values.png"
    plot_missing_values(df, save_path=str(path))
    report["figures"]["missing_values"] = str(path)

    if numeric_columns:
        logger.info("Plotting distributions...")
        path = output_dir / f"{prefix}_02_distributions.png"
        plot_distributions(df, columns=numeric_columns, save_path=str(path))
        report["figures"]["distributions"] = str(path)

        logger.info("Creating box plots for outlier detection...")
        path = output_dir / f"{prefix}_03_box_plots.png"
        plot_box_plots(df, columns=numeric_columns, by=target, save_path=str(path))
        report["figures"]["box_plots"] = str(path)

    numeric_for_corr = numeric_columns + (
        [target] if target is not None and pd.api.types.is_numeric_dtype(df[target]) else []
    )
    if len(numeric_for_corr) > 1:
        logger.info("Computing correlation matrix...")
        path = output_dir / f"{prefix}_04_correlation_matrix.png"
        _, corr_matrix = plot_correlation_matrix(df[numeric_for_corr], save_path=str(path))
        report["figures"]["correlation_matrix"] = str(path)
        report["correlation_matrix"] = corr_matrix
        report["strong_correlations"] = find_strong_correlations(corr_matrix)

    if categorical_columns:
        logger.info("Plotting categorical features...")
        path = output_dir / f"{prefix}_05_categorical_counts.png"
        plot_categorical_counts(df, categorical_columns, hue=target, save_path=str(path))
        report["figures"]["categorical_counts"] = str(path)

    for col in numeric_columns:
        report["statistics"][col] = {
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "median": float(df[col].median()),
            "max": float(df[col].max()),
            "skew": float(df[col].skew()),
            "kurtosis": float(df[col].kurtosis())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(corr_matrix: pd.DataFrame, threshold: float = 0.5) -> None:
    """Print the feature pairs whose correlation reaches ``threshold``."""
    pairs = find_strong_correlations(corr_matrix, threshold)

    print("\n" + "=" * 50)
    print(f"CORRELATED FEATURES (|r| >= {threshold})")
    print("=" * 50)
    for item in pairs:
        sign = "+" if item["correlation"] > 0 else "-"
        print(f"  {sign} {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f}")
    if not pairs:
        print("  none")
    print("=" * 50 + "\n")
