"""
Model Evaluation Module
=======================

Metrics and diagnostic plots for the forecasting, regression and
classification models.

Features:
    - MAPE, RMSE, MAE for forecasts
    - RMSE, MAE, R² for regression
    - Accuracy, precision, recall, F1, confusion matrix, ROC/AUC for classifiers
    - Forecast, actual vs predicted, residual, confusion matrix and ROC plots
"""

import logging
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import (
    mean_squared_error, mean_absolute_error, r2_score,
    accuracy_score, precision_score, recall_score, f1_score,
    confusion_matrix, roc_curve, roc_auc_score
)

logger = logging.getLogger(__name__)


def mean_absolute_percentage_error(y_true, y_pred) -> float:
    """
    MAPE in percent.

    Observations whose actual value is zero are left out.

    Raises:
        ValueError: If every actual value is zero
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if y_true.shape != y_pred.shape:
        raise ValueError(f"Shape mismatch: {y_true.shape} vs {y_pred.shape}")

    nonzero = y_true != 0
    if not nonzero.any():
        raise ValueError("MAPE is undefined when all actual values are zero")

    return float(np.mean(np.abs((y_true[nonzero] - y_pred[nonzero]) / y_true[nonzero])) * 100)


def calculate_forecast_metrics(y_true, y_pred) -> Dict[str, float]:
    """
    Accuracy of a forecast against the held-out observations.

    Returns:
        Dictionary with mape, rmse, mae and the horizon length
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    return {
        'mape': mean_absolute_percentage_error(y_true, y_pred),
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'n_samples': int(len(y_true))
    }


def calculate_regression_metrics(y_true, y_pred) -> Dict[str, float]:
    """
    Regression metrics for a single target.

    Returns:
        Dictionary with rmse, mae, r2, mape and residual statistics
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    residuals = y_true - y_pred

    metrics = {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)),
        'std_error': float(np.std(residuals)),
        'mean_error': float(np.mean(residuals)),
        'max_error': float(np.max(np.abs(residuals))),
        'n_samples': int(len(y_true))
    }
    try:
        metrics['mape'] = mean_absolute_percentage_error(y_true, y_pred)
    except ValueError:
        metrics['mape'] = float('nan')

    return metrics


def calculate_classification_metrics(
    y_true,
    y_pred,
    y_score=None,
    positive_label: Any = 1
) -> Dict[str, Any]:
    """
    Classification metrics for a binary target.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        y_score: Scores or probabilities of the positive class (optional)
        positive_label: Label treated as positive

    Returns:
        Dictionary with accuracy, precision, recall, f1, the confusion matrix
        and, when scores are given, the ROC curve and AUC
    """
    labels = sorted(set(np.asarray(y_true).tolist()) | set(np.asarray(y_pred).tolist()), key=str)

    metrics = {
        'accuracy': float(accuracy_score(y_true, y_pred)),
        'precision': float(precision_score(y_true, y_pred, pos_label=positive_label, zero_division=0)),
        'recall': float(recall_score(y_true, y_pred, pos_label=positive_label, zero_division=0)),
        'f1': float(f1_score(y_true, y_pred, pos_label=positive_label, zero_division=0)),
        'labels': labels,
        'confusion_matrix': confusion_matrix(y_true, y_pred, labels=labels).tolist(),
        'n_samples': int(len(y_true))
    }

    if y_score is not None:
        fpr, tpr, thresholds = roc_curve(y_true, y_score, pos_label=positive_label)
        metrics['roc'] = {'fpr': fpr.tolist(), 'tpr': tpr.tolist(), 'thresholds': thresholds.tolist()}
        y_binary = (np.asarray(y_true) == positive_label).astype(int)
        metrics['auc'] = float(roc_auc_score(y_binary, y_score))

    return metrics


def plot_forecast(
    train: pd.Series,
    test: Optional[pd.Series],
    forecast: pd.DataFrame,
    title: str = 'Forecast',
    history: Optional[int] = 250,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot the observed series, the forecast and its interval.

    Args:
        train: Observations the model was fitted on
        test: Held-out observations (optional)
        forecast: DataFrame with forecast/lower/upper columns
        title: Figure title
        history: Number of trailing training points shown (None for all)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    shown = train.iloc[-history:] if history else train
    ax.plot(shown.index, shown.values, 'b-', linewidth=1.2, label='Observed')
    if test is not None:
        ax.plot(test.index, test.values, 'k-', linewidth=1.2, label='Actual (held out)')

    ax.plot(forecast.index, forecast['forecast'], 'r--', linewidth=1.5, label='Forecast')
    if {'lower', 'upper'} <= set(forecast.columns):
        ax.fill_between(forecast.index, forecast['lower'], forecast['upper'],
                        color='red', alpha=0.15, label='Interval')

    ax.set_xlabel('Date')
    ax.set_ylabel(train.name or 'Value')
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)
    fig.autofmt_xdate()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Forecast plot saved to {save_path}")

    return fig


def plot_actual_vs_predicted(
    y_true,
    y_pred,
    title: str = 'Actual vs Predicted',
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter of actual against predicted values with the perfect-fit line.

    Returns:
        Matplotlib Figure object
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(y_true, y_pred, alpha=0.5, s=20)

    min_val = min(y_true.min(), y_pred.min())
    max_val = max(y_true.max(), y_pred.max())
    ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')

    r2 = r2_score(y_true, y_pred)
    rmse = np.sqrt(mean_squared_error(y_true, y_pred))

    ax.set_xlabel('Actual')
    ax.set_ylabel('Predicted')
    ax.set_title(f'{title}\nR²={r2:.4f}, RMSE={rmse:.4f}', fontsize=10, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    y_true,
    y_pred,
    title: str = 'Residual Analysis',
    figsize: Tuple[int, int] = (12, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residual histogram and residuals against fitted values.

    Returns:
        Matplotlib Figure object
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    residuals = y_true - y_pred

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.histplot(residuals, kde=True, ax=axes[0], bins=50, alpha=0.7)
    axes[0].axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
    axes[0].axvline(np.mean(residuals), color='green', linestyle='--',
                    linewidth=2, label=f'Mean: {np.mean(residuals):.4f}')
    axes[0].set_xlabel('Residual (Actual - Predicted)')
    axes[0].set_ylabel('Frequency')
    axes[0].set_title(f'Distribution (Std: {np.std(residuals):.4f})', fontsize=10, fontweight='bold')
    axes[0].legend(fontsize=8)

    axes[1].scatter(y_pred, residuals, alpha=0.5, s=15)
    axes[1].axhline(0, color='red', linestyle='--', linewidth=1.5)
    axes[1].set_xlabel('Predicted')
    axes[1].set_ylabel('Residual')
    axes[1].set_title('Residuals vs Predicted', fontsize=10, fontweight='bold')

    plt.suptitle(title, fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def plot_confusion_matrix(
    matrix: List[List[int]],
    labels: List[Any],
    title: str = 'Confusion Matrix',
    figsize: Tuple[int, int] = (5, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of a confusion matrix (rows = actual, columns = predicted).

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        np.asarray(matrix),
        annot=True,
        fmt='d',
        cmap='Blues',
        cbar=False,
        xticklabels=labels,
        yticklabels=labels,
        ax=ax
    )
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    ax.set_title(title, fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_roc_curves(
    curves: Dict[str, Dict[str, Any]],
    title: str = 'ROC Curves',
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Overlay ROC curves of several models.

    Args:
        curves: Model label -> metrics dict holding ``roc`` and ``auc``

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    for label, metrics in curves.items():
        ax.plot(metrics['roc']['fpr'], metrics['roc']['tpr'], linewidth=1.8,
                label=f"{label} (AUC={metrics['auc']:.3f})")

    ax.plot([0, 1], [0, 1], color='gray', linestyle=':', label='Chance')
    ax.set_xlim([0, 1])
    ax.set_ylim([0, 1.02])
    ax.set_xlabel('False Positive Rate')
    ax.set_ylabel('True Positive Rate')
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.legend(loc='lower right', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"ROC plot saved to {save_path}")

    return fig


def plot_accuracy_comparison(
    scores: pd.DataFrame,
    value_column: str = 'accuracy',
    title: str = 'Held-out Accuracy by Model',
    figsize: Tuple[int, int] = (9, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of one score per model.

    Args:
        scores: Table with ``label`` and ``value_column`` columns

    Returns:
        Matplotlib Figure object
    """
    ordered = scores.sort_values(value_column)
    values = ordered[value_column].to_numpy()

    fig, ax = plt.subplots(figsize=figsize)
    colors = ['green' if v == values.max() else 'steelblue' for v in values]
    ax.barh(ordered['label'], values, color=colors, alpha=0.8)
    for y, v in enumerate(values):
        ax.text(v, y, f' {v:.3f}', va='center', fontsize=8)

    upper = values.max() * 1.15
    if values.max() <= 1:
        upper = min(upper, 1.1)
    ax.set_xlim([0, upper])
    ax.set_xlabel(value_column.replace('_', ' ').title())
    ax.set_title(title, fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Score comparison saved to {save_path}")

    return fig


def plot_feature_importances(
    importances: pd.Series,
    top_n: int = 15,
    title: str = 'Feature Importance',
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of the ``top_n`` most important features.

    Returns:
        Matplotlib Figure object
    """
    top = importances.sort_values(ascending=False).head(top_n)[::-1]

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(top.index.astype(str), top.values, color='steelblue', alpha=0.8)
    ax.set_xlabel('Importance')
    ax.set_title(title, fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def print_evaluation_report(metrics: Dict[str, Dict[str, Any]], title: str = 'MODEL EVALUATION REPORT') -> None:
    """
    Print a formatted table of per-model metrics to console.

    Args:
        metrics: Model label -> metrics dictionary
        title: Banner text
    """
    columns = [key for key in ('accuracy', 'auc', 'mape', 'rmse', 'mae', 'r2')
               if any(key in m for m in metrics.values())]

    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)
    print(f"{'Model':<30} " + " ".join(f"{col.upper():<10}" for col in columns))
    print("-" * 70)

    for label, model_metrics in metrics.items():
        cells = []
        for col in columns:
            value = model_metrics.get(col)
            cells.append(f"{value:<10.4f}" if value is not None else f"{'N/A':<10}")
        print(f"{label:<30} " + " ".join(cells))

    print("=" * 70 + "\n")
