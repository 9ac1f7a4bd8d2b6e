"""
Narrative Module
================

Turns metric dictionaries into the prose paragraphs of the reports.
"""

from typing import Dict, Any, List, Optional

import pandas as pd


def _join(items: List[str]) -> str:
    items = [str(item) for item in items]
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + f" and {items[-1]}"


def describe_dataset(n_rows: int, n_columns: int, subject: str, target: Optional[str] = None) -> str:
    text = f"The dataset holds {n_rows:,} {subject} described by {n_columns} columns."
    if target:
        text += f" The outcome we want to predict is '{target}'."
    return text


def describe_missing(missing: Dict[str, int], n_rows: int, method: str) -> str:
    """One paragraph on how much data is missing and how it was filled."""
    missing = {col: n for col, n in missing.items() if n > 0}
    if not missing:
        return "There are no missing values, so no imputation is needed."

    total = sum(missing.values())
    worst = max(missing, key=missing.get)
    share = missing[worst] / n_rows * 100 if n_rows else 0.0
    return (
        f"{total:,} values are missing across {len(missing)} column(s) "
        f"({_join(sorted(missing))}). The worst affected is '{worst}' with "
        f"{missing[worst]:,} gaps ({share:.1f}% of rows). Missing values were "
        f"filled using {method}."
    )


def describe_class_balance(counts: Dict[Any, int], target: str) -> str:
    total = sum(counts.values())
    parts = [f"{level!s}: {n:,} ({n / total * 100:.1f}%)" for level, n in counts.items()]
    return f"The classes of '{target}' are distributed as follows: {_join(parts)}."


def describe_stationarity(adf_level: Dict[str, Any], adf_diff: Dict[str, Any], d: int) -> str:
    level = "stationary" if adf_level['is_stationary'] else "not stationary"
    diff = "stationary" if adf_diff['is_stationary'] else "still not stationary"
    return (
        f"An augmented Dickey-Fuller test finds the raw series {level} "
        f"(p = {adf_level['p_value']:.3f}); after first differencing it is {diff} "
        f"(p = {adf_diff['p_value']:.3f}). The model therefore uses d = {d}."
    )


def describe_forecast_accuracy(
    order: List[int],
    metrics: Dict[str, float],
    horizon: int,
    benchmark: Optional[Dict[str, float]] = None
) -> str:
    """Paragraph on the holdout accuracy of the ARIMA model."""
    p, d, q = order
    text = (
        f"The selected model is ARIMA({p},{d},{q}). Over the {horizon}-day holdout "
        f"its forecasts are off by {metrics['mape']:.2f}% on average (MAPE), "
        f"with an RMSE of {metrics['rmse']:.3f}."
    )
    if benchmark is not None:
        if metrics['mape'] < benchmark['mape']:
            verdict = "beats"
        elif metrics['mape'] > benchmark['mape']:
            verdict = "does not beat"
        else:
            verdict = "ties with"
        text += (
            f" It {verdict} the naive random-walk forecast, whose MAPE is "
            f"{benchmark['mape']:.2f}%."
        )
    return text


def describe_classifier_ranking(scores: pd.DataFrame, metric: str = 'accuracy') -> str:
    """Paragraph naming the best and worst classifier on the held-out set."""
    ordered = scores.sort_values(metric, ascending=False, kind='stable')
    best = ordered.iloc[0]
    worst = ordered.iloc[-1]
    if len(ordered) == 1:
        return f"{best['label']} reaches a held-out {metric} of {best[metric]:.1%}."
    spread = best[metric] - worst[metric]
    return (
        f"{best['label']} performs best with a held-out {metric} of {best[metric]:.1%}, "
        f"while {worst['label']} trails at {worst[metric]:.1%}. The gap between the best "
        f"and worst model is {spread * 100:.1f} percentage points."
    )


def describe_regression(metrics: Dict[str, float], target: str, label: str = "The linear model") -> str:
    return (
        f"{label} explains {metrics['r2']:.1%} of the variance in '{target}' on the test set "
        f"(R² = {metrics['r2']:.3f}), with an RMSE of {metrics['rmse']:,.2f} and an MAE of "
        f"{metrics['mae']:,.2f}."
    )


def describe_stepwise(selection: Dict[str, Any]) -> str:
    """Paragraph on what stepwise AIC selection kept and dropped."""
    kept = selection['terms']
    dropped = selection['dropped']
    text = (
        f"Stepwise selection by AIC ({selection['direction']}) moved from an AIC of "
        f"{selection['start_aic']:,.1f} to {selection['final_aic']:,.1f}, keeping "
        f"{len(kept)} of {len(kept) + len(dropped)} predictors."
    )
    if dropped:
        text += f" Dropped: {_join(dropped)}."
    else:
        text += " No predictor was dropped."
    return text


def describe_auc(curves: Dict[str, Dict[str, Any]]) -> str:
    if not curves:
        return ""
    best = max(curves, key=lambda label: curves[label]['auc'])
    return (
        f"Measured by the area under the ROC curve, {best} separates the classes best "
        f"(AUC = {curves[best]['auc']:.3f})."
    )
