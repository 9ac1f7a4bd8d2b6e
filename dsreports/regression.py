"""
Regression Module
=================

Linear and logistic regression through statsmodels, plus stepwise variable
selection by AIC.

Functions:
    - fit_ols / fit_logit: Fit with an intercept
    - stepwise_aic: Add/drop terms while AIC improves
    - predict: Predictions from a fitted result on new data
    - coefficient_table: Estimates, standard errors and p-values
"""

import logging
import warnings
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm

logger = logging.getLogger(__name__)

FAMILIES = ("gaussian", "binomial")
DIRECTIONS = ("both", "backward", "forward")


def _design(X: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    if not columns:
        return pd.DataFrame({'const': np.ones(len(X))}, index=X.index)
    return sm.add_constant(X[columns].astype(float), has_constant='add')


def _fit(X: pd.DataFrame, y: pd.Series, columns: List[str], family: str):
    exog = _design(X, columns)
    endog = pd.Series(y, index=X.index).astype(float)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        if family == "gaussian":
            return sm.OLS(endog, exog).fit()
        return sm.GLM(endog, exog, family=sm.families.Binomial()).fit()


def fit_ols(X: pd.DataFrame, y: pd.Series):
    """Ordinary least squares with an intercept on every column of ``X``."""
    return _fit(X, y, list(X.columns), "gaussian")


def fit_logit(X: pd.DataFrame, y: pd.Series):
    """Binomial GLM (logit link) with an intercept on every column of ``X``."""
    return _fit(X, y, list(X.columns), "binomial")


def predict(result, X: pd.DataFrame, columns: Optional[List[str]] = None) -> np.ndarray:
    """
    Predict with a fitted statsmodels result.

    Args:
        result: Output of fit_ols, fit_logit or stepwise_aic
        X: Encoded feature table
        columns: Columns the model was fitted on (default: taken from the result)

    Returns:
        Fitted means (probabilities for the binomial family)
    """
    if columns is None:
        columns = [name for name in result.model.exog_names if name != 'const']
    return np.asarray(result.predict(_design(X, columns)))


def stepwise_aic(
    X: pd.DataFrame,
    y: pd.Series,
    family: str = "gaussian",
    direction: str = "both",
    groups: Optional[Dict[str, List[str]]] = None,
    max_steps: int = 100
) -> Dict[str, Any]:
    """
    Stepwise model selection by AIC.

    ``backward`` and ``both`` start from the full model, ``forward`` from the
    intercept-only model. Each step evaluates every single-term move allowed
    by ``direction`` and takes the one with the lowest AIC; the search stops
    when no move lowers it.

    Args:
        X: Encoded feature table
        y: Response
        family: "gaussian" (OLS) or "binomial" (logistic)
        direction: "both", "backward" or "forward"
        groups: Term name -> encoded columns, so a categorical moves as a unit
            (default: one term per column)
        max_steps: Upper bound on the number of moves

    Returns:
        Dictionary with the selected ``terms`` and ``columns``, the fitted
        ``result``, the ``history`` table and the start/final AIC
    """
    if family not in FAMILIES:
        raise ValueError(f"Unknown family: {family}. Choose from: {', '.join(FAMILIES)}")
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown direction: {direction}. Choose from: {', '.join(DIRECTIONS)}")

    groups = groups or {col: [col] for col in X.columns}
    missing = [col for cols in groups.values() for col in cols if col not in X.columns]
    if missing:
        raise ValueError(f"Grouped columns not in X: {missing}")

    def columns_for(terms: List[str]) -> List[str]:
        return [col for term in terms for col in groups[term]]

    all_terms = list(groups)
    current = list(all_terms) if direction in ("both", "backward") else []
    result = _fit(X, y, columns_for(current), family)
    start_aic = float(result.aic)

    history = [{'step': 0, 'action': 'start', 'term': None, 'aic': start_aic, 'n_terms': len(current)}]
    logger.info(f"Stepwise ({direction}, {family}) start: {len(current)} terms, AIC {start_aic:.2f}")

    for step in range(1, max_steps + 1):
        moves = []
        if direction in ("both", "backward"):
            moves += [('drop', term, [t for t in current if t != term]) for term in current]
        if direction in ("both", "forward"):
            moves += [('add', term, current + [term]) for term in all_terms if term not in current]

        best = None
        for action, term, terms in moves:
            try:
                trial = _fit(X, y, columns_for(terms), family)
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.warning(f"Stepwise: {action} '{term}' failed to fit: {e}")
                continue
            if not np.isfinite(trial.aic):
                continue
            if best is None or trial.aic < best[3].aic:
                best = (action, term, terms, trial)

        if best is None or best[3].aic >= result.aic:
            break

        action, term, current, result = best
        history.append({
            'step': step,
            'action': action,
            'term': term,
            'aic': float(result.aic),
            'n_terms': len(current)
        })
        logger.info(f"  step {step}: {action} '{term}' -> AIC {result.aic:.2f}")

    final_aic = float(result.aic)
    logger.info(f"Stepwise finished: {len(current)} of {len(all_terms)} terms kept, AIC {final_aic:.2f}")

    return {
        'terms': current,
        'dropped': [term for term in all_terms if term not in current],
        'columns': columns_for(current),
        'result': result,
        'history': pd.DataFrame(history),
        'start_aic': start_aic,
        'final_aic': final_aic,
        'family': family,
        'direction': direction
    }


def coefficient_table(result) -> pd.DataFrame:
    """
    Coefficient estimates of a fitted statsmodels result.

    Returns:
        DataFrame indexed by term with estimate, std_error, p_value and the
        95% interval
    """
    interval = result.conf_int()
    return pd.DataFrame({
        'estimate': result.params,
        'std_error': result.bse,
        'p_value': result.pvalues,
        'ci_lower': interval.iloc[:, 0],
        'ci_upper': interval.iloc[:, 1]
    })
