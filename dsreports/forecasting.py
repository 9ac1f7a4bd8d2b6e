"""
Forecasting Module
==================

ARIMA forecasting with automatic order selection.

The differencing order comes from repeated ADF tests; the AR and MA orders
come from a grid search scored by AIC. Each candidate is an ordinary
statsmodels ARIMA fit.

Features:
    - Optional Box-Cox transform inside the model (forecasts back-transformed)
    - Forecast intervals
    - Random-walk benchmark
"""

import logging
import warnings
from itertools import product
from typing import Dict, Any, Optional, Tuple, List

import numpy as np
import pandas as pd
from statsmodels.tsa.arima.model import ARIMA

from .preprocessing import BoxCoxTransformer, ndiffs

logger = logging.getLogger(__name__)


def future_index(index: pd.Index, steps: int, freq: Optional[str] = None) -> pd.Index:
    """
    Build the index for ``steps`` observations following ``index``.

    Dates continue at the series frequency (inferred, else business days);
    any other index continues as a range.
    """
    if isinstance(index, pd.DatetimeIndex) and len(index) > 0:
        if freq is None:
            freq = index.freq or (pd.infer_freq(index) if len(index) >= 3 else None) or 'B'
        return pd.date_range(start=index[-1], periods=steps + 1, freq=freq)[1:]

    start = len(index)
    return pd.RangeIndex(start, start + steps)


class AutoARIMA:
    """
    ARIMA model whose (p, d, q) order is chosen automatically.

    Candidates that fail to fit are skipped. Among the rest the lowest AIC
    wins; ties go to the model with fewer parameters.
    """

    def __init__(
        self,
        max_p: int = 3,
        max_q: int = 3,
        max_d: int = 2,
        d: Optional[int] = None,
        order: Optional[Tuple[int, int, int]] = None,
        boxcox: bool = False,
        boxcox_lambda: Optional[float] = None,
        alpha: float = 0.05
    ):
        """
        Initialize the model search.

        Args:
            max_p: Largest autoregressive order tried
            max_q: Largest moving-average order tried
            max_d: Largest differencing order considered by the ADF tests
            d: Fixed differencing order (skips the ADF tests)
            order: Fixed (p, d, q) order (skips the search entirely)
            boxcox: Fit on the Box-Cox transformed series
            boxcox_lambda: Fixed Box-Cox lambda (estimated when None)
            alpha: Significance level for the ADF tests
        """
        self.max_p = max_p
        self.max_q = max_q
        self.max_d = max_d
        self.d = d
        self.order = tuple(order) if order is not None else None
        self.boxcox = boxcox
        self.boxcox_lambda = boxcox_lambda
        self.alpha = alpha

        self.transformer_: Optional[BoxCoxTransformer] = None
        self.result_ = None
        self.order_: Optional[Tuple[int, int, int]] = None
        self.aic_: Optional[float] = None
        self.candidates_: Optional[pd.DataFrame] = None
        self.index_: Optional[pd.Index] = None
        self.name_: Optional[str] = None
        self._is_fitted = False

    def _fit_order(self, values: np.ndarray, order: Tuple[int, int, int]):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            return ARIMA(values, order=order).fit()

    def fit(self, series: pd.Series) -> 'AutoARIMA':
        """
        Select the order and fit the final model.

        Args:
            series: Time series without missing values

        Returns:
            Self for method chaining

        Raises:
            ValueError: If the series has missing values
            RuntimeError: If no candidate order could be fitted
        """
        if series.isna().any():
            raise ValueError("Series contains missing values; impute before fitting ARIMA")

        self.index_ = series.index
        self.name_ = series.name

        y = series.astype(float)
        if self.boxcox:
            self.transformer_ = BoxCoxTransformer(lmbda=self.boxcox_lambda)
            y = self.transformer_.fit_transform(y)

        values = y.to_numpy()

        if self.order is not None:
            orders = [self.order]
        else:
            d = self.d if self.d is not None else ndiffs(y, alpha=self.alpha, max_d=self.max_d)
            orders = [(p, d, q) for p, q in product(range(self.max_p + 1), range(self.max_q + 1))]

        logger.info(f"Searching {len(orders)} ARIMA order(s) on {len(values)} observations")

        rows: List[Dict[str, Any]] = []
        best = None
        best_key = None

        for order in orders:
            try:
                result = self._fit_order(values, order)
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.warning(f"ARIMA{order} failed to fit: {e}")
                continue

            aic = float(result.aic)
            if not np.isfinite(aic):
                logger.warning(f"ARIMA{order} returned non-finite AIC; skipped")
                continue

            rows.append({'p': order[0], 'd': order[1], 'q': order[2], 'aic': aic})
            key = (aic, order[0] + order[2])
            if best_key is None or key < best_key:
                best, best_key = (order, result), key

        if best is None:
            raise RuntimeError(f"No ARIMA model could be fitted for orders {orders}")

        self.order_, self.result_ = best
        self.aic_ = float(self.result_.aic)
        self.candidates_ = pd.DataFrame(rows).sort_values('aic', kind='stable').reset_index(drop=True)
        self._is_fitted = True

        logger.info(f"Selected ARIMA{self.order_} with AIC {self.aic_:.2f}")
        return self

    def forecast(self, steps: int, alpha: float = 0.05) -> pd.DataFrame:
        """
        Forecast ``steps`` points ahead.

        Args:
            steps: Forecast horizon
            alpha: 1 - confidence level of the interval

        Returns:
            DataFrame with ``forecast``, ``lower`` and ``upper`` columns on the
            original scale
        """
        if not self._is_fitted:
            raise ValueError("Model must be fitted before forecasting. Call fit() first.")
        if steps < 1:
            raise ValueError(f"steps must be >= 1, got {steps}")

        prediction = self.result_.get_forecast(steps)
        mean = np.asarray(prediction.predicted_mean, dtype=float)
        interval = np.asarray(prediction.conf_int(alpha=alpha), dtype=float)
        lower, upper = interval[:, 0], interval[:, 1]

        if self.transformer_ is not None:
            mean = self.transformer_.inverse_transform(mean)
            lower = self.transformer_.inverse_transform(lower)
            upper = self.transformer_.inverse_transform(upper)

        return pd.DataFrame(
            {'forecast': mean, 'lower': lower, 'upper': upper},
            index=future_index(self.index_, steps)
        )

    def summary(self) -> Dict[str, Any]:
        if not self._is_fitted:
            raise ValueError("Model must be fitted first.")
        return {
            'order': list(self.order_),
            'aic': self.aic_,
            'bic': float(self.result_.bic),
            'n_obs': int(self.result_.nobs),
            'boxcox_lambda': self.transformer_.lambda_ if self.transformer_ else None,
            'n_candidates': len(self.candidates_)
        }


def naive_forecast(train: pd.Series, steps: int) -> pd.Series:
    """Random-walk benchmark: the last observed value carried forward."""
    if len(train) == 0:
        raise ValueError("Cannot build a naive forecast from an empty series")
    return pd.Series(
        np.repeat(float(train.iloc[-1]), steps),
        index=future_index(train.index, steps),
        name='naive'
    )


def print_model_summary(model: AutoARIMA) -> None:
    """
    Print a summary of the selected ARIMA model.

    Args:
        model: Fitted AutoARIMA instance
    """
    info = model.summary()
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model Type: ARIMA{tuple(info['order'])}")
    print(f"Observations: {info['n_obs']}")
    print(f"AIC: {info['aic']:.2f}  BIC: {info['bic']:.2f}")
    if info['boxcox_lambda'] is not None:
        print(f"Box-Cox lambda: {info['boxcox_lambda']:.4f}")
    print(f"\nTop candidates:")
    print(model.candidates_.head(5).to_string(index=False))
    print("=" * 50 + "\n")
