"""
Missing Value Imputation Module
===============================

Fills gaps before modelling. Every strategy delegates to a library
implementation; this module only decides which columns go where.

Strategies:
    - median: SimpleImputer(strategy="median") for numeric columns
    - mode: SimpleImputer(strategy="most_frequent") for categorical columns
    - kalman: state-space smoothing of a single time series
    - mice: multivariate imputation by chained equations (IterativeImputer)
"""

import logging
import warnings
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import SimpleImputer, IterativeImputer
from sklearn.linear_model import BayesianRidge
from statsmodels.tsa.statespace.structural import UnobservedComponents

logger = logging.getLogger(__name__)

NUMERIC_STRATEGIES = ("median", "mice")


def _numeric_columns(df: pd.DataFrame, columns: Optional[List[str]]) -> List[str]:
    if columns is None:
        return df.select_dtypes(include=[np.number]).columns.tolist()
    return list(columns)


def impute_median(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Replace missing numeric values with the column median.

    Args:
        df: Input data
        columns: Columns to impute (default: all numeric)

    Returns:
        Copy of ``df`` with the columns filled
    """
    columns = _numeric_columns(df, columns)
    result = df.copy()
    columns = [col for col in columns if result[col].notna().any()]
    if not columns:
        return result

    imputer = SimpleImputer(strategy="median")
    result[columns] = imputer.fit_transform(result[columns])
    return result


def impute_mode(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Replace missing categorical values with the most frequent level.

    Args:
        df: Input data
        columns: Columns to impute (default: all non-numeric)

    Returns:
        Copy of ``df`` with the columns filled
    """
    if columns is None:
        columns = df.select_dtypes(exclude=[np.number]).columns.tolist()
    result = df.copy()

    for col in columns:
        if not result[col].isna().any() or result[col].notna().sum() == 0:
            continue
        imputer = SimpleImputer(strategy="most_frequent")
        filled = imputer.fit_transform(result[[col]].astype(object))
        result[col] = pd.Series(filled.ravel(), index=result.index).astype(df[col].dtype)

    return result


def impute_kalman(
    series: pd.Series,
    model: str = "local linear trend"
) -> pd.Series:
    """
    Fill gaps in a time series by Kalman smoothing of a structural model.

    The model is fitted on the series with its gaps (the state-space filter
    skips missing observations) and each gap gets the smoothed level. Observed
    values are returned untouched.

    Args:
        series: Time series with NaNs
        model: UnobservedComponents level, e.g. "local level"

    Returns:
        Series without missing values

    Raises:
        ValueError: If the series has no observed values
    """
    missing = series.isna()
    if not missing.any():
        return series.copy()
    if missing.all():
        raise ValueError(f"Cannot impute series '{series.name}': no observed values")

    values = series.to_numpy(dtype=float)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        fitted = UnobservedComponents(values, level=model).fit(disp=False)

    smoothed_level = np.asarray(fitted.smoothed_state[0])

    result = series.astype(float).copy()
    result[missing] = smoothed_level[missing.to_numpy()]

    logger.info(
        f"Kalman-imputed {int(missing.sum())} of {len(series)} values in '{series.name}' "
        f"({model})"
    )
    return result


def impute_mice(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    max_iter: int = 10,
    random_state: int = 42
) -> pd.DataFrame:
    """
    Multivariate imputation by chained equations.

    Each numeric column with gaps is regressed on the others in turn
    (BayesianRidge, drawing from the posterior) until ``max_iter`` rounds.

    Args:
        df: Input data
        columns: Numeric columns taking part (default: all numeric)
        max_iter: Number of imputation rounds
        random_state: Seed for posterior sampling

    Returns:
        Copy of ``df`` with the columns filled
    """
    columns = _numeric_columns(df, columns)
    result = df.copy()
    columns = [col for col in columns if result[col].notna().any()]
    if not columns or not result[columns].isna().any().any():
        return result

    imputer = IterativeImputer(
        estimator=BayesianRidge(),
        sample_posterior=True,
        max_iter=max_iter,
        random_state=random_state
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        filled = imputer.fit_transform(result[columns])

    result[columns] = filled
    return result


class MissingValueImputer:
    """
    Imputes a mixed-type table: numeric columns with ``strategy``,
    categorical columns with their mode.

    Fitted statistics come from the training frame only, so the test frame
    is filled without looking at its own values.
    """

    def __init__(
        self,
        strategy: str = "median",
        categorical_columns: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
        max_iter: int = 10,
        random_state: int = 42
    ):
        if strategy not in NUMERIC_STRATEGIES:
            raise ValueError(
                f"Unknown imputation strategy: {strategy}. Choose from: {', '.join(NUMERIC_STRATEGIES)}"
            )
        self.strategy = strategy
        self.categorical_columns = categorical_columns
        self.exclude = list(exclude or [])
        self.max_iter = max_iter
        self.random_state = random_state

        self.numeric_columns_: Optional[List[str]] = None
        self.categorical_columns_: Optional[List[str]] = None
        self.numeric_imputer_ = None
        self.categorical_imputer_: Optional[SimpleImputer] = None
        self.missing_before_: Dict[str, int] = {}
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'MissingValueImputer':
        columns = [col for col in df.columns if col not in self.exclude]

        if self.categorical_columns is None:
            categorical = df[columns].select_dtypes(exclude=[np.number]).columns.tolist()
        else:
            categorical = [col for col in self.categorical_columns if col in columns]
        numeric = [col for col in columns if col not in categorical]

        self.categorical_columns_ = [col for col in categorical if df[col].notna().any()]
        self.numeric_columns_ = [col for col in numeric if df[col].notna().any()]
        self.missing_before_ = {
            col: int(n) for col, n in df[columns].isna().sum().items() if n > 0
        }

        if self.numeric_columns_:
            if self.strategy == "median":
                self.numeric_imputer_ = SimpleImputer(strategy="median")
            else:
                self.numeric_imputer_ = IterativeImputer(
                    estimator=BayesianRidge(),
                    sample_posterior=True,
                    max_iter=self.max_iter,
                    random_state=self.random_state
                )
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                self.numeric_imputer_.fit(df[self.numeric_columns_])

        if self.categorical_columns_:
            self.categorical_imputer_ = SimpleImputer(strategy="most_frequent")
            self.categorical_imputer_.fit(df[self.categorical_columns_].astype(object))

        self._is_fitted = True
        logger.info(
            f"Fitted {self.strategy} imputer on {len(self.numeric_columns_)} numeric and "
            f"{len(self.categorical_columns_)} categorical columns"
        )
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        if not self._is_fitted:
            raise ValueError("Imputer must be fitted before transform. Call fit() first.")

        result = df.copy()

        if self.numeric_columns_:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                result[self.numeric_columns_] = self.numeric_imputer_.transform(
                    result[self.numeric_columns_]
                )

        if self.categorical_columns_:
            filled = self.categorical_imputer_.transform(
                result[self.categorical_columns_].astype(object)
            )
            result[self.categorical_columns_] = pd.DataFrame(
                filled, columns=self.categorical_columns_, index=result.index
            )

        return result

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        self.fit(df)
        return self.transform(df)

    def summary(self, df_after: pd.DataFrame) -> Dict[str, Any]:
        """Missing counts before and after imputation for the handled columns."""
        handled = (self.numeric_columns_ or []) + (self.categorical_columns_ or [])
        return {
            'strategy': self.strategy,
            'missing_before': dict(self.missing_before_),
            'missing_after': {
                col: int(n) for col, n in df_after[handled].isna().sum().items() if n > 0
            },
            'total_imputed': int(sum(self.missing_before_.values()))
        }
