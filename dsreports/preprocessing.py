"""
Data Preprocessing Module
=========================

Handles data transformation, feature encoding, and train/test splitting.

Time series:
    - difference: Lagged differencing
    - adf_test / ndiffs: Stationarity test and differencing order
    - BoxCoxTransformer: Variance-stabilising power transform
    - chronological_split: Hold out the most recent observations

Tables:
    - TabularPreprocessor: One-hot encoding and standard scaling
    - split_features_target / stratified_split: Supervised learning splits
    - encode_target: Map a binary target to 0/1
"""

import logging
from typing import Dict, Any, Tuple, Optional, List, Union

import pandas as pd
import numpy as np
import joblib
from scipy import stats
from scipy.special import inv_boxcox
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from statsmodels.tsa.stattools import adfuller

logger = logging.getLogger(__name__)


def difference(series: pd.Series, lag: int = 1, order: int = 1) -> pd.Series:
    """
    Apply lagged differencing ``order`` times.

    Args:
        series: Input time series
        lag: Lag between subtracted observations
        order: Number of times to difference

    Returns:
        Differenced series with the leading NaNs removed
    """
    if lag < 1 or order < 0:
        raise ValueError(f"lag must be >= 1 and order >= 0, got lag={lag}, order={order}")

    result = series
    for _ in range(order):
        result = result.diff(lag)
    return result.dropna()


def adf_test(series: pd.Series, alpha: float = 0.05) -> Dict[str, Any]:
    """
    Augmented Dickey-Fuller test for a unit root.

    Args:
        series: Time series without missing values
        alpha: Significance level

    Returns:
        Dictionary with the test statistic, p-value and stationarity flag
    """
    values = pd.Series(series).dropna()
    statistic, p_value, used_lag, n_obs, critical_values, _ = adfuller(values, autolag='AIC')

    return {
        'statistic': float(statistic),
        'p_value': float(p_value),
        'used_lag': int(used_lag),
        'n_obs': int(n_obs),
        'critical_values': {k: float(v) for k, v in critical_values.items()},
        'is_stationary': bool(p_value < alpha)
    }


def ndiffs(series: pd.Series, alpha: float = 0.05, max_d: int = 2) -> int:
    """
    Smallest number of differences that makes the series stationary.

    Args:
        series: Time series
        alpha: ADF significance level
        max_d: Upper bound on the differencing order

    Returns:
        Differencing order in ``[0, max_d]``
    """
    for d in range(max_d + 1):
        candidate = difference(series, order=d)
        if len(candidate) < 10:
            break
        if adf_test(candidate, alpha=alpha)['is_stationary']:
            logger.info(f"ADF test: series stationary after {d} difference(s)")
            return d

    logger.info(f"ADF test: no stationary order found up to {max_d}; using d={max_d}")
    return max_d


class BoxCoxTransformer:
    """
    Box-Cox power transform with a stored lambda.

    When ``lmbda`` is None it is estimated by maximum likelihood on fit.
    """

    def __init__(self, lmbda: Optional[float] = None):
        self.lmbda = lmbda
        self.lambda_: Optional[float] = None
        self._is_fitted = False

    def fit(self, values: Union[pd.Series, np.ndarray]) -> 'BoxCoxTransformer':
        data = np.asarray(values, dtype=float)
        if np.any(data <= 0):
            raise ValueError("Box-Cox transform requires strictly positive data")

        if self.lmbda is None:
            _, self.lambda_ = stats.boxcox(data)
        else:
            self.lambda_ = float(self.lmbda)

        self._is_fitted = True
        logger.info(f"Box-Cox lambda: {self.lambda_:.4f}")
        return self

    def transform(self, values):
        if not self._is_fitted:
            raise ValueError("Transformer must be fitted before transform. Call fit() first.")
        data = np.asarray(values, dtype=float)
        if np.any(data <= 0):
            raise ValueError("Box-Cox transform requires strictly positive data")

        transformed = stats.boxcox(data, lmbda=self.lambda_)
        if isinstance(values, pd.Series):
            return pd.Series(transformed, index=values.index, name=values.name)
        return transformed

    def fit_transform(self, values):
        self.fit(values)
        return self.transform(values)

    def inverse_transform(self, values):
        if not self._is_fitted:
            raise ValueError("Transformer must be fitted before inverse_transform.")

        restored = inv_boxcox(np.asarray(values, dtype=float), self.lambda_)
        if isinstance(values, pd.Series):
            return pd.Series(restored, index=values.index, name=values.name)
        if isinstance(values, pd.DataFrame):
            return pd.DataFrame(restored, index=values.index, columns=values.columns)
        return restored


def chronological_split(
    series: Union[pd.Series, pd.DataFrame],
    test_size: Union[int, float]
) -> Tuple[Any, Any]:
    """
    Split data chronologically into train and test sets.

    IMPORTANT: Never shuffle time series data!

    Args:
        series: Ordered observations
        test_size: Number of held-out points (int) or fraction (float)

    Returns:
        Tuple of (train, test)
    """
    n_samples = len(series)

    if isinstance(test_size, float):
        if not 0 < test_size < 1:
            raise ValueError(f"test_size fraction must be in (0, 1), got {test_size}")
        n_test = max(1, int(round(n_samples * test_size)))
    else:
        n_test = int(test_size)

    if n_test < 1 or n_test >= n_samples:
        raise ValueError(
            f"test_size ({n_test}) must be between 1 and the series length - 1 ({n_samples - 1})"
        )

    train = series.iloc[:n_samples - n_test]
    test = series.iloc[n_samples - n_test:]

    logger.info(f"Train/Test split: {len(train)} train samples, {len(test)} test samples")
    return train, test


def encode_target(y: pd.Series, positive_label: Optional[Any] = None) -> pd.Series:
    """
    Map a binary target to 0/1.

    Args:
        y: Target column
        positive_label: Value that becomes 1 (default: the larger of the two levels)

    Returns:
        Integer series of 0/1
    """
    levels = sorted(pd.unique(y.dropna()), key=str)
    if len(levels) != 2:
        raise ValueError(f"Binary target expected, found levels {levels}")

    if positive_label is None:
        positive_label = levels[1]
    elif positive_label not in levels:
        raise ValueError(f"Positive label {positive_label!r} not in target levels {levels}")

    return (y == positive_label).astype(int)


def split_features_target(
    df: pd.DataFrame,
    target: str,
    drop: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate the target column (and any id columns) from the features."""
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found. Columns: {list(df.columns)}")

    drop = [col for col in (drop or []) if col in df.columns and col != target]
    X = df.drop(columns=[target] + drop)
    y = df[target]
    return X, y


def stratified_split(
    X: pd.DataFrame,
    y: pd.Series,
    test_size: float = 0.2,
    random_state: int = 42,
    stratify: bool = True
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Random train/test split, stratified on the target for classification.

    Returns:
        Tuple of (X_train, X_test, y_train, y_test)
    """
    X_train, X_test, y_train, y_test = train_test_split(
        X, y,
        test_size=test_size,
        random_state=random_state,
        stratify=y if stratify else None
    )
    logger.info(f"Train/Test split: {len(X_train)} train samples, {len(X_test)} test samples")
    return X_train, X_test, y_train, y_test


class TabularPreprocessor:
    """
    Encoding pipeline for mixed numeric/categorical feature tables.

    Categoricals are one-hot encoded with the first level dropped; levels
    unseen during fit encode as all zeros. Numeric columns are optionally
    standardised.
    """

    def __init__(
        self,
        categorical_columns: Optional[List[str]] = None,
        scale: bool = True,
        drop_first: bool = True
    ):
        """
        Initialize the preprocessor.

        Args:
            categorical_columns: Columns to one-hot encode (default: non-numeric)
            scale: Whether to apply StandardScaler to numeric columns
            drop_first: Drop the first level of each categorical
        """
        self.categorical_columns = categorical_columns
        self.scale = scale
        self.drop_first = drop_first

        self.encoder: Optional[OneHotEncoder] = None
        self.scaler: Optional[StandardScaler] = None
        self.numeric_columns_: Optional[List[str]] = None
        self.categorical_columns_: Optional[List[str]] = None
        self.feature_names_: Optional[List[str]] = None
        self.groups_: Dict[str, List[str]] = {}
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'TabularPreprocessor':
        """
        Learn category levels and scaling parameters.

        Args:
            df: Feature table without missing values

        Returns:
            Self for method chaining
        """
        if self.categorical_columns is None:
            categorical = df.select_dtypes(exclude=[np.number]).columns.tolist()
        else:
            categorical = [col for col in self.categorical_columns if col in df.columns]

        self.categorical_columns_ = categorical
        self.numeric_columns_ = [col for col in df.columns if col not in categorical]
        self.groups_ = {col: [col] for col in self.numeric_columns_}

        encoded_names: List[str] = []
        if categorical:
            self.encoder = OneHotEncoder(
                drop='first' if self.drop_first else None,
                handle_unknown='ignore',
                sparse_output=False
            )
            self.encoder.fit(df[categorical].astype(str))
            encoded_names = list(self.encoder.get_feature_names_out(categorical))

            start = 0
            for i, col in enumerate(categorical):
                n_levels = len(self.encoder.categories_[i])
                if self.drop_first:
                    n_levels -= 1
                self.groups_[col] = encoded_names[start:start + n_levels]
                start += n_levels

        if self.scale and self.numeric_columns_:
            self.scaler = StandardScaler()
            self.scaler.fit(df[self.numeric_columns_].astype(float))
            logger.info("Fitted StandardScaler to numeric columns")

        self.feature_names_ = list(self.numeric_columns_) + encoded_names
        self._is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Transform data using fitted parameters.

        Args:
            df: Feature table

        Returns:
            Encoded DataFrame with ``feature_names_`` columns
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        parts = []
        if self.numeric_columns_:
            numeric = df[self.numeric_columns_].astype(float)
            if self.scaler is not None:
                numeric = pd.DataFrame(
                    self.scaler.transform(numeric),
                    columns=self.numeric_columns_,
                    index=df.index
                )
            parts.append(numeric)

        if self.categorical_columns_:
            encoded = self.encoder.transform(df[self.categorical_columns_].astype(str))
            parts.append(pd.DataFrame(
                encoded,
                columns=self.encoder.get_feature_names_out(self.categorical_columns_),
                index=df.index
            ))

        return pd.concat(parts, axis=1)[self.feature_names_]

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        self.fit(df)
        return self.transform(df)

    def get_feature_names(self) -> List[str]:
        if self.feature_names_ is None:
            raise ValueError("Preprocessor must be fitted first.")
        return list(self.feature_names_)

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'categorical_columns': self.categorical_columns,
            'scale': self.scale,
            'drop_first': self.drop_first,
            'encoder': self.encoder,
            'scaler': self.scaler,
            'numeric_columns_': self.numeric_columns_,
            'categorical_columns_': self.categorical_columns_,
            'feature_names_': self.feature_names_,
            'groups_': self.groups_,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'TabularPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded TabularPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            categorical_columns=state['categorical_columns'],
            scale=state['scale'],
            drop_first=state['drop_first']
        )
        preprocessor.encoder = state['encoder']
        preprocessor.scaler = state['scaler']
        preprocessor.numeric_columns_ = state['numeric_columns_']
        preprocessor.categorical_columns_ = state['categorical_columns_']
        preprocessor.feature_names_ = state['feature_names_']
        preprocessor.groups_ = state['groups_']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor
