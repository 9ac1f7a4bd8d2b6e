"""
Classification Models Module
============================

Fits the set of off-the-shelf classifiers compared in the reports.

Models:
    - lda: LinearDiscriminantAnalysis
    - knn: KNeighborsClassifier (k chosen by cross-validation)
    - decision_tree: DecisionTreeClassifier (CART)
    - random_forest: RandomForestClassifier
    - logistic_regression: LogisticRegression

Features:
    - Hyperparameter configuration via config file
    - Cross-validated accuracy
    - Model persistence (save/load)
"""

import logging
import warnings
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List, Sequence

import numpy as np
import pandas as pd
import joblib
from sklearn.base import ClassifierMixin
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score
from sklearn.model_selection import StratifiedKFold, cross_val_score
from sklearn.neighbors import KNeighborsClassifier
from sklearn.tree import DecisionTreeClassifier

logger = logging.getLogger(__name__)

MODEL_LABELS = {
    'lda': 'Linear Discriminant Analysis',
    'knn': 'K-Nearest Neighbours',
    'decision_tree': 'Decision Tree',
    'random_forest': 'Random Forest',
    'logistic_regression': 'Logistic Regression'
}

DEFAULT_MODELS = list(MODEL_LABELS)


def build_classifiers(
    config: Optional[Dict[str, Any]] = None,
    models: Optional[Sequence[str]] = None,
    n_neighbors: Optional[int] = None
) -> Dict[str, ClassifierMixin]:
    """
    Create unfitted classifiers from configuration parameters.

    Args:
        config: ``models`` section of a report configuration
        models: Model keys to build (default: all)
        n_neighbors: Overrides the configured k for KNN

    Returns:
        Dictionary of model key -> estimator
    """
    config = config or {}
    models = list(models) if models is not None else DEFAULT_MODELS
    random_state = config.get('random_state', 42)

    unknown = [name for name in models if name not in MODEL_LABELS]
    if unknown:
        raise ValueError(f"Unknown model(s): {unknown}. Choose from: {', '.join(MODEL_LABELS)}")

    tree_config = config.get('decision_tree', {})
    forest_config = config.get('random_forest', {})
    logit_config = config.get('logistic_regression', {})
    knn_config = config.get('knn', {})

    factories = {
        'lda': lambda: LinearDiscriminantAnalysis(),
        'knn': lambda: KNeighborsClassifier(
            n_neighbors=n_neighbors or knn_config.get('n_neighbors', 5),
            weights=knn_config.get('weights', 'uniform')
        ),
        'decision_tree': lambda: DecisionTreeClassifier(
            max_depth=tree_config.get('max_depth', 5),
            min_samples_leaf=tree_config.get('min_samples_leaf', 5),
            random_state=random_state
        ),
        'random_forest': lambda: RandomForestClassifier(
            n_estimators=forest_config.get('n_estimators', 500),
            max_depth=forest_config.get('max_depth'),
            min_samples_leaf=forest_config.get('min_samples_leaf', 1),
            random_state=random_state,
            n_jobs=forest_config.get('n_jobs', -1)
        ),
        'logistic_regression': lambda: LogisticRegression(
            C=logit_config.get('C', 1.0),
            max_iter=logit_config.get('max_iter', 1000)
        )
    }

    return {name: factories[name]() for name in models}


def select_knn_neighbors(
    X: pd.DataFrame,
    y: pd.Series,
    k_values: Sequence[int] = tuple(range(1, 31, 2)),
    cv: int = 10,
    random_state: int = 42
) -> Dict[str, Any]:
    """
    Choose the number of neighbours by stratified cross-validated accuracy.

    Args:
        X: Encoded training features
        y: Training labels
        k_values: Candidate neighbour counts
        cv: Number of folds
        random_state: Fold shuffling seed

    Returns:
        Dictionary with ``best_k``, ``best_score`` and the per-k ``scores`` table
    """
    n_splits = max(2, min(cv, int(pd.Series(y).value_counts().min())))
    folds = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)

    # k cannot exceed the smallest training fold
    max_k = len(X) - int(np.ceil(len(X) / n_splits))
    candidates = sorted(k for k in set(k_values) if 1 <= k <= max_k)
    if not candidates:
        raise ValueError(f"No valid k in {list(k_values)} for {len(X)} samples")

    rows = []
    for k in candidates:
        scores = cross_val_score(KNeighborsClassifier(n_neighbors=k), X, y, cv=folds, scoring='accuracy')
        rows.append({'k': k, 'mean_accuracy': float(scores.mean()), 'std_accuracy': float(scores.std())})

    table = pd.DataFrame(rows)
    best_row = table.loc[table['mean_accuracy'].idxmax()]

    logger.info(f"KNN cross-validation ({n_splits} folds): best k={int(best_row['k'])} "
                f"accuracy={best_row['mean_accuracy']:.4f}")

    return {
        'best_k': int(best_row['k']),
        'best_score': float(best_row['mean_accuracy']),
        'n_splits': n_splits,
        'scores': table
    }


class ClassifierSuite:
    """
    A named collection of classifiers fitted and scored on the same split.
    """

    def __init__(self, models: Dict[str, ClassifierMixin]):
        if not models:
            raise ValueError("ClassifierSuite needs at least one model")
        self.models = models
        self.feature_names_: Optional[List[str]] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ClassifierSuite':
        """
        Train every model on the provided data.

        Args:
            X: Encoded feature table
            y: Class labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info("STARTING MODEL TRAINING")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}")

        self.feature_names_ = list(X.columns) if hasattr(X, 'columns') else None
        durations = {}

        for name, model in self.models.items():
            t0 = datetime.now()
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                model.fit(X, y)
            durations[name] = (datetime.now() - t0).total_seconds()
            logger.info(f"  - {MODEL_LABELS.get(name, name)} fitted in {durations[name]:.2f}s")

        self.classes_ = next(iter(self.models.values())).classes_
        end_time = datetime.now()
        self.training_info = {
            'training_duration_seconds': (end_time - start_time).total_seconds(),
            'durations': durations,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'trained_at': end_time.isoformat()
        }
        self._is_fitted = True

        logger.info("=" * 60)
        logger.info(f"MODEL TRAINING COMPLETE in {self.training_info['training_duration_seconds']:.2f} seconds")
        logger.info("=" * 60)
        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Models must be trained before prediction. Call fit() first.")

    def predict(self, X: pd.DataFrame) -> Dict[str, np.ndarray]:
        """Predicted labels per model."""
        self._check_fitted()
        return {name: model.predict(X) for name, model in self.models.items()}

    def predict_proba(self, X: pd.DataFrame) -> Dict[str, np.ndarray]:
        """Probability of the second class per model (models without predict_proba are skipped)."""
        self._check_fitted()
        return {
            name: model.predict_proba(X)[:, 1]
            for name, model in self.models.items()
            if hasattr(model, 'predict_proba')
        }

    def score(self, X: pd.DataFrame, y: pd.Series) -> pd.DataFrame:
        """
        Held-out accuracy for every model, best first.

        Returns:
            DataFrame with ``model``, ``label`` and ``accuracy`` columns
        """
        predictions = self.predict(X)
        rows = [
            {'model': name, 'label': MODEL_LABELS.get(name, name), 'accuracy': float(accuracy_score(y, pred))}
            for name, pred in predictions.items()
        ]
        return (
            pd.DataFrame(rows)
            .sort_values('accuracy', ascending=False, kind='stable')
            .reset_index(drop=True)
        )

    def cross_validate(self, X: pd.DataFrame, y: pd.Series, cv: int = 5, random_state: int = 42) -> pd.DataFrame:
        """Stratified cross-validated accuracy of every (unfitted copy of each) model."""
        folds = StratifiedKFold(n_splits=cv, shuffle=True, random_state=random_state)
        rows = []
        for name, model in self.models.items():
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                scores = cross_val_score(model, X, y, cv=folds, scoring='accuracy')
            rows.append({
                'model': name,
                'label': MODEL_LABELS.get(name, name),
                'cv_accuracy': float(scores.mean()),
                'cv_std': float(scores.std())
            })
        return pd.DataFrame(rows)

    def get_feature_importances(self) -> pd.DataFrame:
        """
        Impurity-based importances of the tree models.

        Returns:
            DataFrame indexed by feature with one column per tree model
        """
        self._check_fitted()
        importances = {
            name: model.feature_importances_
            for name, model in self.models.items()
            if hasattr(model, 'feature_importances_')
        }
        return pd.DataFrame(importances, index=self.feature_names_)

    def save(self, filepath: str) -> None:
        """
        Save the fitted suite to disk.

        Args:
            filepath: Path to save the models
        """
        self._check_fitted()
        state = {
            'models': self.models,
            'feature_names_': self.feature_names_,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Models saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ClassifierSuite':
        """
        Load a fitted suite from disk.

        Args:
            filepath: Path to the saved models

        Returns:
            Loaded ClassifierSuite instance
        """
        state = joblib.load(filepath)
        suite = cls(state['models'])
        suite.feature_names_ = state['feature_names_']
        suite.classes_ = state['classes_']
        suite.training_info = state['training_info']
        suite._is_fitted = state['_is_fitted']
        logger.info(f"Models loaded from {filepath}")
        return suite


def print_model_summary(suite: ClassifierSuite, scores: Optional[pd.DataFrame] = None) -> None:
    """
    Print a summary of the fitted classifiers.

    Args:
        suite: Fitted suite
        scores: Output of ``ClassifierSuite.score`` (optional)
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    for name, model in suite.models.items():
        print(f"  - {MODEL_LABELS.get(name, name)}: {model}")

    if suite.training_info:
        print(f"\nTraining Info:")
        print(f"  - Duration: {suite.training_info['training_duration_seconds']:.2f}s")
        print(f"  - Samples: {suite.training_info['n_samples']}")
        print(f"  - Features: {suite.training_info['n_features']}")

    if scores is not None:
        print(f"\nHeld-out accuracy:")
        for _, row in scores.iterrows():
            print(f"  - {row['label']:<30} {row['accuracy']:.4f}")

    print("=" * 50 + "\n")
