"""
Loan Approval Report
====================

Compares five classifiers on a loan-application dataset.

Steps:
    1. Load and validate the applications
    2. Explore: missing values, distributions, categorical splits by outcome
    3. Impute (median for numbers, mode for categories) and encode
    4. Stratified train/test split
    5. Choose k for KNN by cross-validation, fit LDA, KNN, decision tree,
       random forest and logistic regression
    6. Score on the held-out applications and write the HTML report
"""

import logging
from typing import Dict, Any, Optional

import pandas as pd
import matplotlib.pyplot as plt

from .data_loader import load_data, validate_data, get_output_paths, print_data_summary
from .eda import generate_eda_report
from .evaluation import (
    calculate_classification_metrics, plot_confusion_matrix, plot_roc_curves,
    plot_accuracy_comparison, plot_feature_importances, print_evaluation_report
)
from .imputation import MissingValueImputer
from .model import ClassifierSuite, build_classifiers, select_knn_neighbors, MODEL_LABELS
from .narrative import (
    describe_dataset, describe_missing, describe_class_balance,
    describe_classifier_ranking, describe_auc
)
from .preprocessing import (
    TabularPreprocessor, split_features_target, stratified_split, encode_target
)
from .report import HtmlReport

logger = logging.getLogger(__name__)


def run_loan_report(
    config: Dict[str, Any],
    source: Optional[str] = None,
    output_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the loan approval report.

    Args:
        config: Full configuration dictionary
        source: Overrides the configured CSV location
        output_dir: Overrides the configured output directories

    Returns:
        Dictionary with scores, per-model metrics, fitted objects and file paths
    """
    cfg = config.get('loan', {})
    paths = get_output_paths(config, output_dir)

    target = cfg.get('target', 'Loan_Status')
    id_column = cfg.get('id_column')
    categorical = cfg.get('categorical_columns')
    random_state = cfg.get('random_state', 42)
    models_cfg = cfg.get('models', {})

    print("\n" + "=" * 70)
    print("LOAN APPROVAL REPORT")
    print("=" * 70)

    df = load_data(
        source or cfg.get('source', 'data/raw/loan.csv'),
        cache_dir=str(paths['cache']),
        expected_columns=[target]
    )
    print_data_summary(df)
    _, validation = validate_data(df, strict=False)

    n_unlabelled = int(df[target].isna().sum())
    if n_unlabelled:
        logger.warning(f"Dropping {n_unlabelled} rows without '{target}'")
        df = df.dropna(subset=[target]).reset_index(drop=True)

    X_raw, y_raw = split_features_target(df, target, drop=[id_column] if id_column else None)
    if categorical is not None:
        categorical = [col for col in categorical if col in X_raw.columns]

    eda = generate_eda_report(
        pd.concat([X_raw, y_raw], axis=1),
        output_dir=str(paths['figures']),
        target=target,
        categorical_columns=categorical,
        prefix='loan'
    )

    # Impute and encode
    imputer = MissingValueImputer(
        strategy=cfg.get('imputation', 'median'),
        categorical_columns=categorical,
        random_state=random_state
    )
    X_imputed = imputer.fit_transform(X_raw)
    imputation = imputer.summary(X_imputed)

    preprocessor = TabularPreprocessor(
        categorical_columns=imputer.categorical_columns_,
        scale=cfg.get('scale', True)
    )
    X = preprocessor.fit_transform(X_imputed)
    y = encode_target(y_raw, cfg.get('positive_label'))

    X_train, X_test, y_train, y_test = stratified_split(
        X, y, test_size=cfg.get('test_size', 0.25), random_state=random_state
    )

    # Models
    knn_cfg = cfg.get('knn', {})
    folds = cfg.get('cross_validation_folds', 10)
    model_names = models_cfg.get('use')
    knn = None
    if model_names is None or 'knn' in model_names:
        knn_kwargs = {'cv': folds, 'random_state': random_state}
        if knn_cfg.get('k_values'):
            knn_kwargs['k_values'] = knn_cfg['k_values']
        knn = select_knn_neighbors(X_train, y_train, **knn_kwargs)

    suite = ClassifierSuite(build_classifiers(
        models_cfg, models=model_names, n_neighbors=knn['best_k'] if knn else None
    ))
    suite.fit(X_train, y_train)

    scores = suite.score(X_test, y_test)
    cv_scores = suite.cross_validate(X_train, y_train, cv=min(folds, int(y_train.value_counts().min())),
                                     random_state=random_state)
    scores = scores.merge(cv_scores[['model', 'cv_accuracy', 'cv_std']], on='model', how='left')

    predictions = suite.predict(X_test)
    probabilities = suite.predict_proba(X_test)
    per_model = {
        MODEL_LABELS.get(name, name): calculate_classification_metrics(
            y_test, predictions[name], probabilities.get(name)
        )
        for name in suite.models
    }
    print_evaluation_report(per_model, title="LOAN APPROVAL - HELD-OUT METRICS")

    best_name = scores.iloc[0]['model']
    best_label = MODEL_LABELS.get(best_name, best_name)
    best_metrics = per_model[best_label]

    suite.save(str(paths['models'] / 'loan_classifiers.joblib'))
    preprocessor.save(str(paths['models'] / 'loan_preprocessor.joblib'))

    # HTML report
    positive = cfg.get('positive_label')
    report = HtmlReport(cfg.get('title', 'Loan Approval'), subtitle='Classification')

    report.add_heading("The data")
    report.add_paragraph(describe_dataset(len(df), df.shape[1], "loan applications", target))
    report.add_paragraph(describe_class_balance(y_raw.value_counts().to_dict(), target))
    if validation['issues']:
        report.add_list(validation['issues'])
    report.add_paragraph(describe_missing(
        imputation['missing_before'], len(df),
        f"the {imputer.strategy} for numeric columns and the most frequent level for categorical ones"
    ))
    for key, caption in (
        ('missing_values', "Missing values per column."),
        ('distributions', "Distributions of the numeric features."),
        ('box_plots', f"Numeric features by {target}."),
        ('categorical_counts', f"Categorical features split by {target}."),
        ('correlation_matrix', "Correlation between numeric features.")
    ):
        if key in eda['figures']:
            report.add_image_file(eda['figures'][key], caption=caption)

    report.add_heading("Models")
    report.add_paragraph(
        f"After one-hot encoding the data has {X.shape[1]} features. "
        f"{len(X_train):,} applications are used for training and {len(X_test):,} are held out, "
        f"stratified on the outcome."
    )
    if knn is not None:
        report.add_paragraph(
            f"For KNN, {knn['n_splits']}-fold cross-validation over k picks k = {knn['best_k']} "
            f"(cross-validated accuracy {knn['best_score']:.1%})."
        )

    report.add_heading("Results")
    report.add_paragraph(describe_classifier_ranking(scores))
    report.add_table(
        scores.set_index('label')[['accuracy', 'cv_accuracy', 'cv_std']],
        caption="Held-out and cross-validated accuracy"
    )
    report.add_figure(
        plot_accuracy_comparison(scores, save_path=str(paths['figures'] / 'loan_accuracy.png')),
        caption="Held-out accuracy by model."
    )
    report.add_figure(
        plot_confusion_matrix(best_metrics['confusion_matrix'], best_metrics['labels'],
                              title=f'Confusion Matrix: {best_label}',
                              save_path=str(paths['figures'] / 'loan_confusion_matrix.png')),
        caption=f"Confusion matrix of {best_label} (1 = {positive or 'positive class'})."
    )

    curves = {label: m for label, m in per_model.items() if 'auc' in m}
    if curves:
        report.add_paragraph(describe_auc(curves))
        report.add_figure(
            plot_roc_curves(curves, save_path=str(paths['figures'] / 'loan_roc.png')),
            caption="ROC curves on the held-out applications."
        )

    importances = suite.get_feature_importances()
    if not importances.empty:
        column = 'random_forest' if 'random_forest' in importances else importances.columns[0]
        report.add_figure(
            plot_feature_importances(importances[column],
                                     title=f'Feature Importance: {MODEL_LABELS.get(column, column)}',
                                     save_path=str(paths['figures'] / 'loan_importance.png')),
            caption="Impurity-based feature importance."
        )

    html_path = report.save(str(paths['reports'] / 'loan_approval.html'))
    plt.close('all')

    print(f"  • Best model: {best_label} ({scores.iloc[0]['accuracy']:.2%} accuracy)")
    print(f"  • Report: {html_path}")

    return {
        'scores': scores,
        'metrics': per_model,
        'knn': knn,
        'imputation': imputation,
        'suite': suite,
        'preprocessor': preprocessor,
        'best_model': best_name,
        'eda': eda,
        'html_path': html_path
    }
