"""
Insurance Claims Report
=======================

Two questions about an insurance portfolio:

    - How large is a claim? Linear regression on the claim amount, full
      model against the stepwise-AIC model.
    - Will a policy claim? Logistic regression (full and stepwise-AIC)
      against a random forest, compared by accuracy and ROC/AUC.

Missing values are filled by MICE before either model is fitted.
"""

import logging
from typing import Dict, Any, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .data_loader import load_data, validate_data, get_output_paths, print_data_summary
from .eda import generate_eda_report
from .evaluation import (
    calculate_regression_metrics, calculate_classification_metrics,
    plot_actual_vs_predicted, plot_residuals, plot_roc_curves,
    plot_confusion_matrix, print_evaluation_report
)
from .imputation import MissingValueImputer
from .model import ClassifierSuite, build_classifiers, MODEL_LABELS
from .narrative import (
    describe_dataset, describe_missing, describe_class_balance,
    describe_regression, describe_stepwise, describe_auc
)
from .preprocessing import TabularPreprocessor, stratified_split, encode_target
from .regression import fit_ols, fit_logit, stepwise_aic, predict, coefficient_table
from .report import HtmlReport

logger = logging.getLogger(__name__)


def _claim_amount_models(
    X_train: pd.DataFrame,
    X_test: pd.DataFrame,
    y_train: pd.Series,
    y_test: pd.Series,
    groups: Dict[str, Any],
    direction: str
) -> Dict[str, Any]:
    full = fit_ols(X_train, y_train)
    selection = stepwise_aic(X_train, y_train, family='gaussian', direction=direction, groups=groups)

    pred_full = predict(full, X_test, list(X_train.columns))
    pred_step = predict(selection['result'], X_test, selection['columns'])

    return {
        'full': full,
        'stepwise': selection,
        'predictions': pred_step,
        'metrics': {
            'Linear regression (full)': calculate_regression_metrics(y_test, pred_full),
            'Linear regression (stepwise AIC)': calculate_regression_metrics(y_test, pred_step)
        }
    }


def _claim_occurrence_models(
    X_train: pd.DataFrame,
    X_test: pd.DataFrame,
    y_train: pd.Series,
    y_test: pd.Series,
    groups: Dict[str, Any],
    direction: str,
    threshold: float,
    models_cfg: Dict[str, Any]
) -> Dict[str, Any]:
    full = fit_logit(X_train, y_train)
    selection = stepwise_aic(X_train, y_train, family='binomial', direction=direction, groups=groups)

    prob_full = predict(full, X_test, list(X_train.columns))
    prob_step = predict(selection['result'], X_test, selection['columns'])

    metrics = {
        'Logistic regression (full)': calculate_classification_metrics(
            y_test, (prob_full >= threshold).astype(int), prob_full
        ),
        'Logistic regression (stepwise AIC)': calculate_classification_metrics(
            y_test, (prob_step >= threshold).astype(int), prob_step
        )
    }

    suite = ClassifierSuite(build_classifiers(models_cfg, models=models_cfg.get('use', ['random_forest'])))
    suite.fit(X_train, y_train)
    predictions = suite.predict(X_test)
    probabilities = suite.predict_proba(X_test)
    for name in suite.models:
        metrics[MODEL_LABELS.get(name, name)] = calculate_classification_metrics(
            y_test, predictions[name], probabilities.get(name)
        )

    return {'full': full, 'stepwise': selection, 'suite': suite, 'metrics': metrics}


def run_insurance_report(
    config: Dict[str, Any],
    source: Optional[str] = None,
    output_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the insurance claims report.

    Args:
        config: Full configuration dictionary
        source: Overrides the configured CSV location
        output_dir: Overrides the configured output directories

    Returns:
        Dictionary with regression and classification results and file paths
    """
    cfg = config.get('insurance', {})
    paths = get_output_paths(config, output_dir)

    claim_target = cfg.get('claim_target', 'claim')
    amount_target = cfg.get('amount_target', 'claim_amount')
    id_column = cfg.get('id_column')
    categorical = cfg.get('categorical_columns')
    random_state = cfg.get('random_state', 42)
    direction = cfg.get('stepwise', {}).get('direction', 'both')
    threshold = cfg.get('threshold', 0.5)

    print("\n" + "=" * 70)
    print("INSURANCE CLAIMS REPORT")
    print("=" * 70)

    df = load_data(
        source or cfg.get('source', 'data/raw/insurance.csv'),
        cache_dir=str(paths['cache']),
        expected_columns=[claim_target, amount_target]
    )
    print_data_summary(df)
    _, validation = validate_data(df, strict=False)

    n_unlabelled = int(df[claim_target].isna().sum())
    if n_unlabelled:
        logger.warning(f"Dropping {n_unlabelled} rows without '{claim_target}'")
        df = df.dropna(subset=[claim_target]).reset_index(drop=True)

    drop = [col for col in (id_column, claim_target, amount_target) if col and col in df.columns]
    features = df.drop(columns=drop)
    if categorical is not None:
        categorical = [col for col in categorical if col in features.columns]

    eda = generate_eda_report(
        pd.concat([features, df[claim_target]], axis=1),
        output_dir=str(paths['figures']),
        target=claim_target,
        categorical_columns=categorical,
        prefix='insurance'
    )

    # Impute and encode
    imputer = MissingValueImputer(
        strategy=cfg.get('imputation', 'mice'),
        categorical_columns=categorical,
        max_iter=cfg.get('mice', {}).get('max_iter', 10),
        random_state=random_state
    )
    features_imputed = imputer.fit_transform(features)
    imputation = imputer.summary(features_imputed)

    preprocessor = TabularPreprocessor(
        categorical_columns=imputer.categorical_columns_,
        scale=cfg.get('scale', True)
    )
    X = preprocessor.fit_transform(features_imputed)
    y_claim = encode_target(df[claim_target], cfg.get('positive_label'))
    amount = pd.to_numeric(df[amount_target], errors='coerce')

    X_train, X_test, y_train, y_test = stratified_split(
        X, y_claim, test_size=cfg.get('test_size', 0.25), random_state=random_state
    )

    # Claim amount
    amount_mask = amount.notna()
    if cfg.get('amount_on_claims_only', True):
        amount_mask &= y_claim == 1
    train_rows = X_train.index[amount_mask.loc[X_train.index].to_numpy()]
    test_rows = X_test.index[amount_mask.loc[X_test.index].to_numpy()]

    regression = _claim_amount_models(
        X.loc[train_rows], X.loc[test_rows],
        amount.loc[train_rows], amount.loc[test_rows],
        preprocessor.groups_, direction
    )
    print_evaluation_report(regression['metrics'], title="CLAIM AMOUNT - TEST METRICS")

    # Claim occurrence
    classification = _claim_occurrence_models(
        X_train, X_test, y_train, y_test,
        preprocessor.groups_, direction, threshold, cfg.get('models', {})
    )
    print_evaluation_report(classification['metrics'], title="CLAIM OCCURRENCE - TEST METRICS")

    classification['suite'].save(str(paths['models'] / 'insurance_classifiers.joblib'))
    preprocessor.save(str(paths['models'] / 'insurance_preprocessor.joblib'))

    # HTML report
    report = HtmlReport(cfg.get('title', 'Insurance Claims'), subtitle='Regression and classification')

    report.add_heading("The data")
    report.add_paragraph(describe_dataset(len(df), df.shape[1], "insurance policies"))
    report.add_paragraph(describe_class_balance(df[claim_target].value_counts().to_dict(), claim_target))
    if validation['issues']:
        report.add_list(validation['issues'])
    report.add_paragraph(describe_missing(
        imputation['missing_before'], len(df),
        "multivariate imputation by chained equations (MICE) for numeric columns "
        "and the most frequent level for categorical ones"
    ))
    for key, caption in (
        ('missing_values', "Missing values per column."),
        ('distributions', "Distributions of the numeric features."),
        ('correlation_matrix', "Correlation between numeric features."),
        ('categorical_counts', f"Categorical features split by {claim_target}.")
    ):
        if key in eda['figures']:
            report.add_image_file(eda['figures'][key], caption=caption)

    reg_metrics = regression['metrics']
    selection = regression['stepwise']
    report.add_heading("How large is a claim?")
    report.add_paragraph(
        f"A linear regression of '{amount_target}' is fitted on {len(train_rows):,} policies "
        f"and tested on {len(test_rows):,}."
    )
    report.add_paragraph(describe_stepwise(selection))
    report.add_paragraph(describe_regression(
        reg_metrics['Linear regression (stepwise AIC)'], amount_target, "The stepwise model"
    ))
    report.add_table(
        pd.DataFrame(reg_metrics).T[['rmse', 'mae', 'r2']],
        caption="Claim amount: test metrics"
    )
    report.add_table(
        coefficient_table(selection['result']),
        caption="Stepwise model coefficients"
    )
    report.add_table(selection['history'], caption="Stepwise AIC path", index=False)
    report.add_figure(
        plot_actual_vs_predicted(amount.loc[test_rows], regression['predictions'],
                                 title='Claim amount (stepwise AIC)',
                                 save_path=str(paths['figures'] / 'insurance_amount_fit.png')),
        caption="Predicted against actual claim amounts on the test set."
    )
    report.add_figure(
        plot_residuals(amount.loc[test_rows], regression['predictions'],
                       save_path=str(paths['figures'] / 'insurance_amount_residuals.png')),
        caption="Residuals of the stepwise claim amount model."
    )

    clf_metrics = classification['metrics']
    scores = pd.DataFrame(
        {label: {k: m.get(k, np.nan) for k in ('accuracy', 'precision', 'recall', 'f1', 'auc')}
         for label, m in clf_metrics.items()}
    ).T
    best_label = scores['accuracy'].idxmax()

    report.add_heading("Will a policy claim?")
    report.add_paragraph(describe_stepwise(classification['stepwise']))
    report.add_paragraph(
        f"{best_label} has the highest test accuracy ({scores.loc[best_label, 'accuracy']:.1%}) "
        f"at a probability threshold of {threshold}."
    )
    report.add_table(scores, caption="Claim occurrence: test metrics")
    curves = {label: m for label, m in clf_metrics.items() if 'auc' in m}
    if curves:
        report.add_paragraph(describe_auc(curves))
        report.add_figure(
            plot_roc_curves(curves, save_path=str(paths['figures'] / 'insurance_roc.png')),
            caption="ROC curves for claim occurrence."
        )
    best = clf_metrics[best_label]
    report.add_figure(
        plot_confusion_matrix(best['confusion_matrix'], best['labels'],
                              title=f'Confusion Matrix: {best_label}',
                              save_path=str(paths['figures'] / 'insurance_confusion_matrix.png')),
        caption=f"Confusion matrix of {best_label}."
    )

    html_path = report.save(str(paths['reports'] / 'insurance_claims.html'))
    plt.close('all')

    print(f"  • Claim amount R² (stepwise): {reg_metrics['Linear regression (stepwise AIC)']['r2']:.3f}")
    print(f"  • Best claim classifier: {best_label}")
    print(f"  • Report: {html_path}")

    return {
        'regression': regression,
        'classification': classification,
        'classification_scores': scores,
        'imputation': imputation,
        'preprocessor': preprocessor,
        'eda': eda,
        'html_path': html_path
    }
