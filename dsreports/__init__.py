"""
Narrative Data-Science Reports
==============================

Blog-style reports built on statsmodels and scikit-learn.

Modules:
    - data_loader: Configuration, CSV ingestion (local or HTTP) and validation
    - eda: Exploratory statistics and plots
    - imputation: Median / mode, Kalman smoothing and MICE imputation
    - preprocessing: Differencing, Box-Cox, encoding, scaling and splits
    - forecasting: ARIMA with automatic order selection
    - model: LDA, KNN, decision tree, random forest, logistic regression
    - regression: OLS / logistic regression and stepwise AIC selection
    - evaluation: Metrics and diagnostic plots
    - prediction: Forecast export
    - report / narrative: HTML rendering and prose
    - stock_forecast, loan_approval, insurance_claims: The three reports
"""

__version__ = "1.0.0"
