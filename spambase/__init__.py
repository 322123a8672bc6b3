"""
Top-level package for the Spambase spam-classification report.

This package contains modules for:
- data loading, exploratory summaries and stratified splitting
- the train-only fitted preprocessing pipeline
- model definitions (feed-forward network and traditional classifiers)
- training pipelines and the cross-validated grid search
- evaluation utilities (metrics, bootstrap intervals, rank-sum tests, plots)
- shared helper functions
"""
