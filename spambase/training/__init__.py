"""
Training pipelines for all model families.

This subpackage provides:
- the exhaustive cross-validated grid search
- tuning and evaluation of the traditional models
- training and evaluation of the neural network
- the end-to-end experiment runner.
"""
