"""
Feature preprocessing utilities.

This subpackage includes the Preprocessor (fit on training data only) and
the PreprocessingState it produces: oversampling, log transform, range
normalisation, correlation and near-zero-variance pruning.
"""
