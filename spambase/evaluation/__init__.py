"""
Evaluation and analysis utilities.

This subpackage offers:
- metric computations (precision, recall, F1-score, accuracy)
- stratified bootstrap confidence intervals and rank-sum tests
- report tables and plotting functions.
"""
