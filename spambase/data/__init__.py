"""
Data loading and dataset utilities.

This subpackage provides:
- functions to load the UCI Spambase table
- exploratory summaries of the features and class balance
- stratified train/validation/test splitting and k-fold assignment.
"""
