"""
Model definitions for spam detection.

This subpackage contains:
- traditional model builders (logistic regression, naive Bayes, random forest)
- the feed-forward neural network and its training state machine.
"""
