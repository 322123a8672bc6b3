"""
Shared utility functions.

This subpackage includes:
- YAML config loading
- explicit random-source helpers for reproducibility
- device selection (CPU/GPU) logic
- directory and logging helpers used across the project.
"""
