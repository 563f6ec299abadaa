"""Prescience - prediction-market intelligence and signal pipeline."""

__version__ = "0.1.0"
