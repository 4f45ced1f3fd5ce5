"""Utility modules for the estimator functions."""

from utils.coercion import parse_float, number_or, non_negative

__all__ = [
    "parse_float",
    "number_or",
    "non_negative",
]
