"""Waterproofing Estimator - Cloud Functions.

This package contains the Python Cloud Functions behind the commercial
waterproofing estimator: file ingestion, AI project analysis, the pricing
engine, estimate storage and the expert chat assistant.
"""

__version__ = "1.0.0"
