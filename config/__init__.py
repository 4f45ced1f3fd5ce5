"""Estimator configuration.

This package contains:
- settings: Environment variables and configuration
- secrets: Unified secret access (Firebase Secrets Manager)
- errors: Custom exceptions and error codes
- logging_config: structlog setup
"""

from config.settings import Settings, get_settings
from config.errors import EstimatorError, ErrorCode
from config.secrets import get_secret, get_openai_api_key

__all__ = [
    "Settings",
    "get_settings",
    "EstimatorError",
    "ErrorCode",
    "get_secret",
    "get_openai_api_key",
]
