"""Project intake validation.

Checks the raw project form before it is analyzed or priced. The pricing
engine itself accepts unknown labels (falling back to default rates), so
this is the place where bad input is rejected with a readable message.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

import structlog

from models.project import (
    AccessCondition,
    ProjectConfig,
    ProjectType,
    UrgencyLevel,
    WaterproofingMaterial,
)
from utils.coercion import parse_float

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = (
    "project_name",
    "client_name",
    "project_type",
    "waterproofing_material",
    "access_conditions",
    "urgency_level",
    "labor_rate",
)

ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "project_type": ProjectType,
    "waterproofing_material": WaterproofingMaterial,
    "access_conditions": AccessCondition,
    "urgency_level": UrgencyLevel,
}

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class ValidationResult:
    """Result of project intake validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    parsed: Optional[ProjectConfig] = None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_project_config(data: Dict[str, Any]) -> ValidationResult:
    """Validate a raw project form.

    Args:
        data: Raw dictionary from the intake form

    Returns:
        ValidationResult with is_valid, errors, and the parsed ProjectConfig
    """
    if not isinstance(data, dict):
        return ValidationResult(is_valid=False, errors=["project must be an object"])

    errors = []

    for name in REQUIRED_FIELDS:
        if _is_blank(data.get(name)):
            errors.append(f"{name} is required")

    for name, enum_cls in ENUM_FIELDS.items():
        value = data.get(name)
        if _is_blank(value):
            continue
        allowed = [member.value for member in enum_cls]
        label = value.value if isinstance(value, Enum) else str(value).strip()
        if label not in allowed:
            errors.append(f"{name} must be one of: {', '.join(allowed)}")

    if not _is_blank(data.get("labor_rate")):
        rate = parse_float(data.get("labor_rate"))
        if rate is None or rate <= 0:
            errors.append("labor_rate must be a positive number")

    email = data.get("client_email")
    if not _is_blank(email) and not EMAIL_PATTERN.match(str(email).strip()):
        errors.append("client_email is not a valid email address")

    if errors:
        logger.warning("project_validation_failed", errors=errors)
        return ValidationResult(is_valid=False, errors=errors)

    return ValidationResult(is_valid=True, parsed=ProjectConfig.from_mapping(data))
