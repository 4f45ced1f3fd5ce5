"""Project intake models.

Pydantic models for the project attributes a user submits before analysis.
"""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.coercion import non_negative


class ProjectType(str, Enum):
    """Kind of waterproofing job."""

    FLAT_ROOF = "flat_roof"
    FOUNDATION_WALL = "foundation_wall"
    PARKING_DECK = "parking_deck"
    ELEVATOR_PIT = "elevator_pit"
    BELOW_GRADE = "below_grade"
    PLAZA_DECK = "plaza_deck"
    TUNNEL = "tunnel"
    RETAINING_WALL = "retaining_wall"


class WaterproofingMaterial(str, Enum):
    """Waterproofing system to be installed."""

    LIQUID_MEMBRANE = "liquid_membrane"
    HOT_APPLIED_RUBBERIZED_ASPHALT = "hot_applied_rubberized_asphalt"
    SHEET_MEMBRANE = "sheet_membrane"
    BENTONITE = "bentonite"
    CRYSTALLINE = "crystalline"
    EPOXY_INJECTION = "epoxy_injection"
    POLYURETHANE = "polyurethane"
    MODIFIED_BITUMEN = "modified_bitumen"


class AccessCondition(str, Enum):
    """How hard the work area is to reach."""

    EASY = "easy"
    RESTRICTED = "restricted"
    REQUIRES_LIFT_SCAFFOLDING = "requires_lift_scaffolding"
    CONFINED_SPACE = "confined_space"
    HIGH_ELEVATION = "high_elevation"


class UrgencyLevel(str, Enum):
    """Schedule pressure for the job."""

    STANDARD = "standard"
    RUSH = "rush"
    EMERGENCY = "emergency"


def _label(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if value is None:
        return ""
    return str(value).strip()


class ProjectConfig(BaseModel):
    """Project attributes collected at intake.

    Enum-like attributes are kept as plain labels so that pricing can fall
    back to default rates for values it does not recognise. Intake
    validation (validators.project_validator) is where unknown labels are
    rejected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    project_type: str = Field(default="", description="ProjectType label")
    building_type: str = Field(default="", description="Building label such as office or hospital (informational)")
    waterproofing_material: str = Field(default="", description="WaterproofingMaterial label")
    access_conditions: str = Field(default="", description="AccessCondition label")
    urgency_level: str = Field(default="", description="UrgencyLevel label")
    labor_rate: float = Field(default=0.0, ge=0, description="Labor rate, currency per hour")

    project_name: str = ""
    client_name: str = ""
    client_email: Optional[str] = None
    zip_code: str = ""
    notes: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ProjectConfig":
        """Build a ProjectConfig from raw request data without raising."""
        if isinstance(data, ProjectConfig):
            return data
        data = data if isinstance(data, Mapping) else {}

        email = data.get("client_email")
        return cls(
            project_type=_label(data.get("project_type")),
            building_type=_label(data.get("building_type")),
            waterproofing_material=_label(data.get("waterproofing_material")),
            access_conditions=_label(data.get("access_conditions")),
            urgency_level=_label(data.get("urgency_level")),
            labor_rate=non_negative(data.get("labor_rate")),
            project_name=_label(data.get("project_name")),
            client_name=_label(data.get("client_name")),
            client_email=_label(email) or None,
            zip_code=_label(data.get("zip_code")),
            notes=_label(data.get("notes")),
        )

    def to_record(self) -> dict:
        """Fields as stored on the estimate document."""
        return self.model_dump(exclude_none=True)
