"""Estimate document models.

Pydantic models for the pricing output and the estimate document stored in
Firestore under /estimates/{id}.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime

from pydantic import BaseModel, Field

from models.analysis import MaterialLine
from utils.coercion import parse_float


class EstimateStatus(str, Enum):
    """Lifecycle status of a saved estimate."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class ManualEntry(BaseModel):
    """Ad-hoc line item typed in by the user."""

    description: str = ""
    qty: float = 0.0
    unit: str = ""
    cost: float = 0.0

    @classmethod
    def from_raw(cls, data: Any) -> "ManualEntry":
        if isinstance(data, ManualEntry):
            return data
        data = data if isinstance(data, Mapping) else {}
        return cls(
            description=str(data.get("description") or ""),
            qty=parse_float(data.get("qty")) or 0.0,
            unit=str(data.get("unit") or ""),
            cost=parse_float(data.get("cost")) or 0.0,
        )

    @property
    def line_total(self) -> float:
        return self.qty * self.cost


# Cost buckets a user may edit on the breakdown before saving.
EDITABLE_COST_FIELDS = (
    "labor_cost",
    "material_cost",
    "equipment_cost",
    "mobilization_cost",
    "contingency_amount",
    "markup_amount",
)


class EstimateBreakdown(BaseModel):
    """Itemized output of the pricing engine.

    Every intermediate cost is kept, not just the total, because each one
    is displayed and can be edited on its own.
    """

    analyzed_area: float = Field(description="Area priced, sq ft")
    complexity_score: float = Field(description="Complexity used for pricing")
    labor_hours: float = Field(description="Hours after access and complexity adjustment")
    labor_cost: float
    material_cost: float
    equipment_cost: float
    mobilization_cost: float
    contingency_amount: float
    markup_amount: float
    total_estimate: float

    @property
    def subtotal(self) -> float:
        """Direct costs before contingency and markup."""
        return self.labor_cost + self.material_cost + self.equipment_cost + self.mobilization_cost

    def with_overrides(self, **overrides: Any) -> "EstimateBreakdown":
        """Apply user edits to cost buckets and re-derive the total.

        Unknown keys are ignored; non-numeric values become 0.
        """
        changes: Dict[str, float] = {}
        for name in EDITABLE_COST_FIELDS:
            if name in overrides:
                changes[name] = parse_float(overrides[name]) or 0.0

        updated = self.model_copy(update=changes)
        total = sum(getattr(updated, name) for name in EDITABLE_COST_FIELDS)
        return updated.model_copy(update={"total_estimate": total})

    def to_record(self) -> Dict[str, float]:
        return self.model_dump()


class EstimateTotals(BaseModel):
    """The three independent cost buckets and their sum."""

    ai_subtotal: float = 0.0
    materials_subtotal: float = 0.0
    manual_entries_subtotal: float = 0.0
    grand_total: float = 0.0


class EstimateDocument(BaseModel):
    """Flat estimate record persisted in /estimates/{id}."""

    id: Optional[str] = Field(default=None, description="Document ID")
    user_id: str = Field(description="Owner user ID")
    status: EstimateStatus = Field(default=EstimateStatus.DRAFT)

    # Project intake
    project_name: str = ""
    client_name: str = ""
    client_email: Optional[str] = None
    project_type: str = ""
    building_type: str = ""
    waterproofing_material: str = ""
    access_conditions: str = ""
    urgency_level: str = ""
    labor_rate: float = 0.0
    zip_code: str = ""
    notes: str = ""

    # Uploaded files
    blueprint: Optional[str] = None
    photos: List[str] = Field(default_factory=list)

    # Pricing engine output
    analyzed_area: float = 0.0
    complexity_score: float = 0.0
    labor_hours: float = 0.0
    labor_cost: float = 0.0
    material_cost: float = 0.0
    equipment_cost: float = 0.0
    mobilization_cost: float = 0.0
    contingency_amount: float = 0.0
    markup_amount: float = 0.0
    total_estimate: float = 0.0

    ai_analysis: Optional[Dict[str, Any]] = None
    materials: List[MaterialLine] = Field(default_factory=list)
    manual_entries: List[ManualEntry] = Field(default_factory=list)

    materials_subtotal: float = 0.0
    manual_entries_subtotal: float = 0.0
    grand_total: float = 0.0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
        extra = "ignore"

    def to_firestore_dict(self) -> Dict[str, Any]:
        """Convert to a Firestore-compatible dict (without the id)."""
        return self.model_dump(exclude={"id"}, exclude_none=True)


class EstimateSummary(BaseModel):
    """Summary view of an estimate for listings."""

    id: str
    project_name: str = ""
    client_name: str = ""
    project_type: str = ""
    building_type: str = ""
    waterproofing_material: str = ""
    status: str = EstimateStatus.DRAFT.value
    total_estimate: float = 0.0
    grand_total: float = 0.0
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EstimateSummary":
        return cls(
            id=record["id"],
            project_name=record.get("project_name") or "",
            client_name=record.get("client_name") or "",
            project_type=record.get("project_type") or "",
            building_type=record.get("building_type") or "",
            waterproofing_material=record.get("waterproofing_material") or "",
            status=record.get("status") or EstimateStatus.DRAFT.value,
            total_estimate=parse_float(record.get("total_estimate")) or 0.0,
            grand_total=parse_float(record.get("grand_total")) or 0.0,
            created_at=record.get("created_at"),
        )


class EstimateStats(BaseModel):
    """Dashboard counters over a user's recent estimates."""

    total_estimates: int = 0
    total_value: float = 0.0
    pending_estimates: int = 0
    approved_estimates: int = 0
