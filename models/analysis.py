"""AI analysis models.

The AI Analysis Provider (or its mock) produces an AnalysisResult. Model
output is loosely typed, so ``AnalysisResult.from_raw`` normalizes any
JSON-shaped mapping into a complete result and never raises.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from utils.coercion import number_or, parse_float

DEFAULT_AREA_SQFT = 1000.0
DEFAULT_COMPLEXITY = 5.0
MIN_COMPLEXITY = 1.0
MAX_COMPLEXITY = 10.0
BASE_HOURS_PER_SQFT = 0.05

# Line totals within a cent of unit_price x quantity are left alone.
PRICE_TOLERANCE = 0.01


def _positive_or(value: Any, default: float) -> float:
    parsed = parse_float(value)
    if parsed is None or parsed <= 0:
        return default
    return parsed


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


class MaterialLine(BaseModel):
    """A priced material line from the analysis (or edited by the user)."""

    name: str = "Unknown Material"
    quantity: float = 1.0
    unit: str = "units"
    unit_price: float = 0.0
    total_price: float = 0.0

    @classmethod
    def from_raw(cls, data: Any) -> "MaterialLine":
        """Normalize one material entry.

        Missing or non-numeric quantity becomes 1 (an explicit 0 is kept) and
        missing prices 0. A missing unit price is derived from
        total_price / quantity; total_price is reconciled to unit_price x
        quantity when it is absent or inconsistent.
        """
        if isinstance(data, MaterialLine):
            return data
        data = data if isinstance(data, Mapping) else {}

        quantity = parse_float(data.get("quantity"))
        if quantity is None:
            quantity = 1.0
        unit_price = parse_float(data.get("unit_price")) or 0.0
        total_price = parse_float(data.get("total_price")) or 0.0

        if not unit_price and total_price and quantity:
            unit_price = total_price / quantity

        if unit_price:
            expected = unit_price * quantity
            if abs(total_price - expected) > PRICE_TOLERANCE:
                total_price = expected

        name = str(data.get("name") or "").strip() or "Unknown Material"
        unit = str(data.get("unit") or "").strip() or "units"

        return cls(
            name=name,
            quantity=quantity,
            unit=unit,
            unit_price=unit_price,
            total_price=total_price,
        )


class AnalysisResult(BaseModel):
    """Structured project analysis used as pricing input."""

    estimated_area: float = Field(default=DEFAULT_AREA_SQFT, description="Waterproofing area, sq ft")
    complexity_score: float = Field(
        default=DEFAULT_COMPLEXITY,
        ge=MIN_COMPLEXITY,
        le=MAX_COMPLEXITY,
        description="Complexity on a 1-10 scale",
    )
    labor_hours: float = Field(
        default=DEFAULT_AREA_SQFT * BASE_HOURS_PER_SQFT,
        description="Baseline labor hours before multipliers",
    )

    special_considerations: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    equipment_needed: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    materials: List[MaterialLine] = Field(default_factory=list)
    ai_analysis_subtotal: Optional[float] = Field(
        default=None,
        description="Provider-computed labor/equipment/overhead cost, if any",
    )
    is_mock: bool = Field(default=False, description="True when synthesized without a model")

    @classmethod
    def from_raw(cls, data: Any, is_mock: bool = False) -> "AnalysisResult":
        """Normalize a raw provider payload into an AnalysisResult."""
        if isinstance(data, AnalysisResult):
            return data
        data = data if isinstance(data, Mapping) else {}

        area = _positive_or(data.get("estimated_area"), 0.0) or _positive_or(
            data.get("area_sq_ft"), DEFAULT_AREA_SQFT
        )
        complexity = number_or(data.get("complexity_score"), DEFAULT_COMPLEXITY)
        complexity = min(max(complexity, MIN_COMPLEXITY), MAX_COMPLEXITY)
        hours = _positive_or(data.get("labor_hours"), area * BASE_HOURS_PER_SQFT)

        raw_materials = data.get("materials")
        if not isinstance(raw_materials, (list, tuple)):
            raw_materials = []

        subtotal = parse_float(data.get("ai_analysis_subtotal"))

        return cls(
            estimated_area=area,
            complexity_score=complexity,
            labor_hours=hours,
            special_considerations=_string_list(data.get("special_considerations")),
            challenges=_string_list(data.get("challenges")),
            equipment_needed=_string_list(data.get("equipment_needed")),
            recommendations=_string_list(data.get("recommendations")),
            materials=[MaterialLine.from_raw(item) for item in raw_materials],
            ai_analysis_subtotal=subtotal if subtotal else None,
            is_mock=bool(data.get("is_mock", is_mock)),
        )

    def to_record(self) -> Dict[str, Any]:
        """Dict form stored under ``ai_analysis`` on the estimate document."""
        return self.model_dump()
