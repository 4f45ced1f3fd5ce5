"""Estimate pricing engine.

Turns project intake plus an AI analysis into an itemized cost breakdown,
and sums the independent cost buckets of a saved estimate.

Everything here is pure: no I/O, no logging, no shared state. Malformed
inputs are coerced to documented defaults instead of raising, so a partial
analysis still prices to a complete, internally consistent breakdown.
"""

from typing import Any, Iterable, List, Mapping, Optional, Union

from models.analysis import AnalysisResult, MaterialLine
from models.estimate import EstimateBreakdown, EstimateTotals, ManualEntry
from models.project import ProjectConfig
from utils.coercion import parse_float

# =============================================================================
# Reference tables
# =============================================================================

# $ per square foot of installed material
MATERIAL_RATES = {
    "liquid_membrane": 3.50,
    "hot_applied_rubberized_asphalt": 4.25,
    "sheet_membrane": 5.00,
    "bentonite": 2.75,
    "crystalline": 6.50,
    "epoxy_injection": 8.00,
    "polyurethane": 7.25,
    "modified_bitumen": 4.50,
}
DEFAULT_MATERIAL_RATE = 4.00

ACCESS_MULTIPLIERS = {
    "easy": 1.0,
    "restricted": 1.3,
    "requires_lift_scaffolding": 1.6,
    "confined_space": 1.8,
    "high_elevation": 2.0,
}
DEFAULT_ACCESS_MULTIPLIER = 1.0

URGENCY_MULTIPLIERS = {
    "standard": 1.0,
    "rush": 1.4,
    "emergency": 1.8,
}
DEFAULT_URGENCY_MULTIPLIER = 1.0

# Formula coefficients
COMPLEXITY_PIVOT = 5
COMPLEXITY_STEP = 0.1           # +/-10% hours per point away from the pivot
EQUIPMENT_RATE_PER_SQFT = 0.5   # scaled by the access multiplier
EQUIPMENT_PER_COMPLEXITY = 200.0
MOBILIZATION_RATE = 0.10        # of labor + material
CONTINGENCY_BASE = 0.05
CONTINGENCY_PER_COMPLEXITY = 0.005
MARKUP_BASE = 0.15
MARKUP_URGENCY_FACTOR = 0.05

ProjectInput = Union[ProjectConfig, Mapping[str, Any], None]
AnalysisInput = Union[AnalysisResult, Mapping[str, Any], None]


def material_rate(material: Optional[str]) -> float:
    return MATERIAL_RATES.get(material or "", DEFAULT_MATERIAL_RATE)


def access_multiplier(access: Optional[str]) -> float:
    return ACCESS_MULTIPLIERS.get(access or "", DEFAULT_ACCESS_MULTIPLIER)


def urgency_multiplier(urgency: Optional[str]) -> float:
    return URGENCY_MULTIPLIERS.get(urgency or "", DEFAULT_URGENCY_MULTIPLIER)


def compute_estimate(project: ProjectInput, analysis: AnalysisInput) -> EstimateBreakdown:
    """Price a project from its intake attributes and AI analysis.

    The steps run in a fixed order, each feeding the next:

    1. area, complexity and base hours from the analysis
    2. complexity multiplier: 1 + (complexity - 5) * 0.1
    3. adjusted hours = base hours * access multiplier * complexity multiplier
       (urgency does not scale hours, only markup)
    4. labor = adjusted hours * labor rate
    5. material = area * material rate
    6. equipment = area * access multiplier * 0.5 + complexity * 200
    7. mobilization = 10% of labor + material
    8. subtotal of the four direct costs
    9. contingency = subtotal * (0.05 + complexity * 0.005)
    10. markup = (subtotal + contingency) * (0.15 + (urgency multiplier - 1) * 0.05)
    11. total = subtotal + contingency + markup

    Args:
        project: ProjectConfig or raw intake mapping.
        analysis: AnalysisResult or raw provider mapping (may be empty).

    Returns:
        EstimateBreakdown with every intermediate cost preserved.
    """
    project = ProjectConfig.from_mapping(project)
    analysis = AnalysisResult.from_raw(analysis)

    area = analysis.estimated_area
    complexity = analysis.complexity_score
    base_hours = analysis.labor_hours

    access = access_multiplier(project.access_conditions)
    urgency = urgency_multiplier(project.urgency_level)
    complexity_multiplier = 1 + (complexity - COMPLEXITY_PIVOT) * COMPLEXITY_STEP

    adjusted_hours = base_hours * access * complexity_multiplier

    labor_cost = adjusted_hours * project.labor_rate
    material_cost = area * material_rate(project.waterproofing_material)
    equipment_cost = area * (access * EQUIPMENT_RATE_PER_SQFT) + complexity * EQUIPMENT_PER_COMPLEXITY
    mobilization_cost = (labor_cost + material_cost) * MOBILIZATION_RATE

    subtotal = labor_cost + material_cost + equipment_cost + mobilization_cost

    contingency_rate = CONTINGENCY_BASE + complexity * CONTINGENCY_PER_COMPLEXITY
    contingency_amount = subtotal * contingency_rate

    markup_rate = MARKUP_BASE + (urgency - 1) * MARKUP_URGENCY_FACTOR
    markup_amount = (subtotal + contingency_amount) * markup_rate

    total_estimate = subtotal + contingency_amount + markup_amount

    return EstimateBreakdown(
        analyzed_area=area,
        complexity_score=complexity,
        labor_hours=adjusted_hours,
        labor_cost=labor_cost,
        material_cost=material_cost,
        equipment_cost=equipment_cost,
        mobilization_cost=mobilization_cost,
        contingency_amount=contingency_amount,
        markup_amount=markup_amount,
        total_estimate=total_estimate,
    )


# =============================================================================
# Bucket aggregation
# =============================================================================


def materials_subtotal(materials: Optional[Iterable[Any]]) -> float:
    """Sum of material line totals; missing totals count as 0."""
    total = 0.0
    for material in materials or ():
        if isinstance(material, MaterialLine):
            total += material.total_price
        elif isinstance(material, Mapping):
            total += parse_float(material.get("total_price")) or 0.0
    return total


def manual_entries_subtotal(entries: Optional[Iterable[Any]]) -> float:
    """Sum of qty * cost over manual entries; non-numeric values count as 0."""
    return sum(ManualEntry.from_raw(entry).line_total for entry in entries or ())


def compute_totals(
    manual_entries: Optional[Iterable[Any]],
    materials: Optional[Iterable[Any]],
    ai_subtotal: Any,
) -> EstimateTotals:
    """Sum the AI, materials and manual-entry buckets into the grand total.

    The buckets are independent, so a single edited row can be re-summed
    without touching the others.
    """
    ai = parse_float(ai_subtotal) or 0.0
    materials_total = materials_subtotal(materials)
    manual_total = manual_entries_subtotal(manual_entries)

    return EstimateTotals(
        ai_subtotal=ai,
        materials_subtotal=materials_total,
        manual_entries_subtotal=manual_total,
        grand_total=ai + materials_total + manual_total,
    )


def resolve_ai_subtotal(
    analysis: AnalysisInput,
    breakdown: Optional[Union[EstimateBreakdown, Mapping[str, Any]]] = None,
) -> float:
    """AI bucket: the provider's subtotal, else the engine's total estimate."""
    subtotal = AnalysisResult.from_raw(analysis).ai_analysis_subtotal
    if subtotal:
        return subtotal

    if isinstance(breakdown, EstimateBreakdown):
        return breakdown.total_estimate
    if isinstance(breakdown, Mapping):
        return parse_float(breakdown.get("total_estimate")) or 0.0
    return 0.0


# =============================================================================
# Line edits
# =============================================================================


def reprice_material(
    material: Any,
    quantity: Any = None,
    unit_price: Any = None,
) -> MaterialLine:
    """Return a copy of a material line with a new quantity and/or unit price.

    Edited values that are not numbers become 0. The line total is always
    re-derived as quantity * unit_price.
    """
    line = MaterialLine.from_raw(material)
    new_quantity = line.quantity if quantity is None else (parse_float(quantity) or 0.0)
    new_price = line.unit_price if unit_price is None else (parse_float(unit_price) or 0.0)

    return line.model_copy(update={
        "quantity": new_quantity,
        "unit_price": new_price,
        "total_price": new_quantity * new_price,
    })


def update_manual_entry(
    entries: Iterable[Any],
    index: int,
    **changes: Any,
) -> List[ManualEntry]:
    """Return a new entry list with one entry's fields replaced.

    Raises:
        IndexError: If ``index`` is outside the list.
    """
    updated = [ManualEntry.from_raw(entry) for entry in entries]
    if not 0 <= index < len(updated):
        raise IndexError(f"manual entry index out of range: {index}")

    merged = {**updated[index].model_dump(), **changes}
    updated[index] = ManualEntry.from_raw(merged)
    return updated
