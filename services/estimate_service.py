"""Estimate workflow.

Composes the analysis provider, the pricing engine and the estimate store:
analyze a project, save the result as a draft, then let the user edit
materials, manual entries and status while the stored totals stay
consistent.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.errors import ValidationError, ErrorCode, NotFoundError
from models.analysis import AnalysisResult, MaterialLine
from models.estimate import (
    EstimateBreakdown,
    EstimateDocument,
    EstimateStats,
    EstimateStatus,
    ManualEntry,
)
from models.project import ProjectConfig
from services import pricing_engine
from services.analysis_service import AnalysisProvider
from services.firestore_service import FirestoreService
from utils.coercion import parse_float

logger = structlog.get_logger(__name__)

DEFAULT_STATS_LIMIT = 10
SEARCH_FIELDS = ("project_type", "building_type", "waterproofing_material")
PENDING_STATUSES = {EstimateStatus.PENDING_REVIEW.value, EstimateStatus.SENT.value}


def _files_dict(uploaded_files: Any) -> Dict[str, Any]:
    if uploaded_files is None:
        return {"blueprint": None, "photos": []}
    if hasattr(uploaded_files, "to_dict"):
        return uploaded_files.to_dict()
    return {
        "blueprint": uploaded_files.get("blueprint"),
        "photos": list(uploaded_files.get("photos") or []),
    }


def matches_search(record: Mapping[str, Any], search: Optional[str]) -> bool:
    """Case-insensitive substring match over type, building and material."""
    term = (search or "").strip().lower()
    if not term:
        return True
    return any(term in str(record.get(name) or "").lower() for name in SEARCH_FIELDS)


def compute_stats(records: Iterable[Mapping[str, Any]]) -> EstimateStats:
    """Dashboard counters for a list of estimate records."""
    stats = EstimateStats()
    for record in records:
        stats.total_estimates += 1
        stats.total_value += parse_float(record.get("total_estimate")) or 0.0
        status = record.get("status")
        if status in PENDING_STATUSES:
            stats.pending_estimates += 1
        elif status == EstimateStatus.APPROVED.value:
            stats.approved_estimates += 1
    return stats


class EstimateService:
    """Estimate workflow service.

    Args:
        store: Estimate store (FirestoreService).
        analysis_provider: AnalysisProvider, mock or model-backed.
    """

    def __init__(
        self,
        store: FirestoreService,
        analysis_provider: Optional[AnalysisProvider] = None
    ):
        self.store = store
        self.analysis_provider = analysis_provider or AnalysisProvider()

    async def analyze_project(
        self,
        project: Any,
        uploaded_files: Any = None
    ) -> Tuple[AnalysisResult, EstimateBreakdown]:
        """Run the analysis provider, then price the result."""
        project = ProjectConfig.from_mapping(project)
        files = _files_dict(uploaded_files)

        analysis = await self.analysis_provider.analyze(project, files)
        breakdown = pricing_engine.compute_estimate(project, analysis)

        logger.info(
            "project_analyzed",
            project_type=project.project_type,
            is_mock=analysis.is_mock,
            total_estimate=round(breakdown.total_estimate, 2)
        )
        return analysis, breakdown

    def build_record(
        self,
        user_id: str,
        project: Any,
        uploaded_files: Any,
        analysis: Any,
        breakdown: Any,
        manual_entries: Iterable[Any] = (),
        notes: Optional[str] = None,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Merge every part of an estimate into one flat draft record."""
        project = ProjectConfig.from_mapping(project)
        analysis = AnalysisResult.from_raw(analysis)
        if not breakdown:
            breakdown = pricing_engine.compute_estimate(project, analysis)
        elif not isinstance(breakdown, EstimateBreakdown):
            try:
                breakdown = EstimateBreakdown.model_validate(breakdown)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid cost breakdown",
                    field="breakdown",
                    details={"errors": [err["msg"] for err in e.errors()]}
                )
        # total_estimate is always re-derived from the cost buckets.
        breakdown = breakdown.with_overrides(**(overrides or {}))

        entries = [ManualEntry.from_raw(entry) for entry in manual_entries or ()]
        ai_subtotal = pricing_engine.resolve_ai_subtotal(analysis, breakdown)
        totals = pricing_engine.compute_totals(entries, analysis.materials, ai_subtotal)

        record = {
            **project.to_record(),
            **_files_dict(uploaded_files),
            **breakdown.to_record(),
            "ai_analysis": analysis.to_record(),
            "materials": analysis.materials,
            "manual_entries": entries,
            "materials_subtotal": totals.materials_subtotal,
            "manual_entries_subtotal": totals.manual_entries_subtotal,
            "grand_total": totals.grand_total,
            "user_id": user_id,
            "status": EstimateStatus.DRAFT,
        }
        if notes is not None:
            record["notes"] = notes

        return EstimateDocument(**record).to_firestore_dict()

    async def save_estimate(
        self,
        user_id: str,
        project: Any,
        uploaded_files: Any,
        analysis: Any,
        breakdown: Any,
        manual_entries: Iterable[Any] = (),
        notes: Optional[str] = None,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Persist a new draft estimate and return it with its id."""
        record = self.build_record(
            user_id, project, uploaded_files, analysis, breakdown,
            manual_entries=manual_entries, notes=notes, overrides=overrides
        )
        saved = await self.store.create_estimate(user_id, record)
        logger.info(
            "estimate_saved",
            estimate_id=saved["id"],
            grand_total=round(record["grand_total"], 2)
        )
        return saved

    async def get_estimate(self, estimate_id: str, user_id: str) -> Dict[str, Any]:
        """Fetch an owned estimate.

        Raises:
            NotFoundError: If the estimate does not exist.
        """
        estimate = await self.store.get_estimate(estimate_id, user_id)
        if estimate is None:
            raise NotFoundError(estimate_id)
        return estimate

    @staticmethod
    def _ai_subtotal(estimate: Mapping[str, Any]) -> float:
        return pricing_engine.resolve_ai_subtotal(estimate.get("ai_analysis"), estimate)

    async def update_materials(
        self,
        estimate_id: str,
        user_id: str,
        materials: Iterable[Any]
    ) -> Dict[str, Any]:
        """Replace the material lines and re-derive the totals."""
        estimate = await self.get_estimate(estimate_id, user_id)
        lines = [pricing_engine.reprice_material(item) for item in materials or ()]
        return await self._save_materials(estimate, lines, user_id)

    async def update_material_line(
        self,
        estimate_id: str,
        user_id: str,
        index: int,
        quantity: Any = None,
        unit_price: Any = None
    ) -> Dict[str, Any]:
        """Reprice a single material line and re-derive the totals.

        Raises:
            ValidationError: If ``index`` does not name an existing line.
        """
        estimate = await self.get_estimate(estimate_id, user_id)
        lines = [MaterialLine.from_raw(item) for item in estimate.get("materials") or []]
        if not 0 <= index < len(lines):
            raise ValidationError(
                f"Material line {index} does not exist",
                field="index",
                details={"index": index, "count": len(lines)},
                code=ErrorCode.INVALID_FIELD
            )

        lines[index] = pricing_engine.reprice_material(lines[index], quantity, unit_price)
        return await self._save_materials(estimate, lines, user_id)

    async def _save_materials(
        self,
        estimate: Dict[str, Any],
        lines: List[MaterialLine],
        user_id: str
    ) -> Dict[str, Any]:
        totals = pricing_engine.compute_totals(
            estimate.get("manual_entries"), lines, self._ai_subtotal(estimate)
        )
        updates = {
            "materials": [line.model_dump() for line in lines],
            "materials_subtotal": totals.materials_subtotal,
            "grand_total": totals.grand_total,
        }
        return await self.store.update_estimate(estimate["id"], updates, user_id)

    async def update_manual_entries(
        self,
        estimate_id: str,
        user_id: str,
        entries: Iterable[Any]
    ) -> Dict[str, Any]:
        """Replace the manual entries and re-derive the totals."""
        estimate = await self.get_estimate(estimate_id, user_id)
        parsed = [ManualEntry.from_raw(entry) for entry in entries or ()]
        totals = pricing_engine.compute_totals(
            parsed, estimate.get("materials"), self._ai_subtotal(estimate)
        )
        updates = {
            "manual_entries": [entry.model_dump() for entry in parsed],
            "manual_entries_subtotal": totals.manual_entries_subtotal,
            "grand_total": totals.grand_total,
        }
        return await self.store.update_estimate(estimate_id, updates, user_id)

    async def update_status(
        self,
        estimate_id: str,
        user_id: str,
        status: Any
    ) -> Dict[str, Any]:
        """Move an estimate to another lifecycle status.

        Raises:
            ValidationError: If ``status`` is not an EstimateStatus value.
        """
        try:
            status = EstimateStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid status: {status}",
                field="status",
                details={"allowed": [s.value for s in EstimateStatus]},
                code=ErrorCode.INVALID_FIELD
            )

        updated = await self.store.update_estimate(
            estimate_id, {"status": status.value}, user_id
        )
        logger.info("estimate_status_changed", estimate_id=estimate_id, status=status.value)
        return updated

    async def list_estimates(
        self,
        user_id: str,
        search: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """The user's estimates, newest first, optionally filtered."""
        records = await self.store.list_estimates(user_id, limit=limit)
        return [record for record in records if matches_search(record, search)]

    async def dashboard_stats(
        self,
        user_id: str,
        limit: int = DEFAULT_STATS_LIMIT
    ) -> EstimateStats:
        """Counters over the user's most recent estimates."""
        records = await self.store.list_estimates(user_id, limit=limit)
        return compute_stats(records)

    async def delete_estimate(self, estimate_id: str, user_id: str) -> None:
        await self.store.delete_estimate(estimate_id, user_id)
