"""Cloud Function entry points for the waterproofing estimator.

Provides HTTP endpoints for:
- Uploading blueprints and site photos
- Analyzing and pricing a project
- Saving, listing, editing and deleting estimates
- Dashboard statistics
- The waterproofing expert chat
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional
from datetime import datetime, date

import structlog
from firebase_functions import https_fn, options
from firebase_admin import initialize_app, auth

from config.settings import get_settings
from config.errors import EstimatorError, ErrorCode, ValidationError, AuthorizationError
from config.logging_config import configure_logging
from models.analysis import AnalysisResult
from services import pricing_engine
from services.analysis_service import AnalysisProvider
from services.chat_service import ExpertChatService, EXAMPLE_QUESTIONS, GREETING
from services.estimate_service import EstimateService
from services.firestore_service import FirestoreService
from services.llm_service import LLMService
from services.storage_service import StorageService, UploadFile
from validators.project_validator import validate_project_config

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

logger = structlog.get_logger()

ENDPOINT_CONFIG = {
    "timeout_sec": 60,
    "memory": options.MemoryOption.MB_512,
    "region": "us-central1"
}

ANALYSIS_ENDPOINT_CONFIG = {
    "timeout_sec": 300,
    "memory": options.MemoryOption.GB_1,
    "region": "us-central1"
}

# ============================================================================
# Composition
# ============================================================================


def build_estimate_service() -> EstimateService:
    """Wire the estimate workflow from settings."""
    llm = LLMService.from_settings(settings)
    provider = AnalysisProvider(llm_service=llm, max_tokens=settings.analysis_max_tokens)
    return EstimateService(store=FirestoreService(), analysis_provider=provider)


def build_chat_service() -> ExpertChatService:
    llm = LLMService.from_settings(settings, model=settings.chat_model)
    return ExpertChatService(llm_service=llm, max_tokens=settings.chat_max_tokens)


def build_storage_service() -> StorageService:
    return StorageService(
        bucket_name=settings.storage_bucket,
        max_upload_bytes=settings.max_upload_bytes
    )


# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Any) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Raises:
        ValidationError: If JSON is invalid.
    """
    try:
        data = req.get_json(force=True) or {}
    except Exception as e:
        raise ValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )
    if not isinstance(data, dict):
        raise ValidationError(message="Request body must be a JSON object")
    return data


def get_user_id(req: https_fn.Request, data: Optional[Dict[str, Any]] = None) -> str:
    """Resolve the caller's user ID.

    Verifies the ``Authorization: Bearer <Firebase ID token>`` header. In
    emulator mode a ``userId`` field in the body is accepted instead.

    Raises:
        AuthorizationError: If no valid identity is present.
    """
    header = req.headers.get("Authorization") or ""
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        try:
            return auth.verify_id_token(token)["uid"]
        except Exception as e:
            logger.warning("id_token_rejected", error=str(e))
            raise AuthorizationError(
                "Invalid or expired ID token",
                code=ErrorCode.UNAUTHENTICATED
            )

    if settings.is_emulator_mode and data and data.get("userId"):
        return data["userId"]

    raise AuthorizationError(
        "Missing Authorization header",
        code=ErrorCode.UNAUTHENTICATED
    )


def require_field(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if value is None or value == "":
        raise ValidationError(
            message=f"Missing {name} in request",
            field=name,
            code=ErrorCode.MISSING_FIELD
        )
    return value


def require_int(value: Any, name: str, minimum: int = 0) -> int:
    """Reject anything but an integer of at least ``minimum``."""
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ValidationError(
            message=f"{name} must be an integer of at least {minimum}",
            field=name,
            code=ErrorCode.INVALID_FIELD
        )
    return value


def parse_project(data: Dict[str, Any]):
    """Validate the ``project`` object of a request body."""
    validation = validate_project_config(require_field(data, "project"))
    if not validation.is_valid:
        raise ValidationError(
            message="Invalid project",
            field="project",
            details={"errors": validation.errors}
        )
    return validation.parsed


def status_for_error(error: EstimatorError) -> int:
    """HTTP status code for a structured error."""
    if isinstance(error, ValidationError):
        return 400
    if error.code == ErrorCode.UNAUTHENTICATED:
        return 401
    if error.code == ErrorCode.NOT_AUTHORIZED:
        return 403
    if error.code == ErrorCode.ESTIMATE_NOT_FOUND:
        return 404
    return 500


def _handle_request(
    req: https_fn.Request,
    name: str,
    handler: Callable[[Dict[str, Any]], Awaitable[Any]],
    parse_json: bool = True
) -> https_fn.Response:
    """Run an async handler and wrap the outcome in the response envelope."""
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req) if parse_json else {}
        result = asyncio.run(handler(data))
        return _json_response(success_response(result))

    except EstimatorError as e:
        status = status_for_error(e)
        if status >= 500:
            logger.error(f"{name}_error", error=e.message, code=e.code)
        return _json_response(
            error_response(e.code, e.message, e.details),
            status=status
        )
    except Exception as e:
        logger.exception(f"{name}_exception", error=str(e))
        return _json_response(
            error_response(
                ErrorCode.INTERNAL_ERROR,
                "An unexpected error occurred"
            ),
            status=500
        )


# ============================================================================
# File Ingestion
# ============================================================================


def _upload_from_storage(file_storage) -> UploadFile:
    return UploadFile(
        filename=file_storage.filename or "upload",
        data=file_storage.read(),
        content_type=file_storage.mimetype or None
    )


@https_fn.on_request(**ENDPOINT_CONFIG)
def upload_project_files(req: https_fn.Request) -> https_fn.Response:
    """Upload a blueprint and optional site photos.

    Multipart form fields: ``blueprint`` (one file), ``photos`` (any number).

    Response:
    {
        "success": true,
        "data": {"blueprint": "https://...", "photos": ["https://..."]}
    }
    """
    async def _process(_data):
        get_user_id(req, dict(req.form))
        blueprint = req.files.get("blueprint")
        photos = req.files.getlist("photos")
        uploaded = build_storage_service().upload_project_files(
            _upload_from_storage(blueprint) if blueprint else None,
            [_upload_from_storage(photo) for photo in photos]
        )
        return uploaded.to_dict()

    return _handle_request(req, "upload_project_files", _process, parse_json=False)


# ============================================================================
# Analysis and Pricing
# ============================================================================


@https_fn.on_request(**ANALYSIS_ENDPOINT_CONFIG)
def analyze_project(req: https_fn.Request) -> https_fn.Response:
    """Analyze a project and price it.

    Request body:
    {
        "project": {...},
        "uploadedFiles": {"blueprint": "https://...", "photos": [...]}
    }

    Response data: ``analysis``, ``breakdown`` and ``totals``.
    """
    async def _process(data):
        get_user_id(req, data)
        project = parse_project(data)
        service = build_estimate_service()
        analysis, breakdown = await service.analyze_project(project, data.get("uploadedFiles"))
        totals = pricing_engine.compute_totals(
            (), analysis.materials, pricing_engine.resolve_ai_subtotal(analysis, breakdown)
        )
        return {
            "analysis": analysis.to_record(),
            "breakdown": breakdown.to_record(),
            "totals": totals.model_dump(),
        }

    return _handle_request(req, "analyze_project", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def compute_totals(req: https_fn.Request) -> https_fn.Response:
    """Sum the AI, materials and manual-entry buckets.

    Request body:
    {
        "manualEntries": [{"description": "...", "qty": 2, "unit": "ea", "cost": 50}],
        "materials": [{"name": "...", "total_price": 120}],
        "aiSubtotal": 12000
    }
    """
    async def _process(data):
        totals = pricing_engine.compute_totals(
            data.get("manualEntries"),
            data.get("materials"),
            data.get("aiSubtotal")
        )
        return totals.model_dump()

    return _handle_request(req, "compute_totals", _process)


# ============================================================================
# Estimates
# ============================================================================


@https_fn.on_request(**ENDPOINT_CONFIG)
def save_estimate(req: https_fn.Request) -> https_fn.Response:
    """Save an analyzed project as a draft estimate.

    Request body:
    {
        "project": {...},
        "uploadedFiles": {...},
        "analysis": {...},
        "breakdown": {...},          // Optional: recomputed when absent
        "overrides": {"labor_cost": 5000},
        "manualEntries": [...],
        "notes": "..."
    }
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        project = parse_project(data)
        analysis = AnalysisResult.from_raw(require_field(data, "analysis"))
        return await build_estimate_service().save_estimate(
            user_id,
            project,
            data.get("uploadedFiles"),
            analysis,
            data.get("breakdown"),
            manual_entries=data.get("manualEntries") or (),
            notes=data.get("notes"),
            overrides=data.get("overrides")
        )

    return _handle_request(req, "save_estimate", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def get_estimate(req: https_fn.Request) -> https_fn.Response:
    """Fetch one estimate owned by the caller.

    Request body: {"estimateId": "..."}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        estimate_id = require_field(data, "estimateId")
        return await build_estimate_service().get_estimate(estimate_id, user_id)

    return _handle_request(req, "get_estimate", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def list_estimates(req: https_fn.Request) -> https_fn.Response:
    """List the caller's estimates, newest first.

    Request body: {"search": "roof", "limit": 50}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        limit = data.get("limit")
        if limit is not None:
            limit = require_int(limit, "limit", minimum=1)
        return await build_estimate_service().list_estimates(
            user_id,
            search=data.get("search"),
            limit=limit
        )

    return _handle_request(req, "list_estimates", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def update_estimate_materials(req: https_fn.Request) -> https_fn.Response:
    """Edit material lines and re-derive the totals.

    Request body, either the full list:
    {"estimateId": "...", "materials": [...]}
    or a single line:
    {"estimateId": "...", "index": 0, "quantity": 10, "unitPrice": 4.5}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        estimate_id = require_field(data, "estimateId")
        service = build_estimate_service()

        if "materials" in data:
            return await service.update_materials(estimate_id, user_id, data["materials"])

        index = require_int(require_field(data, "index"), "index")
        return await service.update_material_line(
            estimate_id,
            user_id,
            index,
            quantity=data.get("quantity"),
            unit_price=data.get("unitPrice")
        )

    return _handle_request(req, "update_estimate_materials", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def update_manual_entries(req: https_fn.Request) -> https_fn.Response:
    """Replace manual entries and re-derive the totals.

    Request body: {"estimateId": "...", "manualEntries": [...]}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        estimate_id = require_field(data, "estimateId")
        return await build_estimate_service().update_manual_entries(
            estimate_id, user_id, data.get("manualEntries") or []
        )

    return _handle_request(req, "update_manual_entries", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def update_estimate_status(req: https_fn.Request) -> https_fn.Response:
    """Move an estimate to another status.

    Request body: {"estimateId": "...", "status": "sent"}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        estimate_id = require_field(data, "estimateId")
        status = require_field(data, "status")
        return await build_estimate_service().update_status(estimate_id, user_id, status)

    return _handle_request(req, "update_estimate_status", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def get_dashboard_stats(req: https_fn.Request) -> https_fn.Response:
    """Counters over the caller's recent estimates."""
    async def _process(data):
        user_id = get_user_id(req, data)
        stats = await build_estimate_service().dashboard_stats(user_id)
        return stats.model_dump()

    return _handle_request(req, "get_dashboard_stats", _process)


@https_fn.on_request(**ENDPOINT_CONFIG)
def delete_estimate(req: https_fn.Request) -> https_fn.Response:
    """Delete an estimate.

    Request body: {"estimateId": "..."}
    """
    async def _process(data):
        user_id = get_user_id(req, data)
        estimate_id = require_field(data, "estimateId")
        await build_estimate_service().delete_estimate(estimate_id, user_id)
        logger.info("estimate_delete_requested", estimate_id=estimate_id, user_id=user_id)
        return {"estimateId": estimate_id, "deleted": True}

    return _handle_request(req, "delete_estimate", _process)


# ============================================================================
# Expert Chat
# ============================================================================


@https_fn.on_request(**ENDPOINT_CONFIG)
def ask_expert(req: https_fn.Request) -> https_fn.Response:
    """Ask the waterproofing expert a question.

    Request body: {"question": "..."}

    An empty body returns the greeting and example questions.
    """
    async def _process(data):
        get_user_id(req, data)
        if "question" not in data:
            return {"greeting": GREETING, "exampleQuestions": EXAMPLE_QUESTIONS}
        answer = await build_chat_service().ask(data.get("question"))
        return {"answer": answer}

    return _handle_request(req, "ask_expert", _process)


# ============================================================================
# CORS Helpers
# ============================================================================

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_default(o: Any):
    """JSON serializer for Firestore timestamps and other non-JSON values."""
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if hasattr(o, "model_dump"):
        return o.model_dump()
    return str(o)


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""
    return https_fn.Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
