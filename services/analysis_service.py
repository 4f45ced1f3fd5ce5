"""AI analysis provider.

Produces the AnalysisResult the pricing engine consumes. With an LLM
configured it sends the project description (and blueprint or photo) to a
vision model and normalizes the JSON reply. Without one it synthesizes a
deterministic mock analysis; when the model call fails it falls back to a
fixed conservative analysis so the user still gets an estimate.
"""

import math
from typing import Any, Mapping, Optional

import structlog

from config.errors import EstimatorError
from models.analysis import AnalysisResult
from models.project import ProjectConfig
from services.llm_service import LLMService

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS = 800

ANALYSIS_SYSTEM_PROMPT = """You are an expert waterproofing project estimator.
Your job is to analyze project details and uploaded images to estimate
square footage, labor hours, complexity, and special considerations.

Return your response as a JSON object with the following structure:
{
  "estimated_area": number (square feet),
  "complexity_score": number (1-10 scale),
  "labor_hours": number,
  "special_considerations": array of strings,
  "challenges": array of strings,
  "equipment_needed": array of strings,
  "recommendations": array of strings,
  "ai_analysis_subtotal": number (total cost for labor, equipment, overhead),
  "materials": array of objects with structure {
    "name": string (specific material name),
    "quantity": number (numeric quantity needed),
    "unit": string (unit of measurement like "square feet", "gallons", "rolls"),
    "unit_price": number (current market price per unit),
    "total_price": number (quantity * unit_price)
  }
}"""

ANALYSIS_INSTRUCTIONS = """Analyze the project details and any uploaded image/blueprint and return a JSON response
with the required fields for waterproofing estimation, including:

1. A detailed materials list with realistic quantities, units, and current market prices
2. Each material must include: name, quantity, unit, unit_price, and total_price
3. Use specific material names (e.g., "Modified Bitumen Membrane", "EPDM Primer")
4. Provide accurate unit prices based on current market rates for waterproofing materials
5. Calculate total_price = quantity * unit_price for each material
6. Include ai_analysis_subtotal covering labor, equipment, overhead (excluding materials)"""


def build_project_description(
    project: ProjectConfig,
    uploaded_files: Optional[Mapping[str, Any]] = None
) -> str:
    """Describe a project for the analysis prompt."""
    uploaded_files = uploaded_files or {}
    lines = [
        "Waterproofing project for commercial estimation:",
        f"- Project: {project.project_name or 'Unnamed project'}",
        f"- Type: {project.project_type}",
        f"- Building: {project.building_type}",
        f"- Material: {project.waterproofing_material}",
        f"- Access: {project.access_conditions}",
        f"- Urgency: {project.urgency_level}",
        f"- Location: {project.zip_code}",
    ]
    if project.notes:
        lines.append(f"- Notes: {project.notes}")

    if uploaded_files.get("blueprint"):
        lines.append("Blueprint has been uploaded for analysis.")
    photos = uploaded_files.get("photos") or []
    if photos:
        lines.append(f"{len(photos)} site photos have been uploaded.")

    return "\n".join(lines)


def select_image_url(uploaded_files: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Image sent to the model: the blueprint, else the first site photo."""
    if not uploaded_files:
        return None
    if uploaded_files.get("blueprint"):
        return uploaded_files["blueprint"]
    photos = uploaded_files.get("photos") or []
    return photos[0] if photos else None


def get_mock_analysis(project_description: Optional[str]) -> AnalysisResult:
    """Deterministic stand-in analysis used when no LLM is configured."""
    text = project_description or ""

    if "roof" in text:
        area = 2500
    elif "foundation" in text:
        area = 800
    elif "deck" in text:
        area = 1200
    else:
        area = 1000

    if "high_elevation" in text:
        complexity = 8
    elif "confined_space" in text:
        complexity = 7
    elif "restricted" in text:
        complexity = 6
    else:
        complexity = 5

    primer_gallons = math.ceil(area / 200)
    sealant_tubes = math.ceil(area / 100)

    return AnalysisResult.from_raw({
        "estimated_area": area,
        "complexity_score": complexity,
        "labor_hours": round(area * 0.04 + complexity * 5),
        "special_considerations": [
            "Mock analysis - configure an OpenAI API key for AI-powered estimates",
            "Standard surface preparation required",
            "Weather conditions may affect timeline",
        ],
        "challenges": [
            "Demo mode - real AI analysis available with API key",
            "Access coordination with other trades",
        ],
        "equipment_needed": [
            "Standard waterproofing tools",
            "Safety equipment",
            "Surface preparation equipment",
        ],
        "recommendations": [
            "Add an OpenAI API key for intelligent analysis",
            "Upload clear blueprints for accurate estimates",
            "Consider weather protection during application",
        ],
        "ai_analysis_subtotal": area * 8.5 + complexity * 500,
        "materials": [
            {
                "name": "Modified Bitumen Membrane",
                "quantity": area,
                "unit": "square feet",
                "unit_price": 1.5,
                "total_price": area * 1.5,
            },
            {
                "name": "Primer",
                "quantity": primer_gallons,
                "unit": "gallons",
                "unit_price": 45,
                "total_price": primer_gallons * 45,
            },
            {
                "name": "Polyurethane Sealant",
                "quantity": sealant_tubes,
                "unit": "tubes",
                "unit_price": 15,
                "total_price": sealant_tubes * 15,
            },
        ],
    }, is_mock=True)


def get_error_fallback_analysis() -> AnalysisResult:
    """Conservative analysis used when the model call fails."""
    return AnalysisResult.from_raw({
        "estimated_area": 1000,
        "complexity_score": 5,
        "labor_hours": 50,
        "special_considerations": ["Standard waterproofing job - AI analysis unavailable"],
        "challenges": ["Unable to perform detailed analysis"],
        "equipment_needed": ["Basic waterproofing equipment"],
        "recommendations": ["Manual review recommended due to AI analysis failure"],
        "ai_analysis_subtotal": 12000,
        "materials": [
            {
                "name": "Basic Waterproof Membrane",
                "quantity": 1000,
                "unit": "square feet",
                "unit_price": 1.2,
                "total_price": 1200,
            }
        ],
    }, is_mock=True)


class AnalysisProvider:
    """AI Analysis Provider.

    Args:
        llm_service: Configured LLMService, or None to run in mock mode.
        max_tokens: Response token budget for the analysis call.
    """

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS
    ):
        self.llm_service = llm_service
        self.max_tokens = max_tokens

    @property
    def is_mock(self) -> bool:
        return self.llm_service is None

    async def analyze(
        self,
        project: ProjectConfig,
        uploaded_files: Optional[Mapping[str, Any]] = None,
        image_url: Optional[str] = None
    ) -> AnalysisResult:
        """Analyze a project and return a normalized AnalysisResult.

        Args:
            project: Submitted project attributes.
            uploaded_files: ``{"blueprint": url, "photos": [urls]}`` from file ingestion.
            image_url: Explicit image to analyze (defaults to blueprint, then first photo).
        """
        description = build_project_description(project, uploaded_files)
        image_url = image_url or select_image_url(uploaded_files)

        if self.llm_service is None:
            logger.warning("analysis_mock_mode", project_type=project.project_type)
            return get_mock_analysis(description)

        user_message = f"Project Description:\n{description}\n\n{ANALYSIS_INSTRUCTIONS}"

        try:
            result = await self.llm_service.generate_json(
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
                user_message=user_message,
                max_tokens=self.max_tokens,
                image_url=image_url
            )
        except EstimatorError as e:
            logger.error(
                "analysis_failed_using_fallback",
                code=e.code,
                error=e.message,
                has_image=bool(image_url)
            )
            return get_error_fallback_analysis()

        analysis = AnalysisResult.from_raw(result["content"])
        logger.info(
            "analysis_completed",
            estimated_area=analysis.estimated_area,
            complexity_score=analysis.complexity_score,
            materials=len(analysis.materials),
            has_image=bool(image_url),
            tokens_used=result["tokens_used"]
        )
        return analysis
