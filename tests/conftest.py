"""Pytest configuration and shared fixtures for estimator tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock
from typing import Dict, Any


# ============================================================================
# Ensure local imports work (models/, services/, config/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`,
# so the repository root must be on sys.path during collection.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock

    document_mock.id = "est-123"
    document_mock.get = AsyncMock(return_value=MagicMock(
        exists=True,
        id="est-123",
        to_dict=lambda: {"user_id": "user-1", "status": "draft"}
    ))
    document_mock.set = AsyncMock()
    document_mock.update = AsyncMock()
    document_mock.delete = AsyncMock()

    return client


@pytest.fixture
def mock_firestore_service(mock_firestore_client):
    """FirestoreService with mocked client."""
    from services.firestore_service import FirestoreService

    return FirestoreService(db=mock_firestore_client)


@pytest.fixture
def make_snapshot():
    """Factory for Firestore document snapshot mocks."""
    def _make(doc_id: str, data: Dict[str, Any], exists: bool = True) -> MagicMock:
        return MagicMock(exists=exists, id=doc_id, to_dict=lambda: dict(data))
    return _make


@pytest.fixture
def mock_bucket():
    """Mock Firebase Storage bucket returning predictable public URLs."""
    bucket = MagicMock()

    def _blob(path):
        blob = MagicMock()
        blob.public_url = f"https://storage.example.com/{path}"
        return blob

    bucket.blob.side_effect = _blob
    return bucket


# ============================================================================
# LLM Mocks
# ============================================================================

@pytest.fixture
def mock_chat_openai():
    """Mock LangChain ChatOpenAI."""
    mock = AsyncMock()
    mock.ainvoke = AsyncMock(return_value=MagicMock(
        content="Mock response",
        response_metadata={"token_usage": {"total_tokens": 100}}
    ))
    return mock


@pytest.fixture
def mock_llm_service():
    """Mock LLMService for provider and chat tests."""
    service = MagicMock()
    service.generate_json = AsyncMock()
    service.generate_with_system_prompt = AsyncMock(return_value={
        "content": "Mock expert answer",
        "tokens_used": 100
    })
    return service


# ============================================================================
# Sample Data
# ============================================================================

@pytest.fixture
def sample_project() -> Dict[str, Any]:
    """Valid intake form for a rushed flat roof job."""
    return {
        "project_name": "Harbor Office Roof",
        "client_name": "Acme Property Group",
        "client_email": "pm@acme.example",
        "project_type": "flat_roof",
        "building_type": "office",
        "waterproofing_material": "liquid_membrane",
        "access_conditions": "easy",
        "urgency_level": "standard",
        "labor_rate": 50,
        "zip_code": "02110",
        "notes": "Ponding near the north drains",
    }


@pytest.fixture
def sample_analysis() -> Dict[str, Any]:
    """Raw analysis payload as a model would return it."""
    return {
        "estimated_area": 1000,
        "complexity_score": 5,
        "labor_hours": 50,
        "special_considerations": ["Existing drains need flashing"],
        "challenges": ["Roof access through a single hatch"],
        "equipment_needed": ["Roller kits"],
        "recommendations": ["Flood test after curing"],
        "ai_analysis_subtotal": 12000,
        "materials": [
            {
                "name": "Liquid Membrane",
                "quantity": 1000,
                "unit": "square feet",
                "unit_price": 1.5,
                "total_price": 1500,
            },
            {
                "name": "Primer",
                "quantity": 5,
                "unit": "gallons",
                "unit_price": 45,
                "total_price": 225,
            },
        ],
    }
