"""
Shared pytest fixtures for all test modules.

IMPORTANT: GEMINI_API_KEY must be set before the app is imported so the
lifespan builds a client. No real reasoning call ever happens in tests: the
orchestrator dependency is overridden with a StubReasoningClient.
"""

import base64
import io
import os

os.environ.setdefault("GEMINI_API_KEY", "stub-key-for-tests")

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from geolocator.config import AnalysisStrategy
from geolocator.core.dependencies import get_orchestrator
from geolocator.pipeline.orchestrator import PipelineOrchestrator
from geolocator.schemas.requests import ImagePayload
from tests.mocks.stub_reasoning_client import StubReasoningClient

# App import happens AFTER GEMINI_API_KEY is set above.
from geolocator.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Shared test-data helpers
# ---------------------------------------------------------------------------


def make_tiny_jpeg(size=(10, 10)) -> bytes:
    """Create a minimal JPEG in memory, fast and valid."""
    buf = io.BytesIO()
    Image.new("RGB", size, color=(128, 128, 128)).save(buf, format="JPEG")
    return buf.getvalue()


def b64_jpeg() -> str:
    return base64.b64encode(make_tiny_jpeg()).decode()


TEXT_EXPERT = {
    "expertType": "text",
    "searchableClues": [
        {"clue": "Shop sign 'Zabka'", "type": "business_name", "searchQuery": "Zabka store"},
        {"clue": "Street sign 'ul. Marszalkowska'", "type": "street_name", "searchQuery": "ulica Marszalkowska"},
    ],
    "languageClues": ["Polish text"],
    "transcribedText": ["ZABKA", "ul. Marszalkowska"],
}

BUILT_EXPERT = {
    "expertType": "built_environment",
    "searchableClues": [
        {"clue": "Palace of Culture tower", "type": "landmark", "searchQuery": "Palace of Culture and Science"},
    ],
    "infrastructureClues": ["White road markings", "Tram lines"],
    "architectureStyle": "Socialist realist architecture",
}

NATURAL_EXPERT = {
    "expertType": "natural_environment",
    "searchableClues": [],
    "vegetationClues": ["Linden trees"],
    "climateIndicators": ["Overcast sky"],
}

VERIFIED = {
    "locationName": "ul. Marszalkowska, Warsaw, Poland",
    "coordinates": {"lat": 52.2297, "lng": 21.0122},
    "confidenceScore": 88,
    "confidence": {"region": 95, "local": 80},
    "reasoning": ["Searched 'Zabka Marszalkowska'", "Street View matches"],
    "evidence": [{"clue": "Zabka sign", "strength": "hard", "supports": "Poland"}],
    "alternativeLocations": [],
    "uncertainties": ["Could be Krakow, similar tram lines"],
    "visualCues": {"signs": "model-provided", "architecture": "", "environment": "", "demographics": ""},
    "searchQueriesUsed": ["Zabka Marszalkowska"],
}


def region_expert(name, possible=(), impossible=(), observations=("observation",)):
    return {
        "expertType": name,
        "observations": list(observations),
        "possibleRegions": [
            {"region": region, "confidence": conf, "reasoning": f"{name} fits {region}"}
            for region, conf in possible
        ],
        "impossibleRegions": list(impossible),
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def images():
    return [ImagePayload(data=make_tiny_jpeg(), media_type="image/jpeg")]


@pytest.fixture
def clue_replies():
    return {
        "text": TEXT_EXPERT,
        "built_environment": BUILT_EXPERT,
        "natural_environment": NATURAL_EXPERT,
        "verify": VERIFIED,
    }


@pytest.fixture
def stub_client(clue_replies):
    return StubReasoningClient(clue_replies)


@pytest.fixture
def client(stub_client):
    """FastAPI TestClient whose orchestrator runs against the stub reasoning client."""
    app.dependency_overrides[get_orchestrator] = lambda: PipelineOrchestrator(
        stub_client, strategy=AnalysisStrategy.CLUE_FOCUSED
    )
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
