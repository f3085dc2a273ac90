"""
Route tests for POST /analyze and POST /analyze/refine.

The orchestrator dependency is overridden in conftest.py so every request
runs the real pipeline against the stub reasoning client.
"""

from unittest.mock import patch

import pytest

from geolocator.config import AnalysisStrategy, settings
from geolocator.core.dependencies import get_orchestrator
from geolocator.main import app
from geolocator.pipeline.orchestrator import UNDETERMINED, PipelineOrchestrator
from geolocator.services.exif_service import EXIF_NOTE
from tests.conftest import VERIFIED, b64_jpeg
from tests.mocks.stub_reasoning_client import StubReasoningClient

PREVIOUS = {
    "locationName": "Krakow, Poland",
    "confidenceScore": 55,
    "confidence": {"region": 80, "local": 30},
    "isDefinitive": False,
}


def _body(count=1, **extra):
    return {"images": [{"data": b64_jpeg(), "mimeType": "image/jpeg"} for _ in range(count)], **extra}


@pytest.fixture
def use_stub():
    """Swap the orchestrator's stub after the `client` fixture is up."""
    def _use(stub):
        app.dependency_overrides[get_orchestrator] = lambda: PipelineOrchestrator(
            stub, strategy=AnalysisStrategy.CLUE_FOCUSED
        )
    return _use


# ---------------------------------------------------------------------------
# /analyze
# ---------------------------------------------------------------------------


def test_analyze_happy_path(client, stub_client):
    response = client.post("/analyze", json=_body(hints={"country": "Poland"}))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["result"]["locationName"] == VERIFIED["locationName"]
    assert data["result"]["isDefinitive"] is True
    assert data["exifData"] is None
    assert "Country: Poland" in stub_client.calls_for("verify")[0].prompt


def test_analyze_accepts_data_uri(client):
    body = {"images": [{"data": f"data:image/jpeg;base64,{b64_jpeg()}"}]}
    assert client.post("/analyze", json=body).status_code == 200


def test_analyze_fills_coordinates_from_exif(client, use_stub, clue_replies):
    use_stub(StubReasoningClient({**clue_replies, "verify": {**VERIFIED, "coordinates": None}}))
    gps = {"latitude": 52.23, "longitude": 21.01, "make": "Apple", "model": "iPhone 15"}

    with patch("geolocator.services.exif_service.read_exif_gps", return_value=gps):
        response = client.post("/analyze", json=_body())

    data = response.json()
    assert response.status_code == 200
    assert data["exifData"]["latitude"] == 52.23
    assert data["exifData"]["imageIndex"] == 0
    assert data["result"]["coordinates"] == {"lat": 52.23, "lng": 21.01}
    assert data["result"]["reasoning"][0] == EXIF_NOTE
    assert data["result"]["confidenceScore"] >= settings.exif_min_confidence


def test_analyze_exif_hint_reaches_prompt(client, stub_client):
    gps = {"latitude": 52.23, "longitude": 21.01}
    with patch("geolocator.services.exif_service.read_exif_gps", return_value=gps):
        client.post("/analyze", json=_body())

    assert "EXIF GPS found: 52.230000, 21.010000" in stub_client.calls_for("verify")[0].prompt


def test_analyze_without_images_returns_400(client):
    assert client.post("/analyze", json={"images": []}).status_code == 400


def test_analyze_too_many_images_returns_400(client):
    response = client.post("/analyze", json=_body(count=settings.max_images + 1))
    assert response.status_code == 400


def test_analyze_unsupported_type_returns_415(client):
    body = {"images": [{"data": b64_jpeg(), "mimeType": "application/pdf"}]}
    assert client.post("/analyze", json=body).status_code == 415


def test_analyze_all_experts_failed_returns_502(client, use_stub):
    use_stub(StubReasoningClient({"verify": VERIFIED}))
    response = client.post("/analyze", json=_body())

    assert response.status_code == 502
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "AllExpertsFailed"


def test_analyze_verification_failure_returns_fallback(client, use_stub, clue_replies):
    use_stub(StubReasoningClient({**clue_replies, "verify": "no json here"}))
    response = client.post("/analyze", json=_body())

    assert response.status_code == 200
    assert response.json()["result"]["locationName"] == UNDETERMINED


def test_analyze_without_reasoning_client_returns_503(client):
    app.dependency_overrides.clear()
    app.state.reasoning_client = None
    assert client.post("/analyze", json=_body()).status_code == 503


# ---------------------------------------------------------------------------
# /analyze/refine
# ---------------------------------------------------------------------------


def test_refine_happy_path(client, use_stub):
    stub = StubReasoningClient({"refine": VERIFIED})
    use_stub(stub)
    response = client.post("/analyze/refine", json=_body(
        previousResult=PREVIOUS, userFeedback="The tower is the Palace of Culture",
    ))

    assert response.status_code == 200
    assert response.json()["result"]["locationName"] == VERIFIED["locationName"]
    assert "Palace of Culture" in stub.calls_for("refine")[0].prompt


@pytest.mark.parametrize("extra", [
    {"previousResult": PREVIOUS},
    {"previousResult": PREVIOUS, "userFeedback": "   "},
    {"userFeedback": "wrong city"},
])
def test_refine_requires_previous_and_feedback(client, extra):
    assert client.post("/analyze/refine", json=_body(**extra)).status_code == 400


def test_refine_failure_returns_502(client, use_stub):
    use_stub(StubReasoningClient({"refine": "still no json"}))
    response = client.post("/analyze/refine", json=_body(previousResult=PREVIOUS, userFeedback="wrong"))

    assert response.status_code == 502
    assert response.json()["error"] == "MalformedOutput"
