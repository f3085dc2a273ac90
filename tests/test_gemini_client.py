"""
Unit tests for geolocator/integrations/gemini/client.py.

The google-genai client is replaced by a MagicMock whose
aio.models.generate_content is an AsyncMock; no network is touched.
"""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from google.genai import errors as genai_errors
from PIL import Image

from geolocator.config import settings
from geolocator.errors import EmptyResponse, ReasoningError, ServiceUnavailable, ToolInputRejected
from geolocator.integrations.gemini.client import (
    ReasoningClient,
    ReasoningTool,
    build_safety_settings,
    classify_api_error,
    extract_sources,
    extract_text,
    prepare_image,
)
from geolocator.schemas.requests import ImagePayload
from tests.conftest import make_tiny_jpeg


def _api_error(code, message):
    return genai_errors.APIError(code, {"error": {"code": code, "message": message, "status": "ERR"}})


def _chunk(uri, title=None, maps=False):
    ref = MagicMock(uri=uri, title=title)
    chunk = MagicMock()
    chunk.web = None if maps else ref
    chunk.maps = ref if maps else None
    return chunk


def _response(text="{}", chunks=()):
    response = MagicMock()
    response.text = text
    response.prompt_feedback = None
    response.usage_metadata = None
    candidate = MagicMock()
    candidate.finish_reason = None
    candidate.grounding_metadata.grounding_chunks = list(chunks)
    response.candidates = [candidate]
    return response


def _client(response=None, side_effect=None):
    genai_client = MagicMock()
    genai_client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=side_effect)
    return ReasoningClient(client=genai_client, model="test-model"), genai_client


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("code", [408, 429, 500, 503])
def test_transient_codes_are_service_unavailable(code):
    err = classify_api_error(_api_error(code, "busy"))
    assert isinstance(err, ServiceUnavailable)
    assert err.status == code


def test_coordinates_rejection_names_the_map_tool():
    err = classify_api_error(_api_error(400, "Invalid argument: coordinates are not supported as a query"))
    assert isinstance(err, ToolInputRejected)
    assert err.tool == ReasoningTool.MAP_LOOKUP.value


def test_other_errors_are_unclassified():
    err = classify_api_error(_api_error(403, "API key invalid"))
    assert type(err) is ReasoningError
    assert err.details == {"status": 403}


def test_safety_settings_cover_every_category():
    assert len(build_safety_settings("BLOCK_NONE")) == 4


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def test_extract_sources_dedupes_and_defaults_title():
    response = _response(chunks=[
        _chunk("https://a", "Page A"),
        _chunk("https://a", "Page A again"),
        _chunk("https://maps/b", maps=True),
        _chunk(None),
    ])
    sources = extract_sources(response)

    assert [(s.title, s.uri) for s in sources] == [("Page A", "https://a"), ("Source Link", "https://maps/b")]


def test_extract_sources_without_candidates():
    response = _response()
    response.candidates = []
    assert extract_sources(response) == []


def test_extract_text_falls_back_to_parts():
    response = _response(text=None)
    part = MagicMock(text='{"a": 1}')
    response.candidates[0].content.parts = [part]
    assert extract_text(response) == '{"a": 1}'


# ---------------------------------------------------------------------------
# Image preparation
# ---------------------------------------------------------------------------


def test_small_image_is_untouched():
    image = ImagePayload(data=make_tiny_jpeg())
    assert prepare_image(image) is image


def test_large_image_is_downscaled_to_jpeg():
    buf = io.BytesIO()
    Image.new("RGBA", (40, 20)).save(buf, format="PNG")
    image = ImagePayload(data=buf.getvalue(), media_type="image/png")

    with patch.object(settings, "gemini_max_pixels", 200):
        prepared = prepare_image(image)

    assert prepared.media_type == "image/jpeg"
    with Image.open(io.BytesIO(prepared.data)) as img:
        assert img.size == (20, 10)


def test_unreadable_image_passes_through():
    image = ImagePayload(data=b"not an image", media_type="image/webp")
    assert prepare_image(image) is image


# ---------------------------------------------------------------------------
# invoke
# ---------------------------------------------------------------------------


async def test_invoke_returns_text_and_sources():
    client, genai_client = _client(_response('{"ok": true}', [_chunk("https://a", "A")]))

    raw = await client.invoke(
        [ImagePayload(data=make_tiny_jpeg())], "system", "prompt",
        tools=(ReasoningTool.WEB_SEARCH, ReasoningTool.MAP_LOOKUP),
    )

    assert raw.text == '{"ok": true}'
    assert raw.sources[0].uri == "https://a"
    kwargs = genai_client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["contents"][-1] == "prompt"
    assert len(kwargs["config"].tools) == 2
    assert kwargs["config"].system_instruction == "system"


async def test_invoke_without_tools_sends_none():
    client, genai_client = _client(_response())
    await client.invoke([], "system", "prompt")
    assert genai_client.aio.models.generate_content.call_args.kwargs["config"].tools is None


async def test_invoke_empty_text_raises_empty_response():
    response = _response(text="")
    response.candidates[0].content.parts = []
    response.prompt_feedback = MagicMock(block_reason="SAFETY")
    client, _ = _client(response)

    with pytest.raises(EmptyResponse) as exc:
        await client.invoke([], "system", "prompt")
    assert exc.value.reason == "SAFETY"


async def test_invoke_maps_api_errors():
    client, _ = _client(side_effect=_api_error(503, "overloaded"))
    with pytest.raises(ServiceUnavailable):
        await client.invoke([], "system", "prompt")


async def test_invoke_maps_timeouts():
    client, _ = _client(side_effect=httpx.ReadTimeout("timed out"))
    with pytest.raises(ServiceUnavailable) as exc:
        await client.invoke([], "system", "prompt")
    assert exc.value.status == 408
