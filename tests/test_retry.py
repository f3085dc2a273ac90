"""Tests for geolocator/pipeline/retry.py: the bounded fallback chain."""

import pytest

from geolocator.errors import (
    EmptyResponse,
    ReasoningError,
    ServiceUnavailable,
    ToolInputRejected,
    VerificationFailed,
)
from geolocator.integrations.gemini.client import ReasoningTool
from geolocator.integrations.gemini.prompts import FINAL_SEARCH_INSTRUCTION
from geolocator.pipeline.retry import MAX_ATTEMPTS, RetryController
from tests.mocks.stub_reasoning_client import StubReasoningClient

OK = '{"locationName": "Lyon"}'
MAPS_REJECTED = ToolInputRejected("Coordinates are not a valid input", tool=ReasoningTool.MAP_LOOKUP.value)


async def _run(replies, images):
    stub = StubReasoningClient({"verify": replies})
    controller = RetryController(stub)
    response = await controller.run(images, FINAL_SEARCH_INSTRUCTION, "full prompt", text_only_prompt="text prompt")
    return stub, response


async def test_success_on_first_attempt(images):
    stub, response = await _run([OK], images)

    assert response.attempts == 1
    assert response.text_only is False
    assert stub.calls[0].image_count == 1
    assert stub.calls[0].tools == (ReasoningTool.WEB_SEARCH, ReasoningTool.MAP_LOOKUP)


async def test_tool_rejection_drops_the_offending_tool(images):
    stub, response = await _run([MAPS_REJECTED, OK], images)

    assert response.attempts == 2
    assert stub.calls[1].tools == (ReasoningTool.WEB_SEARCH,)
    assert stub.calls[1].image_count == 1
    assert stub.calls[1].prompt == "full prompt"


async def test_empty_response_switches_to_text_only(images):
    stub, response = await _run([EmptyResponse("SAFETY"), OK], images)

    assert response.text_only is True
    assert stub.calls[1].image_count == 0
    assert stub.calls[1].tools == (ReasoningTool.WEB_SEARCH,)
    assert stub.calls[1].prompt == "text prompt"


async def test_full_chain_uses_three_calls(images):
    stub, response = await _run([MAPS_REJECTED, EmptyResponse(), OK], images)

    assert response.attempts == 3
    assert response.text_only is True
    assert len(stub.calls) == MAX_ATTEMPTS == 3


async def test_chain_never_exceeds_three_calls(images):
    stub = StubReasoningClient({"verify": [MAPS_REJECTED, EmptyResponse(), EmptyResponse(), OK]})
    with pytest.raises(VerificationFailed) as exc:
        await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "p")

    assert len(stub.calls) == 3
    assert exc.value.attempts == 3


async def test_second_tool_rejection_is_not_retried(images):
    stub = StubReasoningClient({"verify": [MAPS_REJECTED, MAPS_REJECTED, OK]})
    with pytest.raises(VerificationFailed):
        await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "p")
    assert len(stub.calls) == 2


async def test_tool_rejection_in_text_only_mode_fails(images):
    stub = StubReasoningClient({"verify": [EmptyResponse(), MAPS_REJECTED, OK]})
    with pytest.raises(VerificationFailed):
        await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "p")
    assert len(stub.calls) == 2


async def test_service_unavailable_fails_without_further_steps(images):
    stub = StubReasoningClient({"verify": [ServiceUnavailable(status=503), OK]})
    with pytest.raises(VerificationFailed):
        await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "p")
    assert len(stub.calls) == 1


async def test_unrecognized_error_propagates_immediately(images):
    stub = StubReasoningClient({"verify": [ReasoningError("boom"), OK]})
    with pytest.raises(ReasoningError) as exc:
        await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "p")

    assert not isinstance(exc.value, VerificationFailed)
    assert len(stub.calls) == 1


async def test_text_only_without_dedicated_prompt_reuses_prompt(images):
    stub = StubReasoningClient({"verify": [EmptyResponse(), OK]})
    await RetryController(stub).run(images, FINAL_SEARCH_INSTRUCTION, "only prompt")
    assert stub.calls[1].prompt == "only prompt"
