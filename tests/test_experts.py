"""Tests for geolocator/pipeline/experts.py: parallel panel with wait-all semantics."""

import asyncio

import pytest

from geolocator.errors import AllExpertsFailed, ServiceUnavailable
from geolocator.integrations.gemini.client import RawResponse
from geolocator.integrations.gemini.prompts import CLUE_EXPERTS, REGION_EXPERTS
from geolocator.pipeline.aggregator import aggregate_clues
from geolocator.pipeline.experts import run_clue_experts, run_panel, run_region_experts
from geolocator.schemas.requests import LocationHints
from tests.conftest import BUILT_EXPERT, NATURAL_EXPERT, TEXT_EXPERT, region_expert
from tests.mocks.stub_reasoning_client import StubReasoningClient


async def test_one_failing_expert_is_dropped(images):
    stub = StubReasoningClient({
        "text": TEXT_EXPERT,
        "built_environment": ServiceUnavailable(status=503),
        "natural_environment": NATURAL_EXPERT,
    })

    outputs = await run_clue_experts(stub, images)

    assert [o.expert_type for o in outputs] == ["text", "natural_environment"]
    clues = aggregate_clues(outputs)
    assert "Zabka store" in clues.suggested_search_queries


async def test_malformed_expert_output_is_dropped(images):
    stub = StubReasoningClient({
        "text": "I see a street.",
        "built_environment": BUILT_EXPERT,
        "natural_environment": NATURAL_EXPERT,
    })
    outputs = await run_clue_experts(stub, images)
    assert [o.expert_type for o in outputs] == ["built_environment", "natural_environment"]


async def test_all_experts_failing_raises(images):
    stub = StubReasoningClient({})
    with pytest.raises(AllExpertsFailed) as exc:
        await run_clue_experts(stub, images)
    assert exc.value.details == {"attempted": 3}


async def test_experts_are_tool_free_and_see_the_same_input(images):
    stub = StubReasoningClient({"text": TEXT_EXPERT, "built_environment": BUILT_EXPERT, "natural_environment": NATURAL_EXPERT})
    await run_clue_experts(stub, images, LocationHints(country="Poland"))

    assert len(stub.calls) == len(CLUE_EXPERTS)
    assert all(call.tools == () for call in stub.calls)
    assert all(call.image_count == 1 for call in stub.calls)
    assert len({call.prompt for call in stub.calls}) == 1
    assert "Country: Poland" in stub.calls[0].prompt


async def test_order_follows_panel_not_completion():
    class SlowFirstClient:
        async def invoke(self, images, instruction, prompt, tools=(), safety_threshold=None):
            if instruction == "first":
                await asyncio.sleep(0.05)
            return RawResponse(text='{"observations": ["%s"]}' % instruction)

    results = await run_panel(
        SlowFirstClient(),
        {"first": "first", "second": "second"},
        images=[],
        hints=None,
        decode=lambda name, text: name,
    )
    assert results == ["first", "second"]


async def test_fast_failure_does_not_cancel_slow_experts():
    finished = []

    class MixedClient:
        async def invoke(self, images, instruction, prompt, tools=(), safety_threshold=None):
            if instruction == "fails":
                raise ServiceUnavailable(status=500)
            await asyncio.sleep(0.05)
            finished.append(instruction)
            return RawResponse(text="{}")

    results = await run_panel(
        MixedClient(),
        {"fails": "fails", "slow": "slow"},
        images=[],
        hints=None,
        decode=lambda name, text: name,
    )
    assert results == ["slow"]
    assert finished == ["slow"]


async def test_region_panel_runs_five_experts(images):
    stub = StubReasoningClient({
        name: region_expert(name, possible=[("Poland", 50)]) for name in REGION_EXPERTS
    })
    analyses = await run_region_experts(stub, images)

    assert [a.expert_type for a in analyses] == list(REGION_EXPERTS)
    assert analyses[0].possible_regions[0].region == "Poland"
