"""
Verification engine: one tool-augmented call that turns aggregated clues into
a specific, calibrated location.

The call goes through the retry controller and its text is handed to the
decoder. Visual cues are rebuilt from the expert buckets instead of trusting
the model to repeat them.
"""

import logging
from typing import Dict, List, Optional, Sequence

from geolocator.integrations.gemini.client import ReasoningClient
from geolocator.integrations.gemini.prompts import (
    FINAL_SEARCH_INSTRUCTION,
    REFINE_INSTRUCTION,
    build_clue_summary,
    build_final_search_prompt,
    build_refine_prompt,
    build_refine_text_only_prompt,
    build_text_only_prompt,
)
from geolocator.pipeline.decoder import decode_response
from geolocator.pipeline.retry import ControlledResponse, RetryController
from geolocator.schemas.analysis import AnalysisResult, VisualCues
from geolocator.schemas.experts import AggregatedClues, RegionScore
from geolocator.schemas.requests import ImagePayload, LocationHints

logger = logging.getLogger(__name__)

TEXT_ONLY_NOTE = "Note: Image was blocked by safety filter. Analysis based on extracted clues only."


def visual_cues_from_clues(clues: AggregatedClues) -> VisualCues:
    infrastructure = clues.all_infrastructure
    return VisualCues(
        signs="; ".join(clues.all_text),
        architecture="; ".join(
            i for i in infrastructure if "architect" in i.lower() or "style" in i.lower()
        ),
        environment="; ".join(clues.all_nature),
        demographics="; ".join(i for i in infrastructure if "architect" not in i.lower()),
    )


def visual_cues_from_observations(observations: Dict[str, List[str]]) -> VisualCues:
    return VisualCues(
        signs="; ".join(observations.get("text_signs", [])),
        architecture="; ".join(observations.get("architecture", [])),
        environment="; ".join(observations.get("vegetation", [])),
        demographics="; ".join(observations.get("cultural", [])),
    )


def _finish(response: ControlledResponse, request_id: str) -> AnalysisResult:
    result = decode_response(response.raw)
    if response.text_only:
        result.reasoning.insert(0, TEXT_ONLY_NOTE)
    logger.info(
        f"[VERIFY] {request_id} {result.location_name!r} confidence={result.confidence_score} "
        f"(region {result.confidence.region}, local {result.confidence.local}) "
        f"after {response.attempts} attempt(s), {len(result.sources)} sources"
    )
    return result


class VerificationEngine:
    def __init__(self, client: ReasoningClient):
        self.controller = RetryController(client)

    async def verify(
        self,
        images: Sequence[ImagePayload],
        clues: AggregatedClues,
        hints: Optional[LocationHints] = None,
        hypotheses: Sequence[RegionScore] = (),
        visual_cues: Optional[VisualCues] = None,
        request_id: str = "-",
    ) -> AnalysisResult:
        summary = build_clue_summary(clues, hints, hypotheses)
        logger.info(
            f"[VERIFY] {request_id} searching with {len(clues.searchable_clues)} clues, "
            f"{len(clues.suggested_search_queries)} queries, {len(hypotheses)} hypotheses"
        )
        response = await self.controller.run(
            images,
            FINAL_SEARCH_INSTRUCTION,
            build_final_search_prompt(summary),
            text_only_prompt=build_text_only_prompt(summary),
            request_id=request_id,
        )
        result = _finish(response, request_id)
        result.visual_cues = visual_cues or visual_cues_from_clues(clues)
        return result

    async def reexamine(
        self,
        images: Sequence[ImagePayload],
        previous: AnalysisResult,
        feedback: str,
        hints: Optional[LocationHints] = None,
        request_id: str = "-",
    ) -> AnalysisResult:
        """Red-team the previous conclusion against explicit user feedback."""
        response = await self.controller.run(
            images,
            REFINE_INSTRUCTION,
            build_refine_prompt(previous, feedback, hints),
            text_only_prompt=build_refine_text_only_prompt(previous, feedback, hints),
            request_id=request_id,
        )
        return _finish(response, request_id)
