"""
Pipeline orchestrator: the two caller-facing operations.

    analyze: experts → aggregate (→ consensus) → verify → normalize
    refine:  one re-examination call against the previous result + feedback

Per-request state machine (each transition is logged with the request id):

    Started → ExpertsRunning → ExpertsFailed | ExpertsComplete
            → Aggregating → Verifying
            → VerificationFailed → FallbackResult | VerificationComplete
            → Normalizing → Done

`analyze` raises only AllExpertsFailed; a failed verification degrades to a
low-confidence clue-only result.
"""

import logging
import uuid
from enum import Enum
from typing import List, Optional, Sequence

from geolocator.config import AnalysisStrategy, settings
from geolocator.errors import (
    AllExpertsFailed,
    MalformedOutput,
    ReasoningError,
    VerificationFailed,
)
from geolocator.integrations.gemini.client import ReasoningClient
from geolocator.pipeline.aggregator import aggregate_clues, clue_outputs_from_analyses
from geolocator.pipeline.consensus import build_candidates, build_consensus, evidence_from_analyses
from geolocator.pipeline.experts import run_clue_experts, run_region_experts
from geolocator.pipeline.verification import (
    VerificationEngine,
    visual_cues_from_observations,
)
from geolocator.schemas.analysis import (
    AnalysisResult,
    ConfidenceSplit,
    EvidenceItem,
    EvidenceStrength,
    VisualCues,
)
from geolocator.schemas.experts import AggregatedClues, CandidateDecision
from geolocator.schemas.requests import ImagePayload, LocationHints

logger = logging.getLogger(__name__)

UNDETERMINED = "Location could not be determined"

# Clue types that name a place outright
HARD_CLUE_TYPES = {"business_name", "street_name", "phone", "address", "domain", "license_plate"}

ALTERNATIVE_MARKERS = ("could be", "also possible")


class PipelineStage(str, Enum):
    STARTED = "Started"
    EXPERTS_RUNNING = "ExpertsRunning"
    EXPERTS_FAILED = "ExpertsFailed"
    EXPERTS_COMPLETE = "ExpertsComplete"
    AGGREGATING = "Aggregating"
    VERIFYING = "Verifying"
    VERIFICATION_FAILED = "VerificationFailed"
    FALLBACK_RESULT = "FallbackResult"
    VERIFICATION_COMPLETE = "VerificationComplete"
    NORMALIZING = "Normalizing"
    DONE = "Done"


def _transition(request_id: str, stage: PipelineStage, detail: str = "") -> None:
    logger.info(f"[PIPELINE] {request_id} → {stage.value}{f' ({detail})' if detail else ''}")


def promote_alternatives(result: AnalysisResult, limit: int = 3) -> AnalysisResult:
    """Fill empty alternativeLocations from uncertainties that name another place."""
    if result.alternative_locations:
        return result
    result.alternative_locations = [
        u for u in result.uncertainties
        if any(marker in u.lower() for marker in ALTERNATIVE_MARKERS)
    ][:limit]
    return result


def build_fallback_result(
    clues: AggregatedClues,
    decision: Optional[CandidateDecision] = None,
    extra_evidence: Sequence[EvidenceItem] = (),
    visual_cues: Optional[VisualCues] = None,
) -> AnalysisResult:
    """Clue-only result used when verification cannot produce an answer."""
    candidates = decision.candidates if decision else []
    evidence = [
        EvidenceItem(
            clue=c.clue,
            strength=EvidenceStrength.HARD if c.type in HARD_CLUE_TYPES else EvidenceStrength.MEDIUM,
            supports="Unknown - search failed",
        )
        for c in clues.searchable_clues
    ]
    evidence.extend(extra_evidence)

    return AnalysisResult(
        location_name=candidates[0].location_name if candidates else UNDETERMINED,
        coordinates=None,
        confidence_score=settings.fallback_confidence,
        confidence=ConfidenceSplit(
            region=settings.fallback_confidence,
            local=settings.fallback_local_confidence,
        ),
        is_definitive=False,
        candidates=candidates or None,
        reasoning=[
            "Analysis based on visual clues only (search failed)",
            f"Found {len(clues.searchable_clues)} clues but could not verify via search",
            *(f'Suggested search: "{q}"' for q in clues.suggested_search_queries[:3]),
        ],
        evidence=evidence,
        alternative_locations=[],
        uncertainties=["Could not perform web search to verify location"],
        visual_cues=visual_cues or VisualCues(
            signs="; ".join(clues.all_text),
            architecture="; ".join(clues.all_infrastructure),
            environment="; ".join(clues.all_nature),
            demographics="",
        ),
        search_queries_used=list(clues.suggested_search_queries),
        sources=[],
    )


class PipelineOrchestrator:
    def __init__(self, client: ReasoningClient, strategy: Optional[AnalysisStrategy] = None):
        self.client = client
        self.strategy = AnalysisStrategy(strategy or settings.analysis_strategy)
        self.verification = VerificationEngine(client)

    async def analyze(
        self,
        images: Sequence[ImagePayload],
        hints: Optional[LocationHints] = None,
    ) -> AnalysisResult:
        request_id = uuid.uuid4().hex[:8]
        _transition(request_id, PipelineStage.STARTED, f"{len(images)} image(s), strategy={self.strategy.value}")

        _transition(request_id, PipelineStage.EXPERTS_RUNNING)
        try:
            if self.strategy is AnalysisStrategy.REGION_CONSENSUS:
                analyses = await run_region_experts(self.client, images, hints, request_id)
            else:
                outputs = await run_clue_experts(self.client, images, hints, request_id)
        except AllExpertsFailed:
            _transition(request_id, PipelineStage.EXPERTS_FAILED)
            raise
        _transition(request_id, PipelineStage.EXPERTS_COMPLETE)

        _transition(request_id, PipelineStage.AGGREGATING)
        decision: Optional[CandidateDecision] = None
        hypotheses = []
        visual_cues = None
        extra_evidence: List[EvidenceItem] = []
        if self.strategy is AnalysisStrategy.REGION_CONSENSUS:
            consensus = build_consensus(analyses)
            decision = build_candidates(consensus)
            clues = aggregate_clues(clue_outputs_from_analyses(analyses))
            hypotheses = consensus.ranked_regions[:settings.consensus_candidate_pool]
            visual_cues = visual_cues_from_observations(consensus.observations)
            extra_evidence = evidence_from_analyses(analyses)
        else:
            clues = aggregate_clues(outputs)

        _transition(request_id, PipelineStage.VERIFYING)
        try:
            result = await self.verification.verify(
                images, clues, hints,
                hypotheses=hypotheses,
                visual_cues=visual_cues,
                request_id=request_id,
            )
        except (VerificationFailed, MalformedOutput, ReasoningError) as e:
            _transition(request_id, PipelineStage.VERIFICATION_FAILED, f"{type(e).__name__}: {e.message}")
            result = build_fallback_result(clues, decision, extra_evidence, visual_cues)
            _transition(request_id, PipelineStage.FALLBACK_RESULT, f"{len(result.evidence)} clues")
            _transition(request_id, PipelineStage.DONE)
            return result
        _transition(request_id, PipelineStage.VERIFICATION_COMPLETE)

        _transition(request_id, PipelineStage.NORMALIZING)
        result = promote_alternatives(result)
        if decision is not None and decision.candidates:
            result = result.with_candidates(decision.is_definitive, decision.candidates)
        else:
            result.candidates = None

        _transition(request_id, PipelineStage.DONE, f"{result.location_name!r}, definitive={result.is_definitive}")
        return result

    async def refine(
        self,
        images: Sequence[ImagePayload],
        previous: AnalysisResult,
        feedback: str,
        hints: Optional[LocationHints] = None,
    ) -> AnalysisResult:
        request_id = uuid.uuid4().hex[:8]
        _transition(request_id, PipelineStage.STARTED, f"refine {previous.location_name!r}")

        _transition(request_id, PipelineStage.VERIFYING)
        try:
            result = await self.verification.reexamine(images, previous, feedback, hints, request_id)
        except (VerificationFailed, MalformedOutput) as e:
            _transition(request_id, PipelineStage.VERIFICATION_FAILED, type(e).__name__)
            raise
        except ReasoningError as e:
            _transition(request_id, PipelineStage.VERIFICATION_FAILED, type(e).__name__)
            raise VerificationFailed(e.message) from e
        _transition(request_id, PipelineStage.VERIFICATION_COMPLETE)

        _transition(request_id, PipelineStage.NORMALIZING)
        result = promote_alternatives(result)
        _transition(request_id, PipelineStage.DONE, repr(result.location_name))
        return result
