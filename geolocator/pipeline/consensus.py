"""
Region consensus across independent experts, and the definitive-vs-candidates decision.

Scoring: each expert's possible region adds its confidence to the normalized
region; each impossible region subtracts a fixed veto penalty. Regions with
both support and vetoes are reported as conflicts and left unresolved.

Nothing in this module raises; an empty pool gives an ambiguous decision
with no candidates.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from geolocator.config import settings
from geolocator.schemas.analysis import EvidenceItem, EvidenceStrength, LocationCandidate, round_half_up
from geolocator.schemas.experts import (
    CandidateDecision,
    ExpertAnalysis,
    ExpertConsensus,
    RegionScore,
)

logger = logging.getLogger(__name__)

_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")
_AFTER_COMMA = re.compile(r",.*$", re.DOTALL)
_DIRECTIONAL = re.compile(r"\b(?:southern|northern|eastern|western|coastal|central)\s+")

FACET_STRENGTH = {
    "text_signs": EvidenceStrength.HARD,
    "infrastructure": EvidenceStrength.MEDIUM,
}


def normalize_region(region: str) -> str:
    """Canonical region key; applying it twice gives the same result."""
    current = (region or "").lower()
    while True:
        stripped = _PARENTHETICAL.sub("", current)
        stripped = _AFTER_COMMA.sub("", stripped)
        stripped = _DIRECTIONAL.sub("", stripped).strip()
        if stripped == current:
            break
        current = stripped
    return current or "unknown"


def build_consensus(analyses: Sequence[ExpertAnalysis], veto_penalty: Optional[int] = None) -> ExpertConsensus:
    veto_penalty = settings.consensus_veto_penalty if veto_penalty is None else veto_penalty

    observations: Dict[str, List[str]] = {}
    scores: Dict[str, RegionScore] = {}

    def entry(name: str) -> RegionScore:
        key = normalize_region(name)
        if key not in scores:
            scores[key] = RegionScore(region=key)
        return scores[key]

    for analysis in analyses:
        observations[analysis.expert_type] = list(analysis.observations)

        for possible in analysis.possible_regions:
            region = entry(possible.region)
            region.score += possible.confidence
            region.supporters.append(f"{analysis.expert_type}: {possible.reasoning} ({possible.confidence}%)")

        for impossible in analysis.impossible_regions:
            region = entry(impossible)
            region.score -= veto_penalty
            region.contradictors.append(f"{analysis.expert_type} rules out this region")

    conflicts = [
        f"{r.region}: supported by {len(r.supporters)} experts, but contradicted by {len(r.contradictors)}"
        for r in scores.values()
        if r.is_conflicted
    ]
    ranked = sorted(scores.values(), key=lambda r: -r.score)

    logger.info(
        f"[CONSENSUS] {len(ranked)} regions scored; top: "
        f"{', '.join(f'{r.region}({r.score})' for r in ranked[:5])}"
    )
    for conflict in conflicts:
        logger.info(f"[CONSENSUS] conflict: {conflict}")

    return ExpertConsensus(observations=observations, ranked_regions=ranked, conflicts=conflicts)


def _probabilities(scores: Sequence[int]) -> List[int]:
    """Rounded shares of the positive scores; the total never exceeds 100."""
    positive = [max(0, s) for s in scores]
    total = sum(positive)
    exact = [p / total * 100 for p in positive]
    rounded = [round_half_up(x) for x in exact]

    # Undo round-ups, smallest fraction first, until the total fits.
    excess = sum(rounded) - 100
    order = sorted(range(len(exact)), key=lambda i: exact[i] - int(exact[i]))
    for i in order:
        if excess <= 0:
            break
        if rounded[i] > exact[i]:
            rounded[i] -= 1
            excess -= 1
    return rounded


def _key_evidence(attribution: str) -> str:
    _, sep, rest = attribution.partition(":")
    return rest.strip() if sep and rest.strip() else attribution


def build_candidates(
    consensus: ExpertConsensus,
    pool_size: Optional[int] = None,
    definitive_threshold: Optional[int] = None,
    definitive_gap: Optional[int] = None,
    noise_floor: Optional[int] = None,
    max_candidates: Optional[int] = None,
) -> CandidateDecision:
    pool_size = settings.consensus_candidate_pool if pool_size is None else pool_size
    definitive_threshold = settings.definitive_threshold if definitive_threshold is None else definitive_threshold
    definitive_gap = settings.definitive_gap if definitive_gap is None else definitive_gap
    noise_floor = settings.candidate_noise_floor if noise_floor is None else noise_floor
    max_candidates = settings.max_candidates if max_candidates is None else max_candidates

    pool = consensus.ranked_regions[:pool_size]
    if not pool or sum(max(0, r.score) for r in pool) == 0:
        return CandidateDecision()

    candidates = [
        LocationCandidate(
            location_name=r.region[:1].upper() + r.region[1:],
            probability=probability,
            reasoning=r.supporters[:3],
            key_evidence=[_key_evidence(s) for s in r.supporters[:2]],
        )
        for r, probability in zip(pool, _probabilities([r.score for r in pool]))
    ]
    candidates.sort(key=lambda c: -c.probability)

    top = candidates[0].probability
    second = candidates[1].probability if len(candidates) > 1 else None
    is_definitive = top >= definitive_threshold or (second is not None and top - second >= definitive_gap)

    if is_definitive:
        chosen = candidates[:1]
    else:
        chosen = [c for c in candidates if c.probability >= noise_floor][:max_candidates]

    logger.info(
        f"[CONSENSUS] definitive={is_definitive}; "
        f"{', '.join(f'{c.location_name}({c.probability}%)' for c in chosen)}"
    )
    return CandidateDecision(is_definitive=is_definitive, candidates=chosen)


def evidence_from_analyses(analyses: Sequence[ExpertAnalysis]) -> List[EvidenceItem]:
    """Observations as evidence, graded by the facet of the expert that made them."""
    evidence = []
    for analysis in analyses:
        strength = FACET_STRENGTH.get(analysis.expert_type, EvidenceStrength.SOFT)
        supports = ", ".join(r.region for r in analysis.possible_regions) or "Unknown"
        for observation in analysis.observations:
            evidence.append(EvidenceItem(clue=observation, strength=strength, supports=supports))
    return evidence
