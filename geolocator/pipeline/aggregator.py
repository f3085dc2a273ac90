"""
Clue aggregator: merge clue-expert outputs into one de-duplicated evidence set.

Comparison is case-insensitive on trimmed text; the first spelling seen wins
and first-appearance order is kept. Each list is cut to `top_n` items to keep
the verification prompt bounded, so when lists overflow the result depends on
expert order. That loss is accepted.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from geolocator.config import settings
from geolocator.schemas.experts import (
    AggregatedClues,
    ClueExpertOutput,
    ExpertAnalysis,
    SearchableClue,
)

logger = logging.getLogger(__name__)

# Facet → clue bucket for region-expert observations
OBSERVATION_BUCKETS = {
    "text_signs": "transcribed_text",
    "architecture": "infrastructure_clues",
    "infrastructure": "infrastructure_clues",
    "vegetation": "vegetation_clues",
    "cultural": "language_clues",
}


def _key(text: str) -> str:
    return text.strip().casefold()


def dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for item in items:
        text = (item or "").strip()
        if not text or _key(text) in seen:
            continue
        seen.add(_key(text))
        unique.append(text)
    return unique


def _dedupe_clues(clues: Iterable[SearchableClue]) -> List[SearchableClue]:
    seen = set()
    unique = []
    for clue in clues:
        key = _key(clue.clue)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(clue)
    return unique


def aggregate_clues(outputs: Sequence[ClueExpertOutput], top_n: Optional[int] = None) -> AggregatedClues:
    top_n = settings.aggregation_top_n if top_n is None else top_n

    searchable: List[SearchableClue] = []
    text: List[str] = []
    infrastructure: List[str] = []
    nature: List[str] = []
    queries: List[str] = []

    for output in outputs:
        for clue in output.searchable_clues:
            searchable.append(clue)
            if clue.search_query:
                queries.append(clue.search_query)
        text.extend(output.transcribed_text)
        text.extend(output.language_clues)
        infrastructure.extend(output.infrastructure_clues)
        if output.architecture_style:
            infrastructure.append(output.architecture_style)
        nature.extend(output.vegetation_clues)
        nature.extend(output.climate_indicators)

    clues = AggregatedClues(
        searchable_clues=_dedupe_clues(searchable)[:top_n],
        all_text=dedupe(text)[:top_n],
        all_infrastructure=dedupe(infrastructure)[:top_n],
        all_nature=dedupe(nature)[:top_n],
        suggested_search_queries=dedupe(queries)[:top_n],
    )
    logger.info(
        f"[AGGREGATE] {len(clues.searchable_clues)} searchable clues, "
        f"{len(clues.suggested_search_queries)} queries: {', '.join(clues.suggested_search_queries[:5])}"
    )
    return clues


def clue_outputs_from_analyses(analyses: Sequence[ExpertAnalysis]) -> List[ClueExpertOutput]:
    """Bucket region-expert observations by facet so they can be aggregated like clues."""
    outputs = []
    for analysis in analyses:
        bucket = OBSERVATION_BUCKETS.get(analysis.expert_type, "infrastructure_clues")
        outputs.append(ClueExpertOutput(expert_type=analysis.expert_type, **{bucket: list(analysis.observations)}))
    return outputs
