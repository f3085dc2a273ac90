"""
Result decoder: raw model text → typed pipeline values.

The model wraps its JSON in prose or markdown fences often enough that we
never call `json.loads` on the raw text directly. `extract_json_object` takes
the span from the first `{` to the last `}`; everything after that is an
explicit, field-by-field coercion with a default for every missing value.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional

from geolocator.config import settings
from geolocator.errors import MalformedOutput
from geolocator.integrations.gemini.client import RawResponse
from geolocator.schemas.analysis import (
    AnalysisResult,
    ConfidenceSplit,
    Coordinates,
    EvidenceItem,
    EvidenceStrength,
    VisualCues,
    clamp_percent,
    round_half_up,
)
from geolocator.schemas.experts import (
    ClueExpertOutput,
    ExpertAnalysis,
    PossibleRegion,
    SearchableClue,
)

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown location"


# --------------------------------------------------------------------------- #
# JSON extraction                                                             #
# --------------------------------------------------------------------------- #


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    if not text:
        raise MalformedOutput("empty response")

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last < first:
        raise MalformedOutput("could not find JSON object in response", text)

    try:
        data = json.loads(text[first:last + 1])
    except json.JSONDecodeError as e:
        logger.warning(f"[DECODE] JSON parse failed: {e}")
        raise MalformedOutput(f"JSON parse failed: {e.msg}", text) from e

    if not isinstance(data, dict):
        raise MalformedOutput("top-level JSON value is not an object", text)
    return data


# --------------------------------------------------------------------------- #
# Field coercion                                                              #
# --------------------------------------------------------------------------- #


def _number(value: Any) -> Optional[float]:
    """Finite float or None; NaN and Infinity count as missing."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip().rstrip("%") if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _text_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [t for t in (_text(v) for v in value) if t]


def _coordinates(value: Any) -> Optional[Coordinates]:
    if not isinstance(value, dict):
        return None
    lat = _number(value.get("lat", value.get("latitude")))
    lng = _number(value.get("lng", value.get("lon", value.get("longitude"))))
    if lat is None or lng is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        logger.warning(f"[DECODE] Dropping out-of-range coordinates {lat}, {lng}")
        return None
    return Coordinates(lat=lat, lng=lng)


def parse_strength(value: Any) -> EvidenceStrength:
    try:
        return EvidenceStrength(str(value).strip().lower())
    except ValueError:
        return EvidenceStrength.SOFT


def normalize_evidence(items: Any) -> List[EvidenceItem]:
    """Accepts `clue`/`supports` or the alternate `description`/`location` keys."""
    if not isinstance(items, list):
        return []
    evidence = []
    for item in items:
        if not isinstance(item, dict):
            continue
        evidence.append(EvidenceItem(
            clue=_text(item.get("clue")) or _text(item.get("description"), "Unknown clue"),
            strength=parse_strength(item.get("strength")),
            supports=_text(item.get("supports")) or _text(item.get("location"), "Unknown"),
        ))
    return evidence


def _confidence(value: Any, score: float, local_ratio: float) -> ConfidenceSplit:
    region = local = None
    if isinstance(value, dict):
        region = _number(value.get("region"))
        local = _number(value.get("local"))
    if region is None:
        region = score
    if local is None:
        local = round_half_up(region * local_ratio)
    return ConfidenceSplit(region=region, local=local)


def _visual_cues(value: Any) -> VisualCues:
    if not isinstance(value, dict):
        return VisualCues()
    return VisualCues(
        signs=_text(value.get("signs")),
        architecture=_text(value.get("architecture")),
        environment=_text(value.get("environment")),
        demographics=_text(value.get("demographics")),
    )


# --------------------------------------------------------------------------- #
# Public decoders                                                             #
# --------------------------------------------------------------------------- #


def decode_result(
    data: Dict[str, Any],
    default_score: Optional[int] = None,
    definitive_threshold: Optional[int] = None,
    local_ratio: Optional[float] = None,
) -> AnalysisResult:
    """Normalize a parsed verification payload into an `AnalysisResult` (sources empty)."""
    default_score = settings.default_confidence_score if default_score is None else default_score
    definitive_threshold = (
        settings.definitive_score_threshold if definitive_threshold is None else definitive_threshold
    )
    local_ratio = settings.local_confidence_ratio if local_ratio is None else local_ratio

    raw_score = _number(data.get("confidenceScore"))
    # Rounded first so isDefinitive agrees with the reported confidenceScore.
    score = clamp_percent(default_score if raw_score is None else raw_score)

    return AnalysisResult(
        location_name=_text(data.get("locationName"), UNKNOWN_LOCATION),
        coordinates=_coordinates(data.get("coordinates")),
        confidence_score=score,
        confidence=_confidence(data.get("confidence"), score, local_ratio),
        is_definitive=score >= definitive_threshold,
        reasoning=_text_list(data.get("reasoning")),
        evidence=normalize_evidence(data.get("evidence")),
        alternative_locations=_text_list(data.get("alternativeLocations")),
        uncertainties=_text_list(data.get("uncertainties")),
        visual_cues=_visual_cues(data.get("visualCues")),
        search_queries_used=_text_list(data.get("searchQueriesUsed")),
    )


def decode_response(raw: RawResponse) -> AnalysisResult:
    result = decode_result(extract_json_object(raw.text))
    result.sources = list(raw.sources)
    return result


def _searchable_clues(items: Any) -> List[SearchableClue]:
    if not isinstance(items, list):
        return []
    clues = []
    for item in items:
        if isinstance(item, str):
            item = {"clue": item}
        if not isinstance(item, dict):
            continue
        clue = _text(item.get("clue"))
        if not clue:
            continue
        clues.append(SearchableClue(
            clue=clue,
            type=_text(item.get("type"), "other").lower(),
            search_query=_text(item.get("searchQuery")) or None,
        ))
    return clues


def decode_clue_expert(expert_type: str, text: Optional[str]) -> ClueExpertOutput:
    data = extract_json_object(text)
    return ClueExpertOutput(
        expert_type=expert_type,
        searchable_clues=_searchable_clues(data.get("searchableClues")),
        language_clues=_text_list(data.get("languageClues")),
        transcribed_text=_text_list(data.get("transcribedText")),
        infrastructure_clues=_text_list(data.get("infrastructureClues")),
        architecture_style=_text(data.get("architectureStyle")),
        vegetation_clues=_text_list(data.get("vegetationClues")),
        climate_indicators=_text_list(data.get("climateIndicators")),
    )


def _region_name(value: Any) -> str:
    # Models occasionally send {"name": "..."} where a plain string is expected.
    if isinstance(value, dict):
        value = value.get("name", value.get("region"))
    return _text(value)


def decode_region_expert(expert_type: str, text: Optional[str]) -> ExpertAnalysis:
    data = extract_json_object(text)

    regions = []
    for item in data.get("possibleRegions") or []:
        if not isinstance(item, dict):
            continue
        name = _region_name(item.get("region"))
        if not name:
            continue
        regions.append(PossibleRegion(
            region=name,
            confidence=_number(item.get("confidence")) or 0,
            reasoning=_text(item.get("reasoning")),
        ))

    impossible = data.get("impossibleRegions")
    impossible = impossible if isinstance(impossible, list) else []

    return ExpertAnalysis(
        expert_type=expert_type,
        observations=_text_list(data.get("observations")),
        possible_regions=regions,
        impossible_regions=[n for n in (_region_name(v) for v in impossible) if n],
    )
