from typing import Dict, List, Optional

from pydantic import Field, field_validator

from geolocator.schemas.analysis import CamelModel, LocationCandidate, clamp_percent


# --------------------------------------------------------------------------- #
# Clue-focused expert flavor                                                  #
# --------------------------------------------------------------------------- #


class SearchableClue(CamelModel):
    clue: str
    type: str = "other"   # business_name, street_name, phone, landmark, ...
    search_query: Optional[str] = None


class ClueExpertOutput(CamelModel):
    expert_type: str
    searchable_clues: List[SearchableClue] = []
    language_clues: List[str] = []
    transcribed_text: List[str] = []
    infrastructure_clues: List[str] = []
    architecture_style: str = ""
    vegetation_clues: List[str] = []
    climate_indicators: List[str] = []


class AggregatedClues(CamelModel):
    searchable_clues: List[SearchableClue] = []
    all_text: List[str] = []
    all_infrastructure: List[str] = []
    all_nature: List[str] = []
    suggested_search_queries: List[str] = []


# --------------------------------------------------------------------------- #
# Region-consensus expert flavor                                              #
# --------------------------------------------------------------------------- #


class PossibleRegion(CamelModel):
    region: str
    confidence: int = 0
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_percent(v)


class ExpertAnalysis(CamelModel):
    expert_type: str
    observations: List[str] = []
    possible_regions: List[PossibleRegion] = []
    impossible_regions: List[str] = []


class RegionScore(CamelModel):
    region: str
    score: int = 0
    supporters: List[str] = []
    contradictors: List[str] = []

    @property
    def is_conflicted(self) -> bool:
        return bool(self.supporters) and bool(self.contradictors)


class ExpertConsensus(CamelModel):
    observations: Dict[str, List[str]] = {}
    ranked_regions: List[RegionScore] = []   # score descending
    conflicts: List[str] = []


class CandidateDecision(CamelModel):
    is_definitive: bool = False
    candidates: List[LocationCandidate] = Field(default_factory=list)
