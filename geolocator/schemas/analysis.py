from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() is banker's rounding)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def clamp_percent(value: float) -> int:
    """Round to an int and clamp into [0, 100]."""
    return max(0, min(100, round_half_up(value)))


class CamelModel(BaseModel):
    """Wire format is camelCase; Python attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EvidenceStrength(str, Enum):
    HARD = "hard"       # readable text, signs, plates, verified business names
    MEDIUM = "medium"   # infrastructure, road markings, architectural style
    SOFT = "soft"       # vegetation, weather, general appearance

    @property
    def rank(self) -> int:
        return {"hard": 3, "medium": 2, "soft": 1}[self.value]


class Coordinates(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class EvidenceItem(CamelModel):
    clue: str
    strength: EvidenceStrength = EvidenceStrength.SOFT
    supports: str


class ConfidenceSplit(CamelModel):
    region: int = 0
    local: int = 0

    @field_validator("region", "local", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_percent(v)


class VisualCues(CamelModel):
    signs: str = ""
    architecture: str = ""
    environment: str = ""
    demographics: Optional[str] = ""


class Source(CamelModel):
    """Grounding citation returned alongside a reasoning response."""
    title: str
    uri: str


class LocationCandidate(CamelModel):
    location_name: str
    coordinates: Optional[Coordinates] = None
    probability: int = 0
    reasoning: List[str] = []
    key_evidence: List[str] = []

    @field_validator("probability", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_percent(v)


class AnalysisResult(CamelModel):
    """The pipeline's output contract."""

    location_name: str
    coordinates: Optional[Coordinates] = None
    confidence_score: int
    confidence: ConfidenceSplit
    is_definitive: bool
    candidates: Optional[List[LocationCandidate]] = None
    reasoning: List[str] = []
    evidence: List[EvidenceItem] = []
    alternative_locations: List[str] = []
    uncertainties: List[str] = []
    visual_cues: VisualCues = Field(default_factory=VisualCues)
    search_queries_used: List[str] = []
    sources: List[Source] = []

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_percent(v)

    @model_validator(mode="after")
    def _candidates_only_when_ambiguous(self):
        if self.is_definitive or not self.candidates:
            self.candidates = None
        elif len(self.candidates) > 3:
            self.candidates = self.candidates[:3]
        return self

    def with_candidates(self, is_definitive: bool, candidates: List[LocationCandidate]) -> "AnalysisResult":
        """Return a copy carrying a candidate decision, re-validated."""
        data = self.model_dump()
        data["is_definitive"] = is_definitive
        data["candidates"] = [c.model_dump() for c in candidates]
        return AnalysisResult.model_validate(data)
