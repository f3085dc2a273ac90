from geolocator.schemas.analysis import (
    AnalysisResult,
    ConfidenceSplit,
    Coordinates,
    EvidenceItem,
    EvidenceStrength,
    LocationCandidate,
    Source,
    VisualCues,
)
from geolocator.schemas.experts import (
    AggregatedClues,
    CandidateDecision,
    ClueExpertOutput,
    ExpertAnalysis,
    ExpertConsensus,
    PossibleRegion,
    RegionScore,
    SearchableClue,
)
from geolocator.schemas.requests import (
    AnalyzeRequest,
    AnalyzeResponse,
    ExifSummary,
    ImageInput,
    ImagePayload,
    LocationHints,
    RefineRequest,
    RefineResponse,
)

__all__ = [
    "AnalysisResult",
    "ConfidenceSplit",
    "Coordinates",
    "EvidenceItem",
    "EvidenceStrength",
    "LocationCandidate",
    "Source",
    "VisualCues",
    "AggregatedClues",
    "CandidateDecision",
    "ClueExpertOutput",
    "ExpertAnalysis",
    "ExpertConsensus",
    "PossibleRegion",
    "RegionScore",
    "SearchableClue",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "ExifSummary",
    "ImageInput",
    "ImagePayload",
    "LocationHints",
    "RefineRequest",
    "RefineResponse",
]
