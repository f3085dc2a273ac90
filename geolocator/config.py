"""
Central application configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    ANALYSIS_STRATEGY=region_consensus uvicorn geolocator.main:app
    export DEFINITIVE_THRESHOLD=70                # staging override

A `.env` file at the project root is loaded automatically.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisStrategy(str, Enum):
    """Which expert panel and aggregation path the pipeline runs."""

    CLUE_FOCUSED = "clue_focused"
    REGION_CONSENSUS = "region_consensus"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # DEFINITIVE_THRESHOLD == definitive_threshold
        extra="ignore",         # silently drop unknown env vars
    )

    # ------------------------------------------------------------------ #
    # Gemini Client                                                       #
    # ------------------------------------------------------------------ #
    gemini_api_key: str = Field(
        "", description="API key for the reasoning service"
    )
    gemini_model: str = Field(
        "gemini-2.5-flash", description="Model used for every pipeline call"
    )
    gemini_http_timeout_ms: int = Field(
        120_000, description="HTTP client total timeout (ms); search-grounded calls are slow"
    )
    gemini_max_retries: int = Field(
        2, description="Transport-level attempts on 408/429/5xx"
    )
    gemini_retry_initial_delay: float = Field(
        1.0, description="First retry delay (seconds)"
    )
    gemini_retry_max_delay: float = Field(
        5.0, description="Max retry back-off delay (seconds)"
    )
    gemini_retry_exp_base: float = Field(
        2.0, description="Exponential back-off multiplier"
    )
    gemini_temperature: float = Field(
        1.0, description="Sampling temperature"
    )
    gemini_max_pixels: int = Field(
        4_194_304, description="2048×2048 resize cap before upload"
    )
    gemini_jpeg_quality: int = Field(
        90, description="JPEG quality when a resized image is re-encoded"
    )
    gemini_safety_threshold: str = Field(
        "BLOCK_ONLY_HIGH", description="HarmBlockThreshold applied to every harm category"
    )

    # ------------------------------------------------------------------ #
    # Pipeline                                                            #
    # ------------------------------------------------------------------ #
    analysis_strategy: AnalysisStrategy = Field(
        AnalysisStrategy.CLUE_FOCUSED, description="Expert panel + aggregation path"
    )
    max_images: int = Field(
        4, description="Max images accepted per request"
    )
    max_image_upload_mb: int = Field(
        20, description="Max MB per decoded image"
    )
    aggregation_top_n: int = Field(
        25, description="Items kept per clue list when building the verification prompt"
    )

    # ------------------------------------------------------------------ #
    # Consensus / Candidates                                              #
    # ------------------------------------------------------------------ #
    consensus_veto_penalty: int = Field(
        50, description="Score subtracted per 'impossible region' veto"
    )
    consensus_candidate_pool: int = Field(
        5, description="Top-N regions normalized into probabilities"
    )
    definitive_threshold: int = Field(
        75, description="Top probability >= this → definitive"
    )
    definitive_gap: int = Field(
        40, description="Top minus second >= this → definitive"
    )
    candidate_noise_floor: int = Field(
        15, description="Ambiguous candidates below this probability are dropped"
    )
    max_candidates: int = Field(
        3, description="Max candidates returned for an ambiguous result"
    )

    # ------------------------------------------------------------------ #
    # Result Decoder                                                      #
    # ------------------------------------------------------------------ #
    default_confidence_score: int = Field(
        50, description="confidenceScore when the response omits it"
    )
    definitive_score_threshold: int = Field(
        80, description="confidenceScore >= this → isDefinitive (before candidate override)"
    )
    local_confidence_ratio: float = Field(
        0.7, description="Missing local confidence = region × this"
    )

    # ------------------------------------------------------------------ #
    # Fallback & EXIF                                                     #
    # ------------------------------------------------------------------ #
    fallback_confidence: int = Field(
        20, description="Region confidence of a clue-only fallback result"
    )
    fallback_local_confidence: int = Field(
        5, description="Local confidence of a clue-only fallback result"
    )
    exif_min_confidence: int = Field(
        85, description="confidenceScore floor when EXIF GPS fills in coordinates"
    )

    # ------------------------------------------------------------------ #
    # Derived byte-level properties (computed from MB fields)             #
    # ------------------------------------------------------------------ #
    @property
    def max_image_upload_bytes(self) -> int:
        return self.max_image_upload_mb * 1024 * 1024


# Single shared instance; import this everywhere.
settings = Settings()
