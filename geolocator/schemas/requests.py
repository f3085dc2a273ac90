from typing import List, Optional

from pydantic import ConfigDict, Field

from geolocator.schemas.analysis import AnalysisResult, CamelModel


class ImagePayload(CamelModel):
    """Decoded image bytes shared read-only by every stage of one request."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    media_type: str = "image/jpeg"


class LocationHints(CamelModel):
    model_config = ConfigDict(frozen=True)

    continent: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    additional_info: Optional[str] = None
    exif_gps: Optional[str] = None
    reverse_image_search: Optional[str] = None

    @property
    def has_place(self) -> bool:
        return bool(self.continent or self.country or self.city)

    @property
    def has_user_context(self) -> bool:
        return self.has_place or bool(self.additional_info)


# --------------------------------------------------------------------------- #
# HTTP bodies                                                                 #
# --------------------------------------------------------------------------- #


class ImageInput(CamelModel):
    data: str = Field(description="Base64 payload or data URI")
    mime_type: str = "image/jpeg"


class AnalyzeRequest(CamelModel):
    images: List[ImageInput] = []
    hints: Optional[LocationHints] = None


class RefineRequest(CamelModel):
    images: List[ImageInput] = []
    previous_result: Optional[AnalysisResult] = None
    user_feedback: Optional[str] = None
    hints: Optional[LocationHints] = None


class ExifSummary(CamelModel):
    image_index: int
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    make: Optional[str] = None
    model: Optional[str] = None
    software: Optional[str] = None
    timestamp: Optional[str] = None


class AnalyzeResponse(CamelModel):
    success: bool = True
    result: AnalysisResult
    exif_data: Optional[ExifSummary] = None


class RefineResponse(CamelModel):
    success: bool = True
    result: AnalysisResult
