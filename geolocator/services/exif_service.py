"""
EXIF GPS extraction.

The first uploaded image carrying plausible GPS coordinates becomes a prompt
hint, and afterwards a fallback for results that came back without
coordinates. Unreadable metadata is never an error; the image simply has no GPS.
"""

import io
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from PIL import Image
from PIL.ExifTags import GPSTAGS, TAGS

from geolocator.config import settings
from geolocator.schemas.analysis import AnalysisResult, Coordinates
from geolocator.schemas.requests import ExifSummary, ImagePayload

logger = logging.getLogger(__name__)

GPS_IFD = 0x8825
EXIF_IFD = 0x8769

EXIF_NOTE = "Location coordinates extracted from image EXIF metadata."


def _to_degrees(value: Any) -> Optional[float]:
    """(degrees, minutes, seconds) rationals → decimal degrees."""
    try:
        if isinstance(value, (tuple, list)):
            parts = [float(v) for v in value] + [0.0, 0.0]
            return parts[0] + parts[1] / 60.0 + parts[2] / 3600.0
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def parse_gps_ifd(gps: Dict[Any, Any]) -> Optional[Dict[str, float]]:
    """Decode a GPS IFD (keyed by numeric tag or tag name) into signed lat/lng/alt."""
    named = {GPSTAGS.get(k, k): v for k, v in gps.items()}

    lat = _to_degrees(named.get("GPSLatitude"))
    lng = _to_degrees(named.get("GPSLongitude"))
    if lat is None or lng is None:
        return None
    if str(named.get("GPSLatitudeRef", "N")).upper().startswith("S"):
        lat = -lat
    if str(named.get("GPSLongitudeRef", "E")).upper().startswith("W"):
        lng = -lng

    decoded = {"latitude": lat, "longitude": lng}
    altitude = _to_degrees(named.get("GPSAltitude"))
    if altitude is not None:
        ref = named.get("GPSAltitudeRef", 0)
        below_sea = ref in (1, b"\x01")
        decoded["altitude"] = -altitude if below_sea else altitude
    return decoded


def validate_gps(lat: float, lng: float) -> bool:
    # 0,0 is the usual placeholder written by apps that strip location
    if lat == 0 and lng == 0:
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def read_exif_gps(data: bytes) -> Optional[Dict[str, Any]]:
    """GPS plus camera fields from one image, or None when it has no usable GPS."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            if not exif:
                return None
            gps = parse_gps_ifd(dict(exif.get_ifd(GPS_IFD)))
            if gps is None:
                return None

            base = {TAGS.get(tag, tag): value for tag, value in exif.items()}
            sub = {TAGS.get(tag, tag): value for tag, value in exif.get_ifd(EXIF_IFD).items()}
    except (OSError, ValueError, SyntaxError) as e:
        logger.debug(f"[EXIF] Could not read metadata: {e}")
        return None

    gps["make"] = _clean(base.get("Make"))
    gps["model"] = _clean(base.get("Model"))
    gps["software"] = _clean(base.get("Software"))
    gps["timestamp"] = _timestamp(sub.get("DateTimeOriginal") or base.get("DateTime"))
    return gps


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None
    return value.strip("\x00 ").strip() or None


def _timestamp(value: Any) -> Optional[str]:
    text = _clean(value)
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y:%m:%d %H:%M:%S").isoformat()
    except ValueError:
        return text


def extract_first_gps(images: Sequence[ImagePayload]) -> Optional[ExifSummary]:
    for index, image in enumerate(images):
        gps = read_exif_gps(image.data)
        if gps is None:
            continue
        if not validate_gps(gps["latitude"], gps["longitude"]):
            logger.info(f"[EXIF] Image {index}: ignoring implausible GPS {gps['latitude']}, {gps['longitude']}")
            continue
        logger.info(f"[EXIF] Image {index}: GPS {gps['latitude']:.6f}, {gps['longitude']:.6f}")
        return ExifSummary(image_index=index, **gps)
    return None


def format_gps_hint(summary: ExifSummary) -> str:
    info = f"EXIF GPS found: {summary.latitude:.6f}, {summary.longitude:.6f}"
    if summary.altitude:
        info += f" at {summary.altitude:.0f}m altitude"
    if summary.timestamp:
        info += f". Photo taken: {summary.timestamp}"
    if summary.make or summary.model:
        info += f". Camera: {' '.join(p for p in (summary.make, summary.model) if p)}"
    return info


def apply_exif_gps(result: AnalysisResult, summary: Optional[ExifSummary]) -> AnalysisResult:
    """Trust EXIF coordinates when the model returned none."""
    if summary is None or result.coordinates is not None:
        return result
    result.coordinates = Coordinates(lat=summary.latitude, lng=summary.longitude)
    result.reasoning.insert(0, EXIF_NOTE)
    result.confidence_score = max(result.confidence_score, settings.exif_min_confidence)
    # A consensus decision owns isDefinitive when it produced candidates.
    if result.candidates is None:
        result.is_definitive = result.confidence_score >= settings.definitive_score_threshold
    logger.info(f"[EXIF] Filled missing coordinates from image {summary.image_index}")
    return result
