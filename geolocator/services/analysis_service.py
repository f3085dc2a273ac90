"""
Glue between the HTTP layer and the pipeline: image preparation, EXIF hint
injection and post-fill around `PipelineOrchestrator`.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from fastapi.concurrency import run_in_threadpool

from geolocator.integrations.gemini.client import prepare_image
from geolocator.pipeline.orchestrator import PipelineOrchestrator
from geolocator.schemas.analysis import AnalysisResult
from geolocator.schemas.requests import ExifSummary, ImagePayload, LocationHints
from geolocator.services.exif_service import apply_exif_gps, extract_first_gps, format_gps_hint

logger = logging.getLogger(__name__)


def _prepare_all(images: Sequence[ImagePayload]) -> List[ImagePayload]:
    return [prepare_image(image) for image in images]


async def run_analysis(
    orchestrator: PipelineOrchestrator,
    images: Sequence[ImagePayload],
    hints: Optional[LocationHints] = None,
) -> Tuple[AnalysisResult, Optional[ExifSummary]]:
    # EXIF is read from the originals; downscaling re-encodes and drops metadata.
    exif = await run_in_threadpool(extract_first_gps, images)
    hints = hints or LocationHints()
    if exif is not None:
        hints = hints.model_copy(update={"exif_gps": format_gps_hint(exif)})

    prepared = await run_in_threadpool(_prepare_all, images)
    result = await orchestrator.analyze(prepared, hints)
    return apply_exif_gps(result, exif), exif


async def run_refinement(
    orchestrator: PipelineOrchestrator,
    images: Sequence[ImagePayload],
    previous: AnalysisResult,
    feedback: str,
    hints: Optional[LocationHints] = None,
) -> AnalysisResult:
    prepared = await run_in_threadpool(_prepare_all, images)
    return await orchestrator.refine(prepared, previous, feedback, hints)
