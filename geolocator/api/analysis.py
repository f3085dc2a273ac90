"""
Analysis routes: /analyze and /analyze/refine

JSON bodies carry 1..max_images base64 images (plain or data URI) plus
optional location hints. Pipeline errors are rendered by the handler in
`geolocator.main`.
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from geolocator.core.dependencies import get_orchestrator
from geolocator.core.image_validator import validate_images
from geolocator.pipeline.orchestrator import PipelineOrchestrator
from geolocator.schemas.requests import (
    AnalyzeRequest,
    AnalyzeResponse,
    RefineRequest,
    RefineResponse,
)
from geolocator.services.analysis_service import run_analysis, run_refinement

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["Analysis"])


@router.post("", response_model=AnalyzeResponse, response_model_by_alias=True)
async def analyze(
    body: AnalyzeRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    images = validate_images(body.images)

    start_time = time.time()
    result, exif = await run_analysis(orchestrator, images, body.hints)
    logger.info(
        f"[ANALYZE] {len(images)} image(s) → {result.location_name!r} "
        f"({result.confidence_score}%) in {time.time() - start_time:.2f}s"
    )
    return AnalyzeResponse(result=result, exif_data=exif)


@router.post("/refine", response_model=RefineResponse, response_model_by_alias=True)
async def refine(
    body: RefineRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    if body.previous_result is None or not (body.user_feedback or "").strip():
        raise HTTPException(status_code=400, detail="previousResult and userFeedback are required")
    images = validate_images(body.images)

    start_time = time.time()
    result = await run_refinement(orchestrator, images, body.previous_result, body.user_feedback, body.hints)
    logger.info(f"[REFINE] → {result.location_name!r} ({result.confidence_score}%) in {time.time() - start_time:.2f}s")
    return RefineResponse(result=result)
