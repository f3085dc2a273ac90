"""
System routes: health probe and crawler policy.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from geolocator.config import settings

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(request: Request):
    return {
        "status": "healthy",
        "reasoning_client": getattr(request.app.state, "reasoning_client", None) is not None,
        "model": settings.gemini_model,
        "strategy": settings.analysis_strategy.value,
    }


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
    return "User-agent: *\nDisallow: /"
