"""
FastAPI dependencies.

The reasoning client is built once in the lifespan hook and lives on
`app.state`; every request gets an orchestrator bound to that shared client.
"""

from fastapi import HTTPException, Request

from geolocator.integrations.gemini.client import ReasoningClient
from geolocator.pipeline.orchestrator import PipelineOrchestrator


def get_reasoning_client(request: Request) -> ReasoningClient:
    client = getattr(request.app.state, "reasoning_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Reasoning service not configured")
    return client


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return PipelineOrchestrator(get_reasoning_client(request))
