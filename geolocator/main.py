import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables before anything reads settings
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from geolocator.api import analysis, system
from geolocator.config import settings
from geolocator.errors import AllExpertsFailed, PipelineError
from geolocator.integrations.gemini.client import ReasoningClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared reasoning client once; requests only read it."""
    if not settings.gemini_api_key:
        logger.warning("[STARTUP] GEMINI_API_KEY is not set; /analyze will return 503")
        app.state.reasoning_client = None
    else:
        app.state.reasoning_client = ReasoningClient()
        logger.info(
            f"[STARTUP] Reasoning client ready (model={settings.gemini_model}, "
            f"strategy={settings.analysis_strategy.value})"
        )
    yield
    app.state.reasoning_client = None
    logger.info("[SHUTDOWN] Reasoning client released")


app = FastAPI(title="Photo Geolocation API", lifespan=lifespan)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    level = logging.WARNING if isinstance(exc, AllExpertsFailed) else logging.ERROR
    logger.log(level, f"[ERROR HANDLER] {request.url.path}: {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=502, content={"success": False, **exc.to_dict()})


# ---- CORS ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---- Routers ----
app.include_router(system.router)
app.include_router(analysis.router)


if __name__ == "__main__":
    import os

    import uvicorn

    # Hosting platforms inject PORT; default to 8000 locally
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("geolocator.main:app", host="0.0.0.0", port=port, log_level="info")
