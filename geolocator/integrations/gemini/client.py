"""
Gemini reasoning client, the only code that talks to the external service.

One `ReasoningClient` is built at process start (FastAPI lifespan) and passed
to the pipeline explicitly. It is stateless between calls and safe to share
across concurrent requests.

`invoke` returns a `RawResponse` or raises one of the typed `ReasoningError`
variants from `geolocator.errors`. It holds no retry policy of its own beyond
the SDK's transport retries on 408/429/5xx.
"""

import io
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from PIL import Image

from geolocator.config import settings
from geolocator.errors import (
    EmptyResponse,
    ReasoningError,
    ServiceUnavailable,
    ToolInputRejected,
)
from geolocator.schemas.analysis import Source
from geolocator.schemas.requests import ImagePayload

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = [408, 429, 500, 502, 503, 504]

HARM_CATEGORIES = [
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
]


class ReasoningTool(str, Enum):
    WEB_SEARCH = "google_search"
    MAP_LOOKUP = "google_maps"


ALL_TOOLS = (ReasoningTool.WEB_SEARCH, ReasoningTool.MAP_LOOKUP)


@dataclass(frozen=True)
class RawResponse:
    text: str
    sources: List[Source] = field(default_factory=list)


def build_genai_client(api_key: Optional[str] = None) -> genai.Client:
    return genai.Client(
        api_key=api_key or settings.gemini_api_key or None,
        http_options=types.HttpOptions(
            timeout=settings.gemini_http_timeout_ms,
            retry_options=types.HttpRetryOptions(
                attempts=settings.gemini_max_retries,
                initial_delay=settings.gemini_retry_initial_delay,
                max_delay=settings.gemini_retry_max_delay,
                exp_base=settings.gemini_retry_exp_base,
                http_status_codes=TRANSIENT_STATUS_CODES,
            ),
        ),
    )


def build_safety_settings(threshold: Optional[str] = None) -> List[types.SafetySetting]:
    level = types.HarmBlockThreshold(threshold or settings.gemini_safety_threshold)
    return [types.SafetySetting(category=c, threshold=level) for c in HARM_CATEGORIES]


def _tool_config(tools: Iterable[ReasoningTool]) -> List[types.Tool]:
    config = []
    for tool in tools:
        if tool is ReasoningTool.WEB_SEARCH:
            config.append(types.Tool(google_search=types.GoogleSearch()))
        elif tool is ReasoningTool.MAP_LOOKUP:
            config.append(types.Tool(google_maps=types.GoogleMaps()))
    return config


def prepare_image(image: ImagePayload) -> ImagePayload:
    """
    Downscale images above `gemini_max_pixels` to limit token usage and avoid
    payload errors. Keeps aspect ratio. Formats Pillow cannot open pass through
    unchanged.
    """
    try:
        with Image.open(io.BytesIO(image.data)) as img:
            w, h = img.size
            pixels = w * h
            if pixels <= settings.gemini_max_pixels:
                return image

            scale = (settings.gemini_max_pixels / pixels) ** 0.5
            resized = img.resize((int(w * scale), int(h * scale)), Image.Resampling.LANCZOS)
            try:
                if resized.mode != "RGB":
                    rgb = resized.convert("RGB")
                    resized.close()
                    resized = rgb
                buf = io.BytesIO()
                resized.save(buf, format="JPEG", quality=settings.gemini_jpeg_quality)
            finally:
                resized.close()

        logger.info(f"[GEMINI] Resized {w}x{h} image to fit {settings.gemini_max_pixels} px")
        return ImagePayload(data=buf.getvalue(), media_type="image/jpeg")
    except (OSError, ValueError) as e:
        logger.debug(f"[GEMINI] Image left as-is ({image.media_type}): {e}")
        return image


def extract_text(response: types.GenerateContentResponse) -> str:
    """Response text, falling back to the first text part of the first candidate."""
    text = response.text
    if text:
        return text
    for candidate in response.candidates or []:
        content = candidate.content
        for part in (content.parts if content and content.parts else []):
            if part.text:
                return part.text
    return ""


def extract_sources(response: types.GenerateContentResponse) -> List[Source]:
    """Web and map grounding citations of the first candidate, de-duplicated by uri."""
    if not response.candidates:
        return []
    metadata = response.candidates[0].grounding_metadata
    chunks = (metadata.grounding_chunks if metadata else None) or []

    sources: List[Source] = []
    seen = set()
    for chunk in chunks:
        ref = chunk.web or getattr(chunk, "maps", None)
        if ref is None or not ref.uri or ref.uri in seen:
            continue
        seen.add(ref.uri)
        sources.append(Source(title=ref.title or "Source Link", uri=ref.uri))
    return sources


def _empty_reason(response: types.GenerateContentResponse) -> Optional[str]:
    feedback = response.prompt_feedback
    if feedback and feedback.block_reason:
        return str(feedback.block_reason)
    if response.candidates and response.candidates[0].finish_reason:
        return str(response.candidates[0].finish_reason)
    return None


def classify_api_error(err: genai_errors.APIError) -> ReasoningError:
    """Translate an SDK error into the closed set of reasoning-client errors."""
    message = err.message or str(err)
    code = err.code

    if code in TRANSIENT_STATUS_CODES:
        return ServiceUnavailable(status=code, reason=message)
    # The maps tool rejects calls where the model passed raw lat/lng as its query.
    if code == 400 and "coordinates" in message.lower():
        return ToolInputRejected(message, tool=ReasoningTool.MAP_LOOKUP.value)
    return ReasoningError(f"Reasoning service error {code}: {message}", {"status": code})


class ReasoningClient:
    """Thin capability wrapper: images + instruction + tools in, text + sources out."""

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self._client = client or build_genai_client()
        self.model = model or settings.gemini_model

    async def invoke(
        self,
        images: Sequence[ImagePayload],
        instruction: str,
        prompt: str,
        tools: Iterable[ReasoningTool] = (),
        safety_threshold: Optional[str] = None,
    ) -> RawResponse:
        config = types.GenerateContentConfig(
            system_instruction=instruction,
            tools=_tool_config(tools) or None,
            safety_settings=build_safety_settings(safety_threshold),
            temperature=settings.gemini_temperature,
        )
        contents = [types.Part.from_bytes(data=img.data, mime_type=img.media_type) for img in images]
        contents.append(prompt)

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as e:
            raise classify_api_error(e) from e
        except httpx.TimeoutException as e:
            raise ServiceUnavailable(status=408, reason=str(e)) from e
        except httpx.TransportError as e:
            raise ServiceUnavailable(status=None, reason=str(e)) from e

        text = extract_text(response)
        if not text.strip():
            raise EmptyResponse(reason=_empty_reason(response))

        if response.usage_metadata:
            logger.debug(
                f"[GEMINI] tokens prompt={response.usage_metadata.prompt_token_count} "
                f"completion={response.usage_metadata.candidates_token_count}"
            )
        return RawResponse(text=text, sources=extract_sources(response))
