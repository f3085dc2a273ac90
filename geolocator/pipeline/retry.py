"""
Retry/fallback controller for one logical reasoning call.

Fallback chain, each step taken at most once:
  1. full capability: images + web search + map lookup
  2. ToolInputRejected → same call with the rejected tool removed
  3. EmptyResponse (from 1 or 2) → text-only: no images, web search only
  4. anything else recognized → VerificationFailed

Transient 408/429/5xx are retried inside the SDK transport; by the time a
ServiceUnavailable reaches us that budget is spent. Unclassified
ReasoningError propagates untouched.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from geolocator.errors import (
    EmptyResponse,
    ServiceUnavailable,
    ToolInputRejected,
    VerificationFailed,
)
from geolocator.integrations.gemini.client import (
    ALL_TOOLS,
    RawResponse,
    ReasoningClient,
    ReasoningTool,
)
from geolocator.schemas.requests import ImagePayload

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ControlledResponse:
    raw: RawResponse
    text_only: bool
    attempts: int
    tools: Sequence[ReasoningTool]


class RetryController:
    def __init__(self, client: ReasoningClient):
        self.client = client

    async def run(
        self,
        images: Sequence[ImagePayload],
        instruction: str,
        prompt: str,
        text_only_prompt: Optional[str] = None,
        request_id: str = "-",
    ) -> ControlledResponse:
        tools: List[ReasoningTool] = list(ALL_TOOLS)
        tool_dropped = False
        text_only = False

        for attempt in range(1, MAX_ATTEMPTS + 1):
            call_images = [] if text_only else list(images)
            call_prompt = (text_only_prompt or prompt) if text_only else prompt
            logger.info(
                f"[RETRY] {request_id} attempt {attempt}: "
                f"images={len(call_images)} tools={[t.value for t in tools]}"
            )
            try:
                raw = await self.client.invoke(call_images, instruction, call_prompt, tools)
                return ControlledResponse(raw=raw, text_only=text_only, attempts=attempt, tools=tuple(tools))

            except ToolInputRejected as e:
                offending = ReasoningTool(e.tool) if e.tool in (t.value for t in ReasoningTool) else None
                if tool_dropped or text_only or offending not in tools:
                    raise VerificationFailed(f"tool input rejected: {e.detail}", attempt) from e
                logger.warning(f"[RETRY] {request_id} {offending.value} rejected its input; retrying without it")
                tools.remove(offending)
                tool_dropped = True

            except EmptyResponse as e:
                if text_only:
                    raise VerificationFailed("empty response in text-only mode", attempt) from e
                logger.warning(f"[RETRY] {request_id} empty response ({e.reason}); retrying text-only")
                text_only = True
                tools = [ReasoningTool.WEB_SEARCH]

            except ServiceUnavailable as e:
                logger.error(f"[RETRY] {request_id} service unavailable (status={e.status})")
                raise VerificationFailed(e.message, attempt) from e

        raise VerificationFailed("retry budget exhausted", MAX_ATTEMPTS)
