"""
Clue expert runner.

Every expert in a panel sees the same images and hints and never sees another
expert's output. All calls run concurrently and are awaited with wait-all
semantics: a fast failure does not cancel the others. Failed experts are
dropped; only a panel where every expert failed is an error.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from geolocator.errors import AllExpertsFailed
from geolocator.integrations.gemini.client import ReasoningClient
from geolocator.integrations.gemini.prompts import (
    CLUE_EXPERTS,
    REGION_EXPERTS,
    build_expert_prompt,
)
from geolocator.pipeline.decoder import decode_clue_expert, decode_region_expert
from geolocator.schemas.experts import ClueExpertOutput, ExpertAnalysis
from geolocator.schemas.requests import ImagePayload, LocationHints

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_expert(
    client: ReasoningClient,
    name: str,
    instruction: str,
    images: Sequence[ImagePayload],
    prompt: str,
    decode: Callable[[str, str], T],
) -> T:
    # Experts are tool-free: observation only.
    raw = await client.invoke(images, instruction, prompt, tools=())
    return decode(name, raw.text)


async def run_panel(
    client: ReasoningClient,
    panel: Dict[str, str],
    images: Sequence[ImagePayload],
    hints: Optional[LocationHints],
    decode: Callable[[str, str], T],
    request_id: str = "-",
) -> List[T]:
    """Run every expert of `panel` in parallel; return the successes in panel order."""
    prompt = build_expert_prompt(hints)
    names = list(panel)
    logger.info(f"[EXPERTS] {request_id} running {len(names)} experts in parallel: {', '.join(names)}")

    results = await asyncio.gather(
        *(_run_expert(client, name, panel[name], images, prompt, decode) for name in names),
        return_exceptions=True,
    )

    successes = []
    for name, result in zip(names, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.warning(f"[EXPERTS] {request_id} expert '{name}' failed: {type(result).__name__}: {result}")
            continue
        successes.append(result)

    logger.info(f"[EXPERTS] {request_id} {len(successes)}/{len(names)} experts returned results")
    if not successes:
        raise AllExpertsFailed(attempted=len(names))
    return successes


async def run_clue_experts(
    client: ReasoningClient,
    images: Sequence[ImagePayload],
    hints: Optional[LocationHints] = None,
    request_id: str = "-",
) -> List[ClueExpertOutput]:
    outputs = await run_panel(client, CLUE_EXPERTS, images, hints, decode_clue_expert, request_id)
    for output in outputs:
        top = ", ".join(c.clue for c in output.searchable_clues[:3])
        logger.info(
            f"[EXPERTS] {request_id} {output.expert_type}: "
            f"{len(output.searchable_clues)} searchable clues{f' ({top})' if top else ''}"
        )
    return outputs


async def run_region_experts(
    client: ReasoningClient,
    images: Sequence[ImagePayload],
    hints: Optional[LocationHints] = None,
    request_id: str = "-",
) -> List[ExpertAnalysis]:
    return await run_panel(client, REGION_EXPERTS, images, hints, decode_region_expert, request_id)
