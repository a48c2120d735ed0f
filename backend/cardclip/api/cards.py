"""Card and story endpoints.

Thin glue: the request body is validated by pydantic, the pipeline runs in
a worker thread, and results are wrapped in the response envelope. Pipeline
errors propagate to the CardError handler in main.
"""

import asyncio
import logging
import time
from functools import lru_cache

from fastapi import APIRouter

from cardclip.config import get_settings
from cardclip.middleware.request_context import build_meta, create_request_context
from cardclip.schemas.card import CardRequest
from cardclip.schemas.envelope import EnvelopeResponse
from cardclip.schemas.story import StoryRequest
from cardclip.services.asset_fetcher import AssetFetcher
from cardclip.services.card_pipeline import CardPipeline
from cardclip.services.story_pipeline import StoryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def get_card_pipeline() -> CardPipeline:
    settings = get_settings()
    return CardPipeline(settings, fetcher=get_fetcher())


@lru_cache
def get_story_pipeline() -> StoryPipeline:
    return StoryPipeline(get_settings(), fetcher=get_fetcher())


@lru_cache
def get_fetcher() -> AssetFetcher:
    return AssetFetcher(get_settings())


@router.post("/cards", response_model=EnvelopeResponse, response_model_exclude_none=True)
async def create_card(request: CardRequest) -> EnvelopeResponse:
    """Render a card as an image or a short video."""
    context = create_request_context()
    deadline = time.monotonic() + get_settings().encode_timeout_s

    result = await asyncio.to_thread(get_card_pipeline().render_card, request, deadline)
    if result.degraded:
        context.warnings.append("Video encoder unavailable; returned an image with the audio inline")

    return EnvelopeResponse(
        request_id=context.request_id,
        data=result.model_dump(by_alias=True, exclude_none=True),
        meta=build_meta(context),
    )


@router.post("/stories", response_model=EnvelopeResponse, response_model_exclude_none=True)
async def create_story(request: StoryRequest) -> EnvelopeResponse:
    """Render one frame per story page plus the song clip."""
    context = create_request_context()
    result = await asyncio.to_thread(get_story_pipeline().render_story, request)
    return EnvelopeResponse(
        request_id=context.request_id,
        data=result.model_dump(by_alias=True, exclude_none=True),
        meta=build_meta(context),
    )
