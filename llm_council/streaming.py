"""Stage-by-stage progress events for one council run, and their SSE encoding.

`council_events` is a one-shot async generator: events come out strictly in
order and the sequence ends after `complete` or after a single `error`.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from config.config_loader import AppConfig
from llm_council.council import (
    all_models_failed,
    generate_conversation_title,
    stage1_collect_responses,
    stage2_collect_rankings,
    stage3_synthesize_final,
)
from llm_council.models import Stage2Result, build_metadata
from llm_council.providers.base import InferenceGateway
from llm_council.ranking import calculate_aggregate_rankings
from llm_council.storage import ConversationStore

logger = logging.getLogger(__name__)

Event = dict[str, Any]


async def council_events(
    gateway: InferenceGateway,
    config: AppConfig,
    store: ConversationStore,
    conversation_id: str,
    content: str,
    is_first_message: bool,
) -> AsyncIterator[Event]:
    """Run the council for one user turn, yielding progress events.

    The user message is persisted before stage 1 and the assistant message
    before `complete`, so `complete` implies both writes succeeded.
    """
    title_task: asyncio.Task[str] | None = None
    try:
        await store.add_user_message(conversation_id, content)
        if is_first_message:
            title_task = asyncio.create_task(generate_conversation_title(gateway, config, content))

        yield {"type": "stage1_start"}
        stage1 = await stage1_collect_responses(gateway, config, content)
        yield {"type": "stage1_complete", "data": [r.to_dict() for r in stage1]}

        yield {"type": "stage2_start"}
        stage2: list[Stage2Result] = []
        metadata: dict[str, Any] = {}
        if stage1:
            stage2, label_to_model = await stage2_collect_rankings(gateway, config, content, stage1)
            aggregate = calculate_aggregate_rankings(stage2, label_to_model)
            metadata = build_metadata(label_to_model, aggregate)
        yield {
            "type": "stage2_complete",
            "data": [r.to_dict() for r in stage2],
            "metadata": metadata,
        }

        yield {"type": "stage3_start"}
        if stage1:
            stage3 = await stage3_synthesize_final(gateway, config, content, stage1, stage2)
        else:
            stage3 = all_models_failed()
        yield {"type": "stage3_complete", "data": stage3.to_dict()}

        if title_task is not None:
            title = await title_task
            await store.update_title(conversation_id, title)
            yield {"type": "title_complete", "data": {"title": title}}

        await store.add_assistant_message(conversation_id, stage1, stage2, stage3)
        yield {"type": "complete"}
    except Exception as exc:
        logger.exception("Stream error for conversation %s", conversation_id)
        yield {"type": "error", "message": str(exc) or "Unknown error"}
    finally:
        if title_task is not None and not title_task.done():
            title_task.cancel()


def format_sse(event: Event) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


async def detached_sse(
    events: AsyncIterator[Event],
    background: set[asyncio.Task],
) -> AsyncIterator[str]:
    """Encode events as SSE while the producer runs as its own task.

    A client that disconnects stops reading, but the producer keeps running
    so in-flight model calls and pending writes still finish.
    """
    queue: asyncio.Queue[Event | None] = asyncio.Queue()

    async def pump() -> None:
        try:
            async for event in events:
                await queue.put(event)
        finally:
            await queue.put(None)

    task = asyncio.create_task(pump())
    background.add(task)
    task.add_done_callback(background.discard)

    while True:
        event = await queue.get()
        if event is None:
            break
        yield format_sse(event)
