"""FastAPI application exposing conversations and the council pipeline.

Endpoints:
    GET    /api/conversations                     - listing index, newest first
    POST   /api/conversations                     - create an empty conversation
    GET    /api/conversations/{id}                - full conversation or 404
    DELETE /api/conversations/{id}                - delete record and listing entry
    POST   /api/conversations/{id}/message        - run the council, whole result
    POST   /api/conversations/{id}/message/stream - run the council, SSE progress
"""

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config.config_loader import AppConfig
from llm_council.council import generate_conversation_title, run_full_council
from llm_council.providers.base import InferenceGateway
from llm_council.providers.openrouter import OpenRouterGateway
from llm_council.storage import ConversationStore
from llm_council.streaming import council_events, detached_sse

logger = logging.getLogger(__name__)


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Conversation not found"}, status_code=404)


def _content_required() -> JSONResponse:
    return JSONResponse({"error": "content is required"}, status_code=400)


async def _read_content(request: Request) -> str | None:
    """Return the non-empty `content` string from a JSON body, else None."""
    try:
        body: Any = await request.json()
    except ValueError:
        return None
    content = body.get("content") if isinstance(body, dict) else None
    if not isinstance(content, str) or not content:
        return None
    return content


def create_app(
    config: AppConfig,
    gateway: InferenceGateway | None = None,
    store: ConversationStore | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        config: Loaded application config.
        gateway: Inference gateway; defaults to OpenRouter.
        store: Conversation store; defaults to one rooted at storage.data_dir.
    """
    gateway = gateway or OpenRouterGateway(config.gateway)
    store = store or ConversationStore(config.storage.data_dir)
    background: set[asyncio.Task] = set()

    app = FastAPI(title="LLM Council API")
    app.state.config = config
    app.state.gateway = gateway
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"status": "ok", "service": "LLM Council API"}

    @app.get("/api/conversations")
    async def list_conversations() -> list[dict[str, Any]]:
        return [meta.to_dict() for meta in await store.list_conversations()]

    @app.post("/api/conversations")
    async def create_conversation() -> dict[str, Any]:
        conversation = await store.create_conversation()
        return conversation.to_dict()

    @app.get("/api/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str):
        conversation = await store.get_conversation(conversation_id)
        if conversation is None:
            return _not_found()
        return conversation.to_dict()

    @app.delete("/api/conversations/{conversation_id}")
    async def delete_conversation(conversation_id: str) -> dict[str, bool]:
        await store.delete_conversation(conversation_id)
        return {"ok": True}

    @app.post("/api/conversations/{conversation_id}/message")
    async def send_message(conversation_id: str, request: Request):
        content = await _read_content(request)
        if content is None:
            return _content_required()

        conversation = await store.get_conversation(conversation_id)
        if conversation is None:
            return _not_found()

        is_first_message = not conversation.messages
        await store.add_user_message(conversation_id, content)

        title: str | None = None
        if is_first_message:
            title = await generate_conversation_title(gateway, config, content)
            await store.update_title(conversation_id, title)

        result = await run_full_council(gateway, config, content)
        await store.add_assistant_message(conversation_id, result.stage1, result.stage2, result.stage3)

        payload = result.to_dict()
        if title:
            payload["metadata"]["title"] = title
        return payload

    @app.post("/api/conversations/{conversation_id}/message/stream")
    async def send_message_stream(conversation_id: str, request: Request):
        content = await _read_content(request)
        if content is None:
            return _content_required()

        conversation = await store.get_conversation(conversation_id)
        if conversation is None:
            return _not_found()

        events = council_events(
            gateway,
            config,
            store,
            conversation_id,
            content,
            is_first_message=not conversation.messages,
        )
        return StreamingResponse(
            detached_sse(events, background),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    return app
