"""Conversation persistence: per-conversation records plus a shared listing index.

Every mutation rewrites the full record, then upserts the derived metadata into
the listing index as a separate write. The two writes are not atomic: if the
upsert fails, the listing stays stale until the next successful mutation of
that conversation.
"""

import asyncio
import json
import logging
import re
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from llm_council.models import (
    DEFAULT_TITLE,
    AssistantMessage,
    Conversation,
    ConversationMetadata,
    Stage1Result,
    Stage2Result,
    Stage3Result,
    UserMessage,
)

logger = logging.getLogger(__name__)
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class StoreError(Exception):
    """Raised when a store operation cannot be completed."""


class ConversationNotFoundError(StoreError):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _write_json(path: Path, payload: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


class ConversationRecordStore:
    """One JSON document per conversation id.

    Operations addressed to the same id are serialized with a per-id lock so
    read-modify-write cycles never interleave.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, conversation_id: str) -> asyncio.Lock:
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    def _path(self, conversation_id: str) -> Path | None:
        if not _SAFE_ID.match(conversation_id):
            return None
        return self._root / f"{conversation_id}.json"

    def init(self, conversation_id: str, created_at: str, title: str = DEFAULT_TITLE) -> Conversation:
        """Create the record if absent; an existing record is returned as-is."""
        existing = self.get(conversation_id)
        if existing is not None:
            return existing
        path = self._path(conversation_id)
        if path is None:
            raise StoreError(f"Invalid conversation id: {conversation_id!r}")
        conversation = Conversation(id=conversation_id, created_at=created_at, title=title)
        self._root.mkdir(parents=True, exist_ok=True)
        _write_json(path, conversation.to_dict())
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        path = self._path(conversation_id)
        if path is None or not path.exists():
            return None
        return Conversation.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def put(self, conversation: Conversation) -> None:
        path = self._path(conversation.id)
        if path is None:
            raise StoreError(f"Invalid conversation id: {conversation.id!r}")
        self._root.mkdir(parents=True, exist_ok=True)
        _write_json(path, conversation.to_dict())

    def delete(self, conversation_id: str) -> None:
        path = self._path(conversation_id)
        if path is not None:
            path.unlink(missing_ok=True)

    def release_lock(self, conversation_id: str) -> None:
        self._locks.pop(conversation_id, None)


class ConversationListIndex:
    """Single JSON array of ConversationMetadata for cheap enumeration.

    Not locked itself; ConversationStore serializes every write to it.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    def _load(self) -> list[ConversationMetadata]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return [ConversationMetadata.from_dict(item) for item in raw]

    def _save(self, entries: list[ConversationMetadata]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        _write_json(self._path, [e.to_dict() for e in entries])

    def list_all(self) -> list[ConversationMetadata]:
        """All entries, newest first."""
        return sorted(self._load(), key=lambda e: e.created_at, reverse=True)

    def replace(self, entries: list[ConversationMetadata]) -> None:
        self._save(list(entries))

    def upsert(self, meta: ConversationMetadata) -> None:
        entries = self._load()
        for i, entry in enumerate(entries):
            if entry.id == meta.id:
                entries[i] = meta
                break
        else:
            entries.append(meta)
        self._save(entries)


class ConversationStore:
    """Keeps conversation records and the listing index in step.

    File I/O runs in worker threads so long transcripts do not block the
    event loop while a stream is being served.
    """

    def __init__(self, data_dir: Path) -> None:
        self.records = ConversationRecordStore(data_dir / "conversations")
        self.index = ConversationListIndex(data_dir / "conversation_list.json")
        self._index_lock = asyncio.Lock()

    async def create_conversation(self) -> Conversation:
        conversation_id = str(uuid.uuid4())
        async with self.records.lock(conversation_id):
            conversation = await asyncio.to_thread(
                self.records.init, conversation_id, created_at=_utc_now()
            )
        await self._sync_listing(conversation)
        logger.info("Created conversation %s", conversation_id)
        return conversation

    async def _sync_listing(self, conversation: Conversation) -> None:
        async with self._index_lock:
            await asyncio.to_thread(self.index.upsert, conversation.metadata())

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return await asyncio.to_thread(self.records.get, conversation_id)

    async def list_conversations(self) -> list[ConversationMetadata]:
        return await asyncio.to_thread(self.index.list_all)

    async def _mutate(
        self,
        conversation_id: str,
        mutate: Callable[[Conversation], None],
    ) -> Conversation:
        async with self.records.lock(conversation_id):
            conversation = await asyncio.to_thread(self.records.get, conversation_id)
            if conversation is not None:
                mutate(conversation)
                await asyncio.to_thread(self.records.put, conversation)
        if conversation is None:
            self.records.release_lock(conversation_id)
            raise ConversationNotFoundError(conversation_id)
        # Second, independent write: the listing may lag if this fails.
        await self._sync_listing(conversation)
        return conversation

    async def add_user_message(self, conversation_id: str, content: str) -> Conversation:
        return await self._mutate(
            conversation_id,
            lambda c: c.messages.append(UserMessage(content=content)),
        )

    async def add_assistant_message(
        self,
        conversation_id: str,
        stage1: list[Stage1Result],
        stage2: list[Stage2Result],
        stage3: Stage3Result,
    ) -> Conversation:
        message = AssistantMessage(stage1=stage1, stage2=stage2, stage3=stage3)
        return await self._mutate(conversation_id, lambda c: c.messages.append(message))

    async def update_title(self, conversation_id: str, title: str) -> Conversation:
        def set_title(conversation: Conversation) -> None:
            conversation.title = title

        return await self._mutate(conversation_id, set_title)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Remove the record, then rewrite the listing without it. Unknown ids are a no-op."""
        async with self.records.lock(conversation_id):
            await asyncio.to_thread(self.records.delete, conversation_id)
        self.records.release_lock(conversation_id)

        async with self._index_lock:
            entries = await asyncio.to_thread(self.index.list_all)
            await asyncio.to_thread(
                self.index.replace, [e for e in entries if e.id != conversation_id]
            )
        logger.info("Deleted conversation %s", conversation_id)
