"""Abstract inference gateway plus the parallel fan-out over a model panel."""

import asyncio
import logging
from abc import ABC, abstractmethod

from llm_council.models import ModelReply

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]  # {"role": ..., "content": ...}


class InferenceGateway(ABC):
    """Issues chat requests to model backends.

    Implementations must never raise from `query`: every failure (missing
    credentials, network error, non-success status, timeout) resolves to None.
    """

    @abstractmethod
    async def query(
        self,
        model: str,
        messages: list[ChatMessage],
        timeout_sec: float | None = None,
    ) -> ModelReply | None:
        """Send one request to one model.

        Args:
            model: Backend model identifier.
            messages: Chat messages, oldest first.
            timeout_sec: Per-call deadline; None means the gateway default.

        Returns:
            ModelReply on success, None on any failure.
        """
        ...

    async def query_all(
        self,
        models: list[str],
        messages: list[ChatMessage],
        timeout_sec: float | None = None,
    ) -> dict[str, ModelReply | None]:
        """Query every model concurrently and wait for all of them to settle.

        Returns:
            Dict keyed by every requested model, in request order. A None value
            means that model did not contribute.
        """
        results = await asyncio.gather(
            *(self.query(m, messages, timeout_sec) for m in models),
            return_exceptions=True,
        )
        replies: dict[str, ModelReply | None] = {}
        for model, result in zip(models, results):
            if isinstance(result, BaseException):
                logger.warning("Gateway raised for %s, treating as absent: %s", model, result)
                replies[model] = None
            else:
                replies[model] = result
        return replies
