"""OpenRouter gateway using the openai SDK (OpenAI-compatible chat completions API)."""

import asyncio
import logging
import os
import time

from openai import APIStatusError, AsyncOpenAI

from config.config_loader import GatewayConfig
from llm_council.models import ModelReply
from llm_council.providers.base import ChatMessage, InferenceGateway

logger = logging.getLogger(__name__)


class OpenRouterGateway(InferenceGateway):
    """Routes every model identifier through one OpenRouter endpoint."""

    def __init__(self, config: GatewayConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        self._client = client
        if self._client is None:
            api_key = os.environ.get(config.api_key_env, "").strip()
            if api_key:
                self._client = AsyncOpenAI(
                    api_key=api_key,
                    base_url=config.base_url,
                    max_retries=0,
                )

    async def query(
        self,
        model: str,
        messages: list[ChatMessage],
        timeout_sec: float | None = None,
    ) -> ModelReply | None:
        if self._client is None:
            logger.error("Missing API key: %s", self._config.api_key_env)
            return None

        timeout = timeout_sec if timeout_sec is not None else self._config.timeout_sec
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(model=model, messages=messages),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning("Model %s timed out after %.0fs", model, timeout)
            return None
        except APIStatusError as exc:
            logger.error("OpenRouter error for %s: %s %s", model, exc.status_code, exc.message)
            return None
        except Exception as exc:
            logger.error("Error querying model %s: %s", model, exc)
            return None

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if choice is None or choice.message is None:
            logger.warning("Model %s returned no choices", model)
            return None

        logger.debug("Model %s answered in %.2fs", model, latency)

        return ModelReply(
            model=model,
            content=choice.message.content or "",
            reasoning_details=getattr(choice.message, "reasoning_details", None),
            latency_sec=latency,
        )
