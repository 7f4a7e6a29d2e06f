"""Model health checks: ping each configured model through the gateway."""

import logging

from llm_council.providers.base import InferenceGateway

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."


async def run_health_checks(
    gateway: InferenceGateway,
    models: list[str],
    timeout_sec: float = 15.0,
) -> dict[str, tuple[bool, str]]:
    """Ping all models in parallel.

    Returns:
        Dict mapping model -> (ok, error_message).
        error_message is "" when ok is True.
    """
    unique = list(dict.fromkeys(models))
    replies = await gateway.query_all(
        unique,
        [{"role": "user", "content": _PING_PROMPT}],
        timeout_sec=timeout_sec,
    )
    results: dict[str, tuple[bool, str]] = {}
    for model in unique:
        if replies.get(model) is None:
            results[model] = (False, "no reply (see log for cause)")
        else:
            results[model] = (True, "")
    logger.info("Health check: %d/%d models OK", sum(ok for ok, _ in results.values()), len(unique))
    return results
