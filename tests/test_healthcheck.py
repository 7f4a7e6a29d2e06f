"""Unit tests for llm_council/healthcheck.py. No real API calls."""

import asyncio

from llm_council.healthcheck import run_health_checks
from llm_council.models import ModelReply
from llm_council.providers.base import InferenceGateway
from tests.conftest import MockGateway


async def test_all_models_pass():
    gateway = MockGateway({"m/a": "OK", "m/b": "OK"})
    results = await run_health_checks(gateway, ["m/a", "m/b"])
    assert results == {"m/a": (True, ""), "m/b": (True, "")}


async def test_one_model_fails():
    gateway = MockGateway({"m/a": "OK"})
    results = await run_health_checks(gateway, ["m/a", "m/b"])
    assert results["m/a"] == (True, "")
    ok, err = results["m/b"]
    assert ok is False
    assert err


async def test_duplicates_checked_once():
    """Chairman candidates often repeat panel models."""
    gateway = MockGateway({"m/a": "OK"})
    results = await run_health_checks(gateway, ["m/a", "m/a", "m/b"])
    assert list(results) == ["m/a", "m/b"]
    assert len(gateway.calls) == 2


async def test_empty_model_list():
    assert await run_health_checks(MockGateway({}), []) == {}


async def test_timeout_is_passed_to_gateway():
    seen: list[float | None] = []

    class RecordingGateway(InferenceGateway):
        async def query(self, model, messages, timeout_sec=None):
            seen.append(timeout_sec)
            await asyncio.sleep(0)
            return ModelReply(model=model, content="OK")

    await run_health_checks(RecordingGateway(), ["m/a"], timeout_sec=0.5)
    assert seen == [0.5]
