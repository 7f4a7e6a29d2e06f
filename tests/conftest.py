"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    CouncilConfig,
    GatewayConfig,
    PromptsConfig,
    ServerConfig,
    StorageConfig,
)
from llm_council.models import ModelReply, Stage1Result, Stage2Result
from llm_council.providers.base import ChatMessage, InferenceGateway
from llm_council.storage import ConversationStore

PANEL = ["m/alpha", "m/beta", "m/gamma"]


class MockGateway(InferenceGateway):
    """Test double gateway.

    `replies` maps model -> answer text, None (simulated failure) or a
    callable taking the prompt text and returning either. Models missing from
    the mapping fail. Every call is recorded in `calls` as (model, prompt).
    """

    def __init__(self, replies: dict | None = None) -> None:
        self.replies = dict(replies or {})
        self.calls: list[tuple[str, str]] = []

    async def query(
        self,
        model: str,
        messages: list[ChatMessage],
        timeout_sec: float | None = None,
    ) -> ModelReply | None:
        prompt = messages[-1]["content"]
        self.calls.append((model, prompt))
        answer = self.replies.get(model)
        if callable(answer):
            answer = answer(prompt)
        if answer is None:
            return None
        return ModelReply(model=model, content=answer, latency_sec=0.01)

    def prompts_for(self, model: str) -> list[str]:
        return [prompt for m, prompt in self.calls if m == model]


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        ranking="RANK. Question: {question}\n\n{responses}\n\nEnd with FINAL RANKING:",
        synthesis="CHAIR. Question: {question}\n\nS1:\n{stage1}\n\nS2:\n{stage2}",
        title="TITLE. {question}",
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        gateway=GatewayConfig(
            base_url="https://example.invalid/api/v1",
            api_key_env="TEST_OPENROUTER_KEY",
            timeout_sec=120,
            title_timeout_sec=30,
        ),
        council=CouncilConfig(
            panel=list(PANEL),
            chairman="m/chair",
            chairman_fallbacks=["m/fallback-1", "m/fallback-2"],
            title_model="m/title",
        ),
        storage=StorageConfig(data_dir=tmp_path / "data"),
        server=ServerConfig(cors_origins=["http://localhost:5173"]),
        prompts=sample_prompts_config,
    )


def ranking_answer(*labels: str) -> str:
    """Free-text judge answer ending in a well-formed FINAL RANKING block."""
    lines = [f"{i}. Response {label}" for i, label in enumerate(labels, start=1)]
    return "Critique of every response.\n\nFINAL RANKING:\n" + "\n".join(lines)


def council_replies(ranking: str | None = None, chairman: str = "Final synthesized answer.") -> dict:
    """Replies for a fully healthy council: panel answers and ranks, chairman synthesizes."""
    ranking = ranking or ranking_answer("A", "B", "C")

    def panel_member(name: str):
        def reply(prompt: str) -> str:
            return ranking if prompt.startswith("RANK.") else f"Answer from {name}"
        return reply

    replies: dict = {model: panel_member(model) for model in PANEL}
    replies["m/chair"] = chairman
    replies["m/title"] = "Short Title"
    return replies


@pytest.fixture
def mock_gateway() -> MockGateway:
    return MockGateway(council_replies())


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    return ConversationStore(tmp_path / "data")


@pytest.fixture
def sample_stage1() -> list[Stage1Result]:
    return [
        Stage1Result(model="m/alpha", response="Alpha says YAML."),
        Stage1Result(model="m/beta", response="Beta says JSON."),
        Stage1Result(model="m/gamma", response="Gamma says TOML."),
    ]


@pytest.fixture
def sample_stage2() -> list[Stage2Result]:
    return [
        Stage2Result(model="m/alpha", ranking=ranking_answer("B", "A", "C"), parsed_ranking=["Response B", "Response A", "Response C"]),
        Stage2Result(model="m/beta", ranking=ranking_answer("B", "C", "A"), parsed_ranking=["Response B", "Response C", "Response A"]),
    ]
