"""Dataclasses for the council pipeline and the conversation store.

Field names are snake_case in Python; `to_dict` / `from_dict` produce the
JSON shape shared by the HTTP API and the persisted records.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


DEFAULT_TITLE = "New Conversation"


class CouncilStage(str, Enum):
    COLLECTING = "collecting"
    RANKING = "ranking"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"  # reachable only from COLLECTING


@dataclass
class ModelReply:
    model: str
    content: str
    reasoning_details: Any = None  # opaque, passed through untouched
    latency_sec: float = 0.0


@dataclass
class Stage1Result:
    model: str
    response: str

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.model, "response": self.response}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Stage1Result":
        return cls(model=raw["model"], response=raw["response"])


@dataclass
class Stage2Result:
    model: str
    ranking: str  # raw ranking text
    parsed_ranking: list[str] = field(default_factory=list)  # labels, best first

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "ranking": self.ranking,
            "parsedRanking": list(self.parsed_ranking),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Stage2Result":
        return cls(
            model=raw["model"],
            ranking=raw["ranking"],
            parsed_ranking=list(raw.get("parsedRanking") or []),
        )


@dataclass
class Stage3Result:
    model: str
    response: str

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.model, "response": self.response}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Stage3Result":
        return cls(model=raw["model"], response=raw["response"])


@dataclass
class AggregateRanking:
    model: str
    average_rank: float
    rankings_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "average_rank": self.average_rank,
            "rankings_count": self.rankings_count,
        }


def build_metadata(
    label_to_model: dict[str, str],
    aggregate_rankings: list[AggregateRanking],
) -> dict[str, Any]:
    return {
        "label_to_model": dict(label_to_model),
        "aggregate_rankings": [r.to_dict() for r in aggregate_rankings],
    }


@dataclass
class CouncilResult:
    stage1: list[Stage1Result]
    stage2: list[Stage2Result]
    stage3: Stage3Result
    label_to_model: dict[str, str] = field(default_factory=dict)
    aggregate_rankings: list[AggregateRanking] = field(default_factory=list)
    stage: CouncilStage = CouncilStage.DONE

    def metadata(self) -> dict[str, Any]:
        """Metadata block of the API response; empty when stage 1 failed."""
        if self.stage is CouncilStage.FAILED:
            return {}
        return build_metadata(self.label_to_model, self.aggregate_rankings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage1": [r.to_dict() for r in self.stage1],
            "stage2": [r.to_dict() for r in self.stage2],
            "stage3": self.stage3.to_dict(),
            "metadata": self.metadata(),
        }


@dataclass
class UserMessage:
    content: str
    role: str = "user"

    def to_dict(self) -> dict[str, Any]:
        return {"role": "user", "content": self.content}


@dataclass
class AssistantMessage:
    stage1: list[Stage1Result]
    stage2: list[Stage2Result]
    stage3: Stage3Result
    role: str = "assistant"

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": "assistant",
            "stage1": [r.to_dict() for r in self.stage1],
            "stage2": [r.to_dict() for r in self.stage2],
            "stage3": self.stage3.to_dict(),
        }


Message = UserMessage | AssistantMessage


def message_from_dict(raw: dict[str, Any]) -> Message:
    role = raw.get("role")
    if role == "user":
        return UserMessage(content=raw["content"])
    if role == "assistant":
        return AssistantMessage(
            stage1=[Stage1Result.from_dict(r) for r in raw.get("stage1", [])],
            stage2=[Stage2Result.from_dict(r) for r in raw.get("stage2", [])],
            stage3=Stage3Result.from_dict(raw["stage3"]),
        )
    raise ValueError(f"Unknown message role: {role!r}")


@dataclass
class Conversation:
    id: str
    created_at: str  # ISO-8601 UTC
    title: str
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Conversation":
        return cls(
            id=raw["id"],
            created_at=raw["createdAt"],
            title=raw["title"],
            messages=[message_from_dict(m) for m in raw.get("messages", [])],
        )

    def metadata(self) -> "ConversationMetadata":
        return ConversationMetadata(
            id=self.id,
            created_at=self.created_at,
            title=self.title,
            message_count=len(self.messages),
        )


@dataclass
class ConversationMetadata:
    id: str
    created_at: str
    title: str
    message_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "title": self.title,
            "messageCount": self.message_count,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ConversationMetadata":
        return cls(
            id=raw["id"],
            created_at=raw["createdAt"],
            title=raw["title"],
            message_count=int(raw["messageCount"]),
        )
