"""Tests for llm_council/models.py dataclasses and their JSON shape."""

import pytest

from llm_council.models import (
    AggregateRanking,
    AssistantMessage,
    Conversation,
    CouncilResult,
    CouncilStage,
    Stage1Result,
    Stage2Result,
    Stage3Result,
    UserMessage,
    message_from_dict,
)


def test_stage2_uses_camel_case_parsed_ranking():
    result = Stage2Result(model="m", ranking="text", parsed_ranking=["Response A"])
    assert result.to_dict() == {"model": "m", "ranking": "text", "parsedRanking": ["Response A"]}


def test_aggregate_ranking_fields():
    ranking = AggregateRanking(model="m", average_rank=1.5, rankings_count=2)
    assert ranking.to_dict() == {"model": "m", "average_rank": 1.5, "rankings_count": 2}


def test_message_union_from_dict():
    user = message_from_dict({"role": "user", "content": "hi"})
    assistant = message_from_dict({
        "role": "assistant",
        "stage1": [{"model": "a", "response": "r"}],
        "stage2": [{"model": "a", "ranking": "t", "parsedRanking": []}],
        "stage3": {"model": "c", "response": "final"},
    })
    assert user == UserMessage(content="hi")
    assert isinstance(assistant, AssistantMessage)
    assert assistant.stage3 == Stage3Result(model="c", response="final")


def test_message_unknown_role_rejected():
    with pytest.raises(ValueError, match="Unknown message role"):
        message_from_dict({"role": "system", "content": "x"})


def test_conversation_metadata_counts_messages():
    conversation = Conversation(
        id="c1",
        created_at="2025-01-01T00:00:00.000Z",
        title="T",
        messages=[
            UserMessage(content="q"),
            AssistantMessage(stage1=[], stage2=[], stage3=Stage3Result("m", "a")),
        ],
    )
    meta = conversation.metadata()
    assert meta.message_count == 2
    assert meta.to_dict() == {"id": "c1", "createdAt": "2025-01-01T00:00:00.000Z", "title": "T", "messageCount": 2}


def test_council_result_failed_has_empty_metadata():
    result = CouncilResult(
        stage1=[],
        stage2=[],
        stage3=Stage3Result("error", "All models failed"),
        label_to_model={"Response A": "x"},
        stage=CouncilStage.FAILED,
    )
    assert result.to_dict()["metadata"] == {}


def test_council_result_metadata():
    result = CouncilResult(
        stage1=[Stage1Result("x", "r")],
        stage2=[],
        stage3=Stage3Result("c", "final"),
        label_to_model={"Response A": "x"},
        aggregate_rankings=[AggregateRanking("x", 1.0, 1)],
    )
    assert result.metadata() == {
        "label_to_model": {"Response A": "x"},
        "aggregate_rankings": [{"model": "x", "average_rank": 1.0, "rankings_count": 1}],
    }
