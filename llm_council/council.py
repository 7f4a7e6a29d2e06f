"""Council pipeline: collect answers, peer-rank them anonymously, synthesize.

Stage flow is COLLECTING -> RANKING -> SYNTHESIZING -> DONE, with FAILED
reachable only when no panel member answers in stage 1. Model failures never
propagate: they shrink the panel or move synthesis to the next chairman.
"""

import logging
from collections.abc import Callable

from config.config_loader import AppConfig
from llm_council.models import (
    DEFAULT_TITLE,
    CouncilResult,
    CouncilStage,
    Stage1Result,
    Stage2Result,
    Stage3Result,
)
from llm_council.providers.base import InferenceGateway
from llm_council.ranking import assign_labels, calculate_aggregate_rankings, parse_ranking_from_text

logger = logging.getLogger(__name__)

ALL_MODELS_FAILED_TEXT = "All models failed to respond. Please try again."
CHAIRMAN_FAILED_TEXT = "Error: Unable to generate final synthesis (all chairman models failed)."
_MAX_TITLE_LEN = 50


def all_models_failed() -> Stage3Result:
    """Stage-3 stand-in used when no panel model answered stage 1."""
    return Stage3Result(model="error", response=ALL_MODELS_FAILED_TEXT)


def _user(content: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": content}]


async def stage1_collect_responses(
    gateway: InferenceGateway,
    config: AppConfig,
    user_query: str,
) -> list[Stage1Result]:
    """Ask every panel member the raw question. Result order follows the panel."""
    panel = config.council.panel
    logger.info("Stage 1: querying %d panel models", len(panel))
    replies = await gateway.query_all(panel, _user(user_query))

    stage1 = [
        Stage1Result(model=model, response=reply.content)
        for model in panel
        if (reply := replies.get(model)) is not None
    ]
    logger.info("Stage 1 complete: %d/%d models responded", len(stage1), len(panel))
    return stage1


def build_ranking_prompt(config: AppConfig, user_query: str, stage1_results: list[Stage1Result]) -> str:
    label_to_model = assign_labels(stage1_results)
    responses_text = "\n\n".join(
        f"{label}:\n{result.response}"
        for label, result in zip(label_to_model, stage1_results)
    )
    return config.prompts.ranking.format(question=user_query, responses=responses_text)


async def stage2_collect_rankings(
    gateway: InferenceGateway,
    config: AppConfig,
    user_query: str,
    stage1_results: list[Stage1Result],
) -> tuple[list[Stage2Result], dict[str, str]]:
    """Have the panel critique and rank the anonymized stage-1 answers.

    Returns:
        (stage2 results in panel order, "Response X" -> model mapping)
    """
    label_to_model = assign_labels(stage1_results)
    logger.debug("Stage 2 label map: %s", label_to_model)

    prompt = build_ranking_prompt(config, user_query, stage1_results)
    panel = config.council.panel
    replies = await gateway.query_all(panel, _user(prompt))

    stage2: list[Stage2Result] = []
    for model in panel:
        reply = replies.get(model)
        if reply is None:
            continue
        parsed = parse_ranking_from_text(reply.content)
        if not parsed:
            logger.warning("Ranking from %s could not be parsed", model)
        stage2.append(Stage2Result(model=model, ranking=reply.content, parsed_ranking=parsed))

    logger.info("Stage 2 complete: %d/%d rankings received", len(stage2), len(panel))
    return stage2, label_to_model


def build_synthesis_prompt(
    config: AppConfig,
    user_query: str,
    stage1_results: list[Stage1Result],
    stage2_results: list[Stage2Result],
) -> str:
    stage1_text = "\n\n".join(
        f"Model: {r.model}\nResponse: {r.response}" for r in stage1_results
    )
    stage2_text = "\n\n".join(
        f"Model: {r.model}\nRanking: {r.ranking}" for r in stage2_results
    )
    return config.prompts.synthesis.format(
        question=user_query,
        stage1=stage1_text,
        stage2=stage2_text,
    )


async def stage3_synthesize_final(
    gateway: InferenceGateway,
    config: AppConfig,
    user_query: str,
    stage1_results: list[Stage1Result],
    stage2_results: list[Stage2Result],
) -> Stage3Result:
    """Try each chairman candidate in priority order, one at a time.

    Returns the first successful answer, or a failure sentinel attributed to
    the primary chairman when every candidate fails.
    """
    messages = _user(build_synthesis_prompt(config, user_query, stage1_results, stage2_results))

    for model in config.council.chairman_candidates:
        reply = await gateway.query(model, messages)
        if reply is not None:
            logger.info("Stage 3 synthesized by %s", model)
            return Stage3Result(model=model, response=reply.content)
        logger.warning("Chairman candidate %s failed, trying next", model)

    logger.error("All chairman candidates failed")
    return Stage3Result(model=config.council.chairman, response=CHAIRMAN_FAILED_TEXT)


async def generate_conversation_title(
    gateway: InferenceGateway,
    config: AppConfig,
    user_query: str,
) -> str:
    """Ask the title model for a short title; falls back to a fixed default."""
    prompt = config.prompts.title.format(question=user_query)
    reply = await gateway.query(
        config.council.title_model,
        _user(prompt),
        timeout_sec=config.gateway.title_timeout_sec,
    )
    if reply is None:
        return DEFAULT_TITLE

    title = (reply.content or DEFAULT_TITLE).strip()
    if title[:1] in ("'", '"'):
        title = title[1:]
    if title[-1:] in ("'", '"'):
        title = title[:-1]
    if len(title) > _MAX_TITLE_LEN:
        title = f"{title[:_MAX_TITLE_LEN - 3]}..."
    return title


async def run_full_council(
    gateway: InferenceGateway,
    config: AppConfig,
    user_query: str,
    on_stage: Callable[[CouncilStage], None] | None = None,
) -> CouncilResult:
    """Run all three stages and return the combined result.

    Args:
        gateway: Inference gateway shared by every stage.
        config: App config carrying panel, chairman chain and prompts.
        user_query: The user's question.
        on_stage: Optional callback invoked on every stage transition.

    Returns:
        CouncilResult. Never raises for model failures.
    """

    def enter(stage: CouncilStage) -> None:
        logger.debug("Council stage -> %s", stage.value)
        if on_stage:
            on_stage(stage)

    enter(CouncilStage.COLLECTING)
    stage1 = await stage1_collect_responses(gateway, config, user_query)
    if not stage1:
        logger.error("All panel models failed in stage 1")
        enter(CouncilStage.FAILED)
        return CouncilResult(
            stage1=[],
            stage2=[],
            stage3=all_models_failed(),
            stage=CouncilStage.FAILED,
        )

    enter(CouncilStage.RANKING)
    stage2, label_to_model = await stage2_collect_rankings(gateway, config, user_query, stage1)
    aggregate = calculate_aggregate_rankings(stage2, label_to_model)

    enter(CouncilStage.SYNTHESIZING)
    stage3 = await stage3_synthesize_final(gateway, config, user_query, stage1, stage2)

    enter(CouncilStage.DONE)
    return CouncilResult(
        stage1=stage1,
        stage2=stage2,
        stage3=stage3,
        label_to_model=label_to_model,
        aggregate_rankings=aggregate,
        stage=CouncilStage.DONE,
    )
