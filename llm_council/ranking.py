"""Anonymous labels, free-text ranking parsing and mean-rank aggregation."""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from llm_council.models import AggregateRanking, Stage1Result, Stage2Result

logger = logging.getLogger(__name__)

RANKING_MARKER = "FINAL RANKING:"

_NUMBERED_LABEL = re.compile(r"\d+\.\s*(Response [A-Z])")
_BARE_LABEL = re.compile(r"Response [A-Z]")
_TWO_PLACES = Decimal("0.01")


def assign_labels(stage1_results: list[Stage1Result]) -> dict[str, str]:
    """Map "Response A", "Response B", ... to models by stage-1 position.

    Labels depend only on order, never on response content.
    """
    return {
        f"Response {chr(ord('A') + i)}": result.model
        for i, result in enumerate(stage1_results)
    }


def parse_ranking_from_text(ranking_text: str) -> list[str]:
    """Extract ranked labels, best first, from a judge's free-text answer.

    Only the text between the first FINAL RANKING: marker and the next one is
    considered when the marker is present. Numbered entries win; otherwise
    every bare "Response X" mention is returned in order, duplicates included.
    Never raises.
    """
    parts = ranking_text.split(RANKING_MARKER)
    target = parts[1] if len(parts) > 1 else ranking_text

    numbered = _NUMBERED_LABEL.findall(target)
    if numbered:
        return numbered

    return _BARE_LABEL.findall(target)


def _round_rank(mean: float) -> float:
    """Two decimals, halves rounded up (1.625 -> 1.63)."""
    return float(Decimal(mean).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def calculate_aggregate_rankings(
    stage2_results: list[Stage2Result],
    label_to_model: dict[str, str],
) -> list[AggregateRanking]:
    """Average each model's 1-based positions across all judges.

    Models never mentioned are omitted. Equal averages keep the order in which
    the models were first encountered.
    """
    positions: dict[str, list[int]] = {}

    for result in stage2_results:
        for position, label in enumerate(result.parsed_ranking, start=1):
            model = label_to_model.get(label)
            if model is None:
                continue
            positions.setdefault(model, []).append(position)

    aggregate = [
        AggregateRanking(
            model=model,
            average_rank=_round_rank(sum(ranks) / len(ranks)),
            rankings_count=len(ranks),
        )
        for model, ranks in positions.items()
    ]
    # sorted() is stable: ties stay in first-seen order
    aggregate = sorted(aggregate, key=lambda r: r.average_rank)
    logger.debug("Aggregate rankings: %s", [(r.model, r.average_rank) for r in aggregate])
    return aggregate
