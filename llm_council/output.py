"""Rich console output for council results."""

import logging

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from llm_council.models import AggregateRanking, CouncilResult, Stage1Result

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _response_preview(text: str, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_stage1_summary(results: list[Stage1Result], label_to_model: dict[str, str]) -> None:
    """Print a brief preview of every stage-1 answer with its anonymous label."""
    console.print(Rule("[bold cyan]Stage 1: Individual Responses[/bold cyan]"))
    labels = {model: label for label, model in label_to_model.items()}
    for result in results:
        label = labels.get(result.model, "")
        console.print(
            Panel(
                _response_preview(result.response),
                title=f"[bold]{result.model}[/bold]",
                subtitle=label,
                border_style="dim",
            )
        )


def build_rankings_table(rankings: list[AggregateRanking]) -> Table:
    table = Table(title="Aggregate Rankings (lower is better)")
    table.add_column("#", justify="right")
    table.add_column("Model")
    table.add_column("Avg rank", justify="right")
    table.add_column("Votes", justify="right")
    for position, ranking in enumerate(rankings, start=1):
        table.add_row(
            str(position),
            ranking.model,
            f"{ranking.average_rank:.2f}",
            str(ranking.rankings_count),
        )
    return table


def print_rankings(result: CouncilResult) -> None:
    console.print(Rule("[bold cyan]Stage 2: Peer Rankings[/bold cyan]"))
    unparsed = [r.model for r in result.stage2 if not r.parsed_ranking]
    if unparsed:
        console.print(Text(f"Unparseable rankings from: {', '.join(unparsed)}", style="yellow"))
    if result.aggregate_rankings:
        console.print(build_rankings_table(result.aggregate_rankings))
    else:
        console.print(Text("No usable rankings.", style="dim"))


def print_synthesis(result: CouncilResult) -> None:
    """Print the chairman's final answer using Rich markdown."""
    console.print(Rule("[bold green]Stage 3: Council Synthesis[/bold green]"))
    console.print(
        Text(
            f"Chairman: {result.stage3.model} | "
            f"Responders: {len(result.stage1)} | "
            f"Judges: {len(result.stage2)}",
            style="dim",
        )
    )
    console.print(Markdown(result.stage3.response))


def print_council_result(result: CouncilResult) -> None:
    print_stage1_summary(result.stage1, result.label_to_model)
    print_rankings(result)
    print_synthesis(result)
