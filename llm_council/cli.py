"""Click CLI: serve the API, ask the council from a terminal, check model health."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from llm_council.api import create_app
from llm_council.council import run_full_council
from llm_council.healthcheck import run_health_checks
from llm_council.models import CouncilResult, CouncilStage
from llm_council.output import print_council_result
from llm_council.providers.base import InferenceGateway
from llm_council.providers.openrouter import OpenRouterGateway

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STAGE_DESCRIPTIONS = {
    CouncilStage.COLLECTING: "Stage 1: collecting responses...",
    CouncilStage.RANKING: "Stage 2: collecting peer rankings...",
    CouncilStage.SYNTHESIZING: "Stage 3: chairman synthesizing...",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_gateway(config: AppConfig) -> InferenceGateway:
    return OpenRouterGateway(config.gateway)


def _load_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, KeyError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


async def _ask(question: str, config: AppConfig, gateway: InferenceGateway) -> CouncilResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting council...", total=None)

        def on_stage(stage: CouncilStage) -> None:
            description = _STAGE_DESCRIPTIONS.get(stage)
            if description:
                progress.update(task, description=description)

        return await run_full_council(gateway, config, question, on_stage=on_stage)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """LLM Council -- ask a panel of models, let them rank each other, synthesize."""
    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.option("--host", default=None, help="Bind address (default: from config)")
@click.option("--port", default=None, type=int, help="Port (default: from config)")
@click.option("--data-dir", default=None, help="Conversation storage directory (default: from config)")
def serve(host: str | None, port: int | None, data_dir: str | None) -> None:
    """Run the HTTP API."""
    config = _load_or_exit()
    if data_dir:
        config.storage.data_dir = Path(data_dir)
    if not config.api_key_available:
        console.print(
            f"[yellow]Warning:[/yellow] {config.gateway.api_key_env} is not set; "
            "every council run will fail."
        )

    app = create_app(config, gateway=_build_gateway(config))
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


@main.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from a file")
def ask(question: str | None, question_file: str | None) -> None:
    """Run one council round in the terminal.

    \b
    Examples:
      llm-council ask "Should we use REST or GraphQL?"
      llm-council ask --file question.md
    """
    if question_file:
        question_text = Path(question_file).read_text(encoding="utf-8").strip()
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    config = _load_or_exit()
    gateway = _build_gateway(config)

    console.print(f"\n[bold cyan]LLM Council[/bold cyan]: {len(config.council.panel)} models")
    console.print(f"Panel: {', '.join(config.council.panel)}")
    console.print(f"Chairman: {' -> '.join(config.council.chairman_candidates)}")
    console.print(f"Question: [italic]{question_text[:80]}{'...' if len(question_text) > 80 else ''}[/italic]\n")

    result = asyncio.run(_ask(question_text, config, gateway))

    if result.stage is CouncilStage.FAILED:
        console.print(f"[bold red]Error:[/bold red] {result.stage3.response}")
        sys.exit(1)

    print_council_result(result)


@main.command()
def check() -> None:
    """Ping every panel and chairman model."""
    config = _load_or_exit()
    gateway = _build_gateway(config)
    models = [*config.council.panel, *config.council.chairman_candidates]
    if config.council.title_model:
        models.append(config.council.title_model)

    console.print("\n[bold]Checking models...[/bold]")
    results = asyncio.run(run_health_checks(gateway, models, config.gateway.health_timeout_sec))

    failed = [m for m, (ok, _) in results.items() if not ok]
    for model, (ok, err) in results.items():
        if ok:
            console.print(f"  [green]OK  [/green] {model}")
        else:
            console.print(f"  [red]FAIL[/red] {model}: {err}")

    if failed:
        console.print(f"\n[yellow]{len(failed)} model(s) failed:[/yellow] {', '.join(failed)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
