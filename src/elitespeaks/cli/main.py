"""
Rich CLI interface for Elite Speaks.

Run the API server, or transcribe and evaluate recordings from a terminal.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from elitespeaks import __version__
from elitespeaks.core.config import get_settings
from elitespeaks.core.models import EvaluationResult
from elitespeaks.evaluation.service import SpeechEvaluator
from elitespeaks.providers.base import ProviderError
from elitespeaks.providers.deepgram_provider import DeepgramProvider
from elitespeaks.providers.gemini_provider import GeminiProvider
from elitespeaks.queue.request_queue import RequestQueue
from elitespeaks.utils.retry import RetryConfig

app = typer.Typer(
    name="elitespeaks",
    help="Speech practice backend - transcribe recordings and get AI feedback",
    no_args_is_help=True,
)
console = Console()


def get_evaluator() -> SpeechEvaluator:
    """Build an evaluator from the environment settings."""
    settings = get_settings()
    key = settings.providers.gemini_api_key
    queue = RequestQueue(
        max_concurrent=settings.queue.max_concurrent,
        retry_config=RetryConfig(
            max_retries=settings.queue.max_retries,
            base_delay=settings.queue.retry_delay,
            exponential_base=settings.queue.backoff_multiplier,
        ),
    )
    provider = GeminiProvider(
        api_key=key.get_secret_value() if key else None,
        model=settings.providers.gemini_model,
    )
    return SpeechEvaluator(provider, queue, settings.queue.admission_threshold)


def get_transcriber() -> DeepgramProvider:
    settings = get_settings()
    key = settings.providers.deepgram_api_key
    return DeepgramProvider(
        api_key=key.get_secret_value() if key else None,
        base_url=settings.providers.deepgram_base_url,
        model=settings.providers.deepgram_model,
    )


def render_evaluation(result: EvaluationResult) -> None:
    """Print an evaluation as panels and a table."""
    console.print(Panel(
        f"[bold]{result.overall_score}[/bold] / 100",
        title="[bold cyan]Overall Score[/bold cyan]",
    ))
    console.print(Panel(result.confidence, title="[bold cyan]Confidence[/bold cyan]"))
    console.print(Panel(result.grammar_feedback, title="[bold cyan]Grammar[/bold cyan]"))

    words = ", ".join(result.filler_words.words) or "-"
    console.print(f"[bold]Filler words:[/bold] {result.filler_words.count} ({words})")

    if result.topic_adherence is not None:
        console.print(f"[bold]Topic adherence:[/bold] {result.topic_adherence} / 10")

    if result.alternative_phrasing:
        table = Table(title="Alternative Phrasing", show_header=True, header_style="bold magenta")
        table.add_column("Original", style="yellow")
        table.add_column("Suggested", style="green")
        for phrase in result.alternative_phrasing:
            table.add_row(phrase.original, phrase.suggested)
        console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]Elite Speaks[/bold cyan] v{__version__}")


@app.command()
def config():
    """Show provider and queue configuration."""
    settings = get_settings()

    table = Table(title="Provider Status", show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Model")

    for name, configured, model in (
        ("GEMINI", settings.providers.has_gemini, settings.providers.gemini_model),
        ("DEEPGRAM", settings.providers.has_deepgram, settings.providers.deepgram_model),
    ):
        status = "[green]Configured[/green]" if configured else "[red]Not configured[/red]"
        table.add_row(name, status, model)

    console.print(table)

    q = settings.queue
    console.print(
        f"\n[dim]Queue: max_concurrent={q.max_concurrent}, max_retries={q.max_retries}, "
        f"retry_delay={q.retry_delay}s, admission_threshold={q.admission_threshold}, "
        f"timeout={q.request_timeout}s[/dim]"
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the API server."""
    from elitespeaks.api.server import run_server

    settings = get_settings()
    run_server(
        host=host or settings.server.host,
        port=port or settings.server.port,
        reload=reload or settings.server.reload,
    )


@app.command()
def evaluate(
    text: Optional[str] = typer.Argument(None, help="Transcript text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read transcript from a file"),
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Assigned speaking topic"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """Evaluate a transcript."""
    if file is not None:
        text = file.read_text(encoding="utf-8")
    if not text or not text.strip():
        console.print("[red]No transcript provided.[/red]")
        raise typer.Exit(1)

    evaluator = get_evaluator()

    async def run() -> EvaluationResult:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Evaluating transcript...", total=None)
            return await evaluator.evaluate(text, topic)

    try:
        result = asyncio.run(run())
    except (ProviderError, ValueError) as e:
        console.print(f"[red]Evaluation failed: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(result.model_dump(by_alias=True)))
    else:
        render_evaluation(result)


@app.command()
def transcribe(
    source: str = typer.Argument(..., help="Audio file path or public URL"),
    show_evaluation: bool = typer.Option(False, "--evaluate", "-e", help="Also evaluate the transcript"),
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Assigned speaking topic"),
):
    """Transcribe a recording, optionally evaluating it."""
    transcriber = get_transcriber()
    path = Path(source)

    async def run():
        try:
            if path.is_file():
                mimetype, _ = mimetypes.guess_type(path.name)
                result = await transcriber.transcribe_bytes(path.read_bytes(), mimetype)
            else:
                result = await transcriber.transcribe_url(source)
        finally:
            await transcriber.aclose()

        evaluation = None
        if show_evaluation:
            evaluation = await get_evaluator().evaluate(result.transcript, topic)
        return result, evaluation

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Transcribing...", total=None)
            result, evaluation = asyncio.run(run())
    except (ProviderError, ValueError) as e:
        console.print(f"[red]Transcription failed: {e}[/red]")
        raise typer.Exit(1)

    subtitle = f"[dim]{result.language}"
    if result.duration is not None:
        subtitle += f" | {result.duration:.1f}s"
    if result.confidence is not None:
        subtitle += f" | confidence {result.confidence:.2f}"
    subtitle += "[/dim]"

    console.print(Panel(result.transcript, title="[bold cyan]Transcript[/bold cyan]", subtitle=subtitle))

    if evaluation is not None:
        render_evaluation(evaluation)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
