"""
CLI for the Vantage research desk.

Commands:
    vantage analyze SUBJECT - Run a quick, deep or comparison analysis
    vantage update SESSION_ID - Refresh a saved report with new developments
    vantage history - List saved sessions
    vantage show SESSION_ID - Print a saved report
    vantage delete SESSION_ID - Delete a saved session
    vantage post SESSION_ID - Generate a social post from a saved report
    vantage config - Show current configuration
    vantage version - Print version
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from vantage import __version__
from vantage.cli.progress import EngineProgress
from vantage.config import Settings, clear_settings_cache, get_settings
from vantage.desk import ResearchDesk, open_desk
from vantage.logging import setup_logging
from vantage.types import AnalysisSession, EngineId, EngineStatus
from vantage.workflow.orchestrator import AnalysisRequest
from vantage.workflow.update import UpdateMode

app = typer.Typer(
    name="vantage",
    help="Vantage - multi-engine AI equity research desk",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

UserOption = Annotated[
    Optional[str],
    typer.Option("--user", "-u", help="Signed-in user id (omit for the local store)"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'vantage config' to see what's missing."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.log_file, console_output=False)
    return settings


def _format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _print_session_summary(session: AnalysisSession) -> None:
    console.print(
        Panel(
            f"[bold]Verdict:[/bold] {session.verdict}\n"
            f"[bold]Thesis:[/bold] {session.summary or '-'}\n\n"
            f"[dim]Session: {session.id} | Tokens: {session.total_tokens:,}[/dim]",
            title=f"[bold green]{session.subject_label} Research Complete[/bold green]",
            border_style="green",
        )
    )


def _find_or_exit(desk: ResearchDesk, session_id: str) -> AnalysisSession:
    session = desk.load_session(session_id)
    if session is None:
        error_console.print(f"[red]Error:[/red] Session not found: {session_id}")
        raise typer.Exit(1)
    return session


@app.command()
def analyze(
    subject: Annotated[
        str, typer.Argument(help="Ticker (e.g. RELIANCE) or comparison (e.g. 'TCS vs INFY')")
    ],
    deep: Annotated[
        bool,
        typer.Option("--deep", "-d", help="Run the multi-engine deep workflow"),
    ] = False,
    hypothesis: Annotated[
        Optional[str],
        typer.Option("--hypothesis", "-q", help="Question or hypothesis to investigate"),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", "-m", help="Model override for this run"),
    ] = None,
    user: UserOption = None,
) -> None:
    """Run a research analysis and save it to history.

    Comparisons ("A vs B") run on the quick path only.
    """
    settings = _load_settings()
    request = AnalysisRequest(subject=subject, hypothesis=hypothesis, deep=deep, model_id=model)

    async def _run() -> tuple[AnalysisSession | None, str | None]:
        with EngineProgress(console, subject.strip().upper()) as progress:
            async with open_desk(settings, user, on_engine_update=progress.update) as desk:
                session = await desk.analyze(request)
            if desk.global_error:
                progress.mark_error(desk.global_error)
            else:
                progress.mark_complete()
        return session, desk.global_error

    session, error = asyncio.run(_run())
    if error:
        error_console.print(f"\n[red]Error:[/red] {error}")
        raise typer.Exit(1)
    if session is None:
        error_console.print("\n[yellow]Analysis finished but could not be saved.[/yellow]")
        raise typer.Exit(1)

    console.print()
    _print_session_summary(session)


@app.command()
def update(
    session_id: Annotated[str, typer.Argument(help="Session to refresh")],
    full_scan: Annotated[
        Optional[bool],
        typer.Option(
            "--full-scan/--incremental",
            help="Re-evaluate the whole thesis, or only report news since the last run",
        ),
    ] = None,
    user: UserOption = None,
) -> None:
    """Refresh a saved report with developments since it was written."""
    settings = _load_settings()
    mode = None if full_scan is None else (UpdateMode.FULL_SCAN if full_scan else UpdateMode.INCREMENTAL)

    async def _run() -> tuple[AnalysisSession | None, str | None]:
        with EngineProgress(console, f"Update {session_id}") as progress:
            async with open_desk(settings, user, on_engine_update=progress.update) as desk:
                session = await desk.update(session_id, mode=mode)
            if desk.global_error:
                progress.mark_error(desk.global_error)
            else:
                progress.mark_complete()
        return session, desk.global_error

    session, error = asyncio.run(_run())
    if error:
        error_console.print(f"\n[red]Error:[/red] {error}")
        raise typer.Exit(1)
    if session is None:
        error_console.print("\n[yellow]Update finished but could not be saved.[/yellow]")
        raise typer.Exit(1)

    console.print()
    _print_session_summary(session)


@app.command()
def history(user: UserOption = None) -> None:
    """List saved sessions, newest first."""
    settings = _load_settings()

    async def _run() -> list[AnalysisSession]:
        async with open_desk(settings, user) as desk:
            return desk.history.sessions

    sessions = asyncio.run(_run())
    if not sessions:
        console.print("[dim]No saved sessions.[/dim]")
        return

    table = Table(title="History", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Subject", style="cyan")
    table.add_column("Verdict", style="green")
    table.add_column("Summary")
    table.add_column("Saved", style="dim")
    for session in sessions:
        table.add_row(
            session.id,
            session.subject_label,
            session.verdict or "",
            session.summary or "",
            _format_timestamp(session.timestamp),
        )
    console.print(table)


@app.command()
def show(
    session_id: Annotated[str, typer.Argument(help="Session to print")],
    engine: Annotated[
        Optional[str],
        typer.Option("--engine", "-e", help="Engine output to print instead of the final report"),
    ] = None,
    user: UserOption = None,
) -> None:
    """Print a saved report (or one engine's output)."""
    settings = _load_settings()

    try:
        engine_id = EngineId(engine) if engine else EngineId.SYNTHESIZER
    except ValueError:
        error_console.print(
            f"[red]Error:[/red] Unknown engine '{engine}'. "
            f"Choose from: {', '.join(e.value for e in EngineId)}"
        )
        raise typer.Exit(1)

    async def _run() -> tuple[AnalysisSession, dict]:
        async with open_desk(settings, user) as desk:
            session = _find_or_exit(desk, session_id)
            return session, dict(desk.engines)

    session, engines = asyncio.run(_run())
    run = engines[engine_id]
    if run.status is EngineStatus.ERROR:
        error_console.print(f"[red]{run.name} failed:[/red] {run.error}")
        raise typer.Exit(1)
    if not run.result:
        console.print(f"[dim]{run.name} has no output for this session.[/dim]")
        return

    console.print(Panel(f"[bold]{session.subject_label}[/bold] - {run.name}", border_style="cyan"))
    console.print(Markdown(run.result))
    for source in run.sources:
        console.print(f"[dim]- {source.title}: {source.uri}[/dim]")


@app.command()
def delete(
    session_id: Annotated[str, typer.Argument(help="Session to delete")],
    user: UserOption = None,
) -> None:
    """Delete a saved session."""
    settings = _load_settings()

    async def _run() -> bool:
        async with open_desk(settings, user) as desk:
            if desk.history.find(session_id) is None:
                return False
            return await desk.delete_session(session_id)

    if not asyncio.run(_run()):
        error_console.print(f"[red]Error:[/red] Could not delete session {session_id}")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] {session_id}")


@app.command()
def post(
    session_id: Annotated[str, typer.Argument(help="Session whose report to turn into a post")],
    user: UserOption = None,
) -> None:
    """Generate a social media post from a saved report."""
    settings = _load_settings()

    async def _run() -> tuple[str | None, str | None]:
        async with open_desk(settings, user) as desk:
            _find_or_exit(desk, session_id)
            text = await desk.generate_post()
            return text, desk.engines[EngineId.LINKEDIN].error

    text, error = asyncio.run(_run())
    if not text:
        error_console.print(f"[red]Error:[/red] {error or 'No synthesized report to post about.'}")
        raise typer.Exit(1)
    console.print(Panel(Markdown(text), title="[bold cyan]Post[/bold cyan]", border_style="cyan"))


@app.command()
def config() -> None:
    """Show current configuration.

    Displays all configuration values with API keys redacted.
    """
    console.print()
    console.print("[bold]Vantage Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Check GEMINI_API_KEY and the numeric settings in your environment.")
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)

    console.print()
    if settings.gemini_api_key is None:
        console.print("[yellow]GEMINI_API_KEY is not set; analyses will fail.[/yellow]")
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"vantage version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
