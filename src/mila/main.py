"""
Mila - CLI Entry Point.

Usage:
    mila serve              Start the API server
    mila interview          Run the onboarding interview in the terminal
    mila messages           Preview the question message pool
    mila health             Check configuration
    mila db                 Check database tables
    mila --help             Show help
"""

import asyncio
import logging
import random

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

app = typer.Typer(
    name="mila",
    help="Mila - learn where you like to go.",
    add_completion=False,
)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the web API server."""
    import os

    import uvicorn

    from mila.config import settings

    _configure_logging(settings.log_level)
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]Mila API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "mila.web.app:app",
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
    )


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from mila.config import get_settings

    console.print("\n[bold]Mila Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("[green]OK[/green] Configuration loaded")
        console.print(f"   Environment: {settings.mila_env}")
        console.print(f"   Log level: {settings.log_level}")

        if settings.openai_api_key.startswith("sk-"):
            console.print("[green]OK[/green] OpenAI API key configured")
        else:
            console.print("[yellow]WARN[/yellow] OpenAI API key may be invalid")

        if settings.google_places_api_key:
            console.print("[green]OK[/green] Google Places API key configured")
        else:
            console.print("[red]FAIL[/red] Google Places API key missing")

        if settings.supabase_url.startswith("https://"):
            console.print("[green]OK[/green] Supabase URL configured")
        else:
            console.print("[red]FAIL[/red] Supabase URL missing or invalid")

        console.print("\n[green]All checks passed![/green]")

    except Exception as e:
        console.print(f"\n[red]FAIL Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from mila import __version__

    console.print(f"Mila version {__version__}")


@app.command()
def db() -> None:
    """Check database connection and onboarding tables."""
    from mila.db.client import get_service_client
    from onboarding.store import BIOS_TABLE, LOCATIONS_TABLE, SESSIONS_TABLE

    console.print("\n[bold]Database Connection Check[/bold]\n")

    try:
        client = get_service_client()
        console.print("[green]OK[/green] Connected to Supabase")

        console.print("\n[bold]Table Status:[/bold]")
        for table in (SESSIONS_TABLE, BIOS_TABLE, LOCATIONS_TABLE):
            try:
                result = client.table(table).select("*", count="exact").limit(0).execute()
                count = result.count if hasattr(result, "count") else "?"
                console.print(f"  [green]OK[/green] {table}: {count} rows")
            except Exception as e:
                console.print(f"  [red]FAIL[/red] {table}: {e}")

        console.print("\n[green]Database check complete![/green]")

    except Exception as e:
        console.print(f"\n[red]FAIL Database connection failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def messages(
    category: str = typer.Option("cafe", "--category", "-c", help="Category to fill in"),
    city: str = typer.Option("", "--city", help="City to fill in"),
    seed: int | None = typer.Option(None, "--seed", help="Seed for a repeatable draw"),
) -> None:
    """Preview one draw from each message type."""
    from onboarding.messages import DEFAULT_MESSAGES, MessageSelector

    selector = MessageSelector(rng=random.Random(seed))
    table = Table(title=f"Messages for {category}")
    table.add_column("Type", style="bold")
    table.add_column("Templates", justify="right")
    table.add_column("Sample")

    for message_type, _ in DEFAULT_MESSAGES:
        table.add_row(
            message_type,
            str(len(selector.templates(message_type, category))),
            selector.select(message_type, category, city=city or None),
        )
    console.print(table)


# =============================================================================
# Interactive interview
# =============================================================================

@app.command()
def interview(
    log_prompts: bool = typer.Option(False, "--log-prompts", "-l", help="Log all LLM prompts to prompt_logs/"),
    user_id: str = typer.Option("cli-user", "--user", help="User id for the session"),
) -> None:
    """Run the onboarding interview in the terminal (in-memory storage)."""
    from mila.config import settings
    from mila.llm.prompt_logger import enable_prompt_logging

    _configure_logging("WARNING")
    if log_prompts:
        enable_prompt_logging(True)
        console.print("[dim]Prompt logging enabled. Check prompt_logs/ after the session.[/dim]")

    console.print(
        Panel.fit(
            "[bold green]Mila onboarding[/bold green]\n"
            "Answer a few questions about places near you.\n\n"
            "[dim]Multi-select: enter numbers like 1,3 (empty for none).[/dim]\n"
            "[dim]'d' for different places, 's' to skip a category, 'q' to quit.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )

    try:
        asyncio.run(_interview(user_id, settings))
    except KeyboardInterrupt:
        console.print("\n\n[dim]Interview interrupted. Goodbye![/dim]")


def _build_cli_service(settings):
    from mila.places.google import GooglePlacesProvider
    from onboarding.candidates import CandidateSource
    from onboarding.inference import LLMBioNarrator, LLMPreferenceInference
    from onboarding.machine import OnboardingService
    from onboarding.store import InMemoryOnboardingStore

    provider = GooglePlacesProvider()
    return OnboardingService(
        InMemoryOnboardingStore(),
        provider,
        LLMPreferenceInference(),
        narrator=LLMBioNarrator(),
        candidates=CandidateSource.from_settings(provider),
        confidence_target=settings.confidence_target,
        max_questions=settings.max_questions_per_category,
        plateau_threshold=settings.plateau_threshold,
    )


async def _interview(user_id: str, settings) -> None:
    from mila.places.categories import CATEGORY_DEFINITIONS
    from onboarding.errors import OnboardingError
    from onboarding.machine import ComparisonAnswer
    from onboarding.state import QuestionType

    service = _build_cli_service(settings)
    init = await service.initialize_session(user_id)

    if init.requires_location:
        while True:
            text = console.input("\n[bold blue]Where do you live?[/bold blue] ").strip()
            if not text:
                continue
            suggestions = await service.autocomplete_places(text)
            if not suggestions:
                console.print("[yellow]No matches, try again.[/yellow]")
                continue
            for i, s in enumerate(suggestions, 1):
                console.print(f"  {i}. {s.description}")
            choice = console.input("Pick one: ").strip()
            if choice.isdigit() and 1 <= int(choice) <= len(suggestions):
                picked = suggestions[int(choice) - 1]
                location = await service.set_residential_place(user_id, picked.place_id, picked.description)
                console.print(f"[green]Searching around {location.label}[/green]")
                break

    table = Table(title="Categories")
    table.add_column("#", justify="right")
    table.add_column("Id", style="bold")
    table.add_column("Description")
    for i, c in enumerate(CATEGORY_DEFINITIONS, 1):
        table.add_row(str(i), c.id, c.description)
    console.print(table)

    while True:
        raw = console.input("\n[bold blue]Categories (numbers, in order):[/bold blue] ")
        picks = [p.strip() for p in raw.split(",") if p.strip().isdigit()]
        chosen = [CATEGORY_DEFINITIONS[int(p) - 1].id for p in picks if 1 <= int(p) <= len(CATEGORY_DEFINITIONS)]
        if chosen:
            await service.select_categories(user_id, chosen)
            break

    next_action = service.get_question
    while not (await service.get_session_state(user_id)).completed:
        try:
            with Live(Spinner("dots", text="Finding places..."), console=console, transient=True):
                question = await next_action(user_id)
            next_action = service.get_question

            _show_question(question)
            answer = console.input("> ").strip().lower()

            if answer == "q":
                console.print("[dim]Goodbye![/dim]")
                return
            if answer == "s":
                skipped = await service.skip_category(user_id)
                console.print(f"[dim]Skipped. Next: {skipped.next_category or 'done'}[/dim]")
                continue
            if answer == "d":
                next_action = service.request_different_results
                continue

            with Live(Spinner("dots", text="Thinking..."), console=console, transient=True):
                if question.question_type == QuestionType.AB_COMPARISON and len(question.candidates) == 2:
                    slider = int(answer) if answer.isdigit() else 5
                    result = await service.submit_answer(
                        user_id,
                        QuestionType.AB_COMPARISON,
                        comparison=ComparisonAnswer(
                            place_a_id=question.candidates[0].place_id,
                            place_b_id=question.candidates[1].place_id,
                            slider_value=min(max(slider, 1), 10),
                        ),
                    )
                else:
                    picks = [int(p) for p in answer.split(",") if p.strip().isdigit()]
                    selected = [question.candidates[p - 1].place_id for p in picks if 1 <= p <= len(question.candidates)]
                    result = await service.submit_answer(user_id, QuestionType.MULTI_SELECT, selected_place_ids=selected)

            console.print(f"[dim]Confidence for {question.category}: {result.confidence_score:.2f}[/dim]")
            if result.advance and result.advance.next_category:
                console.print(f"[green]Moving on to {result.advance.next_category}[/green]")

        except OnboardingError as e:
            console.print(f"\n[red]Error: {e}[/red]")
            if not e.retriable:
                return

    profile = await service.get_profile(user_id)
    if profile:
        console.print(Panel(profile.bio_text, title=f"Your BIO (v{profile.version})", border_style="green"))


def _show_question(question) -> None:
    from onboarding.state import QuestionType

    console.print(f"\n[bold]Q{question.question_number} ({question.category}):[/bold] {question.message}")
    if question.insufficient_candidates:
        console.print("[yellow]Only found a few places for this one.[/yellow]")

    for i, place in enumerate(question.candidates, 1):
        price = "$" * place.price_level if place.price_level else ""
        console.print(f"  {i}. [bold]{place.display_name}[/bold] {place.rating or ''} {price}")
        console.print(f"     [dim]{place.address}[/dim]")

    if question.question_type == QuestionType.AB_COMPARISON:
        console.print("[dim]1 = strongly prefer 1, 10 = strongly prefer 2, 5 = no preference[/dim]")


if __name__ == "__main__":
    app()
