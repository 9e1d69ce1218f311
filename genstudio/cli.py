# genstudio/cli.py
"""
CLI interface for genstudio.

Thin presentation layer over StudioSession: it plays the view layer, issuing
state machine commands and rendering snapshots.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable
from pathlib import Path

import typer

from genstudio.errors import RecoveryAction, StudioError
from genstudio.logging_config import configure_cli_logging, configure_logging
from genstudio.models.jobs import GenerationState
from genstudio.orchestration.lifecycle import StudioSession
from genstudio.orchestration.machine import ChangeListener, GenerationStateMachine, JobSnapshot

app = typer.Typer(
    name="genstudio",
    help="AI selfie studio and story generator for the fan hub.",
    no_args_is_help=True,
)


def _fmt_duration(seconds: float) -> str:
    """Format seconds as human-readable duration (e.g. '5m17s', '42s')."""
    s = int(seconds)
    if s < 60:
        return f"{s}s"
    m, s = divmod(s, 60)
    return f"{m}m{s:02d}s"


def _run(coro):
    """Run async function from sync CLI context."""
    return asyncio.run(coro)


def _open_session(on_change: ChangeListener | None = None) -> StudioSession:
    """Build a session from the user's config file."""
    from genstudio.config.loader import load_config

    return StudioSession(load_config(), on_change=on_change)


class _Tracker:
    """Collects snapshots from a machine for the live display."""

    def __init__(self) -> None:
        self.snapshot: JobSnapshot | None = None
        self.log_lines: deque[str] = deque(maxlen=5)
        self._last_label = ""
        self._last_state: GenerationState | None = None

    def on_change(self, snapshot: JobSnapshot) -> None:
        self.snapshot = snapshot
        perceived = snapshot.perceived
        if perceived and perceived.stage_label != self._last_label:
            self.log_lines.append(f"{time.strftime('%H:%M:%S')} {perceived.stage_label}")
            self._last_label = perceived.stage_label
        if snapshot.state is not self._last_state:
            self._last_state = snapshot.state
            if snapshot.state in (GenerationState.SAVING, GenerationState.PUBLISHED):
                self.log_lines.append(f"{time.strftime('%H:%M:%S')} {snapshot.state.value}")


def _make_live_display(
    title: str,
    stage_labels: list[str],
    snapshot: JobSnapshot | None,
    elapsed: float,
    log_lines: list[str] | None = None,
):
    """Build a rich renderable for the live progress display."""
    from rich.console import Group
    from rich.panel import Panel
    from rich.table import Table
    from rich.text import Text

    perceived = snapshot.perceived if snapshot else None
    current = perceived.stage_index if perceived else 0
    final = bool(perceived and perceived.final)

    table = Table.grid(padding=(0, 2))
    table.add_column(width=3)
    table.add_column()
    table.add_column(justify="right", style="dim", width=7)

    for i, name in enumerate(stage_labels):
        if final or i < current:
            icon, row_style, duration = Text("✓", style="green"), "dim", ""
        elif i == current:
            icon, row_style, duration = Text("⟳", style="yellow"), "bold", _fmt_duration(elapsed)
        else:
            icon, row_style, duration = Text("○", style="dim"), "dim", ""
        table.add_row(icon, Text(name, style=row_style), Text(duration, style="dim"))

    percent = perceived.percent if perceived else 0
    bar_width = 36
    filled = int(percent / 100 * bar_width)
    bar = "█" * filled + "░" * (bar_width - filled)
    bar_text = Text(f"\n  {bar}  {percent}%", style="cyan")

    status = ""
    if perceived:
        status = perceived.message or perceived.stage_label
        if perceived.eta_seconds and not final:
            status += f"  (about {_fmt_duration(perceived.eta_seconds)} left)"
    status_text = Text(f"\n  {status}", style="dim italic") if status else Text("")

    parts: list = [table, bar_text, status_text]
    if log_lines:
        parts.append(Text(""))
        for line in log_lines:
            parts.append(Text(f"  {line}", style="dim"))
    parts.append(Text(""))

    return Panel(
        Group(*parts),
        title=Text(f" {title[:60]}{'…' if len(title) > 60 else ''} ", style="bold"),
        border_style="bright_black",
    )


async def _run_live(
    title: str,
    stage_labels: list[str],
    command: Awaitable[GenerationState],
    tracker: _Tracker,
    console,
) -> GenerationState:
    """Run a machine command with a live progress panel until it resolves."""
    from rich.live import Live

    start = time.monotonic()
    task = asyncio.ensure_future(command)
    try:
        with Live(
            _make_live_display(title, stage_labels, tracker.snapshot, 0.0),
            console=console,
            refresh_per_second=4,
        ) as live:
            while not task.done():
                live.update(_make_live_display(
                    title, stage_labels, tracker.snapshot,
                    time.monotonic() - start,
                    log_lines=list(tracker.log_lines),
                ))
                await asyncio.sleep(0.25)

            live.update(_make_live_display(
                title, stage_labels, tracker.snapshot,
                time.monotonic() - start,
                log_lines=list(tracker.log_lines),
            ))
    except (KeyboardInterrupt, asyncio.CancelledError):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise KeyboardInterrupt

    return task.result()


def _print_error(console, error: StudioError) -> None:
    color = {"warning": "yellow", "info": "cyan"}.get(error.severity, "red")
    console.print(f"[{color}]✗ {error.title}[/{color}]: {error.message}")


def _report_failure(console, machine: GenerationStateMachine) -> bool:
    """Print a refusal or ERROR. Returns True if there was one."""
    if machine.rejection is not None:
        _print_error(console, machine.rejection)
        return True
    snap = machine.snapshot()
    if snap.state is GenerationState.ERROR and snap.error is not None:
        _print_error(console, snap.error)
        if snap.recovery is RecoveryAction.TRY_AGAIN:
            console.print("[dim]Run the command again to retry.[/dim]")
        return True
    return False


def _quota_line(name: str, machine: GenerationStateMachine) -> str:
    quota = machine.gate.state
    if quota is None or quota.assumed:
        return f"{name:<7} unavailable (generation still allowed)"
    line = f"{name:<7} {quota.remaining} remaining"
    if quota.limit is not None:
        line += f" of {quota.limit}"
    if quota.window_reset_at:
        line += f"  (resets {quota.window_reset_at})"
    return line


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug logs"),
    log_format: str = typer.Option("text", "--log-format", help="Log format on stderr: text or json"),
):
    """AI selfie studio and story generator for the fan hub."""
    if log_format == "json":
        configure_logging(verbose)
    elif log_format == "text":
        configure_cli_logging(verbose)
    else:
        typer.echo(f"Unknown log format '{log_format}' (use text or json)", err=True)
        raise typer.Exit(2)


@app.command()
def quota():
    """Show remaining selfie and story generations."""

    async def _quota():
        session = _open_session()
        try:
            await session.startup()
            typer.echo(_quota_line("selfie", session.selfie))
            typer.echo(_quota_line("story", session.story))
        finally:
            await session.shutdown()

    _run(_quota())


@app.command()
def selfie(
    path: Path = typer.Argument(..., help="Selfie image (JPG, PNG, WEBP or HEIC, max 10 MB)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Generate without asking for confirmation"),
    clean: bool = typer.Option(False, "--clean", help="Also download the watermark-free image"),
    tier: str = typer.Option(
        None, "--tier", envvar="GENSTUDIO_TIER", help="Membership tier (super_fan unlocks --clean)"
    ),
    out: Path = typer.Option(None, "--out", "-o", help="Directory for clean downloads"),
):
    """Put yourself in a scene: upload a selfie and generate a composite."""
    from rich.console import Console

    from genstudio.persistence.normalize import normalize_selfie
    from genstudio.validation.inputs import is_super_fan

    console = Console(stderr=True)
    tracker = _Tracker()

    async def _selfie():
        session = _open_session(tracker.on_change)
        machine = session.selfie
        try:
            await session.startup()
            await machine.start_with_input(path)
            if _report_failure(console, machine):
                raise typer.Exit(1)

            staged = machine.job.input
            console.print(
                f"[dim]Staged[/dim] {staged.filename} ({staged.content_type}, {staged.size // 1024} KB)"
            )
            console.print(f"[dim]{_quota_line('selfie', machine).strip()}[/dim]")
            if not yes and not typer.confirm("Generate now? This uses one generation", default=True):
                machine.reset()
                typer.echo("Cancelled.", err=True)
                return

            await _run_live(
                "AI Selfie Studio",
                session.config.selfie.stage_labels,
                machine.confirm_and_generate(),
                tracker,
                console,
            )
            if _report_failure(console, machine):
                raise typer.Exit(1)

            try:
                result = normalize_selfie(machine.job.result.data)
            except ValueError as e:
                console.print(f"[red]✗ Unexpected Response[/red]: {e}")
                raise typer.Exit(1)
            console.print(f"[green]✓ Done[/green]  id: {result.id}")
            typer.echo(result.image_url)

            if clean:
                data = await machine.download_clean(is_super_fan({"membership_tier": tier}))
                if data is None:
                    _report_failure(console, machine)
                    raise typer.Exit(1)
                out_dir = out or Path(session.config.output.downloads_dir)
                out_dir.mkdir(parents=True, exist_ok=True)
                target = out_dir / f"selfie-clean-{result.id}.jpg"
                target.write_bytes(data)
                console.print(f"[dim]Saved:[/dim] {target}")
        finally:
            await session.shutdown()

    try:
        _run(_selfie())
    except KeyboardInterrupt:
        typer.echo("\nCancelled.", err=True)
        raise typer.Exit(130)


@app.command()
def story(
    character: str = typer.Option(..., "--character", "-c", help="Character name"),
    trait: list[str] = typer.Option(None, "--trait", help="Character trait (repeatable)"),
    background: str = typer.Option(None, "--background", help="Character background"),
    genre: str = typer.Option("adventure", "--genre", help="Story genre"),
    mood: str = typer.Option("epic", "--mood", help="Story mood"),
    length: str = typer.Option("medium", "--length", help="short, medium or long"),
    theme: str = typer.Option(None, "--theme", help="Story theme"),
    prompt: str = typer.Option(None, "--prompt", "-p", help="Free-text prompt"),
    images: bool = typer.Option(True, "--images/--no-images", help="Generate cover and scene images"),
    save: str = typer.Option("none", "--save", help="none, draft or published"),
    public: bool = typer.Option(False, "--public/--private", help="Visibility when saved"),
    title: str = typer.Option(None, "--title", help="Override the generated title when saving"),
    tag: list[str] = typer.Option(None, "--tag", help="Tag to save with the story (repeatable)"),
):
    """Generate a story starring your character, optionally saving it."""
    import pydantic
    from rich.console import Console

    from genstudio.models.payloads import ArtifactMetadata, StoryPrompt, StoryRequest, Visibility
    from genstudio.orchestration.progress import STORY_STAGES, estimate_generation_time
    from genstudio.persistence.normalize import normalize_story

    if save not in ("none", "draft", "published"):
        typer.echo(f"Unknown --save value '{save}' (use none, draft or published)", err=True)
        raise typer.Exit(2)

    try:
        request = StoryRequest(
            character_name=character,
            character_traits=list(trait or []),
            character_background=background,
            prompt=StoryPrompt(
                genre=genre, mood=mood, length=length, theme=theme, custom_prompt=prompt
            ),
            include_images=images,
        )
    except pydantic.ValidationError as e:
        typer.echo(f"Invalid story options: {e}", err=True)
        raise typer.Exit(2)

    console = Console(stderr=True)
    tracker = _Tracker()

    async def _story():
        session = _open_session(tracker.on_change)
        machine = session.story
        try:
            await session.startup()
            estimate = estimate_generation_time(length, images, session.config.story)
            console.print(f"[dim]This usually takes about {_fmt_duration(estimate)}.[/dim]")

            await _run_live(
                f"Story starring {character}",
                [label for label, _, _ in STORY_STAGES],
                machine.start_with_input(request),
                tracker,
                console,
            )
            if _report_failure(console, machine):
                raise typer.Exit(1)

            result = normalize_story(machine.job.result.data)
            console.print(
                f"[green]✓ Done[/green]  {len(result.scenes)} scenes, "
                f"~{result.estimated_read_time or '?'} min read"
            )
            typer.echo(f"# {result.title}\n\n{result.content}")
            for scene in result.scenes:
                typer.echo(f"\n## {scene.scene_number}. {scene.title}\n\n{scene.content}")
                if scene.image_url:
                    typer.echo(f"\n[image] {scene.image_url}")

            if save == "none":
                return

            await machine.persist(
                Visibility(status=save, is_public=public),
                ArtifactMetadata(title=title, tags=list(tag or [])),
            )
            while machine.state is GenerationState.ERROR and machine.can_retry_save:
                _report_failure(console, machine)
                if not typer.confirm("Your story is kept. Retry saving?", default=True):
                    raise typer.Exit(1)
                await machine.retry_save()

            if machine.state is not GenerationState.PUBLISHED:
                _report_failure(console, machine)
                raise typer.Exit(1)
            artifact = machine.job.artifact
            visibility = "public" if artifact.is_public else "private"
            console.print(f"[green]✓ Saved[/green]  id: {artifact.id}  ({artifact.status}, {visibility})")
        finally:
            await session.shutdown()

    try:
        _run(_story())
    except KeyboardInterrupt:
        typer.echo("\nCancelled.", err=True)
        raise typer.Exit(130)


@app.command()
def history():
    """List previously generated selfies."""

    import httpx

    async def _history():
        session = _open_session()
        try:
            items = await session.fetch_history()
        except httpx.HTTPError as e:
            typer.echo(f"Could not load history: {e}", err=True)
            raise typer.Exit(1)
        finally:
            await session.shutdown()

        if not items:
            typer.echo("No selfies yet.")
            return
        for item in items:
            image = item.get("image_url") or item.get("imageUrl") or ""
            created = item.get("created_at") or ""
            typer.echo(f"{item.get('id', '?')}  {created}  {image}")

    _run(_history())


def run() -> None:
    """Console script entry point."""
    app()

