"""mnemos CLI: root commands and subgroup registration."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Annotated

import typer

from mnemos.application.scheduler import preview_timeline
from mnemos.domain.errors import MnemosError
from mnemos.domain.models import MemoryState, ModuleType
from mnemos.interface._common import _resolve_with_overrides, echo_json, fail, get_services

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mnemos: spaced-repetition memory and session progression engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

from mnemos.interface.session_commands import items_app, session_app  # noqa: E402

app.add_typer(session_app, name="session")
app.add_typer(items_app, name="items")

config_app = typer.Typer(help="Manage mnemos configuration.")
app.add_typer(config_app, name="config")

schedule_app = typer.Typer(help="Inspect review scheduling.", no_args_is_help=True)
app.add_typer(schedule_app, name="schedule")


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
    store_backend: Annotated[
        str | None,
        typer.Option("--store", help="Document store backend: memory or json."),
    ] = None,
    data_dir: Annotated[
        Path | None, typer.Option(help="Directory for the JSON document store.")
    ] = None,
    lessons_file: Annotated[
        Path | None, typer.Option(help="YAML lesson table overriding the built-in one.")
    ] = None,
):
    """Global settings for mnemos."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "verbose": verbose,
        "store_backend": store_backend,
        "data_dir": data_dir,
        "lessons_file": lessons_file,
    }
    if verbose > 1:
        logging.getLogger("mnemos").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def unlock(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
):
    """Show which learning modules are unlocked."""
    try:
        services = get_services(ctx)
        info = asyncio.run(services.sessions.get_unlock_info(user_id))
    except MnemosError as e:
        fail(e)
    echo_json(info)


@app.command()
def stats(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    module: Annotated[
        ModuleType | None, typer.Option(help="Restrict to one module.")
    ] = None,
):
    """[bold]Review statistics[/bold]: mastery, due items, streak."""
    try:
        services = get_services(ctx)
        result = asyncio.run(services.stats.get_statistics(user_id, module_type=module))
    except MnemosError as e:
        fail(e)
    echo_json(result)


@app.command()
def progress(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
):
    """Show round history, completed lessons and unlock flags."""
    try:
        services = get_services(ctx)
        result = asyncio.run(services.sessions.get_user_progress(user_id))
    except MnemosError as e:
        fail(e)
    echo_json(result)


@app.command("daily-limit")
def daily_limit(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    limit: Annotated[
        int | None,
        typer.Argument(help="Max carryover reviews per session. Omit with --reset."),
    ] = None,
    reset: Annotated[
        bool, typer.Option("--reset", help="Fall back to the configured default.")
    ] = False,
):
    """Set a learner's own daily review limit."""
    if (limit is not None) == reset:
        typer.secho("Give either a LIMIT or --reset.", fg="red", err=True)
        raise typer.Exit(2)
    try:
        services = get_services(ctx)
        result = asyncio.run(services.sessions.set_daily_limit(user_id, limit))
    except MnemosError as e:
        fail(e)
    echo_json({"user_id": result.user_id, "daily_limit": result.daily_limit})


@app.command()
def lessons(ctx: typer.Context):
    """List the lesson catalog."""
    try:
        services = get_services(ctx)
    except MnemosError as e:
        fail(e)
    echo_json(
        [
            {
                "lesson_id": lesson.lesson_id,
                "title": lesson.title,
                "min_pass_rate": lesson.min_pass_rate,
                "mini_review_interval": lesson.mini_review_interval,
                "items": len(lesson.items),
            }
            for lesson in services.catalog.lessons
        ]
    )


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP API server."""
    import uvicorn

    typer.secho(f"Starting mnemos server on http://{host}:{port}", fg="green", err=True)
    uvicorn.run("mnemos.server:app", host=host, port=port, reload=reload)


@app.command()
def logs(
    ctx: typer.Context,
    open_dir: Annotated[
        bool, typer.Option("--open", help="Open the directory in the file manager.")
    ] = False,
):
    """Print (or open) the server log directory."""
    import subprocess

    config = _resolve_with_overrides(ctx)
    if not config.log_dir.exists():
        config.log_dir.mkdir(parents=True, exist_ok=True)

    typer.echo(str(config.log_dir))
    if not open_dir:
        return

    if sys.platform == "darwin":
        subprocess.run(["open", str(config.log_dir)])
    elif sys.platform == "win32":
        os.startfile(str(config.log_dir))
    else:
        subprocess.run(["xdg-open", str(config.log_dir)])


# ---------------------------------------------------------------------------
# Schedule subgroup
# ---------------------------------------------------------------------------


@schedule_app.command("preview")
def schedule_preview(
    ctx: typer.Context,
    user_id: Annotated[
        str | None, typer.Option("--user", help="Preview from this user's stored state.")
    ] = None,
    item_id: Annotated[str | None, typer.Option("--item", help="Item of the stored state.")] = None,
    count: Annotated[int, typer.Option(help="Number of future reviews to project.")] = 5,
):
    """Project the next review intervals assuming perfect recall."""
    state: MemoryState | None = None
    if user_id and item_id:
        try:
            services = get_services(ctx)
            state = asyncio.run(services.memory_states.get(user_id, item_id))
        except MnemosError as e:
            fail(e)
    elif user_id or item_id:
        typer.secho("--user and --item must be given together.", fg="red", err=True)
        raise typer.Exit(2)

    try:
        intervals = preview_timeline(state, count)
    except MnemosError as e:
        fail(e)
    echo_json({"item_id": item_id, "intervals_days": intervals})


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve_with_overrides(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
