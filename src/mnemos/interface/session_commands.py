"""`mnemos session ...` and `mnemos items ...` command groups."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
import yaml

from mnemos.domain.errors import InvalidInputError, MnemosError
from mnemos.domain.models import LearningItemRef, ModuleType
from mnemos.interface._common import echo_json, fail, get_services

session_app = typer.Typer(help="Run learning sessions.", no_args_is_help=True)
items_app = typer.Typer(help="Manage content items.", no_args_is_help=True)


# ---------------------------------------------------------------------------
# Session subgroup
# ---------------------------------------------------------------------------


@session_app.command("start")
def start(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    lesson_id: Annotated[str, typer.Argument(help="Lesson id, e.g. lesson1.")],
    restart: Annotated[
        bool, typer.Option("--restart", help="Discard an in-progress session and start over.")
    ] = False,
):
    """[bold green]Start[/bold green] round 1 of a lesson."""
    try:
        services = get_services(ctx)
        snapshot = asyncio.run(services.sessions.start_session(user_id, lesson_id, restart=restart))
    except MnemosError as e:
        fail(e)
    echo_json(snapshot)


@session_app.command("next")
def next_item(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
):
    """Show the item awaiting an answer."""
    try:
        services = get_services(ctx)
        item = asyncio.run(services.sessions.get_next_item(user_id, lesson_id))
    except MnemosError as e:
        fail(e)

    if item is None:
        state = asyncio.run(services.sessions.get_session_state(user_id, lesson_id))
        phase = state.phase.value if state else "unknown"
        typer.secho(f"No item pending (phase: {phase}).", fg="yellow", err=True)
        echo_json({"item": None, "phase": phase})
        return
    echo_json({"item": item})


@session_app.command("answer")
def answer(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    item_id: Annotated[str, typer.Argument(help="Item being answered.")],
    outcome: Annotated[str, typer.Argument(help="know, fuzzy or forget.")],
    lesson_id: Annotated[
        str | None, typer.Option("--lesson", help="Lesson id. Defaults to the active session.")
    ] = None,
    attempts: Annotated[
        int | None, typer.Option(help="Override the derived attempt number.")
    ] = None,
):
    """Submit a self-report for the current item."""
    try:
        services = get_services(ctx)
        result = asyncio.run(
            services.sessions.submit_answer(
                user_id, item_id, outcome, attempts=attempts, lesson_id=lesson_id
            )
        )
    except MnemosError as e:
        fail(e)
    echo_json(result)


@session_app.command("state")
def state(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
):
    """Show the saved session snapshot."""
    try:
        services = get_services(ctx)
        snapshot = asyncio.run(services.sessions.get_session_state(user_id, lesson_id))
    except MnemosError as e:
        fail(e)
    if snapshot is None:
        typer.secho(f"No session for {user_id}/{lesson_id}.", fg="yellow", err=True)
        raise typer.Exit(1)
    echo_json(snapshot)


@session_app.command("evaluate")
def evaluate(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
):
    """Evaluate the finished round and move to the next one."""
    try:
        services = get_services(ctx)
        evaluation = asyncio.run(services.sessions.evaluate_round(user_id, lesson_id))
    except MnemosError as e:
        fail(e)

    if evaluation.finished:
        typer.secho(f"Lesson {lesson_id} finished.", fg="green", err=True)
    elif not evaluation.promote and not evaluation.forced:
        typer.secho(f"Round {evaluation.round} will be repeated.", fg="yellow", err=True)
    echo_json(evaluation)


@session_app.command("abandon")
def abandon(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
):
    """Discard the saved session so the lesson can be started fresh."""
    try:
        services = get_services(ctx)
        cleared = asyncio.run(services.sessions.abandon_session(user_id, lesson_id))
    except MnemosError as e:
        fail(e)
    echo_json({"cleared": cleared})


# ---------------------------------------------------------------------------
# Items subgroup
# ---------------------------------------------------------------------------


def load_items_file(path: Path) -> list[LearningItemRef]:
    """
    Read content items from YAML:

        items:
          - item_id: ก
            module_type: letter
            lesson_ids: [lesson1]
            label: ก
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidInputError(f"Invalid items file {path}: {e}") from e

    entries = data.get("items") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise InvalidInputError(f"{path} must define an 'items' list")

    refs = []
    for i, raw in enumerate(entries, start=1):
        if not isinstance(raw, dict) or "item_id" not in raw:
            raise InvalidInputError(f"Item #{i} needs an item_id")
        try:
            module_type = ModuleType(raw.get("module_type", ModuleType.LETTER.value))
        except ValueError as e:
            raise InvalidInputError(f"Item #{i}: {e}") from e
        refs.append(
            LearningItemRef(
                item_id=str(raw["item_id"]),
                module_type=module_type,
                lesson_ids=tuple(str(x) for x in raw.get("lesson_ids") or ()),
                label=raw.get("label"),
            )
        )
    return refs


@items_app.command("seed")
def seed(
    ctx: typer.Context,
    path: Annotated[
        Path | None,
        typer.Argument(help="YAML items file. Defaults to the lesson catalog's own items."),
    ] = None,
):
    """Load content items into the store."""
    try:
        services = get_services(ctx)
        if path is None:
            refs = services.catalog.item_refs()
        else:
            if not path.exists():
                typer.secho(f"File not found: {path}", fg="red", err=True)
                raise typer.Exit(1)
            refs = load_items_file(path)
        count = asyncio.run(services.content.upsert_items(refs))
    except MnemosError as e:
        fail(e)
    typer.secho(f"Seeded {count} items.", fg="green", err=True)
    echo_json({"seeded": count})


@items_app.command("skip")
def skip(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    item_id: Annotated[str, typer.Argument(help="Item to skip.")],
    restore: Annotated[
        bool, typer.Option("--restore", help="Put the item back into review rotation.")
    ] = False,
):
    """Remove an item from review rotation (or restore it)."""
    try:
        services = get_services(ctx)
        state = asyncio.run(services.sessions.set_skipped(user_id, item_id, skipped=not restore))
    except MnemosError as e:
        fail(e)
    echo_json(state)


@items_app.command("review")
def review(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Learner id.")],
    item_id: Annotated[str, typer.Argument(help="Item that was practised.")],
    quality: Annotated[str, typer.Argument(help="Recall quality, 1 (forgot) to 5 (perfect).")],
):
    """Record a free-practice review outside a session."""
    try:
        services = get_services(ctx)
        state = asyncio.run(services.sessions.record_review(user_id, item_id, quality))
    except MnemosError as e:
        fail(e)
    echo_json(state)
