"""Helpers shared by CLI command groups."""

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import typer

from mnemos.application.config import AppConfig, resolve_config
from mnemos.application.factory import Services, build_services
from mnemos.domain.errors import (
    InvalidInputError,
    InvariantViolation,
    MnemosError,
    NotFoundError,
    TransientStoreError,
)


def _resolve_with_overrides(ctx: typer.Context | None = None, **kwargs: Any) -> AppConfig:
    """Resolve config, layering global callback options and command options on top."""
    overrides: dict[str, Any] = {}
    if ctx is not None and isinstance(ctx.obj, dict):
        overrides.update(ctx.obj.get("overrides", {}))
    overrides.update(kwargs)
    return resolve_config({k: v for k, v in overrides.items() if v is not None})


def get_services(ctx: typer.Context | None = None) -> Services:
    return build_services(_resolve_with_overrides(ctx))


def to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return value


def echo_json(value: Any) -> None:
    typer.echo(json.dumps(to_jsonable(value), indent=2, ensure_ascii=False))


def humanize_error(e: MnemosError) -> str:
    """Convert a domain error to a one-line message for the terminal."""
    if isinstance(e, NotFoundError):
        return f"Not found: {e}"
    if isinstance(e, InvalidInputError):
        return f"Invalid input: {e}"
    if isinstance(e, InvariantViolation):
        return f"Not allowed now: {e}"
    if isinstance(e, TransientStoreError):
        return f"Storage unavailable, try again: {e}"
    return str(e)


def fail(e: MnemosError) -> None:
    typer.secho(humanize_error(e), fg="red", err=True)
    raise typer.Exit(1)
