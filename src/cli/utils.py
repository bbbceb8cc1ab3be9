"""Shared CLI utilities."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def run_async(coro):
    """Run a coroutine to completion from a synchronous click command."""
    return asyncio.run(coro)


def get_components(project_dir: Optional[Path] = None) -> dict:
    """Initialize config and the feedback service for the current project.

    Reads the config path stored on the click context by the root group, so
    ``--config`` applies to every subcommand.
    """
    from cli.config import get_paths, load_config_model
    from feedback.service import FeedbackService

    ctx = click.get_current_context(silent=True)
    config_path = (ctx.obj or {}).get("config_path") if ctx else None

    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    if project_dir is not None:
        config.paths.project_dir = Path(project_dir).expanduser()

    service = FeedbackService.from_config(config)
    return {
        "config": config,
        "paths": get_paths(config.to_dict()),
        "service": service,
    }
