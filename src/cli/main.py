"""CLI entry point for recall-feedback."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import feedback
from cli.config import load_config_model, setup_logging
from observability import log_run_summary


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.option("--config", "config_path", type=click.Path(path_type=Path),
              help="Config file (default: ./.recallfeedback.yaml or ~/.recall-feedback/config.yaml)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool, config_path: Path | None):
    """recall-feedback - learn which recalled memories were actually useful."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    try:
        config = load_config_model(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))
    setup_logging(config, verbose=verbose, json_mode=json_logs)
    if verbose:
        ctx.call_on_close(log_run_summary)


cli.add_command(feedback)


if __name__ == "__main__":
    cli()
