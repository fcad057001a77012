"""CLI entry point for taskbuffer."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import (  # noqa: E402
    check_duplicate,
    cleanup,
    daemon,
    ingest,
    pending,
    sweep,
    tasks_cmd,
    webhook,
)
from cli.config import load_config_model  # noqa: E402
from cli.logging_config import setup_logging  # noqa: E402


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(verbose: bool, json_logs: bool):
    """taskbuffer - turn chat bursts into deduplicated action items."""
    try:
        config_model = load_config_model()
        level, json_mode = config_model.logging.level, config_model.logging.json_logs
        log_file = config_model.paths.log_file
    except ValueError:
        # Config errors are reported by the command that loads components
        level, json_mode, log_file = "INFO", False, None
    if verbose:
        level = "DEBUG"
    setup_logging(json_mode=json_mode or json_logs, level=level, log_file=log_file)


cli.add_command(ingest)
cli.add_command(webhook)
cli.add_command(pending)
cli.add_command(sweep)
cli.add_command(daemon)
cli.add_command(cleanup)
cli.add_command(tasks_cmd)
cli.add_command(check_duplicate)


if __name__ == "__main__":
    cli()
