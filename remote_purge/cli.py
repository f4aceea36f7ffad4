# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""CLI entry point for the remote purge engine.

Usage:
    remote-purge enqueue backup-A.zip -d s3 -d b2
    remote-purge run
    remote-purge queue
    remote-purge queue --json
    remote-purge status
    remote-purge status --json
    remote-purge prune --older-than-days 30
    remote-purge daemon
"""

import json as json_mod
import signal
import sys
import threading

import click

from remote_purge.utils.config_loader import ConfigLoader
from remote_purge.utils.logger import setup_logger, get_logger

_config_dir_option = click.option(
    "--config-dir",
    default="config",
    help="Path to config directory containing YAML files.",
)


def _build_service(config_dir):
    """Load config, set up logging and wire a PurgeService."""
    loader = ConfigLoader(config_dir=config_dir)
    config = loader.load()
    setup_logger(config)

    from remote_purge.engine.service import PurgeService

    return PurgeService.from_config(config)


@click.group()
def cli():
    """Remote Purge: delete superseded backups from remote destinations."""
    pass


@cli.command()
@_config_dir_option
@click.argument("file")
@click.option(
    "--destination",
    "-d",
    "destinations",
    multiple=True,
    required=True,
    help="Destination id to purge from (repeatable).",
)
def enqueue(config_dir, file, destinations):
    """Queue FILE for deletion on one or more destinations."""
    try:
        service = _build_service(config_dir)

        unknown = [d for d in destinations if d not in service.registry.known_ids()]
        if unknown:
            click.echo(
                f"Warning: not configured: {', '.join(unknown)} "
                f"(attempts will fail until configured)",
                err=True,
            )

        entry = service.register_purge(file, list(destinations))
        click.echo(
            f"Queued {entry.file} on {', '.join(entry.destinations)} "
            f"(status: {entry.status.value})"
        )
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@_config_dir_option
def run(config_dir):
    """Run one purge worker pass."""
    try:
        service = _build_service(config_dir)
        service.run()

        outcomes = service.worker.last_outcomes
        counts = {"completed": 0, "retry": 0, "failed": 0}
        for outcome in outcomes:
            counts[outcome.outcome] = counts.get(outcome.outcome, 0) + 1

        click.echo("\n--- Purge Run Summary ---")
        click.echo(f"Processed:  {len(outcomes)}")
        click.echo(f"Completed:  {counts['completed']}")
        click.echo(f"Retrying:   {counts['retry']}")
        click.echo(f"Failed:     {counts['failed']}")
        if service.worker.next_run_in is not None:
            click.echo(f"Next run:   in {service.worker.next_run_in:.0f}s")

        for outcome in outcomes:
            for destination_id, message in outcome.errors.items():
                click.echo(f"  {outcome.file} [{destination_id}]: {message}")
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@_config_dir_option
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON.")
def queue(config_dir, as_json):
    """List purge queue entries."""
    try:
        service = _build_service(config_dir)
        entries = service.list_entries()

        if as_json:
            click.echo(json_mod.dumps([e.to_dict() for e in entries], indent=2))
        else:
            from remote_purge.metrics.dashboard import format_queue

            click.echo(format_queue(entries))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@_config_dir_option
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON.")
def status(config_dir, as_json):
    """Show the SLA metrics snapshot."""
    try:
        service = _build_service(config_dir)
        snapshot = service.get_snapshot()

        if as_json:
            payload = snapshot.to_dict() if snapshot is not None else {}
            click.echo(json_mod.dumps(payload, indent=2))
        else:
            from remote_purge.metrics.dashboard import format_table

            click.echo(format_table(snapshot))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@_config_dir_option
@click.option(
    "--older-than-days",
    default=30,
    type=float,
    help="Drop completed/failed entries finished more than N days ago.",
)
def prune(config_dir, older_than_days):
    """Remove old terminal entries from the purge queue."""
    try:
        service = _build_service(config_dir)
        removed = service.store.prune_terminal(older_than_days * 86400)
        click.echo(f"Removed {removed} finished entr{'y' if removed == 1 else 'ies'}")
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@_config_dir_option
def daemon(config_dir):
    """Run the purge scheduler until SIGINT/SIGTERM."""
    try:
        service = _build_service(config_dir)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    logger = get_logger()
    stop_event = threading.Event()

    def _signal_handler(signum, frame):
        logger.info(f"Signal {signum} received, stopping purge scheduler")
        stop_event.set()

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    service.ensure_scheduled()
    # First pass right away instead of waiting a full interval
    service.scheduler.trigger_soon()
    click.echo(
        f"Purge scheduler running every {service.policy.schedule_interval_seconds:.0f}s "
        f"(Ctrl+C to stop)"
    )
    try:
        while not stop_event.wait(1.0):
            pass
    finally:
        service.shutdown()
    click.echo("Purge scheduler stopped.")


if __name__ == "__main__":
    cli()
