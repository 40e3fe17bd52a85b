"""
CLI command for the audit ledger.

Usage::

    vpsbootstrap history
    vpsbootstrap history -n 5
    vpsbootstrap history --json
"""

from __future__ import annotations

import json

import click


@click.command()
@click.option("-n", "limit", type=int, default=20, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent provisioning runs."""
    from vpsbootstrap.core.persistence.audit import AuditWriter

    settings = ctx.obj["settings"]
    writer = AuditWriter.for_state_dir(settings.resolve_state_dir())
    entries = writer.read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo(f"No runs recorded in {writer.path}")
        return

    for entry in entries:
        color = "green" if entry.status == "ok" else "red"
        flags = " [dry-run]" if entry.dry_run else ""
        click.echo(f"{entry.timestamp[:19]}  {entry.phase:<10} ", nl=False)
        click.secho(f"{entry.status:<7}", fg=color, nl=False)
        click.echo(
            f" {entry.steps_completed}/{entry.steps_total} steps  {entry.operation_id}{flags}"
        )
        if entry.failed_step:
            click.echo(f"    failed at {entry.failed_step}: {entry.error}")
        elif entry.error:
            click.echo(f"    {entry.error}")
