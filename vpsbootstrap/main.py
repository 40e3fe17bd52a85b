"""
vpsbootstrap — CLI entrypoint.

Usage:
    sudo vpsbootstrap harden
    vpsbootstrap setup-app
    vpsbootstrap steps
    vpsbootstrap history
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from vpsbootstrap import __version__
from vpsbootstrap.core.observability.logging_config import resolve_level, setup_logging
from vpsbootstrap.ui.cli.history import history


@click.group()
@click.version_option(version=__version__, prog_name="vpsbootstrap")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Settings YAML (default: $VPSB_CONFIG, else built-in defaults).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision a fresh Ubuntu 24.04 VPS in two phases: harden, then setup-app."""
    from vpsbootstrap.core.config.loader import ConfigError, load_settings

    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet

    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))

    try:
        ctx.obj["settings"] = load_settings(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


# ── Phases ─────────────────────────────────────────────────────


def _phase_options(fn):
    fn = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")(fn)
    fn = click.option("--mock", is_flag=True, help="Answer every action with success; touch nothing.")(fn)
    fn = click.option("--resume-from", "resume_from", default=None, metavar="STEP", help="Skip every step before STEP.")(fn)
    fn = click.option("--dry-run", is_flag=True, help="Report mutating actions instead of running them.")(fn)
    fn = click.option(
        "--answers",
        "answers_path",
        type=click.Path(dir_okay=False),
        default=None,
        help="YAML file pre-seeding the operator questions.",
    )(fn)
    return fn


def _run_phase(
    ctx: click.Context,
    phase: str,
    answers_path: str | None,
    dry_run: bool,
    resume_from: str | None,
    mock: bool,
    as_json: bool,
) -> None:
    from vpsbootstrap.core.config.loader import ConfigError, load_answers
    from vpsbootstrap.core.use_cases.provision import run_phase
    from vpsbootstrap.ui.cli.operator import ClickOperator, render_outcomes

    try:
        answers = load_answers(Path(answers_path)) if answers_path else None
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    operator = ClickOperator(quiet=quiet or as_json)

    if not as_json and not quiet:
        label = " (dry run)" if dry_run else ""
        click.secho(f"\n🔧 {phase}{label}", fg="cyan", bold=True)

    result = run_phase(
        phase,
        settings=ctx.obj["settings"],
        operator=operator,
        answers=answers,
        dry_run=dry_run,
        resume_from=resume_from,
        mock=mock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.succeeded else 1)

    pipeline = result.pipeline
    if result.error or pipeline is None:
        click.secho(f"❌ {result.error or 'No steps ran'}", fg="red")
        sys.exit(1)

    click.echo()
    render_outcomes(pipeline)
    click.echo()

    if not pipeline.succeeded:
        click.secho(f"❌ Step '{pipeline.failed_step}' failed: {pipeline.cause}", fg="red", bold=True)
        if pipeline.detail:
            click.echo(pipeline.detail)
        click.echo(f"   Fix the cause, then rerun with --resume-from {pipeline.failed_step}")
        sys.exit(1)

    if dry_run:
        click.secho("✅ Dry run complete; nothing was changed", fg="green", bold=True)
        return

    click.secho(f"✅ {phase} complete ({result.duration_ms}ms)", fg="green", bold=True)
    for line in result.summary:
        click.echo(line)
    click.echo()


@cli.command()
@_phase_options
@click.pass_context
def harden(
    ctx: click.Context,
    answers_path: str | None,
    dry_run: bool,
    resume_from: str | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Phase 1: harden the host (run as root)."""
    _run_phase(ctx, "harden", answers_path, dry_run, resume_from, mock, as_json)


@cli.command("setup-app")
@_phase_options
@click.pass_context
def setup_app(
    ctx: click.Context,
    answers_path: str | None,
    dry_run: bool,
    resume_from: str | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Phase 2: install and start the application stack (run as the new user)."""
    _run_phase(ctx, "setup-app", answers_path, dry_run, resume_from, mock, as_json)


@cli.command()
@click.argument("phase", required=False, type=click.Choice(["harden", "setup-app"]))
@click.pass_context
def steps(ctx: click.Context, phase: str | None) -> None:
    """List the steps of each phase, in execution order."""
    from vpsbootstrap.core.use_cases.provision import PHASES, steps_for

    for name in [phase] if phase else list(PHASES):
        click.secho(name, fg="cyan", bold=True)
        for index, step in enumerate(steps_for(name, ctx.obj["settings"]), start=1):
            click.echo(f"  {index}. {step.name:<15} {step.description}")


cli.add_command(history)


if __name__ == "__main__":
    cli()
