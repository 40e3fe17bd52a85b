"""
Terminal operator — the click-backed prompt/echo boundary.

Prompts block without a timeout; a provisioning run waits for its
operator as long as it takes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from vpsbootstrap.core.engine.executor import PipelineResult


class ClickOperator:
    """Operator that talks to the controlling terminal via click."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet

    def prompt(self, text: str, default: str | None = None) -> str:
        return click.prompt(
            text,
            default=default or "",
            show_default=bool(default),
            type=str,
        )

    def pause(self, text: str) -> None:
        click.prompt(text, default="", show_default=False, prompt_suffix=" ")

    def echo(self, text: str = "") -> None:
        if not self.quiet:
            click.echo(text)

    def warn(self, text: str) -> None:
        click.secho(f"⚠️  {text}", fg="yellow")


def render_outcomes(pipeline: PipelineResult) -> None:
    """Print one line per step: ✓ ran, ⊘ skipped, ✗ failed."""
    for outcome in pipeline.outcomes:
        if outcome.status == "ok":
            click.secho(f"   ✓ {outcome.name}", fg="green", nl=False)
            click.echo(f"  ({outcome.duration_ms}ms)")
        elif outcome.status == "skipped":
            click.secho(f"   ⊘ {outcome.name}", fg="bright_black", nl=False)
            click.echo(f"  {outcome.reason}")
        else:
            click.secho(f"   ✗ {outcome.name}", fg="red", bold=True)
