"""
Engine executor — the ordered step pipeline.

A phase is a list of Steps. The runner executes them strictly in
declaration order, skips a step only when its own check reports the
work is already done, and stops at the first failure:

    step → check? → run (actions → adapters → receipts) → next step

Steps raise ``ProvisioningError`` subclasses; the runner turns the
first one into a failed PipelineResult naming the step. Nothing is
rolled back here; the sshd step restores its own backup before raising.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Protocol

from vpsbootstrap.adapters.registry import AdapterRegistry
from vpsbootstrap.core.errors import PreconditionError, ProvisioningError, StepExecutionError
from vpsbootstrap.core.models.action import Action, Receipt
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import Settings
from vpsbootstrap.core.models.template import GeneratedFile

logger = logging.getLogger(__name__)


class Operator(Protocol):
    """The blocking terminal boundary: prompts, confirmations, output."""

    def prompt(self, text: str, default: str | None = None) -> str: ...

    def pause(self, text: str) -> None: ...

    def echo(self, text: str = "") -> None: ...

    def warn(self, text: str) -> None: ...


@dataclass
class Step:
    """A named, ordered unit of a phase.

    ``check`` returns True when the step's effect is already in place;
    the step is then skipped without running.
    """

    name: str
    run: Callable[[StepContext], None]
    check: Callable[[StepContext], bool] | None = None
    description: str = ""


@dataclass
class StepOutcome:
    name: str
    status: str = "ok"             # ok, skipped, failed
    reason: str = ""
    duration_ms: int = 0
    receipts: list[Receipt] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "reason": self.reason,
            "duration_ms": self.duration_ms,
            "actions": len(self.receipts),
        }


@dataclass
class PipelineResult:
    """Terminal state of a phase run: success, or failed at one step."""

    phase: str
    operation_id: str = ""
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    dry_run: bool = False
    outcomes: list[StepOutcome] = field(default_factory=list)
    failed_step: str | None = None
    cause: str | None = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None

    @property
    def status(self) -> str:
        return "ok" if self.succeeded else "failed"

    @property
    def completed(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == "ok"]

    @property
    def skipped(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == "skipped"]

    def fail(self, step: str, cause: str, detail: str = "") -> None:
        self.failed_step = step
        self.cause = cause
        self.detail = detail

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "operation_id": self.operation_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "failed_step": self.failed_step,
            "cause": self.cause,
            "detail": self.detail,
            "steps": [o.to_dict() for o in self.outcomes],
        }


class StepContext:
    """What a running step sees: config, settings, and action helpers.

    Every helper builds an Action with ID ``<phase>:<step>:<op>`` and
    dispatches it through the registry. With ``check=True`` (the
    default) a failed receipt raises StepExecutionError.
    """

    def __init__(
        self,
        *,
        phase: str,
        step: str,
        config: ProvisioningConfig,
        settings: Settings,
        registry: AdapterRegistry,
        operator: Operator,
        dry_run: bool = False,
    ):
        self.phase = phase
        self.step = step
        self.config = config
        self.settings = settings
        self.registry = registry
        self.operator = operator
        self.dry_run = dry_run
        self.receipts: list[Receipt] = []

    # ── Dispatch ────────────────────────────────────────────────

    def call(
        self,
        op: str,
        adapter: str,
        *,
        description: str = "",
        read_only: bool = False,
        check: bool = True,
        **params: Any,
    ) -> Receipt:
        action = Action(
            id=f"{self.phase}:{self.step}:{op}",
            adapter=adapter,
            step=self.step,
            description=description or op,
            read_only=read_only,
            params=params,
        )
        receipt = self.registry.execute_action(action, dry_run=self.dry_run)
        self.receipts.append(receipt)

        if receipt.failed:
            logger.debug("%s failed: %s", action.id, receipt.error)
            if check:
                raise StepExecutionError(
                    self.step, f"{action.description} failed", receipt
                )
        return receipt

    def sh(self, op: str, argv: list[str], **kwargs: Any) -> Receipt:
        """Run a host command."""
        kwargs.setdefault("description", " ".join(str(a) for a in argv))
        kwargs.setdefault("timeout", self.settings.command_timeout)
        return self.call(op, "shell", argv=[str(a) for a in argv], **kwargs)

    def fs(self, op: str, operation: str, path: Path | str, **kwargs: Any) -> Receipt:
        """Run a filesystem operation."""
        kwargs.setdefault("description", f"{operation} {path}")
        return self.call(op, "filesystem", operation=operation, path=str(path), **kwargs)

    def exists(self, path: Path | str, op: str = "exists") -> bool:
        receipt = self.fs(op, "exists", path, read_only=True, check=False)
        return bool(receipt.ok and receipt.metadata.get("exists"))

    def read(self, path: Path | str, op: str = "read", check: bool = True) -> str | None:
        receipt = self.fs(op, "read", path, read_only=True, check=check)
        return receipt.output if receipt.ok else None

    def write(self, op: str, generated: GeneratedFile, sudo: bool = False) -> Receipt:
        """Write a generated file, through ``sudo tee`` when unprivileged."""
        if not sudo:
            return self.fs(
                op,
                "write",
                generated.path,
                content=generated.content,
                mode=generated.mode,
                description=f"write {generated.path}",
            )
        receipt = self.sh(
            op,
            ["tee", generated.path],
            sudo=True,
            input=generated.content,
            description=f"write {generated.path}",
        )
        if generated.mode is not None:
            self.sh(f"{op}:chmod", ["chmod", format(generated.mode, "o"), generated.path], sudo=True)
        return receipt

    # ── Operator output ─────────────────────────────────────────

    def echo(self, text: str = "") -> None:
        self.operator.echo(text)

    def warn(self, text: str) -> None:
        logger.warning("%s: %s", self.step, text)
        self.operator.warn(text)


def run_pipeline(
    steps: list[Step],
    *,
    phase: str,
    config: ProvisioningConfig,
    settings: Settings,
    registry: AdapterRegistry,
    operator: Operator,
    dry_run: bool = False,
    resume_from: str | None = None,
    operation_id: str | None = None,
) -> PipelineResult:
    """Execute ``steps`` in order, stopping at the first failure.

    Args:
        steps: The phase's steps, in execution order.
        phase: Phase name, used as the action-ID prefix.
        config: Validated operator input (read-only).
        settings: Versions, paths and tunables.
        registry: Adapter registry for dispatch.
        operator: Terminal boundary for prompts and output.
        dry_run: Report mutating actions as skipped instead of running them.
        resume_from: Skip every step before this one.
        operation_id: Identifier for state and audit (generated if None).

    Returns:
        PipelineResult — success, or the failing step and its cause.

    Raises:
        PreconditionError: ``resume_from`` names no step of this phase.
    """
    names = [s.name for s in steps]
    if resume_from is not None and resume_from not in names:
        raise PreconditionError(
            f"Unknown step '{resume_from}' for {phase}. Steps: {', '.join(names)}"
        )

    result = PipelineResult(
        phase=phase,
        operation_id=operation_id or generate_operation_id(),
        dry_run=dry_run,
    )
    waiting_for = resume_from

    for step in steps:
        if waiting_for is not None and step.name != waiting_for:
            result.outcomes.append(
                StepOutcome(name=step.name, status="skipped", reason=f"resuming from {resume_from}")
            )
            continue
        waiting_for = None

        ctx = StepContext(
            phase=phase,
            step=step.name,
            config=config,
            settings=settings,
            registry=registry,
            operator=operator,
            dry_run=dry_run,
        )
        outcome = StepOutcome(name=step.name, receipts=ctx.receipts)
        result.outcomes.append(outcome)
        start = time.monotonic()

        try:
            if step.check is not None and step.check(ctx):
                outcome.status = "skipped"
                outcome.reason = "already satisfied"
            else:
                step.run(ctx)
        except ProvisioningError as e:
            outcome.status = "failed"
            outcome.reason = str(e)
            detail = e.detail if isinstance(e, StepExecutionError) else ""
            result.fail(step.name, str(e), detail)
            logger.error("✗ %s:%s → %s", phase, step.name, e)
        finally:
            outcome.duration_ms = int((time.monotonic() - start) * 1000)

        if outcome.status == "failed":
            break

        marker = "✓" if outcome.status == "ok" else "⊘"
        logger.info("%s %s:%s → %s", marker, phase, step.name, outcome.status)

    return result


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
