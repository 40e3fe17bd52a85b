"""
Provision use case — run one phase from operator intent to audited result.

    lock → preconditions → config → steps → pipeline → state + audit

This is the only place that knows how a phase is put together; the CLI
just renders what comes back.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from vpsbootstrap.adapters.registry import AdapterRegistry, default_registry
from vpsbootstrap.core.engine.executor import (
    Operator,
    PipelineResult,
    Step,
    generate_operation_id,
    run_pipeline,
)
from vpsbootstrap.core.errors import PreconditionError, ProvisioningError
from vpsbootstrap.core.models.config import ProvisioningConfig
from vpsbootstrap.core.models.settings import Settings
from vpsbootstrap.core.models.state import PhaseRecord, StepRecord
from vpsbootstrap.core.persistence.audit import AuditEntry, AuditWriter
from vpsbootstrap.core.persistence.handoff import load_handoff
from vpsbootstrap.core.persistence.lock import RunLock
from vpsbootstrap.core.persistence.state_file import load_state, save_state, state_path
from vpsbootstrap.core.services import app_setup, hardening
from vpsbootstrap.core.services.collector import InputCollector
from vpsbootstrap.core.services.host_facts import (
    current_hostname,
    current_username,
    ensure_root,
    ensure_supported_os,
    ensure_unprivileged_user,
)

logger = logging.getLogger(__name__)

PHASES: dict[str, Callable[[Settings], list[Step]]] = {
    hardening.PHASE: hardening.build_hardening_steps,
    app_setup.PHASE: app_setup.build_app_steps,
}

SUMMARIES: dict[str, Callable[[ProvisioningConfig], list[str]]] = {
    hardening.PHASE: hardening.harden_summary,
    app_setup.PHASE: app_setup.app_summary,
}


def steps_for(phase: str, settings: Settings | None = None) -> list[Step]:
    try:
        builder = PHASES[phase]
    except KeyError:
        raise PreconditionError(f"Unknown phase '{phase}'. Phases: {', '.join(PHASES)}") from None
    return builder(settings or Settings())


@dataclass
class ProvisionResult:
    """Result of running one phase."""

    phase: str
    operation_id: str = ""
    config: ProvisioningConfig | None = None
    pipeline: PipelineResult | None = None
    error: str | None = None
    summary: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.pipeline is not None and self.pipeline.succeeded

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "phase": self.phase,
            "operation_id": self.operation_id,
            "status": "ok" if self.succeeded else "failed",
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["error"] = self.error
        if self.pipeline:
            result["pipeline"] = self.pipeline.to_dict()
        return result


def _check_preconditions(phase: str, settings: Settings) -> None:
    if phase == hardening.PHASE:
        ensure_root()
    ensure_supported_os(settings)


def _resolve_config(
    phase: str,
    settings: Settings,
    operator: Operator,
    answers: dict[str, Any] | None,
) -> ProvisioningConfig:
    """Collect input for phase 1; load the handoff (or ask) for phase 2."""
    if phase == app_setup.PHASE:
        username = current_username()
        handoff = load_handoff(settings.handoff_path(username))
        if handoff is not None:
            operator.echo(f"Using configuration saved by host hardening for {handoff.username}")
            return handoff
        collector = InputCollector(
            operator,
            answers=answers,
            defaults={"username": username, "hostname": current_hostname()},
        )
        return collector.collect()

    return InputCollector(operator, answers=answers).collect()


def _record(
    result: ProvisionResult,
    settings: Settings,
    *,
    dry_run: bool,
    resume_from: str | None,
) -> None:
    """Persist run state (real runs only) and append the audit entry."""
    state_dir = settings.resolve_state_dir()
    pipeline = result.pipeline
    config = result.config

    if pipeline is not None and not dry_run:
        path = state_path(state_dir)
        state = load_state(path)
        if config is not None:
            state.hostname = config.hostname
            state.username = config.username
        state.record(
            PhaseRecord(
                phase=result.phase,
                operation_id=result.operation_id,
                started_at=pipeline.started_at,
                status=pipeline.status,
                dry_run=dry_run,
                failed_step=pipeline.failed_step,
                error=pipeline.cause,
                steps=[
                    StepRecord(
                        name=o.name,
                        status=o.status,
                        reason=o.reason,
                        duration_ms=o.duration_ms,
                    )
                    for o in pipeline.outcomes
                ],
            )
        )
        try:
            save_state(state, path)
        except OSError as e:
            logger.warning("Run state not saved: %s", e)

    entry = AuditEntry(
        operation_id=result.operation_id,
        phase=result.phase,
        hostname=config.hostname if config else "",
        username=config.username if config else "",
        dry_run=dry_run,
        resume_from=resume_from,
        status="ok" if result.succeeded else "failed",
        duration_ms=result.duration_ms,
        error=result.error or (pipeline.cause if pipeline else None),
    )
    if pipeline is not None:
        entry.steps_total = len(pipeline.outcomes)
        entry.steps_completed = len(pipeline.completed)
        entry.steps_skipped = len(pipeline.skipped)
        entry.failed_step = pipeline.failed_step
        if pipeline.detail:
            entry.context["detail"] = pipeline.detail
    AuditWriter.for_state_dir(state_dir).write(entry)


def run_phase(
    phase: str,
    *,
    settings: Settings,
    operator: Operator,
    registry: AdapterRegistry | None = None,
    answers: dict[str, Any] | None = None,
    dry_run: bool = False,
    resume_from: str | None = None,
    mock: bool = False,
) -> ProvisionResult:
    """Run one provisioning phase end to end.

    Args:
        phase: ``harden`` or ``setup-app``.
        settings: Versions, paths and tunables.
        operator: Terminal boundary for prompts and output.
        registry: Pre-configured adapter registry (default: production adapters).
        answers: Pre-seeded answers for the input collector.
        dry_run: Report mutating actions instead of running them.
        resume_from: Skip every step before this one.
        mock: Answer every action with success; host preconditions are
            not checked since nothing on the host is touched.

    Returns:
        ProvisionResult. Failures are reported in ``error`` (before the
        pipeline started) or in ``pipeline`` (at a step); never raised.
    """
    result = ProvisionResult(phase=phase, operation_id=generate_operation_id())
    start = time.monotonic()

    try:
        steps = steps_for(phase, settings)
        names = [s.name for s in steps]
        if resume_from is not None and resume_from not in names:
            raise PreconditionError(
                f"Unknown step '{resume_from}' for {phase}. Steps: {', '.join(names)}"
            )
    except PreconditionError as e:
        result.error = str(e)
        return result

    lock = RunLock(settings.paths.run_lock)
    try:
        lock.acquire()
    except (PreconditionError, OSError) as e:
        result.error = str(e)
        return result

    try:
        try:
            if not mock:
                _check_preconditions(phase, settings)

            config = _resolve_config(phase, settings, operator, answers)
            result.config = config

            if phase == app_setup.PHASE and not mock:
                ensure_unprivileged_user(config.username)

            if registry is None:
                registry = default_registry(settings.home_for(config.username), mock_mode=mock)

            logger.info("Starting %s (%s)%s", phase, result.operation_id, " [dry-run]" if dry_run else "")
            result.pipeline = run_pipeline(
                steps,
                phase=phase,
                config=config,
                settings=settings,
                registry=registry,
                operator=operator,
                dry_run=dry_run,
                resume_from=resume_from,
                operation_id=result.operation_id,
            )
        except ProvisioningError as e:
            result.error = str(e)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        if result.succeeded and not dry_run and result.config is not None:
            result.summary = SUMMARIES[phase](result.config)

        _record(result, settings, dry_run=dry_run, resume_from=resume_from)
    finally:
        lock.release()

    return result
