"""Ordered, short-circuiting connectivity diagnostics for a directory target.

The pipeline runs seven stages strictly in order (see :data:`PIPELINE_ORDER`).
A hard failure stops the run and every later stage is recorded as "not
attempted". The reachability probe is soft: its outcome is recorded and
reported but never halts the pipeline. Every network operation is raced
against the target's timeout and every exception is classified into the
:class:`~adlink.infrastructure.errors.ErrorCategory` taxonomy, so :meth:`run`
never raises for network or protocol failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Final

from adlink.config.constants import LDAP_PORT, LDAPS_PORT
from adlink.domain.models import (
    PIPELINE_ORDER,
    DiagnosticReport,
    DiagnosticTarget,
    ProbeResult,
    Stage,
    StageEvent,
    StageResult,
)
from adlink.infrastructure.errors import (
    ConfigurationError,
    ErrorSignal,
    classify_exception,
    remediation_for,
)
from adlink.infrastructure.logging import (
    BoundLogger,
    EventSink,
    attach_run_context,
    get_logger,
    log_event,
)
from adlink.infrastructure.transport import DirectoryTransport

MIN_RECOMMENDED_TIMEOUT: Final = 5.0
MASKED_SECRET: Final = "***SET***"
CURRENT_USER: Final = "current user"

StageOutcome = tuple[str, dict[str, Any]]


def validate_target(target: DiagnosticTarget) -> tuple[list[str], list[str]]:
    """Return ``(issues, warnings)`` for *target* without touching the network.

    Issues make the configuration unusable; warnings are advisory only.
    """

    issues: list[str] = []
    warnings: list[str] = []

    if not target.domain.strip() and not (target.server or "").strip():
        issues.append("Domain name is required")
    if not 1 <= target.port <= 65535:
        issues.append(f"Invalid port number: {target.port}")
    if bool(target.username) != bool(target.password):
        issues.append("Username and password must both be set or both be empty")
    if target.timeout <= 0:
        issues.append(f"Timeout must be positive: {target.timeout:g}")

    if target.use_ssl and target.port == LDAP_PORT:
        warnings.append("SSL is enabled but port is 389 (standard LDAP). Consider using port 636.")
    if not target.use_ssl and target.port == LDAPS_PORT:
        warnings.append("Port is 636 (LDAPS) but SSL is disabled. Consider enabling SSL.")
    if 0 < target.timeout < MIN_RECOMMENDED_TIMEOUT:
        warnings.append("Timeout is very short. Consider at least 5 seconds.")
    return issues, warnings


def describe_target(target: DiagnosticTarget) -> dict[str, str]:
    """Masked, human-readable summary of a diagnostics target."""

    return {
        "Domain": target.domain or "(not set)",
        "Server": target.server or "auto-detect from domain",
        "Port": str(target.port),
        "Use SSL": "yes" if target.use_ssl else "no",
        "Username": target.username or CURRENT_USER,
        "Password": MASKED_SECRET if target.password else CURRENT_USER,
        "Page size": str(target.page_size),
        "Timeout": f"{target.timeout:g} seconds",
        "Search base": target.base_dn or "(default naming context)",
    }


def _target_label(target: DiagnosticTarget) -> str:
    return f"{target.host or '(unset)'}:{target.port}"


class DiagnosticsEngine:
    """Run the staged diagnostics pipeline through a :class:`DirectoryTransport`."""

    def __init__(
        self,
        transport: DirectoryTransport,
        *,
        logger: BoundLogger | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        self._transport = transport
        self._logger = logger or get_logger("adlink.diagnostics")
        self._event_sink = event_sink
        self._stages: dict[Stage, Callable[[DiagnosticTarget], Awaitable[StageOutcome]]] = {
            Stage.CONFIGURATION: self._check_configuration,
            Stage.NAME_RESOLUTION: self._check_name_resolution,
            Stage.REACHABILITY: self._check_reachability,
            Stage.PORT: self._check_port,
            Stage.HANDSHAKE: self._check_handshake,
            Stage.AUTHENTICATION: self._check_authentication,
            Stage.QUERY: self._check_query,
        }

    async def run(
        self,
        target: DiagnosticTarget,
        *,
        through: Stage = Stage.QUERY,
    ) -> DiagnosticReport:
        """Run every stage up to and including *through*."""

        logger = attach_run_context(self._logger, target=_target_label(target))
        requested = PIPELINE_ORDER[: PIPELINE_ORDER.index(through) + 1]
        _issues, warnings = validate_target(target)

        log_event(logger, "diagnostics.run.started", level=logging.DEBUG, through=through.value)
        results: list[StageResult] = []
        halted = False
        for stage in requested:
            if halted:
                results.append(StageResult.skipped(stage))
                continue
            result = await self._execute(stage, target, logger)
            results.append(result)
            if not result.success:
                if stage.is_soft:
                    log_event(
                        logger,
                        "diagnostics.stage.soft_failure",
                        level=logging.WARNING,
                        stage=stage.value,
                        message=result.message,
                    )
                else:
                    halted = True

        report = DiagnosticReport(
            target=_target_label(target),
            results=tuple(results),
            warnings=tuple(warnings),
        )
        log_event(
            logger,
            "diagnostics.run.completed",
            level=logging.INFO if report.usable else logging.WARNING,
            usable=report.usable,
            fully_operational=report.fully_operational,
            category=report.category.value if report.category else None,
        )
        return report

    async def quick_check(self, target: DiagnosticTarget) -> ProbeResult:
        """Connectivity plus authentication (stages 1-6), with elapsed time."""

        started = time.perf_counter()
        report = await self.run(target, through=Stage.AUTHENTICATION)
        elapsed_ms = (time.perf_counter() - started) * 1000
        if report.usable:
            return ProbeResult(
                success=True,
                message=f"Connection successful ({elapsed_ms:.0f} ms)",
                elapsed_ms=elapsed_ms,
                report=report,
            )
        failure = report.first_failure
        if failure is None:
            # usable is False only when a hard stage failed
            raise RuntimeError("diagnostics report has no failing stage")
        return ProbeResult(
            success=False,
            category=failure.category,
            message=f"{failure.stage.label} failed: {failure.message}",
            remediation=failure.remediation,
            elapsed_ms=elapsed_ms,
            report=report,
        )

    async def _execute(
        self,
        stage: Stage,
        target: DiagnosticTarget,
        logger: BoundLogger,
    ) -> StageResult:
        started = time.perf_counter()
        try:
            message, details = await self._stages[stage](target)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            category = classify_exception(exc, stage=stage.value)
            raw = ErrorSignal.from_exception(exc).raw_message
            if isinstance(exc, TimeoutError) and not str(exc):
                raw = f"Timed out after {target.timeout:g} seconds"
            log_event(
                logger,
                "diagnostics.stage.failed",
                level=logging.DEBUG,
                stage=stage.value,
                category=category.value,
                error_type=type(exc).__name__,
                error=raw,
            )
            details = {"issues": list(exc.issues)} if isinstance(exc, ConfigurationError) else {}
            result = StageResult(
                stage=stage,
                success=False,
                category=category,
                message=raw,
                remediation=remediation_for(category),
                elapsed_ms=elapsed_ms,
                details=details,
            )
        else:
            result = StageResult(
                stage=stage,
                success=True,
                message=message,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                details=details,
            )
        self._emit(result)
        return result

    def _emit(self, result: StageResult) -> None:
        if self._event_sink is None:
            return
        event = StageEvent(
            stage=result.stage,
            success=result.success,
            category=result.category,
            elapsed_ms=result.elapsed_ms,
            detail=result.message,
        )
        try:
            self._event_sink(event)
        except Exception as exc:
            self._logger.warning(
                "diagnostics.event_sink_failed",
                stage=result.stage.value,
                error_type=type(exc).__name__,
            )

    async def _bounded(self, awaitable: Awaitable[Any], target: DiagnosticTarget) -> Any:
        return await asyncio.wait_for(awaitable, timeout=target.timeout)

    async def _check_configuration(self, target: DiagnosticTarget) -> StageOutcome:
        issues, warnings = validate_target(target)
        if issues:
            raise ConfigurationError(issues)
        return "Configuration is valid", {"warnings": warnings}

    async def _check_name_resolution(self, target: DiagnosticTarget) -> StageOutcome:
        addresses = await self._bounded(self._transport.resolve(target.host), target)
        if not addresses:
            raise LookupError(f"No addresses found for {target.host}")
        listed = [{"address": address, "family": family} for address, family in addresses]
        return f"Resolved {target.host} to {len(listed)} address(es)", {"addresses": listed}

    async def _check_reachability(self, target: DiagnosticTarget) -> StageOutcome:
        rtt_ms = await self._bounded(self._transport.ping(target.host, target.timeout), target)
        return f"Host responded to ping ({rtt_ms:.0f} ms)", {"rtt_ms": rtt_ms}

    async def _check_port(self, target: DiagnosticTarget) -> StageOutcome:
        await self._bounded(self._transport.connect(target.host, target.port), target)
        return f"Port {target.port} is open", {}

    async def _check_handshake(self, target: DiagnosticTarget) -> StageOutcome:
        details = await self._bounded(self._transport.open_session(target), target)
        return "LDAP session established", dict(details or {})

    async def _check_authentication(self, target: DiagnosticTarget) -> StageOutcome:
        details = await self._bounded(self._transport.authenticate(target), target)
        who = target.username or CURRENT_USER
        return f"Authenticated as {who}", dict(details or {})

    async def _check_query(self, target: DiagnosticTarget) -> StageOutcome:
        details = dict(await self._bounded(self._transport.query(target), target) or {})
        sample = details.get("sample") or []
        return f"Query returned {len(sample)} sample entr{'y' if len(sample) == 1 else 'ies'}", details


__all__ = [
    "DiagnosticsEngine",
    "MASKED_SECRET",
    "describe_target",
    "validate_target",
]
