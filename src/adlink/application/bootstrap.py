"""Start-up authentication: cached credential fast path plus bounded interactive retry."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, TypeVar, runtime_checkable

from adlink.application.credentials import CredentialCache
from adlink.application.diagnostics import DiagnosticsEngine, validate_target
from adlink.domain.models import Credential, DiagnosticTarget, ProbeResult, Stage
from adlink.infrastructure.errors import (
    ErrorCategory,
    ErrorSignal,
    classify_exception,
    remediation_for,
)
from adlink.infrastructure.logging import BoundLogger, get_logger, log_event

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_PROBE_TIMEOUT = 5.0

PROMPT_TITLE = "Directory sign-in"
PROMPT_TEXT = "Enter credentials for {host} (DOMAIN\\username or username@domain)"
RETRY_TITLE = "Sign-in failed"

CredentialValidator = Callable[[Credential], Awaitable[ProbeResult]]


class BootstrapState(str, Enum):
    INIT = "init"
    TRY_CACHED = "try_cached"
    NEEDS_INTERACTIVE = "needs_interactive"
    INTERACTIVE_ATTEMPT = "interactive_attempt"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    CONFIGURATION_ERROR = "configuration_error"

    @property
    def is_terminal(self) -> bool:
        return self in {
            BootstrapState.SUCCESS,
            BootstrapState.EXHAUSTED,
            BootstrapState.CONFIGURATION_ERROR,
        }


class CredentialCollector(Protocol):
    """Interactive source of credentials; either method may be a coroutine."""

    def collect(self, prompt: str, title: str) -> Credential | None | Awaitable[Credential | None]:
        """Return a credential, or ``None`` when the user cancels."""

    def confirm_retry(self, message: str, title: str) -> bool | Awaitable[bool]: ...


@runtime_checkable
class ValidatingCredentialCollector(Protocol):
    """Collector that keeps its prompt open and retries inline until *validator* succeeds."""

    def collect_validated(
        self,
        prompt: str,
        title: str,
        validator: CredentialValidator,
    ) -> Credential | None | Awaitable[Credential | None]: ...


@dataclass(frozen=True)
class BootstrapOutcome:
    state: BootstrapState
    credential: Credential | None
    attempts: int
    probes: int
    last_result: ProbeResult | None
    message: str
    operational_timeout: float
    target: DiagnosticTarget | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is BootstrapState.SUCCESS


async def _resolve(value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


class BootstrapAuthenticator:
    """Establish a validated credential for the rest of the application.

    The cached (or configured) credential is probed first with a reduced
    timeout. When it fails it is cleared and the collector is asked for a new
    one, up to ``max_attempts`` times. Configuration errors end the run
    immediately since re-entering credentials cannot fix them. :meth:`run`
    never raises for network or protocol failures.
    """

    def __init__(
        self,
        engine: DiagnosticsEngine,
        cache: CredentialCache,
        collector: CredentialCollector,
        target: DiagnosticTarget,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        logger: BoundLogger | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._engine = engine
        self._cache = cache
        self._collector = collector
        self._target = target
        self._max_attempts = max_attempts
        self._probe_timeout = probe_timeout
        self._logger = logger or get_logger("adlink.bootstrap")
        self._state = BootstrapState.INIT
        self._probes = 0
        self._attempts = 0
        self._last_result: ProbeResult | None = None

    @property
    def state(self) -> BootstrapState:
        return self._state

    @property
    def reduced_timeout(self) -> float:
        return min(self._target.timeout, self._probe_timeout)

    def _transition(self, state: BootstrapState, **fields: Any) -> None:
        self._state = state
        log_event(self._logger, "bootstrap.state", level=logging.DEBUG, state=state.value, **fields)

    async def run(self) -> BootstrapOutcome:
        self._transition(BootstrapState.INIT, reduced_timeout=self.reduced_timeout)

        invalid = self._check_configuration()
        if invalid is not None:
            return self._finish(BootstrapState.CONFIGURATION_ERROR, None, invalid.message)

        if self._cache.has_credential():
            self._transition(BootstrapState.TRY_CACHED)
            cached = self._cache.get()
            result = await self._probe(cached)
            if result.success:
                log_event(
                    self._logger,
                    "bootstrap.cached.accepted",
                    username=cached.username if cached else None,
                )
                return self._finish(BootstrapState.SUCCESS, cached, result.message)
            if result.is_configuration_error:
                return self._finish(BootstrapState.CONFIGURATION_ERROR, None, result.message)
            log_event(
                self._logger,
                "bootstrap.cached.rejected",
                level=logging.WARNING,
                category=result.category.value if result.category else None,
            )
            self._cache.clear()

        collector = self._collector
        if isinstance(collector, ValidatingCredentialCollector):
            return await self._run_validating(collector)
        return await self._run_interactive()

    async def _run_interactive(self) -> BootstrapOutcome:
        prompt = PROMPT_TEXT.format(host=self._target.host)
        while True:
            self._transition(BootstrapState.NEEDS_INTERACTIVE, attempts=self._attempts)
            candidate = await _resolve(self._collector.collect(prompt, PROMPT_TITLE))
            if candidate is None:
                log_event(self._logger, "bootstrap.interactive.cancelled")
                return self._finish(BootstrapState.EXHAUSTED, None, "Sign-in was cancelled")

            self._attempts += 1
            self._transition(BootstrapState.INTERACTIVE_ATTEMPT, attempt=self._attempts)
            result = await self._attempt(candidate)
            if result.success:
                return self._finish(BootstrapState.SUCCESS, candidate, result.message)
            if result.is_configuration_error:
                return self._finish(BootstrapState.CONFIGURATION_ERROR, None, result.message)

            if self._attempts >= self._max_attempts:
                return self._exhausted()
            remaining = self._max_attempts - self._attempts
            retry_message = f"{result.message}\n{result.remediation or ''}".rstrip()
            retry_message += f"\n{remaining} attempt(s) remaining. Try again?"
            if not await _resolve(self._collector.confirm_retry(retry_message, RETRY_TITLE)):
                log_event(self._logger, "bootstrap.interactive.declined", attempts=self._attempts)
                return self._finish(BootstrapState.EXHAUSTED, None, "Sign-in was cancelled")

    async def _run_validating(self, collector: ValidatingCredentialCollector) -> BootstrapOutcome:
        configuration_error: ProbeResult | None = None

        async def validator(candidate: Credential) -> ProbeResult:
            nonlocal configuration_error
            if configuration_error is not None or self._attempts >= self._max_attempts:
                return ProbeResult(
                    success=False,
                    category=self._last_result.category if self._last_result else None,
                    message="No attempts remaining",
                )
            self._attempts += 1
            self._transition(BootstrapState.INTERACTIVE_ATTEMPT, attempt=self._attempts)
            result = await self._attempt(candidate)
            if result.is_configuration_error:
                configuration_error = result
            return result

        self._transition(BootstrapState.NEEDS_INTERACTIVE, attempts=self._attempts)
        prompt = PROMPT_TEXT.format(host=self._target.host)
        accepted = await _resolve(collector.collect_validated(prompt, PROMPT_TITLE, validator))

        if configuration_error is not None:
            return self._finish(BootstrapState.CONFIGURATION_ERROR, None, configuration_error.message)
        if accepted is not None and self._last_result is not None and self._last_result.success:
            return self._finish(BootstrapState.SUCCESS, accepted, self._last_result.message)
        if self._attempts >= self._max_attempts:
            return self._exhausted()
        log_event(self._logger, "bootstrap.interactive.cancelled")
        return self._finish(BootstrapState.EXHAUSTED, None, "Sign-in was cancelled")

    def _check_configuration(self) -> ProbeResult | None:
        # Identity is checked per probe since the collector replaces it.
        issues, _warnings = validate_target(self._target.with_credential(None))
        if not issues:
            return None
        detail = "; ".join(issues)
        category = ErrorCategory.CONFIGURATION_INVALID
        self._last_result = ProbeResult(
            success=False,
            category=category,
            message=f"{Stage.CONFIGURATION.label} failed: {detail}",
            remediation=remediation_for(category),
        )
        return self._last_result

    async def _attempt(self, candidate: Credential) -> ProbeResult:
        # The candidate is visible to the rest of the process while it is probed.
        self._cache.set_credential(candidate)
        result = await self._probe(candidate)
        if not result.success:
            log_event(
                self._logger,
                "bootstrap.interactive.rejected",
                level=logging.WARNING,
                attempt=self._attempts,
                category=result.category.value if result.category else None,
            )
            self._cache.clear()
        return result

    async def _probe(self, credential: Credential | None) -> ProbeResult:
        self._probes += 1
        target = self._target.with_credential(credential).with_timeout(self.reduced_timeout)
        try:
            result = await self._engine.quick_check(target)
        except Exception as exc:
            category = classify_exception(exc)
            result = ProbeResult(
                success=False,
                category=category,
                message=ErrorSignal.from_exception(exc).raw_message,
                remediation=remediation_for(category),
            )
        self._last_result = result
        return result

    def _exhausted(self) -> BootstrapOutcome:
        log_event(
            self._logger,
            "bootstrap.exhausted",
            level=logging.WARNING,
            attempts=self._attempts,
        )
        message = f"Sign-in failed after {self._attempts} attempt(s)"
        if self._last_result is not None and self._last_result.category is not None:
            message += f": {self._last_result.message}"
        return self._finish(BootstrapState.EXHAUSTED, None, message)

    def _finish(
        self,
        state: BootstrapState,
        credential: Credential | None,
        message: str,
    ) -> BootstrapOutcome:
        operational_timeout = self._target.timeout
        target = None
        if state is BootstrapState.SUCCESS:
            # Operational calls run with the configured timeout, not the probe timeout.
            target = self._target.with_credential(credential).with_timeout(operational_timeout)
        self._transition(state, probes=self._probes, attempts=self._attempts)
        if state is BootstrapState.CONFIGURATION_ERROR:
            log_event(self._logger, "bootstrap.configuration_error", level=logging.ERROR, message=message)
        return BootstrapOutcome(
            state=state,
            credential=credential,
            attempts=self._attempts,
            probes=self._probes,
            last_result=self._last_result,
            message=message,
            operational_timeout=operational_timeout,
            target=target,
        )


__all__ = [
    "BootstrapAuthenticator",
    "BootstrapOutcome",
    "BootstrapState",
    "CredentialCollector",
    "CredentialValidator",
    "ValidatingCredentialCollector",
]
