"""Value objects shared by the credential, diagnostics and bootstrap layers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from adlink.infrastructure.errors import ErrorCategory


class Credential(BaseModel):
    """A complete identity/secret pair; never half specified."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr

    @model_validator(mode="after")
    def _require_both_parts(self) -> Credential:
        if not self.username.strip():
            raise ValueError("username must not be empty")
        if not self.password.get_secret_value():
            raise ValueError("password must not be empty")
        return self

    @classmethod
    def from_pair(cls, username: str | None, password: str | None) -> Credential | None:
        """Build a credential when both parts are present, ``None`` when both are absent.

        A half-specified pair raises :class:`pydantic.ValidationError`.
        """

        if not username and not password:
            return None
        return cls(username=username or "", password=SecretStr(password or ""))

    @property
    def secret(self) -> str:
        return self.password.get_secret_value()


class Stage(str, Enum):
    CONFIGURATION = "configuration"
    NAME_RESOLUTION = "name_resolution"
    REACHABILITY = "reachability"
    PORT = "port"
    HANDSHAKE = "handshake"
    AUTHENTICATION = "authentication"
    QUERY = "query"

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]

    @property
    def is_soft(self) -> bool:
        """A soft stage records its outcome but never halts the pipeline."""
        return self is Stage.REACHABILITY


PIPELINE_ORDER: Final[tuple[Stage, ...]] = tuple(Stage)

STAGE_LABELS: Final[dict[Stage, str]] = {
    Stage.CONFIGURATION: "Configuration Valid",
    Stage.NAME_RESOLUTION: "DNS Resolution",
    Stage.REACHABILITY: "Network Reachable",
    Stage.PORT: "Port Open",
    Stage.HANDSHAKE: "LDAP Connected",
    Stage.AUTHENTICATION: "Authenticated",
    Stage.QUERY: "Query Successful",
}


@dataclass(frozen=True)
class DiagnosticTarget:
    """Immutable snapshot of everything a diagnostics run needs."""

    domain: str
    server: str | None = None
    port: int = 389
    use_ssl: bool = False
    timeout: float = 30.0
    username: str | None = None
    password: str | None = None
    base_dn: str | None = None
    page_size: int = 1000

    @property
    def host(self) -> str:
        server = (self.server or "").strip()
        return server or self.domain.strip()

    @property
    def uses_ambient_identity(self) -> bool:
        return not self.username and not self.password

    @property
    def credential(self) -> Credential | None:
        return Credential.from_pair(self.username, self.password)

    def with_credential(self, credential: Credential | None) -> DiagnosticTarget:
        if credential is None:
            return replace(self, username=None, password=None)
        return replace(self, username=credential.username, password=credential.secret)

    def with_timeout(self, timeout: float) -> DiagnosticTarget:
        return replace(self, timeout=timeout)

    def __repr__(self) -> str:
        return (
            f"DiagnosticTarget(host={self.host!r}, port={self.port}, "
            f"use_ssl={self.use_ssl}, timeout={self.timeout}, "
            f"username={self.username!r})"
        )


class StageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage
    success: bool
    attempted: bool = True
    category: ErrorCategory | None = None
    message: str = ""
    remediation: str | None = None
    elapsed_ms: float = 0.0
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def skipped(cls, stage: Stage) -> StageResult:
        return cls(stage=stage, success=False, attempted=False, message="not attempted")


class DiagnosticReport(BaseModel):
    """Ordered stage outcomes for one diagnostics run."""

    model_config = ConfigDict(frozen=True)

    target: str
    results: tuple[StageResult, ...]
    warnings: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _enforce_pipeline_order(self) -> DiagnosticReport:
        stages = [result.stage for result in self.results]
        expected = [stage for stage in PIPELINE_ORDER if stage in stages]
        if stages != expected:
            raise ValueError("stage results must follow pipeline order")
        return self

    def outcome(self, stage: Stage) -> bool:
        result = self.result(stage)
        return bool(result and result.success)

    def result(self, stage: Stage) -> StageResult | None:
        for result in self.results:
            if result.stage is stage:
                return result
        return None

    @property
    def configuration_valid(self) -> bool:
        return self.outcome(Stage.CONFIGURATION)

    @property
    def name_resolved(self) -> bool:
        return self.outcome(Stage.NAME_RESOLUTION)

    @property
    def network_reachable(self) -> bool:
        return self.outcome(Stage.REACHABILITY)

    @property
    def port_open(self) -> bool:
        return self.outcome(Stage.PORT)

    @property
    def protocol_connected(self) -> bool:
        return self.outcome(Stage.HANDSHAKE)

    @property
    def authenticated(self) -> bool:
        return self.outcome(Stage.AUTHENTICATION)

    @property
    def query_succeeded(self) -> bool:
        return self.outcome(Stage.QUERY)

    @property
    def fully_operational(self) -> bool:
        # The soft reachability stage still counts here.
        return all(self.outcome(stage) for stage in PIPELINE_ORDER)

    @property
    def usable(self) -> bool:
        """True when every hard stage that was requested succeeded."""
        return all(result.success for result in self.results if not result.stage.is_soft)

    @property
    def first_failure(self) -> StageResult | None:
        for result in self.results:
            if result.attempted and not result.success and not result.stage.is_soft:
                return result
        return None

    @property
    def category(self) -> ErrorCategory | None:
        failure = self.first_failure
        return failure.category if failure is not None else None

    def as_flags(self) -> Mapping[str, bool]:
        return {
            "configurationValid": self.configuration_valid,
            "nameResolved": self.name_resolved,
            "reachable": self.network_reachable,
            "portOpen": self.port_open,
            "protocolConnected": self.protocol_connected,
            "authenticated": self.authenticated,
            "query": self.query_succeeded,
            "fullyOperational": self.fully_operational,
        }


class ProbeResult(BaseModel):
    """Outcome of a quick connection test."""

    model_config = ConfigDict(frozen=True)

    success: bool
    category: ErrorCategory | None = None
    message: str
    remediation: str | None = None
    elapsed_ms: float = 0.0
    report: DiagnosticReport | None = None

    @property
    def is_configuration_error(self) -> bool:
        return self.category is ErrorCategory.CONFIGURATION_INVALID


@dataclass(frozen=True)
class StageEvent:
    """Structured event emitted once per executed stage."""

    stage: Stage
    success: bool
    category: ErrorCategory | None
    elapsed_ms: float
    detail: str = ""


__all__ = [
    "Credential",
    "DiagnosticReport",
    "DiagnosticTarget",
    "PIPELINE_ORDER",
    "ProbeResult",
    "STAGE_LABELS",
    "Stage",
    "StageEvent",
    "StageResult",
]
