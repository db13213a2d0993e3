"""Core data models for pod evaluation and remediation."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassificationKind(str, Enum):
    """Verdict of the pod classifier."""

    HEALTHY = "healthy"
    TERMINAL_FAILURE = "terminal_failure"
    CRASH_LOOPING = "crash_looping"


class Outcome(str, Enum):
    """Observable outcome of a remediation sequence."""

    DETECTED = "detected"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"
    SKIPPED_DRY_RUN = "skipped_dry_run"


class NotificationKind(str, Enum):
    """Event kinds understood by the notification layer."""

    CRASH_LOOPING = "CrashLoopBackOff"
    TERMINAL_FAILURE = "FailedOrEvicted"
    DELETE_FAILED = "FailedToDelete"
    DELETED = "Deleted"
    DRY_RUN = "DryRun"


class RemediationState(str, Enum):
    """States of a single remediation sequence."""

    DETECTED = "detected"
    GRACE_PERIOD = "grace_period"
    DELETING = "deleting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RemediationState.SUCCEEDED, RemediationState.FAILED)


class PodIdentity(BaseModel):
    """Identity of a pod as seen by the cluster API."""

    model_config = ConfigDict(frozen=True)

    namespace: str = "default"
    name: str
    uid: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def seen_key(self) -> str:
        """Key used for deduplication: the uid, or namespace/name without one."""
        return self.uid or self.key


class ContainerDiagnostics(BaseModel):
    """Restart diagnostics for a single container."""

    name: str = ""
    waiting_reason: str | None = None
    restart_count: int = 0


class PodSnapshot(BaseModel):
    """Read-only view of a pod at the moment an event was observed."""

    identity: PodIdentity
    phase: str | None = None
    reason: str | None = None
    containers: list[ContainerDiagnostics] = Field(default_factory=list)
    start_time: datetime | None = None

    @property
    def namespace(self) -> str:
        return self.identity.namespace

    @property
    def name(self) -> str:
        return self.identity.name

    @classmethod
    def from_k8s(cls, obj: Any) -> PodSnapshot | None:
        """Build a snapshot from a ``V1Pod`` or a raw API dict.

        Missing or malformed status fields are tolerated; only a pod without
        a name is rejected (returns None).
        """
        meta = _field(obj, "metadata")
        name = _field(meta, "name")
        if not name or not isinstance(name, str):
            return None

        identity = PodIdentity(
            namespace=_field(meta, "namespace") or "default",
            name=name,
            uid=str(_field(meta, "uid") or ""),
        )

        status = _field(obj, "status")
        containers: list[ContainerDiagnostics] = []
        raw_statuses = _field(status, "container_statuses", "containerStatuses") or []
        if isinstance(raw_statuses, (list, tuple)):
            for cs in raw_statuses:
                state = _field(cs, "state")
                waiting = _field(state, "waiting")
                waiting_reason = _field(waiting, "reason") if waiting else None
                containers.append(ContainerDiagnostics(
                    name=str(_field(cs, "name") or ""),
                    waiting_reason=waiting_reason if isinstance(waiting_reason, str) else None,
                    restart_count=_as_int(_field(cs, "restart_count", "restartCount")),
                ))

        phase = _field(status, "phase")
        reason = _field(status, "reason")
        return cls(
            identity=identity,
            phase=phase if isinstance(phase, str) else None,
            reason=reason if isinstance(reason, str) else None,
            containers=containers,
            start_time=_as_datetime(_field(status, "start_time", "startTime")),
        )


class Classification(BaseModel):
    """Result of classifying one pod snapshot."""

    model_config = ConfigDict(frozen=True)

    kind: ClassificationKind
    reason: str = ""
    restart_count: int = 0

    @property
    def is_offending(self) -> bool:
        return self.kind != ClassificationKind.HEALTHY


class RemediationResult(BaseModel):
    """Record of a finished remediation sequence."""

    identity: PodIdentity
    classification: Classification
    state: RemediationState
    outcome: Outcome
    error: str | None = None
    detected_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime = Field(default_factory=_utcnow)


def _field(obj: Any, *names: str) -> Any:
    """Read the first present attribute or key among *names*."""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            if name in obj:
                return obj[name]
        else:
            value = getattr(obj, name, None)
            if value is not None:
                return value
    return None


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None
