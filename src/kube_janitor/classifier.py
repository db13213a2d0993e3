"""Pod failure classifier (Failed/Evicted, CrashLoopBackOff)."""

from __future__ import annotations

from kube_janitor.models import Classification, ClassificationKind, PodSnapshot

PHASE_FAILED = "Failed"
REASON_EVICTED = "Evicted"
WAITING_CRASHLOOP = "CrashLoopBackOff"

DEFAULT_RESTART_THRESHOLD = 5

HEALTHY = Classification(kind=ClassificationKind.HEALTHY)


def classify(
    pod: PodSnapshot, restart_threshold: int = DEFAULT_RESTART_THRESHOLD
) -> Classification:
    """Classify a pod snapshot. First matching rule wins.

    1. Failed phase or Evicted reason -> TERMINAL_FAILURE
    2. A container waiting in CrashLoopBackOff with at least
       ``restart_threshold`` restarts -> CRASH_LOOPING (first such container,
       declaration order)
    3. Otherwise -> HEALTHY
    """
    if pod.reason == REASON_EVICTED:
        return Classification(kind=ClassificationKind.TERMINAL_FAILURE, reason=REASON_EVICTED)
    if pod.phase == PHASE_FAILED:
        return Classification(kind=ClassificationKind.TERMINAL_FAILURE, reason=PHASE_FAILED)

    for container in pod.containers:
        if (
            container.waiting_reason == WAITING_CRASHLOOP
            and container.restart_count >= restart_threshold
        ):
            return Classification(
                kind=ClassificationKind.CRASH_LOOPING,
                reason=WAITING_CRASHLOOP,
                restart_count=container.restart_count,
            )

    return HEALTHY


def is_offending(result: Classification) -> bool:
    return result.is_offending
