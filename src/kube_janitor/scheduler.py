"""Delayed, deduplicated pod removal.

Each accepted pod gets its own remediation sequence running on a daemon
thread::

    DETECTED -> GRACE_PERIOD -> DELETING -> SUCCEEDED | FAILED

The ``Detected`` notification is sent synchronously from ``submit`` before the
thread starts. The sequence does not re-read the pod after the grace period
and never retries a failed delete; a still-broken pod is simply picked up
again on a later event once its Seen-Set marker is gone. An error during the
grace-period wait ends the sequence as FAILED like a failed delete, and with a
dry-run deleter the outcome is reported as a skipped deletion.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from kube_janitor.models import (
    Classification,
    ClassificationKind,
    NotificationKind,
    Outcome,
    PodSnapshot,
    RemediationResult,
    RemediationState,
)
from kube_janitor.notifier import OutcomeNotifier
from kube_janitor.seen_set import SeenSet

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 20.0  # seconds
_MAX_RESULTS = 200


class ActionScheduler:
    """Runs at most one remediation sequence per pod identity.

    Args:
        deleter: Object with ``delete(pod)``; raising means the delete failed.
        notifier: Outcome notifier adapter.
        seen: Seen-Set shared by all sequences of this scheduler.
        grace_period: Seconds to wait between detection and deletion.
        sleep: Callable used for the grace-period wait (injectable for tests).
        on_result: Optional callback invoked with every finished result.
    """

    def __init__(
        self,
        deleter: Any,
        notifier: OutcomeNotifier,
        seen: SeenSet | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        sleep: Callable[[float], Any] = time.sleep,
        on_result: Callable[[RemediationResult], None] | None = None,
    ) -> None:
        if grace_period < 0:
            raise ValueError(f"grace_period must be >= 0, got {grace_period}")
        self._deleter = deleter
        self._notifier = notifier
        self._seen = seen if seen is not None else SeenSet()
        self._grace_period = grace_period
        self._sleep = sleep
        self._on_result = on_result
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._results: deque[RemediationResult] = deque(maxlen=_MAX_RESULTS)

    @property
    def seen(self) -> SeenSet:
        return self._seen

    @property
    def grace_period(self) -> float:
        return self._grace_period

    @property
    def deleter(self) -> Any:
        return self._deleter

    @property
    def notifier(self) -> Any:
        return self._notifier

    @property
    def dry_run(self) -> bool:
        """True when the deleter only logs; outcomes are then reported as dry runs."""
        return getattr(self._deleter, "dry_run", False) is True

    def submit(self, pod: PodSnapshot, classification: Classification) -> bool:
        """Start a remediation sequence for *pod*.

        Returns False when the pod is healthy or already has a sequence in
        flight, True when a new sequence was started.
        """
        if not classification.is_offending:
            return False

        if not self._seen.try_mark(pod.identity):
            logger.debug("Remediation already in flight for %s, skipping", pod.identity.key)
            return False

        detected_at = datetime.now(timezone.utc)
        if classification.kind == ClassificationKind.CRASH_LOOPING:
            logger.warning(
                "Detected crashloop pod: %s (restarts: %d)",
                pod.identity.key,
                classification.restart_count,
            )
            self._notifier.notify(
                NotificationKind.CRASH_LOOPING, pod, classification.restart_count
            )
        else:
            logger.warning(
                "Detected failed/evicted pod: %s (%s)", pod.identity.key, classification.reason
            )
            self._notifier.notify(NotificationKind.TERMINAL_FAILURE, pod)

        thread = threading.Thread(
            target=self._run,
            args=(pod, classification, detected_at),
            daemon=True,
            name=f"remediate-{pod.identity.key}",
        )
        with self._lock:
            self._threads.add(thread)
        try:
            thread.start()
        except Exception:
            with self._lock:
                self._threads.discard(thread)
            self._seen.release(pod.identity)
            raise
        return True

    def _run(
        self, pod: PodSnapshot, classification: Classification, detected_at: datetime
    ) -> None:
        state = RemediationState.GRACE_PERIOD
        outcome = Outcome.DELETE_FAILED
        error: str | None = None
        try:
            try:
                logger.info(
                    "Waiting %.0fs grace period before deleting %s",
                    self._grace_period,
                    pod.identity.key,
                )
                self._sleep(self._grace_period)

                state = RemediationState.DELETING
                self._deleter.delete(pod)
            except Exception as e:
                stage = "wait for" if state == RemediationState.GRACE_PERIOD else "delete"
                state = RemediationState.FAILED
                error = str(e)
                logger.error("Failed to %s pod %s: %s", stage, pod.identity.key, e)
                self._notifier.notify(NotificationKind.DELETE_FAILED, pod)
            else:
                state = RemediationState.SUCCEEDED
                if self.dry_run:
                    outcome = Outcome.SKIPPED_DRY_RUN
                    logger.info("Pod %s left in place (dry run)", pod.identity.key)
                    self._notifier.notify(NotificationKind.DRY_RUN, pod)
                else:
                    outcome = Outcome.DELETED
                    logger.info("Pod %s cleaned up", pod.identity.key)
                    self._notifier.notify(NotificationKind.DELETED, pod)
        finally:
            self._seen.release(pod.identity)
            if state.is_terminal:
                self._record(RemediationResult(
                    identity=pod.identity,
                    classification=classification,
                    state=state,
                    outcome=outcome,
                    error=error,
                    detected_at=detected_at,
                ))
            with self._lock:
                self._threads.discard(threading.current_thread())

    def _record(self, result: RemediationResult) -> None:
        with self._lock:
            self._results.append(result)
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.warning("Result callback error: %s", e)

    def in_flight(self) -> int:
        """Number of sequences that have not finished yet."""
        with self._lock:
            return len(self._threads)

    def results(self) -> list[RemediationResult]:
        """Finished sequences, oldest first."""
        with self._lock:
            return list(self._results)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight sequences to finish.

        Returns True when nothing is left running. Sequences are never
        cancelled; with a timeout some may still be running on return.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = list(self._threads)
            if not pending:
                return True
            for t in pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return self.in_flight() == 0
                t.join(remaining)
