"""Routes watch events to the classifier and the action scheduler."""

from __future__ import annotations

import json
import logging
from typing import Any

from kube_janitor.classifier import DEFAULT_RESTART_THRESHOLD, classify
from kube_janitor.models import Classification, PodSnapshot
from kube_janitor.scheduler import ActionScheduler

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Handles pod add/update/delete callbacks from the watcher.

    Added pods go through classify -> submit. Updates are logged only,
    unless ``reclassify_on_update`` is set, in which case they take the same
    path as adds and the scheduler's Seen-Set drops duplicates. None of the
    handlers wait on a remediation sequence.

    Args:
        scheduler: Action scheduler receiving offending pods.
        restart_threshold: CrashLoopBackOff restart count that triggers cleanup.
        reclassify_on_update: Also evaluate pods on MODIFIED events.
        exclude_namespaces: Namespaces that are never evaluated.
    """

    def __init__(
        self,
        scheduler: ActionScheduler,
        *,
        restart_threshold: int = DEFAULT_RESTART_THRESHOLD,
        reclassify_on_update: bool = False,
        exclude_namespaces: list[str] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._restart_threshold = restart_threshold
        self._reclassify_on_update = reclassify_on_update
        self._exclude = set(exclude_namespaces or [])

    @property
    def restart_threshold(self) -> int:
        return self._restart_threshold

    @property
    def reclassify_on_update(self) -> bool:
        return self._reclassify_on_update

    def on_add(self, obj: Any) -> None:
        try:
            self._evaluate(obj)
        except Exception as e:
            logger.error("Failed to evaluate added pod: %s", e, exc_info=True)

    def on_update(self, old: Any, new: Any) -> None:
        try:
            if self._reclassify_on_update:
                self._evaluate(new)
                return
            pod = PodSnapshot.from_k8s(new)
            if pod is not None and logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Pod status update: %s %s",
                    pod.identity.key,
                    pod.model_dump_json(exclude={"identity"}),
                )
        except Exception as e:
            logger.error("Failed to handle pod update: %s", e, exc_info=True)

    def on_delete(self, obj: Any) -> None:
        pod = PodSnapshot.from_k8s(obj)
        if pod is not None:
            logger.debug("Pod removed from cache: %s", pod.identity.key)

    def evaluate(self, pod: PodSnapshot) -> Classification:
        """Classify *pod* and hand it to the scheduler when offending."""
        result = classify(pod, self._restart_threshold)
        if result.is_offending:
            self._scheduler.submit(pod, result)
        elif logger.isEnabledFor(logging.DEBUG):
            logger.debug("Tracking pod: %s", json.dumps({
                "name": pod.name,
                "namespace": pod.namespace,
                "phase": pod.phase,
                "startTime": pod.start_time.isoformat() if pod.start_time else None,
            }))
        return result

    def _evaluate(self, obj: Any) -> None:
        pod = PodSnapshot.from_k8s(obj)
        if pod is None:
            logger.debug("Ignoring object without pod metadata")
            return
        if pod.namespace in self._exclude:
            return
        self.evaluate(pod)
