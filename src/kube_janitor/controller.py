"""Wires the pod watcher, dispatcher, scheduler and notifier together."""

from __future__ import annotations

import logging
import threading
from typing import Any

from kube_janitor.dispatcher import EventDispatcher
from kube_janitor.errors import CacheSyncError
from kube_janitor.k8s import PodDeleter, load_core_api
from kube_janitor.notifier import OutcomeNotifier, build_notifier
from kube_janitor.scheduler import ActionScheduler
from kube_janitor.seen_set import SeenSet
from kube_janitor.watcher import PodWatcher

logger = logging.getLogger(__name__)

_SYNC_TIMEOUT = 120  # seconds


class Controller:
    """Pod cleanup controller.

    Lifecycle: ``start`` opens the watch and waits for the initial list to
    land in the cache, then attaches the dispatcher (replaying the cache as
    adds). ``stop`` closes the watch and, when ``drain`` is set, waits for
    in-flight remediations to finish.
    """

    def __init__(
        self,
        watcher: PodWatcher,
        dispatcher: EventDispatcher,
        scheduler: ActionScheduler,
        *,
        sync_timeout: float = _SYNC_TIMEOUT,
        drain: bool = True,
        drain_timeout: float = 60,
    ) -> None:
        self.watcher = watcher
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self._sync_timeout = sync_timeout
        self._drain = drain
        self._drain_timeout = drain_timeout

    @classmethod
    def from_config(
        cls,
        cfg: dict[str, Any],
        core_api: Any | None = None,
        notifier: OutcomeNotifier | None = None,
    ) -> Controller:
        """Build a controller from a loaded config dict."""
        k8s_cfg = cfg["kubernetes"]
        policy = cfg["policy"]

        if core_api is None:
            core_api = load_core_api(k8s_cfg.get("kubeconfig"), k8s_cfg.get("context"))

        scheduler = ActionScheduler(
            deleter=PodDeleter(core_api, dry_run=bool(policy.get("dry_run"))),
            notifier=notifier or build_notifier(cfg.get("notifications", {})),
            seen=SeenSet(),
            grace_period=float(policy.get("grace_period_seconds", 20)),
        )
        dispatcher = EventDispatcher(
            scheduler,
            restart_threshold=int(policy.get("crashloop_restart_threshold", 5)),
            reclassify_on_update=bool(policy.get("reclassify_on_update")),
            exclude_namespaces=k8s_cfg.get("exclude_namespaces") or [],
        )
        watcher = PodWatcher(
            core_api,
            namespaces=k8s_cfg.get("namespaces") or [],
            watch_timeout=int(k8s_cfg.get("watch_timeout_seconds", 300)),
        )
        shutdown = cfg.get("shutdown", {})
        return cls(
            watcher,
            dispatcher,
            scheduler,
            drain=bool(shutdown.get("drain", True)),
            drain_timeout=float(shutdown.get("drain_timeout_seconds", 60)),
        )

    def start(self) -> None:
        """Start watching and begin dispatching once the cache is synced.

        Raises:
            CacheSyncError: If the initial list does not complete in time.
        """
        logger.info("Controller starting (grace period: %.0fs)", self.scheduler.grace_period)
        self.watcher.start()
        if not self.watcher.wait_for_sync(self._sync_timeout):
            self.watcher.stop()
            raise CacheSyncError(
                f"Pod cache did not sync within {self._sync_timeout:.0f}s"
            )
        logger.info("Cache synced with %d pod(s), watching for pod events", len(self.watcher))
        self.watcher.add_handler(
            on_add=self.dispatcher.on_add,
            on_update=self.dispatcher.on_update,
            on_delete=self.dispatcher.on_delete,
            replay=True,
        )

    def stop(self) -> None:
        """Stop watching; optionally wait for in-flight remediations."""
        self.watcher.stop()
        if not self._drain:
            return
        pending = self.scheduler.in_flight()
        if pending:
            logger.info("Waiting up to %.0fs for %d in-flight cleanup(s)", self._drain_timeout, pending)
        if not self.scheduler.drain(self._drain_timeout):
            logger.warning(
                "Shutdown with %d cleanup(s) still in flight", self.scheduler.in_flight()
            )

    def run(self, stop_event: threading.Event) -> None:
        """Run until *stop_event* is set."""
        self.start()
        try:
            while not stop_event.wait(1):
                pass
        finally:
            logger.info("Controller shutting down")
            self.stop()
