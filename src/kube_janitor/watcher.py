"""Pod list+watch loop with a local cache and a readiness signal."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from tenacity import retry, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

# Event types from Watch API
EVENT_ADDED = "ADDED"
EVENT_MODIFIED = "MODIFIED"
EVENT_DELETED = "DELETED"
EVENT_ERROR = "ERROR"

_WATCH_TIMEOUT = 300  # seconds per watch connection
_RECONNECT_DELAY = 5  # seconds
_HTTP_GONE = 410


class _ResourceVersionExpired(Exception):
    """The watch resourceVersion is too old; a relist is required."""


class _Handlers:
    def __init__(
        self,
        on_add: Callable[[Any], None] | None,
        on_update: Callable[[Any, Any], None] | None,
        on_delete: Callable[[Any], None] | None,
    ) -> None:
        self.on_add = on_add
        self.on_update = on_update
        self.on_delete = on_delete


def _meta(obj: Any, name: str) -> Any:
    meta = getattr(obj, "metadata", None)
    return getattr(meta, name, None) if meta is not None else None


class PodWatcher:
    """Keeps a local pod cache in step with the API server.

    Each scope (one namespace, or the whole cluster) runs a daemon thread
    that lists pods, fires ``on_add`` for every pod it has not seen, marks
    the scope synced, then watches from the list's resourceVersion. Watch
    connections are re-opened when they time out; a ``410 Gone`` forces a
    relist which is diffed against the cache.

    Args:
        core_api: ``CoreV1Api`` (or compatible mock).
        namespaces: Namespaces to watch; empty means all namespaces.
        watch_factory: Zero-arg callable returning a ``kubernetes.watch.Watch``.
        watch_timeout: Server-side timeout of a single watch connection.
        reconnect_delay: Seconds to wait after a failed list/watch.
    """

    def __init__(
        self,
        core_api: Any,
        *,
        namespaces: list[str] | None = None,
        watch_factory: Callable[[], Any] | None = None,
        watch_timeout: int = _WATCH_TIMEOUT,
        reconnect_delay: float = _RECONNECT_DELAY,
    ) -> None:
        self._core = core_api
        self._scopes: list[str | None] = list(namespaces) if namespaces else [None]
        self._watch_factory = watch_factory or self._default_watch
        self._watch_timeout = watch_timeout
        self._reconnect_delay = reconnect_delay
        self._cache: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._handlers: list[_Handlers] = []
        self._synced = {scope: threading.Event() for scope in self._scopes}
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._watches: list[Any] = []

    @staticmethod
    def _default_watch() -> Any:
        from kubernetes import watch

        return watch.Watch()

    def add_handler(
        self,
        on_add: Callable[[Any], None] | None = None,
        on_update: Callable[[Any, Any], None] | None = None,
        on_delete: Callable[[Any], None] | None = None,
        *,
        replay: bool = False,
    ) -> None:
        """Register callbacks.

        With ``replay`` the handler's ``on_add`` is called for every pod
        already in the cache, so a handler added after sync still sees them.
        """
        handlers = _Handlers(on_add, on_update, on_delete)
        with self._lock:
            self._handlers.append(handlers)
            existing = list(self._cache.values()) if replay else []
        if on_add:
            for obj in existing:
                self._safe_call(on_add, obj)

    # ---- lifecycle ----

    def start(self) -> None:
        """Start one watch thread per scope."""
        self._stop_event.clear()
        for scope in self._scopes:
            t = threading.Thread(
                target=self._run,
                args=(scope,),
                daemon=True,
                name=f"pod-watch-{scope or 'all'}",
            )
            t.start()
            self._threads.append(t)
        logger.info(
            "Pod watcher started (namespaces: %s)",
            ", ".join(s for s in self._scopes if s) or "all",
        )

    def stop(self, timeout: float = 5) -> None:
        """Stop all watch threads."""
        self._stop_event.set()
        with self._lock:
            watches = list(self._watches)
        for w in watches:
            try:
                w.stop()
            except Exception as e:
                logger.debug("Error stopping watch: %s", e)
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads.clear()
        logger.info("Pod watcher stopped")

    def has_synced(self) -> bool:
        return all(evt.is_set() for evt in self._synced.values())

    def wait_for_sync(self, timeout: float | None = None) -> bool:
        """Block until every scope finished its initial list.

        *timeout* bounds the whole wait, not each scope. Returns False if it
        expired first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for evt in self._synced.values():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not evt.wait(remaining):
                return False
        return True

    # ---- cache ----

    def get(self, uid: str) -> Any | None:
        with self._lock:
            return self._cache.get(uid)

    def cached_pods(self) -> list[Any]:
        with self._lock:
            return list(self._cache.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    # ---- internals ----

    def _run(self, scope: str | None) -> None:
        resource_version: str | None = None
        while not self._stop_event.is_set():
            try:
                if resource_version is None:
                    resource_version = self._relist(scope)
                    self._synced[scope].set()
                resource_version = self._watch(scope, resource_version)
            except _ResourceVersionExpired:
                logger.info("Watch for %s expired, relisting", scope or "all namespaces")
                resource_version = None
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.warning(
                    "Watch for %s disconnected: %s. Reconnecting in %ss...",
                    scope or "all namespaces",
                    e,
                    self._reconnect_delay,
                )
                resource_version = None
                self._stop_event.wait(self._reconnect_delay)

    def _list_fn(self, scope: str | None) -> tuple[Callable[..., Any], dict[str, Any]]:
        if scope is None:
            return self._core.list_pod_for_all_namespaces, {}
        return self._core.list_namespaced_pod, {"namespace": scope}

    def _list_with_retry(self, scope: str | None) -> Any:
        """List pods with exponential backoff: 3 attempts, 1s -> 8s."""
        fn, kwargs = self._list_fn(scope)

        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            reraise=True,
        )
        def _run() -> Any:
            return fn(_request_timeout=self._watch_timeout, **kwargs)

        return _run()

    def _in_scope(self, obj: Any, scope: str | None) -> bool:
        return scope is None or _meta(obj, "namespace") == scope

    def _relist(self, scope: str | None) -> str | None:
        """List pods, reconcile the cache, and return the list resourceVersion."""
        result = self._list_with_retry(scope)
        items = list(getattr(result, "items", None) or [])

        added: list[Any] = []
        updated: list[tuple[Any, Any]] = []
        removed: list[Any] = []
        with self._lock:
            fresh = {}
            for obj in items:
                uid = _meta(obj, "uid")
                if uid:
                    fresh[uid] = obj
            stale = [
                uid for uid, obj in self._cache.items()
                if self._in_scope(obj, scope) and uid not in fresh
            ]
            for uid in stale:
                removed.append(self._cache.pop(uid))
            for uid, obj in fresh.items():
                old = self._cache.get(uid)
                self._cache[uid] = obj
                if old is None:
                    added.append(obj)
                elif _meta(old, "resource_version") != _meta(obj, "resource_version"):
                    updated.append((old, obj))

        for obj in removed:
            self._fire_delete(obj)
        for obj in added:
            self._fire_add(obj)
        for old, new in updated:
            self._fire_update(old, new)

        logger.info(
            "Listed %d pod(s) in %s", len(items), scope or "all namespaces"
        )
        return _meta(result, "resource_version")

    def _watch(self, scope: str | None, resource_version: str | None) -> str | None:
        fn, kwargs = self._list_fn(scope)
        w = self._watch_factory()
        with self._lock:
            self._watches.append(w)
        try:
            stream = w.stream(
                fn,
                resource_version=resource_version,
                timeout_seconds=self._watch_timeout,
                **kwargs,
            )
            for raw_event in stream:
                if self._stop_event.is_set():
                    w.stop()
                    break
                resource_version = self._handle_event(raw_event) or resource_version
        except Exception as e:
            if getattr(e, "status", None) == _HTTP_GONE:
                raise _ResourceVersionExpired() from e
            raise
        finally:
            with self._lock:
                if w in self._watches:
                    self._watches.remove(w)
        return resource_version

    def _handle_event(self, raw_event: dict[str, Any]) -> str | None:
        """Apply one watch event to the cache and fire callbacks.

        Returns the event's resourceVersion, if any.
        """
        event_type = raw_event.get("type", "")
        obj = raw_event.get("object")

        if event_type == EVENT_ERROR:
            code = obj.get("code") if isinstance(obj, dict) else getattr(obj, "code", None)
            if code == _HTTP_GONE:
                raise _ResourceVersionExpired()
            logger.warning("Watch error event: %s", obj)
            return None

        uid = _meta(obj, "uid")
        if obj is None or not uid:
            return None

        if event_type in (EVENT_ADDED, EVENT_MODIFIED):
            with self._lock:
                old = self._cache.get(uid)
                self._cache[uid] = obj
            if old is None:
                self._fire_add(obj)
            else:
                self._fire_update(old, obj)
        elif event_type == EVENT_DELETED:
            with self._lock:
                self._cache.pop(uid, None)
            self._fire_delete(obj)

        return _meta(obj, "resource_version")

    def _snapshot_handlers(self) -> list[_Handlers]:
        with self._lock:
            return list(self._handlers)

    def _fire_add(self, obj: Any) -> None:
        for h in self._snapshot_handlers():
            if h.on_add:
                self._safe_call(h.on_add, obj)

    def _fire_update(self, old: Any, new: Any) -> None:
        for h in self._snapshot_handlers():
            if h.on_update:
                self._safe_call(h.on_update, old, new)

    def _fire_delete(self, obj: Any) -> None:
        for h in self._snapshot_handlers():
            if h.on_delete:
                self._safe_call(h.on_delete, obj)

    @staticmethod
    def _safe_call(fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.warning("Event handler error: %s", e)
