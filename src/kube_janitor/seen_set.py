"""Thread-safe set of pod identities with a remediation in flight."""

from __future__ import annotations

import threading

from kube_janitor.models import PodIdentity


class SeenSet:
    """Tracks which pods already have a remediation pending or running.

    An identity is present exactly while its remediation sequence is active.
    ``try_mark`` is the only way in and is atomic, so two events for the same
    pod can never both start a sequence.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    def try_mark(self, identity: PodIdentity) -> bool:
        """Mark *identity* as in flight. Returns False if it already was."""
        key = identity.seen_key
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, identity: PodIdentity) -> None:
        """Remove the marker for *identity* (no-op when absent)."""
        with self._lock:
            self._keys.discard(identity.seen_key)

    def snapshot(self) -> list[str]:
        with self._lock:
            return sorted(self._keys)

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, PodIdentity):
            return False
        with self._lock:
            return identity.seen_key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
