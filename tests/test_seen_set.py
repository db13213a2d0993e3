"""Tests for the in-flight remediation set."""

from __future__ import annotations

import threading

from kube_janitor.models import PodIdentity
from kube_janitor.seen_set import SeenSet


def _identity(name="api", uid="u-1"):
    return PodIdentity(namespace="shop", name=name, uid=uid)


class TestSeenSet:
    def test_first_mark_succeeds(self):
        seen = SeenSet()
        assert seen.try_mark(_identity()) is True
        assert _identity() in seen
        assert len(seen) == 1

    def test_second_mark_fails(self):
        seen = SeenSet()
        seen.try_mark(_identity())
        assert seen.try_mark(_identity()) is False
        assert len(seen) == 1

    def test_release_allows_remark(self):
        seen = SeenSet()
        seen.try_mark(_identity())
        seen.release(_identity())
        assert _identity() not in seen
        assert seen.try_mark(_identity()) is True

    def test_release_absent_is_noop(self):
        seen = SeenSet()
        seen.release(_identity())
        assert len(seen) == 0

    def test_identities_are_independent(self):
        seen = SeenSet()
        assert seen.try_mark(_identity("a", "u-a"))
        assert seen.try_mark(_identity("b", "u-b"))
        seen.release(_identity("a", "u-a"))
        assert seen.snapshot() == ["u-b"]

    def test_recreated_pod_with_new_uid_is_distinct(self):
        seen = SeenSet()
        assert seen.try_mark(_identity(uid="old"))
        assert seen.try_mark(_identity(uid="new"))

    def test_instances_are_isolated(self):
        a, b = SeenSet(), SeenSet()
        a.try_mark(_identity())
        assert _identity() not in b

    def test_non_identity_not_contained(self):
        assert "u-1" not in SeenSet()

    def test_concurrent_mark_single_winner(self):
        seen = SeenSet()
        barrier = threading.Barrier(32)
        wins: list[bool] = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            ok = seen.try_mark(_identity())
            with lock:
                wins.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(32)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins.count(True) == 1
        assert len(seen) == 1

    def test_concurrent_mark_release_different_keys(self):
        seen = SeenSet()

        def worker(i):
            ident = _identity(f"p{i}", f"u{i}")
            for _ in range(200):
                assert seen.try_mark(ident)
                seen.release(ident)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 0
