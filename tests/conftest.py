"""Shared pytest fixtures for kube-janitor tests."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest

from kube_janitor.models import PodSnapshot

_ENV_VARS = [
    "SLACK_AUTH_TOKEN",
    "SLACK_CHANNEL_ID",
    "CONTEXT",
    "KUBECONFIG",
    "KUBE_JANITOR_GRACE_PERIOD",
    "KUBE_JANITOR_RESTART_THRESHOLD",
    "KUBE_JANITOR_DRY_RUN",
    "KUBE_JANITOR_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep host environment variables out of config-dependent tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers that setup_logging bound to a captured stderr."""
    yield
    logger = logging.getLogger("kube_janitor")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def make_pod(
    name: str = "web-7d9f",
    namespace: str = "default",
    uid: str | None = None,
    phase: str = "Running",
    reason: str | None = None,
    containers: list[dict[str, Any]] | None = None,
    start_time: str | None = "2026-01-15T10:00:00Z",
) -> dict[str, Any]:
    """Raw pod as returned by the API server (camelCase JSON)."""
    status: dict[str, Any] = {"phase": phase}
    if reason:
        status["reason"] = reason
    if start_time:
        status["startTime"] = start_time
    status["containerStatuses"] = [
        {
            "name": c.get("name", "app"),
            "restartCount": c.get("restart_count", 0),
            "state": (
                {"waiting": {"reason": c["waiting_reason"]}}
                if c.get("waiting_reason")
                else {"running": {"startedAt": "2026-01-15T10:00:05Z"}}
            ),
        }
        for c in (containers or [])
    ]
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": uid or f"uid-{namespace}-{name}",
        },
        "status": status,
    }


def snapshot(**kwargs: Any) -> PodSnapshot:
    pod = PodSnapshot.from_k8s(make_pod(**kwargs))
    assert pod is not None
    return pod


@pytest.fixture
def failed_pod() -> PodSnapshot:
    return snapshot(name="batch-job-x1", phase="Failed")


@pytest.fixture
def evicted_pod() -> PodSnapshot:
    return snapshot(name="cache-0", phase="Failed", reason="Evicted")


@pytest.fixture
def crashloop_pod() -> PodSnapshot:
    return snapshot(
        name="api-5c8b",
        containers=[{"name": "api", "waiting_reason": "CrashLoopBackOff", "restart_count": 7}],
    )


@pytest.fixture
def healthy_pod() -> PodSnapshot:
    return snapshot(
        name="worker-2a",
        containers=[{"name": "worker", "restart_count": 3}],
    )


@pytest.fixture
def deleter():
    d = MagicMock()
    d.delete.return_value = None
    return d


@pytest.fixture
def notifier():
    return MagicMock()


def no_sleep(_seconds: float) -> None:
    return None
