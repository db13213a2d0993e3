"""Outcome notifications: message building, Slack delivery, log fallback.

The ``OutcomeNotifier`` adapter is best-effort: whatever a backend raises is
logged and dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import requests
from pydantic import BaseModel, Field

from kube_janitor.errors import NotificationError
from kube_janitor.models import NotificationKind, PodSnapshot

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
AUTHOR_NAME = "Kube Janitor"

_TITLES: dict[NotificationKind, str] = {
    NotificationKind.CRASH_LOOPING: "Pod CrashLoopBackOff Detected",
    NotificationKind.TERMINAL_FAILURE: "Failed/Evicted Pod Detected",
    NotificationKind.DELETE_FAILED: "Pod Deletion Failed",
    NotificationKind.DELETED: "Pod Cleanup Complete",
    NotificationKind.DRY_RUN: "Pod Cleanup Skipped (dry run)",
}

_COLORS: dict[NotificationKind, str] = {
    NotificationKind.CRASH_LOOPING: "#E67E22",  # orange
    NotificationKind.TERMINAL_FAILURE: "#C0392B",  # red
    NotificationKind.DELETE_FAILED: "#F1C40F",  # yellow
    NotificationKind.DELETED: "#27AE60",  # green
    NotificationKind.DRY_RUN: "#95A5A6",  # grey
}


class Notification(BaseModel):
    """A rendered, transport-independent notification."""

    kind: NotificationKind
    title: str
    text: str
    color: str
    namespace: str
    pod_name: str
    reason: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def fields(self) -> list[dict[str, Any]]:
        return [
            {"title": "Namespace", "value": self.namespace, "short": True},
            {"title": "Pod Name", "value": self.pod_name, "short": True},
            {"title": "Reason", "value": self.reason, "short": True},
            {
                "title": "Timestamp",
                "value": self.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z"),
                "short": True,
            },
        ]


def _message(kind: NotificationKind, pod: PodSnapshot, restart_count: int) -> str:
    name, ns = pod.name, pod.namespace
    if kind == NotificationKind.CRASH_LOOPING:
        return (
            f"Pod `{name}` in namespace `{ns}` is in CrashLoopBackOff state "
            f"with {restart_count} restarts. Scheduled for cleanup."
        )
    if kind == NotificationKind.TERMINAL_FAILURE:
        return (
            f"Pod `{name}` in namespace `{ns}` has failed or been evicted. "
            f"Scheduled for cleanup."
        )
    if kind == NotificationKind.DELETE_FAILED:
        return (
            f"Failed to delete pod `{name}` in namespace `{ns}`. "
            f"Manual intervention may be required."
        )
    if kind == NotificationKind.DRY_RUN:
        return (
            f"Dry run: pod `{name}` in namespace `{ns}` would have been deleted. "
            f"Nothing was removed."
        )
    return f"Pod `{name}` in namespace `{ns}` has been successfully deleted."


def _reason(kind: NotificationKind, pod: PodSnapshot, restart_count: int) -> str:
    if kind == NotificationKind.CRASH_LOOPING:
        return f"CrashLoopBackOff ({restart_count} restarts)"
    if kind == NotificationKind.TERMINAL_FAILURE:
        if pod.reason == "Evicted":
            return "Evicted"
        return pod.phase or "Unknown"
    if kind == NotificationKind.DELETE_FAILED:
        return "Deletion Error"
    if kind == NotificationKind.DELETED:
        return "Cleaned Up"
    if kind == NotificationKind.DRY_RUN:
        return "Dry Run"
    return "Unknown"


def build_notification(
    kind: NotificationKind,
    pod: PodSnapshot,
    restart_count: int = 0,
    now: datetime | None = None,
) -> Notification:
    """Render the notification for *kind* about *pod*."""
    return Notification(
        kind=kind,
        title=_TITLES[kind],
        text=_message(kind, pod, restart_count),
        color=_COLORS[kind],
        namespace=pod.namespace,
        pod_name=pod.name,
        reason=_reason(kind, pod, restart_count),
        timestamp=now or datetime.now(timezone.utc),
    )


class NotificationBackend(Protocol):
    def send(self, notification: Notification) -> None: ...


class LogBackend:
    """Writes notifications to the application log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "[%s] %s: %s (reason: %s)",
            notification.kind.value,
            notification.title,
            notification.text,
            notification.reason,
        )


class SlackBackend:
    """Posts notifications to a Slack channel as message attachments.

    Args:
        token: Bot token (``xoxb-...``) with ``chat:write`` scope.
        channel: Channel ID to post into.
        timeout: HTTP timeout in seconds.
        session: Optional ``requests.Session`` (injectable for tests).
    """

    def __init__(
        self,
        token: str,
        channel: str,
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        self._token = token
        self._channel = channel
        self._timeout = timeout
        self._session = session or requests.Session()

    def payload(self, notification: Notification) -> dict[str, Any]:
        return {
            "channel": self._channel,
            "attachments": [
                {
                    "color": notification.color,
                    "author_name": AUTHOR_NAME,
                    "title": notification.title,
                    "text": notification.text,
                    "fields": notification.fields(),
                    "footer": AUTHOR_NAME,
                }
            ],
        }

    def send(self, notification: Notification) -> None:
        try:
            response = self._session.post(
                SLACK_POST_MESSAGE_URL,
                json=self.payload(notification),
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NotificationError(f"Slack request failed: {e}") from e

        if not body.get("ok", False):
            raise NotificationError(f"Slack API error: {body.get('error', 'unknown')}")


class OutcomeNotifier:
    """Translates remediation transitions into notification calls."""

    def __init__(self, backend: NotificationBackend | None = None) -> None:
        self._backend = backend or LogBackend()

    @property
    def backend(self) -> NotificationBackend:
        return self._backend

    def notify(
        self, kind: NotificationKind, pod: PodSnapshot, restart_count: int = 0
    ) -> None:
        """Send one notification. Never raises."""
        try:
            self._backend.send(build_notification(kind, pod, restart_count))
        except Exception as e:
            logger.warning(
                "Notification %s for %s dropped: %s", kind.value, pod.identity.key, e
            )


def build_notifier(cfg: dict[str, Any]) -> OutcomeNotifier:
    """Build an OutcomeNotifier from the ``notifications`` config section."""
    slack = cfg.get("slack", {})
    token, channel = slack.get("token"), slack.get("channel")
    if token and channel:
        return OutcomeNotifier(SlackBackend(
            token=token,
            channel=channel,
            timeout=slack.get("timeout_seconds", 10),
        ))
    logger.warning("Slack token or channel not configured; notifications go to the log only")
    return OutcomeNotifier(LogBackend())
