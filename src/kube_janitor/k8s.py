"""Cluster API access: client construction and pod deletion."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from kube_janitor.errors import KubeConfigError
from kube_janitor.models import PodSnapshot

logger = logging.getLogger(__name__)

# Default timeout (seconds) for write calls against the API server
API_TIMEOUT = 30


def _default_kubeconfig() -> str | None:
    env = os.getenv("KUBECONFIG")
    if env:
        return env
    home = Path.home() / ".kube" / "config"
    return str(home)


def load_core_api(kubeconfig: str | None = None, context: str | None = None) -> Any:
    """Create a ``CoreV1Api`` client.

    Resolution order: explicit kubeconfig, then ``$KUBECONFIG`` or
    ``~/.kube/config`` when it exists, then in-cluster service account.
    ``context`` selects a kubeconfig context (current context when None).

    Raises:
        KubeConfigError: If no configuration could be loaded or the
            requested context does not exist.
    """
    from kubernetes import client
    from kubernetes import config as k8s_config

    path = kubeconfig or _default_kubeconfig()

    if path and os.path.exists(path):
        try:
            k8s_config.load_kube_config(config_file=path, context=context or None)
        except k8s_config.ConfigException as e:
            raise KubeConfigError(f"Failed to load kubeconfig {path}: {e}") from e
        logger.info("Loaded kubeconfig %s (context: %s)", path, context or "current")
    else:
        if kubeconfig:
            raise KubeConfigError(f"kubeconfig {kubeconfig} does not exist")
        try:
            k8s_config.load_incluster_config()
        except k8s_config.ConfigException as e:
            raise KubeConfigError(f"Failed to get in-cluster config: {e}") from e
        logger.info("Loaded in-cluster Kubernetes configuration")

    return client.CoreV1Api()


class PodDeleter:
    """Issues delete calls for offending pods.

    A UID precondition is attached so that a pod recreated under the same
    name is never removed on behalf of its predecessor.

    Args:
        core_api: ``CoreV1Api`` (or compatible mock).
        dry_run: Log instead of deleting.
        request_timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        core_api: Any,
        *,
        dry_run: bool = False,
        request_timeout: int = API_TIMEOUT,
    ) -> None:
        self._core = core_api
        self._dry_run = dry_run
        self._timeout = request_timeout

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def delete(self, pod: PodSnapshot) -> None:
        """Delete *pod*. Raises whatever the API client raises on failure."""
        if self._dry_run:
            logger.info("[dry-run] Would delete pod %s", pod.identity.key)
            return

        from kubernetes import client

        body = client.V1DeleteOptions()
        if pod.identity.uid:
            body.preconditions = client.V1Preconditions(uid=pod.identity.uid)

        self._core.delete_namespaced_pod(
            pod.name,
            pod.namespace,
            body=body,
            _request_timeout=self._timeout,
        )
        logger.info("Deleted pod %s", pod.identity.key)
