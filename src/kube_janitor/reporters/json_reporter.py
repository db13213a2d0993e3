"""JSON output for one-shot pod scans."""

from __future__ import annotations

import json

from kube_janitor.models import Classification, PodSnapshot


def scan_entry(pod: PodSnapshot, result: Classification) -> dict:
    return {
        "namespace": pod.namespace,
        "name": pod.name,
        "uid": pod.identity.uid,
        "phase": pod.phase,
        "verdict": result.kind.value,
        "reason": result.reason,
        "restart_count": result.restart_count,
    }


def scan_to_json(
    results: list[tuple[PodSnapshot, Classification]],
    show_healthy: bool = False,
    indent: int = 2,
) -> str:
    """Serialize scan results; healthy pods are omitted unless requested."""
    data = [
        scan_entry(pod, result)
        for pod, result in results
        if show_healthy or result.is_offending
    ]
    return json.dumps(data, indent=indent, default=str)
