"""Output formatting for the scan command."""

from kube_janitor.reporters.console import print_scan
from kube_janitor.reporters.json_reporter import scan_to_json

__all__ = [
    "print_scan",
    "scan_to_json",
]
