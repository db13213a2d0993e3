"""CLI entry point for kube-janitor."""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path
from typing import Any

import click

from kube_janitor import __version__
from kube_janitor.config import (
    DEFAULT_CONFIG_PATH,
    generate_default_yaml,
    load_config,
)
from kube_janitor.errors import JanitorError
from kube_janitor.logging_config import setup_logging


@click.group()
@click.version_option(__version__, prog_name="kube-janitor")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False),
    default=None,
    help="Path to config file (default: ~/.kube-janitor/config.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """Kube Janitor: automatic cleanup of failed, evicted and crash-looping pods.

    Watches pods cluster-wide, announces offenders on Slack, and deletes
    them after a grace period.

    Quick start:
      kube-janitor config init
      kube-janitor scan
      kube-janitor run
    """
    ctx.ensure_object(dict)
    try:
        cfg = load_config(config)
    except JanitorError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)
    if log_level:
        cfg["logging"]["level"] = log_level
    setup_logging(cfg["logging"]["level"], cfg["logging"].get("file"))
    ctx.obj["config"] = cfg


# ---------------------------------------------------------------------------
# run command
# ---------------------------------------------------------------------------

@cli.command()
@click.option(
    "--grace-period",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait before deleting",
)
@click.option("--dry-run", is_flag=True, help="Log deletions instead of performing them")
@click.option("--context", "kube_context", default=None, help="Kubeconfig context to use")
@click.pass_context
def run(
    ctx: click.Context,
    grace_period: float | None,
    dry_run: bool,
    kube_context: str | None,
) -> None:
    """Watch pods and clean up offenders until interrupted.

    Examples:
      kube-janitor run
      kube-janitor run --grace-period 300
      kube-janitor run --dry-run --context staging
    """
    from kube_janitor.controller import Controller

    cfg = ctx.obj["config"]
    if grace_period is not None:
        cfg["policy"]["grace_period_seconds"] = grace_period
    if dry_run:
        cfg["policy"]["dry_run"] = True
    if kube_context:
        cfg["kubernetes"]["context"] = kube_context

    click.echo(f"Kube Janitor v{__version__} - Kubernetes pod cleanup controller", err=True)

    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: Any) -> None:
        stop_event.set()

    previous = {
        sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        controller = Controller.from_config(cfg)
        controller.run(stop_event)
    except JanitorError as e:
        click.echo(f"Controller failed: {e}", err=True)
        sys.exit(1)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


# ---------------------------------------------------------------------------
# scan command
# ---------------------------------------------------------------------------

@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default="console",
    help="Output format",
)
@click.option(
    "--namespace",
    "-n",
    multiple=True,
    help="Namespace(s) to scan (repeatable; default all)",
)
@click.option("--all", "show_all", is_flag=True, help="Include healthy pods in the output")
@click.pass_context
def scan(
    ctx: click.Context,
    output: str,
    namespace: tuple[str, ...],
    show_all: bool,
) -> None:
    """List pods once and show which ones would be cleaned up.

    Nothing is deleted and no notifications are sent.

    Examples:
      kube-janitor scan
      kube-janitor scan --output json
      kube-janitor scan --namespace default --all
    """
    from kube_janitor.classifier import classify
    from kube_janitor.k8s import load_core_api
    from kube_janitor.models import PodSnapshot
    from kube_janitor.reporters import print_scan, scan_to_json

    cfg = ctx.obj["config"]
    k8s_cfg = cfg["kubernetes"]
    threshold = int(cfg["policy"]["crashloop_restart_threshold"])
    namespaces = list(namespace) or k8s_cfg.get("namespaces") or []
    excluded = set(k8s_cfg.get("exclude_namespaces") or [])

    try:
        core = load_core_api(k8s_cfg.get("kubeconfig"), k8s_cfg.get("context"))
        if namespaces:
            items = []
            for ns in namespaces:
                items.extend(core.list_namespaced_pod(ns, _request_timeout=30).items)
        else:
            items = core.list_pod_for_all_namespaces(_request_timeout=30).items
    except Exception as e:
        click.echo(f"Scan failed: {e}", err=True)
        sys.exit(1)

    results = []
    for obj in items:
        pod = PodSnapshot.from_k8s(obj)
        if pod is None or pod.namespace in excluded:
            continue
        results.append((pod, classify(pod, threshold)))

    if output == "json":
        click.echo(scan_to_json(results, show_healthy=show_all))
    else:
        print_scan(results, show_healthy=show_all)


# ---------------------------------------------------------------------------
# config command group
# ---------------------------------------------------------------------------

@cli.group()
def config() -> None:
    """Manage kube-janitor configuration."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=None,
    help=f"Where to create the config (default: {DEFAULT_CONFIG_PATH})",
)
@click.option("--force", is_flag=True, help="Overwrite existing config")
def config_init(path: str | None, force: bool) -> None:
    """Create a default configuration file."""
    target = Path(path) if path else DEFAULT_CONFIG_PATH

    if target.exists() and not force:
        click.echo(
            f"Config already exists at {target}. Use --force to overwrite.", err=True
        )
        sys.exit(1)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(generate_default_yaml())
    click.echo(f"Config created at: {target}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current effective configuration (secrets masked)."""
    import yaml

    display = _mask_secrets(ctx.obj["config"])
    click.echo(yaml.dump(display, default_flow_style=False, sort_keys=False))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mask_secrets(cfg: dict[str, Any]) -> dict[str, Any]:
    """Replace secret values with masked placeholders for display."""
    import copy

    display = copy.deepcopy(cfg)
    secret_keys = {"token", "password", "secret"}

    def _mask(d: dict) -> None:
        for k, v in d.items():
            if any(s in k.lower() for s in secret_keys) and isinstance(v, str) and v:
                d[k] = "***"
            elif isinstance(v, dict):
                _mask(v)

    _mask(display)
    return display


def main() -> None:
    """Entry point for the kube-janitor CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
