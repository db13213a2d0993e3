"""Configuration loading: defaults <- YAML file <- .env / environment."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from kube_janitor.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".kube-janitor"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"

DEFAULTS: dict[str, Any] = {
    "kubernetes": {
        "kubeconfig": None,
        "context": None,
        "namespaces": [],
        "exclude_namespaces": [],
        "watch_timeout_seconds": 300,
    },
    "policy": {
        "crashloop_restart_threshold": 5,
        "grace_period_seconds": 20,
        "reclassify_on_update": False,
        "dry_run": False,
    },
    "notifications": {
        "slack": {
            "token": "",
            "channel": "",
            "timeout_seconds": 10,
        },
    },
    "shutdown": {
        "drain": True,
        "drain_timeout_seconds": 60,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

# (env var, config path, parser)
_ENV_OVERRIDES: list[tuple[str, tuple[str, ...], str]] = [
    ("SLACK_AUTH_TOKEN", ("notifications", "slack", "token"), "str"),
    ("SLACK_CHANNEL_ID", ("notifications", "slack", "channel"), "str"),
    ("CONTEXT", ("kubernetes", "context"), "str"),
    ("KUBECONFIG", ("kubernetes", "kubeconfig"), "str"),
    ("KUBE_JANITOR_GRACE_PERIOD", ("policy", "grace_period_seconds"), "float"),
    ("KUBE_JANITOR_RESTART_THRESHOLD", ("policy", "crashloop_restart_threshold"), "int"),
    ("KUBE_JANITOR_DRY_RUN", ("policy", "dry_run"), "bool"),
    ("KUBE_JANITOR_LOG_LEVEL", ("logging", "level"), "str"),
]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _parse(name: str, raw: str, kind: str) -> Any:
    if kind == "str":
        return raw
    if kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"{name} must be a boolean, got {raw!r}")
    try:
        return int(raw) if kind == "int" else float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _apply_env(config: dict[str, Any]) -> None:
    for env_name, path, kind in _ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        node = config
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = _parse(env_name, raw, kind)


def _validate(config: dict[str, Any]) -> None:
    policy = config.get("policy", {})
    try:
        grace = float(policy.get("grace_period_seconds", 0))
        threshold = int(policy.get("crashloop_restart_threshold", 1))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"policy values must be numbers: {e}") from e
    if grace < 0:
        raise ConfigError(f"policy.grace_period_seconds must be >= 0, got {grace}")
    if threshold < 1:
        raise ConfigError(
            f"policy.crashloop_restart_threshold must be >= 1, got {threshold}"
        )


def load_config(
    config_path: str | Path | None = None, *, use_dotenv: bool = True
) -> dict[str, Any]:
    """Load the effective configuration.

    Precedence (lowest to highest): built-in defaults, the YAML file at
    *config_path* (default ``~/.kube-janitor/config.yaml``), then environment
    variables. A ``.env`` file in the working directory is loaded into the
    environment first without overriding variables that are already set.

    Raises:
        ConfigError: If the YAML file is malformed, an override cannot be parsed,
            or a policy value is out of range.
    """
    if use_dotenv:
        load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config = copy.deepcopy(DEFAULTS)

    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        config = _deep_merge(config, loaded)
        logger.debug("Loaded config file %s", path)

    _apply_env(config)
    _validate(config)
    return config


def generate_default_yaml() -> str:
    """Render a commented default configuration file."""
    return """\
# kube-janitor configuration
# Environment variables override these values:
#   SLACK_AUTH_TOKEN, SLACK_CHANNEL_ID, CONTEXT, KUBECONFIG,
#   KUBE_JANITOR_GRACE_PERIOD, KUBE_JANITOR_RESTART_THRESHOLD,
#   KUBE_JANITOR_DRY_RUN, KUBE_JANITOR_LOG_LEVEL

kubernetes:
  kubeconfig: null          # path; null = $KUBECONFIG, ~/.kube/config, then in-cluster
  context: null             # kubeconfig context; null = current context
  namespaces: []            # empty = watch all namespaces
  exclude_namespaces: []    # never evaluated
  watch_timeout_seconds: 300

policy:
  crashloop_restart_threshold: 5   # CrashLoopBackOff restarts before cleanup
  grace_period_seconds: 20         # wait between detection and deletion
  reclassify_on_update: false      # also evaluate pods on update events
  dry_run: false                   # log deletions instead of performing them

notifications:
  slack:
    token: ""               # bot token with chat:write
    channel: ""             # channel ID
    timeout_seconds: 10

shutdown:
  drain: true               # wait for in-flight cleanups on shutdown
  drain_timeout_seconds: 60

logging:
  level: INFO
  file: null                # optional rotating log file
"""
