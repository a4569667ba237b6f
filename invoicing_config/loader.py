"""
Configuration Loader (``invoicing_config.loader``).

Responsibility
--------------
Loads a configuration set's ``root.yaml`` and parses it into typed
``invoicing_config.schema`` dataclass instances.  This is internal
tooling; the single public entry point for runtime config is
``invoicing_config.get_active_config()``.

Failure modes
-------------
* Missing file, malformed YAML, missing or mistyped keys  ->
  ``ConfigurationError`` naming the file and the offending key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from invoicing_config.schema import (
    DatabaseDef,
    LoggingDef,
    TransitionDef,
    WorkflowConfigurationSet,
    WorkflowDef,
)
from invoicing_kernel.exceptions import InvoicingKernelError


class ConfigurationError(InvoicingKernelError):
    """A configuration set is missing or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration {source}: {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: the file is missing, unreadable, not valid
            YAML, or its top level is not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(str(path), "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"malformed YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _require(data: dict[str, Any], key: str, source: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(source, f"missing required key '{key}'")
    return data[key]


def parse_database(data: dict[str, Any] | None) -> DatabaseDef:
    data = data or {}
    return DatabaseDef(
        url=str(data.get("url", DatabaseDef.url)),
        echo=bool(data.get("echo", False)),
    )


def parse_logging(data: dict[str, Any] | None) -> LoggingDef:
    data = data or {}
    return LoggingDef(level=str(data.get("level", LoggingDef.level)).upper())


def parse_transition(data: Any, source: str) -> TransitionDef:
    if not isinstance(data, dict):
        raise ConfigurationError(source, f"transition must be a mapping, got {data!r}")
    roles = _require(data, "roles", source)
    if isinstance(roles, str) or not isinstance(roles, list):
        raise ConfigurationError(source, f"roles must be a list, got {roles!r}")
    return TransitionDef(
        from_status=str(_require(data, "from", source)),
        to_status=str(_require(data, "to", source)),
        roles=tuple(str(r) for r in roles),
    )


def parse_workflow(kind: str, data: dict[str, Any] | None, source: str) -> WorkflowDef:
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError(source, f"workflows.{kind} must be a mapping, got {data!r}")
    transitions = data.get("transitions") or []
    if not isinstance(transitions, list):
        raise ConfigurationError(source, f"workflows.{kind}.transitions must be a list")
    system_statuses = data.get("system_statuses") or []
    if not isinstance(system_statuses, list):
        raise ConfigurationError(source, f"workflows.{kind}.system_statuses must be a list")
    return WorkflowDef(
        kind=str(kind),
        transitions=tuple(
            parse_transition(t, f"{source} workflows.{kind}") for t in transitions
        ),
        system_statuses=tuple(str(s) for s in system_statuses),
    )


def load_configuration_set(root_file: Path) -> WorkflowConfigurationSet:
    """Parse ``root_file`` into a WorkflowConfigurationSet."""
    data = load_yaml_file(root_file)
    source = str(root_file)

    workflows = _require(data, "workflows", source)
    if not isinstance(workflows, dict):
        raise ConfigurationError(source, "workflows must be a mapping of entity kind")

    try:
        version = int(_require(data, "version", source))
    except (TypeError, ValueError):
        raise ConfigurationError(source, "version must be an integer") from None

    return WorkflowConfigurationSet(
        config_id=str(_require(data, "config_id", source)),
        version=version,
        database=parse_database(data.get("database")),
        logging=parse_logging(data.get("logging")),
        workflows=tuple(
            parse_workflow(kind, section, source) for kind, section in workflows.items()
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
