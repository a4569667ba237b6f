"""
WorkflowConfigurationSet schema.

Defines the human-authored, reviewable source artifact for workflow
configuration.  YAML files are parsed into these types by the loader and
compiled into a CompiledWorkflowConfig by the compiler.

Key distinction:
  WorkflowConfigurationSet = source artifact (human-authored, versioned)
  CompiledWorkflowConfig   = runtime artifact (validated, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseDef:
    url: str = "sqlite:///invoicing.db"
    echo: bool = False


@dataclass(frozen=True)
class LoggingDef:
    level: str = "INFO"


@dataclass(frozen=True)
class TransitionDef:
    """One ``{from, to, roles}`` entry of a workflow."""

    from_status: str
    to_status: str
    roles: tuple[str, ...]


@dataclass(frozen=True)
class WorkflowDef:
    """Status workflow for one entity kind."""

    kind: str
    transitions: tuple[TransitionDef, ...]
    system_statuses: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowConfigurationSet:
    """A complete, parsed configuration set (``sets/<name>/root.yaml``)."""

    config_id: str
    version: int
    database: DatabaseDef
    logging: LoggingDef
    workflows: tuple[WorkflowDef, ...]

    def workflows_as_dict(self) -> dict:
        """The ``workflows`` section in TransitionPolicy.from_dict shape."""
        return {
            wf.kind: {
                "system_statuses": list(wf.system_statuses),
                "transitions": [
                    {"from": t.from_status, "to": t.to_status, "roles": list(t.roles)}
                    for t in wf.transitions
                ],
            }
            for wf in self.workflows
        }
