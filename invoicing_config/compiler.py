"""
Workflow configuration compiler (``invoicing_config.compiler``).

Turns a parsed WorkflowConfigurationSet into the frozen runtime artifact,
CompiledWorkflowConfig.  Compilation validates the rule tables by building
a TransitionPolicy (duplicate rules, unknown statuses or roles, and
unreachable statuses are rejected) and computes the checksum over the
policy's canonical rule table, so the same rules always yield the same
checksum regardless of YAML ordering of roles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from invoicing_config.loader import ConfigurationError, compute_checksum
from invoicing_config.schema import DatabaseDef, LoggingDef, WorkflowConfigurationSet
from invoicing_kernel.domain.transitions import TransitionPolicy
from invoicing_kernel.exceptions import PolicyDefinitionError

_VALID_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


@dataclass(frozen=True)
class CompiledWorkflowConfig:
    """
    Validated, frozen runtime configuration.

    Attributes:
        config_id: Source configuration identifier
        version: Source configuration version
        database_url: SQLAlchemy URL for the document store
        echo: Log every SQL statement
        log_level: Level for the invoicing_kernel logger hierarchy
        policy: The compiled TransitionPolicy
        checksum: SHA-256 over the canonical rule table
    """

    config_id: str
    version: int
    database_url: str
    echo: bool
    log_level: str
    policy: TransitionPolicy
    checksum: str

    @property
    def database(self) -> DatabaseDef:
        return DatabaseDef(url=self.database_url, echo=self.echo)

    @property
    def logging(self) -> LoggingDef:
        return LoggingDef(level=self.log_level)


def compile_workflow_config(config_set: WorkflowConfigurationSet) -> CompiledWorkflowConfig:
    """
    Raises:
        ConfigurationError: the rule tables or the log level are invalid.
    """
    if config_set.logging.level not in _VALID_LOG_LEVELS:
        raise ConfigurationError(
            config_set.config_id, f"unknown log level {config_set.logging.level!r}"
        )

    try:
        policy = TransitionPolicy.from_dict(config_set.workflows_as_dict())
    except PolicyDefinitionError as exc:
        raise ConfigurationError(config_set.config_id, str(exc)) from exc

    return CompiledWorkflowConfig(
        config_id=config_set.config_id,
        version=config_set.version,
        database_url=config_set.database.url,
        echo=config_set.database.echo,
        log_level=config_set.logging.level,
        policy=policy,
        checksum=compute_checksum(policy.to_dict()),
    )
