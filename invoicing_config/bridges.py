"""
Config -> Kernel Bridges.

Functions that turn a CompiledWorkflowConfig into kernel objects.  These
live in invoicing_config (the producer) because the kernel must NEVER
import invoicing_config.

Usage:
    from invoicing_config import get_active_config
    from invoicing_config.bridges import (
        build_status_mutation_service,
        init_engine_from_config,
    )

    config = get_active_config()
    init_engine_from_config(config)
    service = build_status_mutation_service(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from invoicing_config.compiler import CompiledWorkflowConfig
from invoicing_kernel.db.engine import get_session_factory, init_engine_from_url
from invoicing_kernel.db.immutability import register_immutability_listeners
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.domain.transitions import Authorizer, TransitionPolicy
from invoicing_kernel.logging_config import configure_logging
from invoicing_kernel.services.notifications import StatusChangePublisher
from invoicing_kernel.services.status_mutation_service import StatusMutationService


def build_transition_policy(
    config: CompiledWorkflowConfig,
    authorizer: Authorizer | None = None,
) -> TransitionPolicy:
    """
    The configured policy, optionally rebuilt around a custom authorizer.
    """
    if authorizer is None:
        return config.policy
    return TransitionPolicy.from_dict(config.policy.to_dict(), authorizer=authorizer)


def init_engine_from_config(config: CompiledWorkflowConfig) -> Engine:
    """Configure logging at the configured level, then the engine."""
    configure_logging(level=config.log_level)
    engine = init_engine_from_url(config.database_url, echo=config.echo)
    register_immutability_listeners()
    return engine


def build_status_mutation_service(
    config: CompiledWorkflowConfig,
    *,
    session_factory=None,
    clock: Clock | None = None,
    publisher: StatusChangePublisher | None = None,
    authorizer: Authorizer | None = None,
) -> StatusMutationService:
    """
    Wire a StatusMutationService from configuration.

    Uses the module-level session factory unless one is supplied, so
    ``init_engine_from_config`` must run first in that case.
    """
    return StatusMutationService(
        session_factory or get_session_factory(),
        build_transition_policy(config, authorizer),
        clock=clock,
        publisher=publisher,
    )
