"""
BaseService -- abstract base for write-side kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write through a caller-supplied SQLAlchemy ``Session``
    using ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or rollback themselves.  The status
    mutation service owns commit/rollback so that the entity update and
    the history append land together or not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-model queries -- those belong in
          ``invoicing_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
