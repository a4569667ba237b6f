"""Services for the invoicing kernel (write side)."""

from invoicing_kernel.services.entity_store import EntitySnapshot, EntityStore
from invoicing_kernel.services.notifications import StatusChangePublisher
from invoicing_kernel.services.sequence_service import SequenceService
from invoicing_kernel.services.status_ledger import HistoryView, StatusLedger
from invoicing_kernel.services.status_mutation_service import StatusMutationService

__all__ = [
    "EntitySnapshot",
    "EntityStore",
    "HistoryView",
    "SequenceService",
    "StatusChangePublisher",
    "StatusLedger",
    "StatusMutationService",
]
