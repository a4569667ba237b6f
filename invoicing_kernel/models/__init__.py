"""ORM models for the invoicing kernel."""

from invoicing_kernel.models.documents import DOCUMENT_MODELS, Invoice, PurchaseOrder
from invoicing_kernel.models.status_history import StatusHistoryEntry
from invoicing_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "DOCUMENT_MODELS",
    "Invoice",
    "PurchaseOrder",
    "SequenceCounter",
    "StatusHistoryEntry",
]
