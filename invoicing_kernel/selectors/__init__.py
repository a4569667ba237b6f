"""Selectors for the invoicing kernel (read side)."""

from invoicing_kernel.selectors.status_history_selector import StatusHistorySelector

__all__ = ["StatusHistorySelector"]
