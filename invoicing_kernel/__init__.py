"""
Invoicing Kernel

Status workflow core for purchase orders and invoices:
- Closed status vocabulary per entity kind
- Table-driven, role-gated transition policy
- Append-only status history ledger
- Atomic compare-and-swap status mutation
"""

__version__ = "0.1.0"
