"""
Materials Kernel

Inventory and supplier ledgers for construction-project procurement:
- Stock per (item, project, warehouse) with a single mutation path
- Append-only inventory ledger with before/after snapshots
- Append-only supplier ledger with a running balance
- Locked-row sequences for human-readable reference codes
"""

__version__ = "0.1.0"
