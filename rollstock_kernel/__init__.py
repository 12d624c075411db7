"""
Rollstock Kernel - batch/lot inventory ledger core

A lot-tracked stock ledger for flexible-packaging material with:
- Non-negative remaining stock per batch
- Quantity conservation across issue, return and slitting
- Traceable batch lineage back to the goods receipt
- Pluggable persistence (memory, JSON file, SQL)
"""

__version__ = "0.1.0"
