"""
SACCO Kernel - monthly return compliance core

A transactional core for SACCO regulatory reporting with:
- Role-scoped authorization on every read and write
- An explicit, guarded monthly-return state machine
- One return per SACCO per reporting month (unique index)
- Fixed-point money, never floats
- Read-only compliance aggregates for dashboards
"""

__version__ = "0.1.0"
