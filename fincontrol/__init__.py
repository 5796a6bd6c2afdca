"""
FinControl - Series Ledger

The series lifecycle engine of a personal finance tracker: recurring
income and credit-card installment plans projected into dated records,
series-aware edits and deletions, and an optimistic local ledger mirrored
to a remote store.

DESIGN PRINCIPLES:
1. Series are derived from a shared id, never stored as parents
2. Local changes are applied first; the remote mirror never blocks the user
3. Remote snapshots are authoritative and replace local state
4. Invalid input creates nothing
5. Every user action is auditable
"""

__version__ = "1.0.0"
__author__ = "FinControl Team"
