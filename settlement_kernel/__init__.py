"""
Settlement Kernel - Pay Application Review & Settlement Engine

A schedule-of-values ledger coupled with an ordered review workflow:
- Reconciled line-item totals after every mutation
- Per-expense approval with reversal-only corrections
- Sequential reviewer chain with full re-review on requested changes
- Idempotent roll-forward at finalization
- Certificates rendered from frozen submission snapshots
"""

__version__ = "0.1.0"
