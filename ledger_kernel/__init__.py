"""
Ledger Kernel - multi-currency journal posting engine.

Turns state changes of financial transactions (expenses, payments, invoices) into
balanced double-entry journal entries:
- Point-in-time FX rate resolution against a versioned rate store
- Functional-currency conversion with explicit rounding
- Reversal by mirrored entry, never by mutation
- One posting per transaction state, serialized per transaction
- Best-effort audit trail of every mutation
"""

__version__ = "0.1.0"
