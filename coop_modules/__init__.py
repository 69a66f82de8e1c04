"""
Cooperative ledger modules.

Transaction-owning services over the kernel.  Each module reads state
through kernel selectors, applies pure domain math and writes through
flush-only kernel services, then commits or rolls back.

Modules:
- loans: application, approval, disbursement, rejection, write-off, payoff
- payments: allocation, composite payments, voids, payment notifications
- close: monthly period close and the overdue scan
- dividends: annual dividend calculation and payout to savings
- cash: end-of-day cash reconciliation
- members: registration and share deposits
"""
