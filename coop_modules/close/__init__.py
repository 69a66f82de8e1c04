"""
coop_modules.close
==================

Responsibility:
    Month-end loan balance snapshots and the overdue -> DEFAULTED scan.

Architecture:
    Module layer over ``coop_kernel.services.period_closer``.
"""

from coop_modules.close.service import PeriodCloseService

__all__ = ["PeriodCloseService"]
