"""
coop_modules.dividends
======================

Responsibility:
    Annual dividend calculation and payout into member savings.
"""

from coop_modules.dividends.service import DividendService

__all__ = ["DividendService"]
