"""
coop_modules.members
====================

Responsibility:
    Member registration and share-capital deposits.
"""

from coop_modules.members.service import MemberService, age_on

__all__ = ["MemberService", "age_on"]
