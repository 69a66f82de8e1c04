"""
Ledger configuration schema.

Frozen dataclasses that ``coop_config.loader`` parses the YAML document into.
Module services receive a ``LedgerConfig`` (or one of its sections) through
their constructor; nothing below the config layer reads files or environment
variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from coop_kernel.domain.accounts import AccountDef, ChartOfAccounts
from coop_kernel.domain.identity import Role

# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoanPolicy:
    """Loan application limits, default rates and penalty terms."""

    min_term_months: int = 1
    max_term_months: int = 120
    max_guarantors: int = 2
    max_active_guarantees: int = 3
    default_rates: dict[str, Decimal] = field(default_factory=dict)
    penalty_rate_per_month: Decimal = Decimal("0.01")
    penalty_days_per_month: int = 30
    day_count_basis: int = 365
    close_statuses: tuple[str, ...] = ("ACTIVE", "DEFAULTED")
    void_window_days: int = 1
    minimum_notification_amount: Decimal = Decimal("100.00")

    def rate_for(self, loan_type: str) -> Decimal | None:
        return self.default_rates.get(loan_type)


# ---------------------------------------------------------------------------
# Cash
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashPolicy:
    cash_account_code: str = "1001"


# ---------------------------------------------------------------------------
# Dividends
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DividendPolicy:
    min_rate: Decimal = Decimal("0")
    max_rate: Decimal = Decimal("100")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MemberPolicy:
    min_member_age: int = 18
    member_number_prefix: str = "M"


# ---------------------------------------------------------------------------
# RBAC
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RbacConfig:
    role_permissions: dict[Role, frozenset[str]] = field(default_factory=dict)

    def permissions_for(self, role: Role) -> frozenset[str]:
        return self.role_permissions.get(role, frozenset())


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Complete ledger configuration."""

    config_id: str
    version: int
    loans: LoanPolicy
    cash: CashPolicy
    dividends: DividendPolicy
    members: MemberPolicy
    chart: ChartOfAccounts
    rbac: RbacConfig
    checksum: str = ""


__all__ = [
    "AccountDef",
    "CashPolicy",
    "ChartOfAccounts",
    "DividendPolicy",
    "LedgerConfig",
    "LoanPolicy",
    "MemberPolicy",
    "RbacConfig",
]
