"""
Configuration loader (``coop_config.loader``).

Responsibility
--------------
Loads the ledger YAML document and parses it into the frozen dataclasses of
``coop_config.schema``.  Runtime callers go through
``coop_config.get_active_config()``; this module is the parsing layer
beneath it.

Invariants enforced
-------------------
* Money and rate values are parsed to ``Decimal`` from their string form;
  YAML floats are refused.
* Every parsed object is a frozen dataclass.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (unknown role, bad term range, float amount)  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from coop_config.schema import (
    AccountDef,
    CashPolicy,
    ChartOfAccounts,
    DividendPolicy,
    LedgerConfig,
    LoanPolicy,
    MemberPolicy,
    RbacConfig,
)
from coop_kernel.domain.identity import Role, parse_role
from coop_kernel.domain.lifecycle import LoanStatus, LoanType
from coop_kernel.utils.serialization import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Parse a Decimal from a YAML scalar.

    Strings and ints are accepted.  Floats are refused because YAML
    ``0.1`` is already a binary approximation by the time it reaches us.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(
            f"{field_name}: quote decimal values in YAML (got {value!r})"
        )
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field_name}: not a decimal: {value!r}") from None


def parse_loan_policy(data: dict[str, Any]) -> LoanPolicy:
    default_rates: dict[str, Decimal] = {}
    for loan_type, rate in (data.get("default_rates") or {}).items():
        LoanType(loan_type)
        default_rates[loan_type] = parse_decimal(rate, f"default_rates.{loan_type}")

    close_statuses = tuple(
        LoanStatus(s).value for s in data.get("close_statuses", ("ACTIVE", "DEFAULTED"))
    )

    policy = LoanPolicy(
        min_term_months=int(data.get("min_term_months", 1)),
        max_term_months=int(data.get("max_term_months", 120)),
        max_guarantors=int(data.get("max_guarantors", 2)),
        max_active_guarantees=int(data.get("max_active_guarantees", 3)),
        default_rates=default_rates,
        penalty_rate_per_month=parse_decimal(
            data.get("penalty_rate_per_month", "0.01"), "penalty_rate_per_month"
        ),
        penalty_days_per_month=int(data.get("penalty_days_per_month", 30)),
        day_count_basis=int(data.get("day_count_basis", 365)),
        close_statuses=close_statuses,
        void_window_days=int(data.get("void_window_days", 1)),
        minimum_notification_amount=parse_decimal(
            data.get("minimum_notification_amount", "100.00"),
            "minimum_notification_amount",
        ),
    )
    if policy.min_term_months < 1 or policy.max_term_months < policy.min_term_months:
        raise ValueError(
            f"Invalid term range {policy.min_term_months}..{policy.max_term_months}"
        )
    if policy.day_count_basis <= 0 or policy.penalty_days_per_month <= 0:
        raise ValueError("day_count_basis and penalty_days_per_month must be positive")
    return policy


def parse_cash_policy(data: dict[str, Any]) -> CashPolicy:
    return CashPolicy(cash_account_code=str(data.get("cash_account_code", "1001")))


def parse_dividend_policy(data: dict[str, Any]) -> DividendPolicy:
    policy = DividendPolicy(
        min_rate=parse_decimal(data.get("min_rate", "0"), "dividends.min_rate"),
        max_rate=parse_decimal(data.get("max_rate", "100"), "dividends.max_rate"),
    )
    if policy.max_rate < policy.min_rate:
        raise ValueError("dividends.max_rate is below min_rate")
    return policy


def parse_member_policy(data: dict[str, Any]) -> MemberPolicy:
    return MemberPolicy(
        min_member_age=int(data.get("min_member_age", 18)),
        member_number_prefix=str(data.get("member_number_prefix", "M")),
    )


def _parse_account(data: dict[str, Any]) -> AccountDef:
    return AccountDef(code=str(data["code"]), name=str(data["name"]))


def parse_chart(data: dict[str, Any]) -> ChartOfAccounts:
    return ChartOfAccounts(
        cash=_parse_account(data["cash"]),
        loan_receivable=_parse_account(data["loan_receivable"]),
        member_savings=_parse_account(data["member_savings"]),
        share_capital=_parse_account(data["share_capital"]),
        dividends=_parse_account(data["dividends"]),
        interest_income=_parse_account(data["interest_income"]),
        penalty_income=_parse_account(data["penalty_income"]),
        cash_over_short=_parse_account(data["cash_over_short"]),
        bad_debt_expense=_parse_account(data["bad_debt_expense"]),
    )


def parse_rbac(data: dict[str, Any]) -> RbacConfig:
    role_permissions: dict[Role, frozenset[str]] = {}
    for role_name, permissions in data.items():
        role = parse_role(role_name)
        role_permissions[role] = frozenset(str(p) for p in (permissions or ()))
    return RbacConfig(role_permissions=role_permissions)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the raw configuration."""
    return hash_payload(data)


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse the full YAML document into a ``LedgerConfig``."""
    chart = parse_chart(data["chart_of_accounts"])
    cash = parse_cash_policy(data.get("cash") or {})
    if cash.cash_account_code != chart.cash.code:
        raise ValueError(
            f"cash.cash_account_code {cash.cash_account_code} does not match "
            f"chart_of_accounts.cash {chart.cash.code}"
        )
    return LedgerConfig(
        config_id=str(data.get("config_id", "coop-ledger")),
        version=int(data.get("version", 1)),
        loans=parse_loan_policy(data.get("loans") or {}),
        cash=cash,
        dividends=parse_dividend_policy(data.get("dividends") or {}),
        members=parse_member_policy(data.get("members") or {}),
        chart=chart,
        rbac=parse_rbac(data.get("rbac") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> LedgerConfig:
    return parse_ledger_config(load_yaml_file(path))
