"""
coop_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains policy:
    loan limits and default rates, penalty terms, the chart of accounts and
    the role -> permission map.  No other component reads configuration
    files or environment variables.

Architecture position:
    Configuration.  Sits beside ``coop_kernel`` (it uses kernel value types
    such as ``Role``) and below ``coop_modules``.  The kernel never imports
    from ``coop_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML path does not exist.
    - ``ValueError`` -- validation failure while parsing.

Audit relevance:
    Every successful load emits a ``coop_config_loaded`` log entry carrying
    the config id, version and checksum, tying each operation to the exact
    policy version that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from coop_config.loader import compute_checksum, load_config, load_yaml_file
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

_logger = logging.getLogger("coop_kernel.config")

CONFIG_ENV_VAR = "COOP_LEDGER_CONFIG"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """
    The ONLY public configuration entrypoint.

    Resolution order: explicit ``config_path``, then the
    ``COOP_LEDGER_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.

    Raises:
        FileNotFoundError: if the resolved file does not exist.
        ValueError: if the configuration fails validation.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(config_path)

    config = load_config(path)

    _logger.info(
        "coop_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "role_count": len(config.rbac.role_permissions),
        },
    )
    return config


__all__ = [
    "AccountDef",
    "CashPolicy",
    "ChartOfAccounts",
    "DividendPolicy",
    "LedgerConfig",
    "LoanPolicy",
    "MemberPolicy",
    "RbacConfig",
    "compute_checksum",
    "get_active_config",
    "load_yaml_file",
]
