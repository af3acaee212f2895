"""
Config -> kernel bridges (``settlement_config.bridges``).

The kernel never imports this package.  These functions translate a
parsed ``SettlementConfig`` into the value objects the kernel accepts.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from settlement_config.loader import ConfigError
from settlement_config.schema import SettlementConfig
from settlement_kernel.domain.policy import LedgerPolicy
from settlement_kernel.logging_config import configure_logging


def build_ledger_policy(config: SettlementConfig) -> LedgerPolicy:
    """
    Translate the ``ledger`` section into a ``LedgerPolicy``.

    Raises:
        ConfigError: a numeric field does not parse, or the policy
            rejects the value (e.g. retainage outside 0..100).
    """
    ledger = config.ledger
    try:
        return LedgerPolicy(
            default_retainage_percent=Decimal(ledger.default_retainage_percent),
            money_quantum=Decimal(ledger.money_quantum),
            percent_places=ledger.percent_places,
            require_receipt_for_approval=ledger.require_receipt_for_approval,
            reversal_category=ledger.reversal_category,
        )
    except InvalidOperation as exc:
        raise ConfigError(config.config_id, f"ledger value is not a decimal: {exc}") from exc
    except ValueError as exc:
        raise ConfigError(config.config_id, str(exc)) from exc


def apply_logging_config(config: SettlementConfig) -> None:
    """Configure the kernel's structured logging at the configured level."""
    level = logging.getLevelName(config.logging.level)
    if not isinstance(level, int):
        raise ConfigError(config.config_id, f"unknown logging level {config.logging.level!r}")
    configure_logging(level=level)
