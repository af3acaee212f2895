"""
Ledger policy (``settlement_kernel.domain.policy``).

Frozen value object carrying the configurable knobs the kernel honours.
It is produced from YAML by ``settlement_config.bridges`` -- the kernel
never reads configuration itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from settlement_kernel.domain.values import CENT


@dataclass(frozen=True)
class LedgerPolicy:
    """Configurable ledger behaviour. Invariants are not configurable."""

    default_retainage_percent: Decimal = Decimal("5")
    money_quantum: Decimal = CENT
    percent_places: int = 2
    require_receipt_for_approval: bool = False
    reversal_category: str = "reversal"

    def __post_init__(self) -> None:
        if not (Decimal("0") <= self.default_retainage_percent <= Decimal("100")):
            raise ValueError(
                f"default_retainage_percent must be within 0..100, "
                f"got {self.default_retainage_percent}"
            )
        if self.money_quantum <= 0:
            raise ValueError("money_quantum must be positive")
        if self.percent_places < 0:
            raise ValueError("percent_places must not be negative")


DEFAULT_LEDGER_POLICY = LedgerPolicy()
