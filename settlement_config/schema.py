"""
Configuration schema (``settlement_config.schema``).

Responsibility:
    Typed, frozen shapes for a parsed configuration set.  Values are kept
    as strings where the kernel expects ``Decimal`` so that YAML floats
    never leak into money arithmetic; the bridge converts them.

Architecture position:
    Config layer.  No dependency on ``settlement_kernel``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger knobs as written in YAML."""

    default_retainage_percent: str = "5"
    money_quantum: str = "0.01"
    percent_places: int = 2
    require_receipt_for_approval: bool = False
    reversal_category: str = "reversal"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class SettlementConfig:
    """
    A complete configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source
    document, so two sets with the same content share a checksum.
    """

    config_id: str
    version: int
    description: str = ""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
