"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Reads one YAML configuration set and parses it into the frozen
dataclasses of ``settlement_config.schema``.  Callers should go through
``settlement_config.get_active_config()``; the loader is exposed for
tests and tooling.

Invariants enforced
-------------------
* Only ``yaml.safe_load`` is used.
* Unknown keys are rejected, so a typo never silently falls back to a
  default.
* Money-valued fields must be written as strings or integers; a YAML
  float is rejected.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structural problems  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import LedgerConfig, LoggingConfig, SettlementConfig


class ConfigError(ValueError):
    """A configuration document is structurally invalid."""

    code: str = "CONFIG_INVALID"

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _check_keys(source: str, section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(source, f"unknown key(s) in '{section}': {', '.join(unknown)}")


def _decimal_text(source: str, key: str, value: Any) -> str:
    # bool is an int subclass; reject it along with floats.
    if isinstance(value, bool) or isinstance(value, float):
        raise ConfigError(source, f"'{key}' must be quoted or an integer, got {value!r}")
    if isinstance(value, (int, str)):
        return str(value)
    raise ConfigError(source, f"'{key}' has unsupported type {type(value).__name__}")


def parse_ledger(source: str, data: dict[str, Any]) -> LedgerConfig:
    _check_keys(source, "ledger", data, {f.name for f in fields(LedgerConfig)})
    defaults = LedgerConfig()
    return LedgerConfig(
        default_retainage_percent=_decimal_text(
            source,
            "default_retainage_percent",
            data.get("default_retainage_percent", defaults.default_retainage_percent),
        ),
        money_quantum=_decimal_text(
            source, "money_quantum", data.get("money_quantum", defaults.money_quantum),
        ),
        percent_places=int(data.get("percent_places", defaults.percent_places)),
        require_receipt_for_approval=bool(
            data.get("require_receipt_for_approval", defaults.require_receipt_for_approval)
        ),
        reversal_category=str(data.get("reversal_category", defaults.reversal_category)),
    )


def parse_logging(source: str, data: dict[str, Any]) -> LoggingConfig:
    _check_keys(source, "logging", data, {f.name for f in fields(LoggingConfig)})
    return LoggingConfig(
        level=str(data.get("level", "INFO")).upper(),
    )


def parse_config(data: dict[str, Any], source: str = "<memory>") -> SettlementConfig:
    """
    Build a ``SettlementConfig`` from an already-loaded document.

    Raises:
        ConfigError: missing ``config_id``/``version`` or unknown keys.
    """
    _check_keys(source, "<root>", data, {"config_id", "version", "description", "ledger", "logging"})
    if "config_id" not in data:
        raise ConfigError(source, "missing required key 'config_id'")
    if "version" not in data:
        raise ConfigError(source, "missing required key 'version'")

    return SettlementConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        description=str(data.get("description", "")),
        ledger=parse_ledger(source, data.get("ledger") or {}),
        logging=parse_logging(source, data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> SettlementConfig:
    return parse_config(load_yaml_file(path), source=str(path))
