"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package
    sits above ``settlement_kernel``.  The kernel MUST NEVER import from
    ``settlement_config``; ``bridges`` translates a loaded config into
    kernel inputs (``LedgerPolicy``, logging level).

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic identity: the same YAML document always produces the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SETTLEMENT_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying ledger behaviour to the exact configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from settlement_config.bridges import apply_logging_config, build_ledger_policy
from settlement_config.loader import ConfigError, load_config_file
from settlement_config.schema import LedgerConfig, LoggingConfig, SettlementConfig

_logger = logging.getLogger("settlement_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_NAME = "default"


def get_active_config(
    name: str = DEFAULT_CONFIG_NAME,
    config_dir: Path | None = None,
) -> SettlementConfig:
    """
    Load and validate the configuration set ``<config_dir>/<name>.yaml``.

    Args:
        name: Configuration set name (file stem).
        config_dir: Override path to the sets directory.
            Defaults to settlement_config/sets/.

    Raises:
        FileNotFoundError: If no such configuration set exists.
        ConfigError: If the document is structurally invalid.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        available = sorted(p.stem for p in sets_dir.glob("*.yaml"))
        raise FileNotFoundError(
            f"No configuration set '{name}' in {sets_dir} (available: {available})"
        )

    config = load_config_file(path)
    # Fail at load time rather than at first use.
    build_ledger_policy(config)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "LedgerConfig",
    "LoggingConfig",
    "SettlementConfig",
    "apply_logging_config",
    "build_ledger_policy",
    "get_active_config",
]
