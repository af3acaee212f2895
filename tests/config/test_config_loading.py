"""
Tests for YAML configuration loading (``settlement_config``).

- Shipped sets load and translate into a LedgerPolicy.
- Unknown keys, float money values and missing identity keys are rejected.
- The checksum identifies the document, not the file.
- Loading emits a SETTLEMENT_CONFIG_TRACE entry.
"""

import logging
from decimal import Decimal

import pytest
import yaml

from settlement_config import (
    ConfigError,
    apply_logging_config,
    build_ledger_policy,
    get_active_config,
)
from settlement_config.loader import compute_checksum, parse_config
from settlement_kernel.logging_config import configure_logging, reset_logging


def _document(**ledger) -> dict:
    return {"config_id": "test", "version": 3, "ledger": ledger}


class TestShippedSets:

    def test_default_set(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.version == 1
        policy = build_ledger_policy(config)
        assert policy.default_retainage_percent == Decimal("5")
        assert policy.money_quantum == Decimal("0.01")
        assert policy.require_receipt_for_approval is False
        assert policy.reversal_category == "reversal"

    def test_strict_set(self):
        policy = build_ledger_policy(get_active_config("strict"))
        assert policy.default_retainage_percent == Decimal("10")
        assert policy.require_receipt_for_approval is True

    def test_missing_set_lists_available(self):
        with pytest.raises(FileNotFoundError) as exc_info:
            get_active_config("lenient")
        assert "default" in str(exc_info.value)
        assert "strict" in str(exc_info.value)

    def test_load_is_traced(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["logger"] == "settlement_kernel.config"
        assert traces[0]["config_id"] == "default"
        assert traces[0]["checksum"] == config.checksum


class TestValidation:

    def test_unknown_ledger_key_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config(_document(retainage="5"))
        assert "retainage" in str(exc_info.value)
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_unknown_root_key_rejected(self):
        doc = _document()
        doc["ledgr"] = {}
        with pytest.raises(ConfigError):
            parse_config(doc)

    def test_float_money_rejected(self):
        with pytest.raises(ConfigError):
            parse_config(_document(default_retainage_percent=5.5))

    @pytest.mark.parametrize("missing", ["config_id", "version"])
    def test_identity_keys_required(self, missing):
        doc = _document()
        del doc[missing]
        with pytest.raises(ConfigError):
            parse_config(doc)

    def test_out_of_range_retainage_rejected_at_load(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text(yaml.safe_dump(_document(default_retainage_percent="150")))
        with pytest.raises(ConfigError):
            get_active_config("broken", config_dir=tmp_path)

    def test_non_decimal_quantum_rejected(self):
        with pytest.raises(ConfigError):
            build_ledger_policy(parse_config(_document(money_quantum="a penny")))

    def test_top_level_list_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigError):
            get_active_config("list", config_dir=tmp_path)


class TestChecksum:

    def test_checksum_ignores_key_order(self):
        first = {"config_id": "a", "version": 1, "ledger": {"percent_places": 2, "money_quantum": "0.01"}}
        second = {"version": 1, "ledger": {"money_quantum": "0.01", "percent_places": 2}, "config_id": "a"}
        assert compute_checksum(first) == compute_checksum(second)

    def test_checksum_tracks_content(self):
        assert parse_config(_document(percent_places=2)).checksum != parse_config(_document(percent_places=3)).checksum


class TestLoggingBridge:

    @pytest.fixture
    def restore_logging(self):
        yield
        reset_logging()
        configure_logging(level=logging.DEBUG)

    def test_level_applied(self, restore_logging):
        reset_logging()
        config = parse_config({"config_id": "quiet", "version": 1, "logging": {"level": "error"}})
        apply_logging_config(config)
        assert logging.getLogger("settlement_kernel").level == logging.ERROR

    def test_unknown_level_rejected(self):
        config = parse_config({"config_id": "loud", "version": 1, "logging": {"level": "loud"}})
        with pytest.raises(ConfigError):
            apply_logging_config(config)
