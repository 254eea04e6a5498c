"""
Tests for configuration loading.

Covers:
- Packaged defaults parse into the schema dataclasses
- TAXBOOK_CONFIG_DIR override
- Rule set selection by tax year
- ConfigurationError on missing files, bad YAML and bad values
- Deterministic checksums
"""

import shutil
from datetime import date
from decimal import Decimal

import pytest

from taxbook_config import (
    CONFIG_DIR_ENV,
    DEFAULT_CONFIG_DIR,
    compute_checksum,
    get_active_config,
    load_config,
    resolve_config_dir,
)
from taxbook_config.loader import CHART_FILE, SETTINGS_FILE, TAX_RULES_FILE
from taxbook_kernel.exceptions import ConfigurationError


@pytest.fixture
def config_copy(tmp_path):
    """A writable copy of the packaged defaults."""
    target = tmp_path / "config"
    shutil.copytree(DEFAULT_CONFIG_DIR, target)
    return target


class TestDefaults:

    def test_ledger_settings(self, config):
        assert config.ledger.currency == "KRW"
        assert config.ledger.balance_tolerance == Decimal("0.01")
        assert config.ledger.clearing_account_code == "1100"

    def test_gateways(self, config):
        assert config.ocr.base_url.startswith("http")
        assert config.classifier.timeout_seconds == 15.0
        assert config.tax_authority.timeout_seconds == 30.0

    def test_chart_contains_receipt_accounts(self, config):
        codes = {a.code for a in config.chart}
        assert {"1100", "5210", "5220", "5290"} <= codes

    def test_chart_tags_parsed(self, config):
        by_code = {a.code: a for a in config.chart}
        assert by_code["1300"].tags == ("withholding_prepaid",)
        assert by_code["5210"].tax_category == "공제"
        assert by_code["4900"].tags == ("non_operating",)

    def test_rule_set_parsed(self, config):
        rules = config.rules_for(2024)
        assert rules.vat.rate == Decimal("0.10")
        assert rules.income_tax.credit.cap == Decimal("1000000")
        assert rules.corporate_tax.rate == Decimal("0.25")
        assert rules.income_tax.schedule.brackets[-1].upper_bound is None

    def test_due_dates(self, config):
        rules = config.rules_for(2024)
        assert rules.vat_due_date(2024, 6) == date(2024, 7, 25)
        assert rules.vat_due_date(2024, 12) == date(2025, 1, 25)
        assert rules.annual_due_date(2024, corporate=False) == date(2025, 5, 31)
        assert rules.annual_due_date(2024, corporate=True) == date(2025, 3, 31)

    def test_checksum_recorded(self, config):
        assert len(config.checksum) == 64
        assert config.source_dir == str(DEFAULT_CONFIG_DIR)


class TestRuleSelection:

    def test_later_year_inherits_latest_rule_set(self, config):
        assert config.rules_for(2031).effective_year == 2023

    def test_year_before_any_rule_set(self, config):
        with pytest.raises(ConfigurationError, match="2019"):
            config.rules_for(2019)

    def test_most_recent_rule_set_wins(self, config_copy):
        rules_path = config_copy / TAX_RULES_FILE
        text = rules_path.read_text(encoding="utf-8")
        later = text.split("rule_sets:\n", 1)[1].replace(
            "effective_year: 2023", "effective_year: 2025"
        ).replace('rate: "0.10"', 'rate: "0.12"', 1)
        rules_path.write_text(text + later, encoding="utf-8")

        cfg = load_config(config_copy)
        assert cfg.rules_for(2024).vat.rate == Decimal("0.10")
        assert cfg.rules_for(2025).vat.rate == Decimal("0.12")
        assert cfg.rules_for(2026).effective_year == 2025


class TestConfigDirectory:

    def test_default_directory(self, monkeypatch):
        monkeypatch.delenv(CONFIG_DIR_ENV, raising=False)
        assert resolve_config_dir() == DEFAULT_CONFIG_DIR

    def test_environment_override(self, monkeypatch, config_copy):
        monkeypatch.setenv(CONFIG_DIR_ENV, str(config_copy))
        assert resolve_config_dir() == config_copy
        assert get_active_config().source_dir == str(config_copy)

    def test_explicit_argument_beats_environment(self, monkeypatch, config_copy, tmp_path):
        monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "elsewhere"))
        assert resolve_config_dir(config_copy) == config_copy

    def test_config_trace_logged(self, captured_logs):
        cfg = get_active_config(DEFAULT_CONFIG_DIR)
        traces = [r for r in captured_logs() if r["message"] == "CONFIG_TRACE"]
        assert traces[-1]["checksum"] == cfg.checksum
        assert traces[-1]["rule_sets"] == [2023]


class TestLoaderErrors:

    def test_missing_file(self, config_copy):
        (config_copy / CHART_FILE).unlink()
        with pytest.raises(ConfigurationError, match="file not found"):
            load_config(config_copy)

    def test_invalid_yaml(self, config_copy):
        (config_copy / SETTINGS_FILE).write_text("ledger: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_config(config_copy)

    def test_top_level_not_mapping(self, config_copy):
        (config_copy / CHART_FILE).write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(config_copy)

    def test_missing_gateway(self, config_copy):
        (config_copy / SETTINGS_FILE).write_text(
            "gateways:\n  ocr:\n    base_url: http://ocr\n", encoding="utf-8"
        )
        with pytest.raises(ConfigurationError, match="classifier"):
            load_config(config_copy)

    def test_bad_decimal(self, config_copy):
        rules_path = config_copy / TAX_RULES_FILE
        rules_path.write_text(
            rules_path.read_text(encoding="utf-8").replace('rate: "0.25"', 'rate: "abc"'),
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="not a decimal"):
            load_config(config_copy)

    def test_bad_bracket_ladder(self, config_copy):
        rules_path = config_copy / TAX_RULES_FILE
        rules_path.write_text(
            rules_path.read_text(encoding="utf-8").replace(
                '{upper_bound: null, rate: "0.42"}', '{upper_bound: "900000000", rate: "0.42"}'
            ),
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="open-ended"):
            load_config(config_copy)

    def test_no_rule_sets(self, config_copy):
        (config_copy / TAX_RULES_FILE).write_text("rule_sets: []\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="at least one"):
            load_config(config_copy)


class TestChecksum:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_value_change_changes_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_same_directory_same_checksum(self, config_copy):
        assert load_config(config_copy).checksum == load_config(config_copy).checksum
