"""
Configuration Loader (``taxbook_config.loader``).

Responsibility
--------------
Loads the YAML fragments (settings, chart of accounts, tax rules) and
parses them into the frozen dataclasses of ``taxbook_config.schema``.
Runtime callers go through ``taxbook_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse failure surfaces as ``ConfigurationError`` naming the file
  and the problem; required keys have no silent defaults.
* Money and rates are parsed as Decimal from their string form.
* ``compute_checksum`` gives a deterministic SHA-256 over the raw
  fragments for change detection.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from taxbook_config.schema import (
    ChartAccountDef,
    GatewaySettings,
    LedgerSettings,
    TaxbookConfig,
    TaxRuleSet,
    VatRules,
)
from taxbook_engines.tax import (
    BracketSchedule,
    CorporateTaxRules,
    CreditRule,
    IncomeTaxRules,
    TaxBracket,
)
from taxbook_kernel.exceptions import ConfigurationError

SETTINGS_FILE = "settings.yaml"
CHART_FILE = "chart_of_accounts.yaml"
TAX_RULES_FILE = "tax_rules.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load one YAML file.

    Raises:
        ConfigurationError: file missing or not valid YAML.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(str(path), "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from None
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def parse_decimal(value: Any, source: str = "config") -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(source, f"not a decimal: {value!r}") from None


def _require(data: dict[str, Any], key: str, source: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(source, f"missing required key {key!r}")
    return data[key]


def _parse_month_day(value: Any, source: str) -> tuple[int, int]:
    try:
        month, day = (int(part) for part in str(value).split("-"))
    except ValueError:
        raise ConfigurationError(source, f"expected MM-DD, got {value!r}") from None
    return month, day


def parse_ledger_settings(data: dict[str, Any]) -> LedgerSettings:
    return LedgerSettings(
        currency=data.get("currency", "KRW"),
        balance_tolerance=parse_decimal(data.get("balance_tolerance", "0.01"), "ledger"),
        clearing_account_code=str(data.get("clearing_account_code", "1100")),
    )


def parse_gateway(data: dict[str, Any], name: str) -> GatewaySettings:
    source = f"gateways.{name}"
    return GatewaySettings(
        base_url=_require(data, "base_url", source),
        timeout_seconds=float(data.get("timeout_seconds", 30)),
    )


def parse_chart_account(data: dict[str, Any]) -> ChartAccountDef:
    return ChartAccountDef(
        code=str(_require(data, "code", CHART_FILE)),
        name=_require(data, "name", CHART_FILE),
        category=_require(data, "category", CHART_FILE),
        tax_category=data.get("tax_category"),
        tags=tuple(data.get("tags") or ()),
    )


def parse_bracket_schedule(items: list[dict[str, Any]]) -> BracketSchedule:
    try:
        return BracketSchedule(
            brackets=tuple(
                TaxBracket(
                    upper_bound=(
                        None
                        if item.get("upper_bound") is None
                        else parse_decimal(item["upper_bound"], TAX_RULES_FILE)
                    ),
                    rate=parse_decimal(_require(item, "rate", TAX_RULES_FILE), TAX_RULES_FILE),
                )
                for item in items
            )
        )
    except ValueError as exc:
        raise ConfigurationError(TAX_RULES_FILE, str(exc)) from None


def parse_rule_set(data: dict[str, Any]) -> TaxRuleSet:
    vat = _require(data, "vat", TAX_RULES_FILE)
    income = _require(data, "income_tax", TAX_RULES_FILE)
    corporate = _require(data, "corporate_tax", TAX_RULES_FILE)

    return TaxRuleSet(
        effective_year=int(_require(data, "effective_year", TAX_RULES_FILE)),
        vat=VatRules(
            rate=parse_decimal(_require(vat, "rate", TAX_RULES_FILE)),
            due_day_of_following_month=int(vat.get("due_day_of_following_month", 25)),
        ),
        income_tax=IncomeTaxRules(
            schedule=parse_bracket_schedule(_require(income, "brackets", TAX_RULES_FILE)),
            credit=CreditRule(
                rate=parse_decimal(_require(income, "credit_rate", TAX_RULES_FILE)),
                cap=parse_decimal(_require(income, "credit_cap", TAX_RULES_FILE)),
            ),
        ),
        corporate_tax=CorporateTaxRules(
            rate=parse_decimal(_require(corporate, "rate", TAX_RULES_FILE)),
            credit=CreditRule(
                rate=parse_decimal(_require(corporate, "credit_rate", TAX_RULES_FILE)),
                cap=parse_decimal(_require(corporate, "credit_cap", TAX_RULES_FILE)),
            ),
        ),
        income_tax_due=_parse_month_day(income.get("due_month_day", "05-31"), TAX_RULES_FILE),
        corporate_tax_due=_parse_month_day(
            corporate.get("due_month_day", "03-31"), TAX_RULES_FILE
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config(config_dir: Path) -> TaxbookConfig:
    """Load and parse the three fragments from ``config_dir``."""
    settings = load_yaml_file(config_dir / SETTINGS_FILE)
    chart = load_yaml_file(config_dir / CHART_FILE)
    rules = load_yaml_file(config_dir / TAX_RULES_FILE)

    gateways = _require(settings, "gateways", SETTINGS_FILE)
    rule_sets = tuple(
        parse_rule_set(item) for item in _require(rules, "rule_sets", TAX_RULES_FILE)
    )
    if not rule_sets:
        raise ConfigurationError(TAX_RULES_FILE, "at least one rule set is required")

    return TaxbookConfig(
        ledger=parse_ledger_settings(settings.get("ledger") or {}),
        ocr=parse_gateway(_require(gateways, "ocr", SETTINGS_FILE), "ocr"),
        classifier=parse_gateway(_require(gateways, "classifier", SETTINGS_FILE), "classifier"),
        tax_authority=parse_gateway(
            _require(gateways, "tax_authority", SETTINGS_FILE), "tax_authority"
        ),
        chart=tuple(
            parse_chart_account(item) for item in _require(chart, "accounts", CHART_FILE)
        ),
        rule_sets=rule_sets,
        checksum=compute_checksum({"settings": settings, "chart": chart, "rules": rules}),
        source_dir=str(config_dir),
    )
