"""
taxbook_config -- the runtime entrypoint for configuration.

Callers obtain settings, the standard chart and tax rule sets through
``get_active_config()``.  The directory is, in order of precedence, the
``config_dir`` argument, the ``TAXBOOK_CONFIG_DIR`` environment variable,
or the defaults packaged with this module.

Every load emits a CONFIG_TRACE log record with the source directory and
checksum, tying computed tax figures to the exact parameters used.
"""

from __future__ import annotations

import os
from pathlib import Path

from taxbook_config.loader import compute_checksum, load_config
from taxbook_config.schema import (
    ChartAccountDef,
    GatewaySettings,
    LedgerSettings,
    TaxbookConfig,
    TaxRuleSet,
    VatRules,
)
from taxbook_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_DIR = Path(__file__).parent / "defaults"
CONFIG_DIR_ENV = "TAXBOOK_CONFIG_DIR"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return DEFAULT_CONFIG_DIR


def get_active_config(config_dir: Path | str | None = None) -> TaxbookConfig:
    """
    Load the active configuration.

    Raises:
        ConfigurationError: a fragment is missing or malformed.
    """
    directory = resolve_config_dir(config_dir)
    config = load_config(directory)
    _logger.info(
        "CONFIG_TRACE",
        extra={
            "config_dir": str(directory),
            "checksum": config.checksum,
            "chart_accounts": len(config.chart),
            "rule_sets": [r.effective_year for r in config.rule_sets],
        },
    )
    return config


__all__ = [
    "CONFIG_DIR_ENV",
    "DEFAULT_CONFIG_DIR",
    "ChartAccountDef",
    "GatewaySettings",
    "LedgerSettings",
    "TaxRuleSet",
    "TaxbookConfig",
    "VatRules",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "resolve_config_dir",
]
