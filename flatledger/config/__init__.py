"""Configuration package."""

from flatledger.config.settings import (
    AppSettings,
    ReconciliationSettings,
    Settings,
    SourceSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ReconciliationSettings",
    "Settings",
    "SourceSettings",
    "get_settings",
    "validate_all_settings",
]
