"""Configuration module for CoverShelf."""

from .settings import (
    CoverFetchSettings,
    DatabaseSettings,
    ProviderResilienceSettings,
    ResilienceSettings,
    Settings,
    StorageSettings,
    get_settings,
)

__all__ = [
    "CoverFetchSettings",
    "DatabaseSettings",
    "ProviderResilienceSettings",
    "ResilienceSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]
