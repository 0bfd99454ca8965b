"""Security helpers."""

from .url_safety import DEFAULT_ALLOWED_HOSTS, UrlSafetyValidator

__all__ = ["DEFAULT_ALLOWED_HOSTS", "UrlSafetyValidator"]
