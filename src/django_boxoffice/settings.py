"""Typed configuration for django-boxoffice.

Reads a single ``BOXOFFICE`` dict from Django settings and exposes it as
composed, frozen dataclasses with sensible defaults.

Usage::

    from django_boxoffice.settings import get_config

    config = get_config()
    config.stripe.secret_key
    config.email.from_email
    config.currency
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field

from django.conf import settings
from django.test.signals import setting_changed


@dataclass(frozen=True, slots=True)
class StripeConfig:
    """Stripe payment gateway configuration."""

    secret_key: str | None = None
    publishable_key: str | None = None
    webhook_secret: str | None = None
    api_version: str = "2024-12-18"
    webhook_tolerance: int = 300


@dataclass(frozen=True, slots=True)
class EmailConfig:
    """Order confirmation email settings."""

    from_email: str | None = None
    subject_prefix: str = "Order confirmed"


@dataclass(frozen=True, slots=True)
class FeaturesConfig:
    """Feature toggles for the public, scanner, and staff surfaces.

    All features are enabled by default. Set to ``False`` in
    ``BOXOFFICE['features']`` to disable.
    """

    storefront_enabled: bool = True
    scanner_enabled: bool = True
    admin_api_enabled: bool = True


@dataclass(frozen=True, slots=True)
class BoxOfficeConfig:
    """Top-level django-boxoffice configuration."""

    stripe: StripeConfig = field(default_factory=StripeConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    currency: str = "RON"
    currency_symbol: str = "lei"
    default_series_prefix: str = "GEN"
    redemption_code_length: int = 20
    redemption_code_attempts: int = 5
    lock_timeout_ms: int = 5000
    max_tickets_per_order: int = 20
    site_url: str = "http://localhost:8000"
    operator_token: str | None = None
    resend_on_already_paid: bool = False


@functools.lru_cache(maxsize=1)
def get_config() -> BoxOfficeConfig:
    """Build and return the box office configuration.

    Reads ``settings.BOXOFFICE`` (a plain dict) and returns a frozen
    :class:`BoxOfficeConfig`.  The result is cached; the cache is cleared
    automatically when Django's ``setting_changed`` signal fires (e.g. inside
    ``override_settings``).
    """
    raw = getattr(settings, "BOXOFFICE", {})
    if not isinstance(raw, Mapping):
        msg = "BOXOFFICE must be a mapping (dict-like object)"
        raise TypeError(msg)
    raw_data = dict(raw)

    stripe_data = raw_data.pop("stripe", {})
    email_data = raw_data.pop("email", {})
    features_data = raw_data.pop("features", {})
    for name, value in (("stripe", stripe_data), ("email", email_data), ("features", features_data)):
        if not isinstance(value, Mapping):
            msg = f"BOXOFFICE['{name}'] must be a mapping (dict-like object)"
            raise TypeError(msg)

    config = BoxOfficeConfig(
        stripe=StripeConfig(**dict(stripe_data)),
        email=EmailConfig(**dict(email_data)),
        features=FeaturesConfig(**dict(features_data)),
        **raw_data,
    )
    _validate_config(config)
    return config


def _validate_config(config: BoxOfficeConfig) -> None:
    """Validate high-impact configuration values with clear error messages."""
    if not isinstance(config.currency, str) or not config.currency.strip():
        msg = "BOXOFFICE['currency'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.currency_symbol, str) or not config.currency_symbol.strip():
        msg = "BOXOFFICE['currency_symbol'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.default_series_prefix, str) or not config.default_series_prefix.strip():
        msg = "BOXOFFICE['default_series_prefix'] must be a non-empty string"
        raise ValueError(msg)
    # 16 characters from a 32-symbol alphabet is 80 bits of entropy.
    if not isinstance(config.redemption_code_length, int) or config.redemption_code_length < 16:
        msg = "BOXOFFICE['redemption_code_length'] must be an integer of at least 16"
        raise ValueError(msg)
    if not isinstance(config.redemption_code_attempts, int) or config.redemption_code_attempts <= 0:
        msg = "BOXOFFICE['redemption_code_attempts'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.lock_timeout_ms, int) or config.lock_timeout_ms < 0:
        msg = "BOXOFFICE['lock_timeout_ms'] must be a non-negative integer"
        raise ValueError(msg)
    if not isinstance(config.max_tickets_per_order, int) or config.max_tickets_per_order <= 0:
        msg = "BOXOFFICE['max_tickets_per_order'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.site_url, str) or not config.site_url.startswith(("http://", "https://")):
        msg = "BOXOFFICE['site_url'] must be an absolute http(s) URL"
        raise ValueError(msg)
    if not isinstance(config.resend_on_already_paid, bool):
        msg = "BOXOFFICE['resend_on_already_paid'] must be a boolean"
        raise TypeError(msg)


def _clear_config_cache(*, setting: str, **kwargs: object) -> None:  # noqa: ARG001
    """Clear the cached config when Django settings change during tests."""
    if setting == "BOXOFFICE":
        get_config.cache_clear()


setting_changed.connect(_clear_config_cache, dispatch_uid="django_boxoffice.settings.clear_config_cache")
