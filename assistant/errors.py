# assistant/errors.py
"""
Error taxonomy shared by the catalog sync, the completion gateway and the
chat handler. Remote failures are converted into one of these kinds at the
component that made the call; nothing unclassified crosses a boundary.
"""

from __future__ import annotations

from typing import Optional


class AssistantError(Exception):
    """Base class for every classified failure."""


class ConfigurationMissing(AssistantError):
    """Provider credentials or domain are not configured."""


class ValidationError(AssistantError):
    """Inbound request is missing required fields or has invalid ones."""


class CatalogFetchError(AssistantError):
    """A catalog page request failed or returned an unusable payload."""


class ProviderError(AssistantError):
    """A completion backend call that did not yield a reply."""

    def __init__(self, backend: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{backend}: {reason}")
        self.backend = backend
        self.reason = reason
        self.status_code = status_code


class QuotaExhausted(ProviderError):
    """Backend-specific rate/usage limit; the next backend may still answer."""


class HardProviderFailure(ProviderError):
    """Auth error, malformed reply or any non-quota failure; stops fallback."""
