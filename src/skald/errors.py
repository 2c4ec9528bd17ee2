"""
Error types for Skald.

ParseError is a diagnostic: it describes a degraded document and is
returned alongside the parsed fragment rather than raised out of the index.
Provider errors carry the provider name so the registry can attribute them.
"""

from __future__ import annotations


class SkaldError(Exception):
    """Base class for all Skald errors."""


class ParseError(SkaldError):
    """A document's metadata block could not be parsed."""

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")


class InvalidURIError(SkaldError):
    """A resource URI is malformed."""

    def __init__(self, uri: str, reason: str) -> None:
        self.uri = uri
        self.reason = reason
        super().__init__(f"Invalid resource URI {uri!r}: {reason}")


class ProviderError(SkaldError):
    """Base error for provider operations."""

    def __init__(self, message: str, provider: str) -> None:
        self.provider = provider
        super().__init__(message)


class NotFoundError(ProviderError):
    """The requested resource does not exist."""

    def __init__(self, provider: str, uri: str) -> None:
        self.uri = uri
        super().__init__(f"Resource {uri} not found in provider {provider}", provider)


class ProviderTimeoutError(ProviderError):
    """A provider call exceeded its deadline."""

    def __init__(self, provider: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Provider {provider} request timed out after {timeout_ms}ms", provider
        )


class ProviderUnavailableError(ProviderError):
    """A provider is unreachable, disabled, or unknown."""

    def __init__(self, provider: str, reason: str | None = None) -> None:
        self.reason = reason
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Provider {provider} is unavailable{suffix}", provider)


class RateLimitExceededError(ProviderError):
    """The provider's rate limit (client or server side) is exhausted."""

    def __init__(self, provider: str, retry_after_ms: int | None = None) -> None:
        self.retry_after_ms = retry_after_ms
        suffix = f", retry after {retry_after_ms}ms" if retry_after_ms else ""
        super().__init__(f"Rate limit exceeded for provider {provider}{suffix}", provider)
