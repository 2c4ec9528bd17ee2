"""
Shared constants for Skald.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# URI defaults
DEFAULT_URI_SCHEME = "skald"
"""Scheme used for static and dynamic resource URIs."""

# Search defaults
DEFAULT_MAX_RESULTS = 20
"""Default maximum number of search results."""

DEFAULT_MIN_SCORE = 0
"""Default minimum relevance score for search results."""

MAX_SCORE = 100
"""Upper bound of the relevance score scale."""

# Dynamic URI defaults
DEFAULT_MATCH_MAX_TOKENS = 3000
"""Default token budget for dynamic (match) URIs."""

DEFAULT_MATCH_MAX_RESULTS = 15
"""Default result limit for dynamic (match) URIs."""

DEFAULT_MATCH_MIN_SCORE = 10
"""Default minimum score for dynamic (match) URIs."""

# Token estimation
CHARS_PER_TOKEN = 4
"""Rough characters-per-token ratio used when a document declares no size."""

# Provider defaults
LOCAL_PROVIDER_PRIORITY = 0
"""Local filesystem provider is always consulted first."""

DEFAULT_REMOTE_PRIORITY = 10
"""Default priority for remote providers (lower = consulted first)."""

DEFAULT_TIMEOUT_MS = 30_000
"""Default per-call timeout for providers (30 seconds)."""

DEFAULT_CACHE_TTL_MS = 24 * 60 * 60 * 1000
"""Default cache TTL for remote indexes and content (24 hours)."""

DEFAULT_CONTENT_CACHE_TTL_MS = 4 * 60 * 60 * 1000
"""Default TTL for resolved URI content in the loader (4 hours)."""

DEFAULT_RATE_LIMIT_PER_MINUTE = 60
"""Default client-side rate limit (requests per minute)."""

DEFAULT_RATE_LIMIT_PER_HOUR = 1000
"""Default client-side rate limit (requests per hour)."""

DEFAULT_RETRY_ATTEMPTS = 3
"""Default retry attempts for remote requests."""

DEFAULT_RETRY_BACKOFF_MS = 1000
"""Base delay for exponential retry backoff."""

MAX_RETRY_BACKOFF_MS = 60_000
"""Upper bound for a single retry delay."""

DEFAULT_HEALTH_CHECK_INTERVAL_MS = 60_000
"""Minimum interval between two health checks of the same provider."""

USER_AGENT = "skald/0.1"
"""User-Agent header sent by remote providers."""
