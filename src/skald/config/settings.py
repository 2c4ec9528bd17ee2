"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with SKALD_ prefix
3. .env file (if SKALD_ENV_FILE points at one)

Nested config uses double underscore delimiter:
  SKALD_PROVIDERS__GITHUB__ENABLED=true
  SKALD_PROVIDERS__LOCAL__RESOURCES_PATH=/srv/resources

Configuration files are loaded by the embedding application and passed
in as constructor arguments.
"""

import logging as _logging
import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import skald.config.types as types
import skald.constants as _constants

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _get_env_file() -> str | None:
    """Return SKALD_ENV_FILE if it names an existing file."""
    if env_file := _os.environ.get("SKALD_ENV_FILE"):
        if _pathlib.Path(env_file).exists():
            return env_file
    return None


class Settings(_pydantic_settings.BaseSettings):
    """
    Skald configuration settings.

    All settings can be overridden via environment variables with SKALD_ prefix.
    For nested config, use double underscore: SKALD_PROVIDERS__LOCAL__PRIORITY=1
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="SKALD_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="allow",
    )

    scheme: str = _pydantic.Field(default=_constants.DEFAULT_URI_SCHEME, min_length=1)
    """URI scheme for resource URIs."""

    log_level: _typing.Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    """Level applied to the 'skald' logger by configure_logging()."""

    health_check_interval_ms: int = _pydantic.Field(
        default=_constants.DEFAULT_HEALTH_CHECK_INTERVAL_MS,
        ge=0,
    )
    """Minimum interval between health checks of the same provider."""

    content_cache_ttl_ms: int = _pydantic.Field(
        default=_constants.DEFAULT_CONTENT_CACHE_TTL_MS,
        ge=0,
    )
    """TTL of resolved URI content in the loader's cache."""

    content_cache_max_entries: int | None = _pydantic.Field(default=None, ge=1)
    """Optional bound on the loader's content cache."""

    providers: types.ProvidersConfig = _pydantic.Field(default_factory=types.ProvidersConfig)

    @_pydantic.field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: _typing.Any) -> _typing.Any:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings from environment variables only, without loading .env file.

        Useful for test isolation.
        """
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Top-level fields that were provided but not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def collect_all_extra_fields(self) -> dict[str, _typing.Any]:
        """Unknown fields at every level, keyed by dotted path."""
        result = self.get_extra_fields()
        result.update(self.providers.collect_all_extra_fields("providers"))
        return result

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary (credentials excluded)."""
        return self.model_dump(
            mode="json",
            exclude={"providers": {"catalog": {"auth"}, "github": {"auth"}, "local": {"auth"}}},
        )


def configure_logging(
    level: str | int = "WARNING",
    handler: _logging.Handler | None = None,
) -> _logging.Logger:
    """
    Configure the 'skald' logger.

    Installs one stream handler (or the given one) on first call; later
    calls only change the level.

    Args:
        level: Level name or number.
        handler: Optional handler to install instead of a stream handler.

    Returns:
        The configured 'skald' logger.
    """
    logger = _logging.getLogger("skald")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if handler is not None:
        handler.setFormatter(_logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    elif not logger.handlers:
        stream = _logging.StreamHandler()
        stream.setFormatter(_logging.Formatter(LOG_FORMAT))
        logger.addHandler(stream)
    return logger
