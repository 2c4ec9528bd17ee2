"""
Skald - federated resource catalog

Indexes agent, skill, workflow and example documents from local disk and
remote providers, and serves them by stable URI or by fuzzy query within
a token budget.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("skald")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)

from skald.config import Settings  # noqa: E402
from skald.loader import ResourceLoader  # noqa: E402

__all__ = ["__version__", "__version_info__", "Settings", "ResourceLoader"]
