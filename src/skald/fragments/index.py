"""
Resource index building.

The index builder walks a resource root, parses every markdown document
and returns an immutable ResourceIndex. Layout:

    <root>/
        agents/...
        skills/...
        workflows/...
        examples/...

The top-level directory selects the default category of every document
below it; documents directly under the root, or under unknown directories,
default to 'skill' unless their metadata says otherwise.
"""

from __future__ import annotations

import asyncio as _asyncio
import collections as _collections
import dataclasses as _dataclasses
import logging as _logging
import pathlib as _pathlib
import time as _time
import typing as _typing

import skald.constants as _constants
import skald.errors as errors
import skald.fragments.fragment as fragment_module

_logger = _logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".md"


@_dataclasses.dataclass(frozen=True)
class ResourceIndex:
    """
    Ordered, immutable set of fragments produced by one provider.

    Fragment URIs are unique within an index.
    """

    provider: str
    fragments: tuple[fragment_module.ResourceFragment, ...] = ()
    built_at: float = 0.0
    """Wall-clock time (epoch seconds) the index was built."""

    diagnostics: tuple[errors.SkaldError, ...] = ()
    """Non-fatal problems found while building (parse errors, duplicates)."""

    def __len__(self) -> int:
        return len(self.fragments)

    def __iter__(self) -> _typing.Iterator[fragment_module.ResourceFragment]:
        return iter(self.fragments)

    def by_uri(self, uri: str) -> fragment_module.ResourceFragment | None:
        """Look up a fragment by URI."""
        for frag in self.fragments:
            if frag.uri == uri:
                return frag
        return None

    def find(
        self,
        category: fragment_module.Category,
        identifier: str,
    ) -> fragment_module.ResourceFragment | None:
        """Look up a fragment by category and identifier."""
        for frag in self.fragments:
            if frag.category is category and frag.id == identifier:
                return frag
        return None

    def by_category(
        self,
        category: fragment_module.Category,
    ) -> list[fragment_module.ResourceFragment]:
        """All fragments of one category, in index order."""
        return [f for f in self.fragments if f.category is category]

    def category_counts(self) -> dict[fragment_module.Category, int]:
        """Number of fragments per category (every category present)."""
        counts = {category: 0 for category in fragment_module.Category}
        for frag in self.fragments:
            counts[frag.category] += 1
        return counts

    def top_tags(self, n: int = 10) -> list[tuple[str, int]]:
        """
        Most common tags across the index.

        Ties are broken alphabetically so the result is deterministic.
        """
        counter: _collections.Counter[str] = _collections.Counter()
        for frag in self.fragments:
            counter.update(frag.tags)
        ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
        return ordered[:n]


def make_index(
    provider: str,
    fragments: _typing.Iterable[fragment_module.ResourceFragment],
    diagnostics: _typing.Iterable[errors.SkaldError] = (),
    built_at: float | None = None,
) -> ResourceIndex:
    """
    Build a ResourceIndex, enforcing URI uniqueness.

    The first fragment seen for a URI wins; later duplicates are dropped
    and reported as diagnostics.
    """
    seen: set[str] = set()
    kept: list[fragment_module.ResourceFragment] = []
    problems: list[errors.SkaldError] = list(diagnostics)

    for frag in fragments:
        if frag.uri in seen:
            problems.append(
                errors.ParseError(
                    f"duplicate resource URI {frag.uri}, keeping first occurrence",
                    source=frag.source_path,
                )
            )
            continue
        seen.add(frag.uri)
        kept.append(frag)

    return ResourceIndex(
        provider=provider,
        fragments=tuple(kept),
        built_at=_time.time() if built_at is None else built_at,
        diagnostics=tuple(problems),
    )


class IndexBuilder:
    """
    Builds and memoizes the ResourceIndex for a directory tree.

    Concurrent callers of load() share a single in-flight build. A completed
    index is served from memory until invalidate() is called. A failed build
    is not cached; the next call retries.
    """

    def __init__(
        self,
        root: _pathlib.Path,
        provider: str = "local",
        scheme: str = _constants.DEFAULT_URI_SCHEME,
    ) -> None:
        """
        Initialize the builder.

        Args:
            root: Resource root directory.
            provider: Provider name recorded on the index.
            scheme: URI scheme for fragment URIs.
        """
        self.root = _pathlib.Path(root)
        self.provider = provider
        self.scheme = scheme
        self._index: ResourceIndex | None = None
        self._pending: _asyncio.Task[ResourceIndex] | None = None
        self._lock = _asyncio.Lock()
        self.build_count = 0
        """Number of builds started (memoized loads do not count)."""

    @property
    def is_loaded(self) -> bool:
        """Whether a completed index is memoized."""
        return self._index is not None

    async def load(self) -> ResourceIndex:
        """
        Return the index, building it if necessary.

        Raises:
            ProviderUnavailableError: If the root cannot be read.
        """
        if self._index is not None:
            return self._index

        async with self._lock:
            if self._index is not None:
                return self._index
            if self._pending is None:
                self._pending = _asyncio.ensure_future(self._build())
            pending = self._pending

        try:
            index = await _asyncio.shield(pending)
        except BaseException:
            # Failed builds are dropped so the next load retries; a cancelled
            # waiter leaves a still-running build in place for the others.
            if self._pending is pending and pending.done():
                self._pending = None
            raise

        async with self._lock:
            if self._pending is pending:
                self._index = index
                self._pending = None
        return index

    def invalidate(self) -> None:
        """Drop the memoized index; the next load() rebuilds it."""
        self._index = None
        self._pending = None

    async def _build(self) -> ResourceIndex:
        self.build_count += 1
        started = _time.monotonic()

        if not await _asyncio.to_thread(self.root.is_dir):
            raise errors.ProviderUnavailableError(
                self.provider, f"resource root {self.root} is not a readable directory"
            )
        try:
            entries = await _asyncio.to_thread(_list_dir, self.root)
        except OSError as e:
            raise errors.ProviderUnavailableError(
                self.provider, f"cannot read resource root {self.root}: {e}"
            ) from e

        parsed, diagnostics = await self._scan_entries(entries, top_level=True, category=None)
        index = make_index(self.provider, parsed, diagnostics)

        for problem in index.diagnostics:
            _logger.warning("Degraded resource in %s: %s", self.provider, problem)
        _logger.info(
            "Built index for %s: %d resources from %s in %.1fms",
            self.provider,
            len(index),
            self.root,
            (_time.monotonic() - started) * 1000,
        )
        return index

    async def _scan_dir(
        self,
        directory: _pathlib.Path,
        category: fragment_module.Category | None,
    ) -> tuple[list[fragment_module.ResourceFragment], list[errors.SkaldError]]:
        try:
            entries = await _asyncio.to_thread(_list_dir, directory)
        except OSError as e:
            _logger.warning("Skipping unreadable directory %s: %s", directory, e)
            return [], [errors.ParseError(f"unreadable directory: {e}", source=str(directory))]
        return await self._scan_entries(entries, top_level=False, category=category)

    async def _scan_entries(
        self,
        entries: list[_pathlib.Path],
        *,
        top_level: bool,
        category: fragment_module.Category | None,
    ) -> tuple[list[fragment_module.ResourceFragment], list[errors.SkaldError]]:
        files = [p for p in entries if p.is_file() and p.suffix == DOCUMENT_SUFFIX]
        dirs = [p for p in entries if p.is_dir()]

        file_results = await _asyncio.gather(
            *(self._read_document(p, category) for p in files)
        )
        dir_results = await _asyncio.gather(
            *(
                self._scan_dir(
                    d,
                    fragment_module.map_category(d.name, None) if top_level else category,
                )
                for d in dirs
            )
        )

        fragments: list[fragment_module.ResourceFragment] = []
        diagnostics: list[errors.SkaldError] = []
        for parsed in file_results:
            if isinstance(parsed, errors.SkaldError):
                diagnostics.append(parsed)
                continue
            fragments.append(parsed.fragment)
            if parsed.diagnostic is not None:
                diagnostics.append(parsed.diagnostic)
        for sub_fragments, sub_diagnostics in dir_results:
            fragments.extend(sub_fragments)
            diagnostics.extend(sub_diagnostics)
        return fragments, diagnostics

    async def _read_document(
        self,
        path: _pathlib.Path,
        category: fragment_module.Category | None,
    ) -> fragment_module.ParsedDocument | errors.SkaldError:
        relative = path.relative_to(self.root)
        try:
            content = await _asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            _logger.warning("Failed to read %s: %s", path, e)
            return errors.ParseError(f"unreadable document: {e}", source=relative.as_posix())

        return fragment_module.parse_document(
            content,
            default_id=_default_id(relative, category),
            default_category=category or fragment_module.DEFAULT_CATEGORY,
            scheme=self.scheme,
            source_path=relative.as_posix(),
        )


def _list_dir(directory: _pathlib.Path) -> list[_pathlib.Path]:
    """List non-hidden entries of a directory in sorted order."""
    return sorted(
        (p for p in directory.iterdir() if not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def _default_id(
    relative: _pathlib.Path,
    category: fragment_module.Category | None,
) -> str:
    """
    Derive an identifier from a document's path.

    The category directory is stripped: 'skills/testing/tdd.md' becomes
    'testing/tdd'. Documents outside a category directory keep their
    full relative path.
    """
    parts = list(relative.with_suffix("").parts)
    if category is not None and len(parts) > 1:
        parts = parts[1:]
    return "/".join(parts)
