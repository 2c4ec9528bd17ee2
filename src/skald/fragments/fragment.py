"""
Resource fragment definition and document parsing.

Documents are markdown files with an optional YAML frontmatter block.
The frontmatter carries search metadata; the body carries the content.
When metadata is missing, tags, capabilities and use-when scenarios are
recovered from well-known body sections.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import hashlib as _hashlib
import math as _math
import re as _re
import typing as _typing

import pydantic as _pydantic
import yaml as _yaml

import skald.constants as _constants
import skald.errors as errors

# Regex to extract YAML frontmatter from markdown
_FRONTMATTER_RE = _re.compile(
    r"^﻿?---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)(.*)$",
    _re.DOTALL,
)

_HEADING_RE = _re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_BULLET_RE = _re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.+?)\s*$")
_INLINE_TAGS_RE = _re.compile(
    r"^\s*(?:\*\*|__)?(?:tags|keywords)(?:\*\*|__)?\s*:\s*(?:\*\*|__)?\s*(.+)$",
    _re.IGNORECASE,
)

_TAG_SECTION_TITLES = frozenset({"tags", "keywords"})
_CAPABILITY_SECTION_TITLES = frozenset({"capabilities"})
_USE_WHEN_SECTION_TITLES = frozenset({"when to use", "use when", "usewhen"})


class Category(_enum.Enum):
    """Closed set of resource categories."""

    AGENT = "agent"
    SKILL = "skill"
    WORKFLOW = "workflow"
    EXAMPLE = "example"

    @property
    def plural(self) -> str:
        """Directory and URI form of the category (e.g. 'agents')."""
        return f"{self.value}s"


DEFAULT_CATEGORY = Category.SKILL
"""Category used when neither metadata nor location determines one."""

# Aliases seen in curated catalogs and GitHub-hosted collections
CATEGORY_ALIASES: dict[str, Category] = {
    "command": Category.WORKFLOW,
    "template": Category.EXAMPLE,
    "pattern": Category.EXAMPLE,
    "guide": Category.EXAMPLE,
    "best-practice": Category.EXAMPLE,
    "mcp": Category.EXAMPLE,
    "hook": Category.EXAMPLE,
    "setting": Category.EXAMPLE,
    "plugin": Category.EXAMPLE,
}


def map_category(
    value: str | None,
    default: Category | None = DEFAULT_CATEGORY,
) -> Category | None:
    """
    Map a free-form category string onto the closed Category enum.

    Singular, plural and known alias forms are accepted, case-insensitively.

    Args:
        value: Raw category string (may be None).
        default: Returned when the value is missing or unknown.

    Returns:
        The matching Category, or default.
    """
    if not value:
        return default

    key = value.strip().lower()
    candidates = [key]
    if key.endswith("s"):
        candidates.append(key[:-1])

    for candidate in candidates:
        try:
            return Category(candidate)
        except ValueError:
            pass
        if candidate in CATEGORY_ALIASES:
            return CATEGORY_ALIASES[candidate]

    return default


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text (~4 characters per token)."""
    return _math.ceil(len(text) / _constants.CHARS_PER_TOKEN)


def _coerce_str_list(value: _typing.Any) -> list[str]:
    """Accept a YAML list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [str(value)]


class FragmentFrontmatter(_pydantic.BaseModel):
    """
    Frontmatter parsed from a resource document.

    All fields are optional. Unknown keys are ignored. camelCase keys
    used by existing resource collections are accepted as aliases.
    """

    model_config = _pydantic.ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None

    tags: list[str] = _pydantic.Field(default_factory=list)
    capabilities: list[str] = _pydantic.Field(default_factory=list)
    use_when: list[str] = _pydantic.Field(default_factory=list, alias="useWhen")
    related_skills: list[str] = _pydantic.Field(default_factory=list, alias="relatedSkills")
    related_agents: list[str] = _pydantic.Field(default_factory=list, alias="relatedAgents")

    estimated_tokens: int | None = _pydantic.Field(
        default=None,
        ge=0,
        alias="estimatedTokens",
    )

    @_pydantic.field_validator(
        "tags",
        "capabilities",
        "use_when",
        "related_skills",
        "related_agents",
        mode="before",
    )
    @classmethod
    def _lists(cls, value: _typing.Any) -> list[str]:
        return _coerce_str_list(value)

    @_pydantic.field_validator("id", "title", "description", "category", mode="before")
    @classmethod
    def _strings(cls, value: _typing.Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


@_dataclasses.dataclass(frozen=True)
class ResourceFragment:
    """
    One parsed document with its search metadata.

    Fragments are immutable; identity is the URI.
    """

    uri: str
    """Stable resource URI (unique within one provider's index)."""

    id: str | None
    """Identifier for static lookup, or None if none could be derived."""

    category: Category
    """Resource category."""

    body: str = ""
    """Document content after the frontmatter block."""

    tags: frozenset[str] = frozenset()
    capabilities: tuple[str, ...] = ()
    use_when: tuple[str, ...] = ()

    estimated_tokens: int | None = None
    """Declared or estimated token count; None when unknown."""

    title: str | None = None
    description: str | None = None
    related: tuple[str, ...] = ()

    source_path: str | None = None
    """Provider-relative location the fragment was read from."""

    @property
    def token_cost(self) -> int:
        """Tokens needed to load the fragment's content."""
        if self.estimated_tokens is not None:
            return self.estimated_tokens
        return estimate_tokens(self.body)

    @property
    def display_name(self) -> str:
        """Human-readable name (title, id, or URI)."""
        if self.title:
            return self.title
        if self.id:
            return self.id.rsplit("/", 1)[-1].replace("-", " ").title()
        return self.uri

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization (body omitted)."""
        return {
            "uri": self.uri,
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "tags": sorted(self.tags),
            "capabilities": list(self.capabilities),
            "use_when": list(self.use_when),
            "estimated_tokens": self.estimated_tokens,
            "related": list(self.related),
        }


@_dataclasses.dataclass(frozen=True)
class ParsedDocument:
    """Result of parsing a document: the fragment plus an optional diagnostic."""

    fragment: ResourceFragment
    diagnostic: errors.ParseError | None = None

    @property
    def degraded(self) -> bool:
        """Whether metadata was dropped because it could not be parsed."""
        return self.diagnostic is not None


def build_uri(scheme: str, category: Category, identifier: str) -> str:
    """Build a static resource URI."""
    return f"{scheme}://{category.plural}/{identifier}"


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """
    Split a document into its raw frontmatter block and body.

    Returns:
        Tuple of (frontmatter_yaml, body). frontmatter_yaml is None when the
        document has no leading delimited block.
    """
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return None, content.strip()
    return match.group(1), match.group(2).strip()


def parse_frontmatter(raw: str) -> FragmentFrontmatter:
    """
    Parse a raw YAML frontmatter block.

    Raises:
        ValueError: If the YAML is invalid or not a mapping, or fields
            fail validation.
    """
    try:
        data = _yaml.safe_load(raw)
    except _yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Frontmatter must be a mapping, got {type(data).__name__}"
        )

    try:
        return FragmentFrontmatter.model_validate(data)
    except _pydantic.ValidationError as e:
        raise ValueError(f"Invalid frontmatter fields: {e}") from e


def _iter_sections(body: str) -> _typing.Iterator[tuple[str, list[str]]]:
    """
    Yield (lower-cased heading title, section lines) pairs.

    Every heading closes the open section, whatever its level, so a
    document titled with an H1 still exposes its H2 subsections.
    """
    title: str | None = None
    lines: list[str] = []

    for line in body.splitlines():
        heading = _HEADING_RE.match(line)
        if heading:
            if title is not None:
                yield title, lines
            title = heading.group(2).strip().strip("*_:").strip().lower()
            lines = []
            continue
        if title is not None:
            lines.append(line)

    if title is not None:
        yield title, lines


def _section_items(body: str, titles: frozenset[str]) -> list[str]:
    """Collect bullet items from the first section whose title matches."""
    for title, lines in _iter_sections(body):
        if title in titles:
            items = []
            for line in lines:
                bullet = _BULLET_RE.match(line)
                if bullet:
                    items.append(bullet.group(1).strip())
            return items
    return []


def extract_tags(body: str) -> list[str]:
    """Recover tags from a Tags/Keywords section or an inline 'Tags:' line."""
    items = _section_items(body, _TAG_SECTION_TITLES)
    if not items:
        for line in body.splitlines():
            inline = _INLINE_TAGS_RE.match(line)
            if inline:
                items = _coerce_str_list(inline.group(1).replace("`", ""))
                break
    return _normalize_tags(items)


def extract_capabilities(body: str) -> list[str]:
    """Recover capabilities from a 'Capabilities' section."""
    return _section_items(body, _CAPABILITY_SECTION_TITLES)


def extract_use_when(body: str) -> list[str]:
    """Recover use-when scenarios from a 'When to Use' section."""
    return _section_items(body, _USE_WHEN_SECTION_TITLES)


def _normalize_tags(tags: _typing.Iterable[str]) -> list[str]:
    return [t.strip().strip("`*").lower() for t in tags if t.strip().strip("`*")]


def _dedup(items: _typing.Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def parse_document(
    content: str,
    *,
    default_id: str | None = None,
    default_category: Category = DEFAULT_CATEGORY,
    scheme: str = _constants.DEFAULT_URI_SCHEME,
    source_path: str | None = None,
) -> ParsedDocument:
    """
    Parse a document into a ResourceFragment.

    Malformed metadata does not fail the parse: the fragment is built with
    empty extracted fields and a ParseError diagnostic is returned with it.

    Args:
        content: Raw document content.
        default_id: Identifier used when the metadata declares none
            (typically the file stem).
        default_category: Category used when metadata does not map to one.
        scheme: URI scheme for the fragment URI.
        source_path: Location of the document, for diagnostics.

    Returns:
        ParsedDocument with the fragment and an optional diagnostic.
    """
    raw_frontmatter, body = split_frontmatter(content)
    diagnostic: errors.ParseError | None = None
    frontmatter: FragmentFrontmatter | None = None

    if raw_frontmatter is not None:
        try:
            frontmatter = parse_frontmatter(raw_frontmatter)
        except ValueError as e:
            diagnostic = errors.ParseError(str(e), source=source_path)

    if frontmatter is None and diagnostic is None:
        # No metadata block at all: fall back to body heuristics
        frontmatter = FragmentFrontmatter()

    if frontmatter is None:
        # Degraded: metadata dropped, extracted fields left empty
        category = default_category
        identifier = default_id
        fragment = ResourceFragment(
            uri=_fragment_uri(scheme, category, identifier, content),
            id=identifier,
            category=category,
            body=body,
            estimated_tokens=estimate_tokens(body),
            source_path=source_path,
        )
        return ParsedDocument(fragment=fragment, diagnostic=diagnostic)

    category = map_category(frontmatter.category, default_category) or default_category
    identifier = frontmatter.id or default_id

    tags = _normalize_tags(frontmatter.tags) or extract_tags(body)
    capabilities = frontmatter.capabilities or extract_capabilities(body)
    use_when = frontmatter.use_when or extract_use_when(body)

    estimated = frontmatter.estimated_tokens
    if estimated is None:
        estimated = estimate_tokens(body)

    fragment = ResourceFragment(
        uri=_fragment_uri(scheme, category, identifier, content),
        id=identifier,
        category=category,
        body=body,
        tags=frozenset(tags),
        capabilities=_dedup(capabilities),
        use_when=_dedup(use_when),
        estimated_tokens=estimated,
        title=frontmatter.title,
        description=frontmatter.description,
        related=_dedup([*frontmatter.related_skills, *frontmatter.related_agents]),
        source_path=source_path,
    )
    return ParsedDocument(fragment=fragment, diagnostic=None)


def _fragment_uri(
    scheme: str,
    category: Category,
    identifier: str | None,
    content: str,
) -> str:
    if identifier:
        return build_uri(scheme, category, identifier)
    # Anonymous documents stay searchable but are not statically addressable
    digest = _hashlib.sha1(content.encode("utf-8")).hexdigest()[:12]
    return build_uri(scheme, category, f"_anon/{digest}")
