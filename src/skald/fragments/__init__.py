"""
Resource fragments: document parsing and index building.

A resource document is a markdown file with optional YAML frontmatter:

    ---
    id: typescript-api
    category: skill
    tags: [typescript, api]
    useWhen:
      - Building a REST API in TypeScript
    ---
    # TypeScript API
    ...

Documents are parsed into immutable ResourceFragments and collected per
provider into a ResourceIndex.
"""

from skald.fragments.fragment import (
    CATEGORY_ALIASES,
    DEFAULT_CATEGORY,
    Category,
    FragmentFrontmatter,
    ParsedDocument,
    ResourceFragment,
    build_uri,
    estimate_tokens,
    map_category,
    parse_document,
)
from skald.fragments.index import IndexBuilder, ResourceIndex, make_index

__all__ = [
    # Core
    "Category",
    "CATEGORY_ALIASES",
    "DEFAULT_CATEGORY",
    "ResourceFragment",
    "FragmentFrontmatter",
    # Parsing
    "ParsedDocument",
    "parse_document",
    "map_category",
    "estimate_tokens",
    "build_uri",
    # Index
    "ResourceIndex",
    "IndexBuilder",
    "make_index",
]
