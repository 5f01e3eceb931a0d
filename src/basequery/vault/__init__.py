"""Markdown vault scanning and metadata extraction."""

from basequery.vault.index import DEFAULT_INCLUDE, VaultIndex, index_vault, matches_glob
from basequery.vault.markdown import (
    FrontMatterError,
    MarkdownMetadata,
    extract_embeds,
    extract_front_matter,
    extract_links,
    extract_tags,
    parse_markdown,
)

__all__ = [
    "DEFAULT_INCLUDE",
    "FrontMatterError",
    "MarkdownMetadata",
    "VaultIndex",
    "extract_embeds",
    "extract_front_matter",
    "extract_links",
    "extract_tags",
    "index_vault",
    "matches_glob",
    "parse_markdown",
]
