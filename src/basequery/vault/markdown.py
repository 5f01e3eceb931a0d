"""Markdown metadata extraction: front matter, tags, links and embeds."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_FRONT_MATTER = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_TAG = re.compile(r"(?:^|\s)#([A-Za-z0-9/_-]+)")
_WIKI_LINK = re.compile(r"\[\[([^\]|#]+)(?:#[^\]]+)?(?:\|[^\]]+)?\]\]")
_MARKDOWN_LINK = re.compile(r"\[[^\]]+\]\(([^)]+)\)")
_WIKI_EMBED = re.compile(r"!\[\[([^\]|#]+)(?:#[^\]]+)?(?:\|[^\]]+)?\]\]")
_MARKDOWN_EMBED = re.compile(r"!\[[^\]]*\]\(([^)]+)\)")


class FrontMatterError(ValueError):
    """The front-matter block is not a YAML mapping."""
    pass


@dataclass
class MarkdownMetadata:
    front_matter: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    embeds: list[str] = field(default_factory=list)


def _unique_sorted(values: list[str]) -> list[str]:
    return sorted(set(values))


def extract_front_matter(raw: str) -> dict[str, Any]:
    """Parse the leading ``---`` block.

    Returns an empty mapping when there is no block or it is blank.

    Raises:
        FrontMatterError: If the block is invalid YAML or not a mapping
    """
    match = _FRONT_MATTER.match(raw)
    if not match or not match.group(1).strip():
        return {}

    try:
        parsed = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"invalid YAML front matter: {exc}") from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise FrontMatterError(f"front matter is a {type(parsed).__name__}, not a mapping")
    return {str(key): value for key, value in parsed.items()}


def extract_tags(raw: str, front_matter: dict[str, Any] | None = None) -> list[str]:
    """Inline ``#tags`` plus the front-matter ``tags`` entry, without '#'."""
    tags = _TAG.findall(raw)

    declared = (front_matter or {}).get("tags")
    if isinstance(declared, str):
        tags.append(declared)
    elif isinstance(declared, list):
        tags.extend(entry for entry in declared if isinstance(entry, str))

    return _unique_sorted([tag[1:] if tag.startswith("#") else tag for tag in tags])


def extract_links(raw: str) -> list[str]:
    targets = [target.strip() for target in _WIKI_LINK.findall(raw)]
    targets += [target.strip() for target in _MARKDOWN_LINK.findall(raw)]
    return _unique_sorted([target for target in targets if target])


def extract_embeds(raw: str) -> list[str]:
    targets = [target.strip() for target in _WIKI_EMBED.findall(raw)]
    targets += [target.strip() for target in _MARKDOWN_EMBED.findall(raw)]
    return _unique_sorted([target for target in targets if target])


def parse_markdown(raw: str, source: str = "<text>") -> MarkdownMetadata:
    """Extract all metadata from one document.

    Unreadable front matter is logged and treated as empty.
    """
    try:
        front_matter = extract_front_matter(raw)
    except FrontMatterError as exc:
        logger.warning("%s: %s", source, exc)
        front_matter = {}

    return MarkdownMetadata(
        front_matter=front_matter,
        tags=extract_tags(raw, front_matter),
        links=extract_links(raw),
        embeds=extract_embeds(raw),
    )
