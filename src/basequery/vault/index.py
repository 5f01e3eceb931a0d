"""Vault indexing: turn a directory of markdown files into query documents."""

import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from basequery.expressions.values import FileRecord, normalize_path
from basequery.query.types import Document
from basequery.vault.markdown import parse_markdown

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = ("**/*.md",)


@dataclass
class VaultIndex:
    """Documents of one vault scan plus scan counts."""

    documents: list[Document] = field(default_factory=list)
    scanned_files: int = 0
    markdown_files: int = 0


def matches_glob(path: str, pattern: str) -> bool:
    """Glob match on a relative path; a leading ``**/`` also matches the top level."""
    if fnmatch.fnmatchcase(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatchcase(path, pattern[3:])


def _selected(path: str, include: tuple[str, ...], exclude: tuple[str, ...]) -> bool:
    included = not include or any(matches_glob(path, pattern) for pattern in include)
    excluded = any(matches_glob(path, pattern) for pattern in exclude)
    return included and not excluded


def _file_record(path: Path, relative: str, raw: str) -> FileRecord:
    metadata = parse_markdown(raw, source=relative)
    stat = path.stat()
    name = relative.rsplit("/", 1)[-1]

    return FileRecord(
        name=name,
        path=relative,
        basename=path.stem,
        folder=relative.rsplit("/", 1)[0] if "/" in relative else "",
        ext=path.suffix,
        size=stat.st_size,
        ctime=datetime.fromtimestamp(stat.st_ctime),
        mtime=datetime.fromtimestamp(stat.st_mtime),
        properties=metadata.front_matter,
        tags=metadata.tags,
        links=metadata.links,
        embeds=metadata.embeds,
        raw=raw,
    )


def _link_backlinks(documents: list[Document]) -> None:
    lookup: dict[str, FileRecord] = {}
    for doc in documents:
        record = doc.file
        for key in (record.path, record.name, record.basename, f"{record.basename}.md"):
            lookup[normalize_path(key)] = record

    for doc in documents:
        for link in doc.file.links:
            target_key = normalize_path(link)
            target = lookup.get(target_key)
            if target is None and not target_key.endswith(".md"):
                target = lookup.get(f"{target_key}.md")
            if target is not None and doc.file.path not in target.backlinks:
                target.backlinks.append(doc.file.path)

    for doc in documents:
        doc.file.backlinks.sort()


def index_vault(
    root: Path | str,
    include: tuple[str, ...] | list[str] = DEFAULT_INCLUDE,
    exclude: tuple[str, ...] | list[str] = (),
) -> VaultIndex:
    """Scan a directory tree and index its markdown documents.

    Files are visited in relative-path order. Each selected ``.md`` file
    becomes a Document whose note is its front matter.

    Raises:
        NotADirectoryError: If root is not a directory
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    include, exclude = tuple(include), tuple(exclude)
    entries = sorted(
        (path.relative_to(root).as_posix(), path) for path in root.rglob("*") if path.is_file()
    )

    index = VaultIndex(scanned_files=len(entries))
    for relative, path in entries:
        if not _selected(relative, include, exclude):
            continue
        if not relative.lower().endswith(".md"):
            continue

        index.markdown_files += 1
        raw = path.read_text(encoding="utf-8", errors="replace")
        record = _file_record(path, relative, raw)
        index.documents.append(Document(note=record.properties, file=record))

    _link_backlinks(index.documents)

    logger.debug(
        "Indexed %s: %d file(s) scanned, %d markdown document(s)",
        root,
        index.scanned_files,
        index.markdown_files,
    )
    return index
