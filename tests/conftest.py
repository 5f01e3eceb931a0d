"""Shared fixtures: registry reset, document factory and a sample vault."""

from pathlib import Path

import pytest

from basequery.expressions import FileRecord, FunctionRegistry, register_all_builtins
from basequery.query import Document


@pytest.fixture(autouse=True)
def setup_functions():
    """Register built-in functions before each test."""
    FunctionRegistry.clear()
    register_all_builtins()
    yield
    FunctionRegistry.clear()


def make_document(path: str, note: dict | None = None, **fields) -> Document:
    """A Document with a synthetic file record; extra fields override the record."""
    record = FileRecord.synthetic(path)
    note = dict(note or {})
    record.properties = note
    for key, value in fields.items():
        setattr(record, key, value)
    return Document(note=note, file=record)


@pytest.fixture
def make_doc():
    return make_document


SAMPLE_VAULT = {
    "Projects/Alpha.md": (
        "---\n"
        "status: active\n"
        "score: 7\n"
        "due: 2024-01-31\n"
        "tags: [project/active]\n"
        "---\n"
        "# Alpha\n"
        "Linked to [[Beta]] and [the gamma note](Notes/Gamma.md). #urgent\n"
    ),
    "Projects/Beta.md": (
        "---\n"
        "status: done\n"
        "score: 3\n"
        "---\n"
        "Beta embeds ![[Gamma]] and mentions [[Alpha|the alpha project]].\n"
    ),
    "Notes/Gamma.md": (
        "---\n"
        "score: 12\n"
        "---\n"
        "Plain note with #idea/draft tag.\n"
    ),
    "Notes/readme.txt": "not markdown\n",
}


@pytest.fixture
def sample_vault(tmp_path: Path) -> Path:
    """A small vault of three markdown notes and one other file."""
    for relative, text in SAMPLE_VAULT.items():
        target = tmp_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    return tmp_path
