from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

import pytest

from chat_moderation.infrastructure.document_store.document_file import (
    DocumentFile,
    empty_document,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 30, 15, tzinfo=UTC)


def _document_file(path: Path) -> DocumentFile:
    return DocumentFile(path, now=lambda: FIXED_NOW)


def _backups(tmp_path: Path) -> list[Path]:
    return sorted(tmp_path.glob("state.json.corrupt-*.bak"))


@pytest.mark.asyncio
async def test_missing_document_is_initialized_empty(tmp_path: Path) -> None:
    path = tmp_path / "state.json"

    document = await _document_file(path).load()

    assert document == empty_document()
    assert json.loads(path.read_text(encoding="utf-8")) == empty_document()
    assert _backups(tmp_path) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   \n", "{not json", "[1, 2, 3]", '{"groups": []}'])
async def test_unusable_document_is_backed_up_and_reset(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
    content: str,
) -> None:
    path = tmp_path / "state.json"
    path.write_text(content, encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        document = await _document_file(path).load()

    assert document == empty_document()
    backups = _backups(tmp_path)
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == content
    assert "20260301T123015" in backups[0].name
    assert "document_store_corrupt" in caplog.text
    assert json.loads(path.read_text(encoding="utf-8")) == empty_document()


@pytest.mark.asyncio
async def test_missing_sections_are_filled_in(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"groups": {"g-1": {"name": "kept"}}}), encoding="utf-8")

    document = await _document_file(path).load()

    assert document["groups"] == {"g-1": {"name": "kept"}}
    assert document["members"] == {}
    assert document["punishments"] == {}
    assert document["blacklist"] == {}
    assert _backups(tmp_path) == []


@pytest.mark.asyncio
async def test_write_replaces_document_atomically(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "state.json"
    document_file = _document_file(path)
    document = empty_document()
    document["groups"]["g-1"] = {"name": "Group"}

    await document_file.write(document)

    assert json.loads(path.read_text(encoding="utf-8"))["groups"] == {"g-1": {"name": "Group"}}
    assert not (path.parent / "state.json.tmp").exists()
