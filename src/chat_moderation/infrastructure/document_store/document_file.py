"""JSON document file with atomic replace and corruption recovery."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from chat_moderation.application.ports.store_errors import CorruptStateError

logger = logging.getLogger(__name__)

DOCUMENT_SECTIONS = ("groups", "members", "punishments", "blacklist")


def empty_document() -> dict[str, Any]:
    """Return a fresh valid document with every section empty."""

    return {section: {} for section in DOCUMENT_SECTIONS}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_document(raw: str) -> dict[str, Any]:
    """Parse raw text into a document, raising CorruptStateError when unusable."""

    if not raw.strip():
        raise CorruptStateError("document is empty")
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as error:
        raise CorruptStateError(f"document is not valid JSON: {error}") from error

    if not isinstance(document, dict):
        raise CorruptStateError("document root must be an object")
    for section in DOCUMENT_SECTIONS:
        value = document.setdefault(section, {})
        if not isinstance(value, dict):
            raise CorruptStateError(f"document section {section!r} must be an object")
    return document


class DocumentFile:
    """Single JSON file holding the whole durable state."""

    def __init__(
        self,
        path: str | Path,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._now = now or _utc_now

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> dict[str, Any]:
        """Read the document, resetting it to an empty one when missing or corrupt."""

        return await asyncio.to_thread(self._load_sync)

    async def write(self, document: dict[str, Any]) -> None:
        """Persist the document through a temporary file and an atomic replace."""

        await asyncio.to_thread(self._write_sync, document)

    def _load_sync(self) -> dict[str, Any]:
        if not self._path.exists():
            logger.info("document_store_initialized path=%s", self._path)
            document = empty_document()
            self._write_sync(document)
            return document

        raw = self._path.read_text(encoding="utf-8", errors="replace")
        try:
            return parse_document(raw)
        except CorruptStateError as error:
            backup_path = self._backup(raw)
            logger.warning(
                "document_store_corrupt path=%s backup=%s error=%s",
                self._path,
                backup_path,
                error,
            )
            document = empty_document()
            self._write_sync(document)
            return document

    def _backup(self, raw: str) -> Path:
        stamp = self._now().strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self._path.with_name(f"{self._path.name}.corrupt-{stamp}.bak")
        backup_path.write_text(raw, encoding="utf-8")
        return backup_path

    def _write_sync(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self._path.with_name(f"{self._path.name}.tmp")
        with temporary.open("w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temporary, self._path)
