"""Single-writer queue in front of the JSON document store.

Every mutation is submitted as a synchronous callable that edits a working copy
of the last committed document. One worker task runs the callables in
submission order, writes the resulting copy to disk and only then promotes it
to the committed state. A callable that raises leaves the committed document
untouched and its exception is re-raised to the submitter.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from chat_moderation.infrastructure.document_store.document_file import DocumentFile

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")
DocumentOperation = Callable[[dict[str, Any]], Any]

_Job = tuple[DocumentOperation, "asyncio.Future[Any]", str]


class WriteSerializerClosedError(RuntimeError):
    """Raised when a write is submitted after the serializer stopped."""


class WriteSerializer:
    """FIFO queue admitting exactly one in-flight document write."""

    def __init__(self, document_file: DocumentFile) -> None:
        self._document_file = document_file
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._committed: dict[str, Any] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    async def start(self) -> None:
        """Load the committed document and start the worker task."""

        if self._worker is not None:
            return
        self._committed = await self._document_file.load()
        self._worker = asyncio.create_task(self._run(), name="document-write-serializer")
        logger.info("write_serializer_started path=%s", self._document_file.path)

    def read(self, reader: Callable[[dict[str, Any]], ResultT]) -> ResultT:
        """Apply ``reader`` to the committed document; readers must not mutate it."""

        return reader(self._require_committed())

    async def submit(
        self,
        operation: Callable[[dict[str, Any]], ResultT],
        *,
        name: str = "operation",
    ) -> ResultT:
        """Enqueue a mutation and wait until it is committed or has failed."""

        if self._closed or self._worker is None:
            raise WriteSerializerClosedError("write serializer is not running")

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._queue.put((operation, future, name))
        result: ResultT = await future
        return result

    @property
    def pending_writes(self) -> int:
        return self._queue.qsize()

    async def drain(self) -> None:
        """Wait until every submitted write has been processed."""

        await self._queue.join()

    async def close(self) -> None:
        """Stop admitting writes, drain the queue and stop the worker."""

        if self._closed:
            return
        self._closed = True
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("write_serializer_stopped path=%s", self._document_file.path)

    async def _run(self) -> None:
        while True:
            operation, future, name = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                working = copy.deepcopy(self._require_committed())
                try:
                    result = operation(working)
                    await self._document_file.write(working)
                except Exception as error:  # noqa: BLE001
                    logger.debug("document_write_rejected operation=%s error=%s", name, error)
                    if not future.cancelled():
                        future.set_exception(error)
                    continue
                self._committed = working
                if not future.cancelled():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    def _require_committed(self) -> dict[str, Any]:
        if self._committed is None:
            raise WriteSerializerClosedError("write serializer has not been started")
        return self._committed
