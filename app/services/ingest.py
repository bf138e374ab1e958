"""Background parsing of uploaded playlists into ordered batch messages.

A producer task parses the playlist off the event loop and pushes typed
messages onto a bounded queue; the consumer applies batches to the preview
set strictly in the order they were produced.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Union

from ..exceptions import CatalogError
from ..models import CatalogRecord, ContentKind
from ..playlist import (
    count_entries,
    decode_playlist,
    extract_playlist_from_archive,
    iter_playlist_batches,
)
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

QUEUE_SIZE = 8


@dataclass(frozen=True, slots=True)
class ProgressMessage:
    processed: int
    total: int
    message: str = ""


@dataclass(frozen=True, slots=True)
class BatchMessage:
    records: list[CatalogRecord]
    processed: int
    total: int


@dataclass(frozen=True, slots=True)
class DoneMessage:
    total_items: int
    message: str = ""


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    message: str
    cancelled: bool = False
    exception: CatalogError | None = None


IngestMessage = Union[ProgressMessage, BatchMessage, DoneMessage, ErrorMessage]


class IngestJob:
    """Parses one playlist payload in batches on a worker thread."""

    def __init__(
        self,
        payload: str | bytes,
        *,
        batch_size: int = 500,
        kind: ContentKind | None = None,
        archive: bool = False,
        label: str = "upload",
    ) -> None:
        self._payload = payload
        self._batch_size = batch_size
        self._kind = kind
        self._archive = archive
        self.label = label
        self._queue: asyncio.Queue[IngestMessage] = asyncio.Queue(maxsize=QUEUE_SIZE)
        self._task: asyncio.Task[None] | None = None
        self._finished = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "IngestJob":
        if self._task is None:
            self._task = asyncio.create_task(self._produce())
        return self

    def cancel(self) -> None:
        """Stop the producer and discard batches that were not yet applied."""

        if self._task is None or self._task.done():
            return
        self._task.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(ErrorMessage("Ingest cancelled", cancelled=True))
        logger.info("Ingest of %s cancelled", self.label)

    async def messages(self) -> AsyncIterator[IngestMessage]:
        """Yield messages in production order until a terminal message."""

        self.start()
        while not self._finished:
            message = await self._queue.get()
            if isinstance(message, (DoneMessage, ErrorMessage)):
                self._finished = True
            yield message

    async def _read_text(self) -> str:
        if isinstance(self._payload, str):
            return self._payload
        if self._archive:
            return await asyncio.to_thread(extract_playlist_from_archive, self._payload)
        return decode_playlist(self._payload)

    async def _produce(self) -> None:
        try:
            text = await self._read_text()
            total = await asyncio.to_thread(count_entries, text)
            await self._queue.put(ProgressMessage(0, total, "Processando..."))

            batches = iter_playlist_batches(text, self._batch_size, kind=self._kind)
            produced = 0
            while True:
                batch = await asyncio.to_thread(next, batches, None)
                if batch is None:
                    break
                produced += len(batch.records)
                await self._queue.put(
                    BatchMessage(batch.records, batch.entries_read, total)
                )
            await self._queue.put(
                DoneMessage(produced, f"{produced} itens carregados de {self.label}")
            )
        except CatalogError as exc:
            logger.warning("Ingest of %s failed: %s", self.label, exc)
            await self._queue.put(ErrorMessage(str(exc), exception=exc))
        except Exception as exc:  # pragma: no cover - background safety net
            logger.exception("Ingest of %s failed unexpectedly", self.label)
            await self._queue.put(ErrorMessage(str(exc) or type(exc).__name__))


@dataclass(slots=True)
class IngestResult:
    """Outcome of applying one ingest job to a preview set."""

    label: str
    items_received: int = 0
    items_added: int = 0
    total_items: int = 0
    error: str | None = None
    cancelled: bool = False
    progress: list[tuple[int, int]] = field(default_factory=list)
    exception: CatalogError | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None


MessageHook = Callable[[IngestMessage], Awaitable[None]]


async def apply_ingest(
    job: IngestJob,
    reconciler: Reconciler,
    *,
    on_message: MessageHook | None = None,
) -> IngestResult:
    """Consume a job's messages, merging each batch into the preview in order."""

    result = IngestResult(label=job.label)
    async for message in job.messages():
        if isinstance(message, BatchMessage):
            result.items_received += len(message.records)
            result.items_added += reconciler.add_preview(message.records)
            result.progress.append((message.processed, message.total))
        elif isinstance(message, ProgressMessage):
            result.progress.append((message.processed, message.total))
        elif isinstance(message, DoneMessage):
            result.total_items = message.total_items
        elif isinstance(message, ErrorMessage):
            result.error = message.message
            result.cancelled = message.cancelled
            result.exception = message.exception
        if on_message is not None:
            await on_message(message)
    return result
