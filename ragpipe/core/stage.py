"""
Per-run execution context for one stage.

A ``StageRun`` is created by the pipeline for every (stage, run) pair. It
holds the routing buckets, implements the routing algorithm, and forwards
every routed record to the next stage's inbox. A loader instance carries no
buckets of its own and can serve several runs.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import PipelineError, RecordError, StageTimeoutError
from .loader import Loader, LoaderEvent
from .record import Record, validate_record

logger = logging.getLogger(__name__)


class _EndOfInput:
    """Queue sentinel closing a stage's inbox."""

    def __repr__(self) -> str:
        return "END_OF_INPUT"


END_OF_INPUT = _EndOfInput()


@dataclass
class FailedRecord:
    """An entry of the error bucket: the record and what went wrong."""
    record: Any
    error: BaseException


class StageRun:
    """Buckets and routing primitives for one stage in one pipeline run."""

    def __init__(self, loader: Loader, outbox: Optional[asyncio.Queue] = None):
        self.loader = loader
        self.received: list[Any] = []
        self.processed: list[Record] = []
        self.skipped: list[Any] = []
        self.errors: list[FailedRecord] = []
        self.completed = False
        self._outbox = outbox

    @property
    def name(self) -> str:
        return self.loader.name

    def stats(self) -> dict[str, int]:
        return {
            "received": len(self.received),
            "processed": len(self.processed),
            "skipped": len(self.skipped),
            "errors": len(self.errors),
        }

    # ------------------------------------------------------------------
    # Routing primitives
    # ------------------------------------------------------------------

    async def _forward(self, item: Any) -> None:
        # Blocks while the next stage's inbox is full
        if self._outbox is not None:
            await self._outbox.put(item)

    async def emit(self, record: Record) -> None:
        """
        Route one output record to processed and push it downstream.

        Fan-out stages call this once per output. The record is validated
        first; an invalid output raises inside ``process`` and so routes the
        input record to errors. Waiting on a full downstream inbox counts
        against the stage deadline; an output is recorded only once it has
        been handed downstream.
        """
        record = validate_record(record)
        await self._forward(record)
        self.processed.append(record)
        logger.debug(f"[{self.name}] processed record ({record.kind.value})")
        await self.loader.fire(LoaderEvent.PROCESSED, record)

    async def skip(self, item: Any) -> None:
        """Route an item to skipped and pass it on unchanged."""
        self.skipped.append(item)
        logger.debug(f"[{self.name}] skipped record")
        await self.loader.fire(LoaderEvent.SKIPPED, item)
        await self._forward(item)

    async def fail(self, item: Any, error: BaseException) -> None:
        """Route an item to errors and pass it on unchanged."""
        failed = FailedRecord(record=item, error=error)
        self.errors.append(failed)
        logger.error(f"[{self.name}] failed to process record: {error}")
        await self.loader.fire(LoaderEvent.ERROR, failed)
        await self._forward(item)

    async def complete(self) -> None:
        """Signal that every input reached a terminal outcome, then close downstream."""
        if self.completed:
            return
        self.completed = True
        logger.info(
            f"[{self.name}] completed: {len(self.received)} received, "
            f"{len(self.processed)} processed, {len(self.skipped)} skipped, "
            f"{len(self.errors)} errors"
        )
        await self.loader.fire(LoaderEvent.COMPLETED, list(self.processed))
        await self._forward(END_OF_INPUT)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def handle(self, item: Any) -> None:
        """Route one incoming item through validation, test and process."""
        self.received.append(item)
        await self.loader.fire(LoaderEvent.RECEIVED, item)

        try:
            record = validate_record(item)
        except (ValidationError, RecordError) as e:
            logger.warning(f"[{self.name}] skipping invalid record: {e}")
            await self.skip(item)
            return

        try:
            applicable = self.loader.test(record)
        except Exception as e:
            await self.fail(record, e)
            return

        if not applicable:
            await self.skip(record)
            return

        try:
            result = await self._invoke(record)
            if result is not None:
                result = validate_record(result)
        except PipelineError:
            raise
        except Exception as e:
            await self.fail(record, e)
            return

        if result is not None:
            await self.emit(result)

    async def _invoke(self, record: Record) -> Optional[Record]:
        timeout = self.loader.timeout
        if timeout is None:
            return await self.loader.process(record, self)

        try:
            return await asyncio.wait_for(self.loader.process(record, self), timeout)
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(
                f"Stage '{self.name}' did not finish within {timeout}s"
            ) from e

    async def drain(self, inbox: asyncio.Queue) -> None:
        """Consume the inbox one record at a time until end of input."""
        while True:
            item = await inbox.get()
            if item is END_OF_INPUT:
                break
            await self.handle(item)

        await self.complete()
