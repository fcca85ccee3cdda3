"""
Pipeline - composes loaders into one streaming, backpressure-safe run.

    inputs -> [source] -> q0 -> [stage 0] -> q1 -> [stage 1] -> ... -> [stage N]
                                                                         |
                                                  processed bucket = result

Every stage runs in its own task and handles one record at a time. The
queues between tasks are bounded (``buffer_size``), so a stage that is still
busy suspends its upstream instead of being force-fed. Each stage closes its
downstream with an end-of-input sentinel after it completes, so the last
stage completes only once every stage before it has drained.

Per-record failures are routed to a stage's error bucket and never escape a
run. Anything that escapes a stage task is structural: the whole run is
cancelled and ``PipelineError`` is raised.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..errors import InputError, PipelineError
from .loader import Loader
from .record import Record, coerce_input
from .stage import END_OF_INPUT, FailedRecord, StageRun

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result of one pipeline run."""

    records: list[Record]
    stages: list[StageRun] = field(default_factory=list)

    def stage(self, name: str) -> StageRun:
        """Get the run context of the first stage called ``name``."""
        for run in self.stages:
            if run.name == name:
                return run
        raise KeyError(f"No stage named '{name}' in this run")

    @property
    def errors(self) -> list[FailedRecord]:
        """Error bucket entries of every stage, in stage order."""
        return [failed for run in self.stages for failed in run.errors]

    def stats(self) -> dict[str, dict[str, int]]:
        return {run.name: run.stats() for run in self.stages}


def _as_items(inputs: Any) -> list[Any]:
    if isinstance(inputs, (list, tuple)):
        return list(inputs)
    return [inputs]


def _normalize(item: Any, metadata: Optional[Mapping[str, Any]]) -> Any:
    """
    Turn one input into a record, with the base metadata merged in.

    An input that cannot be coerced is wrapped as ``{"content": item,
    "metadata": ...}`` and left for the first stage to skip on validation.
    """
    try:
        record = coerce_input(item)
    except InputError as e:
        logger.warning(f"Passing through input that is not a record: {e}")
        return {"content": item, "metadata": dict(metadata or {})}
    # Base metadata wins over per-record keys
    return record.merge_metadata(metadata)


class Pipeline:
    """
    An ordered chain of loaders.

    Example:
        pipeline = Pipeline([FileLoader(), PdfLoader(), EmbeddingLoader()])
        records = await pipeline.load(["a.pdf", "b.pdf"], {"source": "inbox"})
    """

    def __init__(self, loaders: Optional[Sequence[Loader]] = None, buffer_size: int = 1):
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")

        self.loaders = list(loaders or [])
        for loader in self.loaders:
            if not isinstance(loader, Loader):
                raise TypeError(f"Pipeline stages must be Loader instances, got {type(loader).__name__}")

        self.buffer_size = buffer_size

    def __repr__(self) -> str:
        names = " -> ".join(loader.name for loader in self.loaders)
        return f"Pipeline({names})"

    async def close(self) -> None:
        """Close every loader's collaborators (HTTP clients, stores)."""
        for loader in self.loaders:
            await loader.close()

    def load_sync(self, inputs: Any, metadata: Optional[Mapping[str, Any]] = None) -> list[Record]:
        """
        Run the pipeline synchronously.

        Must not be called from inside a running event loop; use ``load()``.
        """
        return asyncio.run(self.load(inputs, metadata))

    async def load(self, inputs: Any, metadata: Optional[Mapping[str, Any]] = None) -> list[Record]:
        """
        Run the pipeline and return the records processed by the last stage.

        Args:
            inputs: One input or a list/tuple of inputs (text, bytes, paths,
                URLs, record mappings or records)
            metadata: Base metadata merged into every input record

        Raises:
            PipelineError: On structural failure only
        """
        result = await self.run(inputs, metadata)
        return result.records

    async def run(self, inputs: Any, metadata: Optional[Mapping[str, Any]] = None) -> PipelineResult:
        """Run the pipeline and return the full result, including every stage's buckets."""
        items = _as_items(inputs)

        if not self.loaders:
            normalized = [_normalize(item, metadata) for item in items]
            # Nothing can skip an invalid input here, so it is dropped
            return PipelineResult(records=[r for r in normalized if isinstance(r, Record)])

        logger.info(f"Running {self!r} on {len(items)} input(s)")

        queues = [asyncio.Queue(maxsize=self.buffer_size) for _ in self.loaders]
        runs = [
            StageRun(loader, queues[i + 1] if i + 1 < len(queues) else None)
            for i, loader in enumerate(self.loaders)
        ]

        tasks = [asyncio.create_task(self._feed(items, metadata, queues[0]))]
        tasks.extend(
            asyncio.create_task(run.drain(inbox)) for run, inbox in zip(runs, queues)
        )

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if task.cancelled():
                    raise PipelineError("A pipeline task was cancelled")
                error = task.exception()
                if isinstance(error, PipelineError):
                    raise error
                if error is not None:
                    raise PipelineError(f"Pipeline run failed: {error}") from error
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        result = PipelineResult(records=list(runs[-1].processed), stages=runs)
        logger.info(f"Pipeline finished with {len(result.records)} record(s), {len(result.errors)} error(s)")
        return result

    async def _feed(self, items: list[Any], metadata: Optional[Mapping[str, Any]], outbox: asyncio.Queue) -> None:
        # Inputs are normalized lazily, as the first stage makes room
        for item in items:
            await outbox.put(_normalize(item, metadata))

        await outbox.put(END_OF_INPUT)
