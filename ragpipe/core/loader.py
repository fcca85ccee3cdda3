"""
Loader - the stage contract.

A loader is one pipeline step. It only declares two capabilities:

    test(record)          is this stage applicable to the record's current shape?
    process(record, run)  transform it (return a record, return None, or
                          fan out with ``await run.emit(...)``)

Everything else (buckets, routing, backpressure, completion) is owned by the
runner and the per-run ``StageRun`` context.

Subclass to write a stage:

    class UpperLoader(Loader):
        name = "upper"

        def test(self, record):
            return record.kind == ContentKind.TEXT

        async def process(self, record, run):
            return record.derive(content=record.content.upper())

or compose one from plain callables:

    Loader(name="upper", test=is_text, process=lambda r, run: r.derive(...))
"""
from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from ..errors import PipelineError
from .record import Record

if TYPE_CHECKING:
    from .stage import StageRun

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class LoaderEvent(str, Enum):
    """Lifecycle events fired by a stage during a run."""
    RECEIVED = "received"
    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERROR = "error"
    COMPLETED = "completed"


class Loader:
    """
    Base class for pipeline stages.

    The defaults make a pass-through stage: every record is applicable and
    is forwarded unchanged.
    """

    name: str = "loader"

    def __init__(
        self,
        test: Optional[Callable[[Record], bool]] = None,
        process: Optional[Callable[[Record, "StageRun"], Any]] = None,
        name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            test: Applicability predicate, replaces ``Loader.test``
            process: Transformation callable taking ``(record, run)``, sync
                or async, replaces ``Loader.process``
            name: Stage name used in logs and ``PipelineResult.stage()``
            timeout: Deadline in seconds for each ``process`` invocation
                (None: no deadline)
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self._test_fn = test
        self._process_fn = process
        if name:
            self.name = name
        self.timeout = timeout
        self._listeners: dict[LoaderEvent, list[tuple[Listener, bool]]] = {
            event: [] for event in LoaderEvent
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def test(self, record: Record) -> bool:
        """Whether this stage applies to the record. Must not have side effects."""
        if self._test_fn is not None:
            return bool(self._test_fn(record))
        return True

    async def process(self, record: Record, run: "StageRun") -> Optional[Record]:
        """
        Transform one applicable record.

        Return the output record, or None when there is no single output
        (the record is consumed, or outputs were pushed with ``run.emit``).
        Raise to route the record to the error bucket.
        """
        if self._process_fn is None:
            return record

        result = self._process_fn(record, run)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def close(self) -> None:
        """Release collaborator resources held by this stage."""
        return None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: Union[LoaderEvent, str], listener: Listener) -> "Loader":
        """Subscribe to an event for every run of this stage."""
        self._listeners[LoaderEvent(event)].append((listener, False))
        return self

    def once(self, event: Union[LoaderEvent, str], listener: Listener) -> "Loader":
        """Subscribe to the next firing of an event only."""
        self._listeners[LoaderEvent(event)].append((listener, True))
        return self

    def off(self, event: Union[LoaderEvent, str], listener: Listener) -> "Loader":
        """Remove every subscription of ``listener`` to ``event``."""
        event = LoaderEvent(event)
        self._listeners[event] = [
            entry for entry in self._listeners[event] if entry[0] is not listener
        ]
        return self

    async def fire(self, event: LoaderEvent, payload: Any) -> None:
        """
        Call the listeners subscribed to ``event``.

        Listeners may be plain callables or coroutine functions. A raising
        listener breaks the chain itself, so it surfaces as PipelineError.
        """
        entries = self._listeners[event]
        if not entries:
            return

        if any(once for _, once in entries):
            self._listeners[event] = [entry for entry in entries if not entry[1]]

        for listener, _ in entries:
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except PipelineError:
                raise
            except Exception as e:
                raise PipelineError(
                    f"Listener for '{event.value}' on stage '{self.name}' failed: {e}"
                ) from e
