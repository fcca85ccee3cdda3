"""Tests for the stage contract: routing, buckets and events."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ragpipe.core.loader import Loader, LoaderEvent
from ragpipe.core.pipeline import Pipeline
from ragpipe.core.record import ContentKind, Record
from ragpipe.core.stage import FailedRecord
from ragpipe.errors import StageTimeoutError


def is_text(record: Record) -> bool:
    return record.kind == ContentKind.TEXT


class Recorder:
    """Collects (event, payload) pairs from every event of a loader."""

    def __init__(self, loader: Loader):
        self.events: list[tuple[LoaderEvent, object]] = []
        for event in LoaderEvent:
            loader.on(event, lambda payload, event=event: self.events.append((event, payload)))

    def names(self) -> list[str]:
        return [event.value for event, _ in self.events]

    def count(self, event: LoaderEvent) -> int:
        return sum(1 for e, _ in self.events if e == event)


class TestRouting:
    async def test_default_loader_passes_records_through(self):
        result = await Pipeline([Loader()]).run("Hello world")

        assert [r.content for r in result.records] == ["Hello world"]
        assert result.stage("loader").stats() == {"received": 1, "processed": 1, "skipped": 0, "errors": 0}

    async def test_failed_test_routes_to_skipped_and_forwards(self):
        only_text = Loader(name="only-text", test=is_text)
        after = Loader(name="after")

        result = await Pipeline([only_text, after]).run([b"raw", "text"])

        stage = result.stage("only-text")
        assert [r.content for r in stage.skipped] == [b"raw"]
        assert [r.content for r in stage.processed] == ["text"]
        assert stage.errors == []
        # Skipped records still reach the next stage
        assert [r.content for r in result.stage("after").received] == [b"raw", "text"]

    async def test_skipped_record_is_never_processed(self):
        calls = []
        loader = Loader(test=lambda r: False, process=lambda r, run: calls.append(r))

        result = await Pipeline([loader]).run(["a", "b"])

        assert calls == []
        assert result.records == []
        assert len(result.stage("loader").skipped) == 2

    async def test_process_error_routes_to_errors_and_stage_continues(self):
        def explode_on_bad(record, run):
            if record.content == "bad":
                raise ValueError("cannot handle this")
            return record.derive(metadata={"ok": True})

        loader = Loader(name="picky", process=explode_on_bad)
        recorder = Recorder(loader)

        result = await Pipeline([loader]).run(["good", "bad", "also good"])
        stage = result.stage("picky")

        assert [r.content for r in result.records] == ["good", "also good"]
        assert len(stage.errors) == 1
        failed = stage.errors[0]
        assert isinstance(failed, FailedRecord)
        assert failed.record.content == "bad"
        assert isinstance(failed.error, ValueError)
        assert recorder.count(LoaderEvent.ERROR) == 1
        assert recorder.count(LoaderEvent.COMPLETED) == 1
        assert recorder.names()[-1] == "completed"

    async def test_errored_record_is_forwarded_unchanged(self):
        def fail(record, run):
            raise RuntimeError("nope")

        after = Loader(name="after")
        result = await Pipeline([Loader(name="failing", process=fail), after]).run("x")

        assert [r.content for r in result.stage("after").received] == ["x"]
        assert [r.content for r in result.records] == ["x"]

    async def test_raising_test_routes_to_errors(self):
        def broken_test(record):
            raise KeyError("missing")

        result = await Pipeline([Loader(test=broken_test)]).run("x")
        stage = result.stage("loader")

        assert stage.skipped == []
        assert isinstance(stage.errors[0].error, KeyError)

    async def test_returning_none_consumes_the_record(self):
        after = Loader(name="after")
        result = await Pipeline([Loader(name="sink", process=lambda r, run: None), after]).run("x")

        assert result.stage("sink").processed == []
        assert result.stage("after").received == []
        assert result.records == []

    async def test_invalid_output_routes_input_to_errors(self):
        result = await Pipeline([Loader(process=lambda r, run: "not a record")]).run("x")
        stage = result.stage("loader")

        assert stage.processed == []
        assert stage.errors[0].record.content == "x"

    async def test_async_process_callable(self):
        async def upper(record, run):
            await asyncio.sleep(0)
            return record.derive(content=record.content.upper())

        records = await Pipeline([Loader(process=upper)]).load("shout")
        assert records[0].content == "SHOUT"

    async def test_subclass_capabilities(self):
        class UpperLoader(Loader):
            name = "upper"

            def test(self, record):
                return is_text(record)

            async def process(self, record, run):
                return record.derive(content=record.content.upper())

        result = await Pipeline([UpperLoader()]).run(["abc", b"abc"])

        assert [r.content for r in result.records] == ["ABC"]
        assert result.stage("upper").skipped[0].content == b"abc"

    async def test_invalid_record_is_skipped_with_warning(self, caplog):
        async def corrupt_after_emit(record, run):
            output = record.derive(metadata={"fine": True})
            await run.emit(output)
            output.metadata[1] = "not a string key"
            return None

        downstream = Loader(name="downstream")
        with caplog.at_level(logging.WARNING, logger="ragpipe.core.stage"):
            result = await Pipeline(
                [Loader(name="corrupting", process=corrupt_after_emit), downstream],
                buffer_size=4,
            ).run("x")

        stage = result.stage("downstream")
        assert len(stage.skipped) == 1
        assert stage.processed == []
        assert stage.errors == []
        assert "invalid record" in caplog.text


class TestFanOut:
    async def test_emit_yields_independent_records(self):
        async def split(record, run):
            for i, word in enumerate(record.content.split()):
                await run.emit(record.derive(content=word, metadata={"index": i}))
            return None

        after = Loader(name="after")
        result = await Pipeline([Loader(name="split", process=split), after]).run(
            "one two three", {"source": "test"}
        )

        assert [r.content for r in result.records] == ["one", "two", "three"]
        assert [r.metadata for r in result.records] == [
            {"source": "test", "index": 0},
            {"source": "test", "index": 1},
            {"source": "test", "index": 2},
        ]
        assert len(result.stage("after").received) == 3


class TestEvents:
    async def test_event_order_per_record(self):
        loader = Loader(test=is_text)
        recorder = Recorder(loader)

        await Pipeline([loader]).run(["a", b"b"])

        assert recorder.names() == ["received", "processed", "received", "skipped", "completed"]

    async def test_completed_carries_processed_bucket(self):
        loader = Loader()
        completed = []
        loader.on(LoaderEvent.COMPLETED, completed.append)

        result = await Pipeline([loader]).run(["a", "b"])

        assert len(completed) == 1
        assert completed[0] == result.records

    async def test_once_and_off(self):
        loader = Loader()
        once_calls, always_calls = [], []

        def always(record):
            always_calls.append(record)

        loader.once("received", once_calls.append)
        loader.on("received", always)

        await Pipeline([loader]).run(["a", "b"])
        assert len(once_calls) == 1
        assert len(always_calls) == 2

        loader.off("received", always)
        await Pipeline([loader]).run(["c"])
        assert len(always_calls) == 2

    async def test_async_listener(self):
        loader = Loader()
        seen = []

        async def listener(record):
            await asyncio.sleep(0)
            seen.append(record.content)

        loader.on(LoaderEvent.PROCESSED, listener)
        await Pipeline([loader]).run(["a", "b"])
        assert seen == ["a", "b"]

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            Loader().on("exploded", print)


class TestDeadline:
    async def test_slow_process_routes_to_errors(self):
        async def slow(record, run):
            await asyncio.sleep(5)
            return record

        result = await Pipeline([Loader(name="slow", process=slow, timeout=0.05)]).run(["a", "b"])
        stage = result.stage("slow")

        assert result.records == []
        assert len(stage.errors) == 2
        assert all(isinstance(f.error, StageTimeoutError) for f in stage.errors)

    async def test_fast_process_within_deadline(self):
        records = await Pipeline([Loader(timeout=1.0)]).load("quick")
        assert [r.content for r in records] == ["quick"]

    async def test_deadline_during_backpressure_records_only_forwarded_outputs(self):
        async def fan_out(record, run):
            for i in range(5):
                await run.emit(record.derive(metadata={"i": i}))
            return None

        async def slow(record, run):
            await asyncio.sleep(0.2)
            return record

        first = Loader(name="fan", process=fan_out, timeout=0.05)
        result = await Pipeline([first, Loader(name="slow", process=slow)]).run("x")
        fan = result.stage("fan")

        assert len(fan.errors) == 1
        assert isinstance(fan.errors[0].error, StageTimeoutError)
        assert 0 < len(fan.processed) < 5
        forwarded = result.stage("slow").received
        assert all(any(item is record for item in forwarded) for record in fan.processed)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            Loader(timeout=0)
