"""Tests for per-hub serialization and the fan-out joins."""

import asyncio

import pytest

from monosync.sync.fanout import run_fail_fast, run_settled
from monosync.sync.hub import Hub
from monosync.sync.importer import ImportRequest
from monosync.sync.lander import LandRequest
from monosync.sync.queue import OperationQueue


async def _recorded(events, name, delay=0.0, result=None, error=None):
    events.append(f"start {name}")
    await asyncio.sleep(delay)
    events.append(f"end {name}")
    if error:
        raise error
    return result if result is not None else name


# --- OperationQueue ---


def test_queue_runs_in_submission_order():
    events = []

    async def main():
        queue = OperationQueue()
        return await asyncio.gather(
            queue.run(_recorded, events, "a", 0.03),
            queue.run(_recorded, events, "b", 0.01),
            queue.run(_recorded, events, "c"),
        )

    assert asyncio.run(main()) == ["a", "b", "c"]
    assert events == ["start a", "end a", "start b", "end b", "start c", "end c"]


def test_queue_forwards_errors_and_keeps_going():
    events = []

    async def main():
        queue = OperationQueue()
        return await asyncio.gather(
            queue.run(_recorded, events, "a", error=ValueError("boom")),
            queue.run(_recorded, events, "b"),
            return_exceptions=True,
        )

    first, second = asyncio.run(main())
    assert isinstance(first, ValueError)
    assert str(first) == "boom"
    assert second == "b"


def test_queue_reports_pending():
    async def main():
        queue = OperationQueue()
        seen = []

        async def op():
            await asyncio.sleep(0)
            seen.append((queue.pending, queue.busy))

        await asyncio.gather(queue.run(op), queue.run(op))
        seen.append((queue.pending, queue.busy))
        return seen

    assert asyncio.run(main()) == [(2, True), (1, True), (0, False)]


def test_separate_queues_overlap():
    async def main():
        first, second = OperationQueue(), OperationQueue()
        ready = asyncio.Event()

        async def waiter():
            await asyncio.wait_for(ready.wait(), timeout=1)
            return "waited"

        async def setter():
            ready.set()
            return "set"

        return await asyncio.gather(first.run(waiter), second.run(setter))

    assert asyncio.run(main()) == ["waited", "set"]


def test_hub_serializes_imports_and_lands(workspace, monkeypatch):
    events = []
    hub = Hub("foo/hub", workspace.settings)

    async def fake_land(request):
        return await _recorded(events, "land", 0.02, result={})

    async def fake_import(request):
        return await _recorded(events, "import")

    monkeypatch.setattr(hub._lander, "run", fake_land)
    monkeypatch.setattr(hub._importer, "run", fake_import)

    async def main():
        await asyncio.gather(
            hub.land(LandRequest({"generic": "msg"}, "fallback", "feature")),
            hub.import_branch(ImportRequest("foo/child", "feature", "msg", "imports/feature")),
        )

    asyncio.run(main())
    assert events == ["start land", "end land", "start import", "end import"]


def test_land_request_needs_generic_message():
    with pytest.raises(ValueError):
        LandRequest({"foo/child": "msg"}, "fallback", "feature")

    request = LandRequest({"generic": "all", "foo/child": "child"}, "fallback", "feature")
    assert request.message_for("foo/child") == "child"
    assert request.message_for("foo/other") == "all"


# --- Fan-out ---


def test_fail_fast_returns_in_input_order():
    events = []
    results = asyncio.run(run_fail_fast([
        _recorded(events, "slow", 0.02),
        _recorded(events, "fast"),
    ]))
    assert results == ["slow", "fast"]


def test_fail_fast_cancels_the_rest():
    events = []

    with pytest.raises(RuntimeError, match="apply failed"):
        asyncio.run(run_fail_fast([
            _recorded(events, "slow", 1),
            _recorded(events, "broken", error=RuntimeError("apply failed")),
        ]))

    assert "start slow" in events
    assert "end slow" not in events


def test_fail_fast_empty():
    assert asyncio.run(run_fail_fast([])) == []


def test_settled_collects_every_outcome():
    events = []
    outcomes = asyncio.run(run_settled([
        _recorded(events, "a", 0.01),
        _recorded(events, "b", error=KeyError("b")),
        _recorded(events, "c"),
    ]))

    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert outcomes[0].value == "a"
    assert isinstance(outcomes[1].error, KeyError)
    assert "end a" in events and "end c" in events
