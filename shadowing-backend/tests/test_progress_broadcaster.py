from __future__ import annotations

import asyncio
import threading

import pytest

from shadowing.api.routes.downloads import sse_events
from shadowing.services.progress_broadcaster import LoopSubscription, ProgressBroadcaster


class _Recorder:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)


class _Broken:
    def send(self, event):
        raise BrokenPipeError("client went away")


def test_publish_reaches_every_subscriber() -> None:
    broadcaster = ProgressBroadcaster()
    a, b = _Recorder(), _Recorder()
    broadcaster.subscribe(a)
    broadcaster.subscribe(b)

    delivered = broadcaster.publish({"event": "task", "task": {"id": "1"}})

    assert delivered == 2
    assert a.events == b.events == [{"event": "task", "task": {"id": "1"}}]


def test_failing_subscriber_is_removed_and_others_still_receive() -> None:
    broadcaster = ProgressBroadcaster()
    ok = _Recorder()
    broadcaster.subscribe(_Broken())
    broadcaster.subscribe(ok)

    broadcaster.publish({"event": "task", "task": {"id": "1"}})
    broadcaster.publish({"event": "task", "task": {"id": "2"}})

    assert broadcaster.subscriber_count == 1
    assert [e["task"]["id"] for e in ok.events] == ["1", "2"]


def test_late_subscriber_gets_no_history() -> None:
    broadcaster = ProgressBroadcaster()
    broadcaster.publish({"event": "task", "task": {"id": "early"}})

    late = _Recorder()
    broadcaster.subscribe(late)

    assert late.events == []


def test_loop_subscription_is_dropped_when_backlog_is_full() -> None:
    async def scenario():
        broadcaster = ProgressBroadcaster()
        slow = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop(), maxsize=1))

        broadcaster.publish({"event": "task", "task": {"id": "1"}})
        broadcaster.publish({"event": "task", "task": {"id": "2"}})

        assert broadcaster.subscriber_count == 0
        assert slow.closed
        assert await slow.get(timeout=0.01) == {"event": "task", "task": {"id": "1"}}
        assert await slow.get(timeout=0.01) is None

    asyncio.run(scenario())


def test_loop_subscription_receives_events_from_worker_threads() -> None:
    async def scenario():
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop()))
        worker = threading.Thread(target=broadcaster.publish, args=({"event": "task", "task": {"id": "w"}},))
        worker.start()

        event = await sub.get(timeout=2.0)
        worker.join()
        return event

    assert asyncio.run(scenario()) == {"event": "task", "task": {"id": "w"}}


def test_unsubscribe_stops_delivery() -> None:
    async def scenario():
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop()))
        broadcaster.unsubscribe(sub)

        assert broadcaster.publish({"event": "task", "task": {}}) == 0
        assert sub.closed
        assert await sub.get(timeout=0.01) is None

    asyncio.run(scenario())


def test_sse_stream_removes_subscriber_after_client_disconnects() -> None:
    state = {"disconnected": False}

    async def is_disconnected():
        return state["disconnected"]

    async def scenario():
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop()))
        stream = sse_events(sub, broadcaster, is_disconnected, poll_seconds=0.02)

        chunks = [await stream.__anext__()]
        threading.Thread(target=broadcaster.publish, args=({"event": "task", "task": {"id": "t1"}},)).start()
        chunks.append(await stream.__anext__())
        assert broadcaster.subscriber_count == 1

        state["disconnected"] = True
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        return chunks, broadcaster.subscriber_count

    chunks, remaining = asyncio.run(scenario())

    assert chunks == [": connected\n\n", 'event: task\ndata: {"id": "t1"}\n\n']
    assert remaining == 0


def test_sse_stream_sends_keepalive_comments_when_idle() -> None:
    async def never_disconnected():
        return False

    async def scenario():
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(LoopSubscription(asyncio.get_running_loop()))
        stream = sse_events(sub, broadcaster, never_disconnected, poll_seconds=0.01, keepalive_seconds=0.03)
        await stream.__anext__()
        keepalive = await stream.__anext__()
        await stream.aclose()
        return keepalive, broadcaster.subscriber_count

    assert asyncio.run(scenario()) == (": keepalive\n\n", 0)
