"""Tests for the WorkQueue."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest

from tfout.task import WorkQueue

Handler = Callable[[str], Awaitable[None]]


class Recorder:
    """Records the keys handed to the queue handler."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.hooks: dict[str, Callable[[], Awaitable[None] | None]] = {}

    async def __call__(self, key: str) -> None:
        self.calls.append(key)
        if (hook := self.hooks.pop(key, None)) is not None:
            result = hook()
            if result is not None:
                await result


@pytest.fixture(name="recorder")
def recorder_fixture() -> Recorder:
    return Recorder()


@pytest.fixture(name="queue")
async def queue_fixture(recorder: Recorder) -> AsyncGenerator[WorkQueue[str], None]:
    """Fixture for a queue that has not been started."""
    queue: WorkQueue[str] = WorkQueue(recorder, workers=2, name="test")
    yield queue
    await queue.close()


async def test_duplicate_keys(queue: WorkQueue[str], recorder: Recorder) -> None:
    """Test a key waiting to be processed is only queued once."""
    queue.add("a")
    queue.add("a")
    queue.add("b")
    assert len(queue) == 2

    queue.start()
    await queue.join()

    assert sorted(recorder.calls) == ["a", "b"]
    assert len(queue) == 0


async def test_key_added_while_processing(
    queue: WorkQueue[str], recorder: Recorder
) -> None:
    """Test a key added during its own processing runs again afterwards."""
    running = 0
    max_running = 0

    async def hook() -> None:
        nonlocal running, max_running
        running += 1
        max_running = max(max_running, running)
        queue.add("a")
        await asyncio.sleep(0.01)
        running -= 1

    recorder.hooks["a"] = hook
    queue.start()
    queue.add("a")
    await queue.join()

    assert recorder.calls == ["a", "a"]
    assert max_running == 1


async def test_add_after(queue: WorkQueue[str], recorder: Recorder) -> None:
    """Test a delayed key is processed once the delay passes."""
    queue.start()
    queue.add_after("a", 0.01)
    assert queue.scheduled("a") is not None
    assert recorder.calls == []

    await asyncio.sleep(0.05)
    await queue.join()

    assert recorder.calls == ["a"]
    assert queue.scheduled("a") is None


async def test_add_after_keeps_earliest(queue: WorkQueue[str]) -> None:
    """Test the earliest requested time wins."""
    queue.add_after("a", 60)
    later = queue.scheduled("a")
    assert later is not None

    queue.add_after("a", 10)
    earlier = queue.scheduled("a")
    assert earlier is not None
    assert earlier < later

    queue.add_after("a", 30)
    assert queue.scheduled("a") == earlier


async def test_add_after_without_delay(
    queue: WorkQueue[str], recorder: Recorder
) -> None:
    """Test a key with no delay is queued immediately."""
    queue.add_after("a", 0)
    assert queue.scheduled("a") is None
    assert len(queue) == 1


async def test_handler_failure(queue: WorkQueue[str], recorder: Recorder) -> None:
    """Test a failing handler does not stop the workers."""

    def hook() -> None:
        raise ValueError("boom")

    recorder.hooks["a"] = hook
    queue.start()
    queue.add("a")
    await queue.join()
    queue.add("b")
    queue.add("a")
    await queue.join()

    assert recorder.calls[0] == "a"
    assert sorted(recorder.calls[1:]) == ["a", "b"]


async def test_close_cancels_timers(queue: WorkQueue[str]) -> None:
    """Test closing the queue cancels delayed keys."""
    queue.start()
    queue.add_after("a", 60)
    await queue.close()
    assert queue.scheduled("a") is None


def test_requires_worker() -> None:
    """Test a queue needs at least one worker."""

    async def handler(key: str) -> None:
        pass

    with pytest.raises(ValueError, match="at least one worker"):
        WorkQueue(handler, workers=0)
