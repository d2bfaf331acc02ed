"""Tests for FutureObservable — one-shot computations folded into a snapshot."""

import asyncio
import logging

import pytest

from livecell import ConnectionState, FutureObservable


async def _settle(turns: int = 5) -> None:
    """Let scheduled tasks run to their next suspension point."""
    for _ in range(turns):
        await asyncio.sleep(0)


class _Gate:
    """A computation that blocks until the test releases it."""

    def __init__(self):
        self.calls = 0
        self._releases: list[asyncio.Future] = []

    async def __call__(self):
        self.calls += 1
        fut = asyncio.get_running_loop().create_future()
        self._releases.append(fut)
        return await fut

    def release(self, value, index: int = -1) -> None:
        self._releases[index].set_result(value)

    def fail(self, error: BaseException, index: int = -1) -> None:
        self._releases[index].set_exception(error)


@pytest.mark.asyncio
class TestCompletion:
    async def test_starts_waiting(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        assert shared.connection_state is ConnectionState.WAITING
        assert shared.is_loading
        assert not shared.has_data

    async def test_resolves_with_data(self):
        shared = FutureObservable(lambda: asyncio.sleep(0, result=42))
        notified = []
        shared.add_listener(lambda: notified.append(shared.connection_state))
        await _settle()
        assert shared.connection_state is ConnectionState.DONE
        assert shared.data == 42
        assert shared.require_data == 42
        assert notified == [ConnectionState.DONE]

    async def test_resolves_with_error(self):
        async def boom():
            raise RuntimeError("boom")

        shared = FutureObservable(boom)
        await _settle()
        assert shared.connection_state is ConnectionState.DONE
        assert shared.has_error
        assert str(shared.error) == "boom"
        assert shared.traceback is not None
        assert not shared.has_data

    async def test_external_future(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        await _settle()
        gate.release(100)
        await _settle()
        assert shared.data == 100

    async def test_raising_listener_is_logged(self, caplog):
        shared = FutureObservable(lambda: asyncio.sleep(0, result=1))

        def boom():
            raise ValueError("listener")

        shared.add_listener(boom)
        with caplog.at_level(logging.ERROR, logger="livecell.async_observable"):
            await _settle()
        assert shared.connection_state is ConnectionState.DONE
        assert shared.data == 1
        assert "Listener failed" in caplog.text
        assert any(
            isinstance(record.exc_info[1], ValueError)
            for record in caplog.records
            if record.exc_info
        )

    async def test_dispose_before_completion_discards_result(self, caplog):
        gate = _Gate()
        shared = FutureObservable(gate)
        calls = []
        shared.add_listener(lambda: calls.append(1))
        await _settle()
        shared.dispose()
        with caplog.at_level(logging.WARNING):
            gate.release(1)
            await _settle()
        assert calls == []
        assert shared.is_loading
        assert "after it was disposed" not in caplog.text


@pytest.mark.asyncio
class TestRefreshReload:
    async def test_refresh_keeps_stale_data_while_pending(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        await _settle()
        gate.release(1)
        await _settle()
        assert shared.data == 1

        task = shared.refresh()
        assert shared.connection_state is ConnectionState.WAITING
        assert shared.data == 1  # stale data stays visible

        await _settle()
        assert shared.data == 1
        gate.release(2)
        await task
        assert shared.connection_state is ConnectionState.DONE
        assert shared.data == 2

    async def test_refresh_recomputes(self):
        counter = 0

        async def count():
            nonlocal counter
            counter += 1
            return counter

        shared = FutureObservable(count)
        await _settle()
        assert shared.data == 1
        await shared.refresh()
        assert shared.data == 2

    async def test_reload_clears_data_synchronously(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        await _settle()
        gate.release(1)
        await _settle()
        assert shared.data == 1

        seen = []
        shared.add_listener(lambda: seen.append((shared.connection_state, shared.data)))
        task = shared.reload()
        assert shared.connection_state is ConnectionState.WAITING
        assert shared.data is None
        assert seen == [(ConnectionState.WAITING, None)]

        await _settle()
        gate.release(2)
        await task
        assert shared.data == 2
        assert seen[-1] == (ConnectionState.DONE, 2)

    async def test_refresh_after_error_routes_success(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        await _settle()
        gate.fail(ValueError("first"))
        await _settle()
        assert shared.has_error

        task = shared.refresh()
        assert shared.error is None  # waiting carries no error
        await _settle()
        gate.release(5)
        await task
        assert shared.data == 5
        assert not shared.has_error

    async def test_last_completion_wins(self):
        gate = _Gate()
        shared = FutureObservable(gate)
        await _settle()
        gate.release(0, index=0)
        await _settle()

        first = shared.refresh()
        second = shared.refresh()
        await _settle()
        assert gate.calls == 3

        # The later call finishes first; the earlier one still overwrites it.
        gate.release("second", index=2)
        await second
        assert shared.data == "second"
        gate.release("first", index=1)
        await first
        assert shared.data == "first"


@pytest.mark.asyncio
class TestWriteDefer:
    async def test_write_sets_data_without_waiting(self):
        shared = FutureObservable(lambda: asyncio.sleep(0, result=0))
        await _settle()
        states = []
        shared.add_listener(lambda: states.append(shared.connection_state))

        await shared.write(lambda: asyncio.sleep(0, result=42))
        assert shared.data == 42
        assert states == [ConnectionState.DONE]

    async def test_write_failure_sets_error(self):
        async def fail():
            raise ValueError("Write Error")

        shared = FutureObservable(lambda: asyncio.sleep(0, result=0))
        await _settle()
        await shared.write(fail)
        assert shared.has_error
        assert str(shared.error) == "Write Error"
        assert shared.data is None

    async def test_defer_discards_result(self):
        shared = FutureObservable(lambda: asyncio.sleep(0, result=1))
        await _settle()
        calls = []
        shared.add_listener(lambda: calls.append(1))
        await shared.defer(lambda: asyncio.sleep(0, result="ignored"))
        assert shared.data == 1
        assert calls == []

    async def test_defer_failure_sets_error(self):
        async def fail():
            raise ValueError("Defer Error")

        shared = FutureObservable(lambda: asyncio.sleep(0, result=0))
        await _settle()
        await shared.defer(fail)
        assert shared.has_error
        assert str(shared.error) == "Defer Error"

    async def test_defer_with_refresh_recomputes(self):
        count = 0

        async def compute():
            nonlocal count
            count += 1
            return count

        shared = FutureObservable(compute)
        await _settle()
        assert shared.data == 1

        await shared.defer(lambda: asyncio.sleep(0), refresh=True)
        assert shared.data == 2

    async def test_defer_failure_skips_refresh(self):
        count = 0

        async def compute():
            nonlocal count
            count += 1
            return count

        async def fail():
            raise ValueError("nope")

        shared = FutureObservable(compute)
        await _settle()
        await shared.defer(fail, refresh=True)
        await _settle()
        assert count == 1
        assert shared.has_error
