"""过期保护与防抖测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio
import logging
import pytest
from core.errors import StaleResultDiscarded
from core.staleness import Debouncer, StalenessGuard


async def _after(delay, value):
    await asyncio.sleep(delay)
    return value


async def _fail_after(delay, exc):
    await asyncio.sleep(delay)
    raise exc


class TestStalenessGuard:
    def test_tickets_increase(self):
        guard = StalenessGuard()
        first = guard.issue()
        second = guard.issue()
        assert second > first
        assert guard.is_current(second)
        assert not guard.is_current(first)

    @pytest.mark.asyncio
    async def test_late_result_of_older_request_discarded(self):
        guard = StalenessGuard()
        older = asyncio.ensure_future(guard.run(lambda: _after(0.05, "old")))
        await asyncio.sleep(0)
        assert await guard.run(lambda: _after(0, "new")) == "new"
        with pytest.raises(StaleResultDiscarded):
            await older

    @pytest.mark.asyncio
    async def test_stale_error_discarded(self):
        guard = StalenessGuard()
        older = asyncio.ensure_future(guard.run(lambda: _fail_after(0.05, ValueError("boom"))))
        await asyncio.sleep(0)
        await guard.run(lambda: _after(0, "new"))
        with pytest.raises(StaleResultDiscarded):
            await older

    @pytest.mark.asyncio
    async def test_current_error_propagates(self):
        guard = StalenessGuard()
        with pytest.raises(ValueError):
            await guard.run(lambda: _fail_after(0, ValueError("boom")))

    @pytest.mark.asyncio
    async def test_invalidate_discards_in_flight(self):
        guard = StalenessGuard()
        pending = asyncio.ensure_future(guard.run(lambda: _after(0.05, "old")))
        await asyncio.sleep(0)
        guard.invalidate()
        with pytest.raises(StaleResultDiscarded):
            await pending


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_only_last_call_fires(self):
        calls = []
        debouncer = Debouncer(20)
        debouncer.schedule(lambda: calls.append(1))
        debouncer.schedule(lambda: calls.append(2))
        assert debouncer.pending
        await asyncio.sleep(0.08)
        assert calls == [2]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(20)
        debouncer.schedule(lambda: calls.append(1))
        debouncer.cancel()
        await asyncio.sleep(0.08)
        assert calls == []

    @pytest.mark.asyncio
    async def test_failed_callback_is_logged(self, caplog):
        async def work():
            raise RuntimeError("boom")

        debouncer = Debouncer(5)
        with caplog.at_level(logging.ERROR, logger="core.staleness"):
            debouncer.schedule(work)
            await asyncio.sleep(0.03)
            await debouncer.wait()
            await asyncio.sleep(0)
        assert "Debounced task failed: RuntimeError('boom')" in caplog.text

    @pytest.mark.asyncio
    async def test_coroutine_callback(self):
        results = []

        async def work():
            results.append(await _after(0, "done"))

        debouncer = Debouncer(10)
        debouncer.schedule(work)
        await asyncio.sleep(0.05)
        await debouncer.wait()
        assert results == ["done"]
