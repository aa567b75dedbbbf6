"""Unit tests for Deadline"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from ticketdesk.tests.conftest import ManualSleep, settle
from ticketdesk.utils.deadline import Deadline


@pytest.mark.asyncio
async def test_fires_after_sleep():
    sleep = ManualSleep()
    on_expire = AsyncMock()
    deadline = Deadline(5.0, on_expire, sleep=sleep).start()
    await settle()

    on_expire.assert_not_awaited()
    assert sleep.waiting[0][0] == 5.0

    await sleep.release()

    on_expire.assert_awaited_once()
    assert deadline.expired
    assert deadline.done


@pytest.mark.asyncio
async def test_cancel_prevents_expiry():
    sleep = ManualSleep()
    on_expire = AsyncMock()
    deadline = Deadline(5.0, on_expire, sleep=sleep).start()
    await settle()

    assert deadline.cancel() is True
    await deadline.wait()
    await sleep.release()

    on_expire.assert_not_awaited()
    assert deadline.cancelled
    assert not deadline.expired


@pytest.mark.asyncio
async def test_cancel_after_expiry_reports_false():
    sleep = ManualSleep()
    deadline = Deadline(1.0, AsyncMock(), sleep=sleep).start()
    await settle()
    await sleep.release()

    assert deadline.cancel() is False


@pytest.mark.asyncio
async def test_handler_errors_are_contained():
    sleep = ManualSleep()
    deadline = Deadline(1.0, AsyncMock(side_effect=RuntimeError("boom")), sleep=sleep).start()
    await settle()
    await sleep.release()

    await deadline.wait()
    assert deadline.expired


@pytest.mark.asyncio
async def test_start_is_idempotent():
    sleep = ManualSleep()
    on_expire = AsyncMock()
    deadline = Deadline(1.0, on_expire, sleep=sleep)
    deadline.start()
    deadline.start()
    await settle()

    assert len(sleep.waiting) == 1
    await sleep.release()
    on_expire.assert_awaited_once()


@pytest.mark.asyncio
async def test_real_clock():
    fired = asyncio.Event()

    async def expire():
        fired.set()

    Deadline(0.01, expire).start()

    await asyncio.wait_for(fired.wait(), timeout=1.0)
