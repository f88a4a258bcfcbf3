"""Tests for retrying database operations with backoff."""

import asyncio
import logging

import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError, ExecutionTimeout, ServerSelectionTimeoutError

from conftest import FakeDriver, RecordingSleep
from config import RetrySettings
from connection_management import ConnectionManager, ConnectionState, RetryExecutor


def make_executor(db_settings, driver=None, sleep=None, **retry_overrides):
    manager = ConnectionManager(db_settings, driver or FakeDriver())
    executor = RetryExecutor(
        manager,
        settings=RetrySettings(**retry_overrides),
        sleep=sleep or RecordingSleep(),
    )
    return manager, executor


class FlakyOperation:
    """Fails with the given errors, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.raised = []
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            error = self.errors.pop(0)
            self.raised.append(error)
            raise error
        return self.result


def always_failing(count):
    return FlakyOperation([AutoReconnect(f"connection reset #{i}") for i in range(count)])


@pytest.mark.asyncio
async def test_exhausts_exactly_max_attempts_and_raises_last_error(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep)
    operation = always_failing(10)

    with pytest.raises(AutoReconnect) as exc_info:
        await executor.with_retry(operation, max_attempts=4)

    assert operation.calls == 4
    assert exc_info.value is operation.raised[-1]
    assert recording_sleep.delays_ms == [1000, 2000, 4000]


@pytest.mark.asyncio
async def test_non_retriable_error_is_raised_on_first_attempt(db_settings, recording_sleep):
    manager, executor = make_executor(db_settings, sleep=recording_sleep)
    error = ValueError("validation failed")
    operation = FlakyOperation([error])

    with pytest.raises(ValueError) as exc_info:
        await executor.with_retry(operation, max_attempts=5)

    assert exc_info.value is error
    assert operation.calls == 1
    assert recording_sleep.delays == []
    assert manager.connect_count == 1


@pytest.mark.asyncio
async def test_duplicate_key_error_keeps_the_cached_connection(db_settings):
    driver = FakeDriver()
    manager, executor = make_executor(db_settings, driver=driver)
    connection = await manager.ensure_connected()
    operation = FlakyOperation([DuplicateKeyError("E11000 duplicate key error collection: cafe.tables")])

    with pytest.raises(DuplicateKeyError):
        await executor.with_retry(operation)

    assert manager.connection is connection
    assert driver.connect_calls == 1


@pytest.mark.asyncio
async def test_backoff_doubles_up_to_the_ceiling(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep)

    with pytest.raises(AutoReconnect):
        await executor.with_retry(always_failing(10), max_attempts=6)

    assert recording_sleep.delays_ms == [1000, 2000, 4000, 8000, 10000]


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep)
    operation = FlakyOperation(
        [AutoReconnect("connection closed"), ServerSelectionTimeoutError("server selection timed out")],
        result={"_id": "order-1"},
    )

    result = await executor.with_retry(operation, max_attempts=5)

    assert result == {"_id": "order-1"}
    assert operation.calls == 3
    assert recording_sleep.delays_ms == [1000, 2000]


@pytest.mark.asyncio
async def test_reconnects_before_the_next_attempt(db_settings):
    driver = FakeDriver()
    manager, executor = make_executor(db_settings, driver=driver)
    connects_seen = []

    async def operation():
        connects_seen.append(driver.connect_calls)
        if len(connects_seen) == 1:
            raise AutoReconnect("connection reset by peer")
        return "ok"

    assert await executor.with_retry(operation) == "ok"

    assert connects_seen == [1, 2]
    await manager.disconnect()
    assert driver.connections[0].close_calls == 1


@pytest.mark.asyncio
async def test_connect_failures_are_retried(db_settings, recording_sleep):
    driver = FakeDriver(errors=[ServerSelectionTimeoutError("No servers found yet")])
    _, executor = make_executor(db_settings, driver=driver, sleep=recording_sleep)
    operation = FlakyOperation([])

    assert await executor.with_retry(operation) == "ok"

    assert driver.connect_calls == 2
    assert operation.calls == 1
    assert recording_sleep.delays_ms == [1000]


@pytest.mark.asyncio
async def test_default_attempts_come_from_settings(db_settings):
    _, executor = make_executor(db_settings, max_attempts=2)
    operation = always_failing(10)

    with pytest.raises(AutoReconnect):
        await executor.with_retry(operation)

    assert operation.calls == 2


@pytest.mark.asyncio
async def test_rejects_max_attempts_below_one(db_settings):
    _, executor = make_executor(db_settings)

    with pytest.raises(ValueError):
        await executor.with_retry(FlakyOperation([]), max_attempts=0)


@pytest.mark.asyncio
async def test_jitter_is_opt_in_and_bounded(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep, jitter_ms=500)

    with pytest.raises(AutoReconnect):
        await executor.with_retry(always_failing(10), max_attempts=4)

    for delay, base in zip(recording_sleep.delays, [1.0, 2.0, 4.0]):
        assert base <= delay <= base + 0.5


@pytest.mark.asyncio
async def test_deadline_stops_retrying(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep, deadline_ms=0)
    operation = always_failing(10)

    with pytest.raises(AutoReconnect):
        await executor.with_retry(operation, max_attempts=5)

    assert operation.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_retry_is_logged_with_attempt_and_delay(db_settings, caplog):
    _, executor = make_executor(db_settings)
    caplog.set_level(logging.WARNING, logger="connection_management.retry_executor")

    await executor.with_retry(FlakyOperation([AutoReconnect("connection reset")]), max_attempts=3)

    messages = [record.getMessage() for record in caplog.records]
    assert any("(1/3)" in message and "retrying in 1000ms" in message for message in messages)
    assert any("AutoReconnect" in message for message in messages)


@pytest.mark.asyncio
async def test_dns_failures_add_a_troubleshooting_hint(db_settings, caplog):
    _, executor = make_executor(db_settings)
    caplog.set_level(logging.WARNING, logger="connection_management.retry_executor")
    error = OSError("querySrv ESERVFAIL _mongodb._tcp.cluster0.example.net")
    error.code = "ESERVFAIL"

    await executor.with_retry(FlakyOperation([error]))

    assert any("DNS resolution error detected" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_decorator_binds_call_arguments(db_settings, recording_sleep):
    _, executor = make_executor(db_settings, sleep=recording_sleep)
    calls = []

    @executor.retrying
    async def get_menu_item(item_id, *, available=True):
        calls.append((item_id, available))
        if len(calls) == 1:
            raise AutoReconnect("not connected")
        return {"_id": item_id, "available": available}

    result = await get_menu_item("latte", available=False)

    assert result == {"_id": "latte", "available": False}
    assert calls == [("latte", False), ("latte", False)]
    assert get_menu_item.__name__ == "get_menu_item"


@pytest.mark.asyncio
async def test_decorator_accepts_max_attempts(db_settings):
    _, executor = make_executor(db_settings)
    operation = always_failing(10)

    @executor.retrying(max_attempts=2)
    async def place_order():
        return await operation()

    with pytest.raises(AutoReconnect):
        await place_order()

    assert operation.calls == 2


@pytest.mark.asyncio
async def test_transient_failure_leaves_shared_connection_open_for_other_callers(db_settings):
    driver = FakeDriver()
    manager, executor = make_executor(db_settings, driver=driver)
    await manager.ensure_connected()
    started = asyncio.Event()
    resume = asyncio.Event()
    states_seen = []

    async def long_report():
        connection = manager.connection
        started.set()
        await resume.wait()
        states_seen.append(connection.state)
        return "daily-sales"

    report = asyncio.ensure_future(executor.with_retry(long_report))
    await started.wait()

    await executor.with_retry(FlakyOperation([AutoReconnect("connection reset by peer")]))
    resume.set()

    assert await report == "daily-sales"
    assert states_seen == [ConnectionState.CONNECTED]
    assert driver.connections[0].close_calls == 0
    await manager.disconnect()
    assert [c.close_calls for c in driver.connections] == [1, 1]


@pytest.mark.asyncio
async def test_server_side_time_limit_is_not_retried(db_settings, recording_sleep):
    manager, executor = make_executor(db_settings, sleep=recording_sleep)
    operation = FlakyOperation([ExecutionTimeout("operation exceeded time limit", code=50)])

    with pytest.raises(ExecutionTimeout):
        await executor.with_retry(operation)

    assert operation.calls == 1
    assert recording_sleep.delays == []
    assert manager.connect_count == 1
