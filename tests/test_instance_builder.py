import asyncio
import concurrent.futures
import threading

import pytest

from abdicate.domain import CallingConvention
from abdicate.errors import AmbiguousReturnError, BuildError
from abdicate.instance_builder import InstanceBuilder
from abdicate.registry import make_record

CONFIG = {"uri": "mongodb://foo"}


@pytest.fixture
def builder() -> InstanceBuilder:
    return InstanceBuilder()


class Connection:
    def __init__(self, options):
        self.uri = options["uri"]

    def __str__(self):
        return f"Connection[{self.uri}]"


@pytest.mark.asyncio
async def test_future_and_callback_providers_are_equivalent(builder):
    async def connect_with_future(options):
        await asyncio.sleep(0)
        return f"Connection[{options['uri']}]"

    def connect_with_callback(options, callback):
        callback(None, f"Connection[{options['uri']}]")

    future_record = make_record("db", connect_with_future, calling_convention="promise")
    callback_record = make_record("db", connect_with_callback, calling_convention="callback")

    assert await builder.build(future_record, [CONFIG]) == "Connection[mongodb://foo]"
    assert await builder.build(callback_record, [CONFIG]) == "Connection[mongodb://foo]"


@pytest.mark.asyncio
async def test_direct_class_factories_are_constructed(builder):
    record = make_record("db", Connection)

    connection = await builder.build(record, [CONFIG])

    assert isinstance(connection, Connection)
    assert str(connection) == "Connection[mongodb://foo]"


@pytest.mark.asyncio
async def test_direct_functions_return_the_instance(builder):
    record = make_record("greeting", lambda name: f"Hello {name}")

    assert await builder.build(record, ["Dominic"]) == "Hello Dominic"


@pytest.mark.asyncio
async def test_literal_instances_are_returned_unchanged(builder):
    def handler():
        raise AssertionError("literal instances are never invoked")

    record = make_record("handler", handler, is_literal_instance=True, calling_convention="callback")

    assert record.calling_convention is CallingConvention.DIRECT
    assert await builder.build(record, []) is handler


@pytest.mark.asyncio
async def test_future_factories_may_return_concurrent_futures(builder):
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        record = make_record(
            "db", lambda options: executor.submit(Connection, options), calling_convention="future"
        )
        connection = await builder.build(record, [CONFIG])
    finally:
        executor.shutdown()

    assert connection.uri == "mongodb://foo"


@pytest.mark.asyncio
async def test_future_factories_must_return_awaitables(builder):
    record = make_record("db", lambda: "not a future", calling_convention="future")

    with pytest.raises(BuildError) as error:
        await builder.build(record, [])

    assert isinstance(error.value.cause, TypeError)


@pytest.mark.asyncio
async def test_callbacks_may_complete_from_other_threads(builder):
    def connect(options, callback):
        threading.Timer(0.01, callback, args=(None, Connection(options))).start()

    record = make_record("db", connect, calling_convention="callback")

    connection = await asyncio.wait_for(builder.build(record, [CONFIG]), timeout=5)

    assert connection.uri == "mongodb://foo"


@pytest.mark.asyncio
async def test_direct_failures_become_build_errors(builder):
    def connect(options):
        raise ConnectionRefusedError(options["uri"])

    record = make_record("db", connect)

    with pytest.raises(BuildError, match="Failed to build 'db'") as error:
        await builder.build(record, [CONFIG])

    assert error.value.provider_name == "db"
    assert isinstance(error.value.__cause__, ConnectionRefusedError)


@pytest.mark.asyncio
async def test_rejected_futures_become_build_errors(builder):
    async def connect():
        raise ConnectionRefusedError("refused")

    record = make_record("db", connect)

    with pytest.raises(BuildError) as error:
        await builder.build(record, [])

    assert isinstance(error.value.cause, ConnectionRefusedError)


@pytest.mark.asyncio
async def test_callback_errors_become_build_errors(builder):
    record = make_record(
        "db", lambda callback: callback(ConnectionRefusedError("refused")), calling_convention="callback"
    )

    with pytest.raises(BuildError) as error:
        await builder.build(record, [])

    assert isinstance(error.value.cause, ConnectionRefusedError)


@pytest.mark.asyncio
async def test_callback_errors_need_not_be_exceptions(builder):
    record = make_record("db", lambda callback: callback("refused"), calling_convention="callback")

    with pytest.raises(BuildError, match="refused"):
        await builder.build(record, [])


@pytest.mark.asyncio
async def test_callbacks_supplying_both_error_and_value_are_ambiguous(builder):
    record = make_record(
        "db", lambda callback: callback(RuntimeError("oops"), "value"), calling_convention="callback"
    )

    with pytest.raises(BuildError) as error:
        await builder.build(record, [])

    assert isinstance(error.value.cause, AmbiguousReturnError)


@pytest.mark.asyncio
async def test_callbacks_supplying_neither_are_ambiguous(builder):
    record = make_record("db", lambda callback: callback(None, None), calling_convention="callback")

    with pytest.raises(BuildError) as error:
        await builder.build(record, [])

    assert isinstance(error.value.cause, AmbiguousReturnError)


@pytest.mark.asyncio
async def test_only_the_first_callback_counts(builder):
    def connect(callback):
        callback(None, "first")
        callback(None, "second")

    record = make_record("db", connect, calling_convention="callback")

    assert await builder.build(record, []) == "first"
