"""Invocation of provider factories under their calling conventions.

This module provides the InstanceBuilder class, which turns a
:class:`~abdicate.domain.ProviderRecord` and its already-resolved dependency
instances into an instance. Each calling convention has its own invoker; all of
them are coroutines so callers can treat every provider alike.
"""

import asyncio
import concurrent.futures
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence

from abdicate.domain import CallingConvention, ProviderRecord
from abdicate.errors import AmbiguousReturnError, BuildError

__all__ = ["InstanceBuilder"]

logger = logging.getLogger(__name__)

Invoker = Callable[[ProviderRecord, Sequence[Any]], Awaitable[Any]]


async def _invoke_direct(record: ProviderRecord, args: Sequence[Any]) -> Any:
    return record.factory(*args)


async def _invoke_future(record: ProviderRecord, args: Sequence[Any]) -> Any:
    handle = record.factory(*args)
    if isinstance(handle, concurrent.futures.Future):
        return await asyncio.wrap_future(handle)
    if not inspect.isawaitable(handle):
        raise TypeError(
            f"Factory for '{record.name}' is declared to return a future "
            f"but returned {type(handle).__name__}"
        )
    return await handle


async def _invoke_callback(record: ProviderRecord, args: Sequence[Any]) -> Any:
    loop = asyncio.get_running_loop()
    settled = loop.create_future()

    def settle(error, value):
        if settled.done():
            logger.warning("Callback for '%s' invoked more than once; ignoring", record.name)
        elif error is not None and value is not None:
            settled.set_exception(
                AmbiguousReturnError(f"Callback for '{record.name}' received both an error and a value")
            )
        elif error is not None:
            settled.set_exception(error if isinstance(error, BaseException) else RuntimeError(error))
        elif value is None:
            settled.set_exception(
                AmbiguousReturnError(f"Callback for '{record.name}' received neither an error nor a value")
            )
        else:
            settled.set_result(value)

    def callback(error=None, value=None):
        loop.call_soon_threadsafe(settle, error, value)

    record.factory(*args, callback)
    return await settled


_INVOKERS: dict[CallingConvention, Invoker] = {
    CallingConvention.DIRECT: _invoke_direct,
    CallingConvention.FUTURE: _invoke_future,
    CallingConvention.CALLBACK: _invoke_callback,
}


class InstanceBuilder:
    """Build instances from provider records."""

    async def build(self, record: ProviderRecord, args: Sequence[Any]) -> Any:
        """Invoke the record's factory with the resolved dependency instances.

        Args:
            record: The provider being built.
            args: Instances matching ``record.dependencies`` positionally.

        Returns:
            The produced instance, or the literal instance itself.

        Raises:
            BuildError: If the factory raised, its future failed, or its callback
                reported an error.
        """
        if record.is_literal_instance:
            return record.factory

        logger.debug("Building '%s' (%s)", record.name, record.calling_convention.value)
        try:
            instance = await _INVOKERS[record.calling_convention](record, args)
        except Exception as e:
            raise BuildError(record.name, e) from e

        logger.debug("Built '%s'", record.name)
        return instance
