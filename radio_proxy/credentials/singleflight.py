"""
Single-flight request coalescing.

Concurrent callers asking for the same key share one underlying operation
and all observe its result or exception.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class SingleFlight(Generic[K, V]):
    """
    Map of key -> in-flight task.

    A task is registered before the first await and removes itself in its own
    ``finally`` block, so by the time any waiter resumes the key is free again.

    Usage:
        flight: SingleFlight[str, CredentialSet] = SingleFlight()
        result = await flight.do("903", lambda: extractor.extract("903"))
    """

    def __init__(self) -> None:
        self._inflight: dict[K, "asyncio.Task[V]"] = {}

    def __contains__(self, key: K) -> bool:
        return key in self._inflight

    def keys(self) -> list[K]:
        """Keys with an operation currently in flight."""
        return list(self._inflight)

    async def do(self, key: K, factory: Callable[[], Awaitable[V]]) -> V:
        """
        Run factory() for key, or join the run already in flight.

        Args:
            key: Coalescing key
            factory: Zero-argument coroutine function producing the value

        Returns:
            The shared result

        Raises:
            Whatever the shared operation raised
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, factory))
            self._inflight[key] = task
        else:
            logger.debug(f"Joining in-flight operation for {key}")

        # Shield so one cancelled caller does not cancel the shared work
        return await asyncio.shield(task)

    async def _run(self, key: K, factory: Callable[[], Awaitable[V]]) -> V:
        try:
            return await factory()
        finally:
            self._inflight.pop(key, None)
