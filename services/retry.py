# ============================================================================
# TIMEOUTS & BACKGROUND RETRY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Service support - Bounded calls and out-of-band retries
# PURPOSE: Deadline wrapper and exponential-backoff retry scheduler
# CREATED: 08 OCT 2026
# ============================================================================
"""
Timeouts & Background Retry

call_with_timeout
    Runs one awaitable under asyncio.wait_for. A timeout becomes
    UnavailableError; cancellation of the caller is re-raised untouched.

RetryScheduler
    Runs an operation in a background task with bounded attempts and
    exponential backoff. Used for writes that follow a committed record
    write (metadata mirror, soft-delete deassociation), so the request that
    triggered them is never blocked or failed by them.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set, TypeVar

from core.config.defaults import RetryDefaults
from core.errors import ServiceError, UnavailableError
from core.logging import get_logger, log_context, ComponentType

logger = get_logger("services.retry", ComponentType.SERVICE)

T = TypeVar("T")


async def call_with_timeout(awaitable: Awaitable[T], timeout: Optional[float], what: str) -> T:
    """
    Await with a deadline.

    Raises:
        UnavailableError: the deadline expired
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"{what} timed out after {timeout}s")
        raise UnavailableError(f"{what} timed out", timeout_seconds=timeout) from e


class RetryScheduler:
    """
    Background retries with exponential backoff.

    Attempt n (1-based) waits policy.delay_for(n - 1) before running, so
    the first attempt starts immediately. Non-retryable ServiceErrors stop
    the loop early. ``on_exhausted`` runs once when the budget is spent.
    """

    def __init__(
        self,
        policy: RetryDefaults,
        attempt_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        name: str,
        operation: Callable[[], Awaitable[object]],
        on_exhausted: Optional[Callable[[Exception], None]] = None,
        first_delay_attempt: int = 1,
    ) -> asyncio.Task:
        """
        Start retrying ``operation`` in the background.

        Args:
            name: Label used in logs and as the task name
            operation: Zero-arg factory returning a fresh awaitable per attempt
            on_exhausted: Called with the last error if every attempt fails
            first_delay_attempt: Backoff step applied before the first attempt
                (1 = wait base_delay; 0 = start immediately)
        """
        task = asyncio.create_task(
            self._run(name, operation, on_exhausted, first_delay_attempt),
            name=f"retry-{name}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        name: str,
        operation: Callable[[], Awaitable[object]],
        on_exhausted: Optional[Callable[[Exception], None]],
        first_delay_attempt: int,
    ) -> bool:
        last_error: Optional[Exception] = None
        with log_context(operation=f"retry:{name}"):
            for attempt in range(1, self.policy.max_attempts + 1):
                delay = self.policy.delay_for(first_delay_attempt + attempt - 1)
                if delay > 0:
                    await self._sleep(delay)
                try:
                    await call_with_timeout(operation(), self.attempt_timeout, name)
                    if attempt > 1:
                        logger.info(f"{name} succeeded on attempt {attempt}")
                    return True
                except asyncio.CancelledError:
                    raise
                except ServiceError as e:
                    last_error = e
                    if not e.retryable:
                        logger.error(f"{name} failed with non-retryable {e.code}: {e.message}")
                        break
                    logger.warning(
                        f"{name} attempt {attempt}/{self.policy.max_attempts} failed: {e.message}"
                    )
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"{name} attempt {attempt}/{self.policy.max_attempts} failed: {e}"
                    )

            logger.error(f"{name} gave up after {self.policy.max_attempts} attempts")
            if on_exhausted is not None and last_error is not None:
                on_exhausted(last_error)
            return False

    async def drain(self) -> None:
        """Wait for every scheduled retry to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding retries."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


__all__ = ["call_with_timeout", "RetryScheduler"]
