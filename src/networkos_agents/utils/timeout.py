"""Timeout utilities for the agent core.

Blocking calls to the reasoning engine and to capability collaborators are
network-bound. call_with_timeout bounds their wall-clock time. It runs the
call on a worker thread, so it works off the main thread (unlike SIGALRM) and
inside the orchestrator's dispatch pool.
"""

import concurrent.futures
from typing import Any, Callable, TypeVar, Optional

T = TypeVar('T')


class OperationTimeoutError(TimeoutError):
    """Raised when a bounded call does not finish in time."""

    def __init__(self, operation: str, timeout_sec: float):
        super().__init__(f"{operation} timed out after {timeout_sec:g} seconds")
        self.operation = operation
        self.timeout_sec = timeout_sec


def call_with_timeout(func: Callable[..., T],
                      timeout_sec: Optional[float],
                      *args: Any,
                      operation: Optional[str] = None,
                      **kwargs: Any) -> T:
    """Call ``func`` and raise OperationTimeoutError if it exceeds ``timeout_sec``.

    The worker thread cannot be killed; on timeout it is abandoned and its
    eventual result discarded.

    Args:
        func: Callable to run
        timeout_sec: Maximum execution time in seconds (None or <= 0 disables the bound)
        operation: Name used in the error message, defaults to the function name

    Returns:
        Whatever ``func`` returns
    """
    if not timeout_sec or timeout_sec <= 0:
        return func(*args, **kwargs)

    name = operation or getattr(func, "__name__", "operation")
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="bounded")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout_sec)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise OperationTimeoutError(name, timeout_sec) from None
    finally:
        executor.shutdown(wait=False)

