"""Shared worker pool for side effects that must not block a response."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from contextvars import copy_context
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="ticketing-bg")


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Run *func* on the shared pool with the caller's structlog context.

    Exceptions raised by *func* are logged as ``background_task_failed`` and
    re-raised into the returned future.
    """

    context = copy_context()
    if trace_id is not None:
        context.run(bind_contextvars, trace_id=trace_id)

    def runner() -> Any:
        try:
            return func(*args, **kwargs)
        except Exception:
            structlog.get_logger().exception(
                "background_task_failed",
                task=getattr(func, "__name__", repr(func)),
            )
            raise

    return _executor.submit(context.run, runner)
