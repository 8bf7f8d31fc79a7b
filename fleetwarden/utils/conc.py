"""Concurrent utilities for fanning work out over a bounded thread pool."""

import contextvars
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor


def map_async[I, O](
    fn: Callable[[I], O],
    items: Iterable[I],
    concurrency: int | None = None,
    *,
    name: str = "fleet-worker",
) -> Iterator[O]:
    """Apply function to items concurrently, preserving order.

    Each call runs in its own copy of the caller's context, so bound
    contextvars (loguru contextualize, for instance) reach worker threads.

    Args:
        fn: Function to apply to each item.
        items: Items to process.
        concurrency: Max concurrent workers. None = len(items).
        name: Thread name prefix for the pool.

    Yields:
        Results in same order as input items. The first exception raised
        by ``fn`` propagates when its result is reached.

    Example:
        >>> list(map_async(clean_cloud, clouds, concurrency=4))
        [report1, report2, ...]
    """
    items_list = list(items)
    if not items_list:
        return

    workers = max(1, concurrency if concurrency is not None else len(items_list))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name) as executor:
        futures = [
            executor.submit(contextvars.copy_context().run, fn, item)
            for item in items_list
        ]
        for future in futures:
            yield future.result()
