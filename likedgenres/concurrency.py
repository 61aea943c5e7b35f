"""
Bounded-concurrency map over a work list.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def map_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T, int], R],
) -> List[R]:
    """Apply `fn(item, index)` to every item with at most `concurrency` calls in flight.

    Workers share one index counter: each pulls the next unclaimed index,
    runs `fn` and stores the result in that slot, so the returned list is
    in input order whatever order the calls finish in. The mapper never
    skips or retries an item; retry/backoff belongs inside `fn`. If `fn`
    raises, the first exception is re-raised once all workers stop.

    Args:
        items: work items
        concurrency: maximum simultaneous calls (values below 1 mean 1)
        fn: mapping function, called with the item and its index

    Returns:
        Results aligned with `items`.
    """
    items = list(items)
    results: List[R] = [None] * len(items)  # type: ignore[list-item]
    if not items:
        return results

    lock = threading.Lock()
    next_index = 0

    def worker() -> None:
        nonlocal next_index
        while True:
            with lock:
                idx = next_index
                next_index += 1
            if idx >= len(items):
                return
            results[idx] = fn(items[idx], idx)

    num_workers = max(1, min(concurrency, len(items)))
    with ThreadPoolExecutor(max_workers=num_workers) as executor:
        futures = [executor.submit(worker) for _ in range(num_workers)]
    # Executor has joined; surface the first worker failure, if any
    for future in futures:
        future.result()
    return results
