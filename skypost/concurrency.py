from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from contextvars import copy_context
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")


def run_indexed_tasks(
    tasks: Sequence[Callable[[], T]],
    *,
    max_workers: int,
) -> list[T]:
    """
    Run independent tasks, possibly concurrently, and return results in input order.

    The first task failure cancels whatever has not started yet and is re-raised.
    """
    if not tasks:
        return []
    if max_workers <= 1 or len(tasks) == 1:
        return [task() for task in tasks]

    results: dict[int, T] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(tasks))) as executor:
        future_to_index = {
            executor.submit(copy_context().run, task): index
            for index, task in enumerate(tasks)
        }
        try:
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                results[index] = future.result()
        except Exception:
            for future in future_to_index:
                future.cancel()
            raise

    return [results[index] for index in range(len(tasks))]
