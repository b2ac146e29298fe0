"""Embarrassingly parallel task mapping over independent batch axes."""

import logging
from concurrent.futures import ProcessPoolExecutor
from multiprocessing import cpu_count
from typing import Any, Callable, Iterable, List, Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)


def resolve_workers(n_workers: int) -> int:
    """-1 means all available cores but one."""
    if n_workers == -1:
        return max(cpu_count() - 1, 1)
    return max(int(n_workers), 1)


def map_tasks(
    func: Callable[[Any], Any],
    items: Iterable[Any],
    n_workers: int = 1,
    desc: Optional[str] = None,
    progress: Optional[Callable[[Any], None]] = None,
    quiet: bool = False,
) -> List[Any]:
    """Apply `func` to every item, returning results in input order.

    With more than one worker the items are submitted to a process pool. Each
    task must read its own inputs and write its own outputs; no state is shared.
    Exceptions raised by a task propagate to the caller.

    Args:
        func: Picklable callable taking one item.
        items: Task items.
        n_workers: Number of processes, 1 runs serially, -1 uses all cores but one.
        desc: Progress bar label.
        progress: Optional callback invoked with each item once its task completes.
        quiet: Disable the progress bar.
    """
    items = list(items)
    n_workers = resolve_workers(n_workers)
    results: List[Any] = []

    if n_workers == 1 or len(items) <= 1:
        for item in tqdm(items, desc=desc, disable=quiet):
            results.append(func(item))
            if progress is not None:
                progress(item)
        return results

    logger.info("Using %d workers for %d tasks", n_workers, len(items))
    with ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(func, item) for item in items]
        for item, future in tqdm(zip(items, futures), total=len(futures), desc=desc, disable=quiet):
            results.append(future.result())
            if progress is not None:
                progress(item)
    return results
