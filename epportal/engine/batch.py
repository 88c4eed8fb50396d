"""
Concurrent reads with per-item failure isolation.

N independent fetches are issued together and awaited jointly. A failed
fetch is logged and dropped; the others still come back, in input order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar('K')
T = TypeVar('T')

DEFAULT_MAX_WORKERS = 8


def fetch_many(
    keys: Sequence[K],
    fetch: Callable[[K], Optional[T]],
    max_workers: int = DEFAULT_MAX_WORKERS,
    label: str = 'record',
) -> List[T]:
    """
    Run fetch(key) for every key concurrently.

    Returns results in the order of keys, skipping keys whose fetch raised
    or returned None.
    """
    if not keys:
        return []

    workers = max(1, min(max_workers, len(keys)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='epportal-fetch') as pool:
        futures = [(key, pool.submit(fetch, key)) for key in keys]

        results: List[T] = []
        failed = 0
        for key, future in futures:
            try:
                value = future.result()
            except Exception as e:
                failed += 1
                logger.warning(f"Failed to load {label} {key}: {type(e).__name__}: {e}")
                continue
            if value is not None:
                results.append(value)

    if failed:
        logger.warning(f"fetch_many: {failed}/{len(keys)} {label} fetches failed and were dropped")
    logger.debug(f"fetch_many: loaded {len(results)}/{len(keys)} {label}s")
    return results
