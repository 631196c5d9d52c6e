#!/usr/bin/env python3
"""
Bounded-concurrency execution of independent file-level operations.

Workers run on a fixed thread pool and must hold a semaphore slot while they
execute. Each finished item posts (index, status, result) to a queue; the
calling thread is the only collector, so it alone owns the completed counter
and invokes the progress callback. Failed items are logged and dropped from
the returned list, which keeps the original order of the successful ones.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence

from models.base_models import BatchItem

DEFAULT_MAX_CONCURRENCY = 3

_OK = 'ok'
_FAILED = 'failed'
_CANCELLED = 'cancelled'


class CancellationToken:
    """Cooperative cancellation flag checked before each slot acquisition and between items"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class BatchOrchestrator:
    """Runs a worker over many items with at most max_concurrency in flight"""

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.logger = logging.getLogger(self.__class__.__name__)
        self.failed: List[int] = []
        self.cancelled: List[int] = []

    def run(self, items: Sequence[Any], worker: Callable[[Any], Any],
            max_concurrency: Optional[int] = None,
            on_progress: Optional[Callable[[int, int, Any], None]] = None,
            cancel_token: Optional[CancellationToken] = None) -> List[Any]:
        """
        Execute worker(item) for every item.

        on_progress(completed, total, item) is called once per finished item
        from the calling thread. Returns the successful results in input order.
        """
        limit = max_concurrency or self.max_concurrency
        if limit < 1:
            raise ValueError("max_concurrency must be at least 1")

        batch = [BatchItem(index=i, payload=item) for i, item in enumerate(items)]
        total = len(batch)
        self.failed = []
        self.cancelled = []
        if total == 0:
            return []

        slots: List[Any] = [None] * total
        succeeded = [False] * total
        semaphore = threading.BoundedSemaphore(limit)
        results: queue.Queue = queue.Queue()

        def execute(entry: BatchItem):
            if cancel_token is not None and cancel_token.cancelled:
                results.put((entry, _CANCELLED, None))
                return
            with semaphore:
                if cancel_token is not None and cancel_token.cancelled:
                    results.put((entry, _CANCELLED, None))
                    return
                try:
                    value = worker(entry.payload)
                except Exception as e:
                    self.logger.error(f"Batch item {entry.index} failed: {e}", exc_info=True)
                    results.put((entry, _FAILED, e))
                    return
            results.put((entry, _OK, value))

        self.logger.info(f"Starting batch of {total} items (max {limit} concurrent)")
        with ThreadPoolExecutor(max_workers=limit, thread_name_prefix='batch') as executor:
            for entry in batch:
                executor.submit(execute, entry)

            completed = 0
            for _ in range(total):
                entry, status, value = results.get()
                if status == _OK:
                    slots[entry.index] = value
                    succeeded[entry.index] = True
                elif status == _FAILED:
                    self.failed.append(entry.index)
                else:
                    self.cancelled.append(entry.index)
                    continue

                completed += 1
                if on_progress is not None:
                    try:
                        on_progress(completed, total, entry.payload)
                    except Exception as e:
                        self.logger.warning(f"Progress callback failed: {e}")

        if self.cancelled:
            self.logger.info(f"Batch cancelled, {len(self.cancelled)} items not run")
        self.logger.info(f"Batch finished: {sum(succeeded)} succeeded, {len(self.failed)} failed")
        return [slots[i] for i in range(total) if succeeded[i]]
