import threading
import time
import unittest

from src.batch import BatchOrchestrator, CancellationToken, ProgressThrottle


class ConcurrencyGauge:
    """Worker that records how many calls overlap"""

    def __init__(self, delay=0.01):
        self.delay = delay
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def __call__(self, value):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return value * 2
        finally:
            with self.lock:
                self.active -= 1


class BatchOrchestratorTests(unittest.TestCase):
    def test_concurrency_never_exceeds_limit(self):
        limit = 3
        for multiple in (1, 2, 10):
            items = list(range(limit * multiple))
            gauge = ConcurrencyGauge()
            results = BatchOrchestrator(limit).run(items, gauge)
            self.assertLessEqual(gauge.peak, limit, f"{multiple}x batch")
            self.assertEqual(results, [i * 2 for i in items])

    def test_per_call_limit_overrides_default(self):
        gauge = ConcurrencyGauge()
        BatchOrchestrator(5).run(list(range(8)), gauge, max_concurrency=1)
        self.assertEqual(gauge.peak, 1)

    def test_failures_are_dropped_and_order_kept(self):
        def worker(value):
            if value % 3 == 0:
                raise ValueError(f"bad {value}")
            return value

        orchestrator = BatchOrchestrator(2)
        results = orchestrator.run(list(range(7)), worker)
        self.assertEqual(results, [1, 2, 4, 5])
        self.assertEqual(sorted(orchestrator.failed), [0, 3, 6])

    def test_progress_runs_on_the_calling_thread_once_per_item(self):
        calls = []
        threads = set()

        def on_progress(completed, total, item):
            calls.append((completed, total))
            threads.add(threading.get_ident())

        BatchOrchestrator(3).run(list(range(6)), ConcurrencyGauge(0.001), on_progress=on_progress)
        self.assertEqual(calls, [(n, 6) for n in range(1, 7)])
        self.assertEqual(threads, {threading.get_ident()})

    def test_progress_callback_errors_do_not_stop_the_batch(self):
        def on_progress(completed, total, item):
            raise RuntimeError("display closed")

        results = BatchOrchestrator(2).run([1, 2, 3], ConcurrencyGauge(0), on_progress=on_progress)
        self.assertEqual(results, [2, 4, 6])

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        orchestrator = BatchOrchestrator(2)
        self.assertEqual(orchestrator.run([1, 2, 3], ConcurrencyGauge(0), cancel_token=token), [])
        self.assertEqual(sorted(orchestrator.cancelled), [0, 1, 2])

    def test_cancellation_between_items(self):
        token = CancellationToken()

        def worker(value):
            token.cancel()
            return value

        orchestrator = BatchOrchestrator(1)
        results = orchestrator.run(['a', 'b', 'c'], worker, cancel_token=token)
        self.assertEqual(results, ['a'])
        self.assertEqual(sorted(orchestrator.cancelled), [1, 2])

    def test_empty_batch_and_invalid_limit(self):
        self.assertEqual(BatchOrchestrator().run([], ConcurrencyGauge()), [])
        with self.assertRaises(ValueError):
            BatchOrchestrator(0)


class ProgressThrottleTests(unittest.TestCase):
    def test_emits_on_time_count_and_last_item(self):
        now = [0.0]
        emitted = []
        throttle = ProgressThrottle(lambda completed, total, item: emitted.append(completed),
                                    interval_ms=500, every=3, clock=lambda: now[0])

        for completed, at in [(1, 0.0), (2, 0.1), (3, 0.2), (4, 0.3), (5, 0.9), (6, 1.0), (10, 1.1)]:
            now[0] = at
            throttle(completed, 10, None)

        self.assertEqual(emitted, [1, 4, 5, 10])


if __name__ == '__main__':
    unittest.main()
