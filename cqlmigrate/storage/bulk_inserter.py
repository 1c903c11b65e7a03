# ==============================================
# BulkInserter
# ==============================================
#
# PURPOSE:
#   Submit bound INSERT requests against the target table at high
#   throughput without overwhelming its connection pool.
#
# ALGORITHM:
#   1. Accumulate bound requests into a batch; a batch is executed
#      once it reaches batch_size (100,000) or input is exhausted.
#   2. Before each request: throttle.acquire() (blocks at the high
#      watermark until the in-flight count drops to the low one).
#   3. execute_async() the request and keep its pending handle,
#      without waiting for it individually.
#   4. After the whole batch is issued, wait for every handle: one
#      barrier per batch. Batches are never pipelined.
#   5. Failures of one batch are collected into an
#      AggregateBatchError. Without an UnhandledTimeoutError among
#      them every failure is logged and the run continues; the batch
#      is not retried as a whole. With one (read timeout /
#      unavailable) the aggregate is raised and the phase aborts.
#
#   Write timeouts are retried per request by the WriteRetryPolicy:
#   the throttle slot stays held while the retry is pending. Each
#   failure category has its own retry count per request. Delayed
#   resubmissions run on one RetryScheduler thread per inserter.
#
# CLASSES:
# --------
# - RetryScheduler     → runs delayed callbacks on a single worker thread
# - PendingWrite       → one request, its retries and completion event
# - BatchResult        → outcome of one batch
# - InsertReport       → outcome of a whole insert() call
# - BulkInserter
#     insert(requests: Iterable) -> InsertReport
#
# ==============================================

import heapq
import itertools
import logging
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Iterable, List, Optional, Tuple

from cqlmigrate.errors import AggregateBatchError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100_000


class RetryScheduler:
    """
    Runs delayed callbacks, earliest due first, on one daemon thread.

    Called like a timer: scheduler(delay, callback). The thread starts
    on the first call and is joined by stop(); a later call starts a
    new one.
    """

    def __init__(self, name: str = "cqlmigrate-retry"):
        self.name = name
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._sequence = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._stopping = False

    def __call__(self, delay: float, callback: Callable[[], None]) -> None:
        with self._cond:
            due = time.monotonic() + max(0.0, delay)
            heapq.heappush(self._queue, (due, next(self._sequence), callback))
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()
            self._cond.notify()

    def _next_due(self) -> Optional[Callable[[], None]]:
        with self._cond:
            while not self._stopping:
                if not self._queue:
                    self._cond.wait()
                    continue
                remaining = self._queue[0][0] - time.monotonic()
                if remaining <= 0:
                    return heapq.heappop(self._queue)[2]
                self._cond.wait(remaining)
            return None

    def _run(self) -> None:
        while True:
            callback = self._next_due()
            if callback is None:
                return
            try:
                callback()
            except Exception:
                logger.exception("Scheduled retry raised")

    def stop(self) -> None:
        """Drop pending callbacks and join the worker thread."""
        with self._cond:
            thread = self._thread
            self._stopping = True
            self._queue.clear()
            self._cond.notify_all()
        if thread is not None:
            thread.join()
        with self._cond:
            self._thread = None
            self._stopping = False


class PendingWrite:
    """Tracks one request from first submission to final outcome."""

    def __init__(self, inserter: "BulkInserter", request: Any):
        self._inserter = inserter
        self.request = request
        self.consistency = getattr(request, "consistency_level", None)
        self.retries_by_category: Counter = Counter()
        self.error: Optional[BaseException] = None
        self._done = threading.Event()

    @property
    def retries(self) -> int:
        return sum(self.retries_by_category.values())

    def submit(self) -> None:
        try:
            future = self._inserter.connection.execute_async(self.request)
        except Exception as e:
            self._on_error(e)
            return
        future.add_callbacks(self._on_success, self._on_error)

    def _on_success(self, _rows) -> None:
        self._finish(None)

    def _on_error(self, error: BaseException) -> None:
        policy = self._inserter.retry_policy
        category = policy.category_of(error)
        decision = policy.decide(error, self.consistency, self.retries_by_category[category])
        if decision.retry:
            self.retries_by_category[category] += 1
            if decision.consistency is not None:
                self.request.consistency_level = decision.consistency
            self._inserter.schedule(decision.delay, self.submit)
            return
        self._finish(decision.error or error)

    def _finish(self, error: Optional[BaseException]) -> None:
        self.error = error
        self._inserter.throttle.release()
        self._done.set()

    def wait(self) -> Optional[BaseException]:
        self._done.wait()
        return self.error


@dataclass
class BatchResult:
    batch_number: int
    size: int
    failures: int = 0
    retries: int = 0
    elapsed_seconds: float = 0.0


@dataclass
class InsertReport:
    batches: List[BatchResult] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return sum(b.size for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.failures for b in self.batches)

    @property
    def retries(self) -> int:
        return sum(b.retries for b in self.batches)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "batches": len(self.batches),
            "batch_sizes": [b.size for b in self.batches],
            "records_submitted": self.submitted,
            "records_failed": self.failed,
            "retries": self.retries,
        }


class BulkInserter:
    def __init__(
        self,
        connection,
        throttle,
        retry_policy,
        batch_size: int = DEFAULT_BATCH_SIZE,
        scheduler: Optional[Callable[[float, Callable[[], None]], None]] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.connection = connection
        self.throttle = throttle
        self.retry_policy = retry_policy
        self.batch_size = batch_size
        self._owned_scheduler = RetryScheduler() if scheduler is None else None
        self.schedule = scheduler or self._owned_scheduler

    def insert(self, requests: Iterable[Any]) -> InsertReport:
        """
        Execute every request, batch by batch.

        Args:
            requests: Bound requests, consumed lazily. An exception raised
                      while producing them (e.g. ParseError) abandons the
                      batch being accumulated and propagates.

        Returns:
            InsertReport with per-batch sizes, failures and retries.

        Raises:
            AggregateBatchError: If a write of a batch failed outside retry
                                 policy (is_fatal() is true).
        """
        report = InsertReport()
        batch: List[Any] = []
        try:
            for request in requests:
                batch.append(request)
                if len(batch) >= self.batch_size:
                    report.batches.append(self._execute_batch(batch, len(report.batches) + 1))
                    batch = []
            if batch:
                report.batches.append(self._execute_batch(batch, len(report.batches) + 1))
        finally:
            if self._owned_scheduler is not None:
                self._owned_scheduler.stop()
        return report

    def _execute_batch(self, batch: List[Any], batch_number: int) -> BatchResult:
        logger.info("Inserting %d records into table (batch %d)...", len(batch), batch_number)
        start_time = time.perf_counter()

        pending: Deque[PendingWrite] = deque()
        for request in batch:
            self.throttle.acquire()
            write = PendingWrite(self, request)
            pending.append(write)
            write.submit()

        errors = [error for error in (w.wait() for w in pending) if error is not None]
        result = BatchResult(
            batch_number=batch_number,
            size=len(batch),
            failures=len(errors),
            retries=sum(w.retries for w in pending),
            elapsed_seconds=time.perf_counter() - start_time,
        )

        if errors:
            aggregate = AggregateBatchError(errors, batch_number)
            if aggregate.is_fatal():
                raise aggregate
            for error in aggregate.flatten():
                logger.error("✗ Batch %d write failed: %s: %s", batch_number, type(error).__name__, error)

        logger.info("✓ Batch %d: %d records in %.2fs (%d failed, %d retries)",
                    batch_number, result.size, result.elapsed_seconds, result.failures, result.retries)
        return result
