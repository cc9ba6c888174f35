"""Delivery state machine progression and retry timing.

Each delivery runs as an independent asyncio task:

    pending -> in_flight -> delivered
                         -> retry_scheduled -> in_flight -> ...
                         -> exhausted

Retries are not per-delivery sleeps. Due times live in a single min-heap
keyed by ``next_retry_at`` and one timer task wakes at the earliest due
time and spawns the attempts that are ready. Every transition is persisted
to the delivery store so ``recover()`` can resume after a restart.

Nothing raised inside a delivery's lifecycle escapes its task.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from hookwire.config import Settings
from hookwire.config import settings as default_settings
from hookwire.logging import delivery_context, get_logger
from hookwire.models import AttemptResult, DeliveryState, utcnow

if TYPE_CHECKING:
    from hookwire.models import Delivery, Outcome, RetryPolicy, Subscriber
    from hookwire.storage import DeliveryStore, SubscriberRegistry

    from .executor import DeliveryExecutor
    from .stats import StatisticsAggregator

logger = get_logger(__name__)

# Wait before retrying an attempt whose subscriber lookup failed
LOOKUP_RETRY_DELAY = timedelta(seconds=5)


def compute_retry_delay(policy: RetryPolicy, attempt: int) -> float:
    """Compute the backoff delay in milliseconds.

    ``attempt`` is the zero-based index of the attempt that just failed, so
    the first retry waits ``base_delay_ms``:

        delay = min(base_delay_ms * backoff_multiplier ** attempt, max_delay_ms)

    Example:
        base 1000, multiplier 2, cap 30000 -> 1000, 2000, 4000, 8000, 16000, 30000
    """
    delay = policy.base_delay_ms * policy.backoff_multiplier ** max(0, attempt)
    return float(min(delay, policy.max_delay_ms))


class RetryScheduler:
    """Drives deliveries through their state machine.

    Example:
        ```python
        scheduler = RetryScheduler(executor, store, registry, aggregator)
        scheduler.start()
        scheduler.submit(delivery, subscriber)
        await scheduler.join()
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        executor: DeliveryExecutor,
        store: DeliveryStore,
        registry: SubscriberRegistry,
        stats: StatisticsAggregator,
        settings: Settings | None = None,
    ) -> None:
        self._executor = executor
        self._store = store
        self._registry = registry
        self._stats = stats
        self._settings = settings or default_settings

        # Live (non-terminal) deliveries owned by this scheduler
        self._deliveries: dict[str, Delivery] = {}
        self._subscribers: dict[str, Subscriber] = {}
        self._in_flight: set[str] = set()
        self._cancel_requested: dict[str, str] = {}
        self._tasks: set[asyncio.Task[None]] = set()

        # Min-heap of (due, seq, delivery_id); _scheduled holds the valid due time
        self._heap: list[tuple[datetime, int, str]] = []
        self._scheduled: dict[str, datetime] = {}
        self._seq = itertools.count()

        self._wakeup = asyncio.Event()
        self._progress = asyncio.Event()
        self._timer_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Whether the retry timer is running."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def scheduled_count(self) -> int:
        """Number of deliveries waiting for a retry."""
        return len(self._scheduled)

    def next_retry_at(self, delivery_id: str) -> datetime | None:
        """Due time of a scheduled retry, if any."""
        return self._scheduled.get(delivery_id)

    def start(self) -> None:
        """Start the retry timer. Safe to call more than once."""
        if self.running:
            return
        self._timer_task = asyncio.create_task(self._timer_loop(), name="hookwire-retry-timer")

    async def stop(self) -> None:
        """Stop the retry timer and wait for running attempts to finish.

        Scheduled retries stay persisted and are picked up by ``recover()``.
        """
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def join(self) -> None:
        """Wait until no attempt is running and no retry is scheduled."""
        while self._tasks or self._scheduled:
            if self._tasks:
                await asyncio.wait(set(self._tasks))
                continue
            self.start()
            self._progress.clear()
            await self._progress.wait()

    def submit(self, delivery: Delivery, subscriber: Subscriber) -> None:
        """Take ownership of a new delivery and attempt it immediately."""
        self._deliveries[delivery.id] = delivery
        self._subscribers[delivery.id] = subscriber
        self._spawn(delivery.id)

    async def cancel(self, delivery_id: str, reason: str = "cancelled") -> bool:
        """Cancel a delivery.

        A waiting delivery is terminated immediately without consuming an
        attempt. A delivery whose attempt is on the wire keeps that attempt
        but will not be retried.

        Returns:
            True if the delivery was cancelled or marked for cancellation.
        """
        delivery = self._deliveries.get(delivery_id)
        if delivery is None:
            delivery = await self._store.get_delivery(delivery_id)
        if delivery is None or delivery.is_terminal:
            return False

        # Only an attempt already on the wire defers cancellation
        if delivery_id in self._in_flight and delivery.state == DeliveryState.IN_FLIGHT:
            self._cancel_requested[delivery_id] = reason
            logger.info("Cancellation requested for in-flight delivery", delivery_id=delivery_id)
            return True

        delivery.cancel(reason)
        await self._persist(delivery)
        self._forget(delivery_id)
        self._progress.set()
        logger.info("Delivery cancelled", delivery_id=delivery_id, reason=reason)
        return True

    async def recover(self) -> int:
        """Re-enqueue unfinished deliveries left by a previous process.

        Pending deliveries are attempted immediately. Retry-scheduled ones
        keep their due time (overdue ones fire at once). In-flight ones lost
        their outcome; they are rescheduled now, or exhausted if the lost
        attempt was the last.

        Returns:
            Number of deliveries re-enqueued.
        """
        deliveries = await self._store.get_unfinished_deliveries(
            limit=self._settings.recovery_batch_size
        )
        recovered = 0

        for delivery in deliveries:
            if delivery.id in self._deliveries:
                continue

            if delivery.state == DeliveryState.IN_FLIGHT:
                if delivery.attempts >= delivery.max_attempts:
                    await self._exhaust_interrupted(delivery)
                    continue
                delivery.mark_interrupted(utcnow())
                await self._persist(delivery)

            self._deliveries[delivery.id] = delivery
            if delivery.state == DeliveryState.PENDING:
                self._spawn(delivery.id)
            else:
                self._schedule(delivery.id, delivery.next_retry_at or utcnow())
            recovered += 1

        if recovered:
            logger.info("Recovered unfinished deliveries", count=recovered)
        return recovered

    def _spawn(self, delivery_id: str) -> None:
        task = asyncio.create_task(self._run(delivery_id), name=f"delivery:{delivery_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._progress.set()

    def _schedule(self, delivery_id: str, due: datetime) -> None:
        self._scheduled[delivery_id] = due
        heapq.heappush(self._heap, (due, next(self._seq), delivery_id))
        self._wakeup.set()
        self.start()

    def _forget(self, delivery_id: str) -> None:
        self._deliveries.pop(delivery_id, None)
        self._subscribers.pop(delivery_id, None)
        self._cancel_requested.pop(delivery_id, None)
        self._scheduled.pop(delivery_id, None)

    async def _timer_loop(self) -> None:
        while True:
            self._wakeup.clear()
            now = utcnow()

            while self._heap and self._heap[0][0] <= now:
                due, _, delivery_id = heapq.heappop(self._heap)
                # Skip entries superseded by a reschedule or removed by cancel
                if self._scheduled.get(delivery_id) != due:
                    continue
                del self._scheduled[delivery_id]
                self._spawn(delivery_id)

            timeout = (self._heap[0][0] - now).total_seconds() if self._heap else None
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except TimeoutError:
                pass

    async def _run(self, delivery_id: str) -> None:
        with delivery_context(delivery_id):
            try:
                await self._attempt(delivery_id)
                # Cancellation requested after the attempt outcome was handled
                reason = self._cancel_requested.pop(delivery_id, None)
                if reason is not None:
                    await self.cancel(delivery_id, reason)
            except Exception:
                logger.exception("Delivery pipeline error")

    async def _attempt(self, delivery_id: str) -> None:
        delivery = self._deliveries.get(delivery_id)
        if delivery is None or delivery.is_terminal:
            return
        if delivery_id in self._in_flight:
            logger.warning("Attempt already in flight, skipping", delivery_id=delivery_id)
            return

        self._in_flight.add(delivery_id)
        try:
            subscriber = await self._resolve_subscriber(delivery)
            if subscriber is None or delivery.is_terminal:
                return

            delivery.begin_attempt()
            await self._persist(delivery)

            result = await self._executor.execute(delivery, subscriber)
            await self._handle_result(delivery, subscriber, result)
        finally:
            self._in_flight.discard(delivery_id)

    async def _resolve_subscriber(self, delivery: Delivery) -> Subscriber | None:
        """Fetch the subscriber for the next attempt.

        The first attempt uses the record matched at dispatch. Retries
        re-read the registry so deactivation and credential changes apply;
        a missing or inactive subscriber cancels the delivery.
        """
        cached = self._subscribers.get(delivery.id)
        if delivery.attempts == 0 and cached is not None:
            return cached

        try:
            subscriber = await self._registry.get_subscriber(delivery.subscriber_id)
        except Exception as e:
            if delivery.is_terminal:
                return None
            if cached is not None:
                logger.warning(
                    "Subscriber lookup failed, using cached record",
                    subscriber_id=delivery.subscriber_id,
                    error=str(e),
                )
                return cached
            logger.warning(
                "Subscriber lookup failed, attempt postponed",
                subscriber_id=delivery.subscriber_id,
                error=str(e),
            )
            due = utcnow() + LOOKUP_RETRY_DELAY
            if delivery.state == DeliveryState.RETRY_SCHEDULED:
                delivery.next_retry_at = due
                delivery.updated_at = utcnow()
                await self._persist(delivery)
            self._schedule(delivery.id, due)
            return None

        # Cancelled while the lookup was pending
        if delivery.is_terminal:
            return None

        if subscriber is None or not subscriber.is_active:
            reason = "subscriber not found" if subscriber is None else "subscriber deactivated"
            delivery.cancel(reason)
            await self._persist(delivery)
            self._forget(delivery.id)
            logger.info("Delivery cancelled", subscriber_id=delivery.subscriber_id, reason=reason)
            return None

        self._subscribers[delivery.id] = subscriber
        return subscriber

    async def _handle_result(
        self,
        delivery: Delivery,
        subscriber: Subscriber,
        result: AttemptResult,
    ) -> None:
        log = logger.bind(
            subscriber_id=subscriber.id,
            event_name=delivery.event,
            attempt=delivery.attempts,
            status_code=result.status_code,
        )

        if result.success:
            delivery.mark_delivered(result)
            await self._persist(delivery)
            self._forget(delivery.id)
            log.info("Webhook delivered", latency_ms=round(result.latency_ms, 2))
            await self._record(subscriber, "success", result.latency_ms)
            return

        cancel_reason = self._cancel_requested.pop(delivery.id, None)
        can_retry = result.retryable and delivery.attempts < delivery.max_attempts

        if can_retry and cancel_reason is None:
            delay_ms = compute_retry_delay(subscriber.retry, delivery.attempts - 1)
            due = utcnow() + timedelta(milliseconds=delay_ms)
            delivery.mark_retry_scheduled(result, due)
            await self._persist(delivery)
            self._schedule(delivery.id, due)
            log.info(
                "Webhook scheduled for retry",
                error=result.error_message,
                delay_ms=delay_ms,
                next_retry_at=due.isoformat(),
            )
            return

        delivery.mark_exhausted(result)
        if cancel_reason is not None:
            delivery.cancelled = True
        await self._persist(delivery)
        self._forget(delivery.id)

        if cancel_reason is not None:
            log.info("Delivery cancelled after attempt", reason=cancel_reason)
            return

        log.warning(
            "Webhook delivery exhausted",
            error=result.error_message,
            attempts=delivery.attempts,
            max_attempts=delivery.max_attempts,
        )
        await self._record(subscriber, "failure", error=result.error_message)

    async def _exhaust_interrupted(self, delivery: Delivery) -> None:
        delivery.mark_exhausted(
            AttemptResult(
                success=False,
                error_message="Attempt interrupted before completion",
                error_code="interrupted",
            )
        )
        await self._persist(delivery)
        logger.warning("Interrupted delivery exhausted", delivery_id=delivery.id)

        try:
            subscriber = await self._registry.get_subscriber(delivery.subscriber_id)
        except Exception:
            logger.exception("Subscriber lookup failed", subscriber_id=delivery.subscriber_id)
            return
        if subscriber is not None:
            await self._record(subscriber, "failure", error="Attempt interrupted before completion")

    async def _record(
        self,
        subscriber: Subscriber,
        outcome: Outcome,
        latency_ms: float = 0.0,
        error: str | None = None,
    ) -> None:
        try:
            await self._stats.record(subscriber, outcome, latency_ms, error)
        except Exception:
            logger.exception("Failed to update subscriber statistics", subscriber_id=subscriber.id)

    async def _persist(self, delivery: Delivery) -> None:
        try:
            await self._store.save_delivery(delivery)
        except Exception:
            logger.exception(
                "Failed to persist delivery",
                delivery_id=delivery.id,
                state=delivery.state.value,
            )
