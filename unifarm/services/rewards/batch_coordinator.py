"""
Reward batch coordinator.

Buffers reward events, logs every event as a durable batch row and drives
each batch through queued -> processing -> completed | failed with
bounded retries. Failed and stuck batches are re-driven by the recovery
sweep.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unifarm.config.settings import settings
from unifarm.models.enums import BatchStatus
from unifarm.models.reward_batch import RewardBatch
from unifarm.repositories.reward_batch_repository import RewardBatchRepository
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.referral.distribution_engine import (
    RewardDistributionEngine,
    validate_reward_input,
)
from unifarm.utils.datetime_utils import utc_now
from unifarm.utils.exceptions import (
    DatabaseError,
    IdempotencyConflict,
    NotFoundError,
    UnifarmError,
    wrap_database_error,
)


EngineFactory = Callable[[AsyncSession], RewardDistributionEngine]

# Stored error messages are truncated to this length
_MAX_ERROR_LENGTH = 1000


@dataclass(frozen=True)
class RewardEvent:
    """Buffered reward event, already persisted as a queued batch."""

    batch_id: str
    source_user_id: int
    amount: Decimal
    currency: str

    @classmethod
    def from_batch(cls, batch: RewardBatch) -> "RewardEvent":
        return cls(
            batch_id=batch.batch_id,
            source_user_id=batch.source_user_id,
            amount=batch.amount,
            currency=batch.currency,
        )


@dataclass
class BatchOutcome:
    """Result of driving one batch."""

    batch_id: str
    status: BatchStatus
    total_distributed: Decimal = Decimal("0")
    levels_processed: int = 0
    inviter_count: int = 0
    attempts: int = 0
    error_message: str | None = None
    already_completed: bool = False


class BatchCoordinator:
    """
    Coordinator for reward distribution batches.

    In synchronous mode every enqueue is flushed immediately. In batched
    mode the buffer is flushed when it reaches ``batch_size`` or when the
    periodic timer (``start``/``stop``) fires.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine_factory: EngineFactory,
        batched: bool = False,
        batch_size: int | None = None,
        flush_interval: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        max_backoff: float | None = None,
        recovery_limit: int | None = None,
        stuck_after: float | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """
        Initialize batch coordinator.

        Args:
            session_maker: Factory for one session per unit of work
            engine_factory: Builds a distribution engine bound to a session
            batched: Buffer events instead of flushing on every enqueue
            batch_size: Flush threshold and processing group size
            flush_interval: Timer period in seconds
            max_retries: Retries of a batch after a storage failure
            retry_base_delay: Backoff base in seconds
            max_backoff: Backoff cap in seconds
            recovery_limit: Max batches per recovery sweep
            stuck_after: Seconds before a processing batch counts as stuck
            sleep: Awaitable used for backoff
        """
        self.session_maker = session_maker
        self.engine_factory = engine_factory
        self.batched = batched
        self.batch_size = batch_size or settings.reward_batch_size
        self.flush_interval = flush_interval or settings.reward_flush_interval_seconds
        self.max_retries = (
            settings.reward_max_retries if max_retries is None else max_retries
        )
        self.retry_base_delay = (
            settings.reward_retry_base_delay_seconds
            if retry_base_delay is None
            else retry_base_delay
        )
        self.max_backoff = (
            settings.reward_max_backoff_seconds
            if max_backoff is None
            else max_backoff
        )
        self.recovery_limit = recovery_limit or settings.reward_recovery_limit
        self.stuck_after = stuck_after or settings.reward_stuck_after_seconds
        self._sleep = sleep

        self._buffer: list[RewardEvent] = []
        self._flush_lock = asyncio.Lock()
        self._timer_task: asyncio.Task | None = None

    @property
    def pending_count(self) -> int:
        """Number of buffered events."""
        return len(self._buffer)

    async def enqueue(
        self,
        source_user_id: int,
        amount: Decimal | int | str,
        currency: str,
    ) -> str:
        """
        Log a reward event as a queued batch and buffer it.

        Args:
            source_user_id: Participant whose event produced the reward
            amount: Source amount
            currency: Currency code

        Returns:
            Batch ID (UUID4)

        Raises:
            ValidationError: Invalid amount or currency
            NotFoundError: Unknown source participant
            DatabaseError: The batch row could not be stored
        """
        value, code = validate_reward_input(amount, currency)

        async with self.session_maker() as session:
            try:
                if not await UserRepository(session).exists(id=source_user_id):
                    raise NotFoundError(
                        f"Source user {source_user_id} not found",
                        source_user_id=source_user_id,
                    )
                batch = await RewardBatchRepository(session).create_queued(
                    source_user_id, value, code.value
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise wrap_database_error(
                    e,
                    "enqueue_reward",
                    source_user_id=source_user_id,
                    amount=value,
                    currency=code.value,
                ) from e

        event = RewardEvent.from_batch(batch)
        await self.buffer(event)
        return event.batch_id

    async def buffer(self, event: RewardEvent) -> None:
        """
        Buffer an event whose queued batch row is already committed.

        Used by callers that log the batch inside their own transaction.
        Flushes right away in synchronous mode, or once the buffer holds
        ``batch_size`` events.

        Args:
            event: Persisted reward event
        """
        self._buffer.append(event)
        logger.debug(
            "Reward event queued",
            extra={
                "batch_id": event.batch_id,
                "source_user_id": event.source_user_id,
                "amount": str(event.amount),
                "currency": event.currency,
            },
        )

        if not self.batched or len(self._buffer) >= self.batch_size:
            await self.flush()

    async def flush(self) -> list[BatchOutcome]:
        """
        Drain the buffer, oldest event first.

        Each event is its own batch with its own transaction, so one
        failing batch never rolls back the others.

        Returns:
            Outcome per drained event
        """
        async with self._flush_lock:
            events, self._buffer = self._buffer, []
            outcomes = [
                await self.process_batch(event.batch_id) for event in events
            ]

        self._log_outcomes("flush", outcomes)
        return outcomes

    async def flush_queued(self, limit: int | None = None) -> list[BatchOutcome]:
        """
        Drive queued batch rows left behind by other processes.

        Only rows older than one flush interval are picked up, so live
        buffers get the first chance to process their own events.

        Args:
            limit: Max number of batches

        Returns:
            Outcome per batch
        """
        cutoff = utc_now() - timedelta(seconds=self.flush_interval)
        async with self.session_maker() as session:
            batches = await RewardBatchRepository(session).get_queued(
                limit or self.batch_size, cutoff
            )
            batch_ids = [batch.batch_id for batch in batches]

        outcomes = [await self.process_batch(batch_id) for batch_id in batch_ids]
        self._log_outcomes("flush_queued", outcomes)
        return outcomes

    async def recover(self) -> int:
        """
        Re-drive failed and stuck processing batches.

        A processing batch is stuck once its last attempt started more than
        ``stuck_after`` seconds ago.

        Returns:
            Number of batches that reached completed in this sweep
        """
        stuck_before = utc_now() - timedelta(seconds=self.stuck_after)
        async with self.session_maker() as session:
            batches = await RewardBatchRepository(session).get_recoverable(
                self.recovery_limit, stuck_before
            )
            batch_ids = [batch.batch_id for batch in batches]

        if not batch_ids:
            return 0

        logger.info(
            "Recovering reward batches",
            extra={"count": len(batch_ids)},
        )
        outcomes = [await self.process_batch(batch_id) for batch_id in batch_ids]
        self._log_outcomes("recover", outcomes)
        return sum(
            1
            for outcome in outcomes
            if outcome.status == BatchStatus.COMPLETED
            and not outcome.already_completed
        )

    async def process_batch(self, batch_id: str) -> BatchOutcome:
        """
        Drive one batch to a terminal state.

        Storage failures are retried with exponential backoff; other
        domain errors mark the batch failed immediately. A completed
        batch returns its stored result.

        Args:
            batch_id: Batch UUID

        Returns:
            BatchOutcome
        """
        retries = 0
        while True:
            try:
                return await self._process_once(batch_id)
            except DatabaseError as e:
                if retries >= self.max_retries:
                    return await self._mark_failed(batch_id, e)
                delay = min(
                    self.retry_base_delay * (2 ** retries), self.max_backoff
                )
                retries += 1
                logger.warning(
                    "Reward batch failed, retrying",
                    extra={
                        "batch_id": batch_id,
                        "retry": retries,
                        "delay_seconds": delay,
                        "error": e.message,
                    },
                )
                await self._sleep(delay)
            except UnifarmError as e:
                return await self._mark_failed(batch_id, e)

    async def _process_once(self, batch_id: str) -> BatchOutcome:
        async with self.session_maker() as session:
            repo = RewardBatchRepository(session)
            try:
                batch = await self._lock_pending(repo, batch_id)
                batch.status = BatchStatus.PROCESSING.value
                batch.attempts += 1
                batch.processed_at = utc_now()
                await session.commit()

                batch = await self._lock_pending(repo, batch_id)
                engine = self.engine_factory(session)
                result = await engine.apply(
                    batch.source_user_id,
                    batch.amount,
                    batch.currency,
                    batch_id=batch_id,
                )

                batch.status = BatchStatus.COMPLETED.value
                batch.levels_processed = result.levels_processed
                batch.inviter_count = result.inviter_count
                batch.total_distributed = result.total_distributed
                batch.error_message = None
                batch.completed_at = utc_now()
                await session.commit()

                return BatchOutcome(
                    batch_id=batch_id,
                    status=BatchStatus.COMPLETED,
                    total_distributed=result.total_distributed,
                    levels_processed=result.levels_processed,
                    inviter_count=result.inviter_count,
                    attempts=batch.attempts,
                )

            except IdempotencyConflict as conflict:
                await session.rollback()
                stored: RewardBatch = conflict.context["batch"]
                logger.debug(
                    "Reward batch already completed",
                    extra={"batch_id": batch_id},
                )
                return self._completed_outcome(stored)
            except UnifarmError:
                await session.rollback()
                raise
            except Exception as e:
                await session.rollback()
                raise wrap_database_error(
                    e, "process_reward_batch", batch_id=batch_id
                ) from e

    @staticmethod
    async def _lock_pending(
        repo: RewardBatchRepository, batch_id: str
    ) -> RewardBatch:
        batch = await repo.get_by_batch_id(batch_id, for_update=True)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)
        if batch.is_completed:
            raise IdempotencyConflict(
                f"Batch {batch_id} already completed",
                batch_id=batch_id,
                batch=batch,
            )
        return batch

    async def _mark_failed(
        self, batch_id: str, error: UnifarmError
    ) -> BatchOutcome:
        message = error.message[:_MAX_ERROR_LENGTH]
        logger.error(
            "Reward batch failed",
            extra={"batch_id": batch_id, "error": message},
        )

        async with self.session_maker() as session:
            repo = RewardBatchRepository(session)
            try:
                batch = await repo.get_by_batch_id(batch_id, for_update=True)
                if batch is None:
                    return BatchOutcome(
                        batch_id=batch_id,
                        status=BatchStatus.FAILED,
                        error_message=message,
                    )
                if batch.is_completed:
                    await session.rollback()
                    return self._completed_outcome(batch)

                batch.status = BatchStatus.FAILED.value
                batch.error_message = message
                await session.commit()
                attempts = batch.attempts
            except SQLAlchemyError as e:
                # Row stays processing and is picked up by the recovery sweep
                await session.rollback()
                logger.error(
                    "Could not mark reward batch failed",
                    extra={"batch_id": batch_id, "error": str(e)},
                )
                attempts = 0

        return BatchOutcome(
            batch_id=batch_id,
            status=BatchStatus.FAILED,
            attempts=attempts,
            error_message=message,
        )

    @staticmethod
    def _completed_outcome(batch: RewardBatch) -> BatchOutcome:
        return BatchOutcome(
            batch_id=batch.batch_id,
            status=BatchStatus.COMPLETED,
            total_distributed=batch.total_distributed,
            levels_processed=batch.levels_processed,
            inviter_count=batch.inviter_count,
            attempts=batch.attempts,
            already_completed=True,
        )

    @staticmethod
    def _log_outcomes(operation: str, outcomes: list[BatchOutcome]) -> None:
        if not outcomes:
            return
        completed = sum(1 for o in outcomes if o.status == BatchStatus.COMPLETED)
        logger.info(
            f"Reward batches processed ({operation})",
            extra={
                "operation": operation,
                "total": len(outcomes),
                "completed": completed,
                "failed": len(outcomes) - completed,
                "distributed": str(
                    sum((o.total_distributed for o in outcomes), Decimal("0"))
                ),
            },
        )

    async def start(self) -> None:
        """Start the periodic flush timer (batched mode only)."""
        if not self.batched or self._timer_task is not None:
            return
        self._timer_task = asyncio.create_task(self._run_timer())
        logger.info(
            "Reward flush timer started",
            extra={"interval_seconds": self.flush_interval},
        )

    async def stop(self) -> None:
        """Stop the timer and flush what is left in the buffer."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
            logger.info("Reward flush timer stopped")
        await self.flush()

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            try:
                await self.flush()
            except Exception as e:
                logger.exception(f"Periodic reward flush failed: {e}")
