"""
Dispatch Scheduler - submits batches with bounded concurrency.

Drains an operation queue into batches, keeps up to ``concurrency``
requests in flight, and aggregates every outcome once the last one
completes.
"""

import asyncio
import dataclasses
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from listbatcher.config import ErrorDirective, ListBatcherConfig
from listbatcher.core.aggregator import ResponseAggregator
from listbatcher.core.batch import Batch, BatchBuilder
from listbatcher.core.errors import ConfigurationError
from listbatcher.core.operation import OperationQueue
from listbatcher.core.outcome import AggregatedResult, BatchFailure, BatchOutcome
from listbatcher.transport.interface import BatchSerializer, ErrorInspector, Transport

logger = structlog.get_logger(__name__)


def _require_positive_int(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class DispatchOptions:
    """
    Settings for one dispatch, fixed for its whole lifetime.

    Attributes:
        batch_size: Maximum operations per request
        concurrency: Maximum requests in flight at once
        on_error: Error directive stamped on every batch
    """

    batch_size: int = 100
    concurrency: int = 2
    on_error: ErrorDirective = ErrorDirective.CONTINUE

    def __post_init__(self):
        _require_positive_int("batch_size", self.batch_size)
        _require_positive_int("concurrency", self.concurrency)
        try:
            directive = ErrorDirective(self.on_error)
        except ValueError:
            raise ConfigurationError(f"Unknown error directive: {self.on_error!r}")
        object.__setattr__(self, "on_error", directive)

    @classmethod
    def from_config(cls, config: ListBatcherConfig, **overrides) -> "DispatchOptions":
        """Build options from a config, with optional per-call overrides."""
        values = {
            "batch_size": config.batch_size,
            "concurrency": config.concurrency,
            "on_error": config.on_error,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class DispatchState:
    """
    Mutable bookkeeping for one dispatch.

    Only touched from the event loop between awaits, so no lock is needed.
    """

    concurrency: int
    in_flight: int = 0
    peak_in_flight: int = 0
    queue_exhausted: bool = False
    outcomes: List[BatchOutcome] = field(default_factory=list)

    def can_launch(self) -> bool:
        """Check if another batch may be submitted now."""
        return not self.queue_exhausted and self.in_flight < self.concurrency

    def record_launch(self, is_last: bool) -> None:
        """Account for a batch that is about to be submitted."""
        if self.in_flight >= self.concurrency:
            raise RuntimeError("Concurrency limit exceeded")
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        if is_last:
            self.queue_exhausted = True

    def record_completion(self, outcome: BatchOutcome) -> None:
        """Account for a batch that has finished."""
        self.in_flight -= 1
        self.outcomes.append(outcome)

    @property
    def is_done(self) -> bool:
        """True once every batch has been built and every request finished."""
        return self.queue_exhausted and self.in_flight == 0


class Dispatcher:
    """
    Concurrency-limited batch dispatcher.

    Runs a fixed pool of workers that each pull the next batch as soon as
    their previous request completes. All workers submit before any of
    them waits on a response, so the concurrency window fills immediately.
    A failed batch never stops the others and is never retried.

    Usage:
        ```python
        dispatcher = Dispatcher(transport, serializer, inspector, DispatchOptions(concurrency=4))
        result = await dispatcher.run(OperationQueue(descriptors))
        ```
    """

    def __init__(
        self,
        transport: Transport,
        serializer: BatchSerializer,
        inspector: Optional[ErrorInspector] = None,
        options: Optional[DispatchOptions] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            transport: Sends one batch and yields its outcome
            serializer: Wraps descriptors into batches
            inspector: Detects application errors in successful payloads
            options: Batch size, concurrency and error directive
        """
        self.transport = transport
        self.serializer = serializer
        self.options = options or DispatchOptions()
        self.aggregator = ResponseAggregator(inspector)
        self.state: Optional[DispatchState] = None

        self._on_batch_complete: Optional[Callable[[Batch, BatchOutcome], None]] = None

    def on_batch_complete(self, callback: Callable[[Batch, BatchOutcome], None]) -> None:
        """Register callback fired after each batch completes, in completion order."""
        self._on_batch_complete = callback

    async def run(self, queue: OperationQueue) -> AggregatedResult:
        """
        Dispatch every operation in the queue.

        Args:
            queue: Operations to submit; drained by this call

        Returns:
            Aggregated result of all batches
        """
        options = self.options
        state = DispatchState(
            concurrency=options.concurrency,
            queue_exhausted=queue.is_empty(),
        )
        self.state = state
        builder = BatchBuilder(queue, options.batch_size, self.serializer, options.on_error)

        batch_count = math.ceil(len(queue) / options.batch_size)
        worker_count = min(options.concurrency, batch_count)

        logger.info(
            "dispatch_started",
            operations=len(queue),
            batches=batch_count,
            batch_size=options.batch_size,
            concurrency=options.concurrency,
            on_error=options.on_error.value,
        )

        workers = [
            asyncio.create_task(self._worker(builder, state))
            for _ in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            # No worker may keep submitting once the caller has the error
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.error("dispatch_aborted", completed=len(state.outcomes), in_flight=state.in_flight)
            raise

        if not state.is_done:
            raise RuntimeError("Dispatch finished with batches outstanding")

        result = self.aggregator.aggregate(state.outcomes)
        log = logger.info if result.ok else logger.warning
        log(
            "dispatch_completed",
            status=result.status.value,
            message=result.message,
            batches=len(state.outcomes),
            peak_in_flight=state.peak_in_flight,
        )
        return result

    async def _worker(self, builder: BatchBuilder, state: DispatchState) -> None:
        """Submit batches until the queue is exhausted."""
        while state.can_launch():
            batch, is_last = builder.build_next()
            state.record_launch(is_last)

            logger.debug(
                "batch_submitted",
                batch_id=batch.batch_id[:8] + "...",
                sequence=batch.sequence,
                size=batch.size,
                in_flight=state.in_flight,
            )

            outcome = await self._submit(batch)
            state.record_completion(outcome)

            if outcome.is_failure:
                logger.warning(
                    "batch_failed",
                    batch_id=batch.batch_id[:8] + "...",
                    sequence=batch.sequence,
                    error=outcome.error_message,
                )
            else:
                logger.debug(
                    "batch_completed",
                    batch_id=batch.batch_id[:8] + "...",
                    sequence=batch.sequence,
                )

            if self._on_batch_complete:
                try:
                    self._on_batch_complete(batch, outcome)
                except Exception as e:
                    logger.error("batch_callback_failed", batch_id=batch.batch_id[:8] + "...", error=str(e))

    async def _submit(self, batch: Batch) -> BatchOutcome:
        """Send one batch, turning any transport exception into a failure outcome."""
        try:
            outcome = await self.transport.submit(batch)
        except Exception as e:
            logger.error(
                "batch_transport_error",
                batch_id=batch.batch_id[:8] + "...",
                error=str(e),
            )
            return BatchFailure(str(e) or type(e).__name__, batch_id=batch.batch_id)

        if not outcome.batch_id:
            outcome = dataclasses.replace(outcome, batch_id=batch.batch_id)
        return outcome

    def get_stats(self) -> dict:
        """Get statistics for the most recent run."""
        state = self.state
        if state is None:
            return {"ran": False}
        return {
            "ran": True,
            "in_flight": state.in_flight,
            "peak_in_flight": state.peak_in_flight,
            "queue_exhausted": state.queue_exhausted,
            "completed": len(state.outcomes),
            "failed": sum(1 for o in state.outcomes if o.is_failure),
        }


async def dispatch(
    queue: OperationQueue,
    batch_size: int,
    concurrency: int,
    *,
    transport: Transport,
    serializer: BatchSerializer,
    inspector: Optional[ErrorInspector] = None,
    on_error: ErrorDirective = ErrorDirective.CONTINUE,
    on_batch_complete: Optional[Callable[[Batch, BatchOutcome], None]] = None,
) -> AggregatedResult:
    """
    Submit every operation in ``queue`` in batches and aggregate the results.

    Args:
        queue: Operations to submit
        batch_size: Maximum operations per request
        concurrency: Maximum requests in flight at once
        transport: Sends one batch
        serializer: Wraps descriptors into batches
        inspector: Detects application errors in successful payloads
        on_error: Error directive for the remote side
        on_batch_complete: Optional per-batch completion callback

    Returns:
        Aggregated result of all batches

    Raises:
        ConfigurationError: If batch_size or concurrency is not a positive integer
    """
    options = DispatchOptions(batch_size=batch_size, concurrency=concurrency, on_error=on_error)
    dispatcher = Dispatcher(transport, serializer, inspector, options)
    if on_batch_complete:
        dispatcher.on_batch_complete(on_batch_complete)
    return await dispatcher.run(queue)
