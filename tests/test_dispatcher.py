"""
Test suite for the concurrency-limited dispatcher.

Covers the concurrency bound, filling the window before any response
arrives, completion-order aggregation and configuration validation.
"""

import asyncio

import pytest

from listbatcher.config import ErrorDirective
from listbatcher.core.dispatcher import DispatchOptions, DispatchState, Dispatcher, dispatch
from listbatcher.core.errors import ConfigurationError
from listbatcher.core.operation import OperationQueue
from listbatcher.core.outcome import SUCCESS_MESSAGE, ResultStatus
from listbatcher.transport.soap import SoapBatchSerializer

from conftest import MockTransport, StubInspector, failure, make_descriptors


async def run_dispatch(transport, count, batch_size, concurrency, inspector=None, **kwargs):
    return await dispatch(
        OperationQueue(make_descriptors(count)),
        batch_size,
        concurrency,
        transport=transport,
        serializer=SoapBatchSerializer(),
        inspector=inspector,
        **kwargs,
    )


# ============================================================================
# Dispatch Options
# ============================================================================

class TestDispatchOptions:
    """Tests for per-dispatch configuration."""

    def test_defaults(self):
        options = DispatchOptions()

        assert options.batch_size == 100
        assert options.concurrency == 2
        assert options.on_error == ErrorDirective.CONTINUE

    @pytest.mark.parametrize("batch_size,concurrency", [
        (0, 1),
        (-1, 1),
        (1, 0),
        (1, -5),
        (1.5, 1),
        (True, 1),
        ("10", 1),
    ])
    def test_invalid_values_rejected(self, batch_size, concurrency):
        with pytest.raises(ConfigurationError):
            DispatchOptions(batch_size=batch_size, concurrency=concurrency)

    def test_unknown_directive_rejected(self):
        with pytest.raises(ConfigurationError):
            DispatchOptions(on_error="Sometimes")

    def test_string_directive_accepted(self):
        assert DispatchOptions(on_error="Return").on_error == ErrorDirective.RETURN

    def test_options_are_immutable(self):
        options = DispatchOptions()

        with pytest.raises(Exception):
            options.batch_size = 5

    def test_from_config_with_overrides(self, test_config):
        options = DispatchOptions.from_config(test_config, batch_size=10, concurrency=None)

        assert options.batch_size == 10
        assert options.concurrency == test_config.concurrency
        assert options.on_error == test_config.on_error


# ============================================================================
# Dispatch State
# ============================================================================

class TestDispatchState:
    """Tests for dispatch bookkeeping."""

    def test_launch_and_completion(self):
        state = DispatchState(concurrency=2)

        state.record_launch(is_last=False)
        state.record_launch(is_last=True)

        assert state.in_flight == 2
        assert state.queue_exhausted
        assert not state.can_launch()
        assert not state.is_done

        state.record_completion(failure("a"))
        state.record_completion(failure("b"))

        assert state.is_done
        assert [o.error_message for o in state.outcomes] == ["a", "b"]
        assert state.peak_in_flight == 2

    def test_launch_beyond_limit_rejected(self):
        state = DispatchState(concurrency=1)
        state.record_launch(is_last=False)

        with pytest.raises(RuntimeError):
            state.record_launch(is_last=False)


# ============================================================================
# Dispatcher
# ============================================================================

class TestDispatch:
    """Tests for the dispatch loop."""

    @pytest.mark.asyncio
    async def test_empty_queue_resolves_immediately(self, mock_transport):
        result = await run_dispatch(mock_transport, 0, 100, 2)

        assert result.status == ResultStatus.SUCCESS
        assert result.message == SUCCESS_MESSAGE
        assert result.batch_count == 0
        assert mock_transport.submitted == []

    @pytest.mark.asyncio
    async def test_single_batch_result_is_unwrapped(self, mock_transport):
        result = await run_dispatch(mock_transport, 5, 100, 2)

        assert result.ok
        assert result.payloads == "payload-1"
        assert result.raw_responses == "response-1"

    @pytest.mark.asyncio
    async def test_every_operation_submitted_once_in_order(self, mock_transport):
        descriptors = make_descriptors(23)

        await dispatch(
            OperationQueue(descriptors),
            5,
            3,
            transport=mock_transport,
            serializer=SoapBatchSerializer(),
        )

        submitted = sorted(mock_transport.submitted, key=lambda b: b.sequence)
        assert [b.size for b in submitted] == [5, 5, 5, 5, 3]
        assert [d for b in submitted for d in b.descriptors] == descriptors

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count,batch_size,concurrency", [
        (10, 1, 1),
        (10, 1, 3),
        (50, 7, 4),
        (3, 1, 10),
    ])
    async def test_concurrency_never_exceeded(self, count, batch_size, concurrency):
        transport = MockTransport()

        result = await run_dispatch(transport, count, batch_size, concurrency)

        assert result.ok
        assert transport.peak <= concurrency
        assert len(transport.submitted) == result.batch_count

    @pytest.mark.asyncio
    async def test_window_fills_before_any_response(self, gated_transport):
        task = asyncio.create_task(run_dispatch(gated_transport, 10, 1, 3))

        await gated_transport.wait_for_submissions(3)
        for _ in range(5):
            await asyncio.sleep(0)

        # Nothing has completed, yet three requests are out and no more
        assert gated_transport.completed == []
        assert len(gated_transport.submitted) == 3
        assert gated_transport.active == 3

        for sequence in range(1, 11):
            await gated_transport.complete(sequence)

        result = await task
        assert result.batch_count == 10
        assert gated_transport.peak == 3

    @pytest.mark.asyncio
    async def test_completion_refills_window(self, gated_transport):
        task = asyncio.create_task(run_dispatch(gated_transport, 4, 1, 2))
        await gated_transport.wait_for_submissions(2)

        await gated_transport.complete(2)

        assert [b.sequence for b in gated_transport.submitted] == [1, 2, 3]
        assert gated_transport.active == 2

        for sequence in (1, 3, 4):
            await gated_transport.complete(sequence)
        await task

    @pytest.mark.asyncio
    async def test_scenario_250_operations(self, gated_transport):
        task = asyncio.create_task(run_dispatch(gated_transport, 250, 100, 2))
        await gated_transport.wait_for_submissions(2)

        assert len(gated_transport.submitted) == 2

        for sequence in (1, 2, 3):
            await gated_transport.complete(sequence)
        result = await task

        assert [b.size for b in gated_transport.submitted] == [100, 100, 50]
        assert gated_transport.peak == 2
        assert result.batch_count == 3
        assert result.payloads == ["payload-1", "payload-2", "payload-3"]

    @pytest.mark.asyncio
    async def test_results_in_completion_order(self, gated_transport):
        task = asyncio.create_task(run_dispatch(gated_transport, 3, 1, 3))
        await gated_transport.wait_for_submissions(3)

        for sequence in (3, 1, 2):
            await gated_transport.complete(sequence)
        result = await task

        assert result.payloads == ["payload-3", "payload-1", "payload-2"]

    @pytest.mark.asyncio
    async def test_last_completed_failure_wins(self):
        transport = MockTransport(
            outcomes={1: failure("first submitted"), 2: failure("second submitted")},
            gated=True,
        )
        task = asyncio.create_task(run_dispatch(transport, 2, 1, 2))
        await transport.wait_for_submissions(2)

        await transport.complete(2)
        await transport.complete(1)
        result = await task

        assert result.status == ResultStatus.ERROR
        assert result.message == "first submitted"

    @pytest.mark.asyncio
    async def test_timeout_scenario(self):
        transport = MockTransport(outcomes={2: failure("timeout")}, gated=True)
        task = asyncio.create_task(run_dispatch(transport, 250, 100, 2))
        await transport.wait_for_submissions(2)

        for sequence in (2, 1, 3):
            await transport.complete(sequence)
        result = await task

        assert transport.completed == [2, 1, 3]
        assert result.status == ResultStatus.ERROR
        assert result.message == "timeout"

    @pytest.mark.asyncio
    async def test_application_error_scenario(self, mock_transport):
        inspector = StubInspector({"payload-2": "duplicate key"})

        result = await run_dispatch(mock_transport, 250, 100, 2, inspector=inspector)

        assert result.status == ResultStatus.ERROR
        assert result.message == "duplicate key"
        assert len(mock_transport.submitted) == 3

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_batches(self):
        transport = MockTransport(outcomes={1: failure("boom")})

        result = await run_dispatch(transport, 5, 1, 2)

        assert len(transport.submitted) == 5
        assert result.batch_count == 5
        assert result.message == "boom"

    @pytest.mark.asyncio
    async def test_transport_exception_becomes_failure(self):
        transport = MockTransport(outcomes={2: ConnectionError("connection reset")})

        result = await run_dispatch(transport, 3, 1, 1)

        assert result.status == ResultStatus.ERROR
        assert result.message == "connection reset"
        assert result.batch_count == 3
        failed = [o for o in result.raw_responses if o is None]
        assert len(failed) == 1

    @pytest.mark.asyncio
    async def test_outcomes_carry_batch_id(self, mock_transport, serializer):
        dispatcher = Dispatcher(mock_transport, serializer, options=DispatchOptions(batch_size=2))
        seen = []
        dispatcher.on_batch_complete(lambda batch, outcome: seen.append((batch.batch_id, outcome.batch_id)))

        await dispatcher.run(OperationQueue(make_descriptors(5)))

        assert len(seen) == 3
        assert all(batch_id == outcome_id for batch_id, outcome_id in seen)

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_abort_dispatch(self, mock_transport, serializer):
        dispatcher = Dispatcher(mock_transport, serializer, options=DispatchOptions(batch_size=1))

        def explode(batch, outcome):
            raise ValueError("callback bug")

        dispatcher.on_batch_complete(explode)
        result = await dispatcher.run(OperationQueue(make_descriptors(3)))

        assert result.ok
        assert result.batch_count == 3

    @pytest.mark.asyncio
    async def test_error_directive_reaches_transport(self, mock_transport):
        await run_dispatch(mock_transport, 2, 1, 1, on_error=ErrorDirective.RETURN)

        assert all(b.body.startswith('<Batch OnError="Return">') for b in mock_transport.submitted)

    @pytest.mark.asyncio
    async def test_invalid_configuration_raises_before_dispatch(self, mock_transport):
        with pytest.raises(ConfigurationError):
            await run_dispatch(mock_transport, 5, 0, 2)

        with pytest.raises(ConfigurationError):
            await run_dispatch(mock_transport, 5, 10, 0)

        assert mock_transport.submitted == []

    @pytest.mark.asyncio
    async def test_stats(self, serializer):
        transport = MockTransport(outcomes={2: failure("x")})
        dispatcher = Dispatcher(transport, serializer, options=DispatchOptions(batch_size=1, concurrency=2))

        assert dispatcher.get_stats() == {"ran": False}

        await dispatcher.run(OperationQueue(make_descriptors(4)))
        stats = dispatcher.get_stats()

        assert stats["completed"] == 4
        assert stats["failed"] == 1
        assert stats["in_flight"] == 0
        assert stats["queue_exhausted"] is True
        assert stats["peak_in_flight"] <= 2


class FailingSerializer(SoapBatchSerializer):
    """Serializer that raises on a chosen wrap call."""

    def __init__(self, fail_on: int):
        self.fail_on = fail_on
        self.calls = 0

    def wrap(self, descriptors, on_error):
        self.calls += 1
        if self.calls == self.fail_on:
            raise ValueError("cannot serialize batch")
        return super().wrap(descriptors, on_error)


class SlowTransport(MockTransport):
    """Transport whose requests take a short while to answer."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay
        self.calls = 0

    async def submit(self, batch):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return await super().submit(batch)


class TestDispatchAbort:
    """Tests for a dispatch that fails part way through."""

    @pytest.mark.asyncio
    async def test_no_submissions_after_error(self):
        transport = SlowTransport()

        with pytest.raises(ValueError):
            await dispatch(
                OperationQueue(make_descriptors(10)),
                1,
                2,
                transport=transport,
                serializer=FailingSerializer(fail_on=3),
            )
        calls_at_error = transport.calls

        await asyncio.sleep(0.1)

        assert transport.calls == calls_at_error
        assert calls_at_error < 10
