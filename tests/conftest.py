"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Union

import pytest

from listbatcher.config import ListBatcherConfig, set_config
from listbatcher.core.batch import Batch
from listbatcher.core.outcome import BatchFailure, BatchOutcome, BatchSuccess
from listbatcher.transport.interface import ErrorInspector, Transport
from listbatcher.transport.soap import SoapBatchSerializer


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> ListBatcherConfig:
    """Create a test configuration."""
    return ListBatcherConfig(
        web_url="https://sp.example.com/sites/team",
        list_name="Tasks",
        batch_size=100,
        concurrency=2,
        request_timeout_seconds=5,
        log_level="DEBUG",
    )


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the global config from leaking between tests."""
    set_config(None)
    yield
    set_config(None)


# ============================================================================
# Test Data Generators
# ============================================================================

def make_descriptors(count: int) -> List[str]:
    """Generate distinct, ordered method descriptors."""
    return [
        f'<Method ID="{i}" Cmd="Update"><Field Name="ID">{i}</Field></Method>'
        for i in range(1, count + 1)
    ]


@pytest.fixture
def serializer() -> SoapBatchSerializer:
    return SoapBatchSerializer()


# ============================================================================
# Mock Collaborators
# ============================================================================

class MockTransport(Transport):
    """
    Scripted transport for testing.

    Outcomes are looked up by batch sequence number; unscripted batches
    succeed with ``payload-<n>``. With ``gated=True`` every request stays
    in flight until the test calls ``complete(n)``, which lets a test pick
    the completion order.
    """

    def __init__(
        self,
        outcomes: Optional[Dict[int, Union[BatchOutcome, Exception]]] = None,
        gated: bool = False,
    ):
        self.outcomes = outcomes or {}
        self.gated = gated
        self.submitted: List[Batch] = []
        self.completed: List[int] = []
        self.active = 0
        self.peak = 0
        self.closed = False
        self._gates: Dict[int, asyncio.Event] = defaultdict(asyncio.Event)
        self._done: Dict[int, asyncio.Event] = defaultdict(asyncio.Event)

    async def submit(self, batch: Batch) -> BatchOutcome:
        self.submitted.append(batch)
        self.active += 1
        self.peak = max(self.peak, self.active)

        if self.gated:
            await self._gates[batch.sequence].wait()
        else:
            await asyncio.sleep(0)

        self.active -= 1
        self.completed.append(batch.sequence)
        self._done[batch.sequence].set()

        outcome = self.outcomes.get(
            batch.sequence,
            BatchSuccess(
                payload=f"payload-{batch.sequence}",
                raw_response=f"response-{batch.sequence}",
            ),
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True

    async def wait_for_submissions(self, count: int) -> None:
        """Yield to the event loop until ``count`` batches were submitted."""
        while len(self.submitted) < count:
            await asyncio.sleep(0)

    async def complete(self, sequence: int) -> None:
        """Let batch ``sequence`` finish and wait until it has."""
        self._gates[sequence].set()
        await self._done[sequence].wait()


class StubInspector(ErrorInspector):
    """Treats the payloads listed in ``errors`` as application errors."""

    def __init__(self, errors: Optional[Dict[Any, str]] = None):
        self.errors = errors or {}
        self.inspected: List[Any] = []

    def has_error(self, payload: Any) -> bool:
        self.inspected.append(payload)
        return payload in self.errors

    def extract_message(self, payload: Any) -> str:
        return self.errors[payload]


def failure(message: str, raw: Any = None) -> BatchFailure:
    return BatchFailure(error_message=message, raw_response=raw)


@pytest.fixture
def mock_transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def gated_transport() -> MockTransport:
    return MockTransport(gated=True)
