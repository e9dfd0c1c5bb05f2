"""
Abstract interfaces for the remote list service.

Defines the collaborators the dispatch core relies on: serializing a
batch, sending it, and inspecting a response for application errors.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

from listbatcher.config import ErrorDirective
from listbatcher.core.batch import Batch
from listbatcher.core.operation import OperationDescriptor
from listbatcher.core.outcome import BatchOutcome


class BatchSerializer(ABC):
    """Wraps a group of descriptors into a submittable batch."""

    @abstractmethod
    def wrap(
        self,
        descriptors: Sequence[OperationDescriptor],
        on_error: ErrorDirective,
    ) -> Batch:
        """
        Build a batch from descriptors.

        Args:
            descriptors: Operations for this batch, in order
            on_error: Error directive for the remote side

        Returns:
            Batch ready for submission
        """
        pass


class Transport(ABC):
    """
    Sends one batch to the remote service.

    Implementations must yield exactly one outcome per call and report
    ordinary remote failures (HTTP errors, timeouts, bad payloads) as a
    BatchFailure instead of raising.
    """

    @abstractmethod
    async def submit(self, batch: Batch) -> BatchOutcome:
        """
        Submit a batch.

        Args:
            batch: Batch to send

        Returns:
            BatchSuccess with the parsed payload, or BatchFailure
        """
        pass

    async def aclose(self) -> None:
        """Release any network resources held by the transport."""
        pass


class ErrorInspector(ABC):
    """Looks for application-level errors in a successful response payload."""

    @abstractmethod
    def has_error(self, payload: Any) -> bool:
        """
        Check whether a payload reports a remote-side processing failure.

        Args:
            payload: Payload of a successful response

        Returns:
            True if the payload encodes an error
        """
        pass

    @abstractmethod
    def extract_message(self, payload: Any) -> str:
        """
        Get a human-readable message for the error in a payload.

        Args:
            payload: Payload for which has_error() returned True

        Returns:
            Error message
        """
        pass
