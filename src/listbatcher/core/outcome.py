"""
Batch outcomes and the aggregated result of a dispatch.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from listbatcher.core.errors import ListUpdateError

SUCCESS_MESSAGE = "Update Successful."
HTTP_ERROR_MESSAGE = "HTTP error."


class ResultStatus(str, Enum):
    """Overall status of an update."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class BatchSuccess:
    """The remote service answered the batch; the payload may still carry errors."""
    payload: Any
    raw_response: Any = None
    batch_id: str = ""

    @property
    def is_failure(self) -> bool:
        return False


@dataclass(frozen=True)
class BatchFailure:
    """The batch could not be completed at the network/protocol level."""
    error_message: str
    raw_response: Any = None
    batch_id: str = ""

    @property
    def is_failure(self) -> bool:
        return True


BatchOutcome = Union[BatchSuccess, BatchFailure]


@dataclass(frozen=True)
class AggregatedResult:
    """
    Unified result of one dispatch.

    Attributes:
        status: SUCCESS or ERROR
        message: Human-readable message; on error it describes the failure
        payloads: Response payload for a single batch, or a list with one
            entry per batch (in completion order) when several were sent.
            Failed batches contribute their raw response.
        raw_responses: Same shape as payloads, holding the raw responses
        batch_count: Number of batch outcomes aggregated
    """

    status: ResultStatus
    message: str
    payloads: Any = None
    raw_responses: Any = None
    batch_count: int = 0

    @property
    def ok(self) -> bool:
        """True when every batch succeeded."""
        return self.status == ResultStatus.SUCCESS

    def raise_for_status(self) -> "AggregatedResult":
        """
        Raise ListUpdateError if the update errored.

        Returns:
            self, so the call can be chained
        """
        if self.status == ResultStatus.ERROR:
            raise ListUpdateError(self)
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "status": self.status.value,
            "message": self.message,
            "batch_count": self.batch_count,
        }
