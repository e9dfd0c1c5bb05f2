"""
Batch model and builder.

A batch is a bounded group of operations submitted in a single request.
"""

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Tuple

import structlog

from listbatcher.config import ErrorDirective
from listbatcher.core.operation import OperationDescriptor, OperationQueue

if TYPE_CHECKING:
    from listbatcher.transport.interface import BatchSerializer

logger = structlog.get_logger(__name__)


@dataclass
class Batch:
    """
    A group of operations ready to be submitted together.

    Attributes:
        descriptors: Operations in this batch, in queue order
        on_error: Directive telling the remote side whether to keep going
            after one operation fails
        body: Serialized form handed to the transport
        batch_id: Unique identifier for the batch
        sequence: Position in build order (1-based), assigned by the builder
    """

    descriptors: Tuple[OperationDescriptor, ...]
    on_error: ErrorDirective = ErrorDirective.CONTINUE
    body: Any = None
    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    sequence: int = 0

    def __post_init__(self):
        if isinstance(self.on_error, str):
            self.on_error = ErrorDirective(self.on_error)
        self.descriptors = tuple(self.descriptors)

    @property
    def size(self) -> int:
        """Get the number of operations in this batch."""
        return len(self.descriptors)

    def __repr__(self) -> str:
        return f"Batch(id={self.batch_id[:8]}..., seq={self.sequence}, size={self.size})"


class BatchBuilder:
    """
    Pulls operations off a queue and wraps them into batches.

    Must not be asked for a batch once the queue is empty; the
    dispatcher checks that before calling build_next().
    """

    def __init__(
        self,
        queue: OperationQueue,
        batch_size: int,
        serializer: "BatchSerializer",
        on_error: ErrorDirective = ErrorDirective.CONTINUE,
    ):
        """
        Initialize the builder.

        Args:
            queue: Queue to drain
            batch_size: Maximum operations per batch
            serializer: Wraps pulled descriptors into a submittable batch
            on_error: Error directive stamped on every batch
        """
        self.queue = queue
        self.batch_size = batch_size
        self.serializer = serializer
        self.on_error = on_error
        self._built = 0

    @property
    def batches_built(self) -> int:
        """Number of batches built so far."""
        return self._built

    def build_next(self) -> Tuple[Batch, bool]:
        """
        Build the next batch.

        Returns:
            Tuple of (batch, is_last_batch) where is_last_batch is True
            when the queue is empty right after the pull
        """
        descriptors = self.queue.pull(self.batch_size)
        batch = self.serializer.wrap(descriptors, self.on_error)
        self._built += 1
        batch.sequence = self._built

        is_last = self.queue.is_empty()
        logger.debug(
            "batch_built",
            batch_id=batch.batch_id[:8] + "...",
            sequence=batch.sequence,
            size=batch.size,
            is_last=is_last,
        )
        return batch, is_last
