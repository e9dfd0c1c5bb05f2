"""
Main list updater.

Ties normalization, batching, dispatch and aggregation together behind
a single ``update()`` call.
"""

from typing import Any, Callable, Optional, Sequence

import structlog

from listbatcher.config import ListBatcherConfig, UpdateCommand, get_config
from listbatcher.core.batch import Batch
from listbatcher.core.dispatcher import DispatchOptions, Dispatcher
from listbatcher.core.operation import OperationQueue
from listbatcher.core.outcome import AggregatedResult, BatchOutcome
from listbatcher.transport.interface import BatchSerializer, ErrorInspector, Transport
from listbatcher.transport.soap import SoapBatchSerializer, SoapErrorInspector, SoapListsTransport
from listbatcher.updates import FieldPair, Updates, normalize_updates

logger = structlog.get_logger(__name__)


class ListUpdater:
    """
    Applies updates to a remote list in concurrent batches.

    Usage:
        ```python
        async with ListUpdater(ListBatcherConfig(web_url=..., list_name="Tasks")) as updater:
            result = await updater.update([{"ID": 3, "Title": "Updated title"}])
            print(result.message)
        ```
    """

    def __init__(
        self,
        config: Optional[ListBatcherConfig] = None,
        transport: Optional[Transport] = None,
        inspector: Optional[ErrorInspector] = None,
        serializer: Optional[BatchSerializer] = None,
    ):
        """
        Initialize the updater.

        Args:
            config: Batcher configuration. Uses global config if not provided.
            transport: Custom transport (a SOAP transport is created if not provided)
            inspector: Custom application-error inspector
            serializer: Custom batch serializer
        """
        self.config = config or get_config()
        self._owns_transport = transport is None
        self.transport = transport or SoapListsTransport(self.config)
        self.inspector = inspector or SoapErrorInspector()
        self.serializer = serializer or SoapBatchSerializer()

        # Callbacks
        self._on_batch_complete: Optional[Callable[[Batch, BatchOutcome], None]] = None
        self._on_complete: Optional[Callable[[AggregatedResult], None]] = None

    async def __aenter__(self) -> "ListUpdater":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport if this updater created it."""
        if self._owns_transport:
            await self.transport.aclose()

    async def update(
        self,
        updates: Updates = None,
        update_type: Optional[UpdateCommand] = None,
        item_id: Optional[Any] = None,
        valuepairs: Optional[Sequence[FieldPair]] = None,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> AggregatedResult:
        """
        Apply updates to the configured list.

        Args:
            updates: Updates in any shape accepted by normalize_updates()
            update_type: Command for generated methods (defaults to config)
            item_id: Item ID for the legacy ``valuepairs`` form
            valuepairs: Field pairs for the legacy form
            batch_size: Override for config.batch_size
            concurrency: Override for config.concurrency

        Returns:
            Aggregated result of every batch

        Raises:
            ConfigurationError: If batch_size or concurrency is invalid
        """
        options = DispatchOptions.from_config(
            self.config,
            batch_size=batch_size,
            concurrency=concurrency,
        )

        descriptors = normalize_updates(
            updates,
            update_type=update_type or self.config.update_type,
            item_id=item_id,
            valuepairs=valuepairs,
        )

        dispatcher = Dispatcher(self.transport, self.serializer, self.inspector, options)
        if self._on_batch_complete:
            dispatcher.on_batch_complete(self._on_batch_complete)

        result = await dispatcher.run(OperationQueue(descriptors))

        if self._on_complete:
            self._on_complete(result)

        return result

    # Callback registration

    def on_batch_complete(self, callback: Callable[[Batch, BatchOutcome], None]) -> None:
        """Register callback for each completed batch."""
        self._on_batch_complete = callback

    def on_complete(self, callback: Callable[[AggregatedResult], None]) -> None:
        """Register callback for the final result of an update."""
        self._on_complete = callback


async def update_list_items(
    updates: Updates = None,
    config: Optional[ListBatcherConfig] = None,
    **kwargs,
) -> AggregatedResult:
    """
    Apply updates with a throwaway updater.

    Args:
        updates: Updates in any shape accepted by normalize_updates()
        config: Batcher configuration. Uses global config if not provided.
        **kwargs: Passed through to ListUpdater.update()

    Returns:
        Aggregated result of every batch
    """
    async with ListUpdater(config) as updater:
        return await updater.update(updates, **kwargs)
