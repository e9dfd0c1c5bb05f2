"""
Core dispatch components.

This module contains the operation queue, batch building, the
concurrency-limited dispatcher and response aggregation.
"""

from listbatcher.core.errors import ConfigurationError, ListUpdateError
from listbatcher.core.operation import OperationDescriptor, OperationQueue
from listbatcher.core.outcome import (
    AggregatedResult,
    BatchFailure,
    BatchOutcome,
    BatchSuccess,
    ResultStatus,
)
from listbatcher.core.batch import Batch, BatchBuilder
from listbatcher.core.aggregator import ResponseAggregator
from listbatcher.core.dispatcher import DispatchOptions, DispatchState, Dispatcher, dispatch

__all__ = [
    "AggregatedResult",
    "Batch",
    "BatchBuilder",
    "BatchFailure",
    "BatchOutcome",
    "BatchSuccess",
    "ConfigurationError",
    "DispatchOptions",
    "DispatchState",
    "Dispatcher",
    "ListUpdateError",
    "OperationDescriptor",
    "OperationQueue",
    "ResponseAggregator",
    "ResultStatus",
    "dispatch",
]
