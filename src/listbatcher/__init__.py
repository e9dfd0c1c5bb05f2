"""
SharePoint List Batcher

Applies large numbers of list item updates through the SharePoint Lists web
service, splitting them into size-limited batches that are submitted with a
bounded number of concurrent requests and folded into a single result.
"""

__version__ = "0.1.0"

from listbatcher.core.dispatcher import DispatchOptions, Dispatcher, dispatch
from listbatcher.core.errors import ConfigurationError, ListUpdateError
from listbatcher.core.operation import OperationQueue
from listbatcher.core.outcome import AggregatedResult, ResultStatus
from listbatcher.updater import ListUpdater, update_list_items

__all__ = [
    "AggregatedResult",
    "ConfigurationError",
    "DispatchOptions",
    "Dispatcher",
    "ListUpdateError",
    "ListUpdater",
    "OperationQueue",
    "ResultStatus",
    "dispatch",
    "update_list_items",
]
