"""
Exceptions raised by the dispatch core.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from listbatcher.core.outcome import AggregatedResult


class ConfigurationError(ValueError):
    """Raised when a dispatch is requested with an invalid batch size or concurrency."""
    pass


class ListUpdateError(Exception):
    """Raised by AggregatedResult.raise_for_status() for an errored update."""

    def __init__(self, result: "AggregatedResult"):
        super().__init__(result.message)
        self.result = result
