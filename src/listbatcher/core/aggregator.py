"""
Response Aggregator - folds batch outcomes into one result.
"""

from typing import Optional, Sequence

import structlog

from listbatcher.core.outcome import (
    HTTP_ERROR_MESSAGE,
    SUCCESS_MESSAGE,
    AggregatedResult,
    BatchOutcome,
    ResultStatus,
)
from listbatcher.transport.interface import ErrorInspector

logger = structlog.get_logger(__name__)


class ResponseAggregator:
    """
    Classifies a dispatch as success or error.

    Rules:
    - Any transport failure makes the result an error. Every outcome is
      scanned and the message of the last failure (in completion order)
      is the one reported.
    - With no transport failures, successful payloads are checked with the
      error inspector; the first application error found is reported.
    - One outcome gives single-valued payloads/raw_responses, several give
      lists in completion order.
    """

    def __init__(self, inspector: Optional[ErrorInspector] = None):
        """
        Initialize the aggregator.

        Args:
            inspector: Detects application errors inside successful payloads.
                Payloads are not inspected when omitted.
        """
        self.inspector = inspector

    def aggregate(self, outcomes: Sequence[BatchOutcome]) -> AggregatedResult:
        """
        Produce the aggregated result for a sequence of outcomes.

        Args:
            outcomes: Batch outcomes in completion order

        Returns:
            The aggregated result
        """
        is_multi = len(outcomes) > 1

        status = ResultStatus.SUCCESS
        message = SUCCESS_MESSAGE
        failure_message: Optional[str] = None
        payloads = []
        raw_responses = []

        for outcome in outcomes:
            if outcome.is_failure:
                # Failed batches report their raw response in place of a payload
                payloads.append(outcome.raw_response)
                failure_message = outcome.error_message or HTTP_ERROR_MESSAGE
            else:
                payloads.append(outcome.payload)
            raw_responses.append(outcome.raw_response)

        if failure_message is not None:
            status = ResultStatus.ERROR
            message = failure_message
        else:
            app_error = self._find_application_error(outcomes)
            if app_error is not None:
                status = ResultStatus.ERROR
                message = app_error

        result = AggregatedResult(
            status=status,
            message=message,
            payloads=payloads if is_multi else (payloads[0] if payloads else None),
            raw_responses=raw_responses if is_multi else (raw_responses[0] if raw_responses else None),
            batch_count=len(outcomes),
        )

        logger.debug("outcomes_aggregated", **result.to_dict())
        return result

    def _find_application_error(self, outcomes: Sequence[BatchOutcome]) -> Optional[str]:
        """Return the message of the first payload carrying an application error."""
        # First detected error is reported on purpose, unlike transport failures
        # where the last one wins. Keep it first-wins.
        if self.inspector is None:
            return None

        first: Optional[str] = None
        for outcome in outcomes:
            if self.inspector.has_error(outcome.payload):
                message = self.inspector.extract_message(outcome.payload)
                logger.debug(
                    "application_error_detected",
                    batch_id=outcome.batch_id[:8] + "...",
                    error=message,
                )
                if first is None:
                    first = message
        return first
