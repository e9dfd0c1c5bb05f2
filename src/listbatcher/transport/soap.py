"""
SharePoint Lists web service adapter.

Implements the transport collaborators against the ``UpdateListItems``
operation of ``_vti_bin/Lists.asmx``.
"""

from typing import Any, Optional, Sequence
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import httpx
import structlog

from listbatcher.config import ErrorDirective, ListBatcherConfig, get_config
from listbatcher.core.batch import Batch
from listbatcher.core.operation import OperationDescriptor
from listbatcher.core.outcome import HTTP_ERROR_MESSAGE, BatchFailure, BatchOutcome, BatchSuccess
from listbatcher.transport.interface import BatchSerializer, ErrorInspector, Transport

logger = structlog.get_logger(__name__)

SOAP_NAMESPACE = "http://schemas.microsoft.com/sharepoint/soap/"
UPDATE_LIST_ITEMS_ACTION = SOAP_NAMESPACE + "UpdateListItems"
NO_ERROR_CODE = "0x00000000"
TIMEOUT_MESSAGE = "timeout"


def build_update_envelope(list_name: str, batch_body: str) -> str:
    """
    Build the SOAP envelope for an UpdateListItems call.

    Args:
        list_name: Name or GUID of the target list
        batch_body: Serialized ``<Batch>`` element

    Returns:
        Complete request document
    """
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
        'xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        f'<soap:Body><UpdateListItems xmlns="{SOAP_NAMESPACE}">'
        f"<listName>{escape(list_name)}</listName>"
        f"<updates>{batch_body}</updates>"
        "</UpdateListItems></soap:Body></soap:Envelope>"
    )


def _local_name(element: ElementTree.Element) -> str:
    """Tag name without its namespace."""
    return element.tag.rsplit("}", 1)[-1]


def _find_all(payload: ElementTree.Element, name: str) -> list:
    return [el for el in payload.iter() if _local_name(el) == name]


def _find_text(payload: ElementTree.Element, name: str) -> Optional[str]:
    for el in _find_all(payload, name):
        text = (el.text or "").strip()
        if text:
            return text
    return None


class SoapBatchSerializer(BatchSerializer):
    """Wraps method descriptors in a ``<Batch OnError="...">`` element."""

    def wrap(
        self,
        descriptors: Sequence[OperationDescriptor],
        on_error: ErrorDirective,
    ) -> Batch:
        body = "".join(descriptors)

        # Callers may hand in a complete <Batch> themselves
        if "</Batch>" not in body:
            directive = ErrorDirective(on_error).value
            body = f'<Batch OnError="{directive}">{body}</Batch>'

        return Batch(descriptors=tuple(descriptors), on_error=on_error, body=body)


class SoapErrorInspector(ErrorInspector):
    """
    Detects processing errors in an UpdateListItems response.

    A response is in error when it holds a SOAP fault, an ``errorstring``
    element, or a ``<Result>`` whose ``ErrorCode`` is not ``0x00000000``.
    """

    def has_error(self, payload: Any) -> bool:
        if not isinstance(payload, ElementTree.Element):
            return False
        if _find_all(payload, "Fault") or _find_all(payload, "errorstring"):
            return True
        return any(
            (el.text or "").strip() != NO_ERROR_CODE
            for el in _find_all(payload, "ErrorCode")
        )

    def extract_message(self, payload: Any) -> str:
        for result in _find_all(payload, "Result"):
            code = _find_text(result, "ErrorCode")
            if code is not None and code != NO_ERROR_CODE:
                text = _find_text(result, "ErrorText")
                return text or f"Update failed with error code {code}."

        for name in ("errorstring", "faultstring"):
            text = _find_text(payload, name)
            if text:
                return text

        code = _find_text(payload, "ErrorCode") or _find_text(payload, "errorcode")
        if code:
            return f"Update failed with error code {code}."
        return "Update failed."


class SoapListsTransport(Transport):
    """
    Sends batches to a SharePoint Lists web service over HTTP.

    Every call yields exactly one outcome: HTTP errors, timeouts and
    unparsable responses come back as BatchFailure.
    """

    def __init__(
        self,
        config: Optional[ListBatcherConfig] = None,
        list_name: Optional[str] = None,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the transport.

        Args:
            config: Batcher configuration. Uses global config if not provided.
            list_name: Target list (defaults to config.list_name)
            url: Lists service endpoint (defaults to config.lists_service_url)
            client: Shared HTTP client; one is created (and owned) if omitted
        """
        self.config = config or get_config()
        self.list_name = list_name if list_name is not None else self.config.list_name
        self.url = url or self.config.lists_service_url
        self._client = client
        self._owns_client = client is None

    @property
    def headers(self) -> dict:
        """Get request headers for the SOAP call."""
        return {
            "Content-Type": "text/xml;charset=utf-8",
            "SOAPAction": UPDATE_LIST_ITEMS_ACTION,
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SoapListsTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def submit(self, batch: Batch) -> BatchOutcome:
        """Post one batch and classify the response."""
        envelope = build_update_envelope(self.list_name, batch.body)

        try:
            response = await self._get_client().post(
                self.url,
                content=envelope.encode("utf-8"),
                headers=self.headers,
            )
        except httpx.TimeoutException as e:
            logger.error("transport_request_timeout", url=self.url, error=str(e))
            return BatchFailure(TIMEOUT_MESSAGE, batch_id=batch.batch_id)
        except httpx.RequestError as e:
            logger.error("transport_request_failed", url=self.url, error=str(e))
            return BatchFailure(str(e) or HTTP_ERROR_MESSAGE, batch_id=batch.batch_id)

        if not response.is_success:
            message = self._fault_message(response) or response.reason_phrase or HTTP_ERROR_MESSAGE
            logger.error(
                "transport_request_failed",
                url=self.url,
                status=response.status_code,
                error=message,
            )
            return BatchFailure(message, raw_response=response, batch_id=batch.batch_id)

        try:
            payload = ElementTree.fromstring(response.content)
        except ElementTree.ParseError as e:
            logger.error("transport_response_unparsable", url=self.url, error=str(e))
            return BatchFailure(
                f"Unable to parse response: {e}",
                raw_response=response,
                batch_id=batch.batch_id,
            )

        return BatchSuccess(payload=payload, raw_response=response, batch_id=batch.batch_id)

    @staticmethod
    def _fault_message(response: httpx.Response) -> Optional[str]:
        """Pull the fault text out of an error response, if it has one."""
        try:
            payload = ElementTree.fromstring(response.content)
        except ElementTree.ParseError:
            return None
        return _find_text(payload, "errorstring") or _find_text(payload, "faultstring")
