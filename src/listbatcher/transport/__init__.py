"""
Transport layer for the remote list service.

Provides the abstract collaborators used by the dispatcher and their
SharePoint SOAP implementations.
"""

from listbatcher.transport.interface import BatchSerializer, ErrorInspector, Transport
from listbatcher.transport.soap import (
    SoapBatchSerializer,
    SoapErrorInspector,
    SoapListsTransport,
    build_update_envelope,
)

__all__ = [
    "BatchSerializer",
    "ErrorInspector",
    "Transport",
    "SoapBatchSerializer",
    "SoapErrorInspector",
    "SoapListsTransport",
    "build_update_envelope",
]
