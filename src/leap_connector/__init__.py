"""
LEAP connector - secure session and pairing store for home automation processors.

This package provides the TLS transport that carries newline-delimited JSON
messages to a single processor, and the credential store that persists the
pairing material used to authenticate it.
"""

__version__ = "0.1.0"

from .credentials import CredentialSet
from .errors import (
    FramingError,
    IncompleteCredentialsError,
    LeapConnectionError,
    LeapConnectorError,
    MissingAuthorityError,
    NotConnectedError,
    StoreWriteError,
    WriteError,
)
from .events import Data, Disconnect, Error, EventSource, Timeout
from .framing import MessageBuffer, encode_message
from .store import AUTHORITY_KEY, CredentialStore
from .transport import Transport, TransportState, TrustPolicy, build_ssl_context

__all__ = [
    "AUTHORITY_KEY",
    "CredentialSet",
    "CredentialStore",
    "Data",
    "Disconnect",
    "Error",
    "EventSource",
    "FramingError",
    "IncompleteCredentialsError",
    "LeapConnectionError",
    "LeapConnectorError",
    "MessageBuffer",
    "MissingAuthorityError",
    "NotConnectedError",
    "StoreWriteError",
    "Timeout",
    "Transport",
    "TransportState",
    "TrustPolicy",
    "WriteError",
    "build_ssl_context",
    "encode_message",
]
