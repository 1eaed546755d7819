"""
Error taxonomy for the LEAP connector.

Every failure a caller can observe is one of these classes. Errors that wrap
a transport or filesystem failure keep the original exception as __cause__.
"""


class LeapConnectorError(Exception):
    """Base class for all connector errors."""


class LeapConnectionError(LeapConnectorError, ConnectionError):
    """The secure session could not be opened or negotiated."""


class IncompleteCredentialsError(LeapConnectionError):
    """A connection was attempted with a partial credential set."""


class NotConnectedError(LeapConnectorError):
    """A write was attempted with no live session."""


class WriteError(LeapConnectorError):
    """The transport rejected an outbound write."""


class MissingAuthorityError(LeapConnectorError):
    """The bundled authority credentials are absent or malformed."""


class StoreWriteError(LeapConnectorError):
    """The pairing document could not be persisted."""


class FramingError(LeapConnectorError):
    """An inbound record could not be decoded.

    Records decoded from the same chunk around the bad line are kept on the
    error so the caller does not lose them.
    """

    def __init__(self, message, records=None):
        super().__init__(message)
        self.records = list(records or [])
