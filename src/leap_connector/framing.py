"""
Newline-delimited JSON framing.

Each message on the wire is one compact JSON document followed by a single
newline. The transport only encodes outbound messages; MessageBuffer is for
callers that split the inbound byte stream back into records.
"""

import json
from typing import Any

from .errors import FramingError

FRAME_TERMINATOR = b"\n"


def encode_message(message: Any) -> bytes:
    """Serialize a message to its framed wire form.

    Raises:
        TypeError: If the message is not JSON serializable
    """
    text = json.dumps(message, separators=(",", ":"))
    return text.encode("utf-8") + FRAME_TERMINATOR


class MessageBuffer:
    """Accumulates inbound bytes and yields complete decoded records."""

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete record."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> list[Any]:
        """Add received bytes and return every record completed by them.

        Raises:
            FramingError: If a complete line is not valid JSON. Bad lines are
                dropped and the good records of this chunk are attached to
                the error.
        """
        self._buffer.extend(data)
        records = []
        rejected = []

        while True:
            index = self._buffer.find(FRAME_TERMINATOR)
            if index < 0:
                break

            line = bytes(self._buffer[:index]).strip()
            del self._buffer[:index + 1]

            if not line:
                continue

            try:
                records.append(json.loads(line))
            except ValueError:
                rejected.append(line)

        if rejected:
            raise FramingError(
                f"{len(rejected)} undecodable record(s), first: {rejected[0][:80]!r}",
                records=records,
            )

        return records
