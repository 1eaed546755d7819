"""Mock implementations for leap-connector tests.

Provides:
- A throwaway PKI producing pairing material
- A local TLS processor
- An in-memory replacement for asyncio.open_connection
"""

from .fake_connection import FakeConnection, FakeConnector, wait_until
from .mock_processor import MockProcessor
from .pki import PairingMaterial, generate_pairing_material

__all__ = [
    "FakeConnection",
    "FakeConnector",
    "MockProcessor",
    "PairingMaterial",
    "generate_pairing_material",
    "wait_until",
]
