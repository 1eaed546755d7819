"""Tests for leap-connector.

Test Structure:
    tests/
    ├── conftest.py          # Shared pytest fixtures
    ├── unit/                # Unit tests (no sockets)
    │   ├── test_config.py
    │   ├── test_credentials.py
    │   ├── test_credential_store.py
    │   ├── test_events.py
    │   ├── test_framing.py
    │   ├── test_retry.py
    │   └── test_transport.py
    ├── integration/         # Tests against a local TLS processor
    │   └── test_transport_tls.py
    └── mocks/               # Mock implementations
        ├── fake_connection.py
        ├── mock_processor.py
        └── pki.py

Usage:
    # Run all tests
    pytest

    # Run only unit tests
    pytest -m unit

    # Run only integration tests
    pytest -m integration
"""
