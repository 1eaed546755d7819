"""Shared pytest fixtures for leap-connector tests.

Unit tests use in-memory fakes. Integration tests talk to a TLS server on
127.0.0.1 backed by a freshly generated PKI.
"""

import os
from pathlib import Path
from typing import AsyncGenerator, Generator

import bson
import pytest
import pytest_asyncio

from leap_connector.credentials import CredentialSet
from tests.mocks import MockProcessor, PairingMaterial, generate_pairing_material


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no sockets)")
    config.addinivalue_line("markers", "integration: Requires a local TLS listener")
    config.addinivalue_line("markers", "slow: Long-running tests")


@pytest.fixture(scope="session")
def pairing_material() -> PairingMaterial:
    """PKI for the simulated processor, generated once per session."""
    return generate_pairing_material("processor.local")


@pytest.fixture(scope="session")
def foreign_material() -> PairingMaterial:
    """PKI for an unrelated processor, signed by a different authority."""
    return generate_pairing_material("stranger.local")


@pytest.fixture
def credentials(pairing_material: PairingMaterial) -> CredentialSet:
    """Client credentials paired with the simulated processor."""
    return pairing_material.client_credentials()


@pytest.fixture
def temp_store_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide an isolated directory for the pairing document.

    Yields:
        Path to a temporary store directory
    """
    store_dir = tmp_path / "leap"
    store_dir.mkdir()
    yield store_dir


@pytest.fixture
def authority_file(tmp_path: Path, foreign_material: PairingMaterial) -> Path:
    """Write a bundled authority document like the one shipped with the package.

    Returns:
        Path to the BSON authority record
    """
    path = tmp_path / "authority"
    path.write_bytes(bson.encode(foreign_material.client_credentials().encode()))
    return path


@pytest_asyncio.fixture
async def mock_processor(
    pairing_material: PairingMaterial, tmp_path: Path
) -> AsyncGenerator[MockProcessor, None]:
    """Start a local TLS processor for the duration of a test."""
    work_dir = tmp_path / "processor"
    work_dir.mkdir()
    processor = MockProcessor(pairing_material, work_dir)
    await processor.start()
    yield processor
    await processor.stop()


@pytest.fixture
def clean_env(monkeypatch):
    """Provide an environment without LEAP config vars."""
    env_vars = [
        "LEAP_CONFIG_PATH",
        "LEAP_HOST",
        "LEAP_PORT",
        "LEAP_PROCESSOR_ID",
        "LEAP_STORE_DIR",
        "LEAP_AUTHORITY_PATH",
        "LEAP_TRUST_POLICY",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)


# Autouse fixture for test isolation
@pytest.fixture(autouse=True)
def isolate_test_artifacts(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Ensure tests don't touch the real ~/.leap directory.

    Points HOME at a temp directory and clears store overrides.
    """
    test_home = tmp_path / "home"
    test_home.mkdir()
    monkeypatch.setenv("HOME", str(test_home))
    if os.name == "nt":
        monkeypatch.setenv("USERPROFILE", str(test_home))
    monkeypatch.delenv("LEAP_STORE_DIR", raising=False)
    monkeypatch.delenv("LEAP_AUTHORITY_PATH", raising=False)

    yield
