"""
Configuration for connecting to a LEAP processor.

Settings come from a YAML file named by LEAP_CONFIG_PATH, or from
individual LEAP_* environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from .credentials import CredentialSet
from .store import CredentialStore
from .transport import TrustPolicy

DEFAULT_PORT = 8081


@dataclass
class ConnectorConfig:
    """Connection settings for one processor."""
    host: str
    port: int = DEFAULT_PORT
    processor_id: Optional[str] = None
    store_dir: Optional[Path] = None
    authority_path: Optional[Path] = None
    trust_policy: TrustPolicy = TrustPolicy.PINNED_AUTHORITY

    @classmethod
    def from_config_file(cls, config_path: str) -> "ConnectorConfig":
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a mapping or a value is invalid
        """
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")

        return cls._from_values(
            host=data.get("host"),
            port=data.get("port"),
            processor_id=data.get("processor_id"),
            store_dir=data.get("store_dir"),
            authority_path=data.get("authority_path"),
            trust_policy=data.get("trust_policy"),
        )

    @classmethod
    def from_env(cls) -> "ConnectorConfig":
        """Load configuration from LEAP_* environment variables."""
        return cls._from_values(
            host=os.environ.get("LEAP_HOST"),
            port=os.environ.get("LEAP_PORT"),
            processor_id=os.environ.get("LEAP_PROCESSOR_ID"),
            store_dir=os.environ.get("LEAP_STORE_DIR"),
            authority_path=os.environ.get("LEAP_AUTHORITY_PATH"),
            trust_policy=os.environ.get("LEAP_TRUST_POLICY"),
        )

    @classmethod
    def _from_values(cls, host, port, processor_id, store_dir, authority_path, trust_policy) -> "ConnectorConfig":
        try:
            port = int(port) if port not in (None, "") else DEFAULT_PORT
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid port: {port!r}") from e

        try:
            policy = TrustPolicy(trust_policy) if trust_policy else TrustPolicy.PINNED_AUTHORITY
        except ValueError as e:
            choices = ", ".join(p.value for p in TrustPolicy)
            raise ValueError(f"Invalid trust policy {trust_policy!r}, expected one of: {choices}") from e

        return cls(
            host=host or "",
            port=port,
            processor_id=processor_id or None,
            store_dir=Path(store_dir).expanduser() if store_dir else None,
            authority_path=Path(authority_path).expanduser() if authority_path else None,
            trust_policy=policy,
        )

    def validate(self) -> None:
        """Validate that the configuration is usable.

        Raises:
            ValueError: If a required value is missing or out of range
        """
        if not self.host:
            raise ValueError("Processor host is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")

    def open_store(self) -> CredentialStore:
        """Create a credential store at the configured locations."""
        return CredentialStore(store_dir=self.store_dir, authority_path=self.authority_path)

    def credentials_for(self, store: CredentialStore) -> Optional[CredentialSet]:
        """Resolve the credential set for the configured processor.

        Without a processor id the bundled authority is used, which is what
        a pairing session presents.
        """
        if self.processor_id is None:
            return store.authority
        return store.lookup(self.processor_id)


def load_config() -> ConnectorConfig:
    """Load configuration from the environment.

    LEAP_CONFIG_PATH takes priority over individual variables.

    Raises:
        ValueError: If no configuration is available or it is invalid
    """
    config_path = os.environ.get("LEAP_CONFIG_PATH")
    if config_path:
        config = ConnectorConfig.from_config_file(config_path)
    elif os.environ.get("LEAP_HOST"):
        config = ConnectorConfig.from_env()
    else:
        raise ValueError(
            "No LEAP configuration found. Set LEAP_CONFIG_PATH or LEAP_HOST."
        )

    config.validate()
    return config
