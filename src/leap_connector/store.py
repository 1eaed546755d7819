"""
Persistent storage for processor pairing credentials.

Two BSON documents back the store: a bundled, read-only "authority" record
and a user-writable "pairing" record holding one credential set per
processor. Every field is stored as base64 text, which is an interchange
encoding and offers no confidentiality; the filesystem is the trust boundary.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import bson
from bson.errors import BSONError

from .credentials import CredentialSet
from .errors import MissingAuthorityError, StoreWriteError

logger = logging.getLogger(__name__)

AUTHORITY_KEY = "authority"
PAIRING_FILENAME = "pairing"


class CredentialStore:
    """Process-lifetime cache of processor credentials backed by disk.

    The pairing document is loaded once at construction. Inserts update the
    cache first and then rewrite the whole document.
    """

    def __init__(self, store_dir: Optional[Path] = None, authority_path: Optional[Path] = None):
        """Initialize the credential store.

        Args:
            store_dir: Directory holding the pairing document
            authority_path: Path to the bundled authority document
        """
        self.store_dir = Path(store_dir) if store_dir else self._default_store_dir()
        self.authority_path = Path(authority_path) if authority_path else self._default_authority_path()
        self._authority: Optional[CredentialSet] = None
        self._processors: dict[str, CredentialSet] = self._load_pairing()

    @staticmethod
    def _default_store_dir() -> Path:
        """Get the default pairing directory."""
        configured = os.environ.get("LEAP_STORE_DIR")
        if configured:
            return Path(configured).expanduser()
        return Path("~/.leap").expanduser()

    @staticmethod
    def _default_authority_path() -> Path:
        """Get the default bundled authority path."""
        configured = os.environ.get("LEAP_AUTHORITY_PATH")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent / "data" / AUTHORITY_KEY

    @property
    def pairing_path(self) -> Path:
        return self.store_dir / PAIRING_FILENAME

    @property
    def authority(self) -> CredentialSet:
        """The bundled authority credential set, loaded on first access.

        Raises:
            MissingAuthorityError: If the record is absent or incomplete
        """
        if self._authority is not None:
            return self._authority

        if not self.authority_path.is_file():
            raise MissingAuthorityError(f"No authority record at {self.authority_path}")

        try:
            document = bson.decode(self.authority_path.read_bytes())
            authority = CredentialSet.decode(document)
        except (OSError, BSONError, ValueError) as e:
            raise MissingAuthorityError(f"Unreadable authority record at {self.authority_path}") from e

        if not authority.is_complete():
            raise MissingAuthorityError(f"Incomplete authority record at {self.authority_path}")

        self._authority = authority
        return self._authority

    @property
    def processor_ids(self) -> set[str]:
        """Identifiers of all paired processors."""
        return {key for key in self._processors if key != AUTHORITY_KEY}

    def lookup(self, processor_id: str) -> Optional[CredentialSet]:
        """Retrieve the credentials for a processor.

        Args:
            processor_id: The processor identifier

        Returns:
            The credential set, or None if the processor is unknown
        """
        return self._processors.get(processor_id)

    def insert(self, processor_id: str, credentials: CredentialSet) -> None:
        """Store credentials for a processor, replacing any prior set.

        Writes to the reserved authority key are ignored.

        Args:
            processor_id: The processor identifier
            credentials: A complete credential set

        Raises:
            ValueError: If the identifier cannot be stored or the credential
                set is incomplete
            StoreWriteError: If the pairing document could not be written
        """
        if processor_id == AUTHORITY_KEY:
            logger.warning("Ignoring write to the reserved authority slot")
            return

        if not isinstance(processor_id, str) or not processor_id or "\x00" in processor_id:
            raise ValueError(f"Invalid processor id {processor_id!r}")

        if not credentials.is_complete():
            raise ValueError(f"Refusing to store incomplete credentials for {processor_id}")

        self._processors[processor_id] = credentials
        self._save_pairing()

    def remove(self, processor_id: str) -> bool:
        """Forget a processor.

        Args:
            processor_id: The processor identifier

        Returns:
            True if removed, False if not found

        Raises:
            StoreWriteError: If the pairing document could not be written
        """
        if processor_id == AUTHORITY_KEY or processor_id not in self._processors:
            return False

        del self._processors[processor_id]
        self._save_pairing()
        return True

    def _load_pairing(self) -> dict[str, CredentialSet]:
        """Load and decode the pairing document."""
        path = self.pairing_path
        if not path.is_file():
            return {}

        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning("Pairing document %s is unreadable, starting empty: %s", path, e)
            return {}
        if not data:
            return {}

        try:
            document = bson.decode(data)
        except BSONError:
            logger.warning("Pairing document %s is corrupt, starting empty", path)
            return {}

        processors = {}
        for processor_id, entry in document.items():
            if processor_id == AUTHORITY_KEY or not isinstance(entry, dict):
                continue
            try:
                credentials = CredentialSet.decode(entry)
            except ValueError:
                logger.warning("Skipping undecodable credentials for processor %s", processor_id)
                continue
            if not credentials.is_complete():
                logger.warning("Skipping incomplete credentials for processor %s", processor_id)
                continue
            processors[processor_id] = credentials

        logger.debug("Loaded %d processor credential sets from %s", len(processors), path)
        return processors

    def _save_pairing(self) -> None:
        """Encode and rewrite the whole pairing document.

        The document is written to a temp file beside the target and moved
        into place, so a crash never leaves a half-written record.
        """
        document = {
            processor_id: credentials.encode()
            for processor_id, credentials in self._processors.items()
        }

        temp_name = None
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.store_dir, prefix=".pairing-", delete=False
            ) as f:
                temp_name = f.name
                f.write(bson.encode(document))
                f.flush()
                os.fsync(f.fileno())
            if os.name != "nt":
                os.chmod(temp_name, 0o600)
            os.replace(temp_name, self.pairing_path)
            temp_name = None
        except (OSError, BSONError) as e:
            raise StoreWriteError(f"Failed to write {self.pairing_path}") from e
        finally:
            if temp_name is not None:
                try:
                    os.unlink(temp_name)
                except OSError:
                    pass
