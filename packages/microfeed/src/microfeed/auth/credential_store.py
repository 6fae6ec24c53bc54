import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from microfeed.exceptions import StorageUnavailable


# File permission constants for secure storage
# 0o700 = Owner has read/write/execute, others have no access
DIR_PERMISSIONS = 0o700
# 0o600 = Owner has read/write, others have no access
FILE_PERMISSIONS = 0o600

DEFAULT_STORAGE_DIR = Path.home() / ".microfeed"

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """
    Durable key/value persistence for credentials.

    Every call is atomic with respect to itself and raises
    `StorageUnavailable` when the backing storage cannot be used.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class SecureCredentialStore:
    """
    # Encrypted Credential Store

    Keeps credentials encrypted at rest using Fernet symmetric encryption
    (AES-128 in CBC mode with HMAC authentication).

    ## Security Features:
    - **Encryption**: All entries live in one Fernet encrypted JSON document
    - **File Permissions**: Restricts access to storage directory and files (Unix only)
    - **Atomic Writes**: The document is written to a temporary file and
      `os.replace`d, so a crash leaves either the old or the new document
    - **Automatic Key Generation**: Creates encryption key on first use

    ## Storage Structure:
    ```
    ~/.microfeed/              # Storage directory (mode 0o700)
    ├── key.enc                # Encryption key (mode 0o600)
    └── credentials.enc        # Encrypted entries (mode 0o600)
    ```

    ## Concurrency:
    File access runs in a worker thread so every call is a suspension
    point for the event loop. An `asyncio.Lock` serializes the
    read-modify-write cycle of `set` and `delete`.

    ## Example:
    ```python
    store = SecureCredentialStore()

    await store.set("token", "eyJhbGc...")
    token = await store.get("token")
    await store.delete("token")
    ```
    """

    def __init__(self, storage_dir: str | Path | None = None) -> None:
        """
        Initialize secure credential storage.

        Nothing touches the disk until the first call, so constructing the
        store never fails.

        ## Args:
        - `storage_dir` (str, optional): Custom directory for credential storage.
          Defaults to `~/.microfeed` if not specified.
        """
        self.storage_dir = Path(storage_dir or DEFAULT_STORAGE_DIR)
        self.data_file = self.storage_dir / "credentials.enc"
        self.key_file = self.storage_dir / "key.enc"

        self._cipher_suite: Fernet | None = None
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        entries = await self._run(self._read_entries)
        return entries.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            await self._run(self._update_entry, key, value)
        logger.debug(f"Stored credential entry '{key}'")

    async def delete(self, key: str) -> None:
        async with self._lock:
            await self._run(self._update_entry, key, None)
        logger.debug(f"Deleted credential entry '{key}'")

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except StorageUnavailable:
            raise
        except (OSError, ValueError, InvalidToken) as e:
            logger.error(f"Credential storage unavailable: {e}", exc_info=True)
            raise StorageUnavailable(f"Credential storage unavailable: {e}") from e

    def _cipher(self) -> Fernet:
        """
        Initialize or load the encryption key for credential storage.

        ## Algorithm:
        1. Create the storage directory with restrictive permissions
        2. If the key file exists, load it
        3. Otherwise generate a new Fernet key and save it (mode 0o600)

        ## Security Note:
        Losing the key means losing access to all stored credentials; a
        key that no longer matches the document surfaces as
        `StorageUnavailable` on read.
        """
        if self._cipher_suite is not None:
            return self._cipher_suite

        self.storage_dir.mkdir(parents=True, exist_ok=True, mode=DIR_PERMISSIONS)

        if self.key_file.exists():
            key = self.key_file.read_bytes()
        else:
            key = Fernet.generate_key()
            self._write_atomic(self.key_file, key)

        self._cipher_suite = Fernet(key)
        return self._cipher_suite

    def _read_entries(self) -> dict[str, str]:
        cipher = self._cipher()
        if not self.data_file.exists():
            return {}

        decrypted = cipher.decrypt(self.data_file.read_bytes())
        entries = json.loads(decrypted.decode("utf-8"))
        if not isinstance(entries, dict):
            raise StorageUnavailable("Credential document is malformed")
        return entries

    def _update_entry(self, key: str, value: str | None) -> None:
        entries = self._read_entries()
        if value is None:
            if key not in entries:
                return
            entries.pop(key)
        else:
            entries[key] = value

        data = json.dumps(entries).encode("utf-8")
        self._write_atomic(self.data_file, self._cipher().encrypt(data))

    def _write_atomic(self, path: Path, data: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # Set restrictive permissions (Unix only - no effect on Windows)
            os.chmod(tmp_path, FILE_PERMISSIONS)
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


class MemoryCredentialStore:
    """
    In-memory credential store.

    Used as a test double and for sessions that must not outlive the
    process. Setting `available = False` makes every call raise
    `StorageUnavailable`, which lets tests simulate storage outages.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.entries: dict[str, str] = dict(initial or {})
        self.available = True

    async def get(self, key: str) -> str | None:
        self._check()
        await asyncio.sleep(0)
        return self.entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check()
        await asyncio.sleep(0)
        self.entries[key] = value

    async def delete(self, key: str) -> None:
        self._check()
        await asyncio.sleep(0)
        self.entries.pop(key, None)

    def _check(self) -> None:
        if not self.available:
            raise StorageUnavailable("Credential storage unavailable")
