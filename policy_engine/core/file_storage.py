"""
JSON file policy storage.

FilePolicyStorage persists the policy map as a single JSON object. Writes are
atomic (write to a temporary file, fsync, rename over the target) and the
previous file is kept as a rolling backup before each overwrite.
"""

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from policy_engine.core.storage import IPolicyStorage, PolicyMap, validate_policy_map
from policy_engine.exceptions import JsonParseError, StorageError
from policy_engine.logging_config import get_logger, log_storage_operation
from policy_engine.utils.json_handler import JsonHandler
from policy_engine.utils.log_handler import LogHandler

logger = get_logger(__name__)


class FilePolicyStorage(IPolicyStorage):
    """
    Policy storage backed by a JSON file.

    Implements:
    - Empty result when the file does not exist or is empty
    - Payload validation before any write
    - Atomic replace on save (no partially written file is ever visible)
    - Rolling backups (policies.json.bak.1 is the most recent)
    - Clear removes the file and its backups; clearing twice is a no-op
    """

    BACKEND = "file"

    def __init__(
        self,
        policy_path: Union[str, Path],
        backup_count: int = 3,
        log_handler: Optional[LogHandler] = None,
    ):
        """
        Initialize FilePolicyStorage.

        Args:
            policy_path: Path to the JSON policy file
            backup_count: Number of rolling backups to keep (0 disables backups)
            log_handler: LogHandler for diagnostics (defaults to the shared one)
        """
        self.policy_path = Path(policy_path).expanduser()
        self.backup_count = backup_count
        self._json = JsonHandler(log_handler)
        self._lock = asyncio.Lock()

    def backup_path(self, index: int) -> Path:
        return Path(f"{self.policy_path}.bak.{index}")

    async def load_policies(self) -> PolicyMap:
        """
        Load policies from the JSON file.

        Returns:
            The stored policy map, or an empty dict if nothing is stored

        Raises:
            StorageError: If the file cannot be read or does not contain a
                JSON object
        """
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def save_policies(self, policies: PolicyMap) -> None:
        """
        Overwrite the JSON file with policies.

        Raises:
            StorageError: If policies is invalid or the file cannot be written
        """
        validate_policy_map(policies, self.BACKEND)
        async with self._lock:
            await asyncio.to_thread(self._write, policies)

    async def clear_policies(self) -> None:
        """
        Delete the policy file and its backups.

        Raises:
            StorageError: If a file exists but cannot be removed
        """
        async with self._lock:
            await asyncio.to_thread(self._clear)

    def _read(self) -> PolicyMap:
        if not self.policy_path.exists():
            log_storage_operation(
                logger, self.BACKEND, "load", True,
                policy_count=0, location=str(self.policy_path),
            )
            return {}

        try:
            content = self.policy_path.read_text(encoding="utf-8")
        except OSError as e:
            log_storage_operation(
                logger, self.BACKEND, "load", False,
                location=str(self.policy_path), reason=str(e),
            )
            raise StorageError(
                f"Failed to read policy file {self.policy_path}: {e}",
                backend=self.BACKEND,
                original_error=e,
            ) from e
        except UnicodeDecodeError as e:
            log_storage_operation(
                logger, self.BACKEND, "load", False,
                location=str(self.policy_path), reason=str(e),
            )
            raise StorageError(
                f"Policy file {self.policy_path} is corrupted: not valid UTF-8 ({e})",
                backend=self.BACKEND,
                original_error=e,
            ) from e

        if not content.strip():
            return {}

        try:
            policies = self._json.parse_json_string(content, context=str(self.policy_path))
        except JsonParseError as e:
            log_storage_operation(
                logger, self.BACKEND, "load", False,
                location=str(self.policy_path), reason=e.message,
            )
            raise StorageError(
                f"Policy file {self.policy_path} is corrupted: {e.message}",
                backend=self.BACKEND,
                original_error=e,
            ) from e

        log_storage_operation(
            logger, self.BACKEND, "load", True,
            policy_count=len(policies), location=str(self.policy_path),
        )
        return policies

    def _write(self, policies: PolicyMap) -> None:
        tmp_path: Optional[str] = None
        try:
            self.policy_path.parent.mkdir(parents=True, exist_ok=True)

            if self.backup_count > 0 and self.policy_path.exists():
                self._create_backup()

            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.policy_path.parent),
                prefix=f".{self.policy_path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(policies, f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, self.policy_path)
            tmp_path = None
        except OSError as e:
            log_storage_operation(
                logger, self.BACKEND, "save", False,
                location=str(self.policy_path), reason=str(e),
            )
            raise StorageError(
                f"Failed to write policy file {self.policy_path}: {e}",
                backend=self.BACKEND,
                original_error=e,
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        log_storage_operation(
            logger, self.BACKEND, "save", True,
            policy_count=len(policies), location=str(self.policy_path),
        )

    def _clear(self) -> None:
        targets = [self.policy_path]
        targets.extend(self.backup_path(i) for i in range(1, self.backup_count + 1))

        removed = 0
        for path in targets:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                log_storage_operation(
                    logger, self.BACKEND, "clear", False,
                    location=str(path), reason=str(e),
                )
                raise StorageError(
                    f"Failed to remove policy file {path}: {e}",
                    backend=self.BACKEND,
                    original_error=e,
                ) from e

        log_storage_operation(
            logger, self.BACKEND, "clear", True,
            location=str(self.policy_path), files_removed=removed,
        )

    def _create_backup(self) -> None:
        """
        Rotate backups and copy the current file to .bak.1.

        Rotates backups:
        - policies.json.bak.N -> deleted
        - policies.json.bak.i -> policies.json.bak.i+1
        - policies.json -> policies.json.bak.1
        """
        oldest_backup = self.backup_path(self.backup_count)
        if oldest_backup.exists():
            oldest_backup.unlink()

        for i in range(self.backup_count - 1, 0, -1):
            old_backup = self.backup_path(i)
            if old_backup.exists():
                old_backup.rename(self.backup_path(i + 1))

        shutil.copy2(self.policy_path, self.backup_path(1))
        logger.debug(f"Created policy backup at {self.backup_path(1)}")
