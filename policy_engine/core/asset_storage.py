"""
Read-only policy storage over a bundled JSON asset.

AssetPolicyStorage loads policies shipped with an application, either as
package data (resolved through importlib.resources) or as a plain file path.
"""

from importlib import resources
from pathlib import Path
from typing import Optional

from policy_engine.core.storage import IPolicyStorage, PolicyMap
from policy_engine.exceptions import JsonParseError, StorageError
from policy_engine.logging_config import get_logger, log_storage_operation
from policy_engine.utils.json_handler import JsonHandler
from policy_engine.utils.log_handler import LogHandler, get_log_handler

logger = get_logger(__name__)


class AssetPolicyStorage(IPolicyStorage):
    """
    Policy storage that reads policies from a JSON asset.

    Assets are read-only: save_policies and clear_policies always raise
    StorageError.

    Example::

        storage = AssetPolicyStorage("assets/policies.json", package="my_app")
        policies = await storage.load_policies()
    """

    BACKEND = "asset"

    def __init__(
        self,
        asset_path: str,
        package: Optional[str] = None,
        log_handler: Optional[LogHandler] = None,
    ):
        """
        Initialize AssetPolicyStorage.

        Args:
            asset_path: Asset path, relative to package when one is given
            package: Importable package that contains the asset
            log_handler: LogHandler for diagnostics (defaults to the shared one)

        Raises:
            ValueError: If asset_path is empty
        """
        if not asset_path:
            raise ValueError("Asset path cannot be empty")

        self.asset_path = asset_path
        self.package = package
        self._log_handler = log_handler
        self._json = JsonHandler(log_handler)

    @property
    def location(self) -> str:
        if self.package:
            return f"{self.package}:{self.asset_path}"
        return self.asset_path

    @property
    def log(self) -> LogHandler:
        return self._log_handler if self._log_handler is not None else get_log_handler()

    def _read_asset(self) -> str:
        if self.package:
            return resources.files(self.package).joinpath(self.asset_path).read_text(
                encoding="utf-8"
            )
        return Path(self.asset_path).read_text(encoding="utf-8")

    async def load_policies(self) -> PolicyMap:
        """
        Load policies from the asset.

        Returns:
            The policy map stored in the asset

        Raises:
            StorageError: If the asset cannot be found or read, or does not
                contain a JSON object
        """
        try:
            content = self._read_asset()
            policies = self._json.parse_json_string(content, context=self.location)
        except (OSError, UnicodeDecodeError, ModuleNotFoundError, JsonParseError) as e:
            self.log.error(
                f"Failed to load policies from asset: {self.location}",
                error=e,
                operation="asset_load_policies",
            )
            log_storage_operation(
                logger, self.BACKEND, "load", False,
                location=self.location, reason=str(e),
            )
            raise StorageError(
                f"Failed to load policies from asset {self.location}: {e}",
                backend=self.BACKEND,
                original_error=e,
            ) from e

        log_storage_operation(
            logger, self.BACKEND, "load", True,
            policy_count=len(policies), location=self.location,
        )
        return policies

    async def save_policies(self, policies: PolicyMap) -> None:
        raise StorageError(
            f"Asset storage is read-only: {self.location}",
            backend=self.BACKEND,
        )

    async def clear_policies(self) -> None:
        raise StorageError(
            f"Asset storage is read-only: {self.location}",
            backend=self.BACKEND,
        )
