"""
Policy storage contract for the policy engine.

This module defines IPolicyStorage, the interface every storage backend
(in-memory, file, packaged asset, remote) implements, and the in-memory
reference backend.
"""

import copy
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from policy_engine.exceptions import StorageError, summarize_errors
from policy_engine.logging_config import get_logger, log_storage_operation

logger = get_logger(__name__)

PolicyMap = Dict[str, Any]


class IPolicyStorage(ABC):
    """
    Abstract interface for policy storage operations.

    Keys of a PolicyMap are policy identifiers; values are the policy
    configuration, opaque at this layer and passed through unmodified.

    All methods are coroutines so that backends requiring I/O can be used
    from asynchronous code.
    """

    @abstractmethod
    async def load_policies(self) -> PolicyMap:
        """
        Load all policies from storage.

        Returns:
            Mapping of policy identifiers to policy configuration. Empty if
            no policies are stored.

        Raises:
            StorageError: If storage is not accessible or its contents are
                corrupted
        """

    @abstractmethod
    async def save_policies(self, policies: PolicyMap) -> None:
        """
        Replace all stored policies with policies.

        Raises:
            StorageError: If storage is not writable or policies fails
                backend validation
        """

    @abstractmethod
    async def clear_policies(self) -> None:
        """
        Irreversibly remove all stored policies.

        Clearing an already empty store is a no-op.

        Raises:
            StorageError: If storage is not accessible or the clear fails
        """


def _find_non_json_value(value: Any, path: str) -> Optional[str]:
    """Return a description of the first value that JSON cannot store unchanged."""
    if value is None or isinstance(value, (str, bool, int)):
        return None
    if isinstance(value, float):
        if math.isfinite(value):
            return None
        return f"{path} is a non-finite number"
    if isinstance(value, list):
        for index, item in enumerate(value):
            problem = _find_non_json_value(item, f"{path}[{index}]")
            if problem:
                return problem
        return None
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"{path} has non-string key {key!r}"
            problem = _find_non_json_value(item, f"{path}.{key}")
            if problem:
                return problem
        return None
    return f"{path} has unsupported type {type(value).__name__}"


def validate_policy_map(policies: Any, backend: str) -> None:
    """
    Check that policies is a mapping with string keys whose values are plain
    JSON data (dict with string keys, list, str, int, finite float, bool,
    None) at every depth, so that every backend loads back exactly what was
    saved.

    Args:
        policies: Candidate policy map
        backend: Backend name used in the raised error

    Raises:
        StorageError: If the payload is not a valid policy map
    """
    if not isinstance(policies, dict):
        raise StorageError(
            f"Policies must be a mapping, got {type(policies).__name__}",
            backend=backend,
        )

    errors: Dict[str, str] = {}
    for key, value in policies.items():
        if not isinstance(key, str):
            errors[repr(key)] = f"policy identifier must be a string, got {type(key).__name__}"
            continue
        problem = _find_non_json_value(value, key)
        if problem:
            errors[key] = f"policy configuration is not plain JSON: {problem}"

    if errors:
        raise StorageError(
            f"Invalid policy payload: {summarize_errors(errors)}",
            backend=backend,
            errors=errors,
        )


class MemoryPolicyStorage(IPolicyStorage):
    """
    In-memory policy storage.

    Suitable for tests, development, and applications that load policies at
    startup without persisting them. Data is lost when the object is
    discarded.
    """

    BACKEND = "memory"

    def __init__(self) -> None:
        self._policies: PolicyMap = {}

    async def load_policies(self) -> PolicyMap:
        """Return a copy of the stored policies."""
        policies = copy.deepcopy(self._policies)
        log_storage_operation(
            logger, self.BACKEND, "load", True, policy_count=len(policies)
        )
        return policies

    async def save_policies(self, policies: PolicyMap) -> None:
        """Store a deep copy of policies, replacing everything stored before."""
        validate_policy_map(policies, self.BACKEND)
        self._policies = copy.deepcopy(policies)
        log_storage_operation(
            logger, self.BACKEND, "save", True, policy_count=len(policies)
        )

    async def clear_policies(self) -> None:
        """Remove all stored policies."""
        self._policies.clear()
        log_storage_operation(logger, self.BACKEND, "clear", True)
