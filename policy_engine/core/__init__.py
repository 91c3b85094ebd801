"""
Core components for the policy engine.

This module contains the policy storage contract and its backends:
- IPolicyStorage interface
- In-memory storage
- JSON file storage with atomic writes and rolling backups
- Read-only packaged asset storage
"""

from policy_engine.core.asset_storage import AssetPolicyStorage
from policy_engine.core.file_storage import FilePolicyStorage
from policy_engine.core.storage import (
    IPolicyStorage,
    MemoryPolicyStorage,
    PolicyMap,
    validate_policy_map,
)

__all__ = [
    "IPolicyStorage",
    "MemoryPolicyStorage",
    "FilePolicyStorage",
    "AssetPolicyStorage",
    "PolicyMap",
    "validate_policy_map",
]
