"""
Command-line interface for inspecting and managing stored policies.
"""

from policy_engine.cli.main import CLIContext, cli

__all__ = ["CLIContext", "cli"]
