"""Version information for the policy engine package."""

__version__ = "1.0.0"
