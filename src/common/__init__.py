"""
Common utilities for the task list persistence layer.

Modules:
- errors: error taxonomy shared by every component
- config: environment / SSM configuration
- portal: async portal HTTP client with retry and throttling
- rate_limiter: sliding-window limiter used by the portal client
"""

__all__ = [
    "config",
    "errors",
    "portal",
    "rate_limiter",
]
