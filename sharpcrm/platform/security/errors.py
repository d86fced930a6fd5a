from __future__ import annotations


class AccessEngineError(Exception):
    """Base error for access engine failures that are not authorization outcomes."""


class UnknownResourceError(AccessEngineError):
    """Raised when a resource name has no registered access service."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Unknown resource '{resource}'")


class AuthenticationError(AccessEngineError):
    """Raised when a request carries no verifiable identity."""


class StoreError(AccessEngineError):
    """Raised by attribute stores when a read or write fails."""

    def __init__(self, operation: str, table: str, message: str) -> None:
        self.operation = operation
        self.table = table
        super().__init__(f"Store {operation} on '{table}' failed: {message}")
