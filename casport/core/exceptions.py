# ============================================
# FILE: casport/core/exceptions.py
# ============================================

"""
Engine and queue exceptions
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from enum import Enum


class CasportError(Exception):
    """Base casport error"""


class EngineStateError(CasportError):
    """
    Raised when a MigrationEngine operation is invalid for its current state.

    Examples: calling start() while a migration is already running, or
    reset() before the engine reached a terminal state.
    """

    def __init__(self, operation: str, status: Enum | str, message: str | None = None):
        self.operation = operation
        self.status = status
        status_name = getattr(status, "value", status)
        super().__init__(
            message or f"Cannot {operation} while migration is {status_name}"
        )


class QueueStateError(CasportError):
    """Raised when an invalid queue entry transition is attempted."""

    def __init__(self, entry_id: str, from_status: Enum, to_status: Enum | None = None):
        self.entry_id = entry_id
        self.from_status = from_status
        self.to_status = to_status
        if to_status is None:
            message = f"Entry {entry_id} cannot be changed in state {from_status.value}"
        else:
            message = (
                f"Invalid transition for entry {entry_id}: "
                f"{from_status.value} → {to_status.value}"
            )
        super().__init__(message)


class MissingDependencyError(CasportError):
    """
    Raised when an optional dependency is not installed.

    Carries the pip command needed to fix it.
    """

    INSTALL_COMMANDS = {
        "aiosqlite": "pip install aiosqlite",
        "aiofiles": "pip install aiofiles",
        "prometheus_client": "pip install prometheus-client",
        "click": "pip install click",
        "rich": "pip install rich",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        if feature:
            message = (
                f"Missing dependency '{package}' required for {feature}. "
                f"Install with: {install_cmd}"
            )
        else:
            message = f"Missing dependency '{package}'. Install with: {install_cmd}"

        super().__init__(message)
