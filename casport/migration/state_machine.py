"""
Migration State Machine - Valid engine status transitions.

State Diagram:

    ┌──────┐  start()   ┌───────────┐  enumerated  ┌───────────┐
    │ IDLE │ ─────────→ │ PREPARING │ ───────────→ │ MIGRATING │
    └──────┘            └─────┬─────┘              └─────┬─────┘
        ↑                     │                          │
        │             ┌───────┴───────┬──────────────────┤
        │             ▼               ▼                  ▼
        │        ┌────────┐    ┌───────────┐      ┌───────────┐
        │        │ FAILED │    │ CANCELLED │      │ COMPLETED │
        │        └───┬────┘    └─────┬─────┘      └─────┬─────┘
        │            │               │                  │
        └────────────┴─── reset() ───┴──────────────────┘
"""

from casport.core.exceptions import EngineStateError
from casport.migration.types import MigrationStatus


class MigrationStateMachine:
    """
    Transition table for MigrationStatus.

    Usage:
        >>> MigrationStateMachine.validate(MigrationStatus.IDLE, MigrationStatus.PREPARING, "start")
        >>> MigrationStateMachine.can_transition(MigrationStatus.COMPLETED, MigrationStatus.MIGRATING)
        False
    """

    # Valid transitions: from_status -> [to_status, ...]
    VALID_TRANSITIONS = {
        MigrationStatus.IDLE: [MigrationStatus.PREPARING],
        MigrationStatus.PREPARING: [
            MigrationStatus.MIGRATING,
            MigrationStatus.FAILED,
            MigrationStatus.CANCELLED,
        ],
        MigrationStatus.MIGRATING: [
            MigrationStatus.COMPLETED,
            MigrationStatus.FAILED,
            MigrationStatus.CANCELLED,
        ],
        MigrationStatus.COMPLETED: [MigrationStatus.IDLE],
        MigrationStatus.FAILED: [MigrationStatus.IDLE],
        MigrationStatus.CANCELLED: [MigrationStatus.IDLE],
    }

    @classmethod
    def can_transition(cls, from_status: MigrationStatus, to_status: MigrationStatus) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate(
        cls,
        from_status: MigrationStatus,
        to_status: MigrationStatus,
        operation: str | None = None,
    ) -> None:
        """
        Raises:
            EngineStateError: If the transition is not in the table
        """
        if not cls.can_transition(from_status, to_status):
            raise EngineStateError(
                operation or f"move to {to_status.value}",
                from_status,
            )
