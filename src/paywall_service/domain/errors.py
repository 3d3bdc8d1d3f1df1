"""Domain-level errors raised by entities and coordinators."""

from __future__ import annotations


class DomainError(Exception):
    """Base class for entity and lifecycle errors."""


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist or is not visible to the caller."""

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity.capitalize()} not found")
        self.entity = entity
        self.identifier = identifier


class InvalidStateTransition(DomainError):
    """Raised when a lifecycle action is attempted from a state that does not allow it."""

    def __init__(self, entity: str, from_state: str, action: str) -> None:
        super().__init__(f"Cannot {action}: {entity} is in {from_state} status")
        self.entity = entity
        self.from_state = from_state
        self.action = action


class ValidationFailed(DomainError):
    """Raised when an entity is constructed from malformed input."""

    def __init__(self, field: str, rule: str) -> None:
        super().__init__(f"Invalid {field}: {rule}")
        self.field = field
        self.rule = rule
