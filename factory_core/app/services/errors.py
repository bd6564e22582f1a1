"""Typed failures raised by the factory services."""

from typing import List, Optional


class FactoryError(Exception):
    """Base exception for factory operations"""
    retryable = False


class ValidationError(FactoryError):
    """Malformed input, rejected before any mutation"""
    pass


class InvalidOperationError(ValidationError):
    """Raised when operation is not allowed in current state"""
    pass


class TransitionNotImplementedError(InvalidOperationError):
    """A declared state transition whose behaviour is not defined yet"""

    def __init__(self, entity: str, from_state: str, to_state: str):
        self.entity = entity
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"{entity} transition {from_state} -> {to_state} is not implemented"
        )


class InsufficientStockError(FactoryError):
    """Raised when an adjustment would drive a quantity below zero"""

    def __init__(self, entity: str, entity_id: int, available, requested, name: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        self.available = available
        self.requested = requested
        label = name or f"{entity} {entity_id}"
        super().__init__(
            f"Insufficient stock for {label}. "
            f"Available: {available}, Requested: {requested}"
        )


class NotFoundError(FactoryError):
    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PersistenceFailure(FactoryError):
    """The store failed or timed out. Safe to retry."""
    retryable = True


class PartialFailure(PersistenceFailure):
    """
    A multi-step operation failed after some of its steps were applied.
    The unit of work is rolled back before this is raised, so none of
    `completed_steps` remain committed.
    """

    def __init__(self, operation: str, failed_step: str, completed_steps: List[str], cause: Exception):
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        super().__init__(
            f"{operation} failed at step '{failed_step}' after "
            f"{', '.join(completed_steps)}; all steps rolled back: {cause}"
        )
