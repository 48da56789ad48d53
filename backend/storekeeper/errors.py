# Overview: Engine error taxonomy; every public operation maps these to a failure envelope.

from __future__ import annotations


class EngineError(Exception):
    """Base for every failure the engine reports to its callers."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(EngineError, ValueError):
    """Malformed ids, missing fields, invalid enum values or state transitions. Raised before any write."""


class NotFoundError(EngineError):
    """A referenced document is absent or not visible. Raised before any write."""


class InsufficientStock(EngineError):
    def __init__(self, product_name: str | None, available: int, required: int, product_id: int | None = None):
        label = product_name or f"#{product_id}"
        super().__init__(
            f'Insufficient stock for product "{label}". Available: {available}, Required: {required}',
            details={
                "product_id": product_id,
                "product": product_name,
                "available": available,
                "required": required,
            },
        )
        self.product_name = product_name
        self.available = available
        self.required = required


class PartialUpdateFailure(EngineError):
    """A write modified a different number of rows than expected."""

    def __init__(self, message: str, expected: int, actual: int):
        super().__init__(message, details={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class PartialDeleteFailure(EngineError):
    """A delete removed a different number of rows than expected."""

    def __init__(self, message: str, expected: int, actual: int):
        super().__init__(message, details={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class DependentWriteFailure(EngineError):
    """
    A secondary write (adjustment, activity, debt, transaction) that must
    accompany a primary write did not succeed. The primary write stays applied.
    """
