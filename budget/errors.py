class BudgetError(Exception):
    """Base class for errors raised by the budgeting core."""


class ValidationError(BudgetError):
    """Input rejected before any state was touched."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BudgetError):
    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class PersistenceError(BudgetError):
    """The store rejected a write; the in-memory change has been rolled back."""
