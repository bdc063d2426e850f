"""Error types raised by the expense store and service layer."""
from typing import List


class ExpenseError(Exception):
    """Base class for expense errors."""


class ExpenseValidationError(ExpenseError):
    """A draft or a query parameter violates one or more constraints."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__('; '.join(self.messages))


class ExpenseNotFoundError(ExpenseError):
    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__('Expense not found')


class StoreError(ExpenseError):
    """The database could not complete an operation."""
