"""Client-side expense state and the functions allowed to change it."""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from client.api import ApiError, ExpenseApiClient

logger = logging.getLogger(__name__)

ITEMS_PER_PAGE = 10
DATE_FIELDS = ("date", "createdAt", "updatedAt")


def empty_stats() -> Dict[str, Any]:
    return {"total": 0, "byCategory": [], "byMonth": []}


@dataclass
class ExpenseState:
    expenses: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=empty_stats)
    loading: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class Page:
    items: List[Dict[str, Any]]
    page: int
    total_pages: int


class ExpenseStateManager:
    """
    The single writer of an ExpenseState.

    Views read the state; every change goes through these methods, which keep
    `loading` set while a request is in flight and record server error
    messages in `state.errors`.
    """

    def __init__(self, client: ExpenseApiClient, state: Optional[ExpenseState] = None):
        self.client = client
        self.state = state if state is not None else ExpenseState()

    def _begin(self) -> None:
        self.state.loading = True
        self.state.errors = []

    def _record(self, error: ApiError, fallback: str) -> None:
        self.state.errors = error.messages or [fallback]
        logger.error(f"{fallback}: {error}")

    def load_expenses(self, filters: Optional[Mapping[str, Any]] = None) -> Optional[List[Dict[str, Any]]]:
        self._begin()
        try:
            self.state.expenses = self.client.list_expenses(filters)["data"]
            return self.state.expenses
        except ApiError as e:
            self._record(e, "Failed to fetch expenses")
            return None
        finally:
            self.state.loading = False

    def load_stats(self) -> Optional[Dict[str, Any]]:
        self._begin()
        try:
            self.state.stats = self.client.get_stats()
            return self.state.stats
        except ApiError as e:
            self._record(e, "Failed to fetch expense statistics")
            return None
        finally:
            self.state.loading = False

    def fetch_expense(self, expense_id: str) -> Dict[str, Any]:
        """Fetches one expense without touching the list."""
        try:
            return self.client.get_expense(expense_id)
        except ApiError as e:
            self._record(e, "Failed to fetch expense details")
            raise

    def add_expense(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        self._begin()
        try:
            expense = self.client.create_expense(data)
            self.state.expenses = [expense] + self.state.expenses
            return expense
        except ApiError as e:
            self._record(e, "Failed to add expense")
            raise
        finally:
            self.state.loading = False

    def update_expense(self, expense_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        self._begin()
        try:
            updated = self.client.update_expense(expense_id, data)
            self.state.expenses = [
                updated if expense["_id"] == expense_id else expense for expense in self.state.expenses
            ]
            return updated
        except ApiError as e:
            self._record(e, "Failed to update expense")
            raise
        finally:
            self.state.loading = False

    def delete_expense(self, expense_id: str) -> bool:
        self._begin()
        try:
            self.client.delete_expense(expense_id)
            self.state.expenses = [expense for expense in self.state.expenses if expense["_id"] != expense_id]
            return True
        except ApiError as e:
            self._record(e, "Failed to delete expense")
            raise
        finally:
            self.state.loading = False


def _sort_value(field_name: str, value: Any) -> Any:
    if field_name in DATE_FIELDS and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    if isinstance(value, str):
        return value.lower()
    return value


def sort_expenses(items: List[Dict[str, Any]], field_name: str = "date", direction: str = "desc") -> List[Dict[str, Any]]:
    """
    Returns a sorted copy of the loaded expenses, the way the list view orders them.

    Dates compare by timestamp and text case-insensitively. Expenses without
    the field (e.g. no description) go last in either direction.
    """
    present = [item for item in items if item.get(field_name) is not None]
    missing = [item for item in items if item.get(field_name) is None]
    present.sort(key=lambda item: _sort_value(field_name, item[field_name]), reverse=direction == "desc")
    return present + missing


def paginate(items: List[Dict[str, Any]], page: int, per_page: int = ITEMS_PER_PAGE) -> Page:
    """Slices one 1-based page out of `items`; out-of-range pages are clamped."""
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(page, 1), total_pages)
    start = (page - 1) * per_page
    return Page(items=items[start:start + per_page], page=page, total_pages=total_pages)


def average_expense(state: ExpenseState) -> float:
    if not state.expenses:
        return 0
    return state.stats.get("total", 0) / len(state.expenses)
