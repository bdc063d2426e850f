"""Service layer: turns request parameters into store queries and assembles API payloads."""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pymongo import ASCENDING, DESCENDING

from models.expense import Expense, SORTABLE_FIELDS, end_of_day, is_date_only, parse_datetime, utcnow
from services import expense_store
from services.errors import ExpenseNotFoundError, ExpenseValidationError

logger = logging.getLogger(__name__)


def parse_sort(sort: Optional[str]) -> tuple:
    """Parses 'field:asc|desc' into (field, pymongo direction). Defaults to date descending."""
    if not sort or not sort.strip():
        return 'date', DESCENDING
    field, _, order = sort.strip().partition(':')
    field = field.strip()
    if field not in SORTABLE_FIELDS:
        raise ExpenseValidationError([f"Invalid sort field '{field}'. Allowed fields: {', '.join(SORTABLE_FIELDS)}"])
    return field, ASCENDING if order.strip().lower() == 'asc' else DESCENDING


def _parse_bound(name: str, value: Optional[str]) -> Optional[datetime]:
    if value is None or not value.strip():
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ExpenseValidationError([f"Invalid {name}: '{value}'"])
    return parsed


def build_query(params: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """
    Translates the raw listing parameters (category, startDate, endDate, sort)
    into keyword arguments for expense_store.find_expenses.

    A date-only endDate covers the whole of that day.
    """
    category = (params.get('category') or '').strip() or None
    start = _parse_bound('startDate', params.get('startDate'))
    end = _parse_bound('endDate', params.get('endDate'))
    end_inclusive = True
    if end is not None and is_date_only(params['endDate']):
        try:
            end = end_of_day(end)
            end_inclusive = False
        except OverflowError:
            # 9999-12-31 has no following day and nothing can be stored after it
            end = None
    sort_by, sort_order = parse_sort(params.get('sort'))
    return {
        'category': category,
        'start': start,
        'end': end,
        'end_inclusive': end_inclusive,
        'sort_by': sort_by,
        'sort_order': sort_order,
    }


async def list_expenses(collection: AsyncIOMotorCollection, params: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """Returns count, total amount and the ordered expenses matching the parameters."""
    query = build_query(params)
    expenses = await expense_store.find_expenses(collection, **query)
    total = sum(expense.amount for expense in expenses)
    return {'count': len(expenses), 'total': total, 'data': expenses}


async def get_expense(collection: AsyncIOMotorCollection, expense_id: str) -> Expense:
    expense = await expense_store.find_expense_by_id(collection, expense_id)
    if expense is None:
        logger.warning(f"Expense not found with id: {expense_id}")
        raise ExpenseNotFoundError(expense_id)
    return expense


async def create_expense(collection: AsyncIOMotorCollection, draft: Any) -> Expense:
    if not isinstance(draft, dict):
        raise ExpenseValidationError(['Expense data must be a JSON object'])
    return await expense_store.insert_expense(collection, draft)


async def update_expense(collection: AsyncIOMotorCollection, expense_id: str, changes: Any) -> Expense:
    if not isinstance(changes, dict):
        raise ExpenseValidationError(['Expense data must be a JSON object'])
    expense = await expense_store.update_expense(collection, expense_id, changes)
    if expense is None:
        logger.warning(f"Expense not found with id: {expense_id}")
        raise ExpenseNotFoundError(expense_id)
    return expense


async def delete_expense(collection: AsyncIOMotorCollection, expense_id: str) -> None:
    if not await expense_store.delete_expense(collection, expense_id):
        logger.warning(f"Expense not found with id: {expense_id}")
        raise ExpenseNotFoundError(expense_id)


async def get_statistics(collection: AsyncIOMotorCollection, year: Optional[int] = None) -> Dict[str, Any]:
    """
    Grand total, totals by category and totals by month of the current year.

    The three figures come from independent reads, so a write landing in
    between can make them disagree slightly.
    """
    if year is None:
        year = utcnow().year
    total = await expense_store.get_grand_total(collection)
    by_category = await expense_store.get_total_by_category(collection)
    by_month = await expense_store.get_monthly_totals(collection, year)
    logger.info('Retrieved expense statistics')
    return {
        'total': total,
        'byCategory': [{'_id': category, 'total': amount} for category, amount in by_category],
        'byMonth': [{'_id': month, 'total': amount} for month, amount in by_month],
    }
