"""Record store: persistence, queries and aggregations over the expenses collection."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from models.expense import Expense, EDITABLE_FIELDS, utcnow, validate_expense
from services.errors import ExpenseValidationError, StoreError

logger = logging.getLogger(__name__)

# Optimistic retries for an update racing other writers
UPDATE_ATTEMPTS = 3


def _to_object_id(expense_id: str) -> Optional[ObjectId]:
    if isinstance(expense_id, ObjectId):
        return expense_id
    if not isinstance(expense_id, str) or not ObjectId.is_valid(expense_id):
        return None
    return ObjectId(expense_id)


def _store_failure(action: str, e: Exception) -> StoreError:
    logger.error(f"Database error {action}: {e}")
    return StoreError(f"Database error {action}: {e}")


async def ensure_indexes(collection: AsyncIOMotorCollection) -> None:
    """Creates the indexes backing the listing filters and default sort."""
    try:
        await collection.create_index([('date', DESCENDING)])
        await collection.create_index([('category', ASCENDING), ('date', DESCENDING)])
    except PyMongoError as e:
        raise _store_failure("creating indexes", e)


async def insert_expense(collection: AsyncIOMotorCollection, draft: Dict[str, Any]) -> Expense:
    """Validates a draft and stores it. Nothing is written if validation fails."""
    clean, errors = validate_expense(draft)
    if errors:
        logger.warning(f"Rejected expense draft: {errors}")
        raise ExpenseValidationError(errors)

    now = utcnow()
    document = {key: value for key, value in clean.items() if value is not None}
    document['createdAt'] = now
    document['updatedAt'] = now
    try:
        result = await collection.insert_one(document)
    except PyMongoError as e:
        raise _store_failure("inserting expense", e)
    document['_id'] = result.inserted_id
    logger.info(f"Created new expense with id: {result.inserted_id}")
    return Expense.from_document(document)


async def find_expenses(
    collection: AsyncIOMotorCollection,
    category: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    end_inclusive: bool = True,
    sort_by: str = 'date',
    sort_order: int = DESCENDING,
) -> List[Expense]:
    """
    Fetches every expense matching the filter, sorted as requested.

    `end_inclusive=False` turns the upper date bound into a strict one, used
    when the caller wants a whole calendar day covered.
    """
    query: Dict[str, Any] = {}
    if category:
        query['category'] = category
    if start is not None or end is not None:
        query['date'] = {}
        if start is not None:
            query['date']['$gte'] = start
        if end is not None:
            query['date']['$lte' if end_inclusive else '$lt'] = end

    logger.info(f"Fetching expenses matching {query}, sorting by {sort_by} ({'desc' if sort_order == DESCENDING else 'asc'})...")
    expenses = []
    try:
        cursor = collection.find(query, sort=[(sort_by, sort_order), ('_id', sort_order)])
        async for doc in cursor:
            expenses.append(Expense.from_document(doc))
    except PyMongoError as e:
        raise _store_failure("fetching expenses", e)
    logger.info(f"Retrieved {len(expenses)} expenses")
    return expenses


async def find_expense_by_id(collection: AsyncIOMotorCollection, expense_id: str) -> Optional[Expense]:
    object_id = _to_object_id(expense_id)
    if object_id is None:
        return None
    try:
        doc = await collection.find_one({'_id': object_id})
    except PyMongoError as e:
        raise _store_failure(f"fetching expense {expense_id}", e)
    return Expense.from_document(doc) if doc else None


async def update_expense(collection: AsyncIOMotorCollection, expense_id: str, changes: Dict[str, Any]) -> Optional[Expense]:
    """
    Applies a partial update. The merged record is validated as a whole, but
    only the supplied fields are written, together with a fresh updatedAt.
    Returns None when the id does not resolve.

    The write only lands if the record still carries the updatedAt that was
    read; a concurrent writer in between makes it re-read, re-validate and
    try again, so the merged validation and updatedAt ordering hold.
    """
    object_id = _to_object_id(expense_id)
    if object_id is None:
        return None
    supplied = [field for field in EDITABLE_FIELDS if field in changes]

    for attempt in range(UPDATE_ATTEMPTS):
        try:
            current = await collection.find_one({'_id': object_id})
        except PyMongoError as e:
            raise _store_failure(f"fetching expense {expense_id}", e)
        if current is None:
            return None

        merged = {field: current.get(field) for field in EDITABLE_FIELDS if field in current}
        merged.update({field: changes[field] for field in supplied})
        clean, errors = validate_expense(merged)
        if errors:
            logger.warning(f"Rejected update for expense {expense_id}: {errors}")
            raise ExpenseValidationError(errors)

        # updatedAt must move forward even within the same millisecond
        updated_at = utcnow()
        previous = current.get('updatedAt')
        if previous is not None and updated_at <= previous:
            updated_at = previous + timedelta(milliseconds=1)
        to_set = {field: clean[field] for field in supplied if clean[field] is not None}
        to_set['updatedAt'] = updated_at
        update: Dict[str, Any] = {'$set': to_set}
        to_unset = {field: '' for field in supplied if clean[field] is None}
        if to_unset:
            update['$unset'] = to_unset

        try:
            doc = await collection.find_one_and_update(
                {'_id': object_id, 'updatedAt': previous}, update, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise _store_failure(f"updating expense {expense_id}", e)
        if doc is not None:
            logger.info(f"Updated expense with id: {expense_id}")
            return Expense.from_document(doc)
        logger.info(f"Expense {expense_id} changed during update (attempt {attempt + 1}), retrying")

    logger.error(f"Giving up on updating expense {expense_id} after {UPDATE_ATTEMPTS} attempts")
    raise StoreError(f"Database error updating expense {expense_id}: record kept changing concurrently")


async def delete_expense(collection: AsyncIOMotorCollection, expense_id: str) -> bool:
    """Hard-deletes an expense. Returns False when there was nothing to delete."""
    object_id = _to_object_id(expense_id)
    if object_id is None:
        return False
    try:
        result = await collection.delete_one({'_id': object_id})
    except PyMongoError as e:
        raise _store_failure(f"deleting expense {expense_id}", e)
    if result.deleted_count:
        logger.info(f"Deleted expense with id: {expense_id}")
    return result.deleted_count > 0


async def _aggregate(collection: AsyncIOMotorCollection, pipeline: List[Dict[str, Any]], action: str) -> List[Dict[str, Any]]:
    rows = []
    try:
        async for row in collection.aggregate(pipeline):
            rows.append(row)
    except PyMongoError as e:
        raise _store_failure(action, e)
    return rows


async def get_grand_total(collection: AsyncIOMotorCollection) -> float:
    rows = await _aggregate(
        collection,
        [{'$group': {'_id': None, 'total': {'$sum': '$amount'}}}],
        "computing total",
    )
    return rows[0]['total'] if rows else 0


async def get_total_by_category(collection: AsyncIOMotorCollection) -> List[Tuple[str, float]]:
    """Sum of amounts per category, largest first. Empty categories are absent."""
    rows = await _aggregate(
        collection,
        [
            {'$group': {'_id': '$category', 'total': {'$sum': '$amount'}}},
            {'$sort': {'total': -1, '_id': 1}},
        ],
        "computing category totals",
    )
    return [(row['_id'], row['total']) for row in rows]


async def get_monthly_totals(collection: AsyncIOMotorCollection, year: int) -> List[Tuple[int, float]]:
    """Sum of amounts per calendar month of `year`, in month order. Empty months are absent."""
    rows = await _aggregate(
        collection,
        [
            {'$match': {'date': {'$gte': datetime(year, 1, 1), '$lt': datetime(year + 1, 1, 1)}}},
            {'$group': {'_id': {'$month': '$date'}, 'total': {'$sum': '$amount'}}},
            {'$sort': {'_id': 1}},
        ],
        f"computing monthly totals for {year}",
    )
    return [(row['_id'], row['total']) for row in rows]
