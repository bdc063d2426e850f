from datetime import datetime

import pytest
from pymongo import ASCENDING, DESCENDING

from services import expenses_service
from services.errors import ExpenseNotFoundError, ExpenseValidationError


def test_parse_sort():
    assert expenses_service.parse_sort(None) == ("date", DESCENDING)
    assert expenses_service.parse_sort("amount:asc") == ("amount", ASCENDING)
    assert expenses_service.parse_sort("amount:desc") == ("amount", DESCENDING)
    assert expenses_service.parse_sort("title") == ("title", DESCENDING)
    assert expenses_service.parse_sort("createdAt:ASC") == ("createdAt", ASCENDING)
    with pytest.raises(ExpenseValidationError):
        expenses_service.parse_sort("password:asc")


def test_build_query_date_only_end_covers_whole_day():
    query = expenses_service.build_query({"startDate": "2024-05-01", "endDate": "2024-05-31"})

    assert query["start"] == datetime(2024, 5, 1)
    assert query["end"] == datetime(2024, 6, 1)
    assert query["end_inclusive"] is False


def test_build_query_datetime_end_is_inclusive():
    query = expenses_service.build_query({"endDate": "2024-05-31T12:00:00Z", "category": " "})

    assert query["end"] == datetime(2024, 5, 31, 12)
    assert query["end_inclusive"] is True
    assert query["category"] is None
    assert query["start"] is None


def test_build_query_rejects_bad_dates():
    with pytest.raises(ExpenseValidationError) as exc_info:
        expenses_service.build_query({"startDate": "yesterday"})
    assert exc_info.value.messages == ["Invalid startDate: 'yesterday'"]

    with pytest.raises(ExpenseValidationError) as exc_info:
        expenses_service.build_query({"startDate": "0001-01-01T00:00:00+01:00"})
    assert exc_info.value.messages == ["Invalid startDate: '0001-01-01T00:00:00+01:00'"]


def test_build_query_last_representable_day():
    query = expenses_service.build_query({"endDate": "9999-12-31"})
    assert query["end"] is None


async def test_list_expenses_sums_returned_set(collection, lunch, bus):
    await expenses_service.create_expense(collection, lunch)
    await expenses_service.create_expense(collection, bus)

    everything = await expenses_service.list_expenses(collection, {})
    assert (everything["count"], everything["total"]) == (2, 150)

    food = await expenses_service.list_expenses(collection, {"category": "Food"})
    assert (food["count"], food["total"]) == (1, 100)
    assert food["data"][0].category == "Food"


async def test_list_expenses_inclusive_end_day(collection):
    await expenses_service.create_expense(collection, {"title": "late", "amount": 5, "date": "2024-05-31T23:00:00"})
    await expenses_service.create_expense(collection, {"title": "next", "amount": 5, "date": "2024-06-01"})

    result = await expenses_service.list_expenses(collection, {"startDate": "2024-05-01", "endDate": "2024-05-31"})

    assert [e.title for e in result["data"]] == ["late"]


async def test_missing_records_raise_not_found(collection):
    with pytest.raises(ExpenseNotFoundError):
        await expenses_service.get_expense(collection, "507f1f77bcf86cd799439011")
    with pytest.raises(ExpenseNotFoundError):
        await expenses_service.update_expense(collection, "507f1f77bcf86cd799439011", {"title": "X"})
    with pytest.raises(ExpenseNotFoundError):
        await expenses_service.delete_expense(collection, "507f1f77bcf86cd799439011")


async def test_non_object_body_is_a_validation_error(collection):
    with pytest.raises(ExpenseValidationError):
        await expenses_service.create_expense(collection, ["title", "amount"])
    with pytest.raises(ExpenseValidationError):
        await expenses_service.update_expense(collection, "507f1f77bcf86cd799439011", None)


async def test_statistics(collection, lunch, bus):
    await expenses_service.create_expense(collection, dict(lunch, date="2024-02-01"))
    await expenses_service.create_expense(collection, dict(bus, date="2024-02-15"))
    await expenses_service.create_expense(collection, {"title": "Old", "amount": 25, "category": "Food", "date": "2023-07-01"})

    stats = await expenses_service.get_statistics(collection, year=2024)

    assert stats["total"] == 175
    assert stats["byCategory"] == [{"_id": "Food", "total": 125}, {"_id": "Transportation", "total": 50}]
    assert stats["byMonth"] == [{"_id": 2, "total": 150}]


async def test_statistics_on_empty_store(collection):
    stats = await expenses_service.get_statistics(collection)
    assert stats == {"total": 0, "byCategory": [], "byMonth": []}
