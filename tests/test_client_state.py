from unittest.mock import MagicMock

import pytest
import requests
from bson import ObjectId

from client.api import ApiError, ExpenseApiClient
from client.state import ExpenseState, ExpenseStateManager, average_expense, paginate, sort_expenses


@pytest.fixture
def manager(client):
    return ExpenseStateManager(ExpenseApiClient(base_url="", session=client))


def test_initial_state():
    state = ExpenseState()
    assert state.expenses == []
    assert state.stats == {"total": 0, "byCategory": [], "byMonth": []}
    assert state.loading is False
    assert average_expense(state) == 0


def test_add_load_and_stats(manager, lunch, bus):
    first = manager.add_expense(lunch)
    second = manager.add_expense(bus)

    assert [e["_id"] for e in manager.state.expenses] == [second["_id"], first["_id"]]
    assert manager.state.loading is False

    assert len(manager.load_expenses({"category": "Food", "startDate": ""})) == 1
    assert manager.state.expenses[0]["title"] == "Lunch"

    stats = manager.load_stats()
    assert stats["total"] == 150
    assert manager.state.stats is stats


def test_update_and_delete_keep_list_in_sync(manager, lunch, bus):
    lunch_saved = manager.add_expense(lunch)
    bus_saved = manager.add_expense(bus)

    manager.update_expense(lunch_saved["_id"], {"amount": 120})
    assert [e["amount"] for e in manager.state.expenses] == [50, 120]

    assert manager.delete_expense(bus_saved["_id"]) is True
    assert [e["_id"] for e in manager.state.expenses] == [lunch_saved["_id"]]

    assert manager.fetch_expense(lunch_saved["_id"])["amount"] == 120


def test_validation_errors_are_recorded_and_raised(manager):
    with pytest.raises(ApiError) as exc_info:
        manager.add_expense({"title": "Missing Fields"})

    assert exc_info.value.status_code == 400
    assert manager.state.errors == ["Please add an amount"]
    assert manager.state.expenses == []
    assert manager.state.loading is False


def test_not_found_is_raised(manager):
    with pytest.raises(ApiError) as exc_info:
        manager.delete_expense(str(ObjectId()))

    assert exc_info.value.status_code == 404
    assert manager.state.errors == ["Expense not found"]


def test_listing_failure_is_recorded_not_raised(manager):
    assert manager.load_expenses({"sort": "bogus:asc"}) is None
    assert manager.state.errors
    assert manager.state.loading is False


def test_connection_failure():
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.exceptions.ConnectionError()
    manager = ExpenseStateManager(ExpenseApiClient(session=session))

    assert manager.load_stats() is None
    assert manager.state.errors == ["Could not connect to the API. Please try again."]
    _, kwargs = session.request.call_args
    assert kwargs["timeout"] == 10


def test_paginate():
    items = [{"n": i} for i in range(23)]

    first = paginate(items, 1)
    assert (len(first.items), first.page, first.total_pages) == (10, 1, 3)

    last = paginate(items, 3)
    assert [item["n"] for item in last.items] == [20, 21, 22]

    assert paginate(items, 99).page == 3
    assert paginate(items, 0).page == 1
    assert paginate([], 1).items == []


def test_average_expense():
    state = ExpenseState(expenses=[{"amount": 10}, {"amount": 30}], stats={"total": 40, "byCategory": [], "byMonth": []})
    assert average_expense(state) == 20


def test_non_object_response_is_an_api_error():
    session = MagicMock(spec=requests.Session)
    session.request.return_value.status_code = 200
    session.request.return_value.json.return_value = [1, 2, 3]
    manager = ExpenseStateManager(ExpenseApiClient(session=session))

    assert manager.load_expenses() is None
    assert manager.state.errors == ["API error 200"]


def test_sort_expenses():
    items = [
        {"title": "banana", "amount": 5, "date": "2024-03-01T00:00:00.000Z"},
        {"title": "Apple", "amount": 20, "date": "2024-01-15T10:00:00.000Z", "description": "fruit"},
        {"title": "cherry", "amount": 12.5, "date": "2024-01-15T09:00:00.000Z"},
    ]

    assert [e["title"] for e in sort_expenses(items)] == ["banana", "Apple", "cherry"]
    assert [e["title"] for e in sort_expenses(items, "date", "asc")] == ["cherry", "Apple", "banana"]
    assert [e["title"] for e in sort_expenses(items, "title", "asc")] == ["Apple", "banana", "cherry"]
    assert [e["amount"] for e in sort_expenses(items, "amount", "desc")] == [20, 12.5, 5]
    assert sort_expenses(items, "description", "asc")[0]["title"] == "Apple"
    assert [e["title"] for e in items] == ["banana", "Apple", "cherry"]
