import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from config import Settings
from main import create_app
from routes import get_expenses_collection


@pytest.fixture
def collection():
    return AsyncMongoMockClient()["expense_tracker_test"]["expenses"]


@pytest.fixture
def app(collection):
    app = create_app(Settings(environment="test"))
    app.dependency_overrides[get_expenses_collection] = lambda: collection
    return app


@pytest.fixture
def client(app):
    # Not used as a context manager: the lifespan would try to reach a real MongoDB
    return TestClient(app)


@pytest.fixture
def lunch():
    return {"title": "Lunch", "amount": 100, "category": "Food", "description": "Team lunch"}


@pytest.fixture
def bus():
    return {"title": "Bus", "amount": 50, "category": "Transportation"}
