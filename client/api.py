"""HTTP client for the expense API."""
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import requests

logger = logging.getLogger(__name__)

API_PATH = "/api/expenses"


class ApiError(Exception):
    """A request failed. `status_code` is None when the server could not be reached."""

    def __init__(self, status_code: Optional[int], messages: Union[str, List[str]]):
        self.status_code = status_code
        self.messages = [messages] if isinstance(messages, str) else list(messages)
        super().__init__("; ".join(self.messages))


class ExpenseApiClient:
    """
    Thin wrapper over the expense endpoints.

    `session` is anything with the requests.Session call interface; a fresh
    requests.Session is used when none is given.
    """

    def __init__(self, base_url: str = "http://localhost:5000", session=None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _url(self, suffix: str = "") -> str:
        return f"{self.base_url}{API_PATH}{suffix}"

    def _request(self, method: str, suffix: str = "", **kwargs) -> Dict[str, Any]:
        if isinstance(self.session, requests.Session):
            kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, self._url(suffix), **kwargs)
        except requests.exceptions.ConnectionError:
            raise ApiError(None, "Could not connect to the API. Please try again.")
        except requests.exceptions.Timeout:
            raise ApiError(None, "Request timed out.")

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("success"):
            error = body.get("error") or f"API error {resp.status_code}"
            logger.warning(f"{method} {suffix or '/'} failed with {resp.status_code}: {error}")
            raise ApiError(resp.status_code, error)
        return body

    def list_expenses(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """GET /api/expenses. Empty filter values are left out of the query string."""
        params = {key: value for key, value in (filters or {}).items() if value}
        return self._request("GET", params=params)

    def get_expense(self, expense_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/{expense_id}")["data"]

    def create_expense(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("POST", json=dict(data))["data"]

    def update_expense(self, expense_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/{expense_id}", json=dict(data))["data"]

    def delete_expense(self, expense_id: str) -> None:
        self._request("DELETE", f"/{expense_id}")

    def get_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/stats")["data"]
