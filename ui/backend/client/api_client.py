"""HTTP client for the credit allocation API.

Wraps an ``httpx.Client`` so callers (scripts, the test suite, other
services) get typed responses and the same error handling the mobile app
uses: a 401, or an HTML page where JSON was expected, means the session
expired and the request was bounced to a login page.
"""
import logging
import os
from decimal import Decimal
from typing import Any, Dict, Optional, Union

import httpx

from schemas.credit import AllocateResponse, UnallocatedCreditsResponse
from schemas.recap import RecapAllocateResponse, RecapResponse
from schemas.transaction import TransactionSearchResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.getenv("FINANCE_API_URL", "http://localhost:8000")
DEFAULT_TIMEOUT = 60.0
SESSION_COOKIE = "session"

Amount = Union[Decimal, float, int, str]


class ApiError(Exception):
    """Base class for client-side API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class Unauthorized(ApiError):
    pass


class ServerError(ApiError):
    pass


def _amount(value: Amount) -> Union[str, float, int]:
    # Decimal is not JSON-serialisable; the server parses strings exactly
    return str(value) if isinstance(value, Decimal) else value


class FinanceApiClient:
    """Typed wrapper around the credit, transaction and recap endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._session: Optional[str] = None

    def set_session(self, cookie: str) -> None:
        self._session = cookie

    def clear_session(self) -> None:
        self._session = None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ---------------------------
    # Transport
    # ---------------------------

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> Any:
        headers = {"Accept": "application/json"}
        if self._session:
            headers["Cookie"] = f"{SESSION_COOKIE}={self._session}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {str(e)}")
            raise ApiError(f"Failed to reach API: {str(e)}") from e

        content_type = response.headers.get("content-type", "")
        if response.status_code == 401 or "text/html" in content_type:
            # Expired sessions are redirected to an HTML login page
            logger.warning(f"{method} {path} returned {response.status_code} ({content_type}); session expired")
            raise Unauthorized("Session expired", status_code=response.status_code)

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") or body.get("detail") or "Request failed"
            logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
            raise ServerError(str(message), status_code=response.status_code, code=body.get("code"))

        return response.json()

    # ---------------------------
    # Credits
    # ---------------------------

    def get_unallocated(self, month: Optional[str] = None) -> UnallocatedCreditsResponse:
        data = self._request("GET", "/api/credits/unallocated", params={"month": month})
        return UnallocatedCreditsResponse.model_validate(data)

    def allocate(
        self,
        credit_id: int,
        action: str,
        amount: Amount,
        original_id: Optional[int] = None,
        category_id: Optional[int] = None,
        goal_id: Optional[int] = None,
    ) -> AllocateResponse:
        """Allocate ``amount`` dollars of a credit. Only the target key the action needs is sent."""
        body: Dict[str, Any] = {"credit_id": credit_id, "action": action, "amount": _amount(amount)}
        if original_id is not None:
            body["original_id"] = original_id
        if category_id is not None:
            body["category_id"] = category_id
        if goal_id is not None:
            body["goal_id"] = goal_id
        data = self._request("POST", "/api/credits/allocate", json=body)
        return AllocateResponse.model_validate(data)

    def revert_allocation(self, allocation_id: int) -> bool:
        """Undo an allocation. Undoing one that is already reverted succeeds."""
        return self._undo("/api/credits/allocate", allocation_id)

    def reset_credit(self, transaction_id: int) -> bool:
        data = self._request("POST", "/api/credits/reset", json={"transaction_id": transaction_id})
        return bool(data.get("ok"))

    # ---------------------------
    # Transactions
    # ---------------------------

    def search_transactions(
        self,
        search_type: str,
        days: int = 90,
        q: Optional[str] = None,
        category_id: Optional[int] = None,
        credit_description: Optional[str] = None,
        credit_amount: Optional[Amount] = None,
        limit: Optional[int] = None,
    ) -> TransactionSearchResponse:
        params = {
            "type": search_type,
            "days": days,
            "q": q,
            "category_id": category_id,
            "credit_description": credit_description,
            "credit_amount": _amount(credit_amount) if credit_amount is not None else None,
            "limit": limit,
        }
        data = self._request("GET", "/api/transactions/search", params=params)
        return TransactionSearchResponse.model_validate(data)

    def update_transaction(self, transaction_id: int, **fields: Any) -> bool:
        """PATCH status/category fields, e.g. ``is_return=True``."""
        data = self._request("PATCH", "/api/transactions", json={"id": transaction_id, **fields})
        return bool(data.get("ok"))

    def close_shortfall(self, transaction_id: int, kind: str = "return") -> bool:
        data = self._request(
            "POST", "/api/transactions/close-shortfall", json={"transaction_id": transaction_id, "type": kind}
        )
        return bool(data.get("ok"))

    # ---------------------------
    # Recap
    # ---------------------------

    def get_recap(self, month: Optional[str] = None, recap_type: str = "monthly") -> RecapResponse:
        data = self._request("GET", "/api/recap", params={"month": month, "type": recap_type})
        return RecapResponse.model_validate(data)

    def allocate_recap(
        self,
        recap_id: int,
        allocation_type: str,
        amount: Amount,
        target_goal_id: Optional[int] = None,
        target_transaction_id: Optional[int] = None,
        reset_existing: bool = False,
    ) -> RecapAllocateResponse:
        body = {
            "recap_id": recap_id,
            "allocation_type": allocation_type,
            "amount": _amount(amount),
            "target_goal_id": target_goal_id,
            "target_transaction_id": target_transaction_id,
            "reset_existing": reset_existing,
        }
        data = self._request("POST", "/api/recap/allocate", json=body)
        return RecapAllocateResponse.model_validate(data)

    def revert_recap_allocation(self, allocation_id: int) -> bool:
        return self._undo("/api/recap/allocate", allocation_id)

    def _undo(self, path: str, allocation_id: int) -> bool:
        try:
            data = self._request("DELETE", path, json={"allocation_id": allocation_id})
        except ServerError as e:
            if e.code != "AlreadyReverted":
                raise
            logger.info(f"Allocation {allocation_id} was already reverted; nothing to undo")
            return True
        return bool(data.get("ok"))
