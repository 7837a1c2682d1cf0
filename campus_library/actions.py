"""Server actions.

Thin wrappers over ``Library`` that never raise: they return the
``{"success": ...}`` payloads the client components consume. ``ApiActions``
exposes the same operations to clients talking to the HTTP API.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from campus_library.library import Library
from campus_library.services.http_client import HTTPClient, get_http_client
from campus_library.validation import ValidationFailed

logger = logging.getLogger(__name__)

BORROW_FAILED = "An error occurred while borrowing the book."


def create_book(library: Library, values: Dict[str, Any]) -> Dict[str, Any]:
    try:
        book = library.create_book(values)
    except ValidationFailed as exc:
        return {"success": False, "message": str(exc), "errors": exc.errors}
    except ValueError as exc:
        return {"success": False, "message": str(exc)}
    return {"success": True, "data": book.to_dict()}


def update_book(library: Library, book_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
    try:
        book = library.update_book(book_id, values)
    except ValidationFailed as exc:
        return {"success": False, "message": str(exc), "errors": exc.errors}
    except (ValueError, LookupError) as exc:
        return {"success": False, "message": str(exc)}
    return {"success": True, "data": book.to_dict()}


def borrow_book(library: Library, user_id: str, book_id: str) -> Dict[str, Any]:
    try:
        record = library.borrow_book(user_id, book_id)
    except (ValueError, LookupError) as exc:
        return {"success": False, "error": str(exc)}
    except Exception:
        logger.exception("Borrowing book %s for user %s failed", book_id, user_id)
        return {"success": False, "error": BORROW_FAILED}
    return {"success": True, "data": record.to_dict()}


def return_book(library: Library, user_id: str, book_id: str) -> Dict[str, Any]:
    try:
        record = library.return_book(user_id, book_id)
    except LookupError as exc:
        return {"success": False, "error": str(exc)}
    return {"success": True, "data": record.to_dict()}


def sign_up(library: Library, values: Dict[str, Any]) -> Dict[str, Any]:
    try:
        user = library.sign_up(values)
    except ValidationFailed as exc:
        return {"success": False, "error": str(exc), "errors": exc.errors}
    except ValueError as exc:
        return {"success": False, "error": str(exc)}
    return {"success": True, "data": user.to_dict()}


def sign_in(library: Library, values: Dict[str, Any]) -> Dict[str, Any]:
    try:
        user = library.authenticate(values)
    except ValidationFailed as exc:
        return {"success": False, "error": str(exc), "errors": exc.errors}
    if not user:
        return {"success": False, "error": "Invalid email or password."}
    library.touch_activity(user.id)
    return {"success": True, "data": user.to_dict()}


class ApiActions:
    """Calls the server actions over HTTP."""

    def __init__(self, api_endpoint: str, api_key: Optional[str] = None, client: Optional[HTTPClient] = None):
        self.api_endpoint = api_endpoint.rstrip("/")
        self.api_key = api_key
        self._client = client

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        client = self._client or await get_http_client()
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        request = client.build_request("POST", f"{self.api_endpoint}{path}", json=payload, headers=headers)
        response = await client.send(request)
        if response.status_code >= 500:
            response.raise_for_status()
        data = response.json()
        if "success" not in data:
            # FastAPI errors (auth, rate limit) come back as {"detail": ...}
            detail = str(data.get("detail", response.text))
            return {"success": False, "error": detail, "message": detail}
        return data

    async def borrow_book(self, user_id: str, book_id: str) -> Dict[str, Any]:
        return await self._post("/borrow", {"userId": user_id, "bookId": book_id})

    async def create_book(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/books", values)

    async def eligibility(self, user_id: str, book_id: str) -> Dict[str, Any]:
        client = self._client or await get_http_client()
        response = await client.get(f"{self.api_endpoint}/books/{book_id}/eligibility",
                                    params={"user_id": user_id})
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            logger.error("Eligibility lookup failed: %s", response.text)
            raise
        return response.json()
