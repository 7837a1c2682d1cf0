import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from campus_library import actions
from campus_library.config import settings
from campus_library.database import get_db_connection
from campus_library.library import Library
from campus_library.models import UserStatus
from campus_library.rate_limit import RateLimiter
from campus_library.services.http_client import cleanup_http_client, get_http_client
from campus_library.services.imagekit import sign_upload
from campus_library.validation import FORMS, render_form

logger = logging.getLogger(__name__)

library = Library(db_file=os.environ.get("LIBRARY_DB_FILE"))
auth_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Start shared resources
    await get_http_client()
    try:
        yield
    finally:
        await cleanup_http_client()


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency validating the admin API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class LoanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    book_id: str = Field(..., alias="bookId")


class StatusUpdate(BaseModel):
    status: UserStatus


class EligibilityModel(BaseModel):
    isEligible: bool
    message: str


def _action_response(result: Dict[str, Any], success_status: int = 200) -> JSONResponse:
    if result.get("success"):
        return JSONResponse(result, status_code=success_status)
    return JSONResponse(result, status_code=422 if result.get("errors") else 400)


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint with a quick database probe."""
    db_ok = True
    try:
        conn = get_db_connection()
        conn.execute("SELECT 1")
        conn.close()
    except Exception:
        logger.exception("Database health check failed")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "uploads": bool(settings.imagekit_private_key),
    }


# --- Signed uploads ---
@app.get("/api/auth/imagekit")
def imagekit_auth():
    """Short-lived token/expire/signature triple for a direct-to-CDN upload."""
    try:
        auth = sign_upload(settings.imagekit_private_key or "", ttl=settings.imagekit_token_ttl)
    except ValueError as exc:
        logger.error("Cannot sign upload: %s", exc)
        return PlainTextResponse(str(exc), status_code=500)
    return auth.to_dict()


# --- Forms ---
@app.get("/forms/{name}")
def get_form(name: str):
    form = FORMS.get(name)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return render_form(form)


# --- Auth ---
@app.post("/auth/sign-up", dependencies=[Depends(auth_limiter.dependency("sign-up"))])
def sign_up(payload: Dict[str, Any] = Body(...)):
    return _action_response(actions.sign_up(library, payload), success_status=201)


@app.post("/auth/sign-in", dependencies=[Depends(auth_limiter.dependency("sign-in"))])
def sign_in(payload: Dict[str, Any] = Body(...)):
    result = actions.sign_in(library, payload)
    if not result.get("success") and not result.get("errors"):
        return JSONResponse(result, status_code=401)
    return _action_response(result)


# --- Books ---
@app.get("/books")
def list_books(limit: Optional[int] = Query(None, ge=1, le=100), offset: int = Query(0, ge=0)) -> List[dict]:
    return [book.to_dict() for book in library.list_books(limit=limit, offset=offset)]


@app.get("/books/search")
def search_books(q: str = Query(..., min_length=1), limit: int = Query(20, ge=1, le=100)) -> List[dict]:
    return [book.to_dict() for book in library.search_books(q, limit=limit)]


@app.get("/books/{book_id}")
def get_book(book_id: str):
    book = library.get_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book.to_dict()


@app.post("/books", dependencies=[Depends(get_api_key)])
def create_book(payload: Dict[str, Any] = Body(...)):
    return _action_response(actions.create_book(library, payload), success_status=201)


@app.put("/books/{book_id}", dependencies=[Depends(get_api_key)])
def update_book(book_id: str, payload: Dict[str, Any] = Body(...)):
    if not library.get_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    return _action_response(actions.update_book(library, book_id, payload))


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: str):
    if not library.remove_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    return {"success": True}


@app.get("/books/{book_id}/eligibility", response_model=EligibilityModel)
def get_eligibility(book_id: str, user_id: str = Query(...)):
    return library.borrow_eligibility(user_id, book_id).to_dict()


# --- Loans ---
@app.post("/borrow")
def borrow_book(request: LoanRequest):
    return _action_response(actions.borrow_book(library, request.user_id, request.book_id))


@app.post("/return")
def return_book(request: LoanRequest):
    return _action_response(actions.return_book(library, request.user_id, request.book_id))


# --- Users ---
@app.get("/users/{user_id}")
def get_user(user_id: str):
    user = library.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user.to_dict()


@app.get("/users/{user_id}/borrowed-books")
def get_borrowed_books(user_id: str):
    if not library.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return library.borrowed_books(user_id)


@app.post("/users/{user_id}/status", dependencies=[Depends(get_api_key)])
def set_user_status(user_id: str, update: StatusUpdate):
    try:
        return library.set_user_status(user_id, update.status).to_dict()
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.post("/users/{user_id}/activity")
def touch_activity(user_id: str):
    if not library.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"updated": library.touch_activity(user_id)}


@app.get("/")
def read_root():
    return {"name": settings.app_name, "version": settings.app_version, "docs": "/docs"}
