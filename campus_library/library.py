import hashlib
import hmac
import logging
import os
import sqlite3
import uuid
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from campus_library import database
from campus_library.config import settings
from campus_library.database import get_db_connection, initialize_database
from campus_library.models import (
    Book,
    BorrowEligibility,
    BorrowRecord,
    BorrowStatus,
    User,
    UserRole,
    UserStatus,
)
from campus_library.validation import BookSchema, SignInSchema, SignUpSchema, validate_payload

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260_000

BOOK_NOT_FOUND = "Book not found."
BOOK_UNAVAILABLE = "Book is not available."
NOT_ELIGIBLE = "You are not eligible to borrow this book."
ALREADY_BORROWED = "You have already borrowed this book."


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    try:
        _, iterations, salt, expected = hashed.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


class Library:
    """Manages the catalog, members and loans, persisted in SQLite."""

    def __init__(self, db_file: Optional[str] = None, loan_days: Optional[int] = None,
                 max_active_borrows: Optional[int] = None) -> None:
        # Tests (and callers) may point the module-level helpers in database.py at their own file.
        if db_file:
            database.DATABASE_FILE = db_file
        initialize_database()
        self.loan_days = loan_days if loan_days is not None else settings.loan_days
        self.max_active_borrows = max_active_borrows if max_active_borrows is not None else settings.max_active_borrows

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Persist a pre-constructed Book and return it with its id and timestamps."""
        book.id = book.id or str(uuid.uuid4())
        if book.available_copies > book.total_copies:
            raise ValueError("Available copies cannot exceed total copies.")
        conn = get_db_connection()
        try:
            conn.execute("""
                INSERT INTO books (
                    id, title, author, genre, rating, total_copies, available_copies,
                    description, cover_color, cover_url, video_url, summary
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                book.id, book.title, book.author, book.genre, book.rating, book.total_copies,
                book.available_copies, book.description, book.cover_color, book.cover_url,
                book.video_url, book.summary,
            ))
            conn.commit()
            row = conn.execute("SELECT created_at FROM books WHERE id = ?", (book.id,)).fetchone()
            if row:
                book.created_at = row["created_at"]
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Book with id {book.id} already exists.") from e
        finally:
            conn.close()
        logger.info("Added book %s (%s)", book.title, book.id)
        return book

    def create_book(self, values: Dict[str, Any]) -> Book:
        """Validate a submitted book form and add it to the catalog."""
        data = validate_payload(BookSchema, values)
        return self.add_book(Book(**data.model_dump()))

    def update_book(self, book_id: str, values: Dict[str, Any]) -> Book:
        data = validate_payload(BookSchema, values)
        conn = get_db_connection()
        try:
            # Copies on loan are read and kept by the same statement, so a borrow
            # committed during the edit is never overwritten.
            cursor = conn.execute("""
                UPDATE books SET title = ?, author = ?, genre = ?, rating = ?,
                    available_copies = available_copies + (? - total_copies), total_copies = ?,
                    description = ?, cover_color = ?, cover_url = ?, video_url = ?, summary = ?
                WHERE id = ? AND total_copies - available_copies <= ?
            """, (
                data.title, data.author, data.genre, data.rating,
                data.total_copies, data.total_copies,
                data.description, data.cover_color, data.cover_url, data.video_url, data.summary,
                book_id, data.total_copies,
            ))
            conn.commit()
        finally:
            conn.close()

        book = self.get_book(book_id)
        if not book:
            raise LookupError(BOOK_NOT_FOUND)
        if cursor.rowcount == 0:
            on_loan = book.total_copies - book.available_copies
            raise ValueError(f"Total copies cannot be less than the {on_loan} copies currently borrowed.")
        return book

    def get_book(self, book_id: str) -> Optional[Book]:
        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            return Book.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_books(self, limit: Optional[int] = None, offset: int = 0) -> List[Book]:
        sql = "SELECT * FROM books ORDER BY created_at DESC, title ASC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = (limit, offset)
        conn = get_db_connection()
        try:
            return [Book.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def search_books(self, query: str, limit: int = 20) -> List[Book]:
        """Case-insensitive match on title, author or genre."""
        pattern = f"%{query.strip()}%"
        conn = get_db_connection()
        try:
            rows = conn.execute("""
                SELECT * FROM books
                WHERE title LIKE ? OR author LIKE ? OR genre LIKE ?
                ORDER BY title ASC LIMIT ?
            """, (pattern, pattern, pattern, limit)).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def remove_book(self, book_id: str) -> bool:
        conn = get_db_connection()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # ------------------------- Users ------------------------- #
    def sign_up(self, values: Dict[str, Any]) -> User:
        data = validate_payload(SignUpSchema, values)
        if self.find_user_by_email(data.email):
            raise ValueError("User already exists.")

        user = User(
            id=str(uuid.uuid4()),
            full_name=data.full_name,
            email=data.email,
            university_id=data.university_id,
            university_card=data.university_card,
            password_hash=hash_password(data.password),
        )
        conn = get_db_connection()
        try:
            conn.execute("""
                INSERT INTO users (id, full_name, email, university_id, university_card,
                                   password_hash, status, role)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                user.id, user.full_name, user.email, user.university_id, user.university_card,
                user.password_hash, user.status.value, user.role.value,
            ))
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ValueError("User already exists.") from e
        finally:
            conn.close()
        logger.info("Signed up %s", user.email)
        return self.get_user(user.id)

    def authenticate(self, values: Dict[str, Any]) -> Optional[User]:
        """Return the user for valid credentials, None otherwise."""
        data = validate_payload(SignInSchema, values)
        user = self.find_user_by_email(data.email)
        if not user or not verify_password(data.password, user.password_hash or ""):
            return None
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._fetch_user("SELECT * FROM users WHERE id = ?", (user_id,))

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self._fetch_user("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))

    def _fetch_user(self, sql: str, params: tuple) -> Optional[User]:
        conn = get_db_connection()
        try:
            row = conn.execute(sql, params).fetchone()
            return User.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def set_user_status(self, user_id: str, status: UserStatus) -> User:
        return self._set_user_column(user_id, "status", UserStatus(status).value)

    def set_user_role(self, user_id: str, role: UserRole) -> User:
        return self._set_user_column(user_id, "role", UserRole(role).value)

    def _set_user_column(self, user_id: str, column: str, value: str) -> User:
        conn = get_db_connection()
        try:
            cursor = conn.execute(f"UPDATE users SET {column} = ? WHERE id = ?", (value, user_id))
            conn.commit()
        finally:
            conn.close()
        if cursor.rowcount == 0:
            raise LookupError("User not found.")
        return self.get_user(user_id)

    def touch_activity(self, user_id: str, today: Optional[date] = None) -> bool:
        """Record today's visit; writes at most once per day. Returns True when it wrote."""
        day = (today or date.today()).isoformat()
        conn = get_db_connection()
        try:
            cursor = conn.execute("""
                UPDATE users SET last_activity_date = ?
                WHERE id = ? AND (last_activity_date IS NULL OR last_activity_date != ?)
            """, (day, user_id, day))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # ------------------------- Loans ------------------------- #
    def borrow_eligibility(self, user_id: str, book_id: str) -> BorrowEligibility:
        book = self.get_book(book_id)
        if not book:
            return BorrowEligibility(False, BOOK_NOT_FOUND)
        if book.available_copies <= 0:
            return BorrowEligibility(False, BOOK_UNAVAILABLE)

        user = self.get_user(user_id)
        if not user or user.status is not UserStatus.APPROVED:
            return BorrowEligibility(False, NOT_ELIGIBLE)

        active = self.active_borrows(user_id)
        if any(record.book_id == book_id for record in active):
            return BorrowEligibility(False, ALREADY_BORROWED)
        if len(active) >= self.max_active_borrows:
            return BorrowEligibility(False, self._limit_message())
        return BorrowEligibility(True, "")

    def _limit_message(self) -> str:
        return f"You have reached the limit of {self.max_active_borrows} borrowed books."

    def borrow_book(self, user_id: str, book_id: str, today: Optional[date] = None) -> BorrowRecord:
        eligibility = self.borrow_eligibility(user_id, book_id)
        if not eligibility.is_eligible:
            if eligibility.message == BOOK_NOT_FOUND:
                raise LookupError(BOOK_NOT_FOUND)
            raise ValueError(eligibility.message)

        borrowed_on = today or date.today()
        record = BorrowRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            book_id=book_id,
            borrow_date=borrowed_on.isoformat(),
            due_date=(borrowed_on + timedelta(days=self.loan_days)).isoformat(),
        )
        conn = get_db_connection()
        try:
            # Take the write lock first so the per-user checks below see every committed loan.
            conn.execute("BEGIN IMMEDIATE")
            active = conn.execute(
                "SELECT book_id FROM borrow_records WHERE user_id = ? AND status = ?",
                (user_id, BorrowStatus.BORROWED.value),
            ).fetchall()
            if any(row["book_id"] == book_id for row in active):
                raise ValueError(ALREADY_BORROWED)
            if len(active) >= self.max_active_borrows:
                raise ValueError(self._limit_message())

            # The guarded decrement keeps two concurrent borrows from overselling the last copy.
            cursor = conn.execute(
                "UPDATE books SET available_copies = available_copies - 1 WHERE id = ? AND available_copies > 0",
                (book_id,),
            )
            if cursor.rowcount == 0:
                raise ValueError(BOOK_UNAVAILABLE)
            try:
                conn.execute("""
                    INSERT INTO borrow_records (id, user_id, book_id, borrow_date, due_date, status)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (record.id, record.user_id, record.book_id, record.borrow_date, record.due_date,
                      record.status.value))
            except sqlite3.IntegrityError as e:
                raise ValueError(ALREADY_BORROWED) from e
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info("User %s borrowed book %s until %s", user_id, book_id, record.due_date)
        return record

    def return_book(self, user_id: str, book_id: str, today: Optional[date] = None) -> BorrowRecord:
        active = [r for r in self.active_borrows(user_id) if r.book_id == book_id]
        if not active:
            raise LookupError("No active loan for this book.")
        record = active[0]
        record.return_date = (today or date.today()).isoformat()
        record.status = BorrowStatus.RETURNED

        conn = get_db_connection()
        try:
            conn.execute(
                "UPDATE borrow_records SET return_date = ?, status = ? WHERE id = ?",
                (record.return_date, record.status.value, record.id),
            )
            conn.execute(
                "UPDATE books SET available_copies = available_copies + 1 "
                "WHERE id = ? AND available_copies < total_copies",
                (book_id,),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("User %s returned book %s", user_id, book_id)
        return record

    def active_borrows(self, user_id: str) -> List[BorrowRecord]:
        conn = get_db_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM borrow_records WHERE user_id = ? AND status = ? ORDER BY borrow_date DESC",
                (user_id, BorrowStatus.BORROWED.value),
            ).fetchall()
            return [BorrowRecord.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def borrowed_books(self, user_id: str) -> List[Dict[str, Any]]:
        """Books the user currently has on loan, with their due dates."""
        items = []
        for record in self.active_borrows(user_id):
            book = self.get_book(record.book_id)
            if book:
                items.append({**book.to_dict(), "is_loaned_book": True, "borrow": record.to_dict()})
        return items
