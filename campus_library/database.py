import logging
import os
import sqlite3
import tempfile

from dotenv import load_dotenv

# Make sure .env is loaded before we read the database location.
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Priority:
# 1) LIBRARY_DB_FILE (explicit override)
# 2) per-process temp file
DATABASE_FILE = (
    os.environ.get("LIBRARY_DB_FILE")
    or os.path.join(tempfile.gettempdir(), f"campus_library_{os.getpid()}.db")
)


def get_db_connection() -> sqlite3.Connection:
    """Open a connection to the SQLite database with dict-like rows."""
    conn = sqlite3.connect(DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables() -> None:
    """Create the required tables if they do not exist yet."""
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT NOT NULL,
                rating INTEGER NOT NULL CHECK(rating >= 1 AND rating <= 5),
                total_copies INTEGER NOT NULL DEFAULT 1 CHECK(total_copies >= 1),
                available_copies INTEGER NOT NULL DEFAULT 0
                    CHECK(available_copies >= 0 AND available_copies <= total_copies),
                description TEXT NOT NULL,
                cover_color TEXT NOT NULL,
                cover_url TEXT NOT NULL,
                video_url TEXT NOT NULL,
                summary TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                university_id INTEGER NOT NULL UNIQUE,
                university_card TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING'
                    CHECK(status IN ('PENDING', 'APPROVED', 'REJECTED')),
                role TEXT NOT NULL DEFAULT 'USER' CHECK(role IN ('USER', 'ADMIN')),
                last_activity_date TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS borrow_records (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                book_id TEXT NOT NULL,
                borrow_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                status TEXT NOT NULL DEFAULT 'BORROWED' CHECK(status IN ('BORROWED', 'RETURNED')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_genre ON books(genre)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user ON borrow_records(user_id, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_book ON borrow_records(book_id)")
        # One open loan per user and book
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_borrow_records_active
            ON borrow_records(user_id, book_id) WHERE status = 'BORROWED'
        """)
        conn.commit()
    finally:
        conn.close()


def initialize_database() -> None:
    """Initialise the database, creating tables when needed."""
    logger.debug("Initialising database at %s", DATABASE_FILE)
    create_tables()
