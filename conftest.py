import os

import pytest

from campus_library import database
from campus_library.library import Library


@pytest.fixture
def lib(tmp_path, request):
    # Unique database file per test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    previous = database.DATABASE_FILE
    lib = Library(db_file=db_file)
    yield lib
    database.DATABASE_FILE = previous
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture
def book_values():
    return {
        "title": "The Midnight Library",
        "author": "Matt Haig",
        "genre": "Fantasy",
        "rating": 4,
        "totalCopies": 3,
        "description": "A dazzling novel about all the choices that go into a life well lived.",
        "coverColor": "#1C1F40",
        "coverUrl": "/books/covers/midnight-library.png",
        "videoUrl": "/books/videos/midnight-library.mp4",
        "summary": "Between life and death there is a library, and within that library the shelves go on forever.",
    }


@pytest.fixture
def user_values():
    return {
        "fullName": "Ada Lovelace",
        "email": "ada@university.edu",
        "universityId": "1024",
        "universityCard": "/ids/ada-card.png",
        "password": "analytical-engine",
    }


@pytest.fixture
def approved_user(lib, user_values):
    from campus_library.models import UserStatus

    user = lib.sign_up(user_values)
    return lib.set_user_status(user.id, UserStatus.APPROVED)
