from datetime import date

import pytest

from campus_library.library import Library, hash_password, verify_password
from campus_library.models import BorrowEligibility, BorrowStatus, UserRole, UserStatus
from campus_library.validation import ValidationFailed


def test_create_and_list_books(lib, book_values):
    assert lib.list_books() == []

    book = lib.create_book(book_values)

    assert book.id
    assert book.available_copies == book.total_copies == 3
    assert [b.title for b in lib.list_books()] == ["The Midnight Library"]
    assert lib.get_book(book.id).cover_url == "/books/covers/midnight-library.png"


def test_create_book_rejects_invalid_values(lib, book_values):
    book_values["rating"] = 9
    with pytest.raises(ValidationFailed) as exc:
        lib.create_book(book_values)
    assert "rating" in exc.value.errors
    assert lib.list_books() == []


def test_persistence_across_instances(lib, book_values):
    book = lib.create_book(book_values)
    assert Library().get_book(book.id).title == "The Midnight Library"


def test_search_books(lib, book_values):
    lib.create_book(book_values)
    assert len(lib.search_books("midnight")) == 1
    assert len(lib.search_books("haig")) == 1
    assert lib.search_books("cookbook") == []


def test_remove_book(lib, book_values):
    book = lib.create_book(book_values)
    assert lib.remove_book(book.id) is True
    assert lib.remove_book(book.id) is False


def test_update_book_keeps_loans_consistent(lib, book_values, approved_user):
    book = lib.create_book(book_values)
    lib.borrow_book(approved_user.id, book.id)

    book_values["totalCopies"] = 5
    updated = lib.update_book(book.id, book_values)
    assert (updated.total_copies, updated.available_copies) == (5, 4)

    book_values["totalCopies"] = 1
    updated = lib.update_book(book.id, book_values)
    assert (updated.total_copies, updated.available_copies) == (1, 0)


def test_update_book_cannot_drop_below_borrowed(lib, book_values, user_values):
    book_values["totalCopies"] = 2
    book = lib.create_book(book_values)
    for index in range(2):
        user = lib.sign_up({**user_values, "email": f"reader{index}@university.edu", "universityId": index + 1})
        lib.set_user_status(user.id, UserStatus.APPROVED)
        lib.borrow_book(user.id, book.id)

    book_values["totalCopies"] = 1
    with pytest.raises(ValueError):
        lib.update_book(book.id, book_values)


def test_update_missing_book(lib, book_values):
    with pytest.raises(LookupError):
        lib.update_book("missing", book_values)


def test_password_hashing():
    hashed = hash_password("correct horse")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)
    assert not verify_password("anything", "garbage")


def test_sign_up_and_authenticate(lib, user_values):
    user = lib.sign_up(user_values)
    assert user.status is UserStatus.PENDING
    assert user.role is UserRole.USER
    assert user.university_id == 1024

    assert lib.authenticate({"email": "ADA@university.edu", "password": "analytical-engine"}).id == user.id
    assert lib.authenticate({"email": "ada@university.edu", "password": "wrong-password"}) is None


def test_sign_up_rejects_duplicate_email(lib, user_values):
    lib.sign_up(user_values)
    with pytest.raises(ValueError, match="User already exists"):
        lib.sign_up({**user_values, "universityId": 2048})


def test_set_user_status_missing_user(lib):
    with pytest.raises(LookupError):
        lib.set_user_status("missing", UserStatus.APPROVED)


def test_touch_activity_writes_once_per_day(lib, user_values):
    user = lib.sign_up(user_values)
    assert lib.touch_activity(user.id, today=date(2026, 3, 1)) is True
    assert lib.touch_activity(user.id, today=date(2026, 3, 1)) is False
    assert lib.touch_activity(user.id, today=date(2026, 3, 2)) is True
    assert lib.get_user(user.id).last_activity_date == "2026-03-02"


def test_pending_user_is_not_eligible(lib, book_values, user_values):
    book = lib.create_book(book_values)
    user = lib.sign_up(user_values)
    eligibility = lib.borrow_eligibility(user.id, book.id)
    assert not eligibility.is_eligible
    assert eligibility.message == "You are not eligible to borrow this book."


def test_borrow_and_return(lib, book_values, approved_user):
    book = lib.create_book(book_values)
    assert lib.borrow_eligibility(approved_user.id, book.id).is_eligible

    record = lib.borrow_book(approved_user.id, book.id, today=date(2026, 3, 1))
    assert record.due_date == "2026-03-08"
    assert lib.get_book(book.id).available_copies == 2
    assert [item["id"] for item in lib.borrowed_books(approved_user.id)] == [book.id]

    again = lib.borrow_eligibility(approved_user.id, book.id)
    assert again.message == "You have already borrowed this book."

    returned = lib.return_book(approved_user.id, book.id, today=date(2026, 3, 5))
    assert returned.status is BorrowStatus.RETURNED
    assert lib.get_book(book.id).available_copies == 3
    assert lib.borrowed_books(approved_user.id) == []


def test_available_copies_never_negative(lib, book_values, user_values):
    book_values["totalCopies"] = 1
    book = lib.create_book(book_values)
    users = []
    for index in range(2):
        user = lib.sign_up({**user_values, "email": f"r{index}@university.edu", "universityId": 10 + index})
        users.append(lib.set_user_status(user.id, UserStatus.APPROVED))

    lib.borrow_book(users[0].id, book.id)
    with pytest.raises(ValueError, match="Book is not available"):
        lib.borrow_book(users[1].id, book.id)
    assert lib.get_book(book.id).available_copies == 0


def test_borrow_limit(book_values, approved_user):
    limited = Library(max_active_borrows=1)
    first = limited.create_book(book_values)
    second = limited.create_book({**book_values, "title": "Another Book"})
    limited.borrow_book(approved_user.id, first.id)
    eligibility = limited.borrow_eligibility(approved_user.id, second.id)
    assert not eligibility.is_eligible
    assert "limit of 1" in eligibility.message


def test_borrow_missing_book(lib, approved_user):
    with pytest.raises(LookupError):
        lib.borrow_book(approved_user.id, "missing")


def test_return_without_loan(lib, book_values, approved_user):
    book = lib.create_book(book_values)
    with pytest.raises(LookupError):
        lib.return_book(approved_user.id, book.id)


def test_update_book_keeps_a_borrow_committed_mid_edit(lib, book_values, approved_user, monkeypatch):
    book = lib.create_book(book_values)
    original_get_book = Library.get_book
    pending = [approved_user.id]

    def get_book_then_borrow(self, book_id):
        found = original_get_book(self, book_id)
        if pending:
            lib.borrow_book(pending.pop(), book_id)
        return found

    monkeypatch.setattr(Library, "get_book", get_book_then_borrow)
    book_values["totalCopies"] = 5
    lib.update_book(book.id, book_values)
    monkeypatch.undo()

    stored = lib.get_book(book.id)
    assert not pending
    assert (stored.total_copies, stored.available_copies) == (5, 4)


def always_eligible(monkeypatch):
    # Both requests pass the pre-check, as two simultaneous requests would
    monkeypatch.setattr(Library, "borrow_eligibility",
                        lambda self, user_id, book_id: BorrowEligibility(True, ""))


def test_simultaneous_duplicate_borrow_is_rejected(lib, book_values, approved_user, monkeypatch):
    book = lib.create_book(book_values)
    always_eligible(monkeypatch)

    lib.borrow_book(approved_user.id, book.id)
    with pytest.raises(ValueError, match="already borrowed"):
        lib.borrow_book(approved_user.id, book.id)

    assert lib.get_book(book.id).available_copies == 2
    assert len(lib.active_borrows(approved_user.id)) == 1


def test_simultaneous_borrows_respect_limit(book_values, approved_user, monkeypatch):
    limited = Library(max_active_borrows=1)
    first = limited.create_book(book_values)
    second = limited.create_book({**book_values, "title": "Another Book"})
    always_eligible(monkeypatch)

    limited.borrow_book(approved_user.id, first.id)
    with pytest.raises(ValueError, match="limit of 1"):
        limited.borrow_book(approved_user.id, second.id)
    assert limited.get_book(second.id).available_copies == 3
