import asyncio
from unittest.mock import AsyncMock

from campus_library.borrow import GENERIC_ERROR, BorrowActionClient
from campus_library.models import BorrowEligibility
from campus_library.notifications import Navigator, Notifier


def make_client(eligibility=BorrowEligibility(True, ""), action=None):
    action = action or AsyncMock(return_value={"success": True})
    return BorrowActionClient("user-1", "book-1", eligibility, action, Notifier(), Navigator())


def test_successful_borrow_notifies_and_navigates_home():
    client = make_client()
    assert asyncio.run(client.handle_borrow()) is True
    client.borrow_action.assert_awaited_once_with(user_id="user-1", book_id="book-1")
    assert client.notifier.last.title == "Success!"
    assert client.notifier.last.description == "Book borrowed successfully."
    assert client.navigator.current == "/"
    assert client.borrowing is False


def test_ineligible_shows_exact_message_and_skips_the_call():
    client = make_client(BorrowEligibility(False, "Book is not available."))
    assert asyncio.run(client.handle_borrow()) is False
    assert client.notifier.last.is_error
    assert client.notifier.last.description == "Book is not available."
    client.borrow_action.assert_not_awaited()
    assert client.navigator.current is None


def test_reported_failure_uses_server_message():
    client = make_client(action=AsyncMock(return_value={"success": False, "error": "X"}))
    assert asyncio.run(client.handle_borrow()) is False
    assert client.notifier.last.title == "Error"
    assert client.notifier.last.description == "X"
    assert client.navigator.current is None


def test_thrown_error_shows_generic_message_and_releases_flag():
    client = make_client(action=AsyncMock(side_effect=ConnectionError("network down")))
    assert asyncio.run(client.handle_borrow()) is False
    assert client.notifier.last.description == GENERIC_ERROR
    assert client.borrowing is False
    assert client.label == "Borrow"


def test_flag_is_set_while_in_flight():
    observed = {}

    async def action(user_id, book_id):
        observed["disabled"] = client.disabled
        observed["label"] = client.label
        return {"success": True}

    client = make_client(action=action)
    asyncio.run(client.handle_borrow())
    assert observed == {"disabled": True, "label": "Borrowing..."}
    assert client.disabled is False


def test_repeated_press_while_in_flight_is_ignored():
    calls = []

    async def action(user_id, book_id):
        calls.append(book_id)
        await asyncio.sleep(0.01)
        return {"success": True}

    client = make_client(action=action)

    async def double_click():
        return await asyncio.gather(client.handle_borrow(), client.handle_borrow())

    results = asyncio.run(double_click())
    assert sorted(results) == [False, True]
    assert calls == ["book-1"]
