import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from campus_library.models import BorrowEligibility
from campus_library.notifications import Navigator, Notifier

logger = logging.getLogger(__name__)

BorrowAction = Callable[..., Awaitable[Dict[str, Any]]]

GENERIC_ERROR = "An error occurred while borrowing the book."


class BorrowActionClient:
    """The "Borrow" button on a book page.

    ``borrowing`` is the in-flight flag; while it is set the button is disabled
    and a second press is ignored.
    """

    def __init__(self, user_id: str, book_id: str, eligibility: BorrowEligibility,
                 borrow_action: BorrowAction, notifier: Optional[Notifier] = None,
                 navigator: Optional[Navigator] = None, home_route: str = "/"):
        self.user_id = user_id
        self.book_id = book_id
        self.eligibility = eligibility
        self.borrow_action = borrow_action
        self.notifier = notifier or Notifier()
        self.navigator = navigator or Navigator()
        self.home_route = home_route
        self.borrowing = False

    @property
    def disabled(self) -> bool:
        return self.borrowing

    @property
    def label(self) -> str:
        return "Borrowing..." if self.borrowing else "Borrow"

    async def handle_borrow(self) -> bool:
        """Press the button. Returns True when the book was borrowed."""
        if not self.eligibility.is_eligible:
            self.notifier.error("Error", self.eligibility.message)
            return False
        if self.borrowing:
            logger.debug("Borrow of %s already in flight", self.book_id)
            return False

        self.borrowing = True
        try:
            result = await self.borrow_action(user_id=self.user_id, book_id=self.book_id)
            if result.get("success"):
                self.notifier.show("Success!", "Book borrowed successfully.")
                self.navigator.push(self.home_route)
                return True
            self.notifier.error("Error", result.get("error") or GENERIC_ERROR)
            return False
        except Exception:
            logger.exception("Borrowing book %s failed", self.book_id)
            self.notifier.error("Error", GENERIC_ERROR)
            return False
        finally:
            self.borrowing = False
