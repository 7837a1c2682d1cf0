import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str
    variant: str = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


class Notifier:
    """Collects user-facing toasts. Subclass and override ``show`` to render them."""

    def __init__(self) -> None:
        self.toasts: List[Toast] = []

    def show(self, title: str, description: str, variant: str = "default") -> Toast:
        toast = Toast(title=title, description=description, variant=variant)
        self.toasts.append(toast)
        if toast.is_error:
            logger.warning("%s: %s", title, description)
        else:
            logger.info("%s: %s", title, description)
        return toast

    def error(self, title: str, description: str) -> Toast:
        return self.show(title, description, variant="destructive")

    @property
    def last(self) -> Optional[Toast]:
        return self.toasts[-1] if self.toasts else None


class Navigator:
    """Records route changes requested by client components."""

    def __init__(self) -> None:
        self.history: List[str] = []

    def push(self, route: str) -> None:
        logger.debug("Navigating to %s", route)
        self.history.append(route)

    @property
    def current(self) -> Optional[str]:
        return self.history[-1] if self.history else None
