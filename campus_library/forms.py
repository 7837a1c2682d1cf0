import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from campus_library.config import UploadConfig
from campus_library.models import Book
from campus_library.notifications import Navigator, Notifier
from campus_library.services.imagekit import ImageKitTransport, UploadAuthenticator
from campus_library.upload import FileUploadWidget, UploadKind
from campus_library.validation import (
    BOOK_FORM,
    HEX_COLOR,
    SIGN_IN_FORM,
    SIGN_UP_FORM,
    FormDefinition,
    render_form,
)

logger = logging.getLogger(__name__)

SubmitAction = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

BOOK_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "author": "",
    "genre": "",
    "rating": 1,
    "total_copies": 0,
    "description": "",
    "cover_url": "",
    "cover_color": "",
    "video_url": "",
    "summary": "",
}


class Form:
    """Generic form state bound to a ``FormDefinition``.

    Upload fields get their own ``FileUploadWidget``; the widget writes the
    asset path back into the form values through ``on_file_change``.
    """

    def __init__(self, definition: FormDefinition, defaults: Dict[str, Any], action: SubmitAction,
                 upload_config: UploadConfig, notifier: Optional[Notifier] = None,
                 navigator: Optional[Navigator] = None,
                 authenticator: Optional[UploadAuthenticator] = None,
                 transport: Optional[ImageKitTransport] = None):
        self.definition = definition
        self.values: Dict[str, Any] = dict(defaults)
        self.errors: Dict[str, List[str]] = {}
        self.action = action
        self.notifier = notifier or Notifier()
        self.navigator = navigator or Navigator()
        self.submitting = False

        authenticator = authenticator or UploadAuthenticator(upload_config)
        transport = transport or ImageKitTransport(upload_config)
        self.uploads: Dict[str, FileUploadWidget] = {}
        for descriptor in definition.fields:
            if not descriptor.is_upload:
                continue
            self.uploads[descriptor.name] = FileUploadWidget(
                kind=UploadKind(descriptor.kind.value),
                config=upload_config,
                on_file_change=self._setter(descriptor.name),
                notifier=self.notifier,
                authenticator=authenticator,
                transport=transport,
                folder=descriptor.hint.get("folder", ""),
                accept=descriptor.hint.get("accept"),
                placeholder=descriptor.placeholder,
                value=self.values.get(descriptor.name) or None,
            )

    def _setter(self, name: str) -> Callable[[Any], None]:
        def set_value(value: Any) -> None:
            self.set_value(name, value)
        return set_value

    def set_value(self, name: str, value: Any) -> None:
        self.definition.descriptor(name)
        self.values[name] = value
        self.errors.pop(name, None)

    def validate(self) -> bool:
        self.errors = self.definition.field_errors(self.values)
        return not self.errors

    def payload(self) -> Dict[str, Any]:
        """Validated values keyed the way the HTTP API expects them."""
        return self.definition.validate(self.values).model_dump(by_alias=True)

    def render(self) -> Dict[str, Any]:
        rendered = render_form(self.definition)
        for item, descriptor in zip(rendered["fields"], self.definition.fields):
            item["value"] = self.values.get(descriptor.name)
            item["errors"] = self.errors.get(descriptor.name, [])
        return rendered

    async def submit(self) -> Optional[Dict[str, Any]]:
        """Validate, then hand the payload to the action. Returns the action result."""
        if self.submitting:
            return None
        if not self.validate():
            logger.debug("%s form blocked by invalid fields: %s", self.definition.name, sorted(self.errors))
            return None

        self.submitting = True
        try:
            result = await self.action(self.payload())
        except Exception:
            logger.exception("Submitting the %s form failed", self.definition.name)
            result = {"success": False, "error": "An unexpected error occurred."}
        finally:
            self.submitting = False

        if result.get("success"):
            self.on_success(result)
        else:
            self.errors.update(result.get("errors") or {})
            self.on_failure(result)
        return result

    def on_success(self, result: Dict[str, Any]) -> None:
        self.notifier.show("Success", "Submitted successfully.")

    def on_failure(self, result: Dict[str, Any]) -> None:
        self.notifier.error("Error", result.get("message") or result.get("error") or "An error occurred.")


class BookForm(Form):
    def __init__(self, action: SubmitAction, upload_config: UploadConfig, book: Optional[Book] = None,
                 type: str = "create", **kwargs):
        defaults = dict(BOOK_DEFAULTS)
        if book:
            data = book.to_dict()
            defaults.update({key: data[key] for key in BOOK_DEFAULTS})
        self.type = type
        super().__init__(BOOK_FORM, defaults, action, upload_config, **kwargs)

    def pick_color(self, value: str) -> bool:
        """The color picker input; accepts #rrggbb only."""
        if not HEX_COLOR.match(value or ""):
            self.errors["cover_color"] = ["Cover color must be a hex color like #1c1f40"]
            return False
        self.set_value("cover_color", value.lower())
        return True

    def on_success(self, result: Dict[str, Any]) -> None:
        verb = "updated" if self.type == "update" else "created"
        self.notifier.show("Success", f"Book {verb} successfully.")
        self.navigator.push(f"/admin/books/{result['data']['id']}")


class AuthForm(Form):
    def __init__(self, type: str, action: SubmitAction, upload_config: UploadConfig, **kwargs):
        if type == "SIGN_IN":
            definition = SIGN_IN_FORM
            defaults: Dict[str, Any] = {"email": "", "password": ""}
        elif type == "SIGN_UP":
            definition = SIGN_UP_FORM
            defaults = {"email": "", "password": "", "full_name": "", "university_id": 1, "university_card": ""}
        else:
            raise ValueError(f"Unknown auth form type: {type}")
        self.type = type
        super().__init__(definition, defaults, action, upload_config, **kwargs)

    @property
    def is_sign_in(self) -> bool:
        return self.type == "SIGN_IN"

    def on_success(self, result: Dict[str, Any]) -> None:
        verb = "signed in" if self.is_sign_in else "signed up"
        self.notifier.show("Success", f"You have successfully {verb}.")
        self.navigator.push("/")

    def on_failure(self, result: Dict[str, Any]) -> None:
        action = "signing in" if self.is_sign_in else "signing up"
        self.notifier.error(f"Error {action}", result.get("error") or "An error occurred.")
