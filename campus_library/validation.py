"""Validation schemas and form descriptors.

The pydantic models below are the single source of truth for field
constraints. Each form is also described by a list of ``FieldDescriptor``
objects, which a generic renderer turns into input specs for the UI and a
generic validator uses to attach errors to individual fields.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

MIN_FULLNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8
HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


class ValidationFailed(ValueError):
    """Raised when submitted form values break one or more field rules."""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid value for: {fields}")


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignInSchema(_Schema):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class SignUpSchema(_Schema):
    full_name: str = Field(..., alias="fullName", min_length=MIN_FULLNAME_LENGTH)
    email: EmailStr
    # Form inputs arrive as strings; lax mode coerces "1024" to 1024
    university_id: int = Field(..., alias="universityId")
    university_card: str = Field(..., alias="universityCard")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("university_card")
    @classmethod
    def _card_required(cls, value: str) -> str:
        if not value:
            raise ValueError("University Card is required")
        return value


class BookSchema(_Schema):
    title: str = Field(..., min_length=2, max_length=100)
    author: str = Field(..., min_length=2, max_length=100)
    genre: str = Field(..., min_length=2, max_length=50)
    rating: int = Field(..., ge=1, le=5)
    total_copies: int = Field(..., alias="totalCopies", ge=1, le=10000)
    cover_url: str = Field(..., alias="coverUrl", min_length=1)
    cover_color: str = Field(..., alias="coverColor")
    description: str = Field(..., min_length=10, max_length=1000)
    video_url: str = Field(..., alias="videoUrl", min_length=1)
    summary: str = Field(..., min_length=10)

    @field_validator("cover_color")
    @classmethod
    def _hex_color(cls, value: str) -> str:
        if not HEX_COLOR.match(value):
            raise ValueError("Cover color must be a hex color like #1c1f40")
        return value.lower()


def collect_errors(schema: Type[BaseModel], exc: ValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by field name (not alias)."""
    name_by_alias = {(info.alias or name): name for name, info in schema.model_fields.items()}
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        key = str(err["loc"][0]) if err["loc"] else "__root__"
        key = name_by_alias.get(key, key)
        message = err["msg"]
        # "Value error, University Card is required" -> "University Card is required"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(key, []).append(message)
    return errors


def validate_payload(schema: Type[BaseModel], values: Dict[str, Any]) -> BaseModel:
    try:
        return schema.model_validate(values)
    except ValidationError as exc:
        raise ValidationFailed(collect_errors(schema, exc)) from exc


# ------------------------- Form descriptors ------------------------- #
class FieldKind(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PASSWORD = "password"
    NUMBER = "number"
    TEXTAREA = "textarea"
    IMAGE = "image"
    VIDEO = "video"
    COLOR = "color"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind
    label: str
    placeholder: str = ""
    hint: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_upload(self) -> bool:
        return self.kind in (FieldKind.IMAGE, FieldKind.VIDEO)


@dataclass(frozen=True)
class FormDefinition:
    name: str
    schema: Type[BaseModel]
    fields: List[FieldDescriptor]
    submit_label: str = "Submit"

    def descriptor(self, name: str) -> FieldDescriptor:
        for item in self.fields:
            if item.name == name:
                return item
        raise LookupError(f"Form {self.name} has no field {name}.")

    def validate(self, values: Dict[str, Any]) -> BaseModel:
        return validate_payload(self.schema, values)

    def field_errors(self, values: Dict[str, Any]) -> Dict[str, List[str]]:
        """Errors keyed by field; empty when the values can be submitted."""
        try:
            self.validate(values)
        except ValidationFailed as exc:
            return exc.errors
        return {}


def _constraints(info) -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for item in info.metadata:
        for attr, key in (("min_length", "minLength"), ("max_length", "maxLength"), ("ge", "min"), ("le", "max")):
            value = getattr(item, attr, None)
            if value is not None:
                found[key] = value
    return found


def render_form(form: FormDefinition) -> Dict[str, Any]:
    """Turn a form definition into a JSON-able description for the UI."""
    rendered = []
    for item in form.fields:
        info = form.schema.model_fields[item.name]
        rendered.append({
            "name": info.alias or item.name,
            "kind": item.kind.value,
            "label": item.label,
            "placeholder": item.placeholder,
            "required": info.is_required(),
            "constraints": _constraints(info),
            **item.hint,
        })
    return {"name": form.name, "submitLabel": form.submit_label, "fields": rendered}


SIGN_IN_FORM = FormDefinition(
    name="sign-in",
    schema=SignInSchema,
    submit_label="Sign In",
    fields=[
        FieldDescriptor("email", FieldKind.EMAIL, "Email", "Enter your email"),
        FieldDescriptor("password", FieldKind.PASSWORD, "Password", "Enter your password"),
    ],
)

SIGN_UP_FORM = FormDefinition(
    name="sign-up",
    schema=SignUpSchema,
    submit_label="Sign Up",
    fields=[
        FieldDescriptor("full_name", FieldKind.TEXT, "Full Name", "Enter your full name"),
        FieldDescriptor("email", FieldKind.EMAIL, "Email", "Enter your email"),
        FieldDescriptor("university_id", FieldKind.NUMBER, "University ID Number", "Enter your university ID"),
        FieldDescriptor(
            "university_card", FieldKind.IMAGE, "Upload University ID Card", "Upload your ID",
            hint={"accept": "image/*", "folder": "ids", "variant": "dark"},
        ),
        FieldDescriptor("password", FieldKind.PASSWORD, "Password", "Enter your password"),
    ],
)

BOOK_FORM = FormDefinition(
    name="book",
    schema=BookSchema,
    submit_label="Add Book to Library",
    fields=[
        FieldDescriptor("title", FieldKind.TEXT, "Book Title", "Enter the Book Title"),
        FieldDescriptor("author", FieldKind.TEXT, "Author", "Enter the Author Name"),
        FieldDescriptor("genre", FieldKind.TEXT, "Book Genre", "Enter the Book Genre"),
        FieldDescriptor("rating", FieldKind.NUMBER, "Book Rating"),
        FieldDescriptor("total_copies", FieldKind.NUMBER, "Total Copies"),
        FieldDescriptor(
            "cover_url", FieldKind.IMAGE, "Book Image", "Upload a book cover",
            hint={"accept": "image/*", "folder": "books/covers", "variant": "light"},
        ),
        FieldDescriptor("cover_color", FieldKind.COLOR, "Book Color"),
        FieldDescriptor("description", FieldKind.TEXTAREA, "Book Description", "Enter the Book Description",
                        hint={"rows": 5}),
        FieldDescriptor(
            "video_url", FieldKind.VIDEO, "Book Trailer", "Upload a book trailer",
            hint={"accept": "video/*", "folder": "books/videos", "variant": "light"},
        ),
        FieldDescriptor("summary", FieldKind.TEXTAREA, "Book Summary", "Enter the Book Summary",
                        hint={"rows": 10}),
    ],
)

FORMS: Dict[str, FormDefinition] = {form.name: form for form in (SIGN_IN_FORM, SIGN_UP_FORM, BOOK_FORM)}


def get_form(name: str) -> Optional[FormDefinition]:
    return FORMS.get(name)
