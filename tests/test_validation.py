import pytest

from campus_library.validation import (
    BOOK_FORM,
    SIGN_UP_FORM,
    BookSchema,
    SignInSchema,
    SignUpSchema,
    ValidationFailed,
    get_form,
    render_form,
    validate_payload,
)


def test_sign_in_requires_valid_email():
    with pytest.raises(ValidationFailed) as exc:
        validate_payload(SignInSchema, {"email": "not-an-email", "password": "long-enough"})
    assert list(exc.value.errors) == ["email"]


@pytest.mark.parametrize("length, ok", [(7, False), (8, True)])
def test_sign_in_password_length(length, ok):
    values = {"email": "reader@university.edu", "password": "x" * length}
    if ok:
        assert validate_payload(SignInSchema, values).password == "x" * length
    else:
        with pytest.raises(ValidationFailed) as exc:
            validate_payload(SignInSchema, values)
        assert "password" in exc.value.errors


@pytest.mark.parametrize("length, ok", [(7, False), (8, True)])
def test_sign_up_password_length(user_values, length, ok):
    user_values["password"] = "p" * length
    errors = SIGN_UP_FORM.field_errors(user_values)
    assert ("password" in errors) is not ok


@pytest.mark.parametrize("name, ok", [("Al", False), ("Ali", True)])
def test_sign_up_full_name_length(user_values, name, ok):
    user_values["fullName"] = name
    errors = SIGN_UP_FORM.field_errors(user_values)
    assert ("full_name" in errors) is not ok


def test_sign_up_coerces_university_id(user_values):
    data = validate_payload(SignUpSchema, user_values)
    assert data.university_id == 1024


def test_sign_up_rejects_non_numeric_university_id(user_values):
    user_values["universityId"] = "abc"
    assert "university_id" in SIGN_UP_FORM.field_errors(user_values)


def test_sign_up_requires_university_card(user_values):
    user_values["universityCard"] = ""
    errors = SIGN_UP_FORM.field_errors(user_values)
    assert errors == {"university_card": ["University Card is required"]}


def test_sign_up_accepts_field_names(user_values):
    values = {
        "full_name": user_values["fullName"],
        "email": user_values["email"],
        "university_id": 7,
        "university_card": user_values["universityCard"],
        "password": user_values["password"],
    }
    assert SIGN_UP_FORM.field_errors(values) == {}


def test_book_schema_accepts_valid_book(book_values):
    book = validate_payload(BookSchema, book_values)
    assert book.total_copies == 3
    assert book.cover_color == "#1c1f40"


@pytest.mark.parametrize("rating, ok", [(0, False), (1, True), (5, True), (6, False)])
def test_book_rating_bounds(book_values, rating, ok):
    book_values["rating"] = rating
    assert ("rating" in BOOK_FORM.field_errors(book_values)) is not ok


@pytest.mark.parametrize("copies, ok", [(0, False), (1, True), (10000, True), (10001, False)])
def test_book_total_copies_bounds(book_values, copies, ok):
    book_values["totalCopies"] = copies
    assert ("total_copies" in BOOK_FORM.field_errors(book_values)) is not ok


def test_book_missing_fields_are_reported_per_field(book_values):
    del book_values["title"]
    book_values["coverUrl"] = ""
    book_values["coverColor"] = "blue"
    errors = BOOK_FORM.field_errors(book_values)
    assert set(errors) == {"title", "cover_url", "cover_color"}


def test_render_form_lists_fields_with_constraints():
    rendered = render_form(BOOK_FORM)
    assert rendered["submitLabel"] == "Add Book to Library"
    by_name = {field["name"]: field for field in rendered["fields"]}
    assert by_name["rating"]["constraints"] == {"min": 1, "max": 5}
    assert by_name["totalCopies"]["constraints"] == {"min": 1, "max": 10000}
    assert by_name["coverUrl"]["kind"] == "image"
    assert by_name["coverUrl"]["folder"] == "books/covers"
    assert by_name["videoUrl"]["accept"] == "video/*"
    assert by_name["summary"]["rows"] == 10


def test_get_form_by_name():
    assert get_form("sign-in").schema is SignInSchema
    assert get_form("missing") is None
