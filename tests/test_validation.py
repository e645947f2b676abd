from datetime import datetime, timezone

import pytest

from shelfs_service import validation
from shelfs_service.errors import ValidationError
from shelfs_service.models import BookStatus


def test_book_definition_required_and_length():
    with pytest.raises(ValidationError) as exc:
        validation.validate_book_definition({"isbn": "9" * 21, "title": "  "})
    assert exc.value.errors == {
        "isbn": "ISBN must be at most 20 characters",
        "title": "Title is required",
    }


def test_book_definition_strips_and_keeps_optionals():
    cleaned = validation.validate_book_definition({"isbn": " 111 ", "title": "Foo"})
    assert cleaned == {"isbn": "111", "title": "Foo", "author": None, "publisher": None}


def test_user_email_format():
    with pytest.raises(ValidationError) as exc:
        validation.validate_user({"username": "ann", "email": "not-an-email", "password": "x"})
    assert "email" in exc.value.errors


def test_user_password_optional_on_update():
    cleaned = validation.validate_user({"username": "ann", "email": "a@b.io"}, partial=True)
    assert cleaned["password"] is None
    with pytest.raises(ValidationError):
        validation.validate_user({"username": "ann", "email": "a@b.io"})


def test_loan_payload():
    cleaned = validation.validate_loan(
        {"user_id": "3", "book_item_id": 4, "limit_at": "2024-02-01T12:00:00"}
    )
    assert cleaned == {
        "user_id": 3,
        "book_item_id": 4,
        "limit_at": datetime(2024, 2, 1, 12, 0),
    }

    with pytest.raises(ValidationError) as exc:
        validation.validate_loan({"user_id": True, "limit_at": "soon"})
    assert set(exc.value.errors) == {"user_id", "book_item_id", "limit_at"}


def test_aware_datetime_becomes_naive_local():
    aware = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
    parsed = validation.parse_datetime("2024-02-01T12:00:00Z")
    assert parsed.tzinfo is None
    assert parsed == aware.astimezone().replace(tzinfo=None)


def test_status_is_a_closed_set():
    assert validation.parse_status("lost") == BookStatus.LOST
    with pytest.raises(ValidationError):
        validation.parse_status("MISSING")


def test_day_counts():
    assert validation.validate_extension_days("7") == 7
    with pytest.raises(ValidationError):
        validation.validate_extension_days("0")
    assert validation.validate_window_days(None, 3) == 3
    assert validation.validate_window_days("0", 3) == 0
    with pytest.raises(ValidationError):
        validation.validate_window_days("-1", 3)


def test_body_must_be_object():
    with pytest.raises(ValidationError) as exc:
        validation.validate_book_item(None)
    assert "body" in exc.value.errors


def test_fractional_numbers_are_not_integers():
    with pytest.raises(ValidationError) as exc:
        validation.validate_loan({"user_id": 1.9, "book_item_id": 2.5})
    assert exc.value.errors == {
        "user_id": "User ID must be an integer",
        "book_item_id": "Book item ID must be an integer",
    }

    with pytest.raises(ValidationError):
        validation.validate_extension_days(1.5)
    assert validation.validate_loan({"user_id": 3.0, "book_item_id": "4"})["user_id"] == 3


def test_password_is_kept_verbatim():
    cleaned = validation.validate_user({"username": " ann ", "email": "a@b.io", "password": "  pw  "})
    assert cleaned["username"] == "ann"
    assert cleaned["password"] == "  pw  "

    with pytest.raises(ValidationError) as exc:
        validation.validate_user({"username": "ann", "email": "a@b.io", "password": "   "})
    assert exc.value.errors == {"password": "Password is required"}


def test_credentials_payload():
    assert validation.validate_credentials({"username": "ann", "password": " x "}) == {
        "username": "ann",
        "password": " x ",
    }
    with pytest.raises(ValidationError) as exc:
        validation.validate_credentials({"password": 42})
    assert set(exc.value.errors) == {"username", "password"}
