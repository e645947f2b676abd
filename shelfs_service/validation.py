"""
Request payload checks.

Every ``validate_*`` function takes the decoded JSON body (or query values),
collects all field problems at once and raises ValidationError, or returns a
dict of cleaned values ready to hand to a service.
"""

import re
from datetime import datetime

from .errors import ValidationError
from .models import BookStatus

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _text(data, field, errors, required=False, max_length=None, label=None):
    label = label or field.replace("_", " ").capitalize()
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors[field] = f"{label} is required"
        return None
    if not isinstance(value, str):
        errors[field] = f"{label} must be a string"
        return None
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        errors[field] = f"{label} must be at most {max_length} characters"
    return value


def _integer(data, field, errors, required=True, minimum=None, label=None):
    label = label or field.replace("_", " ").capitalize()
    value = data.get(field)
    if value is None or value == "":
        if required:
            errors[field] = f"{label} is required"
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        errors[field] = f"{label} must be an integer"
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        errors[field] = f"{label} must be an integer"
        return None
    if minimum is not None and value < minimum:
        errors[field] = f"{label} must be at least {minimum}"
    return value


def _secret(data, field, errors, required=False, max_length=None, label=None):
    """Like _text, but the value is returned unstripped."""
    label = label or field.replace("_", " ").capitalize()
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors[field] = f"{label} is required"
        return None
    if not isinstance(value, str):
        errors[field] = f"{label} must be a string"
        return None
    if max_length is not None and len(value) > max_length:
        errors[field] = f"{label} must be at most {max_length} characters"
    return value


def _body(data):
    if not isinstance(data, dict):
        raise ValidationError({"body": "Request body must be a JSON object"})
    return data


def parse_datetime(value, field="limit_at"):
    """
    Parse an ISO-8601 string into a naive local datetime. Offsets are
    converted to local time before the tzinfo is dropped.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError({field: "Must be an ISO-8601 datetime"})
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_status(value):
    if isinstance(value, BookStatus):
        return value
    try:
        return BookStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in BookStatus)
        raise ValidationError({"status": f"Status must be one of: {allowed}"})


def validate_book_definition(data):
    data = _body(data)
    errors = {}
    cleaned = {
        "isbn": _text(data, "isbn", errors, required=True, max_length=20, label="ISBN"),
        "title": _text(data, "title", errors, required=True, max_length=255),
        "author": _text(data, "author", errors, max_length=100),
        "publisher": _text(data, "publisher", errors, max_length=100),
    }
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_book_item(data):
    data = _body(data)
    errors = {}
    cleaned = {
        "barcode": _text(data, "barcode", errors, required=True, max_length=50),
        "book_definition_id": _integer(
            data, "book_definition_id", errors, label="Book definition ID"
        ),
    }
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_user(data, partial=False):
    """
    ``partial`` is used for updates, where the password may be left out
    to keep the current one.
    """
    data = _body(data)
    errors = {}
    cleaned = {
        "username": _text(data, "username", errors, required=True, max_length=50),
        "email": _text(data, "email", errors, required=True, max_length=100),
        "password": _secret(data, "password", errors, required=not partial, max_length=128),
    }
    if cleaned["email"] and "email" not in errors and not EMAIL_RE.match(cleaned["email"]):
        errors["email"] = "Email must be a well-formed email address"
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_credentials(data):
    data = _body(data)
    errors = {}
    cleaned = {
        "username": _text(data, "username", errors, required=True, max_length=50),
        "password": _secret(data, "password", errors, required=True, max_length=128),
    }
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_loan(data):
    data = _body(data)
    errors = {}
    cleaned = {
        "user_id": _integer(data, "user_id", errors, label="User ID"),
        "book_item_id": _integer(data, "book_item_id", errors, label="Book item ID"),
        "limit_at": None,
    }
    if data.get("limit_at") not in (None, ""):
        try:
            cleaned["limit_at"] = parse_datetime(data["limit_at"])
        except ValidationError as exc:
            errors.update(exc.errors)
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_extension_days(value):
    errors = {}
    days = _integer({"days": value}, "days", errors, minimum=1)
    if errors:
        raise ValidationError(errors)
    return days


def validate_window_days(value, default):
    if value is None:
        return default
    errors = {}
    days = _integer({"days": value}, "days", errors, minimum=0)
    if errors:
        raise ValidationError(errors)
    return days
