from datetime import datetime


def _iso(value):
    return value.isoformat() if value else None


def definition_to_dict(definition):
    return {
        "id": definition.id,
        "isbn": definition.isbn,
        "title": definition.title,
        "author": definition.author,
        "publisher": definition.publisher,
    }


def item_to_dict(item):
    return {
        "id": item.id,
        "barcode": item.barcode,
        "book_definition": definition_to_dict(item.book_definition),
        "status": item.status.value,
        "available": item.is_available,
        "acquisition_date": _iso(item.acquisition_date),
        "deleted": item.deleted,
        "deleted_at": _iso(item.deleted_at),
    }


def user_to_dict(user):
    # never expose the password hash
    return {"id": user.id, "username": user.username, "email": user.email}


def loan_to_dict(loan, now=None):
    now = now or datetime.now()
    item = loan.book_item
    return {
        "id": loan.id,
        "user_id": loan.user_id,
        "username": loan.user.username,
        "book_item_id": item.id,
        "book_item_barcode": item.barcode,
        "book_title": item.book_definition.title,
        "created_at": _iso(loan.created_at),
        "limit_at": _iso(loan.limit_at),
        "returned_at": _iso(loan.returned_at),
        "active": loan.is_active,
        "overdue": loan.is_overdue(now),
    }
