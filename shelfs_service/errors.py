"""
Exceptions raised by the service layer.

Each class carries the HTTP status the API answers with, so the error
handlers in app.py only have to render ``to_dict()``.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"status": self.status_code, "error": self.message}


# ----------------- not found -----------------

class ResourceNotFound(LibraryError):
    status_code = 404

    def __init__(self, entity, field=None, value=None, message=None):
        self.entity = entity
        self.field = field
        self.value = value
        if message is None:
            message = f"{entity} not found with {field}: '{value}'"
        super().__init__(message)


class NoActiveLoanForItem(ResourceNotFound):
    def __init__(self, barcode):
        super().__init__(
            "Loan",
            "barcode",
            barcode,
            message=f"No active loan found for book item with barcode: {barcode}",
        )


# ----------------- conflicts -----------------

class ConflictError(LibraryError):
    status_code = 409


class DuplicateResource(ConflictError):
    def __init__(self, entity, field, value):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field} '{value}' already exists")


class BookItemInLoan(ConflictError):
    def __init__(self, barcode=None, item_id=None):
        self.barcode = barcode
        self.item_id = item_id
        if barcode is not None:
            message = (
                f"Cannot delete book item with barcode '{barcode}' "
                "because it is currently borrowed"
            )
        else:
            message = (
                f"Cannot delete book item with ID '{item_id}' "
                "because it is currently borrowed"
            )
        super().__init__(message)


class UserHasActiveLoans(ConflictError):
    def __init__(self, user_id, count):
        self.user_id = user_id
        self.count = count
        super().__init__(
            f"Cannot delete user with ID '{user_id}' because they have "
            f"{count} active loan(s)"
        )


# ----------------- business rules -----------------

class InvalidStateError(LibraryError):
    status_code = 422


class LoanLimitReached(InvalidStateError):
    def __init__(self, limit):
        self.limit = limit
        super().__init__(
            f"User has reached the maximum number of active loans ({limit})"
        )


class OverdueLoansLockout(InvalidStateError):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(
            "User has overdue loans and cannot borrow until they are returned"
        )


class BookItemNotAvailable(InvalidStateError):
    def __init__(self, barcode, status):
        self.barcode = barcode
        self.current_status = status
        super().__init__(
            f"Book item with barcode '{barcode}' is not available. "
            f"Current status: {status.value}"
        )


class BookItemAlreadyBorrowed(InvalidStateError):
    def __init__(self, barcode):
        self.barcode = barcode
        super().__init__(f"Book item with barcode '{barcode}' is already borrowed")


class LoanAlreadyReturned(InvalidStateError):
    def __init__(self, loan_id):
        self.loan_id = loan_id
        super().__init__(f"Loan with ID {loan_id} has already been returned")


class LoanNotActive(InvalidStateError):
    def __init__(self, loan_id):
        self.loan_id = loan_id
        super().__init__("Cannot extend a returned loan")


class BookItemNotDeleted(InvalidStateError):
    def __init__(self, barcode):
        self.barcode = barcode
        super().__init__(f"Book item with barcode '{barcode}' is not deleted")


# ----------------- input -----------------

class ValidationError(LibraryError):
    status_code = 400

    def __init__(self, errors):
        self.errors = dict(errors)
        super().__init__("Validation failed")

    def to_dict(self):
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload
