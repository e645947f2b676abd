"""
Loan lifecycle: borrowing, returning and extending, plus the read-only
ledger queries (active, returned, overdue, due soon, history).

Borrowing eligibility is checked in a fixed order and each failure raises
its own exception:

1. the user exists
2. the book item exists (soft-deleted items do not)
3. the user holds fewer than ``max_active_loans`` active loans
4. none of the user's active loans is overdue
5. the item status is AVAILABLE
6. no active loan already references the item

Checks 5 and 6 overlap on purpose. Item status can be overridden by hand,
so it may disagree with the loan ledger, and both are consulted before an
item is lent out.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from .database import transactional
from .errors import (
    ResourceNotFound,
    NoActiveLoanForItem,
    LoanLimitReached,
    OverdueLoansLockout,
    BookItemNotAvailable,
    BookItemAlreadyBorrowed,
    LoanAlreadyReturned,
    LoanNotActive,
    ValidationError,
)
from .models import BookStatus, Loan

logger = logging.getLogger(__name__)

MAX_ACTIVE_LOANS_PER_USER = 5
DEFAULT_LOAN_DURATION_DAYS = 14
DEFAULT_DUE_SOON_DAYS = 3


class LoanService:
    def __init__(
        self,
        session,
        loans,
        users,
        items,
        clock=datetime.now,
        max_active_loans=MAX_ACTIVE_LOANS_PER_USER,
        default_loan_days=DEFAULT_LOAN_DURATION_DAYS,
    ):
        self.session = session
        self.loans = loans
        self.users = users
        self.items = items
        self.clock = clock
        self.max_active_loans = max_active_loans
        self.default_loan_days = default_loan_days

    # ----------------- lifecycle -----------------

    @transactional
    def create_loan(self, user_id, book_item_id, limit_at=None):
        """
        Lend a book item to a user. ``limit_at`` defaults to now plus
        ``default_loan_days`` calendar days.
        """
        user = self._find_user(user_id)
        item = self._find_item(book_item_id)
        now = self.clock()

        self._validate_user_can_borrow(user, now)
        self._validate_item_available(item)

        if limit_at is None:
            limit_at = now + timedelta(days=self.default_loan_days)

        barcode = item.barcode
        item.status = BookStatus.BORROWED
        loan = Loan(user=user, book_item=item, created_at=now, limit_at=limit_at)
        try:
            self.loans.add(loan)
        except IntegrityError as exc:
            # another transaction committed an active loan for this item first
            raise BookItemAlreadyBorrowed(barcode) from exc

        logger.info(
            "Loan %s created: user=%s item=%s due=%s",
            loan.id,
            user.id,
            item.barcode,
            limit_at.isoformat(),
        )
        return loan

    @transactional
    def return_loan(self, loan_id):
        loan = self._find_loan(loan_id)
        return self._close(loan)

    @transactional
    def return_loan_by_barcode(self, barcode):
        item = self.items.find_by_barcode(barcode)
        if item is None:
            raise ResourceNotFound("BookItem", "barcode", barcode)

        loan = self.loans.find_active_by_item(item.id)
        if loan is None:
            raise NoActiveLoanForItem(barcode)
        return self._close(loan)

    def _close(self, loan):
        if not loan.is_active:
            raise LoanAlreadyReturned(loan.id)

        loan.returned_at = self.clock()
        loan.book_item.status = BookStatus.AVAILABLE
        self.session.flush()
        logger.info("Loan %s returned (item=%s)", loan.id, loan.book_item.barcode)
        return loan

    @transactional
    def extend_loan(self, loan_id, days=None):
        """Push the due date back by ``days`` calendar days."""
        if days is None:
            days = self.default_loan_days
        if days < 1:
            raise ValidationError({"days": "Days must be at least 1"})
        loan = self._find_loan(loan_id)
        if not loan.is_active:
            raise LoanNotActive(loan.id)

        loan.limit_at = loan.limit_at + timedelta(days=days)
        self.session.flush()
        logger.info("Loan %s extended by %s days to %s", loan.id, days, loan.limit_at)
        return loan

    # ----------------- retrieval -----------------

    def list_loans(self):
        return self.loans.list_all()

    def get_loan(self, loan_id):
        return self._find_loan(loan_id)

    def list_active_loans(self):
        return self.loans.list_active()

    def list_loans_for_user(self, user_id):
        self._find_user(user_id)
        return self.loans.list_by_user(user_id)

    def list_active_loans_for_user(self, user_id):
        self._find_user(user_id)
        return self.loans.list_active_by_user(user_id)

    def list_loan_history_for_user(self, user_id):
        """Returned loans only."""
        self._find_user(user_id)
        return self.loans.list_returned_by_user(user_id)

    def list_loans_for_user_email(self, email):
        user = self._find_user_by_email(email)
        return self.loans.list_by_user(user.id)

    def list_active_loans_for_user_email(self, email):
        user = self._find_user_by_email(email)
        return self.loans.list_active_by_user(user.id)

    def list_loan_history_for_item(self, book_item_id):
        self._find_item(book_item_id)
        return self.loans.history_by_item(book_item_id)

    def list_loans_created_between(self, start, end):
        return self.loans.list_created_between(start, end)

    # ----------------- overdue / due soon -----------------

    def list_overdue_loans(self):
        return self.loans.list_overdue(self.clock())

    def list_overdue_loans_for_user(self, user_id):
        self._find_user(user_id)
        return self.loans.list_overdue_by_user(user_id, self.clock())

    def user_has_overdue_loans(self, user_id):
        self._find_user(user_id)
        return self.loans.has_overdue(user_id, self.clock())

    def count_overdue_loans(self):
        return self.loans.count_overdue(self.clock())

    def list_loans_due_soon(self, days=DEFAULT_DUE_SOON_DAYS):
        now = self.clock()
        return self.loans.list_due_between(now, now + timedelta(days=days))

    def list_loans_due_soon_for_user(self, user_id, days=DEFAULT_DUE_SOON_DAYS):
        self._find_user(user_id)
        now = self.clock()
        return self.loans.list_due_between(
            now, now + timedelta(days=days), user_id=user_id
        )

    # ----------------- statistics -----------------

    def count_active_loans_for_user(self, user_id):
        self._find_user(user_id)
        return self.loans.count_active_by_user(user_id)

    def count_total_loans_for_user(self, user_id):
        self._find_user(user_id)
        return self.loans.count_by_user(user_id)

    def is_item_borrowed(self, book_item_id):
        self._find_item(book_item_id)
        return self.loans.exists_active_by_item(book_item_id)

    # ----------------- validation -----------------

    def _validate_user_can_borrow(self, user, now):
        active = self.loans.count_active_by_user(user.id)
        if active >= self.max_active_loans:
            raise LoanLimitReached(self.max_active_loans)

        if self.loans.has_overdue(user.id, now):
            raise OverdueLoansLockout(user.id)

    def _validate_item_available(self, item):
        if item.status != BookStatus.AVAILABLE:
            raise BookItemNotAvailable(item.barcode, item.status)

        if self.loans.exists_active_by_item(item.id):
            raise BookItemAlreadyBorrowed(item.barcode)

    # ----------------- finders -----------------

    def _find_user(self, user_id):
        user = self.users.get(user_id)
        if user is None:
            raise ResourceNotFound("User", "id", user_id)
        return user

    def _find_user_by_email(self, email):
        user = self.users.find_by_email(email)
        if user is None:
            raise ResourceNotFound("User", "email", email)
        return user

    def _find_item(self, book_item_id):
        item = self.items.get(book_item_id)
        if item is None:
            raise ResourceNotFound("BookItem", "id", book_item_id)
        return item

    def _find_loan(self, loan_id):
        loan = self.loans.get(loan_id)
        if loan is None:
            raise ResourceNotFound("Loan", "id", loan_id)
        return loan
