from sqlalchemy import select, func, exists

from .models import BookDefinition, BookItem, User, Loan


def _not_deleted():
    return BookItem.deleted.is_(False)


class BookDefinitionRepository:
    def __init__(self, session):
        self.session = session

    def get(self, definition_id):
        return self.session.get(BookDefinition, definition_id)

    def find_by_isbn(self, isbn):
        q = select(BookDefinition).where(BookDefinition.isbn == isbn)
        return self.session.execute(q).scalar_one_or_none()

    def list_all(self):
        q = select(BookDefinition).order_by(BookDefinition.id)
        return self.session.execute(q).scalars().all()

    def exists_by_isbn(self, isbn):
        q = select(exists().where(BookDefinition.isbn == isbn))
        return self.session.execute(q).scalar()

    def add(self, definition):
        self.session.add(definition)
        self.session.flush()
        return definition

    def delete(self, definition):
        self.session.delete(definition)
        self.session.flush()


class BookItemRepository:
    """
    Default lookups skip soft-deleted items. The unfiltered paths
    (find_by_barcode_including_deleted, list_deleted, exists_by_barcode) see
    every row and are meant for restore/admin use.
    """

    def __init__(self, session):
        self.session = session

    # default (non-deleted) paths

    def get(self, item_id):
        q = select(BookItem).where((BookItem.id == item_id) & _not_deleted())
        return self.session.execute(q).scalar_one_or_none()

    def find_by_barcode(self, barcode):
        q = select(BookItem).where((BookItem.barcode == barcode) & _not_deleted())
        return self.session.execute(q).scalar_one_or_none()

    def list_all(self):
        q = select(BookItem).where(_not_deleted()).order_by(BookItem.id)
        return self.session.execute(q).scalars().all()

    def list_by_definition(self, definition_id):
        q = (
            select(BookItem)
            .where((BookItem.book_definition_id == definition_id) & _not_deleted())
            .order_by(BookItem.id)
        )
        return self.session.execute(q).scalars().all()

    def list_by_definition_and_status(self, definition_id, status):
        q = (
            select(BookItem)
            .where(
                (BookItem.book_definition_id == definition_id)
                & (BookItem.status == status)
                & _not_deleted()
            )
            .order_by(BookItem.id)
        )
        return self.session.execute(q).scalars().all()

    def count_by_definition(self, definition_id):
        q = select(func.count(BookItem.id)).where(
            (BookItem.book_definition_id == definition_id) & _not_deleted()
        )
        return self.session.execute(q).scalar_one()

    def count_by_definition_and_status(self, definition_id, status):
        q = select(func.count(BookItem.id)).where(
            (BookItem.book_definition_id == definition_id)
            & (BookItem.status == status)
            & _not_deleted()
        )
        return self.session.execute(q).scalar_one()

    # unfiltered paths

    def find_by_barcode_including_deleted(self, barcode):
        q = select(BookItem).where(BookItem.barcode == barcode)
        return self.session.execute(q).scalar_one_or_none()

    def list_deleted(self):
        q = select(BookItem).where(BookItem.deleted.is_(True)).order_by(BookItem.id)
        return self.session.execute(q).scalars().all()

    def exists_by_barcode(self, barcode):
        q = select(exists().where(BookItem.barcode == barcode))
        return self.session.execute(q).scalar()

    def add(self, item):
        self.session.add(item)
        self.session.flush()
        return item


class UserRepository:
    def __init__(self, session):
        self.session = session

    def get(self, user_id):
        return self.session.get(User, user_id)

    def find_by_username(self, username):
        q = select(User).where(User.username == username)
        return self.session.execute(q).scalar_one_or_none()

    def find_by_email(self, email):
        q = select(User).where(User.email == email)
        return self.session.execute(q).scalar_one_or_none()

    def list_all(self):
        return self.session.execute(select(User).order_by(User.id)).scalars().all()

    def exists_by_username(self, username):
        q = select(exists().where(User.username == username))
        return self.session.execute(q).scalar()

    def exists_by_email(self, email):
        q = select(exists().where(User.email == email))
        return self.session.execute(q).scalar()

    def add(self, user):
        self.session.add(user)
        self.session.flush()
        return user

    def delete(self, user):
        self.session.delete(user)
        self.session.flush()


class LoanRepository:
    """
    Loan ledger queries. Anything time-relative takes ``now`` from the
    caller; nothing here reads the clock.
    """

    def __init__(self, session):
        self.session = session

    def _all(self, *criteria, order_by=None):
        q = select(Loan)
        if criteria:
            q = q.where(*criteria)
        q = q.order_by(order_by if order_by is not None else Loan.id)
        return self.session.execute(q).scalars().all()

    def _count(self, *criteria):
        q = select(func.count(Loan.id)).where(*criteria)
        return self.session.execute(q).scalar_one()

    def _exists(self, *criteria):
        return self.session.execute(select(exists().where(*criteria))).scalar()

    def get(self, loan_id):
        return self.session.get(Loan, loan_id)

    def list_all(self):
        return self._all()

    def list_by_user(self, user_id):
        return self._all(Loan.user_id == user_id)

    # active (returned_at IS NULL)

    def list_active(self):
        return self._all(Loan.returned_at.is_(None))

    def list_active_by_user(self, user_id):
        return self._all(Loan.user_id == user_id, Loan.returned_at.is_(None))

    def find_active_by_item(self, item_id):
        q = select(Loan).where(
            (Loan.book_item_id == item_id) & Loan.returned_at.is_(None)
        )
        return self.session.execute(q).scalar_one_or_none()

    def exists_active_by_item(self, item_id):
        return self._exists(Loan.book_item_id == item_id, Loan.returned_at.is_(None))

    def count_active_by_user(self, user_id):
        return self._count(Loan.user_id == user_id, Loan.returned_at.is_(None))

    # returned

    def list_returned_by_user(self, user_id):
        return self._all(Loan.user_id == user_id, Loan.returned_at.is_not(None))

    # overdue

    def list_overdue(self, now):
        return self._all(Loan.returned_at.is_(None), Loan.limit_at < now)

    def list_overdue_by_user(self, user_id, now):
        return self._all(
            Loan.user_id == user_id, Loan.returned_at.is_(None), Loan.limit_at < now
        )

    def count_overdue(self, now):
        return self._count(Loan.returned_at.is_(None), Loan.limit_at < now)

    def has_overdue(self, user_id, now):
        return self._exists(
            Loan.user_id == user_id, Loan.returned_at.is_(None), Loan.limit_at < now
        )

    # due windows and history

    def list_due_between(self, start, end, user_id=None):
        criteria = [Loan.returned_at.is_(None), Loan.limit_at.between(start, end)]
        if user_id is not None:
            criteria.append(Loan.user_id == user_id)
        return self._all(*criteria, order_by=Loan.limit_at)

    def list_created_between(self, start, end):
        return self._all(Loan.created_at.between(start, end), order_by=Loan.created_at)

    def count_by_user(self, user_id):
        return self._count(Loan.user_id == user_id)

    def history_by_item(self, item_id):
        q = (
            select(Loan)
            .where(Loan.book_item_id == item_id)
            .order_by(Loan.created_at.desc(), Loan.id.desc())
        )
        return self.session.execute(q).scalars().all()

    def add(self, loan):
        self.session.add(loan)
        self.session.flush()
        return loan
