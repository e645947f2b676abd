import enum
from datetime import datetime

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    text,
)
from werkzeug.security import generate_password_hash, check_password_hash

Base = declarative_base()


class BookStatus(enum.Enum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"
    LOST = "LOST"


class BookDefinition(Base):
    """
    A catalog title, identified by ISBN. Physical copies live in BookItem.
    """
    __tablename__ = "book_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(20), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    author = Column(String(100))
    publisher = Column(String(100))

    items = relationship("BookItem", back_populates="book_definition", passive_deletes="all")


class BookItem(Base):
    """
    One barcoded physical copy of a BookDefinition.

    Soft-deleted rows stay in the table with deleted=True. Repositories
    filter them out explicitly on every default lookup.
    """
    __tablename__ = "book_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    barcode = Column(String(50), unique=True, nullable=False)
    book_definition_id = Column(
        Integer, ForeignKey("book_definitions.id"), nullable=False
    )
    status = Column(
        Enum(BookStatus, name="book_status"),
        nullable=False,
        default=BookStatus.AVAILABLE,
    )
    acquisition_date = Column(DateTime, nullable=False, default=datetime.now)
    deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime)

    book_definition = relationship("BookDefinition", back_populates="items")

    def soft_delete(self, when=None):
        self.deleted = True
        self.deleted_at = when or datetime.now()

    def restore(self):
        self.deleted = False
        self.deleted_at = None

    @property
    def is_available(self):
        return not self.deleted and self.status == BookStatus.AVAILABLE


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password = Column(String(255), nullable=False)

    loans = relationship("Loan", back_populates="user", cascade="all, delete-orphan")

    def set_password(self, raw_password):
        self.password = generate_password_hash(raw_password)

    def check_password(self, raw_password):
        return check_password_hash(self.password, raw_password)


class Loan(Base):
    """
    A patron borrowing one book item. returned_at stays NULL while active.
    """
    __tablename__ = "loans"
    __table_args__ = (
        # at most one active loan per item, enforced by the store
        Index(
            "ux_loans_active_book_item",
            "book_item_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_item_id = Column(Integer, ForeignKey("book_items.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    limit_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime)

    user = relationship("User", back_populates="loans")
    book_item = relationship("BookItem")

    @property
    def is_active(self):
        return self.returned_at is None

    def is_overdue(self, now=None):
        now = now or datetime.now()
        return self.is_active and now > self.limit_at
