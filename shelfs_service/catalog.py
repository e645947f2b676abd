import logging
from datetime import datetime

from .database import transactional
from .errors import (
    ResourceNotFound,
    DuplicateResource,
    BookItemInLoan,
    BookItemNotDeleted,
)
from .models import BookDefinition, BookItem, BookStatus

logger = logging.getLogger(__name__)


class BookService:
    """
    Catalog management: book definitions (titles) and book items (copies).
    """

    def __init__(self, session, definitions, items, loans, clock=datetime.now):
        self.session = session
        self.definitions = definitions
        self.items = items
        self.loans = loans
        self.clock = clock

    # ----------------- definitions -----------------

    def list_definitions(self):
        return self.definitions.list_all()

    def get_definition(self, definition_id):
        definition = self.definitions.get(definition_id)
        if definition is None:
            raise ResourceNotFound("BookDefinition", "id", definition_id)
        return definition

    def get_definition_by_isbn(self, isbn):
        definition = self.definitions.find_by_isbn(isbn)
        if definition is None:
            raise ResourceNotFound("BookDefinition", "isbn", isbn)
        return definition

    @transactional
    def create_definition(self, isbn, title, author=None, publisher=None):
        if self.definitions.exists_by_isbn(isbn):
            raise DuplicateResource("BookDefinition", "isbn", isbn)

        definition = BookDefinition(
            isbn=isbn, title=title, author=author, publisher=publisher
        )
        self.definitions.add(definition)
        logger.info("Created book definition %s (isbn=%s)", definition.id, isbn)
        return definition

    @transactional
    def update_definition(self, definition_id, isbn, title, author=None, publisher=None):
        definition = self.get_definition(definition_id)
        other = self.definitions.find_by_isbn(isbn)
        if other is not None and other.id != definition.id:
            raise DuplicateResource("BookDefinition", "isbn", isbn)

        definition.isbn = isbn
        definition.title = title
        definition.author = author
        definition.publisher = publisher
        self.session.flush()
        logger.info("Updated book definition %s", definition_id)
        return definition

    @transactional
    def delete_definition(self, definition_id):
        # items still pointing here make the store reject the delete
        definition = self.get_definition(definition_id)
        self.definitions.delete(definition)
        logger.info("Deleted book definition %s", definition_id)

    # ----------------- items -----------------

    def list_items(self):
        return self.items.list_all()

    def get_item(self, item_id):
        item = self.items.get(item_id)
        if item is None:
            raise ResourceNotFound("BookItem", "id", item_id)
        return item

    def get_item_by_barcode(self, barcode):
        item = self.items.find_by_barcode(barcode)
        if item is None:
            raise ResourceNotFound("BookItem", "barcode", barcode)
        return item

    def list_items_for_definition(self, definition_id):
        self.get_definition(definition_id)
        return self.items.list_by_definition(definition_id)

    def list_available_items_for_definition(self, definition_id):
        self.get_definition(definition_id)
        return self.items.list_by_definition_and_status(
            definition_id, BookStatus.AVAILABLE
        )

    def count_items_for_definition(self, definition_id):
        self.get_definition(definition_id)
        return self.items.count_by_definition(definition_id)

    def count_available_items_for_definition(self, definition_id):
        self.get_definition(definition_id)
        return self.items.count_by_definition_and_status(
            definition_id, BookStatus.AVAILABLE
        )

    def list_deleted_items(self):
        return self.items.list_deleted()

    @transactional
    def create_item(self, barcode, book_definition_id):
        definition = self.get_definition(book_definition_id)
        # soft-deleted rows still own their barcode
        if self.items.exists_by_barcode(barcode):
            raise DuplicateResource("BookItem", "barcode", barcode)

        item = BookItem(
            barcode=barcode,
            book_definition=definition,
            status=BookStatus.AVAILABLE,
            acquisition_date=self.clock(),
            deleted=False,
        )
        self.items.add(item)
        logger.info("Created book item %s (barcode=%s)", item.id, barcode)
        return item

    @transactional
    def update_item_status(self, barcode, status):
        """
        Manual status override. Only the enum value is checked; loan
        bookkeeping is deliberately not consulted.
        """
        item = self.get_item_by_barcode(barcode)
        previous = item.status
        item.status = status
        self.session.flush()
        logger.info(
            "Book item %s status %s -> %s", barcode, previous.value, status.value
        )
        return item

    @transactional
    def soft_delete_item_by_barcode(self, barcode):
        item = self.get_item_by_barcode(barcode)
        if self.loans.exists_active_by_item(item.id):
            raise BookItemInLoan(barcode=barcode)
        self._soft_delete(item)

    @transactional
    def soft_delete_item_by_id(self, item_id):
        item = self.get_item(item_id)
        if self.loans.exists_active_by_item(item.id):
            raise BookItemInLoan(item_id=item_id)
        self._soft_delete(item)

    def _soft_delete(self, item):
        item.soft_delete(self.clock())
        self.session.flush()
        logger.info("Soft-deleted book item %s", item.barcode)

    @transactional
    def restore_item(self, barcode):
        item = self.items.find_by_barcode_including_deleted(barcode)
        if item is None:
            raise ResourceNotFound("BookItem", "barcode", barcode)
        if not item.deleted:
            raise BookItemNotDeleted(barcode)
        item.restore()
        self.session.flush()
        logger.info("Restored book item %s", barcode)
        return item
