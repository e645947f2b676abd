import pytest
from sqlalchemy.exc import IntegrityError

from shelfs_service.errors import (
    ResourceNotFound,
    DuplicateResource,
    BookItemInLoan,
    BookItemNotDeleted,
)
from shelfs_service.models import BookStatus


def test_create_definition_and_item(books, clock):
    definition = books.create_definition(isbn="111", title="Foo", author="Ann")
    item = books.create_item(barcode="B1", book_definition_id=definition.id)

    assert item.status == BookStatus.AVAILABLE
    assert item.acquisition_date == clock.now
    assert not item.deleted
    assert item.book_definition.title == "Foo"
    assert books.get_definition_by_isbn("111").id == definition.id


def test_duplicate_isbn_rejected(books):
    books.create_definition(isbn="111", title="Foo")
    with pytest.raises(DuplicateResource) as exc:
        books.create_definition(isbn="111", title="Bar")
    assert exc.value.field == "isbn"


def test_update_definition_checks_isbn_owner(books):
    foo = books.create_definition(isbn="111", title="Foo")
    books.create_definition(isbn="222", title="Bar")

    with pytest.raises(DuplicateResource):
        books.update_definition(foo.id, isbn="222", title="Foo")

    updated = books.update_definition(foo.id, isbn="111", title="Foo 2nd ed.", publisher="P")
    assert updated.title == "Foo 2nd ed."
    assert updated.publisher == "P"


def test_item_for_missing_definition(books):
    with pytest.raises(ResourceNotFound) as exc:
        books.create_item(barcode="B1", book_definition_id=404)
    assert exc.value.entity == "BookDefinition"


def test_barcode_stays_taken_after_soft_delete(books, make_item):
    make_item("B1")
    books.soft_delete_item_by_barcode("B1")
    definition = books.get_definition_by_isbn("111")

    with pytest.raises(DuplicateResource):
        books.create_item(barcode="B1", book_definition_id=definition.id)


def test_definition_with_items_cannot_be_deleted(books, make_item):
    make_item("B1")
    definition = books.get_definition_by_isbn("111")

    with pytest.raises(IntegrityError):
        books.delete_definition(definition.id)

    assert books.get_definition(definition.id).isbn == "111"


def test_delete_empty_definition(books):
    definition = books.create_definition(isbn="111", title="Foo")
    books.delete_definition(definition.id)

    with pytest.raises(ResourceNotFound):
        books.get_definition(definition.id)


def test_item_listings_and_counts(books, make_item):
    make_item("B1")
    make_item("B2")
    make_item("B3")
    books.update_item_status("B2", BookStatus.LOST)
    definition_id = books.get_definition_by_isbn("111").id

    assert [i.barcode for i in books.list_items_for_definition(definition_id)] == ["B1", "B2", "B3"]
    assert [i.barcode for i in books.list_available_items_for_definition(definition_id)] == ["B1", "B3"]
    assert books.count_items_for_definition(definition_id) == 3
    assert books.count_available_items_for_definition(definition_id) == 2


def test_manual_status_update(books, make_item):
    make_item("B1")
    item = books.update_item_status("B1", BookStatus.BORROWED)
    assert item.status == BookStatus.BORROWED

    with pytest.raises(ResourceNotFound):
        books.update_item_status("NOPE", BookStatus.LOST)


def test_soft_delete_hides_item_and_restore_brings_it_back(books, make_item, clock):
    make_item("B1")
    make_item("B2")
    books.update_item_status("B1", BookStatus.LOST)

    books.soft_delete_item_by_barcode("B1")

    assert [i.barcode for i in books.list_items()] == ["B2"]
    assert [i.barcode for i in books.list_deleted_items()] == ["B1"]
    assert books.count_items_for_definition(books.get_definition_by_isbn("111").id) == 1
    with pytest.raises(ResourceNotFound):
        books.get_item_by_barcode("B1")

    restored = books.restore_item("B1")

    assert not restored.deleted
    assert restored.deleted_at is None
    assert restored.status == BookStatus.LOST
    assert [i.barcode for i in books.list_items()] == ["B1", "B2"]
    assert books.list_deleted_items() == []


def test_soft_delete_records_timestamp(books, make_item, clock):
    item = make_item("B1")
    clock.advance(hours=2)
    books.soft_delete_item_by_id(item.id)

    deleted = books.list_deleted_items()[0]
    assert deleted.deleted_at == clock.now


def test_borrowed_item_cannot_be_soft_deleted(books, loans, make_item, make_user):
    item = make_item("B1")
    loans.create_loan(make_user().id, item.id)

    with pytest.raises(BookItemInLoan):
        books.soft_delete_item_by_barcode("B1")
    with pytest.raises(BookItemInLoan):
        books.soft_delete_item_by_id(item.id)

    assert [i.barcode for i in books.list_items()] == ["B1"]


def test_restore_requires_deleted_item(books, make_item):
    make_item("B1")
    with pytest.raises(BookItemNotDeleted):
        books.restore_item("B1")
    with pytest.raises(ResourceNotFound):
        books.restore_item("NOPE")
