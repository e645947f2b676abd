import pytest

from shelfs_service.errors import ResourceNotFound, DuplicateResource, UserHasActiveLoans


def test_password_is_stored_hashed(users):
    user = users.create_user(username="ann", email="ann@example.com", password="s3cret")

    assert user.password != "s3cret"
    assert user.check_password("s3cret")
    assert users.authenticate("ann", "s3cret").id == user.id
    assert users.authenticate("ann", "wrong") is None
    assert users.authenticate("nobody", "s3cret") is None


def test_username_and_email_are_unique(users, make_user):
    make_user("ann")

    with pytest.raises(DuplicateResource) as exc:
        users.create_user(username="ann", email="other@example.com", password="x")
    assert exc.value.field == "username"

    with pytest.raises(DuplicateResource) as exc:
        users.create_user(username="bob", email="ann@example.com", password="x")
    assert exc.value.field == "email"


def test_update_user_keeps_password_when_omitted(users, make_user):
    user = make_user("ann")
    make_user("bob")

    with pytest.raises(DuplicateResource):
        users.update_user(user.id, username="bob", email="ann@example.com")

    updated = users.update_user(user.id, username="annie", email="annie@example.com")
    assert updated.username == "annie"
    assert updated.check_password("s3cret")

    users.update_user(user.id, username="annie", email="annie@example.com", password="new")
    assert users.get_user(user.id).check_password("new")
    assert users.get_user_by_email("annie@example.com").id == user.id


def test_delete_user_with_active_loan_refused(users, loans, make_user, make_item):
    user = make_user()
    loan = loans.create_loan(user.id, make_item("B1").id)

    with pytest.raises(UserHasActiveLoans):
        users.delete_user(user.id)

    loans.return_loan(loan.id)
    users.delete_user(user.id)

    with pytest.raises(ResourceNotFound):
        users.get_user(user.id)
    assert loans.list_loans() == []


def test_unknown_user(users):
    with pytest.raises(ResourceNotFound):
        users.get_user(1)
    with pytest.raises(ResourceNotFound):
        users.delete_user(1)


def test_authenticate_compares_password_exactly(users):
    users.create_user(username="ann", email="ann@example.com", password="  pw  ")

    assert users.authenticate("ann", "  pw  ") is not None
    assert users.authenticate("ann", "pw") is None
