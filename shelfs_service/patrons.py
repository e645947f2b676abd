import logging

from .database import transactional
from .errors import ResourceNotFound, DuplicateResource, UserHasActiveLoans
from .models import User

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, session, users, loans):
        self.session = session
        self.users = users
        self.loans = loans

    def list_users(self):
        return self.users.list_all()

    def get_user(self, user_id):
        user = self.users.get(user_id)
        if user is None:
            raise ResourceNotFound("User", "id", user_id)
        return user

    def get_user_by_email(self, email):
        user = self.users.find_by_email(email)
        if user is None:
            raise ResourceNotFound("User", "email", email)
        return user

    def authenticate(self, username, password):
        """Return the user when the credentials match, else None."""
        user = self.users.find_by_username(username)
        if user is None or not user.check_password(password):
            return None
        return user

    @transactional
    def create_user(self, username, email, password):
        if self.users.exists_by_username(username):
            raise DuplicateResource("User", "username", username)
        if self.users.exists_by_email(email):
            raise DuplicateResource("User", "email", email)

        user = User(username=username, email=email)
        user.set_password(password)
        self.users.add(user)
        logger.info("Created user %s (%s)", user.id, username)
        return user

    @transactional
    def update_user(self, user_id, username, email, password=None):
        user = self.get_user(user_id)

        other = self.users.find_by_username(username)
        if other is not None and other.id != user.id:
            raise DuplicateResource("User", "username", username)
        other = self.users.find_by_email(email)
        if other is not None and other.id != user.id:
            raise DuplicateResource("User", "email", email)

        user.username = username
        user.email = email
        if password:
            user.set_password(password)
        self.session.flush()
        logger.info("Updated user %s", user_id)
        return user

    @transactional
    def delete_user(self, user_id):
        """
        Hard delete. Refused while the user holds active loans; their
        returned-loan history goes with them.
        """
        user = self.get_user(user_id)
        active = self.loans.count_active_by_user(user.id)
        if active:
            raise UserHasActiveLoans(user.id, active)
        self.users.delete(user)
        logger.info("Deleted user %s", user_id)
