"""
User Service

Registration and credential checks. Passwords are stored as bcrypt hashes.
"""

import logging
from typing import Optional

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exceptions import ValidationError, UserAlreadyExistsError, UnauthorizedError, NotFoundError
from models import User
from repositories.user_repository import UserRepository
from utils.error_handlers import guard_store

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


class UserService:
    """Service for user-related business logic."""

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)

    @guard_store("Register user")
    def register(self, email: Optional[str], password: Optional[str]) -> User:
        """
        Create a user account.

        Raises:
            ValidationError: "Missing email" / "Missing password"
            UserAlreadyExistsError: Email already registered
        """
        if not email:
            raise ValidationError("Missing email", {"email": "required"})
        if not password:
            raise ValidationError("Missing password", {"password": "required"})

        if self.user_repo.get_by_email(email) is not None:
            raise UserAlreadyExistsError(email)

        user = User(email=email, password_hash=hash_password(password))
        try:
            self.user_repo.create(user)
            self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            self.db.rollback()
            raise UserAlreadyExistsError(email) from e

        logger.info(f"Registered user {user.id}")
        return user

    @guard_store("Authenticate user")
    def authenticate(self, email: Optional[str], password: Optional[str]) -> User:
        """
        Check credentials.

        Raises:
            UnauthorizedError: Unknown email or wrong password
        """
        if not email or not password:
            raise UnauthorizedError()
        user = self.user_repo.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Rejected credentials")
            raise UnauthorizedError()
        return user

    @guard_store("Get user")
    def get(self, user_id: str) -> User:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    @guard_store("Count users")
    def count_users(self) -> int:
        return self.user_repo.count()
