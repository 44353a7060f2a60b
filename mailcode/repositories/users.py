"""
User store adapter.

The core only needs lookup by email, lookup by id, and create. Emails passed
in are already canonical.
"""

from typing import Any, Dict, Optional, Protocol, Union
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mailcode.models.user import User

logger = logging.getLogger(__name__)

UserId = Union[int, str]


class UserRepository(Protocol):
    """Interface for user persistence."""

    def find_by_email(self, email: str) -> Optional[User]:
        ...

    def find_by_id(self, user_id: UserId) -> Optional[User]:
        ...

    def create(self, fields: Dict[str, Any]) -> User:
        """
        Create a user from ``fields``, which must include ``email``.

        If another request registered the same email first, that user is
        returned instead.
        """
        ...


class SqlUserRepository:
    """SQLAlchemy implementation of :class:`UserRepository`."""

    CREATABLE_COLUMNS = ("email", "roles", "name", "handle")

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def find_by_id(self, user_id: UserId) -> Optional[User]:
        if isinstance(user_id, str):
            if not user_id.isdigit():
                return None
            user_id = int(user_id)
        return self.db.get(User, user_id)

    def create(self, fields: Dict[str, Any]) -> User:
        unknown = set(fields) - set(self.CREATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        if not fields.get("email"):
            raise ValueError("email is required to create a user")

        user = User(**{"roles": [], **fields})
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.db.query(User).filter(User.email == fields["email"]).first()
            if existing is None:
                raise
            logger.info(f"User {existing.id} was registered concurrently, reusing it")
            return existing
        self.db.refresh(user)
        logger.info(f"Created user {user.id}")
        return user
