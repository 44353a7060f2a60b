"""
Pending login code store adapter.

At most one record exists per email. ``upsert`` is the serialization point
for concurrent requests: on SQLite and PostgreSQL it is a single
``INSERT ... ON CONFLICT (email) DO UPDATE`` statement, so the last writer wins
and earlier codes stop matching.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from mailcode.models.login_code import PendingLoginCode

_UPSERT_DIALECTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class LoginCodeRepository(Protocol):
    """Interface for pending login code persistence."""

    def find_by_email(self, email: str) -> Optional[PendingLoginCode]:
        ...

    def find_by_email_and_code(self, email: str, code: str) -> Optional[PendingLoginCode]:
        ...

    def upsert(
        self,
        email: str,
        *,
        code: str,
        expires_at: datetime,
        allow_registration: bool,
        extra_fields: List[List[str]],
    ) -> PendingLoginCode:
        """Create or replace the single record for ``email``."""
        ...

    def mark_consumed(self, email: str, consumed_at: datetime) -> None:
        ...


class SqlLoginCodeRepository:
    """SQLAlchemy implementation of :class:`LoginCodeRepository`."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[PendingLoginCode]:
        return self.db.query(PendingLoginCode).filter(PendingLoginCode.email == email).first()

    def find_by_email_and_code(self, email: str, code: str) -> Optional[PendingLoginCode]:
        return (
            self.db.query(PendingLoginCode)
            .filter(PendingLoginCode.email == email, PendingLoginCode.code == code)
            .first()
        )

    def upsert(
        self,
        email: str,
        *,
        code: str,
        expires_at: datetime,
        allow_registration: bool,
        extra_fields: List[List[str]],
    ) -> PendingLoginCode:
        values = {
            "email": email,
            "code": code,
            "expires_at": expires_at,
            "allow_registration": allow_registration,
            "extra_fields": [list(pair) for pair in extra_fields],
            "consumed_at": None,
        }

        insert = _UPSERT_DIALECTS.get(self.db.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(PendingLoginCode).values(**values)
            updates = {key: stmt.excluded[key] for key in values if key != "email"}
            updates["updated_at"] = func.now()
            self.db.execute(
                stmt.on_conflict_do_update(index_elements=["email"], set_=updates)
            )
        else:
            entry = (
                self.db.query(PendingLoginCode)
                .filter(PendingLoginCode.email == email)
                .with_for_update()
                .first()
            )
            if entry is None:
                self.db.add(PendingLoginCode(**values))
            else:
                for key, value in values.items():
                    setattr(entry, key, value)

        self.db.commit()
        # Commit expires the identity map, so this reads the stored row
        return self.find_by_email(email)

    def mark_consumed(self, email: str, consumed_at: datetime) -> None:
        self.db.query(PendingLoginCode).filter(PendingLoginCode.email == email).update(
            {PendingLoginCode.consumed_at: consumed_at}
        )
        self.db.commit()
