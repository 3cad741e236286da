"""
Session Store: durable, token-keyed session records.

Every write carries the version it was read at; a store refuses the write
with ``VersionConflict`` when another writer got there first.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from app.database import db
from app.models.session import Session
from app.services.errors import AlreadyActive, VersionConflict
from app.utils.time_utils import get_local_time

logger = logging.getLogger(__name__)


class SessionStore(ABC):

    @abstractmethod
    def get(self, session_token: str) -> Optional[Session]:
        ...

    @abstractmethod
    def create(self, session: Session) -> Session:
        ...

    @abstractmethod
    def save(self, session: Session) -> Session:
        """Persist ``session`` if its version is current; bumps the version."""

    @abstractmethod
    def find_by_user(self, user_id: str, quiz_id: Optional[str] = None) -> List[Session]:
        ...


class InMemorySessionStore(SessionStore):
    """Keeps serialized records so callers never share mutable state."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, str] = {}

    def get(self, session_token: str) -> Optional[Session]:
        with self._lock:
            record = self._records.get(session_token)
        return Session.model_validate_json(record) if record else None

    def create(self, session: Session) -> Session:
        with self._lock:
            if session.session_token in self._records:
                raise VersionConflict(f"Session {session.session_token} already exists")
            session.version = 1
            self._records[session.session_token] = session.model_dump_json()
        return session

    def save(self, session: Session) -> Session:
        with self._lock:
            record = self._records.get(session.session_token)
            stored_version = Session.model_validate_json(record).version if record else None
            if stored_version != session.version:
                raise VersionConflict(
                    f"Session {session.session_token} is at version {stored_version}, "
                    f"write was based on {session.version}"
                )
            session.version += 1
            self._records[session.session_token] = session.model_dump_json()
        return session

    def find_by_user(self, user_id: str, quiz_id: Optional[str] = None) -> List[Session]:
        with self._lock:
            records = list(self._records.values())
        sessions = [Session.model_validate_json(r) for r in records]
        return [
            s for s in sessions
            if s.user_id == user_id and (quiz_id is None or s.quiz_id == quiz_id)
        ]


class SupabaseSessionStore(SessionStore):
    """Stores sessions in the ``quiz_sessions`` table through the REST wrapper."""

    table = "quiz_sessions"

    def __init__(self, database=db):
        self.db = database

    def _row(self, session: Session) -> dict:
        return {
            "session_token": session.session_token,
            "quiz_id": session.quiz_id,
            "user_id": session.user_id,
            "mode": session.mode.value,
            "status": session.status.value,
            "version": session.version,
            "started_at": session.started_at.isoformat(),
            "updated_at": get_local_time().isoformat(),
            "data": session.model_dump(mode="json"),
        }

    def get(self, session_token: str) -> Optional[Session]:
        rows = self.db.select(self.table, "*", {"session_token": session_token}, limit=1)
        if not rows:
            return None
        return self._from_row(rows[0])

    def _from_row(self, row: dict) -> Session:
        session = Session.model_validate(row["data"])
        session.version = row["version"]
        return session

    def create(self, session: Session) -> Session:
        session.version = 1
        try:
            self.db.insert(self.table, self._row(session))
        except Exception as e:
            # 23505: the partial unique index allows one live session per (user, quiz)
            if getattr(e, "code", None) == "23505":
                raise AlreadyActive("An attempt at this quiz is already in progress")
            raise
        logger.info(f"Stored new session {session.session_token} for user {session.user_id}")
        return session

    def save(self, session: Session) -> Session:
        expected = session.version
        session.version = expected + 1
        updated = self.db.update(
            self.table,
            self._row(session),
            {"session_token": session.session_token, "version": expected},
        )
        if updated is None:
            session.version = expected
            raise VersionConflict(f"Session {session.session_token} changed since version {expected}")
        return session

    def find_by_user(self, user_id: str, quiz_id: Optional[str] = None) -> List[Session]:
        filters = {"user_id": user_id}
        if quiz_id is not None:
            filters["quiz_id"] = quiz_id
        rows = self.db.select(self.table, "*", filters)
        return [self._from_row(row) for row in rows or []]
