from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import copy
import structlog

from context_engine.domain.context.state.session_lock import SessionLock
from context_engine.domain.models.context_item import (
    Clock, ContextItem, ContextSession, generate_id, utcnow, validate_identifier
)
from context_engine.domain.models.errors import NotFoundError
from context_engine.infrastructure.observability.logging import context_logger, metrics

logger = structlog.get_logger(__name__)


@dataclass
class SessionRecord:
    """Owned, mutable state of one session; never handed to callers"""
    id: str
    project_id: str
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    items: Dict[str, ContextItem] = field(default_factory=dict)
    lock: SessionLock = field(default_factory=SessionLock)
    deleted: bool = False
    version: int = 0

    def to_view(self) -> ContextSession:
        """Deep copy suitable for returning to callers"""
        return ContextSession(
            id=self.id,
            project_id=self.project_id,
            items=list(self.items.values()),
            created_at=self.created_at,
            updated_at=self.updated_at,
            metadata=self.metadata,
        ).model_copy(deep=True)


class SessionStore:
    """Owns every session; the only place session state is created or destroyed"""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, project_id: str, metadata: Optional[Dict[str, Any]] = None) -> ContextSession:
        """Allocate a new empty session for a project"""

        validate_identifier(project_id, "project_id")
        now = self.clock()

        async with self._lock:
            session_id = generate_id()
            while session_id in self._sessions:
                session_id = generate_id()

            record = SessionRecord(
                id=session_id,
                project_id=project_id,
                created_at=now,
                updated_at=now,
                metadata=copy.deepcopy(metadata or {}),
            )
            self._sessions[session_id] = record
            metrics.set_gauge("sessions.active", len(self._sessions))
            view = record.to_view()

        context_logger.log_session_event(session_id, "created", project_id=project_id)
        return view

    async def get_session(self, session_id: str) -> Optional[ContextSession]:
        """Get a copy of the session, or None if it does not exist"""

        record = await self.find(session_id)
        if record is None:
            return None

        async with record.lock.read():
            if record.deleted:
                return None
            return record.to_view()

    async def find(self, session_id: str) -> Optional[SessionRecord]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def require(self, session_id: str) -> SessionRecord:
        """Get the owned record or raise NotFoundError"""

        record = await self.find(session_id)
        if record is None:
            raise NotFoundError(f"Session not found: {session_id}", session_id=session_id)
        return record

    async def list_sessions(self, project_id: Optional[str] = None) -> List[ContextSession]:
        """Get copies of all sessions, optionally for one project"""

        async with self._lock:
            records = [
                record for record in self._sessions.values()
                if project_id is None or record.project_id == project_id
            ]

        views = []
        for record in records:
            async with record.lock.read():
                if not record.deleted:
                    views.append(record.to_view())
        return views

    async def delete_session(self, session_id: str) -> bool:
        """Destroy a session and its items"""

        async with self._lock:
            record = self._sessions.pop(session_id, None)
            metrics.set_gauge("sessions.active", len(self._sessions))

        if record is None:
            return False

        # Writers that looked the record up before removal see the flag once they get the lock
        async with record.lock.write():
            record.deleted = True
            record.items.clear()

        context_logger.log_session_event(session_id, "deleted", project_id=record.project_id)
        return True
