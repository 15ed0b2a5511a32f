"""
In-memory Repository State.

This module acts as the 'Memory' of the system when no external store is
wired in (demo runs and tests). It tracks:
1. Sessions, indexed by client and by provider.
2. Teams and Providers.
3. The append-only audit event stream.

Every store is guarded by a lock so concurrent conflict checks see
consistent reads.
"""

import threading
from datetime import datetime
from typing import List, Dict, Optional
from collections import defaultdict

from models import (
    Session,
    Team,
    Provider,
    ScheduleEvent,
    ScheduleEventQuery,
    AuditEntityType,
)
from .repositories import (
    SessionRepository,
    TeamRepository,
    ProviderRepository,
    AuditEventRepository,
)
from .errors import RepositoryError


class InMemorySessionRepository(SessionRepository):
    """
    Session store with O(1) lookups by client and by provider.
    """

    def __init__(self, sessions: Optional[List[Session]] = None):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

        # Indices hold session ids, resolved on read so updates stay visible
        self._by_client: Dict[str, List[str]] = defaultdict(list)
        self._by_rbt: Dict[str, List[str]] = defaultdict(list)

        for session in sessions or []:
            self.create(session)

    def find_by_id(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def find_by_client_id(self, client_id: str) -> List[Session]:
        with self._lock:
            return self._sorted(self._sessions[sid] for sid in self._by_client.get(client_id, []))

    def find_by_rbt_id(self, rbt_id: str) -> List[Session]:
        with self._lock:
            return self._sorted(self._sessions[sid] for sid in self._by_rbt.get(rbt_id, []))

    def find_active_by_date_range(self, start: datetime, end: datetime) -> List[Session]:
        with self._lock:
            return self._sorted(
                s for s in self._sessions.values()
                if s.is_active and start <= s.start_time <= end
            )

    def check_conflicts(
        self,
        client_id: str,
        rbt_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None
    ) -> List[Session]:
        with self._lock:
            candidate_ids = set(self._by_client.get(client_id, [])) | set(self._by_rbt.get(rbt_id, []))
            return self._sorted(
                s for s in (self._sessions[sid] for sid in candidate_ids)
                if s.id != exclude_session_id and s.blocks_time and s.overlaps(start, end)
            )

    def create(self, session: Session) -> Session:
        with self._lock:
            if session.id in self._sessions:
                raise RepositoryError(f"Session {session.id} already exists")
            self._sessions[session.id] = session
            self._by_client[session.client_id].append(session.id)
            self._by_rbt[session.rbt_id].append(session.id)
            return session

    def update(self, session: Session) -> Session:
        with self._lock:
            previous = self._sessions.get(session.id)
            if previous is None:
                raise RepositoryError(f"Session {session.id} does not exist")
            self._sessions[session.id] = session
            if previous.rbt_id != session.rbt_id:
                self._by_rbt[previous.rbt_id].remove(session.id)
                self._by_rbt[session.rbt_id].append(session.id)
            return session

    def all(self) -> List[Session]:
        with self._lock:
            return self._sorted(self._sessions.values())

    @staticmethod
    def _sorted(sessions) -> List[Session]:
        return sorted(sessions, key=lambda s: (s.start_time, s.id))


class InMemoryTeamRepository(TeamRepository):

    def __init__(self, teams: Optional[List[Team]] = None):
        self._lock = threading.Lock()
        self._teams: Dict[str, Team] = {t.id: t for t in teams or []}

    def find_active_by_client_id(self, client_id: str) -> Optional[Team]:
        with self._lock:
            for team in self._teams.values():
                if team.client_id == client_id and team.is_active:
                    return team
            return None

    def find_by_id(self, team_id: str) -> Optional[Team]:
        with self._lock:
            return self._teams.get(team_id)

    def save(self, team: Team) -> Team:
        with self._lock:
            self._teams[team.id] = team
            return team

    def all(self) -> List[Team]:
        with self._lock:
            return list(self._teams.values())


class InMemoryProviderRepository(ProviderRepository):

    def __init__(self, providers: Optional[List[Provider]] = None):
        self._lock = threading.Lock()
        self._providers: Dict[str, Provider] = {p.id: p for p in providers or []}

    def find_by_id(self, rbt_id: str) -> Optional[Provider]:
        with self._lock:
            return self._providers.get(rbt_id)

    def save(self, provider: Provider) -> Provider:
        with self._lock:
            self._providers[provider.id] = provider
            return provider

    def all(self) -> List[Provider]:
        with self._lock:
            return list(self._providers.values())


class InMemoryAuditEventRepository(AuditEventRepository):
    """
    Append-only list of events. Insertion order breaks timestamp ties.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[ScheduleEvent] = []

    def create(self, event: ScheduleEvent) -> ScheduleEvent:
        with self._lock:
            if any(e.id == event.id for e in self._events):
                raise RepositoryError(f"Event {event.id} already recorded")
            self._events.append(event)
            return event

    def query(self, query: ScheduleEventQuery) -> List[ScheduleEvent]:
        with self._lock:
            indexed = [(i, e) for i, e in enumerate(self._events) if query.matches(e)]

        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        matched = [e for _, e in indexed]
        return matched[query.offset:query.offset + query.limit]

    def get_audit_trail(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[ScheduleEvent]:
        field_name = {
            AuditEntityType.SESSION: "session_id",
            AuditEntityType.RBT: "rbt_id",
            AuditEntityType.CLIENT: "client_id",
            AuditEntityType.TEAM: "client_id",
        }[entity_type]

        with self._lock:
            indexed = [
                (i, e) for i, e in enumerate(self._events)
                if getattr(e, field_name) == entity_id
                and (start is None or e.created_at >= start)
                and (end is None or e.created_at <= end)
            ]

        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]))
        return [e for _, e in indexed]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
