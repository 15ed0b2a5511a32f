"""
Storage contracts consumed by the scheduling core.

The core never talks to a database directly. Implementations raise
RepositoryError for infrastructure failures; "not found" is None, not an error.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from models import (
    Session,
    Team,
    Provider,
    ScheduleEvent,
    ScheduleEventQuery,
    AuditEntityType,
)


class SessionRepository(ABC):

    @abstractmethod
    def find_by_id(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    def find_by_client_id(self, client_id: str) -> List[Session]:
        ...

    @abstractmethod
    def find_by_rbt_id(self, rbt_id: str) -> List[Session]:
        ...

    @abstractmethod
    def find_active_by_date_range(self, start: datetime, end: datetime) -> List[Session]:
        """Sessions starting in [start, end] that are neither cancelled nor no-show."""

    @abstractmethod
    def check_conflicts(
        self,
        client_id: str,
        rbt_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None
    ) -> List[Session]:
        """Non-cancelled sessions for the client or the provider overlapping [start, end)."""

    @abstractmethod
    def create(self, session: Session) -> Session:
        ...

    @abstractmethod
    def update(self, session: Session) -> Session:
        ...


class TeamRepository(ABC):

    @abstractmethod
    def find_active_by_client_id(self, client_id: str) -> Optional[Team]:
        ...

    @abstractmethod
    def find_by_id(self, team_id: str) -> Optional[Team]:
        ...

    @abstractmethod
    def save(self, team: Team) -> Team:
        ...


class ProviderRepository(ABC):

    @abstractmethod
    def find_by_id(self, rbt_id: str) -> Optional[Provider]:
        ...

    @abstractmethod
    def save(self, provider: Provider) -> Provider:
        ...


class AuditEventRepository(ABC):
    """Append-only event store: create and read only."""

    @abstractmethod
    def create(self, event: ScheduleEvent) -> ScheduleEvent:
        ...

    @abstractmethod
    def query(self, query: ScheduleEventQuery) -> List[ScheduleEvent]:
        """Matching events, newest first, paged by query.limit/offset."""

    @abstractmethod
    def get_audit_trail(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[ScheduleEvent]:
        """All events for one entity, oldest first."""
