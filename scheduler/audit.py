"""
Append-only Audit Log.

Every schedule-affecting decision lands here as an immutable ScheduleEvent.
Recording is the only write: update and delete always raise, so history
can never be rewritten through this interface.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from models import (
    Session,
    Team,
    ScheduleEvent,
    NewScheduleEvent,
    ScheduleEventType,
    ScheduleEventQuery,
    ScheduleEventSummary,
    AuditEntityType,
    AuditTrail,
)
from .clock import Clock
from .errors import AuditIntegrityError
from .repositories import AuditEventRepository

logger = logging.getLogger(__name__)

# Team event types share one writer
TEAM_EVENT_TYPES = {
    ScheduleEventType.TEAM_CREATED,
    ScheduleEventType.TEAM_UPDATED,
    ScheduleEventType.TEAM_ENDED,
    ScheduleEventType.RBT_ADDED,
    ScheduleEventType.RBT_REMOVED,
    ScheduleEventType.PRIMARY_CHANGED,
}


class AuditLog:

    def __init__(self, repository: AuditEventRepository, clock: Optional[Clock] = None):
        self.repository = repository
        self.clock = clock or Clock()

    def _next_id(self) -> str:
        # Unique across AuditLog instances sharing one repository
        return f"evt_{uuid.uuid4().hex[:12]}"

    def record(self, new_event: NewScheduleEvent) -> ScheduleEvent:
        """
        Persist one event. The entity-reference rule is already enforced
        by NewScheduleEvent, so an event that reaches here is complete.
        """
        event = ScheduleEvent(
            **new_event.model_dump(),
            id=self._next_id(),
            created_at=self.clock.now(),
        )
        stored = self.repository.create(event)
        logger.info(f"📝 Audit {stored.event_type.value} [{stored.id}] by {stored.created_by}: {describe_event(stored)}")
        return stored

    def update(self, event_id: str, **changes: Any) -> ScheduleEvent:
        raise AuditIntegrityError(f"Audit events are immutable; refusing to update {event_id}")

    def delete(self, event_id: str) -> None:
        raise AuditIntegrityError(f"Audit events are immutable; refusing to delete {event_id}")

    # --- Queries ---

    def query(self, query: ScheduleEventQuery) -> List[ScheduleEvent]:
        return self.repository.query(query)

    def find_by_type(self, event_type: ScheduleEventType, limit: int = 100) -> List[ScheduleEvent]:
        return self.query(ScheduleEventQuery(event_type=event_type, limit=limit))

    def find_by_session(self, session_id: str, limit: int = 100) -> List[ScheduleEvent]:
        return self.query(ScheduleEventQuery(session_id=session_id, limit=limit))

    def find_by_rbt(self, rbt_id: str, limit: int = 100) -> List[ScheduleEvent]:
        return self.query(ScheduleEventQuery(rbt_id=rbt_id, limit=limit))

    def find_by_client(self, client_id: str, limit: int = 100) -> List[ScheduleEvent]:
        return self.query(ScheduleEventQuery(client_id=client_id, limit=limit))

    def find_by_date_range(self, start: datetime, end: datetime, limit: int = 100) -> List[ScheduleEvent]:
        return self.query(ScheduleEventQuery(start_date=start, end_date=end, limit=limit))

    def get_audit_trail(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> AuditTrail:
        """Chronological, human-readable history of one entity."""
        if not entity_id or not entity_id.strip():
            raise ValueError("entity_id cannot be blank")
        if start and end and end < start:
            raise ValueError("end cannot be before start")

        events = self.repository.get_audit_trail(entity_type, entity_id, start, end)
        summaries = [
            ScheduleEventSummary(
                event_id=e.id,
                event_type=e.event_type,
                timestamp=e.created_at,
                description=describe_event(e),
                session_id=e.session_id,
                rbt_id=e.rbt_id,
                client_id=e.client_id,
                reason=e.reason,
                created_by=e.created_by,
            )
            for e in events
        ]

        return AuditTrail(
            entity_type=entity_type,
            entity_id=entity_id,
            events=summaries,
            total_events=len(summaries),
            start_date=start or (events[0].created_at if events else None),
            end_date=end or (events[-1].created_at if events else None),
        )

    # --- Convenience Writers ---

    def log_session_created(self, session: Session, created_by: str, reason: Optional[str] = None,
                            metadata: Optional[Dict[str, Any]] = None) -> ScheduleEvent:
        return self.record(NewScheduleEvent(
            event_type=ScheduleEventType.SESSION_CREATED,
            session_id=session.id,
            rbt_id=session.rbt_id,
            client_id=session.client_id,
            new_values=session.snapshot(),
            reason=reason,
            metadata=metadata or {},
            created_by=created_by,
        ))

    def log_session_cancelled(self, before: Session, after: Session, reason: str,
                              cancelled_by: str) -> ScheduleEvent:
        return self.record(NewScheduleEvent(
            event_type=ScheduleEventType.SESSION_CANCELLED,
            session_id=after.id,
            rbt_id=after.rbt_id,
            client_id=after.client_id,
            old_values=before.snapshot(),
            new_values=after.snapshot(),
            reason=reason,
            created_by=cancelled_by,
        ))

    def log_session_rescheduled(self, original: Session, replacement: Session, reason: str,
                                rescheduled_by: str, metadata: Optional[Dict[str, Any]] = None) -> ScheduleEvent:
        return self.record(NewScheduleEvent(
            event_type=ScheduleEventType.SESSION_RESCHEDULED,
            session_id=original.id,
            rbt_id=replacement.rbt_id,
            client_id=original.client_id,
            old_values=original.snapshot(),
            new_values=replacement.snapshot(),
            reason=reason,
            metadata={"new_session_id": replacement.id, **(metadata or {})},
            created_by=rescheduled_by,
        ))

    def log_provider_unavailable(self, rbt_id: str, start: datetime, end: datetime, reason: str,
                                 reported_by: str, affected_session_ids: List[str]) -> ScheduleEvent:
        return self.record(NewScheduleEvent(
            event_type=ScheduleEventType.RBT_UNAVAILABLE,
            rbt_id=rbt_id,
            new_values={"start_time": start.isoformat(), "end_time": end.isoformat()},
            reason=reason,
            metadata={"affected_session_ids": affected_session_ids},
            created_by=reported_by,
        ))

    def log_team_change(self, event_type: ScheduleEventType, before: Optional[Team], after: Team,
                        changed_by: str, rbt_id: Optional[str] = None,
                        reason: Optional[str] = None) -> ScheduleEvent:
        if event_type not in TEAM_EVENT_TYPES:
            raise ValueError(f"{event_type.value} is not a team event")
        return self.record(NewScheduleEvent(
            event_type=event_type,
            client_id=after.client_id,
            rbt_id=rbt_id,
            old_values=before.snapshot() if before else None,
            new_values=after.snapshot(),
            reason=reason,
            metadata={"team_id": after.id},
            created_by=changed_by,
        ))


def describe_event(event: ScheduleEvent) -> str:
    """One-line human description used in audit trails and logs."""
    old = event.old_values or {}
    new = event.new_values or {}
    kind = event.event_type

    if kind == ScheduleEventType.SESSION_CREATED:
        return f"Session created for client {event.client_id} with provider {event.rbt_id}"
    if kind == ScheduleEventType.SESSION_CANCELLED:
        return f"Session cancelled for client {event.client_id}"
    if kind == ScheduleEventType.SESSION_RESCHEDULED:
        if old.get("start_time") and new.get("start_time"):
            return f"Session rescheduled from {old['start_time']} to {new['start_time']}"
        return "Session rescheduled"
    if kind == ScheduleEventType.RBT_UNAVAILABLE:
        return f"Provider {event.rbt_id} unavailable"
    if kind == ScheduleEventType.TEAM_CREATED:
        return f"Team created for client {event.client_id}"
    if kind == ScheduleEventType.TEAM_ENDED:
        return f"Team ended for client {event.client_id}"
    if kind == ScheduleEventType.RBT_ADDED:
        return f"Provider {event.rbt_id} added to team for client {event.client_id}"
    if kind == ScheduleEventType.RBT_REMOVED:
        return f"Provider {event.rbt_id} removed from team for client {event.client_id}"
    if kind == ScheduleEventType.PRIMARY_CHANGED:
        return (f"Primary provider changed from {old.get('primary_rbt_id')} "
                f"to {new.get('primary_rbt_id')} for client {event.client_id}")
    return f"Team updated for client {event.client_id}"
