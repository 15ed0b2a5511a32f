"""
Conflict Detection.

Decides whether a (client, provider, window) triple collides with an
existing session. Overlap is half-open: existing.start < end and
existing.end > start, so back-to-back sessions do not conflict.
Cancelled sessions never block time.
"""

import logging
from datetime import datetime
from typing import List, Optional, Iterable, Tuple
from collections import defaultdict

from models import Session, ConflictType
from .constraints import ConstraintViolation
from .repositories import SessionRepository

logger = logging.getLogger(__name__)


class ConflictDetector:

    def __init__(self, sessions: SessionRepository):
        self.sessions = sessions

    def has_conflict(
        self,
        client_id: str,
        rbt_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None
    ) -> bool:
        return bool(self.sessions.check_conflicts(client_id, rbt_id, start, end, exclude_session_id))

    def find_conflicts(
        self,
        client_id: str,
        rbt_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None
    ) -> List[ConstraintViolation]:
        """Typed violations, one per clashing session (provider clash reported first)."""
        violations = []
        for existing in self.sessions.check_conflicts(client_id, rbt_id, start, end, exclude_session_id):
            if existing.rbt_id == rbt_id:
                violations.append(ConstraintViolation(
                    ConflictType.RBT_DOUBLE_BOOKED,
                    f"RBT already has a session from {existing.start_time:%Y-%m-%d %H:%M} to {existing.end_time:%H:%M}",
                    "Select a different time or RBT",
                    conflicting_session_id=existing.id,
                ))
            if existing.client_id == client_id:
                violations.append(ConstraintViolation(
                    ConflictType.CLIENT_DOUBLE_BOOKED,
                    f"Client already has a session from {existing.start_time:%Y-%m-%d %H:%M} to {existing.end_time:%H:%M}",
                    "Select a different time",
                    conflicting_session_id=existing.id,
                ))
        return violations


def detect_double_bookings(sessions: Iterable[Session]) -> List[Tuple[Session, Session]]:
    """
    Group each provider's time-blocking sessions by start time and flag
    adjacent pairs that overlap.
    """
    by_rbt = defaultdict(list)
    for session in sessions:
        if session.blocks_time:
            by_rbt[session.rbt_id].append(session)

    clashes = []
    for rbt_id in sorted(by_rbt):
        ordered = sorted(by_rbt[rbt_id], key=lambda s: (s.start_time, s.id))
        for current, following in zip(ordered, ordered[1:]):
            if current.end_time > following.start_time:
                clashes.append((current, following))

    if clashes:
        logger.warning(f"Detected {len(clashes)} double-booked session pair(s)")
    return clashes
