"""In-memory session table with per-session locking and optional persistence."""

import copy
import logging
import threading
import time
from contextlib import contextmanager

from config.defaults import setting
from config.session_config import build_session_config
from core.errors import (
    PersistenceError,
    SessionCompleteError,
    SessionCorruptedError,
    SessionNotFoundError,
)
from core.state import (
    CompletionReason,
    HistoryEntry,
    IterationRecord,
    Review,
    SessionConfig,
    SessionState,
)

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def _parse_items(items, parse):
    """Parse a stored list item by item, dropping entries that do not parse."""
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        try:
            parsed.append(parse(item))
        except _PARSE_ERRORS:
            continue
    return parsed


class SessionStore:
    """Owns every SessionState.

    Writers serialize on a re-entrant per-session lock, so a caller can hold
    ``lock(session_id)`` across a whole read-modify-write round while the
    store's own methods take it again. Readers get deep copies via
    ``snapshot``.

    Sessions with a holder or waiter on their lock are never evicted, and a
    session's lock is dropped once it has no users and the session has left
    memory.
    """

    def __init__(self, persistence=None, ttl=None, max_sessions=None, clock=time.time):
        self.persistence = persistence
        self.ttl = setting("session_ttl", ttl)
        self.max_sessions = setting("max_sessions", max_sessions)
        self._clock = clock
        self._sessions = {}
        self._locks = {}
        self._users = {}
        self._guard = threading.Lock()

    @contextmanager
    def lock(self, session_id):
        with self._guard:
            rlock = self._locks.setdefault(session_id, threading.RLock())
            self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            with rlock:
                yield
        finally:
            with self._guard:
                self._users[session_id] -= 1
                if not self._users[session_id]:
                    del self._users[session_id]
                    if session_id not in self._sessions:
                        self._locks.pop(session_id, None)

    def in_use(self, session_id):
        with self._guard:
            return session_id in self._users

    def get_or_create(self, session_id, loop_id=None, config=None) -> SessionState:
        with self.lock(session_id):
            session = self._sessions.get(session_id) or self._load(session_id)
            changed = False
            if session is None:
                session = self._fresh(session_id, config)
                changed = True
                logger.info("Created session %s", session_id)
            elif config is not None and config != session.config:
                # config only applies at creation; later changes go through replace_config
                logger.debug("Ignoring config for existing session %s", session_id)

            if loop_id and loop_id != session.loop_id:
                logger.info("Session %s now bound to loop %s", session_id, loop_id)
                session.loop_id = loop_id
                session.updated_at = self._clock()
                changed = True

            with self._guard:
                if session_id not in self._sessions:
                    self._evict(room=1)
                self._sessions[session_id] = session
            if changed:
                self._save(session)
            return session

    def get(self, session_id) -> SessionState:
        """Return the live session. Raises SessionNotFoundError."""
        with self.lock(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                session = self._load(session_id)
                if session is None:
                    raise SessionNotFoundError(session_id)
                with self._guard:
                    self._sessions[session_id] = session
            return session

    def snapshot(self, session_id) -> SessionState:
        with self.lock(session_id):
            return copy.deepcopy(self.get(session_id))

    def append_iteration(self, session_id, code, review: Review, thought_number=None) -> SessionState:
        with self.lock(session_id):
            session = self.get(session_id)
            if session.is_complete:
                raise SessionCompleteError(session_id, session.completion_reason)

            now = self._clock()
            number = thought_number or session.current_loop + 1
            session.iterations.append(IterationRecord(
                thought_number=number, code=code, review=review, timestamp=now,
            ))
            session.history.append(HistoryEntry(
                thought_number=number, review=review, config=session.config, timestamp=now,
            ))
            session.last_review = review
            session.current_loop = len(session.iterations)
            session.updated_at = now
            logger.debug("Session %s: loop %d scored %s", session_id, session.current_loop, review.overall)
            self._save(session)
            return session

    def mark_complete(self, session_id, reason) -> SessionState:
        with self.lock(session_id):
            session = self.get(session_id)
            session.is_complete = True
            session.completion_reason = getattr(reason, "value", reason)
            session.updated_at = self._clock()
            logger.info("Session %s complete: %s", session_id, session.completion_reason)
            self._save(session)
            return session

    def replace_config(self, session_id, config: SessionConfig) -> SessionState:
        with self.lock(session_id):
            session = self.get(session_id)
            logger.info(
                "Session %s config replaced: %s -> %s",
                session_id, session.config.to_dict(), config.to_dict(),
            )
            session.config = config
            session.updated_at = self._clock()
            self._save(session)
            return session

    def reset(self, session_id) -> SessionState:
        """Start over under the same id, keeping the session's config."""
        with self.lock(session_id):
            previous = self._sessions.get(session_id) or self._load(session_id)
            config = previous.config if previous else None
            session = self._fresh(session_id, config)
            with self._guard:
                self._sessions[session_id] = session
            logger.info("Session %s reset", session_id)
            self._save(session)
            return session

    def terminate(self, session_id, reason=CompletionReason.MANUAL_TERMINATION) -> SessionState:
        """Close a session for good and release its loop id."""
        with self.lock(session_id):
            session = self.get(session_id)
            session.is_complete = True
            session.terminated = True
            session.completion_reason = getattr(reason, "value", reason)
            session.loop_id = None
            session.updated_at = self._clock()
            logger.info("Session %s terminated: %s", session_id, session.completion_reason)
            self._save(session)
            return session

    def delete(self, session_id):
        """Remove a session from memory and disk; its lock goes with the last user."""
        with self.lock(session_id):
            with self._guard:
                existed = self._sessions.pop(session_id, None) is not None
            if self.persistence is not None:
                existed = self.persistence.delete(session_id) or existed
            return existed

    def session_ids(self):
        with self._guard:
            ids = set(self._sessions)
        if self.persistence is not None:
            ids.update(self.persistence.list_ids())
        return sorted(ids)

    def cleanup(self):
        """Drop idle sessions from memory and from disk. Returns removed ids."""
        with self._guard:
            removed = self._evict()
        if self.persistence is not None:
            removed.extend(
                sid for sid in self.persistence.cleanup(self.ttl, now=self._clock())
                if sid not in removed
            )
        return removed

    def recover(self, data, session_id) -> SessionState:
        """Turn stored data back into a session, repairing what can be repaired.

        Missing fields get defaults, unparseable history and iteration entries
        are dropped and ``current_loop`` is recomputed. Data that cannot be
        repaired yields a fresh session.
        """
        try:
            session = SessionState.from_dict(data)
        except _PARSE_ERRORS as e:
            logger.warning("Session %s failed validation (%s), attempting recovery", session_id, e)
            session = self._repair(data, session_id)
            if session is None:
                logger.warning("Session %s could not be repaired, starting fresh", session_id)
                return self._fresh(session_id)
            logger.warning("Recovered corrupted session %s", session_id)
            return session

        if session.current_loop != len(session.iterations):
            logger.warning(
                "Session %s loop counter %d disagrees with %d iterations, recomputing",
                session_id, session.current_loop, len(session.iterations),
            )
            session.current_loop = len(session.iterations)
        return session

    def _repair(self, data, session_id):
        if not isinstance(data, dict):
            return None
        now = self._clock()
        try:
            config = SessionConfig.from_dict(data["config"])
        except _PARSE_ERRORS:
            config = build_session_config()

        iterations = _parse_items(data.get("iterations"), IterationRecord.from_dict)
        history = _parse_items(data.get("history"), HistoryEntry.from_dict)
        try:
            last_review = Review.from_dict(data["last_review"])
        except _PARSE_ERRORS:
            last_review = iterations[-1].review if iterations else None

        def _number(key):
            value = data.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
            return now

        loop_id = data.get("loop_id")
        reason = data.get("completion_reason")
        return SessionState(
            id=session_id,
            loop_id=loop_id if isinstance(loop_id, str) else None,
            config=config,
            history=history,
            iterations=iterations,
            current_loop=len(iterations),
            is_complete=bool(data.get("is_complete", False)),
            completion_reason=reason if isinstance(reason, str) else None,
            terminated=bool(data.get("terminated", False)),
            last_review=last_review,
            created_at=_number("created_at"),
            updated_at=_number("updated_at"),
        )

    def _fresh(self, session_id, config=None):
        now = self._clock()
        return SessionState(
            id=session_id,
            config=config or build_session_config(),
            created_at=now,
            updated_at=now,
        )

    def _load(self, session_id):
        if self.persistence is None:
            return None
        try:
            data = self.persistence.load(session_id)
        except SessionCorruptedError as e:
            logger.warning("%s; starting a fresh session", e)
            return self._fresh(session_id)
        if data is None:
            return None
        return self.recover(data, session_id)

    def _save(self, session):
        if self.persistence is None:
            return
        try:
            self.persistence.save(session)
        except PersistenceError:
            # already logged; the in-memory copy stays authoritative
            return

    def _evict(self, room=0):
        """Drop expired sessions, then the least recently updated beyond the limit.

        ``room`` reserves slots for sessions about to be added. Sessions in
        use are skipped, so the table may run over the limit until their
        rounds finish. Called under ``_guard``.
        """
        now = self._clock()
        idle = {sid: s for sid, s in self._sessions.items() if sid not in self._users}
        expired = [sid for sid, s in idle.items() if now - s.updated_at > self.ttl]
        for sid in expired:
            del idle[sid]
        overflow = len(self._sessions) - len(expired) + room - self.max_sessions
        if overflow > 0:
            by_age = sorted(idle.items(), key=lambda item: item[1].updated_at)
            expired.extend(sid for sid, _ in by_age[:overflow])
        for sid in expired:
            del self._sessions[sid]
            self._locks.pop(sid, None)
        if expired:
            logger.warning("Evicted %d idle session(s)", len(expired))
        return expired
