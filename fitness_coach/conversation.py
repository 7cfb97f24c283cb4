"""Per-recipient guided dialogues.

A session is plain data in a `SessionStore`: the program name, the step the
program is waiting at and whatever answers it has collected. Nothing blocks
between prompts; the next inbound update for the recipient re-enters the
program at the stored step.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol

from fitness_coach.errors import SessionAlreadyActiveError, UnknownProgramError
from fitness_coach.models import InboundUpdate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationSession:
    recipient_id: str
    program: str
    step: str
    started_at: datetime
    updated_at: datetime
    answers: dict[str, object] = field(default_factory=dict)


class SessionStore(Protocol):
    def get(self, recipient_id: str) -> ConversationSession | None: ...

    def save(self, session: ConversationSession) -> None: ...

    def delete(self, recipient_id: str) -> ConversationSession | None: ...


class InMemorySessionStore:
    """Process-local store; sessions are lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}

    def get(self, recipient_id: str) -> ConversationSession | None:
        return self._sessions.get(recipient_id)

    def save(self, session: ConversationSession) -> None:
        self._sessions[session.recipient_id] = session

    def delete(self, recipient_id: str) -> ConversationSession | None:
        return self._sessions.pop(recipient_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


class ConversationProgram:
    """A dialogue run by the engine.

    `begin` sends the opening prompt; `step` consumes one update at
    `session.step`. Both return True once the program has finished, after
    which the engine drops the session.
    """

    name: str = ""
    first_step: str = ""

    async def begin(self, session: ConversationSession, update: InboundUpdate | None) -> bool:
        return False

    async def step(self, session: ConversationSession, update: InboundUpdate) -> bool:
        raise NotImplementedError


class ConversationEngine:
    def __init__(
        self,
        store: SessionStore,
        programs: Iterable[ConversationProgram],
        session_ttl: timedelta | None = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._programs = {program.name: program for program in programs}
        self._session_ttl = session_ttl
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, recipient_id: str) -> asyncio.Lock:
        return self._locks.setdefault(recipient_id, asyncio.Lock())

    def _live_session(self, recipient_id: str) -> ConversationSession | None:
        session = self._store.get(recipient_id)
        if session is None:
            return None
        if self._session_ttl is not None and self._clock() - session.updated_at > self._session_ttl:
            logger.info(
                "Dropping idle %s session for %s (step %s)",
                session.program,
                recipient_id,
                session.step,
            )
            self._store.delete(recipient_id)
            return None
        return session

    def _release_lock(self, recipient_id: str) -> None:
        lock = self._locks.get(recipient_id)
        if lock is not None and not lock.locked():
            del self._locks[recipient_id]

    def has_session(self, recipient_id: str) -> bool:
        return self._live_session(recipient_id) is not None

    def active_program(self, recipient_id: str) -> str | None:
        session = self._live_session(recipient_id)
        return session.program if session else None

    async def enter(
        self,
        recipient_id: str,
        program_name: str,
        update: InboundUpdate | None = None,
        *,
        answers: dict[str, object] | None = None,
        replace: bool = False,
    ) -> ConversationSession:
        program = self._programs.get(program_name)
        if program is None:
            raise UnknownProgramError(program_name)

        async with self._lock_for(recipient_id):
            current = self._live_session(recipient_id)
            if current is not None:
                if not replace:
                    raise SessionAlreadyActiveError(recipient_id, current.program)
                logger.info("Replacing %s session for %s with %s", current.program, recipient_id, program_name)

            now = self._clock()
            session = ConversationSession(
                recipient_id=recipient_id,
                program=program_name,
                step=program.first_step,
                started_at=now,
                updated_at=now,
                answers=dict(answers or {}),
            )
            self._store.save(session)
            done = await program.begin(session, update)
            session.updated_at = self._clock()
            if done:
                self._store.delete(recipient_id)
            else:
                self._store.save(session)
        return session

    async def resume(self, recipient_id: str, update: InboundUpdate) -> bool:
        """Feed `update` to the recipient's session.

        Returns False when there is no live session, leaving the update for
        the command router.
        """
        if self._live_session(recipient_id) is None:
            return False

        async with self._lock_for(recipient_id):
            # cancel() may have run while we waited for the lock
            session = self._live_session(recipient_id)
            if session is None:
                return False
            program = self._programs.get(session.program)
            if program is None:
                logger.error("Session for %s references unknown program %s", recipient_id, session.program)
                self._store.delete(recipient_id)
                return False

            done = await program.step(session, update)
            session.updated_at = self._clock()
            if done:
                logger.debug("%s session for %s complete", session.program, recipient_id)
                self._store.delete(recipient_id)
            else:
                self._store.save(session)

        if done:
            self._release_lock(recipient_id)
        return True

    def cancel(self, recipient_id: str) -> ConversationSession | None:
        session = self._store.delete(recipient_id)
        if session is not None:
            logger.info("Cancelled %s session for %s at step %s", session.program, recipient_id, session.step)
        return session
