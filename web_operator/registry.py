"""
Session registry – owns one browser capability per session id.

Creation and teardown are serialized per session id; unrelated ids never
wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .browser.base import BrowserCapability, BrowserFactory
from .errors import OperatorError, ProvisioningFailure
from .models import SessionState
from .region import select_region

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Registry entry for one live browser resource."""

    session_id: str
    region: str
    context_id: Optional[str] = None
    state: SessionState = SessionState.PROVISIONING
    handle: Optional[BrowserCapability] = None


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SessionRegistry:
    """
    Keyed pool of browser capabilities with create-or-get semantics.

    Example::

        registry = SessionRegistry(factory)
        browser = await registry.acquire("sess-1", timezone="Europe/Berlin")
        ...
        await registry.release("sess-1")
    """

    def __init__(self, factory: BrowserFactory):
        self._factory = factory
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, _KeyLock] = {}
        # session id -> (region, context id) chosen when the session was opened
        self._placements: Dict[str, Tuple[str, Optional[str]]] = {}

    @asynccontextmanager
    async def _guard(self, session_id: str) -> AsyncIterator[None]:
        slot = self._locks.get(session_id)
        if slot is None:
            slot = self._locks[session_id] = _KeyLock()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                self._locks.pop(session_id, None)

    # ── Create ───────────────────────────────────────────────────

    def place(self, session_id: str, region: str, context_id: Optional[str] = None) -> None:
        """Record where an opened session lives, for its first `acquire`."""
        self._placements[session_id] = (region, context_id)

    async def acquire(
        self,
        session_id: str,
        timezone: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> BrowserCapability:
        """Return the active handle for *session_id*, provisioning it if needed.

        Without *timezone* or *context_id* the placement recorded by `place`
        is used.
        """
        if not session_id:
            raise ProvisioningFailure("session id is required")

        async with self._guard(session_id):
            session = self._sessions.get(session_id)
            if session is not None and session.state is SessionState.ACTIVE:
                return session.handle

            placed_region, placed_context = self._placements.get(session_id, (None, None))
            if timezone or not placed_region:
                region = select_region(timezone)
            else:
                region = placed_region
            context_id = context_id or placed_context

            session = Session(session_id=session_id, region=region, context_id=context_id)
            self._sessions[session_id] = session
            try:
                handle = await self._factory(session_id, session.region, context_id)
            except OperatorError:
                self._sessions.pop(session_id, None)
                raise
            except Exception as e:
                self._sessions.pop(session_id, None)
                logger.error(f"Provisioning failed for session {session_id}: {e}")
                raise ProvisioningFailure(f"{type(e).__name__}: {e}") from e
            except asyncio.CancelledError:
                self._sessions.pop(session_id, None)
                raise

            session.handle = handle
            session.state = SessionState.ACTIVE
            logger.info(f"Created browser for session {session_id} in {session.region}")
            return handle

    # ── Teardown ─────────────────────────────────────────────────

    async def release(self, session_id: str) -> None:
        """Close and evict *session_id*. Unknown ids are a no-op; close errors are logged."""
        async with self._guard(session_id):
            self._placements.pop(session_id, None)
            session = self._sessions.get(session_id)
            if session is None or session.state is not SessionState.ACTIVE:
                return
            session.state = SessionState.CLOSING
            try:
                await session.handle.close()
                logger.info(f"Closed browser for session {session_id}")
            except Exception as e:
                logger.error(f"Error closing browser for session {session_id}: {e}")
            finally:
                session.state = SessionState.CLOSED
                self._sessions.pop(session_id, None)

    async def release_all(self) -> None:
        """Close every tracked session; one failure never blocks the others."""
        snapshot = dict(self._sessions)
        session_ids = list(dict.fromkeys([*snapshot, *self._placements]))
        results = await asyncio.gather(
            *(self.release(sid) for sid in session_ids), return_exceptions=True
        )
        for sid, result in zip(session_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Error releasing session {sid}: {result}")
        for sid, session in snapshot.items():
            # Entries acquired during the fan-out are not ours to drop.
            if self._sessions.get(sid) is session:
                self._sessions.pop(sid, None)
        logger.info(f"All browser sessions closed ({len(session_ids)})")

    # ── Lookup ───────────────────────────────────────────────────

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
