"""Publish/subscribe registry of connected board sessions."""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger("Retro.hub")


class SessionSocket(Protocol):
    """The part of a WebSocket the hub needs."""

    async def send_json(self, data: dict) -> None: ...


Greeting = Callable[[], Awaitable[List[dict]]]


class BroadcastHub:
    """
    Tracks connected sessions and fans out board events.

    Delivery is at-most-once per session: there is no replay log, and a
    session whose send fails is dropped. Every publish goes to the sessions
    registered at publish time, originator included. Publishes are
    serialized, so each session sees events in the order they were emitted.
    """

    def __init__(self):
        self._sessions: Dict[uuid.UUID, SessionSocket] = {}
        self._fanout_lock = asyncio.Lock()

    async def subscribe(self, socket: SessionSocket, greeting: Optional[Greeting] = None) -> uuid.UUID:
        """
        Register a session, first sending it the current board state.

        ``greeting`` is evaluated and delivered while holding the fan-out
        lock, so no broadcast can reach the session ahead of its initial
        snapshot. A mutation committed just before the snapshot may still be
        broadcast right after it; clients key items by id.
        """
        session_id = uuid.uuid4()
        async with self._fanout_lock:
            if greeting is not None:
                for message in await greeting():
                    await socket.send_json(message)
            self._sessions[session_id] = socket
        logger.info(f"Session {session_id} subscribed ({len(self._sessions)} connected)")
        return session_id

    def unsubscribe(self, session_id: Optional[uuid.UUID]) -> None:
        if session_id and self._sessions.pop(session_id, None) is not None:
            logger.info(f"Session {session_id} unsubscribed ({len(self._sessions)} connected)")

    async def publish(self, message: dict) -> int:
        """Send ``message`` to every connected session. Returns the delivered count."""
        delivered = 0
        async with self._fanout_lock:
            disconnected = []
            for session_id, socket in list(self._sessions.items()):
                try:
                    await socket.send_json(message)
                    delivered += 1
                except Exception as e:
                    logger.warning(f"Failed to send to session {session_id}: {e}")
                    disconnected.append(session_id)

            for session_id in disconnected:
                self._sessions.pop(session_id, None)

        logger.debug(f"Broadcast {message.get('type')} to {delivered} session(s)")
        return delivered

    async def send_to(self, session_id: uuid.UUID, message: dict) -> bool:
        """Send a message to one session only."""
        socket = self._sessions.get(session_id)
        if socket is None:
            return False
        async with self._fanout_lock:
            try:
                await socket.send_json(message)
                return True
            except Exception as e:
                logger.warning(f"Failed to send to session {session_id}: {e}")
                self._sessions.pop(session_id, None)
        return False

    @property
    def session_count(self) -> int:
        return len(self._sessions)
