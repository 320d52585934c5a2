"""Conversation session management with in-memory storage."""

from datetime import UTC, datetime, timedelta

from cuid2 import cuid_wrapper

from assistant.config import load_config
from assistant.models.session import ConversationSession

cuid = cuid_wrapper()


class InMemorySessionManager:
    """In-memory conversation session manager."""

    def __init__(self, session_timeout_minutes: int = 60):
        """Initialize session manager.

        Args:
            session_timeout_minutes: Minutes of inactivity before a session expires
        """
        self.sessions: dict[str, ConversationSession] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def get_or_create_session(self, conversation_id: str | None = None) -> ConversationSession:
        """Get existing session or create new one.

        Args:
            conversation_id: Optional existing conversation ID

        Returns:
            Session object (existing or newly created)
        """
        self._cleanup_expired_sessions()

        if conversation_id and conversation_id in self.sessions:
            session = self.sessions[conversation_id]
            session.update_activity()
            return session

        new_id = conversation_id or self._generate_conversation_id()
        session = ConversationSession(conversation_id=new_id)
        self.sessions[new_id] = session
        return session

    def get_session(self, conversation_id: str) -> ConversationSession | None:
        """Get existing session by ID.

        Returns:
            Session if found and not expired, None otherwise
        """
        self._cleanup_expired_sessions()

        session = self.sessions.get(conversation_id)
        if session:
            session.update_activity()
        return session

    def delete_session(self, conversation_id: str) -> bool:
        """Delete a session. Returns False if it didn't exist."""
        if conversation_id in self.sessions:
            del self.sessions[conversation_id]
            return True
        return False

    def _generate_conversation_id(self) -> str:
        """Generate a new CUID-based conversation ID."""
        return cuid()

    def _cleanup_expired_sessions(self) -> None:
        """Remove expired sessions from memory. Busy sessions are kept."""
        current_time = datetime.now(UTC)
        expired = [
            conversation_id
            for conversation_id, session in self.sessions.items()
            if current_time - session.last_activity > self.session_timeout and not session.busy
        ]

        for conversation_id in expired:
            del self.sessions[conversation_id]

    def get_session_count(self) -> int:
        """Get current number of active sessions."""
        self._cleanup_expired_sessions()
        return len(self.sessions)


_session_manager: InMemorySessionManager | None = None


def get_session_manager() -> InMemorySessionManager:
    """Get or create the shared session manager, expiring sessions after SESSION_TIMEOUT_MINUTES."""
    global _session_manager

    if _session_manager is None:
        _session_manager = InMemorySessionManager(session_timeout_minutes=load_config().session_timeout_minutes)

    return _session_manager
