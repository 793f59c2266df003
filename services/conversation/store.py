"""Session storage backends."""

from abc import ABC, abstractmethod

from shared.models import ConversationSession


class SessionStore(ABC):
    """Abstract storage for conversation sessions."""

    @abstractmethod
    def get(self, session_id: str) -> ConversationSession | None:
        pass

    @abstractmethod
    def put(self, session: ConversationSession) -> None:
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def values(self) -> list[ConversationSession]:
        pass

    @abstractmethod
    def clear(self) -> int:
        pass

    def __len__(self) -> int:
        return len(self.values())

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None


class InMemorySessionStore(SessionStore):
    """Sessions held in process memory; lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}

    def get(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    def put(self, session: ConversationSession) -> None:
        self._sessions[session.session_id] = session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def values(self) -> list[ConversationSession]:
        return list(self._sessions.values())

    def clear(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        return count

    def __len__(self) -> int:
        return len(self._sessions)
