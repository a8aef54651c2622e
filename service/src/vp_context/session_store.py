"""Durable collection of chat sessions with a single active pointer."""

import logging
from typing import TYPE_CHECKING, List, Optional

from .exceptions import SessionNotFoundError
from .models.session import ChatSession, Message
from .state_store import ACTIVE_ID_KEY, CHATS_KEY, LAST_CAPTURED_CONTEXT_KEY, StateStore

if TYPE_CHECKING:
    from .context_buffer import ContextBuffer

logger = logging.getLogger(__name__)


class SessionStore:
    """
    CRUD over chat sessions.

    The full list and the active id are held in memory after ``load()``
    and written through to the state store on every mutation. One
    instance is created per panel and injected into the components that
    need it.
    """

    def __init__(self, state: StateStore):
        self.state = state
        self._chats: List[ChatSession] = []
        self._active_id: Optional[str] = None
        self._loaded = False

    async def load(self) -> None:
        """Load sessions from durable state (panel start)."""
        raw_chats = await self.state.get(CHATS_KEY, [])
        chats = []
        for raw in raw_chats or []:
            try:
                chats.append(ChatSession.model_validate(raw))
            except Exception as e:
                logger.warning(f"Skipping unreadable chat session: {e}")

        self._chats = chats
        active_id = await self.state.get(ACTIVE_ID_KEY)
        self._active_id = active_id if self._find(active_id) else None
        self._loaded = True
        logger.info(f"Loaded {len(chats)} chat session(s), active: {self._active_id}")

    async def flush(self) -> None:
        """Persist sessions and active pointer."""
        await self.state.set({
            CHATS_KEY: [c.model_dump(mode="json", by_alias=True) for c in self._chats],
            ACTIVE_ID_KEY: self._active_id,
        })

    def _find(self, session_id: Optional[str]) -> Optional[ChatSession]:
        if session_id is None:
            return None
        return next((c for c in self._chats if c.id == session_id), None)

    def _require(self, session_id: str) -> ChatSession:
        chat = self._find(session_id)
        if chat is None:
            raise SessionNotFoundError(session_id)
        return chat

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def active(self) -> Optional[ChatSession]:
        """Return the active session, if any."""
        return self._find(self._active_id)

    def get(self, session_id: str) -> ChatSession:
        return self._require(session_id)

    def list(self) -> List[ChatSession]:
        """Sessions ordered by last update, newest first."""
        return sorted(self._chats, key=lambda c: c.updated_at, reverse=True)

    async def create(self, title: str = "New chat") -> ChatSession:
        """Prepend a new session and make it active."""
        chat = ChatSession(title=title)
        self._chats.insert(0, chat)
        self._active_id = chat.id
        await self.flush()
        logger.info(f"Created chat session {chat.id}")
        return chat

    async def ensure_active(self) -> ChatSession:
        """Return the active session, creating a first chat if there is none."""
        chat = self.active()
        if chat is not None:
            return chat
        if self._chats:
            return await self.activate(self.list()[0].id)
        return await self.create()

    async def activate(self, session_id: str) -> ChatSession:
        chat = self._require(session_id)
        self._active_id = chat.id
        await self.flush()
        return chat

    async def rename(self, session_id: str, title: str) -> ChatSession:
        chat = self._require(session_id)
        chat.title = title.strip() or "Untitled"
        chat.touch()
        await self.flush()
        logger.info(f"Renamed chat session {session_id}: {chat.title}")
        return chat

    async def delete(self, session_id: str) -> None:
        """Delete a session, reassigning the active pointer if needed."""
        chat = self._require(session_id)
        self._chats.remove(chat)

        if self._active_id == session_id:
            remaining = self.list()
            self._active_id = remaining[0].id if remaining else None

        await self.flush()
        logger.info(f"Deleted chat session {session_id}, active: {self._active_id}")

    async def append_message(self, session_id: str, message: Message) -> ChatSession:
        chat = self._require(session_id)
        chat.messages.append(message)
        chat.touch()
        await self.flush()
        return chat

    async def save_context(self, session_id: str, context: str) -> ChatSession:
        """Store a session's context string (already bounded by the buffer)."""
        chat = self._require(session_id)
        chat.context = context
        chat.touch()
        await self.flush()
        return chat

    async def consume_captured_selection(self, buffer: "ContextBuffer") -> bool:
        """
        Move the selection captured from a page into the active context.

        Returns:
            True if a selection was waiting
        """
        captured = await self.state.pop(LAST_CAPTURED_CONTEXT_KEY)
        if not captured:
            return False
        await self.ensure_active()
        await buffer.append(captured, "[Selection]")
        return True
