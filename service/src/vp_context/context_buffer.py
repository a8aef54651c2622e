"""Rolling, size-capped context text for the active chat session."""

import hashlib
import logging
from datetime import datetime
from typing import Dict, Optional

from .config import settings
from .session_store import SessionStore

logger = logging.getLogger(__name__)

ENTRY_DELIMITER = "\n\n---\n"


def content_hash(text: str) -> str:
    """Digest used to detect repeated text."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def format_entry(text: str, label: str, when: Optional[datetime] = None) -> str:
    """Render one context entry with its delimiter, timestamp and label."""
    stamp = (when or datetime.now()).strftime("%H:%M:%S")
    return f"{ENTRY_DELIMITER}[{stamp}] {label}:\n{text}"


class ContextBuffer:
    """
    Appends labelled entries to the active session's context.

    The context is a single string. After every append it holds at most
    ``max_chars`` characters; overflow drops the oldest text from the
    front. A text identical to the previous one appended to the same
    session is ignored.
    """

    def __init__(self, store: SessionStore, max_chars: Optional[int] = None):
        self.store = store
        self.max_chars = max_chars or settings.MAX_CONTEXT_CHARS
        self._last_hash: Dict[str, str] = {}

    def _bound(self, context: str) -> str:
        if len(context) > self.max_chars:
            return context[-self.max_chars:]
        return context

    @property
    def text(self) -> str:
        chat = self.store.active()
        return chat.context if chat else ""

    async def append(self, text: str, label: str) -> bool:
        """
        Append an entry to the active session.

        Returns:
            True if the context changed
        """
        if not text:
            return False

        chat = self.store.active()
        if chat is None:
            logger.warning(f"No active chat session, dropping {label} entry")
            return False

        digest = content_hash(text)
        if self._last_hash.get(chat.id) == digest:
            logger.debug(f"Skipping repeated {label} entry ({digest})")
            return False

        context = self._bound(chat.context + format_entry(text, label))
        self._last_hash[chat.id] = digest
        await self.store.save_context(chat.id, context)

        logger.debug(f"Appended {label} entry ({len(text)} chars, context {len(context)})")
        return True

    async def set(self, text: str) -> None:
        """Overwrite the active context (manual edit)."""
        chat = self.store.active()
        if chat is None:
            return
        self._last_hash.pop(chat.id, None)
        await self.store.save_context(chat.id, self._bound(text))
