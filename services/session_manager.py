"""
Manages in-memory conversation sessions: bounded history, idle expiry and sweeping.

Each conversation id maps to exactly one `ConversationSession`, which owns a
sliding-window `ConversationHistory` of the most recent turns. Sessions live only
in process memory; they are created on the first turn for an id, refreshed on every
later turn, and removed by `ConversationStateManager.sweep` once they have been
idle for longer than the configured timeout. Nothing is persisted across restarts.

The session table is guarded by a single lock so that concurrent requests for the
same id converge on one session object, while requests for different ids only
contend for the short dictionary operation itself.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from config.logging_config import get_logger
from monitoring.metrics import ACTIVE_CONVERSATIONS, SESSIONS_SWEPT

logger = get_logger(__name__)

DEFAULT_HISTORY_WINDOW = 20
DEFAULT_IDLE_TIMEOUT_SECONDS = 30 * 60


@dataclass
class ConversationTurn:
    """One completed exchange: the (augmented) user message and the assistant reply."""
    user_message: str
    assistant_message: str
    tools_used: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_messages(self) -> List[Dict[str, str]]:
        """Render the turn as chat-completion messages (user then assistant)."""
        return [
            {'role': 'user', 'content': self.user_message},
            {'role': 'assistant', 'content': self.assistant_message},
        ]


class ConversationHistory:
    """
    Sliding window of the last `max_turns` turns of one conversation.

    Appending beyond capacity evicts the oldest turn first. All access goes through
    a lock so racing turns on the same conversation cannot interleave a partial update.
    """

    def __init__(self, max_turns: int = DEFAULT_HISTORY_WINDOW) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self._turns = deque(maxlen=max_turns)
        self._lock = threading.Lock()

    def append(self, turn: ConversationTurn) -> None:
        with self._lock:
            self._turns.append(turn)

    def turns(self) -> List[ConversationTurn]:
        with self._lock:
            return list(self._turns)

    def messages(self) -> List[Dict[str, str]]:
        """Flatten the window into the message list sent ahead of the new user message."""
        messages: List[Dict[str, str]] = []
        for turn in self.turns():
            messages.extend(turn.to_messages())
        return messages

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)


class ConversationSession:
    """A conversation id, its history, and its creation and last-access times."""

    def __init__(self, conversation_id: str, history_window: int, clock: Callable[[], float]) -> None:
        self.conversation_id = conversation_id
        self.history = ConversationHistory(history_window)
        self._clock = clock
        self.created_at = clock()
        self.last_accessed_at = self.created_at

    def touch(self) -> None:
        self.last_accessed_at = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self.last_accessed_at

    def is_expired(self, idle_timeout_seconds: float) -> bool:
        return self.idle_seconds() > idle_timeout_seconds


class ConversationStateManager:
    """
    Owns the table of live conversation sessions.

    Args:
        history_window (int): Maximum number of turns kept per conversation (default 20).
        idle_timeout_seconds (float): Sessions idle for longer than this are removed by `sweep`.
        clock (Callable[[], float]): Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.history_window = history_window
        self.idle_timeout_seconds = idle_timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def get_or_create(self, conversation_id: str) -> ConversationHistory:
        """
        Return the history for `conversation_id`, creating and registering it on first use.

        Refreshes the session's last-access time. Concurrent callers for the same id
        always receive the same history object.

        Args:
            conversation_id (str): Opaque conversation identifier.

        Returns:
            ConversationHistory: The bounded history of the conversation.
        """
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                session = ConversationSession(conversation_id, self.history_window, self._clock)
                self._sessions[conversation_id] = session
                ACTIVE_CONVERSATIONS.set(len(self._sessions))
                logger.info(
                    f"[get_or_create] Created session (window={self.history_window} turns)\n",
                    extra={'conversation_id': conversation_id},
                )
            else:
                session.touch()
            return session.history

    def get_session(self, conversation_id: str) -> Optional[ConversationSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def sweep(self, idle_timeout_seconds: Optional[float] = None) -> int:
        """
        Remove every session whose last access is older than the idle timeout.

        Args:
            idle_timeout_seconds (float, optional): Overrides the manager's configured timeout.

        Returns:
            int: Number of sessions removed.
        """
        timeout = self.idle_timeout_seconds if idle_timeout_seconds is None else idle_timeout_seconds
        with self._lock:
            expired = [cid for cid, session in self._sessions.items() if session.is_expired(timeout)]
            for cid in expired:
                del self._sessions[cid]
            remaining = len(self._sessions)
            ACTIVE_CONVERSATIONS.set(remaining)

        if expired:
            SESSIONS_SWEPT.inc(len(expired))
        logger.info(f"[sweep] Removed {len(expired)} expired session(s), {remaining} active\n")
        return len(expired)

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear_all(self) -> None:
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
            ACTIVE_CONVERSATIONS.set(0)
        logger.info(f"[clear_all] Cleared {count} session(s)\n")
