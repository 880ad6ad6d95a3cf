import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

from eth_account.signers.local import LocalAccount

log = logging.getLogger(__name__)

CREDENTIAL_PROMPT_TTL = 300


@dataclass
class Session:
    user_id: int
    account: LocalAccount
    origin: str = "created"
    encrypted_secret: Optional[str] = None

    @property
    def address(self) -> str:
        return self.account.address


class SessionStore:
    """In-memory user -> Session map. Nothing survives a restart."""

    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}

    def get(self, user_id: int) -> Optional[Session]:
        return self._sessions.get(user_id)

    def put(self, user_id: int, session: Session) -> None:
        previous = self._sessions.get(user_id)
        if previous is not None and previous is not session:
            log.info(
                "session for %s replaced (%s -> %s)", user_id, previous.address, session.address
            )
        self._sessions[user_id] = session

    def compare_and_swap(
        self, user_id: int, expected: Optional[Session], new: Session
    ) -> bool:
        # No await between the read and the write, so this is atomic on the event loop.
        if self._sessions.get(user_id) is not expected:
            return False
        self._sessions[user_id] = new
        return True

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class AwaitingCredential:
    chat_id: int
    requested_at: float


class PendingInputs:
    """Per-user input state: absent means Idle, otherwise AwaitingCredential."""

    def __init__(self, *, ttl: float = CREDENTIAL_PROMPT_TTL) -> None:
        self.ttl = ttl
        self._pending: Dict[int, AwaitingCredential] = {}

    def begin(self, user_id: int, chat_id: int) -> None:
        now = time.time()
        self.prune(now)
        self._pending[user_id] = AwaitingCredential(chat_id=chat_id, requested_at=now)

    def prune(self, now: Optional[float] = None) -> int:
        """Drops expired prompts of users who never answered; returns how many."""
        now = time.time() if now is None else now
        expired = [
            user_id
            for user_id, state in self._pending.items()
            if now - state.requested_at > self.ttl
        ]
        for user_id in expired:
            del self._pending[user_id]
        return len(expired)

    def is_awaiting(self, user_id: int, chat_id: int) -> bool:
        state = self._pending.get(user_id)
        if state is None:
            return False
        if time.time() - state.requested_at > self.ttl:
            self._pending.pop(user_id, None)
            return False
        return state.chat_id == chat_id

    def clear(self, user_id: int) -> None:
        self._pending.pop(user_id, None)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
