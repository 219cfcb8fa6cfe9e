import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class PendingState:
    """In-flight step of one conversational flow for one user."""

    flow: str
    chat_id: str
    user_id: str
    step: str
    data: Dict[str, Any] = field(default_factory=dict)
    expires_at: float = 0.0


class ConversationStateManager:
    """
    Pending state for multi-turn conversational flows.

    States live in process memory, keyed by (user, flow). Each carries the
    chat it was opened in and an absolute expiry; a read from another chat
    or after expiry deletes the state and reports nothing.
    """

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._states: Dict[Tuple[str, str], PendingState] = {}

    def set_state(
        self,
        user_id: str,
        flow: str,
        chat_id: str,
        step: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PendingState:
        """Creates or replaces the state and pushes its expiry forward."""
        state = PendingState(
            flow=flow,
            chat_id=chat_id,
            user_id=user_id,
            step=step,
            data=dict(data or {}),
            expires_at=self.clock() + self.ttl_seconds,
        )
        self._states[(user_id, flow)] = state
        logger.info(f"State set for user {user_id} [{flow}]: {step}")
        return state

    def peek(self, user_id: str, flow: str) -> Optional[PendingState]:
        """Raw lookup; no expiry or chat checks."""
        return self._states.get((user_id, flow))

    def get_state(self, user_id: str, flow: str, chat_id: str) -> Optional[PendingState]:
        state = self._states.get((user_id, flow))
        if state is None:
            return None

        if state.chat_id != chat_id:
            logger.info(f"State for user {user_id} [{flow}] belongs to another chat, discarding")
            self.clear_state(user_id, flow)
            return None

        if self.clock() >= state.expires_at:
            logger.info(f"State for user {user_id} [{flow}] expired at step {state.step}")
            self.clear_state(user_id, flow)
            return None

        return state

    def update_context(self, user_id: str, flow: str, step: str, new_data: Dict[str, Any]) -> Optional[PendingState]:
        """
        Advances a live state to `step`, merging `new_data` into its fields.

        The expiry set at creation is kept; advancing does not extend it.
        """
        state = self._states.get((user_id, flow))
        if state is None:
            logger.warning(f"No state found to update for user {user_id} [{flow}]")
            return None

        state.step = step
        state.data.update(new_data)
        logger.info(f"State advanced for user {user_id} [{flow}]: {step}")
        return state

    def clear_state(self, user_id: str, flow: str) -> bool:
        removed = self._states.pop((user_id, flow), None)
        if removed is not None:
            logger.info(f"Cleared state for user {user_id} [{flow}]")
            return True
        return False

    def clear_user(self, user_id: str) -> int:
        """Drops every pending flow for the user. Returns how many were removed."""
        keys = [key for key in self._states if key[0] == user_id]
        for key in keys:
            del self._states[key]
        if keys:
            logger.info(f"Cleared {len(keys)} pending flow(s) for user {user_id}")
        return len(keys)
