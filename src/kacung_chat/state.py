"""Conversation state machine and lock-protected transitions."""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from enum import Enum


class ConversationState(str, Enum):
    """Finite state machine for the active conversation lifecycle."""

    IDLE = "IDLE"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    ERROR = "ERROR"


class StateManager:
    """Manage state transitions with async lock semantics."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = ConversationState.IDLE

    @property
    def current(self) -> ConversationState:
        """Unlocked snapshot for rendering and gating."""
        return self._state

    async def transition_to(self, new_state: ConversationState) -> ConversationState:
        """Transition to a new state and return it."""
        async with self._lock:
            self._state = new_state
            return self._state

    async def transition_if(
        self,
        expected_state: ConversationState | Collection[ConversationState],
        new_state: ConversationState,
    ) -> bool:
        """Transition only when the current state matches ``expected_state``.

        ``expected_state`` may be a single state or a collection of states.
        """
        if isinstance(expected_state, ConversationState):
            allowed: Collection[ConversationState] = (expected_state,)
        else:
            allowed = expected_state
        async with self._lock:
            if self._state not in allowed:
                return False
            self._state = new_state
            return True
