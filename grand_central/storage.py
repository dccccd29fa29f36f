"""
Persistence seam for discussions.

The core never owns a schema: callers plug in their database behind
DiscussionStore. InMemoryDiscussionStore serves tests and local runs.
Last write wins; no transactions are assumed.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional

from .models import ChatMessage, ConversationBreathState, Suggestion

logger = logging.getLogger(__name__)


class DiscussionStore(ABC):

    @abstractmethod
    async def get_breath_state(self, discussion_id: str) -> ConversationBreathState:
        """Current breath state; a fresh default for unknown discussions."""

    @abstractmethod
    async def save_breath_state(self, discussion_id: str, state: ConversationBreathState) -> None:
        ...

    @abstractmethod
    async def list_messages(self, discussion_id: str) -> List[ChatMessage]:
        """Full history, oldest first."""

    @abstractmethod
    async def add_message(self, discussion_id: str, message: ChatMessage) -> ChatMessage:
        ...

    @abstractmethod
    async def add_suggestion(self, suggestion: Suggestion) -> None:
        ...

    @abstractmethod
    async def get_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        ...


class InMemoryDiscussionStore(DiscussionStore):

    def __init__(self):
        self._states: Dict[str, ConversationBreathState] = {}
        self._messages: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._suggestions: Dict[str, Suggestion] = {}

    async def get_breath_state(self, discussion_id: str) -> ConversationBreathState:
        state = self._states.get(discussion_id)
        # Hand out copies so callers mutate their own snapshot until they save.
        return state.model_copy(deep=True) if state else ConversationBreathState()

    async def save_breath_state(self, discussion_id: str, state: ConversationBreathState) -> None:
        self._states[discussion_id] = state.model_copy(deep=True)

    async def list_messages(self, discussion_id: str) -> List[ChatMessage]:
        return list(self._messages[discussion_id])

    async def add_message(self, discussion_id: str, message: ChatMessage) -> ChatMessage:
        self._messages[discussion_id].append(message)
        return message

    async def add_suggestion(self, suggestion: Suggestion) -> None:
        self._suggestions[suggestion.id] = suggestion

    async def get_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        return self._suggestions.get(suggestion_id)

    def suggestions_for(self, discussion_id: str) -> List[Suggestion]:
        return [s for s in self._suggestions.values() if s.discussion_id == discussion_id]
