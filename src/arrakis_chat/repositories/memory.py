"""In-memory session store."""

from typing import List, Optional

import structlog

from ..domain.models import API, DEFAULT_API, Conversation, new_conversation
from .base import SessionStore

logger = structlog.get_logger()


class InMemorySessionStore(SessionStore):
    """Session state kept in process memory; values are replaced, never mutated."""

    def __init__(self, api: API = DEFAULT_API) -> None:
        self._conversation: Conversation = new_conversation()
        self._conversations: List[Conversation] = []
        self._system_prompt = ""
        self._api: API = api
        self._pending_fork: Optional[Conversation] = None
        logger.info("session_store_initialized")

    def get_conversation(self) -> Conversation:
        return self._conversation

    def set_conversation(self, conversation: Conversation) -> None:
        self._conversation = conversation
        logger.debug(
            "conversation_replaced",
            conversation_id=conversation.id,
            message_count=len(conversation.messages)
        )

    def list_conversations(self) -> List[Conversation]:
        return list(self._conversations)

    def set_conversations(self, conversations: List[Conversation]) -> None:
        self._conversations = list(conversations)
        logger.debug("conversation_list_replaced", count=len(conversations))

    def get_system_prompt(self) -> str:
        return self._system_prompt

    def set_system_prompt(self, content: str) -> None:
        self._system_prompt = content

    def get_api(self) -> API:
        return self._api

    def set_api(self, api: API) -> None:
        self._api = api
        logger.info("api_selected", provider=api.provider, model=api.model.value)

    def get_pending_fork(self) -> Optional[Conversation]:
        return self._pending_fork

    def set_pending_fork(self, conversation: Optional[Conversation]) -> None:
        self._pending_fork = conversation
