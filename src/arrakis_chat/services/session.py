"""
Session controller.

Translates user intents into protocol requests and inbound responses into
state changes. Exactly one conversation is loaded at a time; every change
replaces it with a new value.
"""

import asyncio
from typing import List, Optional, Set, Tuple

import structlog

from ..api.connection import ConnectionManager, ConnectionState
from ..config import ClientConfig
from ..domain.models import API, Conversation, Message, MessageType, new_conversation
from ..domain.protocol import (
    CompletionRequest,
    CompletionResponse,
    ConversationListRequest,
    ConversationListResponse,
    ForkPayload,
    ForkRequest,
    ForkResponse,
    LoadPayload,
    LoadRequest,
    LoadResponse,
    PingResponse,
    SystemPromptPayload,
    SystemPromptRequest,
    SystemPromptResponse,
)
from ..repositories.base import SessionStore
from ..repositories.memory import InMemorySessionStore
from .reconciler import ReconcileError, apply_delta
from .renderer import ContentRenderer, RenderResult

logger = structlog.get_logger()


class SessionController:
    """Orchestrates the connection, the loaded conversation and rendering."""

    def __init__(
        self,
        connection: ConnectionManager,
        store: Optional[SessionStore] = None,
        renderer: Optional[ContentRenderer] = None,
    ) -> None:
        self.connection = connection
        self.store = store or InMemorySessionStore()
        self.renderer = renderer or ContentRenderer()
        self._tasks: Set[asyncio.Task] = set()
        connection.on_response(self.handle_response)
        connection.on_state_change(self._on_state_change)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "SessionController":
        connection = ConnectionManager(
            url=config.url,
            retry_interval=config.retry_interval,
            max_retries=config.max_retries,
            heartbeat_interval=config.heartbeat_interval,
        )
        renderer = ContentRenderer(highlight_inline_styles=config.highlight_inline_styles)
        return cls(connection, renderer=renderer)

    @property
    def conversation(self) -> Conversation:
        return self.store.get_conversation()

    def start(self) -> None:
        self.connection.start()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.connection.close()

    def _on_state_change(self, state: ConnectionState) -> None:
        if state != ConnectionState.CONNECTED:
            return
        # Refresh what the view shows as soon as the backend is reachable
        task = asyncio.create_task(self._refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh(self) -> None:
        await self.get_system_prompt()
        await self.list_conversations()

    # Intents

    def new_conversation(self) -> Conversation:
        conversation = new_conversation()
        self.store.set_conversation(conversation)
        self.store.set_pending_fork(None)
        logger.info("conversation_created", name=conversation.name)
        return conversation

    def select_api(self, api: API) -> None:
        self.store.set_api(api)

    async def send(self, text: str) -> Conversation:
        """Append the prompt and an empty reply placeholder, then request a completion."""
        if not text:
            return self.conversation

        conversation = self.conversation
        messages = conversation.messages
        last = messages[-1] if messages else None
        base_id = last.id if last is not None else None
        api = self.store.get_api()

        prompt = Message(
            id=base_id + 1 if base_id is not None else None,
            content=text,
            message_type=MessageType.USER,
            api=api,
            system_prompt="",
            sequence=len(messages),
        )
        placeholder = Message(
            id=base_id + 2 if base_id is not None else None,
            content="",
            message_type=MessageType.ASSISTANT,
            api=api,
            system_prompt="",
            sequence=len(messages) + 1,
        )
        updated = conversation.model_copy(update={"messages": [*messages, prompt, placeholder]})
        self.store.set_conversation(updated)
        logger.info(
            "message_sent",
            conversation_id=updated.id,
            sequence=prompt.sequence,
            content_length=len(text)
        )
        await self.connection.send(CompletionRequest(payload=updated))
        return updated

    async def load(self, conversation_id: int) -> bool:
        return await self.connection.send(LoadRequest(payload=LoadPayload(id=conversation_id)))

    async def list_conversations(self) -> bool:
        return await self.connection.send(ConversationListRequest())

    async def get_system_prompt(self) -> bool:
        return await self.connection.send(
            SystemPromptRequest(payload=SystemPromptPayload(content="", write=False))
        )

    async def set_system_prompt(self, content: str) -> bool:
        self.store.set_system_prompt(content)
        return await self.connection.send(
            SystemPromptRequest(payload=SystemPromptPayload(content=content, write=True))
        )

    async def fork(self, sequence: int) -> Optional[Conversation]:
        """
        Branch the loaded conversation at ``sequence``.

        The backend copies the conversation up to ``sequence`` into a new one
        and streams a fresh reply into it, so no Completion is sent from here.
        The local conversation is truncated right away; the previous value is
        kept until the branch is confirmed or rejected.
        """
        conversation = self.conversation
        if conversation.id is None:
            logger.warning("fork_unsaved_conversation", sequence=sequence)
            return None
        if not 0 <= sequence < len(conversation.messages):
            logger.warning(
                "fork_sequence_out_of_range",
                conversation_id=conversation.id,
                sequence=sequence,
                message_count=len(conversation.messages)
            )
            return None

        await self.connection.send(
            ForkRequest(payload=ForkPayload(conversation_id=conversation.id, sequence=sequence))
        )

        kept = conversation.messages[:sequence + 1]
        last = kept[-1].model_copy(update={
            "content": "",
            "id": None,
            "message_type": MessageType.ASSISTANT,
            "system_prompt": self.store.get_system_prompt(),
            "api": self.store.get_api(),
        })
        forked = conversation.model_copy(update={"messages": [*kept[:-1], last]})
        self.store.set_pending_fork(conversation)
        self.store.set_conversation(forked)
        logger.info("conversation_forked", conversation_id=conversation.id, sequence=sequence)
        return forked

    # Responses

    def handle_response(self, response) -> None:
        """Route a validated response to the matching state change."""
        if isinstance(response, CompletionResponse):
            self._apply_completion(response)
        elif isinstance(response, LoadResponse):
            self.store.set_conversation(response.payload)
            self.store.set_pending_fork(None)
            logger.info(
                "conversation_loaded",
                conversation_id=response.payload.id,
                message_count=len(response.payload.messages)
            )
        elif isinstance(response, ConversationListResponse):
            self.store.set_conversations(response.payload.conversations)
        elif isinstance(response, SystemPromptResponse):
            self.store.set_system_prompt(response.payload.content)
        elif isinstance(response, ForkResponse):
            self._settle_fork(response)
        elif isinstance(response, PingResponse):
            logger.debug("heartbeat_received", body=response.payload.body)

    def _apply_completion(self, response: CompletionResponse) -> None:
        try:
            updated = apply_delta(self.conversation, response.payload)
        except ReconcileError as e:
            logger.warning("completion_dropped", error=str(e))
            return
        self.store.set_conversation(updated)
        # The branch is confirmed once the backend streams into it
        self.store.set_pending_fork(None)

    def _settle_fork(self, response: ForkResponse) -> None:
        previous = self.store.get_pending_fork()
        self.store.set_pending_fork(None)
        result = response.payload
        if not result.ok:
            logger.warning("fork_rejected", error=result.error)
            if previous is not None:
                self.store.set_conversation(previous)
            return
        if result.conversation is not None:
            branch = result.conversation
            self.store.set_conversation(
                self.conversation.model_copy(update={"id": branch.id, "name": branch.name})
            )
        logger.info("fork_confirmed", conversation_id=self.conversation.id)

    # View

    def rendered_messages(self) -> List[Tuple[Message, RenderResult]]:
        return [(m, self.renderer.render(m.content)) for m in self.conversation.messages]
