"""Folds streamed completion fragments into the loaded conversation."""

from ..domain.models import Conversation
from ..domain.protocol import CompletionDelta


class ReconcileError(Exception):
    """Conversation does not end with a user message and assistant placeholder."""
    pass


def apply_delta(conversation: Conversation, delta: CompletionDelta) -> Conversation:
    """
    Return a new conversation with ``delta`` merged into the pending exchange.

    The last message (assistant reply) grows by ``delta.delta`` and takes the
    response id; the message before it (user prompt) takes the request id; the
    conversation adopts the id and name assigned by the backend. Message count
    and order are unchanged.
    """
    messages = conversation.messages
    if len(messages) < 2:
        raise ReconcileError(
            f"expected a pending exchange, conversation has {len(messages)} message(s)"
        )

    request, reply = messages[-2], messages[-1]
    request = request.model_copy(update={"id": delta.request_id})
    reply = reply.model_copy(update={
        "content": reply.content + delta.delta,
        "id": delta.response_id,
    })

    return conversation.model_copy(update={
        "id": delta.conversation_id,
        "name": delta.name,
        "messages": [*messages[:-2], request, reply],
    })
