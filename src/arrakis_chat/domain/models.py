"""Domain models for the chat client."""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class MessageType(str, Enum):
    """Author of a message."""

    SYSTEM = "System"
    USER = "User"
    ASSISTANT = "Assistant"


class OpenAIModel(str, Enum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    O1_PREVIEW = "o1-preview"
    O1_MINI = "o1-mini"


class GroqModel(str, Enum):
    LLAMA3_70B = "llama3-70b-8192"


class AnthropicModel(str, Enum):
    CLAUDE_3_OPUS = "claude-3-opus-20240229"
    CLAUDE_3_SONNET = "claude-3-sonnet-20240229"
    CLAUDE_3_HAIKU = "claude-3-haiku-20240307"
    CLAUDE_3_5_SONNET = "claude-3-5-sonnet-latest"
    CLAUDE_3_5_HAIKU = "claude-3-5-haiku-latest"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class OpenAIApi(_Frozen):
    provider: Literal["openai"] = "openai"
    model: OpenAIModel


class GroqApi(_Frozen):
    provider: Literal["groq"] = "groq"
    model: GroqModel


class AnthropicApi(_Frozen):
    provider: Literal["anthropic"] = "anthropic"
    model: AnthropicModel


# Provider/model selector; the model must belong to its provider's set
API = Annotated[Union[OpenAIApi, GroqApi, AnthropicApi], Field(discriminator="provider")]

DEFAULT_API = AnthropicApi(model=AnthropicModel.CLAUDE_3_5_SONNET)


class Message(_Frozen):
    """Message model."""

    id: Optional[StrictInt] = None
    content: StrictStr
    message_type: MessageType
    api: API
    system_prompt: StrictStr = ""
    sequence: StrictInt


class Conversation(_Frozen):
    """Conversation model."""

    id: Optional[StrictInt] = None
    name: StrictStr = Field(default_factory=lambda: str(uuid4()))
    messages: List[Message] = []

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


def new_conversation() -> Conversation:
    """Fresh, unsaved conversation with a random placeholder name."""
    return Conversation(id=None, name=str(uuid4()), messages=[])
