"""
Wire protocol for the Arrakis conversation service.

Every frame is a JSON object ``{"method": ..., "payload": ...}``. Requests and
responses are closed tagged unions keyed by ``method``; anything outside the
closed set, or any payload that does not match its variant, is rejected with a
``SchemaError`` naming the offending field.

The ``Fork`` response is a client-side contract (see ``ForkResult``); the
other variants mirror what the backend sends.

Validation is total: ``validate_request`` and ``validate_response`` hand back
either the parsed model or a ``SchemaError`` value, they never raise.
"""

import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
)

from .models import Conversation

METHODS = ("ConversationList", "Ping", "Completion", "Load", "SystemPrompt", "Fork")
PROVIDERS = ("openai", "groq", "anthropic")


class SchemaError(Exception):
    """Inbound or outbound frame does not match the protocol."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path or '<frame>'}: {message}")
        self.path = path
        self.message = message


class _Wire(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# Payloads

class PingPayload(_Wire):
    body: StrictStr


class LoadPayload(_Wire):
    id: StrictInt


class SystemPromptPayload(_Wire):
    content: StrictStr
    write: StrictBool


class ForkPayload(_Wire):
    conversation_id: StrictInt = Field(alias="conversationId")
    sequence: StrictInt


class ConversationListPayload(_Wire):
    conversations: List[Conversation]


class CompletionDelta(_Wire):
    """One streamed fragment of an assistant reply."""

    stream: StrictBool
    delta: StrictStr
    name: StrictStr
    conversation_id: StrictInt = Field(alias="conversationId")
    request_id: StrictInt = Field(alias="requestId")
    response_id: StrictInt = Field(alias="responseId")


class ForkResult(_Wire):
    """
    Server confirmation (or rejection) of a fork.

    This reply is defined by this client; a backend may never send it. In that
    case the branch is confirmed by the first completion delta streamed into
    it, and a failed fork leaves the truncated branch in place until the next
    load.
    """

    ok: StrictBool
    conversation: Optional[Conversation] = None
    error: Optional[StrictStr] = None


# Requests

class ConversationListRequest(_Wire):
    method: Literal["ConversationList"] = "ConversationList"


class PingRequest(_Wire):
    method: Literal["Ping"] = "Ping"
    payload: PingPayload


class CompletionRequest(_Wire):
    method: Literal["Completion"] = "Completion"
    payload: Conversation


class LoadRequest(_Wire):
    method: Literal["Load"] = "Load"
    payload: LoadPayload


class SystemPromptRequest(_Wire):
    method: Literal["SystemPrompt"] = "SystemPrompt"
    payload: SystemPromptPayload


class ForkRequest(_Wire):
    method: Literal["Fork"] = "Fork"
    payload: ForkPayload


Request = Annotated[
    Union[
        ConversationListRequest,
        PingRequest,
        CompletionRequest,
        LoadRequest,
        SystemPromptRequest,
        ForkRequest,
    ],
    Field(discriminator="method"),
]


# Responses

class ConversationListResponse(_Wire):
    method: Literal["ConversationList"] = "ConversationList"
    payload: ConversationListPayload


class PingResponse(_Wire):
    method: Literal["Ping"] = "Ping"
    payload: PingPayload


class CompletionResponse(_Wire):
    method: Literal["Completion"] = "Completion"
    payload: CompletionDelta


class LoadResponse(_Wire):
    # The backend answers Load with the conversation itself
    method: Literal["Load"] = "Load"
    payload: Conversation


class SystemPromptResponse(_Wire):
    method: Literal["SystemPrompt"] = "SystemPrompt"
    payload: SystemPromptPayload


class ForkResponse(_Wire):
    method: Literal["Fork"] = "Fork"
    payload: ForkResult


Response = Annotated[
    Union[
        ConversationListResponse,
        PingResponse,
        CompletionResponse,
        LoadResponse,
        SystemPromptResponse,
        ForkResponse,
    ],
    Field(discriminator="method"),
]

_request_adapter = TypeAdapter(Request)
_response_adapter = TypeAdapter(Response)


def _format_loc(loc: tuple) -> List[str]:
    """Drop the union tags pydantic inserts into error locations."""
    parts = []
    for index, item in enumerate(loc):
        if index == 0 and item in METHODS:
            continue
        if parts and parts[-1] == "api" and item in PROVIDERS:
            continue
        parts.append(str(item))
    return parts


def _schema_error(exc: ValidationError) -> SchemaError:
    error = exc.errors()[0]
    parts = _format_loc(error["loc"])
    if error["type"] in ("union_tag_invalid", "union_tag_not_found"):
        discriminator = str(error.get("ctx", {}).get("discriminator", "method"))
        parts.append(discriminator.strip("'"))
    return SchemaError(".".join(parts), error["msg"])


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def _validate(adapter: TypeAdapter, raw: Any):
    try:
        data = _decode(raw)
    except (ValueError, UnicodeDecodeError) as e:
        return SchemaError("", f"invalid JSON: {e}")
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        return _schema_error(e)


def validate_request(raw: Any) -> Union[Request, SchemaError]:
    """Validate an outbound request (JSON text or decoded object)."""
    return _validate(_request_adapter, raw)


def validate_response(raw: Any) -> Union[Response, SchemaError]:
    """Validate an inbound frame (JSON text or decoded object)."""
    return _validate(_response_adapter, raw)


def encode_request(request: BaseModel) -> str:
    """Serialize a request into a wire frame."""
    return request.model_dump_json(by_alias=True)
