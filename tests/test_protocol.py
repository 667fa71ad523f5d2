"""Test suite for wire message validation."""

import json

import pytest

from arrakis_chat.domain.models import AnthropicModel, Conversation, MessageType, OpenAIApi, OpenAIModel
from arrakis_chat.domain.protocol import (
    CompletionResponse,
    ConversationListRequest,
    ConversationListResponse,
    ForkPayload,
    ForkRequest,
    LoadResponse,
    PingRequest,
    SchemaError,
    SystemPromptRequest,
    encode_request,
    validate_request,
    validate_response,
)


def message(**overrides):
    data = {
        "message_type": "User",
        "id": None,
        "content": "hello",
        "api": {"provider": "anthropic", "model": "claude-3-5-sonnet-latest"},
        "system_prompt": "",
        "sequence": 0,
    }
    data.update(overrides)
    return data


def completion_payload(**overrides):
    data = {
        "stream": True,
        "delta": "Hi",
        "name": "x",
        "conversationId": 5,
        "requestId": 10,
        "responseId": 11,
    }
    data.update(overrides)
    return data


def test_completion_response_from_json_text():
    """Test a streamed completion frame decodes with snake_case attributes."""
    frame = json.dumps({"method": "Completion", "payload": completion_payload()})
    response = validate_response(frame)
    assert isinstance(response, CompletionResponse)
    assert response.payload.conversation_id == 5
    assert response.payload.request_id == 10
    assert response.payload.response_id == 11
    assert response.payload.delta == "Hi"


def test_conversation_list_response():
    """Test conversation listings validate nested messages and API selectors."""
    response = validate_response({
        "method": "ConversationList",
        "payload": {"conversations": [{"id": 1, "name": "first", "messages": [message()]}]},
    })
    assert isinstance(response, ConversationListResponse)
    conversation = response.payload.conversations[0]
    assert conversation.messages[0].message_type is MessageType.USER
    assert conversation.messages[0].api.model is AnthropicModel.CLAUDE_3_5_SONNET


def test_load_response_carries_conversation():
    """Test the Load response payload is the conversation itself."""
    response = validate_response({
        "method": "Load",
        "payload": {"id": 3, "name": "saved", "messages": [message(id=7)]},
    })
    assert isinstance(response, LoadResponse)
    assert isinstance(response.payload, Conversation)
    assert response.payload.id == 3


@pytest.mark.parametrize("frame", [
    {"method": "Unknown"},
    {"method": "Unknown", "payload": {}},
    {"payload": {"body": "ping"}},
])
def test_unknown_or_missing_method_rejected(frame):
    """Test frames outside the closed method set are rejected on the method field."""
    result = validate_response(frame)
    assert isinstance(result, SchemaError)
    assert result.path == "method"

    result = validate_request(frame)
    assert isinstance(result, SchemaError)
    assert result.path == "method"


def test_cross_provider_model_rejected():
    """Test an API selector pairing a model with the wrong provider is rejected."""
    bad = message(api={"provider": "openai", "model": "claude-3-opus-20240229"})
    result = validate_request({
        "method": "Completion",
        "payload": {"id": None, "name": "x", "messages": [bad]},
    })
    assert isinstance(result, SchemaError)
    assert result.path == "payload.messages.0.api.model"


def test_unknown_provider_rejected():
    """Test an unknown provider is reported on the provider field."""
    bad = message(api={"provider": "mistral", "model": "large"})
    result = validate_request({
        "method": "Completion",
        "payload": {"id": None, "name": "x", "messages": [bad]},
    })
    assert isinstance(result, SchemaError)
    assert result.path == "payload.messages.0.api.provider"


def test_wrong_field_types_rejected():
    """Test strict typing: no string-to-int or int-to-bool coercion."""
    result = validate_response({"method": "Completion", "payload": completion_payload(requestId="10")})
    assert isinstance(result, SchemaError)
    assert result.path == "payload.requestId"

    result = validate_response({"method": "Completion", "payload": completion_payload(stream=1)})
    assert isinstance(result, SchemaError)
    assert result.path == "payload.stream"

    result = validate_request({"method": "Load", "payload": {"id": True}})
    assert isinstance(result, SchemaError)
    assert result.path == "payload.id"


def test_invalid_message_type_rejected():
    result = validate_response({
        "method": "Load",
        "payload": {"id": 1, "name": "x", "messages": [message(message_type="Tool")]},
    })
    assert isinstance(result, SchemaError)
    assert result.path == "payload.messages.0.message_type"


def test_invalid_json_rejected():
    """Test malformed text never raises."""
    result = validate_response("{not json")
    assert isinstance(result, SchemaError)
    assert result.path == ""


def test_encode_requests_use_wire_names():
    """Test requests serialize to the documented wire shapes."""
    assert json.loads(encode_request(ConversationListRequest())) == {"method": "ConversationList"}

    fork = json.loads(encode_request(ForkRequest(payload=ForkPayload(conversation_id=4, sequence=2))))
    assert fork == {"method": "Fork", "payload": {"conversationId": 4, "sequence": 2}}

    ping = validate_request({"method": "Ping", "payload": {"body": "ping"}})
    assert isinstance(ping, PingRequest)

    prompt = validate_request({"method": "SystemPrompt", "payload": {"content": "", "write": False}})
    assert isinstance(prompt, SystemPromptRequest)


def test_completion_request_round_trip_keeps_null_ids():
    """Test an unsaved conversation is sent with explicit null ids."""
    frame = {
        "method": "Completion",
        "payload": {"id": None, "name": "x", "messages": [message()]},
    }
    request = validate_request(frame)
    encoded = json.loads(encode_request(request))
    assert encoded["payload"]["id"] is None
    assert encoded["payload"]["messages"][0]["id"] is None
    assert encoded["payload"]["messages"][0]["api"] == frame["payload"]["messages"][0]["api"]


def test_api_selector_enumerations():
    api = OpenAIApi(model="gpt-4o-mini")
    assert api.provider == "openai"
    assert api.model is OpenAIModel.GPT_4O_MINI
