"""Tests for the language model client."""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.services.llm_client import LLMClient, _content_to_text, get_llm_model
from src.utils.errors import LLMError


def model_factory_returning(model):
    factory = Mock(return_value=model)
    return factory


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_sends_system_and_user_messages():
    model = Mock()
    model.ainvoke = AsyncMock(return_value=AIMessage(content="  He is shipping auth.  "))
    factory = model_factory_returning(model)

    answer = await LLMClient(model_factory=factory).generate("system text", "user text")

    assert answer == "He is shipping auth."
    factory.assert_called_once_with(max_tokens=300, temperature=0.7)
    messages = model.ainvoke.call_args[0][0]
    assert isinstance(messages[0], SystemMessage) and messages[0].content == "system text"
    assert isinstance(messages[1], HumanMessage) and messages[1].content == "user text"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_wraps_provider_errors():
    model = Mock()
    model.ainvoke = AsyncMock(side_effect=TimeoutError("read timeout"))

    with pytest.raises(LLMError):
        await LLMClient(model_factory=model_factory_returning(model)).generate("s", "p")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_empty_answer_is_error():
    model = Mock()
    model.ainvoke = AsyncMock(return_value=AIMessage(content="   "))

    with pytest.raises(LLMError):
        await LLMClient(model_factory=model_factory_returning(model)).generate("s", "p")


@pytest.mark.unit
def test_content_to_text_from_blocks():
    content = [{"type": "text", "text": "Hello "}, {"type": "tool_use"}, "world"]

    assert _content_to_text(content) == "Hello world"


@pytest.mark.unit
def test_get_llm_model_deepseek_uses_openai_protocol(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "deepseek")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test")
    monkeypatch.delenv("LLM_MODEL", raising=False)
    monkeypatch.delenv("DEEPSEEK_BASE_URL", raising=False)

    with patch("src.services.llm_client.ChatOpenAI") as chat_openai:
        get_llm_model(max_tokens=300, temperature=0.7)

    kwargs = chat_openai.call_args.kwargs
    assert kwargs["model"] == "deepseek-chat"
    assert kwargs["base_url"] == "https://api.deepseek.com"
    assert kwargs["max_tokens"] == 300


@pytest.mark.unit
def test_get_llm_model_missing_key(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "anthropic")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    with pytest.raises(LLMError):
        get_llm_model()


@pytest.mark.unit
def test_get_llm_model_unknown_provider(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "mystery")

    with pytest.raises(LLMError):
        get_llm_model()
