"""Language model access through LangChain chat models."""

import os
from typing import Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.utils.errors import LLMError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

DEFAULT_PROVIDER = "deepseek"
DEFAULT_MODELS = {
    "deepseek": "deepseek-chat",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-20250514",
}
DEEPSEEK_BASE_URL = "https://api.deepseek.com"

DEFAULT_MAX_OUTPUT_TOKENS = 300
DEFAULT_TEMPERATURE = 0.7


def get_llm_settings() -> tuple[str, str]:
    """Return (provider, model name) from the environment."""
    provider = os.environ.get("LLM_PROVIDER", DEFAULT_PROVIDER).lower()
    model_name = os.environ.get("LLM_MODEL") or DEFAULT_MODELS.get(provider, "")
    return provider, model_name


def get_llm_model(max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS, temperature: float = DEFAULT_TEMPERATURE):
    """Get configured chat model."""
    provider, model_name = get_llm_settings()

    logger.debug(
        "Getting LLM model",
        llm_provider=provider,
        llm_model=model_name
    )

    if provider == "deepseek":
        api_key = os.environ.get("DEEPSEEK_API_KEY")
        if not api_key:
            raise LLMError("DEEPSEEK_API_KEY not set")
        # DeepSeek speaks the OpenAI chat completions protocol
        return ChatOpenAI(
            model=model_name,
            api_key=api_key,
            base_url=os.environ.get("DEEPSEEK_BASE_URL", DEEPSEEK_BASE_URL),
            max_tokens=max_tokens,
            temperature=temperature,
        )
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise LLMError("OPENAI_API_KEY not set")
        return ChatOpenAI(model=model_name, api_key=api_key, max_tokens=max_tokens, temperature=temperature)
    elif provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMError("ANTHROPIC_API_KEY not set")
        return ChatAnthropic(model=model_name, api_key=api_key, max_tokens=max_tokens, temperature=temperature)
    else:
        raise LLMError(f"Unsupported LLM provider: {provider}")


def _content_to_text(content) -> str:
    # Anthropic may return a list of content blocks
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content or "")


class LLMClient:
    """Generate text from a system prompt and a user prompt within a token budget."""

    def __init__(self, model_factory=get_llm_model):
        self._model_factory = model_factory

    async def generate(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if max_tokens is None:
            max_tokens = int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", str(DEFAULT_MAX_OUTPUT_TOKENS)))
        if temperature is None:
            temperature = float(os.environ.get("LLM_TEMPERATURE", str(DEFAULT_TEMPERATURE)))

        provider, model_name = get_llm_settings()
        model = self._model_factory(max_tokens=max_tokens, temperature=temperature)

        logger.info(
            "Calling LLM",
            llm_provider=provider,
            llm_model=model_name,
            prompt_size_chars=len(prompt),
            max_tokens=max_tokens,
        )

        try:
            with log_timing("llm_generate", logger=logger, llm_model=model_name):
                response = await model.ainvoke([
                    SystemMessage(content=system_prompt),
                    HumanMessage(content=prompt),
                ])
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"LLM request failed: {e}") from e

        text = _content_to_text(getattr(response, "content", response)).strip()
        if not text:
            raise LLMError("LLM returned an empty answer")

        logger.info(
            "LLM response received",
            llm_model=model_name,
            answer_length=len(text),
        )
        return text


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the LLM client singleton."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
