"""LLM client abstraction with Google Gemini (default) and Groq."""

import logging
from abc import ABC, abstractmethod

from coach.config.settings import get_settings
from coach.llm.prompts import EMPTY_REPLY

logger = logging.getLogger(__name__)


class LLMConfigurationError(RuntimeError):
    """The provider cannot be used, usually because its API key is missing."""


class LLMError(Exception):
    """The generation API answered with an error status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(body)
        self.status_code = status_code
        self.body = body


class LLMClient(ABC):
    @abstractmethod
    async def generate(self, history: list[dict], system_prompt: str) -> str:
        """Return the reply text for ``history`` under ``system_prompt``."""
        ...


class GeminiClient(LLMClient):
    def __init__(self):
        settings = get_settings()
        if not settings.GEMINI_API_KEY:
            raise LLMConfigurationError("Gemini API key is not configured on the server.")
        import google.generativeai as genai
        genai.configure(api_key=settings.GEMINI_API_KEY)
        self._genai = genai
        self._model = settings.GEMINI_MODEL

    @staticmethod
    def convert_history(history: list[dict]) -> list[dict]:
        """Convert user/assistant messages to Gemini contents."""
        return [
            {
                "role": "model" if msg["role"] == "assistant" else "user",
                "parts": [{"text": msg["content"]}],
            }
            for msg in history
        ]

    @staticmethod
    def extract_text(response) -> str:
        try:
            return response.candidates[0].content.parts[0].text or EMPTY_REPLY
        except (AttributeError, IndexError, TypeError):
            return EMPTY_REPLY

    async def generate(self, history: list[dict], system_prompt: str) -> str:
        from google.api_core import exceptions as google_exceptions

        gen_model = self._genai.GenerativeModel(self._model, system_instruction=system_prompt)
        try:
            response = await gen_model.generate_content_async(self.convert_history(history))
        except google_exceptions.GoogleAPICallError as e:
            raise LLMError(e.code or 502, e.message) from e
        return self.extract_text(response)


class GroqClient(LLMClient):
    def __init__(self):
        settings = get_settings()
        if not settings.GROQ_API_KEY:
            raise LLMConfigurationError("Groq API key is not configured on the server.")
        from groq import AsyncGroq
        self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
        self._model = settings.GROQ_MODEL

    async def generate(self, history: list[dict], system_prompt: str) -> str:
        import groq

        messages = [{"role": "system", "content": system_prompt}]
        messages += [{"role": m["role"], "content": m["content"]} for m in history]
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
            )
        except groq.APIStatusError as e:
            raise LLMError(e.status_code, e.response.text) from e
        if not response.choices:
            return EMPTY_REPLY
        return response.choices[0].message.content or EMPTY_REPLY


# Singletons
_clients: dict[str, LLMClient] = {}


def get_llm_client(provider: str | None = None) -> LLMClient:
    provider = provider or get_settings().RELAY_PROVIDER
    if provider not in _clients:
        if provider == "gemini":
            _clients[provider] = GeminiClient()
        elif provider == "groq":
            _clients[provider] = GroqClient()
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")
        logger.info("Initialised %s LLM client", provider)
    return _clients[provider]
