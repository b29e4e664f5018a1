"""LLM completion provider over the OpenAI chat API."""

import re
from typing import Protocol

import structlog
from openai import AsyncOpenAI

from docweave.config import get_settings

logger = structlog.get_logger()

_FENCE_OPEN = re.compile(r"^\s*```[\w-]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")


class LLMClient(Protocol):
    """Prompt in, text out."""

    async def complete(self, system: str, user: str) -> str:
        ...


class OpenAIChatClient:
    """Chat-completion client with a fixed model and temperature."""

    def __init__(
        self,
        model: str | None = None,
        temperature: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        settings = get_settings()
        self.model = model or settings.llm_model
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Lazily initialize the OpenAI client."""
        if self._client is None:
            settings = get_settings()
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key not configured (set DOCWEAVE_OPENAI_API_KEY)")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
            )
        return self._client

    async def complete(self, system: str, user: str) -> str:
        """Send one system + user exchange and return the reply text."""
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=self.temperature,
        )
        content = response.choices[0].message.content or ""
        logger.debug("llm_completion", model=self.model, chars=len(content))
        return content


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```lang ... ``` wrapper, if any."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = _FENCE_OPEN.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


# Singleton instance
_llm: OpenAIChatClient | None = None


def get_llm_client() -> OpenAIChatClient:
    """Get the singleton chat client."""
    global _llm
    if _llm is None:
        _llm = OpenAIChatClient()
    return _llm
