"""LLM package."""

from docweave.llm.client import LLMClient, OpenAIChatClient, get_llm_client, strip_code_fences

__all__ = [
    "LLMClient",
    "OpenAIChatClient",
    "get_llm_client",
    "strip_code_fences",
]
