"""Groq text generation through its OpenAI-compatible chat completions API."""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI

from shared.openai_client import create_groq_client
from shared.utils import config as service_config

from .base import TextGenerationDriver


class GroqTextDriver(TextGenerationDriver):
    """Groq-hosted chat models (Kimi, Llama)."""

    def __init__(self, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
        self.client = client or create_groq_client(api_key=api_key)
        self.model: str = service_config.get("groq_model", "moonshotai/kimi-k2-instruct")

    async def generate_text(self, prompt: str, **options: Any) -> str:
        messages: list[dict[str, Any]] = []
        system_prompt = options.get("system_prompt")
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=options.get("model", self.model),
            messages=messages,
            temperature=options.get("temperature", 0.7),
            max_tokens=options.get("max_tokens", 500),
        )

        if not response.choices or response.choices[0].message is None:
            raise RuntimeError("Unexpected response format from Groq API")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise RuntimeError("Groq returned an empty completion")
        return content.strip()
