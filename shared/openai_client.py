"""Builders for OpenAI-compatible clients.

Groq exposes an OpenAI-compatible endpoint, so both providers share the
``openai`` SDK and differ only in key and base URL.
"""

from __future__ import annotations

import os

from openai import AsyncOpenAI, OpenAI

from shared.utils import config

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


def create_openai_client(
    api_key: str | None = None,
    async_client: bool = True,
) -> AsyncOpenAI | OpenAI:
    """
    Create a direct OpenAI client.

    Args:
        api_key: OpenAI API key (auto-detected if None)
        async_client: Whether to return AsyncOpenAI (True) or sync OpenAI (False)

    Returns:
        Configured AsyncOpenAI or OpenAI client

    Raises:
        ValueError: If API key is not configured
    """
    api_key = api_key or config.get("openai_api_key") or os.getenv("OPENAI_API_KEY")

    if not api_key:
        raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    if async_client:
        return AsyncOpenAI(api_key=api_key)
    return OpenAI(api_key=api_key)


def create_groq_client(
    api_key: str | None = None,
    base_url: str | None = None,
) -> AsyncOpenAI:
    """
    Create an async client pointed at Groq's OpenAI-compatible API.

    Raises:
        ValueError: If the Groq key is not configured
    """
    api_key = api_key or config.get("groq_api_key") or os.getenv("GROQ_API_KEY")

    if not api_key:
        raise ValueError("Groq API key not configured. Set GROQ_API_KEY environment variable.")

    return AsyncOpenAI(api_key=api_key, base_url=base_url or GROQ_BASE_URL)
