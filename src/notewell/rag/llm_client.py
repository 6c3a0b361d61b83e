"""LiteLLM client wrapper with retry, backoff, and API key validation.

All chat-completion and embedding calls route through this module.
LiteLLM's built-in retry is used (num_retries, exponential backoff).
Local providers (ollama) need no key; hosted ones are checked up front.
"""

from __future__ import annotations

import os
from typing import Iterator

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
    "lm_studio": None,
}


def provider_of(model: str) -> str:
    """'ollama/llama3.2' → 'ollama'; bare names are treated as OpenAI."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.2,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def stream_complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.2,
    num_retries: int = 3,
) -> Iterator[str]:
    """Stream a completion, yielding text deltas as they arrive."""
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        stream=True,
    )
    for part in response:
        delta = part.choices[0].delta.content if part.choices else None
        if delta:
            yield delta


def embed(model: str, text: str, num_retries: int = 3, timeout: float | None = None) -> list[float]:
    """Call litellm.embedding() with retry/backoff. Returns embedding vector.

    Raises:
        ValueError: If the provider returned an empty vector.
    """
    kwargs: dict = {"model": model, "input": [text], "num_retries": num_retries}
    if timeout is not None:
        kwargs["timeout"] = timeout
    response = litellm.embedding(**kwargs)
    vector = response.data[0]["embedding"]
    if not vector:
        raise ValueError(f"Embedding model '{model}' returned an empty vector")
    return [float(v) for v in vector]
