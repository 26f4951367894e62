"""LLM provider adapters.

Two concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - OpenAILLMProvider: gpt-3.5-turbo / gpt-4 family (and OpenAI-compatible APIs)
    - OllamaLLMProvider: local models via an Ollama server

Instances are bound to one (model, temperature, max_tokens) triple and are
handed out by LLMClientCache (src/services/llm_client_cache.py).
"""

from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider", "OllamaLLMProvider"]
