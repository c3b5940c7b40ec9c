"""LLM, embedding and AI capability services.

Base Classes:
    - BaseLLMService: Interface for chat models with structured outputs
    - BaseEmbeddingService: Interface for embedding models
    - BaseAIService: The AI capability consumed by the knowledge graph services

Implementations:
    - OpenAILLMService / OpenAIEmbeddingService: OpenAI-compatible clients (OpenAI, Groq, Ollama)
    - DefaultAIService: AI capability with a hot-swappable `AIConfig`
"""

__all__ = [
    "BaseLLMService",
    "BaseEmbeddingService",
    "BaseAIService",
    "DefaultAIService",
    "format_and_send_prompt",
    "OpenAIEmbeddingService",
    "OpenAILLMService",
]

from ._ai_service import DefaultAIService
from ._base import BaseAIService, BaseEmbeddingService, BaseLLMService, format_and_send_prompt
from ._llm_openai import OpenAIEmbeddingService, OpenAILLMService
