"""Default AI capability: embeddings, extraction, inference and answers over one config.

The service keeps its `AIConfig` in a `ConfigCell`. Every call holds the cell's read
lock while it talks to the provider; `set_config` takes the write lock, builds fresh
LLM and embedding clients from the new configuration and only then publishes it, so
calls never mix an old client with a new configuration.
"""

import json
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from pydantic import ValidationError

from muralla._config import AIConfig, ConfigCell
from muralla._exceptions import AIServiceError, ResponseParseError
from muralla._models import TAnswer
from muralla._types import TEmbedding, TInferenceResult, TKnowledgeExtraction
from muralla._utils import logger

from ._base import BaseAIService, BaseEmbeddingService, BaseLLMService, format_and_send_prompt
from ._llm_openai import OpenAIEmbeddingService, OpenAILLMService

_PARSE_ERRORS = (ValidationError, json.JSONDecodeError)


def _is_parse_failure(error: BaseException) -> bool:
  """Whether a provider error was caused by a response that did not match the schema.

  instructor wraps validation failures after exhausting its retries, so the cause
  chain is inspected rather than the outer exception type.
  """
  seen = set()
  current: Optional[BaseException] = error
  while current is not None and id(current) not in seen:
    if isinstance(current, _PARSE_ERRORS):
      return True
    seen.add(id(current))
    current = current.__cause__ or current.__context__
  return False


@dataclass
class DefaultAIService(BaseAIService):
  """AI capability backed by OpenAI-compatible chat and embedding services.

  Attributes:
      config (AIConfig): Initial configuration. Defaults to `AIConfig.from_env()`.
      llm_service_factory: Builds the chat service for a configuration.
      embedding_service_factory: Builds the embedding service for a configuration.
  """

  config: AIConfig = field(default_factory=AIConfig.from_env)
  llm_service_factory: Callable[[AIConfig], BaseLLMService] = field(default=OpenAILLMService.from_config)
  embedding_service_factory: Callable[[AIConfig], BaseEmbeddingService] = field(
    default=OpenAIEmbeddingService.from_config
  )

  def __post_init__(self):
    self._cell: ConfigCell[AIConfig] = ConfigCell(self.config)
    self.llm_service, self.embedding_service = self._build_services(self.config)

  def _build_services(self, config: AIConfig) -> Tuple[BaseLLMService, BaseEmbeddingService]:
    return self.llm_service_factory(config), self.embedding_service_factory(config)

  def _install(self, config: AIConfig) -> None:
    # Build both before assigning either so a failure leaves the old pair in place
    llm_service, embedding_service = self._build_services(config)
    self.llm_service, self.embedding_service = llm_service, embedding_service
    self.config = config

  async def get_config(self) -> AIConfig:
    return await self._cell.get()

  async def set_config(self, config: AIConfig) -> None:
    previous = await self._cell.swap(config, on_swap=self._install)
    logger.info(
      f"AI configuration updated: provider {previous.provider.value} -> {config.provider.value}, "
      f"model {previous.model} -> {config.model}."
    )

  async def embed(self, text: str) -> TEmbedding:
    async with self._cell.lock.read():
      provider = self.config.provider.value
      try:
        embeddings = await self.embedding_service.encode([text])
      except Exception as e:
        raise AIServiceError(f"Embedding failed (provider: {provider}): {e}") from e

    if len(embeddings) == 0:
      raise AIServiceError("No embedding returned")
    return embeddings[0]

  async def extract(self, text: str) -> TKnowledgeExtraction:
    async with self._cell.lock.read():
      logger.debug(f"Extracting knowledge from ~{self.llm_service.count_tokens(text)} tokens.")
      try:
        extraction, _ = await format_and_send_prompt(
          prompt_key="knowledge_extraction",
          llm=self.llm_service,
          format_kwargs={"text": text},
          response_model=TKnowledgeExtraction,
        )
      except Exception as e:
        if _is_parse_failure(e):
          raise ResponseParseError(f"Failed to parse extraction: {e}") from e
        raise AIServiceError(f"Extraction failed: {e}") from e
    return extraction

  async def infer(self, prompt: str) -> TInferenceResult:
    async with self._cell.lock.read():
      try:
        result, _ = await self.llm_service.send_message(prompt=prompt, response_model=TInferenceResult)
      except Exception as e:
        if _is_parse_failure(e):
          raise ResponseParseError(f"Failed to parse inference: {e}") from e
        raise AIServiceError(f"Inference failed: {e}") from e
    return result

  async def answer(self, question: str, context: str) -> str:
    async with self._cell.lock.read():
      try:
        response, _ = await format_and_send_prompt(
          prompt_key="chat_response",
          llm=self.llm_service,
          format_kwargs={"question": question, "context": context},
          response_model=TAnswer,
        )
      except Exception as e:
        if _is_parse_failure(e):
          raise ResponseParseError(f"Failed to parse answer: {e}") from e
        raise AIServiceError(f"Answer generation failed: {e}") from e
    return response.answer
