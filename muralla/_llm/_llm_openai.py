"""OpenAI-compatible LLM Services module.

This module provides asynchronous integrations with OpenAI-compatible APIs (OpenAI,
Groq and Ollama all speak the same protocol) for chat completions and text embeddings.

Key Components:
    - OpenAILLMService: Chat completions with structured outputs through instructor.
    - OpenAIEmbeddingService: Batched embedding requests.

Features:
    - Rate limiting (per-minute, per-second, concurrent request limits) with aiolimiter
    - Exponential backoff retries with tenacity for transient failures
    - Token counting using tiktoken, with a regex fallback for unknown models
    - Construction from an `AIConfig` so that a configuration swap rebuilds both clients
"""

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from itertools import chain
from typing import Any, List, Optional, Tuple, Type, Union, cast

import instructor
import numpy as np
import tiktoken
from aiolimiter import AsyncLimiter
from openai import APIConnectionError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel
from tenacity import (
  AsyncRetrying,
  retry,
  retry_if_exception_type,
  stop_after_attempt,
  wait_exponential,
)

from muralla._config import AIConfig, AIProvider
from muralla._exceptions import LLMServiceNoResponseError
from muralla._models import BaseModelAlias
from muralla._utils import logger

from ._base import TOKEN_PATTERN, BaseEmbeddingService, BaseLLMService, NoopAsyncContextManager, T_model

# Default timeout for API requests in seconds
TIMEOUT_SECONDS = 180.0

# Sent when no key is configured: local servers such as Ollama accept any key, and the
# SDK refuses to build a client without one
PLACEHOLDER_API_KEY = "not-needed"

TRANSIENT_ERRORS = (RateLimitError, APIConnectionError, TimeoutError)


def _client_api_key(config: AIConfig) -> str:
  return config.api_key.get_secret_value() or PLACEHOLDER_API_KEY


def _build_limiters(service: Union[BaseLLMService, BaseEmbeddingService]) -> List[Any]:
  """Concurrency, per-minute and per-second guards; disabled ones are no-ops."""
  return [
    asyncio.Semaphore(service.max_requests_concurrent)
    if service.rate_limit_concurrency
    else NoopAsyncContextManager(),
    AsyncLimiter(service.max_requests_per_minute, 60) if service.rate_limit_per_minute else NoopAsyncContextManager(),
    AsyncLimiter(service.max_requests_per_second, 1) if service.rate_limit_per_second else NoopAsyncContextManager(),
  ]


async def _enter_limiters(stack: AsyncExitStack, limiters: List[Any]) -> None:
  for limiter in limiters:
    await stack.enter_async_context(limiter)


@dataclass
class OpenAILLMService(BaseLLMService):
  """Asynchronous chat service for OpenAI-compatible endpoints.

  Attributes:
      model (str): The chat model to use (default: "gpt-4o").
      mode (instructor.Mode): Response parsing mode for the instructor library
          (default: JSON mode for structured outputs).
  """

  model: str = field(default="gpt-4o")
  mode: instructor.Mode = field(default=instructor.Mode.JSON)

  def __post_init__(self):
    # Tokenizer used for counting only; unknown models fall back to the regex
    try:
      self.encoding = tiktoken.encoding_for_model(self.model)
    except Exception as e:
      logger.info(f"No tiktoken encoding for model '{self.model}' ({e}), counting tokens with a regex.")
      self.encoding = None

    self.limiters = _build_limiters(self)
    self.llm_async_client = instructor.from_openai(
      AsyncOpenAI(base_url=self.base_url, api_key=self.api_key, timeout=TIMEOUT_SECONDS), mode=self.mode
    )

    logger.debug(f"Initialized OpenAILLMService for model '{self.model}' at '{self.base_url or 'default endpoint'}'.")

  @classmethod
  def from_config(cls, config: AIConfig) -> "OpenAILLMService":
    return cls(model=config.model, base_url=config.resolved_base_url, api_key=_client_api_key(config))

  def count_tokens(self, text: str) -> int:
    if self.encoding is None:
      return len(TOKEN_PATTERN.findall(text))
    return len(self.encoding.encode(text))

  async def send_message(
    self,
    prompt: str,
    system_prompt: str | None = None,
    response_model: Type[T_model] | None = None,
    **kwargs: Any,
  ) -> Tuple[T_model, list[dict[str, str]]]:
    """Send a message to the chat model and receive a response.

    BaseModelAlias response models are sent to instructor as their inner `Model` and
    converted back to the dataclass before returning.

    Raises:
        LLMServiceNoResponseError: If the model returns an empty response.
        Exception: Any exception from the API after exhausting retry attempts.
    """
    messages: list[dict[str, str]] = []
    if system_prompt:
      messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    is_alias = response_model is not None and issubclass(response_model, BaseModelAlias)
    logger.debug(f"Sending {len(messages)} message(s) to '{self.model}': {prompt}")

    async with AsyncExitStack() as stack:
      await _enter_limiters(stack, self.limiters)
      try:
        llm_response: Any = await self.llm_async_client.chat.completions.create(
          model=self.model,
          messages=messages,  # type: ignore
          response_model=response_model.Model if is_alias else response_model,  # type: ignore
          **kwargs,
          max_retries=AsyncRetrying(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=4, max=10)),
        )
      except Exception:
        logger.exception(f"Chat request to '{self.model}' failed.")
        raise

    if not llm_response:
      logger.error("No response received from the language model.")
      raise LLMServiceNoResponseError("No response received from the language model.")

    content = llm_response.model_dump_json() if isinstance(llm_response, BaseModel) else str(llm_response)
    messages.append({"role": "assistant", "content": content})
    logger.debug(f"Received response: {content}")

    if is_alias:
      llm_response = cast(BaseModelAlias.Model, llm_response).to_dataclass(llm_response)
    return cast(T_model, llm_response), messages


@dataclass
class OpenAIEmbeddingService(BaseEmbeddingService):
  """Asynchronous embedding service for OpenAI-compatible endpoints.

  Attributes:
      max_elements_per_request (int): Maximum number of texts per API request.
      send_dimensions (bool): Whether to pass `dimensions` to the API. Only OpenAI's
          text-embedding-3 family honours it; other providers reject or ignore it.
  """

  max_elements_per_request: int = field(default=32)
  send_dimensions: bool = field(default=True)

  def __post_init__(self):
    self.limiters = _build_limiters(self)
    self.embedding_async_client = AsyncOpenAI(base_url=self.base_url, api_key=self.api_key, timeout=TIMEOUT_SECONDS)
    logger.debug(f"Initialized OpenAIEmbeddingService for model '{self.model}'.")

  @classmethod
  def from_config(cls, config: AIConfig) -> "OpenAIEmbeddingService":
    return cls(
      embedding_dim=config.embedding_dim,
      model=config.embedding_model,
      base_url=config.resolved_base_url,
      api_key=_client_api_key(config),
      send_dimensions=config.provider is AIProvider.OPENAI,
    )

  async def encode(self, texts: list[str], model: Optional[str] = None) -> np.ndarray[Any, np.dtype[np.float32]]:
    """Get embedding vectors for the input texts.

    Texts are sent in concurrent batches of `max_elements_per_request`.

    Returns:
        np.ndarray: Array of shape (len(texts), embedding_dim).

    Raises:
        ValueError: If no model name is available.
        Exception: Any exception from the API after exhausting retry attempts.
    """
    model = model or self.model
    if model is None:
      raise ValueError("Model name must be provided.")

    size = self.max_elements_per_request
    batches = [texts[start : start + size] for start in range(0, len(texts), size)]
    try:
      responses = await asyncio.gather(*[self._embedding_request(batch, model) for batch in batches])
    except Exception:
      logger.exception(f"Embedding request to '{model}' failed.")
      raise

    embeddings = np.array([item.embedding for item in chain(*[r.data for r in responses])], dtype=np.float32)
    logger.debug(f"Embedded {len(texts)} text(s) into {embeddings.shape} with '{model}'.")
    return embeddings

  @retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
  )
  async def _embedding_request(self, input: List[str], model: str) -> Any:
    extra = {"dimensions": self.embedding_dim} if self.send_dimensions else {}
    async with AsyncExitStack() as stack:
      await _enter_limiters(stack, self.limiters)
      return await self.embedding_async_client.embeddings.create(
        model=model, input=input, encoding_format="float", **extra
      )
