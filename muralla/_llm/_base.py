"""Base classes and utilities for Language Model, Embedding and AI capability services.

This module provides the foundational abstract classes and utility functions for
integrating OpenAI-compatible providers into the muralla knowledge graph.

Classes:
    BaseLLMService: Interface for chat models with structured outputs
    BaseEmbeddingService: Interface for embedding models
    BaseAIService: The AI capability consumed by the ingestion, reasoning and query services
    NoopAsyncContextManager: A context manager that performs no operations

Functions:
    format_and_send_prompt: Retrieves a prompt from the PROMPTS registry, formats it,
        and sends it to an LLM service with optional system prompts
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Type, TypeVar, Union

import numpy as np
from pydantic import BaseModel

from muralla._config import AIConfig
from muralla._models import BaseModelAlias
from muralla._prompt import PROMPTS
from muralla._types import TEmbedding, TInferenceResult, TKnowledgeExtraction

T_model = TypeVar("T_model", bound=Union[BaseModel, BaseModelAlias])
TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", re.UNICODE)


async def format_and_send_prompt(
  prompt_key: str,
  llm: "BaseLLMService",
  format_kwargs: dict[str, Any],
  response_model: Type[T_model],
  **args: Any,
) -> Tuple[T_model, list[dict[str, str]]]:
  """Get a prompt, format it with the supplied args, and send it to the LLM.

  If a system prompt is provided (i.e. PROMPTS contains a key named
  '{prompt_key}_system'), it will use both the system and prompt entries:
      - System prompt: PROMPTS[prompt_key + '_system']
      - Message prompt: PROMPTS[prompt_key + '_prompt']

  Otherwise, it will default to using the single prompt defined by:
      - PROMPTS[prompt_key]

  Args:
      prompt_key (str): The key for the prompt in the PROMPTS dictionary.
      llm (BaseLLMService): The LLM service to use for sending the message.
      format_kwargs (dict[str, Any]): Dictionary of arguments to format the prompt.
      response_model (Type[T_model]): The expected response model.
      **args (Any): Additional keyword arguments to pass to the LLM.

  Returns:
      Tuple[T_model, list[dict[str, str]]]: The response from the LLM.
  """
  system_key = prompt_key + "_system"

  if system_key in PROMPTS:
    system = PROMPTS[system_key]
    prompt = PROMPTS[prompt_key + "_prompt"]
    formatted_system = system.format(**format_kwargs)
    formatted_prompt = prompt.format(**format_kwargs)
    return await llm.send_message(
      system_prompt=formatted_system, prompt=formatted_prompt, response_model=response_model, **args
    )
  else:
    prompt = PROMPTS[prompt_key]
    formatted_prompt = prompt.format(**format_kwargs)
    return await llm.send_message(prompt=formatted_prompt, response_model=response_model, **args)


@dataclass
class BaseLLMService:
  """Abstract base class for Language Model service implementations.

  Attributes:
      model (str): The name of the chat model to use.
      base_url (Optional[str]): Endpoint of the OpenAI-compatible API; None means the
          provider SDK default.
      api_key (Optional[str]): The API key for authentication.
      llm_async_client (Any): Async client instance, built in `__post_init__`.
      max_requests_concurrent (int): Maximum number of concurrent requests. Defaults
          to the CONCURRENT_TASK_LIMIT environment variable (1024 if not set).
      max_requests_per_minute (int): Maximum number of requests per minute.
      max_requests_per_second (int): Maximum number of requests per second.
      rate_limit_concurrency (bool): Whether to enforce the concurrency limit.
      rate_limit_per_minute (bool): Whether to enforce the per-minute limit.
      rate_limit_per_second (bool): Whether to enforce the per-second limit.
  """

  model: str = field()
  base_url: Optional[str] = field(default=None)
  api_key: Optional[str] = field(default=None, repr=False)
  llm_async_client: Any = field(init=False, default=None)
  max_requests_concurrent: int = field(default=int(os.getenv("CONCURRENT_TASK_LIMIT", 1024)))
  max_requests_per_minute: int = field(default=500)
  max_requests_per_second: int = field(default=60)
  rate_limit_concurrency: bool = field(default=True)
  rate_limit_per_minute: bool = field(default=False)
  rate_limit_per_second: bool = field(default=False)

  def count_tokens(self, text: str) -> int:
    """Approximate token count using a Unicode-aware word/punctuation pattern."""
    return len(TOKEN_PATTERN.findall(text))

  async def send_message(
    self,
    prompt: str,
    system_prompt: str | None = None,
    response_model: Type[T_model] | None = None,
    **kwargs: Any,
  ) -> Tuple[T_model, list[dict[str, str]]]:
    """Send a message to the language model and receive a structured response.

    Args:
        prompt (str): The user message.
        system_prompt (str, optional): System-level instructions. Defaults to None.
        response_model (Type[T_model], optional): Pydantic model or BaseModelAlias class
            the response must be parsed into. Defaults to None (plain response).
        **kwargs (Any): Provider-specific parameters such as temperature.

    Returns:
        Tuple[T_model, list[dict[str, str]]]: The parsed response and the exchanged
            messages.
    """
    raise NotImplementedError


@dataclass
class BaseEmbeddingService:
  """Abstract base class for embedding model service implementations.

  Attributes:
      embedding_dim (int): Length of the vectors produced by the model.
      model (Optional[str]): The name of the embedding model to use.
      base_url (Optional[str]): Endpoint of the OpenAI-compatible API.
      api_key (Optional[str]): The API key for authentication.
      max_requests_concurrent (int): Maximum number of concurrent requests.
      max_requests_per_minute (int): Maximum number of requests per minute.
      max_requests_per_second (int): Maximum number of requests per second.
      rate_limit_concurrency (bool): Whether to enforce the concurrency limit.
      rate_limit_per_minute (bool): Whether to enforce the per-minute limit.
      rate_limit_per_second (bool): Whether to enforce the per-second limit.
      embedding_async_client (Any): Async client instance, built in `__post_init__`.
  """

  embedding_dim: int = field(default=1536)
  model: Optional[str] = field(default="text-embedding-3-small")
  base_url: Optional[str] = field(default=None)
  api_key: Optional[str] = field(default=None, repr=False)
  max_requests_concurrent: int = field(default=int(os.getenv("CONCURRENT_TASK_LIMIT", 1024)))
  max_requests_per_minute: int = field(default=500)  # Tier 1 OpenAI RPM
  max_requests_per_second: int = field(default=100)
  rate_limit_concurrency: bool = field(default=True)
  rate_limit_per_minute: bool = field(default=True)
  rate_limit_per_second: bool = field(default=False)

  embedding_async_client: Any = field(init=False, default=None)

  async def encode(self, texts: list[str], model: Optional[str] = None) -> np.ndarray[Any, np.dtype[np.float32]]:
    """Encode texts into an array of shape (len(texts), embedding_dim)."""
    raise NotImplementedError


@dataclass
class BaseAIService:
  """The AI capability used by the knowledge graph services.

  Implementations own whatever clients they need and must make `set_config` atomic:
  a call that starts after `set_config` returns uses the new configuration, and a call
  in flight when it starts completes with the old one.
  """

  async def embed(self, text: str) -> TEmbedding:
    """Return the embedding of `text`.

    Raises:
        AIServiceError: If the provider call fails or returns no vector.
    """
    raise NotImplementedError

  async def extract(self, text: str) -> TKnowledgeExtraction:
    """Extract entities and relations from `text`.

    Raises:
        AIServiceError: If the provider call fails.
        ResponseParseError: If the response does not match the extraction schema.
    """
    raise NotImplementedError

  async def infer(self, prompt: str) -> TInferenceResult:
    """Send a fully formatted reasoning prompt and parse the proposed relations.

    Raises:
        AIServiceError: If the provider call fails.
        ResponseParseError: If the response does not match the inference schema.
    """
    raise NotImplementedError

  async def answer(self, question: str, context: str) -> str:
    """Answer `question` using only the rendered retrieval `context`."""
    raise NotImplementedError

  async def get_config(self) -> AIConfig:
    raise NotImplementedError

  async def set_config(self, config: AIConfig) -> None:
    raise NotImplementedError


class NoopAsyncContextManager:
  """A no-operation async context manager, used when a rate limit is disabled."""

  async def __aenter__(self) -> "NoopAsyncContextManager":
    return self

  async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
    pass
