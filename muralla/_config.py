"""Runtime configuration for the AI capability and the graph database.

The AI configuration is read once from the environment (optionally from a `.env`
file through python-dotenv) and can later be replaced while the system runs. The
`ConfigCell` holds the current value behind a read/write lock: readers always observe
a complete configuration and a swap waits for in-flight readers to finish.
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from dotenv import load_dotenv
from pydantic import SecretStr

from muralla._exceptions import InvalidConfigError
from muralla._utils import RWLock, logger

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OLLAMA_BASE_URL = "http://localhost:11434/v1"


class AIProvider(str, Enum):
    """Closed set of OpenAI-compatible providers the AI capability can talk to."""

    OPENAI = "openai"
    GROQ = "groq"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: str, strict: bool = True) -> "AIProvider":
        """Map a provider name to its enum member (case-insensitive).

        Args:
            value: Provider name such as "openai" or "Groq".
            strict: When False, unknown names fall back to OpenAI with a warning.

        Raises:
            InvalidConfigError: If the name is unknown and `strict` is True.
        """
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            if strict:
                raise InvalidConfigError(f"Unknown AI provider '{value}'") from e
            logger.warning(f"Unknown AI provider '{value}', falling back to '{cls.OPENAI.value}'.")
            return cls.OPENAI

    @property
    def default_base_url(self) -> Optional[str]:
        if self is AIProvider.GROQ:
            return GROQ_BASE_URL
        if self is AIProvider.OLLAMA:
            return OLLAMA_BASE_URL
        # None lets the OpenAI SDK use its own endpoint
        return None


@dataclass(frozen=True)
class AIConfig:
    """Settings used to build the LLM and embedding clients.

    Attributes:
        provider: Which OpenAI-compatible provider to call.
        model: Chat model used for extraction, reasoning and answers.
        embedding_model: Model used to embed chunks and questions.
        api_key: Provider secret; never logged or printed.
        embedding_dim: Length of every embedding vector.
        base_url: Optional endpoint override; takes precedence over the provider default.
    """

    provider: AIProvider = field(default=AIProvider.OPENAI)
    model: str = field(default="gpt-4o")
    embedding_model: str = field(default="text-embedding-3-small")
    api_key: SecretStr = field(default_factory=lambda: SecretStr(""))
    embedding_dim: int = field(default=1536)
    base_url: Optional[str] = field(default=None)

    def __post_init__(self):
        if not isinstance(self.provider, AIProvider):
            object.__setattr__(self, "provider", AIProvider.parse(str(self.provider)))
        if not isinstance(self.api_key, SecretStr):
            object.__setattr__(self, "api_key", SecretStr(str(self.api_key)))
        if self.embedding_dim <= 0:
            raise InvalidConfigError(f"Embedding dimension must be positive, got {self.embedding_dim}")

    @property
    def resolved_base_url(self) -> Optional[str]:
        return self.base_url or self.provider.default_base_url

    def with_changes(self, **changes: Any) -> "AIConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "AIConfig":
        """Build the configuration from AI_* environment variables.

        Variables:
            AI_PROVIDER: openai (default), groq or ollama; unknown values fall back to openai.
            AI_API_KEY: provider key, falling back to OPENAI_API_KEY, then to an empty key.
            AI_MODEL: chat model, default "gpt-4o".
            AI_EMBEDDING_MODEL: embedding model, default "text-embedding-3-small".
            AI_EMBEDDING_DIM: integer dimension, default 1536.
            AI_BASE_URL: optional endpoint override.

        Raises:
            InvalidConfigError: If AI_EMBEDDING_DIM is not an integer.
        """
        load_dotenv(dotenv_path)

        raw_dim = os.getenv("AI_EMBEDDING_DIM", "1536")
        try:
            embedding_dim = int(raw_dim)
        except ValueError as e:
            raise InvalidConfigError(f"AI_EMBEDDING_DIM must be a number, got '{raw_dim}'") from e

        return cls(
            provider=AIProvider.parse(os.getenv("AI_PROVIDER", AIProvider.OPENAI.value), strict=False),
            model=os.getenv("AI_MODEL", "gpt-4o"),
            embedding_model=os.getenv("AI_EMBEDDING_MODEL", "text-embedding-3-small"),
            api_key=SecretStr(os.getenv("AI_API_KEY") or os.getenv("OPENAI_API_KEY") or ""),
            embedding_dim=embedding_dim,
            base_url=os.getenv("AI_BASE_URL") or None,
        )


@dataclass(frozen=True)
class Neo4jConfig:
    """Connection settings for the Neo4j graph repository."""

    uri: str = field(default="bolt://localhost:7687")
    user: str = field(default="neo4j")
    password: SecretStr = field(default_factory=lambda: SecretStr(""))
    database: Optional[str] = field(default=None)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Neo4jConfig":
        """Build the configuration from NEO4J_URI, NEO4J_USER and NEO4J_PASS.

        Raises:
            InvalidConfigError: If one of the three variables is missing.
        """
        load_dotenv(dotenv_path)
        missing = [name for name in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASS") if not os.getenv(name)]
        if missing:
            raise InvalidConfigError(f"Missing Neo4j settings: {', '.join(missing)}")
        return cls(
            uri=os.environ["NEO4J_URI"],
            user=os.environ["NEO4J_USER"],
            password=SecretStr(os.environ["NEO4J_PASS"]),
            database=os.getenv("NEO4J_DATABASE") or None,
        )


GTValue = TypeVar("GTValue")


class ConfigCell(Generic[GTValue]):
    """Holder of a value that many tasks read and an administrator occasionally replaces.

    `get()` returns the current value under the shared lock; `swap()` replaces it under
    the exclusive lock, optionally running a callback that rebuilds state derived from
    the new value before any reader can observe it.
    """

    def __init__(self, value: GTValue) -> None:
        self._value = value
        self.lock = RWLock()

    def peek(self) -> GTValue:
        return self._value

    async def get(self) -> GTValue:
        async with self.lock.read():
            return self._value

    async def swap(self, value: GTValue, on_swap: Optional[Callable[[GTValue], None]] = None) -> GTValue:
        """Atomically replace the value and return the previous one.

        If `on_swap` raises, the previous value is kept and the error propagates.
        """
        async with self.lock.write():
            previous = self._value
            if on_swap is not None:
                on_swap(value)
            self._value = value
            return previous
