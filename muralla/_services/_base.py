"""Base service classes for the muralla document pipeline.

This module defines the abstract base classes for the four services that sit between
the AI capability and the graph repository:

1. BaseChunkingService: Splits a document into bounded segments
2. BaseIngestionService: Embeds, stores and extracts knowledge from each segment
3. BaseReasoningService: Asks the LLM for relations implied by the stored graph
4. BaseQueryService: Answers a question from hybrid retrieval context

Services never create their collaborators; they receive the AI capability and the
repository when they are constructed, so any implementation of either can be plugged in.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from muralla._llm import BaseAIService
from muralla._storage import BaseGraphRepository
from muralla._types import TChatAnswer, TInferredRelation

# Receives human-readable progress lines; may be sync or async
TProgressSink = Callable[[str], Optional[Awaitable[None]]]


@dataclass
class BaseChunkingService:
    """Base class for document chunking services.

    Chunking is the first stage of ingestion: the document is cut into segments small
    enough for one embedding request and one extraction prompt each.
    """

    def split(self, text: str) -> List[str]:
        """Split `text` into consecutive segments whose concatenation equals `text`.

        Raises:
            NotImplementedError: Must be implemented by concrete subclasses.
        """
        raise NotImplementedError


@dataclass
class BaseIngestionService:
    """Base class for the ingestion orchestrator.

    Attributes:
        ai_service: Embeds chunks and extracts entities and relations from them.
        repository: Stores chunks and merges extractions into the graph.
        chunking_service: Splits documents before they are processed.
    """

    ai_service: BaseAIService = field()
    repository: BaseGraphRepository = field()
    chunking_service: BaseChunkingService = field(default_factory=BaseChunkingService)

    async def ingest(self, content: str, progress: Optional[TProgressSink] = None) -> str:
        """Turn one document into chunks, embeddings and graph knowledge.

        Args:
            content: Raw document text.
            progress: Optional sink for status lines.

        Returns:
            The document group id shared by the ingestion run.

        Raises:
            DatabaseError: If the repository rejects a write; earlier chunks stay stored.
        """
        raise NotImplementedError


@dataclass
class BaseReasoningService:
    """Base class for the graph reasoning orchestrator."""

    ai_service: BaseAIService = field()
    repository: BaseGraphRepository = field()

    async def infer(self) -> List[TInferredRelation]:
        """Run one reasoning pass over the stored graph and persist what it proposes.

        Returns:
            The relations proposed by the model (possibly empty).
        """
        raise NotImplementedError


@dataclass
class BaseQueryService:
    """Base class for question answering over the knowledge graph."""

    ai_service: BaseAIService = field()
    repository: BaseGraphRepository = field()

    async def answer(self, question: str) -> TChatAnswer:
        raise NotImplementedError
