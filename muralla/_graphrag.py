"""Main knowledge graph module.

This module contains BaseKnowledgeGraph, which wires the AI capability, the graph
repository and the pipeline services together and exposes every operation in both
an async and a synchronous flavour:

- Document ingestion, either awaited or streamed as progress lines
- Question answering over hybrid retrieval context
- Reasoning passes that add inferred relations
- Visualization views of the whole graph or of one concept's neighbourhood
- Index setup, reset and hot-swapping of the AI configuration
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Set

from muralla._config import AIConfig
from muralla._exceptions import DatabaseError, InvalidDocumentError, MurallaError
from muralla._llm import BaseAIService
from muralla._progress import DEFAULT_MAX_QUEUED, ProgressStream
from muralla._services import (
    BaseIngestionService,
    BaseQueryService,
    BaseReasoningService,
    TProgressSink,
)
from muralla._storage import BaseGraphRepository
from muralla._types import TChatAnswer, TGraphView, TInferredRelation
from muralla._utils import get_event_loop, logger

# Shortest stripped document worth ingesting
MIN_DOCUMENT_LENGTH = 5


@dataclass
class BaseKnowledgeGraph:
    """Core implementation of the knowledge graph.

    Attributes:
        ai_service (BaseAIService): Embeddings, extraction, inference and answers.
        repository (BaseGraphRepository): Where chunks, entities and relations live.
        ingestion_service (BaseIngestionService): Turns documents into graph knowledge.
        reasoning_service (BaseReasoningService): Proposes and stores inferred relations.
        query_service (BaseQueryService): Answers questions from retrieved fragments.
    """

    ai_service: BaseAIService = field(init=False, default_factory=lambda: BaseAIService())
    repository: BaseGraphRepository = field(init=False, default_factory=lambda: BaseGraphRepository())
    ingestion_service: BaseIngestionService = field(init=False)
    reasoning_service: BaseReasoningService = field(init=False)
    query_service: BaseQueryService = field(init=False)

    def __post_init__(self):
        self._background_tasks: Set["asyncio.Task[None]"] = set()

    @staticmethod
    def validate_document(content: str) -> str:
        """Reject documents too short to carry knowledge.

        Raises:
            InvalidDocumentError: If the stripped content has fewer than 5 characters.
        """
        if not isinstance(content, str) or len(content.strip()) < MIN_DOCUMENT_LENGTH:
            raise InvalidDocumentError("Document content is empty or too short")
        return content

    def insert(self, content: str, progress: Optional[TProgressSink] = None) -> str:
        """Ingest one document (synchronous version).

        Returns:
            The document group id.
        """
        return get_event_loop().run_until_complete(self.async_insert(content, progress))

    async def async_insert(self, content: str, progress: Optional[TProgressSink] = None) -> str:
        """Validate and ingest one document.

        Chunks whose embedding or extraction fails are skipped with a progress line;
        a repository failure aborts the document and is re-raised.

        Args:
            content: Raw document text.
            progress: Optional sink receiving status lines.

        Returns:
            The document group id.

        Raises:
            InvalidDocumentError: If the document is too short.
            DatabaseError: If the repository rejects a write.
        """
        self.validate_document(content)
        try:
            return await self.ingestion_service.ingest(content, progress)
        except Exception as e:
            logger.error(f"Error during ingestion: {e}")
            raise e

    def ingest_stream(self, content: str, maxsize: int = DEFAULT_MAX_QUEUED) -> ProgressStream:
        """Start ingesting a document in the background and return its progress stream.

        Must be called from a running event loop. The stream ends with "DONE" when the
        document has been processed, or with an error line when validation or a
        repository write failed.
        """
        stream = ProgressStream(maxsize=maxsize)
        task = asyncio.get_running_loop().create_task(self._ingest_into_stream(content, stream))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return stream

    async def _ingest_into_stream(self, content: str, stream: ProgressStream) -> None:
        try:
            await self.async_insert(content, stream.emit)
        except Exception as e:
            stream.close_with_error(e)
        else:
            stream.close_with_done()
        finally:
            if not stream.closed:
                stream.close_with_error(MurallaError("Ingestion cancelled"))

    def query(self, question: str) -> TChatAnswer:
        """Answer a question (synchronous version)."""
        return get_event_loop().run_until_complete(self.async_query(question))

    async def async_query(self, question: str) -> TChatAnswer:
        """Answer a question from the chunks most similar to it.

        Raises:
            AIServiceError: If embedding the question or generating the answer fails.
            DatabaseError: If retrieval fails.
        """
        try:
            return await self.query_service.answer(question)
        except Exception as e:
            logger.error(f"Error during query: {e}")
            raise e

    def reason(self) -> List[TInferredRelation]:
        """Run one reasoning pass (synchronous version)."""
        return get_event_loop().run_until_complete(self.async_reason())

    async def async_reason(self) -> List[TInferredRelation]:
        """Ask the LLM for relations implied by the graph and store them.

        Raises:
            AIServiceError: If the model call fails.
            ResponseParseError: If the answer does not match the expected schema.
            DatabaseError: If reading the context or writing the relations fails.
        """
        try:
            return await self.reasoning_service.infer()
        except Exception as e:
            logger.error(f"Error during reasoning: {e}")
            raise e

    def get_full_graph(self) -> TGraphView:
        return get_event_loop().run_until_complete(self.async_get_full_graph())

    async def async_get_full_graph(self) -> TGraphView:
        return await self.repository.get_full_graph()

    def get_concept_neighborhood(self, concept: str) -> TGraphView:
        return get_event_loop().run_until_complete(self.async_get_concept_neighborhood(concept))

    async def async_get_concept_neighborhood(self, concept: str) -> TGraphView:
        return await self.repository.get_concept_neighborhood(concept)

    def setup(self) -> bool:
        return get_event_loop().run_until_complete(self.async_setup())

    async def async_setup(self) -> bool:
        """Create the vector index and entity constraint for the configured dimension.

        A repository failure is logged as a warning rather than raised, so the graph can
        still be used for operations that do not need the index.

        Returns:
            Whether the indexes are in place.
        """
        config = await self.ai_service.get_config()
        try:
            await self.repository.create_indexes(config.embedding_dim)
        except DatabaseError as e:
            logger.warning(f"Could not create indexes: {e}")
            return False
        logger.info(f"Indexes ready for {config.embedding_dim}-dimensional embeddings.")
        return True

    def reset(self) -> None:
        return get_event_loop().run_until_complete(self.async_reset())

    async def async_reset(self) -> None:
        """Delete every chunk, entity and relation."""
        await self.repository.reset_database()

    def update_config(self, config: AIConfig) -> None:
        return get_event_loop().run_until_complete(self.async_update_config(config))

    async def async_update_config(self, config: AIConfig) -> None:
        """Replace the AI configuration once in-flight AI calls have finished.

        Raises:
            InvalidConfigError: If clients cannot be built for the new configuration; the
                previous configuration stays active.
        """
        previous = await self.ai_service.get_config()
        await self.ai_service.set_config(config)
        if previous.embedding_dim != config.embedding_dim:
            logger.warning(
                f"Embedding dimension changed from {previous.embedding_dim} to {config.embedding_dim}; "
                "stored chunks keep their old embeddings."
            )

    def get_config(self) -> AIConfig:
        return get_event_loop().run_until_complete(self.async_get_config())

    async def async_get_config(self) -> AIConfig:
        return await self.ai_service.get_config()

    def close(self) -> None:
        return get_event_loop().run_until_complete(self.async_close())

    async def async_close(self) -> None:
        await self.repository.close()
