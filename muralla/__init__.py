"""muralla: a knowledge graph built by LLMs from your documents.

Documents are split into chunks, each chunk is embedded and stored, and an LLM extracts
the entities it names and the relations between them. Questions are answered from the
chunks most similar to the question together with the concepts those chunks mention
(hybrid retrieval), and reasoning passes let the LLM propose relations implied by the
graph, stored as AI-generated INFERRED_ edges.

Main Components:
    KnowledgeGraph: Entry point wiring the AI capability, a graph repository and the
        ingestion, reasoning and query services.
    AIConfig: Provider, models, key and embedding dimension of the AI capability;
        swappable at runtime.

Typical Usage:
    >>> from muralla import KnowledgeGraph
    >>> graph = KnowledgeGraph(working_dir="./my_graph")
    >>> graph.setup()
    >>> graph.insert("Paris is the capital of France.")
    >>> answer = graph.query("What is the capital of France?")
"""

__all__ = [
    "AIConfig",
    "AIProvider",
    "KnowledgeGraph",
    "Neo4jConfig",
    "ProgressStream",
]

from dataclasses import dataclass, field
from typing import Optional, Type

from muralla._config import AIConfig, AIProvider, Neo4jConfig
from muralla._llm import BaseAIService, DefaultAIService
from muralla._progress import ProgressStream
from muralla._services import (
    BaseChunkingService,
    BaseIngestionService,
    BaseQueryService,
    BaseReasoningService,
    DefaultChunkingService,
    DefaultIngestionService,
    DefaultQueryService,
    DefaultReasoningService,
)
from muralla._storage import BaseGraphRepository, IGraphRepository, IGraphRepositoryConfig

from ._graphrag import BaseKnowledgeGraph


@dataclass
class KnowledgeGraph(BaseKnowledgeGraph):
    """Knowledge graph with hybrid retrieval and LLM reasoning.

    Attributes:
        working_dir (Optional[str]): Where the default igraph repository keeps its file.
            None keeps the graph in memory. Ignored when `config.repository` is given.
        config (Config): Services and storage backend. See Config for details.

    Example:
        >>> graph = KnowledgeGraph(
        ...     config=KnowledgeGraph.Config(
        ...         ai_service=DefaultAIService(config=AIConfig(provider=AIProvider.OLLAMA, model="llama3")),
        ...         repository=Neo4jGraphRepository(),
        ...     )
        ... )
        >>> await graph.async_setup()
        >>> async for line in graph.ingest_stream(text):
        ...     print(line)
    """

    @dataclass
    class Config:
        """Configuration for the knowledge graph.

        Core Services:
            ai_service: Embeddings, extraction, inference and answers.
                Default: DefaultAIService configured from the environment.
            repository: Graph storage backend. Default: IGraphRepository in `working_dir`.
            chunking_service: Document splitter. Default: 24,000-character segments.

        Service Classes:
            ingestion_service_cls: Default: DefaultIngestionService
            reasoning_service_cls: Default: DefaultReasoningService
            query_service_cls: Default: DefaultQueryService

        Retrieval:
            top_k: Number of chunks retrieved to answer a question. Default: 3.
        """

        ai_service: BaseAIService = field(default_factory=lambda: DefaultAIService())
        repository: Optional[BaseGraphRepository] = field(default=None)
        chunking_service: BaseChunkingService = field(default_factory=lambda: DefaultChunkingService())

        ingestion_service_cls: Type[BaseIngestionService] = field(default=DefaultIngestionService)
        reasoning_service_cls: Type[BaseReasoningService] = field(default=DefaultReasoningService)
        query_service_cls: Type[BaseQueryService] = field(default=DefaultQueryService)

        top_k: int = field(default=3)

    working_dir: Optional[str] = field(default=None)
    config: Config = field(default_factory=Config)

    def __post_init__(self):
        super().__post_init__()

        self.ai_service = self.config.ai_service
        if self.config.repository is None:
            self.repository = IGraphRepository(config=IGraphRepositoryConfig(working_dir=self.working_dir))
        else:
            self.repository = self.config.repository

        self.ingestion_service = self.config.ingestion_service_cls(
            ai_service=self.ai_service,
            repository=self.repository,
            chunking_service=self.config.chunking_service,
        )
        self.reasoning_service = self.config.reasoning_service_cls(
            ai_service=self.ai_service, repository=self.repository
        )
        self.query_service = self.config.query_service_cls(ai_service=self.ai_service, repository=self.repository)
        if isinstance(self.query_service, DefaultQueryService):
            self.query_service.top_k = self.config.top_k
