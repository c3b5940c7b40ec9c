"""Graph repositories for the muralla knowledge graph.

A graph repository persists document chunks (with their embeddings), entities and
the typed relations between them, and answers the hybrid retrieval, reasoning and
visualization queries.

Implementations:
    - IGraphRepository: in-process directed igraph.Graph, optionally persisted to a
      picklez file; the default.
    - Neo4jGraphRepository: Neo4j through the async driver, with a native cosine
      vector index over chunk embeddings.

Attributes:
    __all__: List of public classes exported from the storage module.
"""

__all__ = [
    "BaseGraphRepository",
    "DefaultGraphRepository",
    "IGraphRepository",
    "IGraphRepositoryConfig",
    "Neo4jGraphRepository",
    "EMPTY_GRAPH_SENTINEL",
    "INFERRED_PREFIX",
    "MENTIONS",
]

from ._base import EMPTY_GRAPH_SENTINEL, INFERRED_PREFIX, MENTIONS, BaseGraphRepository
from ._gdb_igraph import IGraphRepository, IGraphRepositoryConfig
from ._gdb_neo4j import Neo4jGraphRepository

DefaultGraphRepository = IGraphRepository
