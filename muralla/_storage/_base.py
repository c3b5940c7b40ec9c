"""Base class for graph repositories.

A graph repository persists the three kinds of records produced by ingestion and
reasoning, and answers the read queries used by retrieval, reasoning and visualization:

- DocumentChunk nodes, holding the chunk text and its embedding
- Entity nodes, unique by name, with the category recorded when first seen
- Typed Entity -> Entity edges (extracted relations and AI-generated inferred relations)
- MENTIONS edges from a chunk to every entity extracted from it

Relation labels are normalized with `normalize_relation_type` before becoming edge
kinds; inferred relations get the `INFERRED_` prefix and carry `is_ai_generated` and
`reasoning` properties.
"""

from dataclasses import dataclass
from typing import Iterable, List

from muralla._types import TChunk, TEmbedding, TGraphView, THybridContext, TInferredRelation, TKnowledgeExtraction
from muralla._utils import normalize_relation_type

# Kind of the edge linking a chunk to the entities it names
MENTIONS = "MENTIONS"

# Prefix of the edge kinds created by the reasoning pass
INFERRED_PREFIX = "INFERRED_"

# Text returned to the reasoning pass when there is no entity relation at all
EMPTY_GRAPH_SENTINEL = "The graph is empty."

DEFAULT_REASONING_CONTEXT_LIMIT = 300
FULL_GRAPH_EDGE_LIMIT = 1000
NEIGHBORHOOD_EDGE_LIMIT = 100


def inferred_relation_kind(relation: str) -> str:
    """Edge kind used to store an inferred relation, e.g. "leads to" -> "INFERRED_LEADS_TO"."""
    return INFERRED_PREFIX + normalize_relation_type(relation)


@dataclass
class BaseGraphRepository:
    """Abstract graph repository.

    All methods raise `DatabaseError` when the underlying store fails. Writes are
    additive: nothing is ever updated in place except through `reset_database`.
    """

    async def create_indexes(self, embedding_dim: int) -> None:
        """Ensure the vector index over chunk embeddings and the unique entity-name constraint.

        Idempotent. The dimension given here is the one every saved or queried
        embedding must have.
        """
        raise NotImplementedError

    async def reset_database(self) -> None:
        """Delete every node and edge. Indexes and constraints survive."""
        raise NotImplementedError

    async def save_chunk(self, chunk: TChunk) -> None:
        """Persist a new chunk.

        Raises:
            DatabaseError: If the id already exists or the embedding has the wrong length.
        """
        raise NotImplementedError

    async def save_graph(self, chunk_id: str, extraction: TKnowledgeExtraction) -> None:
        """Merge the extraction into the graph as one atomic write.

        Entities are merged by name (category set only on creation), relations whose
        endpoints both exist are merged as normalized edge kinds, and the chunk gets a
        MENTIONS edge to every extracted entity.
        """
        raise NotImplementedError

    async def save_inferred_relations(self, relations: Iterable[TInferredRelation]) -> None:
        """Merge AI-proposed relations as INFERRED_<KIND> edges in one atomic write.

        Relations whose endpoints are not existing entities are skipped.
        """
        raise NotImplementedError

    async def find_hybrid_context(self, embedding: TEmbedding, limit: int) -> List[THybridContext]:
        """Return up to `limit` chunks ranked by cosine similarity, with the entities each mentions."""
        raise NotImplementedError

    async def get_graph_context_for_reasoning(self, limit: int = DEFAULT_REASONING_CONTEXT_LIMIT) -> str:
        """Render up to `limit` entity relations as `(A) -[KIND]-> (B)` lines.

        Relations touching the best-connected entities come first. An empty graph
        yields `EMPTY_GRAPH_SENTINEL`.
        """
        raise NotImplementedError

    async def get_full_graph(self) -> TGraphView:
        """Return up to FULL_GRAPH_EDGE_LIMIT entity relations as a visualization view."""
        raise NotImplementedError

    async def get_concept_neighborhood(self, concept: str) -> TGraphView:
        """Return the relations touching `concept` (up to NEIGHBORHOOD_EDGE_LIMIT).

        A concept without relations yields a view holding only its node; an unknown
        concept yields an empty view.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections or flush state. Safe to call more than once."""
        pass
