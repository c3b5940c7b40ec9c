"""Graph repository backed by Neo4j.

Chunks are stored as `(:DocumentChunk {id, content, embedding})` nodes indexed by a
native cosine vector index named `chunk_embeddings`; entities are `(:Entity {name,
category})` nodes with a uniqueness constraint on `name`. Every multi-statement write
runs inside one managed transaction (`session.execute_write`), so a chunk's entities,
relations and mentions are committed together or not at all.

Relation kinds come from LLM output, so they are normalized and backtick-quoted before
being spliced into Cypher; everything else is passed as a query parameter.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from muralla._config import Neo4jConfig
from muralla._exceptions import DatabaseError
from muralla._models import dump_to_relation_lines
from muralla._types import (
    DEFAULT_CATEGORY,
    TChunk,
    TEdgeView,
    TEmbedding,
    TGraphView,
    THybridContext,
    TInferredRelation,
    TKnowledgeExtraction,
    TNodeView,
)
from muralla._utils import logger, normalize_relation_type

from ._base import (
    DEFAULT_REASONING_CONTEXT_LIMIT,
    EMPTY_GRAPH_SENTINEL,
    FULL_GRAPH_EDGE_LIMIT,
    NEIGHBORHOOD_EDGE_LIMIT,
    BaseGraphRepository,
    inferred_relation_kind,
)

VECTOR_INDEX_NAME = "chunk_embeddings"


def quote_relation_kind(kind: str) -> str:
    """Backtick-quote a relationship type so any character survives in Cypher."""
    return "`" + kind.replace("`", "``") + "`"


@dataclass
class Neo4jGraphRepository(BaseGraphRepository):
    """Graph repository talking to Neo4j through the async driver.

    Attributes:
        config: Connection settings. Defaults to `Neo4jConfig.from_env()`.
        driver: Pre-built driver; when None one is created from `config`.
        embedding_dim: Dimension enforced on saved and queried embeddings. Set by
            `create_indexes`; None disables the check.
    """

    config: Neo4jConfig = field(default_factory=Neo4jConfig.from_env)
    driver: Optional[AsyncDriver] = field(default=None)
    embedding_dim: Optional[int] = field(default=None)

    def __post_init__(self):
        if self.driver is None:
            self.driver = AsyncGraphDatabase.driver(
                self.config.uri, auth=(self.config.user, self.config.password.get_secret_value())
            )
            logger.info(f"Connecting to Neo4j at {self.config.uri}")

    async def _execute(self, query: str, params: Optional[Dict[str, Any]] = None, write: bool = True):
        """Run one statement in a managed transaction and return its records as dicts."""

        async def _work(tx):
            result = await tx.run(query, params or {})
            return [record.data() async for record in result]

        return await self._transaction(_work, write=write)

    async def _transaction(self, work, write: bool = True):
        assert self.driver is not None
        try:
            async with self.driver.session(database=self.config.database) as session:
                if write:
                    return await session.execute_write(work)
                return await session.execute_read(work)
        except (Neo4jError, DriverError) as e:
            logger.error(f"Neo4j error: {e}")
            raise DatabaseError(str(e)) from e

    def _check_dimension(self, embedding: TEmbedding, what: str) -> List[float]:
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or (self.embedding_dim is not None and vector.shape[0] != self.embedding_dim):
            raise DatabaseError(
                f"Embedding dimension mismatch for {what}: expected {self.embedding_dim}, got {vector.shape}"
            )
        return vector.tolist()

    async def create_indexes(self, embedding_dim: int) -> None:
        dim = int(embedding_dim)
        if dim <= 0:
            raise DatabaseError(f"Invalid embedding dimension {embedding_dim}")
        await self._execute(
            f"CREATE VECTOR INDEX {VECTOR_INDEX_NAME} IF NOT EXISTS FOR (c:DocumentChunk) ON (c.embedding) "
            f"OPTIONS {{indexConfig: {{`vector.dimensions`: {dim}, `vector.similarity_function`: 'cosine'}}}}"
        )
        await self._execute("CREATE CONSTRAINT entity_name IF NOT EXISTS FOR (e:Entity) REQUIRE e.name IS UNIQUE")
        await self._execute("CREATE CONSTRAINT chunk_id IF NOT EXISTS FOR (c:DocumentChunk) REQUIRE c.id IS UNIQUE")

        # IF NOT EXISTS keeps an older index untouched, whatever its dimension
        existing = await self._index_dimension()
        if existing is not None and existing != dim:
            raise DatabaseError(
                f"Vector index '{VECTOR_INDEX_NAME}' holds {existing}-dimensional embeddings, cannot use {dim}"
            )
        self.embedding_dim = dim

    async def _index_dimension(self) -> Optional[int]:
        rows = await self._execute(
            "SHOW INDEXES YIELD name, options WHERE name = $name RETURN options",
            {"name": VECTOR_INDEX_NAME},
            write=False,
        )
        for row in rows:
            index_config = (row.get("options") or {}).get("indexConfig") or {}
            if index_config.get("vector.dimensions") is not None:
                return int(index_config["vector.dimensions"])
        return None

    async def reset_database(self) -> None:
        await self._execute("MATCH (n) DETACH DELETE n")
        logger.info("Neo4j graph reset.")

    async def save_chunk(self, chunk: TChunk) -> None:
        embedding = self._check_dimension(chunk.embedding, f"chunk '{chunk.id}'")
        await self._execute(
            "CREATE (c:DocumentChunk {id: $id, content: $content, embedding: $embedding})",
            {"id": chunk.id, "content": chunk.content, "embedding": embedding},
        )

    async def save_graph(self, chunk_id: str, extraction: TKnowledgeExtraction) -> None:
        entities = {e.name: e.category or DEFAULT_CATEGORY for e in extraction.entities if e.name}

        async def _work(tx):
            for name, category in entities.items():
                await tx.run(
                    "MERGE (e:Entity {name: $name}) ON CREATE SET e.category = $category",
                    {"name": name, "category": category},
                )

            for relation in extraction.relations:
                kind = normalize_relation_type(relation.relation_type)
                if not kind:
                    continue
                await tx.run(
                    "MATCH (a:Entity {name: $source}), (b:Entity {name: $target}) "
                    f"MERGE (a)-[:{quote_relation_kind(kind)}]->(b)",
                    {"source": relation.source, "target": relation.target},
                )

            await tx.run(
                "MATCH (c:DocumentChunk {id: $cid}), (e:Entity) WHERE e.name IN $names MERGE (c)-[:MENTIONS]->(e)",
                {"cid": chunk_id, "names": list(entities)},
            )

        await self._transaction(_work)

    async def save_inferred_relations(self, relations: Iterable[TInferredRelation]) -> None:
        relations = list(relations)

        async def _work(tx):
            for relation in relations:
                kind = inferred_relation_kind(relation.relation)
                if kind == inferred_relation_kind(""):
                    continue
                await tx.run(
                    "MATCH (a:Entity {name: $source}), (b:Entity {name: $target}) "
                    f"MERGE (a)-[r:{quote_relation_kind(kind)}]->(b) "
                    "ON CREATE SET r.reasoning = $reasoning, r.is_ai_generated = true",
                    {"source": relation.source, "target": relation.target, "reasoning": relation.reasoning},
                )

        await self._transaction(_work)

    async def find_hybrid_context(self, embedding: TEmbedding, limit: int) -> List[THybridContext]:
        if limit <= 0:
            return []
        vector = self._check_dimension(embedding, "query")
        rows = await self._execute(
            f"CALL db.index.vector.queryNodes('{VECTOR_INDEX_NAME}', $limit, $embedding) "
            "YIELD node AS chunk, score "
            "OPTIONAL MATCH (chunk)-[:MENTIONS]->(e:Entity) "
            "WITH chunk, score, collect(DISTINCT e.name) AS entities "
            "RETURN chunk.id AS id, chunk.content AS content, entities "
            "ORDER BY score DESC",
            {"limit": int(limit), "embedding": vector},
            write=False,
        )
        return [
            THybridContext(chunk_id=row["id"], content=row["content"] or "", entities=sorted(set(row["entities"] or [])))
            for row in rows
        ]

    async def get_graph_context_for_reasoning(self, limit: int = DEFAULT_REASONING_CONTEXT_LIMIT) -> str:
        if limit <= 0:
            return EMPTY_GRAPH_SENTINEL
        rows = await self._execute(
            "MATCH (n:Entity)-[r]->(m:Entity) "
            "WITH n, r, m, COUNT { (n)--(:Entity) } + COUNT { (m)--(:Entity) } AS degree "
            "ORDER BY degree DESC "
            "LIMIT $limit "
            "RETURN n.name AS source, type(r) AS kind, m.name AS target",
            {"limit": int(limit)},
            write=False,
        )
        if not rows:
            return EMPTY_GRAPH_SENTINEL
        return dump_to_relation_lines((row["source"], row["kind"], row["target"]) for row in rows)

    async def get_full_graph(self) -> TGraphView:
        rows = await self._execute(
            "MATCH (n:Entity)-[r]->(m:Entity) "
            "RETURN n.name AS source, n.category AS source_category, type(r) AS kind, "
            "m.name AS target, m.category AS target_category "
            "LIMIT $limit",
            {"limit": FULL_GRAPH_EDGE_LIMIT},
            write=False,
        )
        view = TGraphView()
        seen = set()
        for row in rows:
            for name, category in ((row["source"], row["source_category"]), (row["target"], row["target_category"])):
                if name not in seen:
                    seen.add(name)
                    view.nodes.append(TNodeView(id=name, label=name, group=category or DEFAULT_CATEGORY))
            view.edges.append(TEdgeView(source=row["source"], target=row["target"], label=row["kind"]))
        return view

    async def get_concept_neighborhood(self, concept: str) -> TGraphView:
        rows = await self._execute(
            "MATCH (center:Entity {name: $name})-[r]-(neighbor:Entity) "
            "RETURN center.name AS center, center.category AS center_category, type(r) AS kind, "
            "startNode(r) = center AS is_source, neighbor.name AS neighbor, neighbor.category AS neighbor_category "
            "LIMIT $limit",
            {"name": concept, "limit": NEIGHBORHOOD_EDGE_LIMIT},
            write=False,
        )

        nodes: Dict[str, TNodeView] = {}
        edges: List[TEdgeView] = []
        for row in rows:
            nodes.setdefault(
                row["center"], TNodeView(id=row["center"], label=row["center"], group=row["center_category"] or DEFAULT_CATEGORY)
            )
            nodes.setdefault(
                row["neighbor"],
                TNodeView(id=row["neighbor"], label=row["neighbor"], group=row["neighbor_category"] or DEFAULT_CATEGORY),
            )
            if row["is_source"]:
                edges.append(TEdgeView(source=row["center"], target=row["neighbor"], label=row["kind"]))
            else:
                edges.append(TEdgeView(source=row["neighbor"], target=row["center"], label=row["kind"]))

        if not rows:
            center = await self._execute(
                "MATCH (center:Entity {name: $name}) RETURN center.name AS center, center.category AS center_category",
                {"name": concept},
                write=False,
            )
            for row in center[:1]:
                nodes[row["center"]] = TNodeView(
                    id=row["center"], label=row["center"], group=row["center_category"] or DEFAULT_CATEGORY
                )

        return TGraphView(nodes=sorted(nodes.values(), key=lambda n: n.id), edges=edges)

    async def close(self) -> None:
        if self.driver is not None:
            await self.driver.close()
