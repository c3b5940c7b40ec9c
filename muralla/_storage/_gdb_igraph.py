"""In-process graph repository built on the igraph library.

The whole knowledge graph lives in one directed igraph.Graph:

- Vertices carry a `label` attribute ("DocumentChunk" or "Entity") and a `key`
  (the chunk id or the entity name). Chunk vertices also hold `content` and
  `embedding`; entity vertices hold `category`.
- Edges carry a `type` attribute (MENTIONS, a normalized relation kind or an
  INFERRED_ kind). Inferred edges additionally hold `reasoning` and `is_ai_generated`.

Similarity search is brute-force cosine over a numpy matrix of chunk embeddings, which
is rebuilt from the vertex attributes whenever the graph is loaded. When a working
directory is configured the graph is persisted after every write using igraph's
picklez format (compressed pickle).
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import igraph as ig  # type: ignore
import numpy as np
import numpy.typing as npt

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
from muralla._utils import logger, normalize, normalize_relation_type

from ._base import (
    DEFAULT_REASONING_CONTEXT_LIMIT,
    EMPTY_GRAPH_SENTINEL,
    FULL_GRAPH_EDGE_LIMIT,
    MENTIONS,
    NEIGHBORHOOD_EDGE_LIMIT,
    BaseGraphRepository,
    inferred_relation_kind,
)

CHUNK_LABEL = "DocumentChunk"
ENTITY_LABEL = "Entity"


@dataclass
class IGraphRepositoryConfig:
    """Configuration for the igraph repository.

    Attributes:
        working_dir: Directory where the graph file is kept. None keeps the graph in
            memory only.
        file_name: Name of the picklez file inside `working_dir`.
        embedding_dim: Dimension of chunk embeddings. Usually set by `create_indexes`;
            when neither is given, the first saved chunk fixes it.
    """

    working_dir: Optional[str] = field(default=None)
    file_name: str = field(default="graph.picklez")
    embedding_dim: Optional[int] = field(default=None)


@dataclass
class IGraphRepository(BaseGraphRepository):
    """Graph repository backed by a directed igraph.Graph.

    Each chunk extraction and each batch of inferred relations is applied under a
    snapshot: if anything fails midway, the graph and its lookup tables are restored
    and a `DatabaseError` is raised.

    Attributes:
        config: Storage location and embedding dimension.
    """

    config: IGraphRepositoryConfig = field(default_factory=IGraphRepositoryConfig)

    def __post_init__(self):
        self._graph: ig.Graph = ig.Graph(directed=True)
        self._embedding_dim: Optional[int] = self.config.embedding_dim
        self._loaded = False
        self._reset_lookups()

    ################################################################################################
    # Lookups
    ################################################################################################

    def _reset_lookups(self) -> None:
        self._entities: Dict[str, int] = {}
        self._chunks: Dict[str, int] = {}
        self._chunk_order: List[str] = []
        self._embeddings: npt.NDArray[np.float32] = np.zeros((0, self._embedding_dim or 0), dtype=np.float32)
        self._edge_keys: Set[Tuple[int, int, str]] = set()

    def _rebuild_lookups(self) -> None:
        """Recompute name/id lookups, the edge key set and the embedding matrix from the graph."""
        self._reset_lookups()
        vectors: List[TEmbedding] = []
        for v in self._graph.vs:
            if v["label"] == ENTITY_LABEL:
                self._entities[v["key"]] = v.index
            elif v["label"] == CHUNK_LABEL:
                self._chunks[v["key"]] = v.index
                self._chunk_order.append(v["key"])
                vectors.append(v["embedding"])
        for e in self._graph.es:
            self._edge_keys.add((e.source, e.target, e["type"]))
        if vectors:
            self._embeddings = np.vstack(vectors).astype(np.float32)
            if self._embedding_dim is None:
                self._embedding_dim = self._embeddings.shape[1]

    ################################################################################################
    # Persistence
    ################################################################################################

    @property
    def _file_path(self) -> Optional[str]:
        if self.config.working_dir is None:
            return None
        return os.path.join(self.config.working_dir, self.config.file_name)

    def _ensure_loaded(self) -> None:
        """Load the persisted graph on first use.

        Raises:
            DatabaseError: If a graph file exists but cannot be loaded.
        """
        if self._loaded:
            return
        self._loaded = True

        path = self._file_path
        if path is None:
            logger.debug("Creating new volatile igraph repository.")
            return
        if not os.path.exists(path):
            logger.info(f"No data file found for graph repository '{path}'. Loading empty graph.")
            return
        try:
            self._graph = ig.Graph.Read_Picklez(path)  # type: ignore
        except Exception as e:
            t = f"Error loading graph from {path}: {e}"
            logger.error(t)
            raise DatabaseError(t) from e
        self._rebuild_lookups()
        logger.debug(f"Loaded graph repository '{path}' ({self._graph.vcount()} nodes, {self._graph.ecount()} edges).")

    def _persist(self) -> None:
        path = self._file_path
        if path is None:
            return
        try:
            if self.config.working_dir:
                os.makedirs(self.config.working_dir, exist_ok=True)
            self._graph.write_picklez(path)  # type: ignore
        except Exception as e:
            t = f"Error saving graph to {path}: {e}"
            logger.error(t)
            raise DatabaseError(t) from e

    def _snapshot(self):
        return (
            self._graph.copy(),
            dict(self._entities),
            dict(self._chunks),
            list(self._chunk_order),
            self._embeddings,
            self._embedding_dim,
            set(self._edge_keys),
        )

    def _restore(self, snapshot) -> None:
        (
            self._graph,
            self._entities,
            self._chunks,
            self._chunk_order,
            self._embeddings,
            self._embedding_dim,
            self._edge_keys,
        ) = snapshot

    ################################################################################################
    # Graph primitives
    ################################################################################################

    def _add_vertex(self, **attrs) -> int:
        index = self._graph.vcount()
        self._graph.add_vertex(**attrs)
        return index

    def _merge_edge(self, source: int, target: int, kind: str, **attrs) -> bool:
        """Add the edge unless one of the same kind already joins the two vertices."""
        key = (source, target, kind)
        if key in self._edge_keys:
            return False
        self._graph.add_edge(source, target, type=kind, **attrs)
        self._edge_keys.add(key)
        return True

    def _entity_edges(self) -> Iterable[ig.Edge]:
        entity_ids = set(self._entities.values())
        return (e for e in self._graph.es if e.source in entity_ids and e.target in entity_ids)

    def _node_view(self, index: int) -> TNodeView:
        v = self._graph.vs[index]
        return TNodeView(id=v["key"], label=v["key"], group=v["category"] or DEFAULT_CATEGORY)

    ################################################################################################
    # Repository API
    ################################################################################################

    async def create_indexes(self, embedding_dim: int) -> None:
        self._ensure_loaded()
        if embedding_dim <= 0:
            raise DatabaseError(f"Invalid embedding dimension {embedding_dim}")
        if self._embedding_dim not in (None, embedding_dim) and self._chunks:
            raise DatabaseError(
                f"Chunk index already holds {self._embedding_dim}-dimensional embeddings, cannot use {embedding_dim}"
            )
        self._embedding_dim = embedding_dim
        if not self._chunks:
            self._embeddings = np.zeros((0, embedding_dim), dtype=np.float32)
        logger.debug(f"Chunk embedding index ready ({embedding_dim} dimensions).")

    async def reset_database(self) -> None:
        self._ensure_loaded()
        self._graph = ig.Graph(directed=True)
        self._reset_lookups()
        self._persist()
        logger.info("Graph repository reset.")

    async def save_chunk(self, chunk: TChunk) -> None:
        self._ensure_loaded()
        if chunk.id in self._chunks:
            raise DatabaseError(f"Chunk '{chunk.id}' already exists")

        embedding = np.asarray(chunk.embedding, dtype=np.float32)
        if embedding.ndim != 1 or embedding.shape[0] == 0:
            raise DatabaseError(f"Chunk '{chunk.id}' has an invalid embedding of shape {embedding.shape}")
        if self._embedding_dim is not None and embedding.shape[0] != self._embedding_dim:
            raise DatabaseError(
                f"Embedding dimension mismatch for chunk '{chunk.id}': expected {self._embedding_dim}, "
                f"got {embedding.shape[0]}"
            )

        snapshot = self._snapshot()
        try:
            if self._embedding_dim is None:
                self._embedding_dim = embedding.shape[0]
                self._embeddings = np.zeros((0, self._embedding_dim), dtype=np.float32)
            index = self._add_vertex(label=CHUNK_LABEL, key=chunk.id, content=chunk.content, embedding=embedding)
            self._chunks[chunk.id] = index
            self._chunk_order.append(chunk.id)
            self._embeddings = np.vstack([self._embeddings, embedding[np.newaxis, :]])
            self._persist()
        except Exception as e:
            self._restore(snapshot)
            if isinstance(e, DatabaseError):
                raise
            raise DatabaseError(f"Error saving chunk '{chunk.id}': {e}") from e

    async def save_graph(self, chunk_id: str, extraction: TKnowledgeExtraction) -> None:
        self._ensure_loaded()
        snapshot = self._snapshot()
        try:
            # Entities first: relations and mentions may only reference existing entities
            for entity in extraction.entities:
                if not entity.name:
                    continue
                if entity.name not in self._entities:
                    self._entities[entity.name] = self._add_vertex(
                        label=ENTITY_LABEL, key=entity.name, category=entity.category or DEFAULT_CATEGORY
                    )

            for relation in extraction.relations:
                kind = normalize_relation_type(relation.relation_type)
                source = self._entities.get(relation.source)
                target = self._entities.get(relation.target)
                if not kind or source is None or target is None:
                    logger.debug(f"Skipping relation {relation.to_str()}: unknown endpoint or empty type.")
                    continue
                self._merge_edge(source, target, kind)

            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.warning(f"Chunk '{chunk_id}' not found, its mentions were not linked.")
            else:
                for entity in extraction.entities:
                    if entity.name in self._entities:
                        self._merge_edge(chunk, self._entities[entity.name], MENTIONS)

            self._persist()
        except Exception as e:
            self._restore(snapshot)
            if isinstance(e, DatabaseError):
                raise
            raise DatabaseError(f"Error saving graph for chunk '{chunk_id}': {e}") from e

    async def save_inferred_relations(self, relations: Iterable[TInferredRelation]) -> None:
        self._ensure_loaded()
        snapshot = self._snapshot()
        try:
            for relation in relations:
                source = self._entities.get(relation.source)
                target = self._entities.get(relation.target)
                kind = inferred_relation_kind(relation.relation)
                if source is None or target is None or kind == inferred_relation_kind(""):
                    logger.debug(f"Skipping inferred relation {relation.source} -> {relation.target}.")
                    continue
                self._merge_edge(source, target, kind, reasoning=relation.reasoning, is_ai_generated=True)
            self._persist()
        except Exception as e:
            self._restore(snapshot)
            if isinstance(e, DatabaseError):
                raise
            raise DatabaseError(f"Error saving inferred relations: {e}") from e

    async def find_hybrid_context(self, embedding: TEmbedding, limit: int) -> List[THybridContext]:
        self._ensure_loaded()
        if limit <= 0 or not self._chunk_order:
            return []

        query = np.asarray(embedding, dtype=np.float32)
        if query.ndim != 1 or query.shape[0] != self._embedding_dim:
            raise DatabaseError(
                f"Query embedding has dimension {query.shape[-1] if query.ndim else 0}, index expects {self._embedding_dim}"
            )

        scores = np.dot(normalize(self._embeddings), normalize(query))
        # Stable sort keeps insertion order among equal scores
        top = np.argsort(-scores, kind="stable")[:limit]

        results: List[THybridContext] = []
        for i in top:
            chunk_id = self._chunk_order[i]
            vertex = self._graph.vs[self._chunks[chunk_id]]
            entities = sorted(
                {self._graph.vs[e.target]["key"] for e in vertex.out_edges() if e["type"] == MENTIONS}
            )
            results.append(THybridContext(chunk_id=chunk_id, content=vertex["content"], entities=entities))
        return results

    async def get_graph_context_for_reasoning(self, limit: int = DEFAULT_REASONING_CONTEXT_LIMIT) -> str:
        self._ensure_loaded()
        edges = list(self._entity_edges())
        if not edges or limit <= 0:
            return EMPTY_GRAPH_SENTINEL

        degree: Dict[int, int] = {}
        for e in edges:
            degree[e.source] = degree.get(e.source, 0) + 1
            degree[e.target] = degree.get(e.target, 0) + 1

        ranked = sorted(edges, key=lambda e: degree[e.source] + degree[e.target], reverse=True)[:limit]
        return dump_to_relation_lines(
            (self._graph.vs[e.source]["key"], e["type"], self._graph.vs[e.target]["key"]) for e in ranked
        )

    async def get_full_graph(self) -> TGraphView:
        self._ensure_loaded()
        view = TGraphView()
        seen: Set[int] = set()
        for n, e in enumerate(self._entity_edges()):
            if n >= FULL_GRAPH_EDGE_LIMIT:
                break
            for index in (e.source, e.target):
                if index not in seen:
                    seen.add(index)
                    view.nodes.append(self._node_view(index))
            view.edges.append(
                TEdgeView(source=self._graph.vs[e.source]["key"], target=self._graph.vs[e.target]["key"], label=e["type"])
            )
        return view

    async def get_concept_neighborhood(self, concept: str) -> TGraphView:
        self._ensure_loaded()
        center = self._entities.get(concept)
        if center is None:
            return TGraphView()

        entity_ids = set(self._entities.values())
        nodes: Dict[str, TNodeView] = {concept: self._node_view(center)}
        edges: List[TEdgeView] = []
        seen_edges: Set[int] = set()
        for e in self._graph.vs[center].all_edges():
            if len(edges) >= NEIGHBORHOOD_EDGE_LIMIT:
                break
            # Self-loops are reported twice by igraph
            if e.index in seen_edges or e.source not in entity_ids or e.target not in entity_ids:
                continue
            seen_edges.add(e.index)
            neighbor = e.target if e.source == center else e.source
            neighbor_view = self._node_view(neighbor)
            nodes.setdefault(neighbor_view.id, neighbor_view)
            edges.append(
                TEdgeView(source=self._graph.vs[e.source]["key"], target=self._graph.vs[e.target]["key"], label=e["type"])
            )

        return TGraphView(nodes=sorted(nodes.values(), key=lambda n: n.id), edges=edges)

    async def close(self) -> None:
        if self._loaded:
            self._persist()
