"""Type definitions for the muralla knowledge graph.

This module contains all core type definitions shared by the ingestion, retrieval and
reasoning pipelines:

1. Concrete aliases for embeddings and identifiers
2. Graph records (chunks, entities, relations) and the structured extraction result
3. Reasoning types (inferred relations and the batch returned by the LLM)
4. Read-only projections (hybrid retrieval context, visualization views, chat answers)

Records that the LLM has to fill in inherit from BaseModelAlias and declare an inner
Pydantic `Model`; the rest are plain dataclasses.
"""

from dataclasses import dataclass, field
from typing import List, TypeAlias

import numpy as np
import numpy.typing as npt
from pydantic import Field, field_validator

from ._models import BaseModelAlias

####################################################################################################
# TYPES
####################################################################################################

# Components of an embedding vector
TEmbeddingType: TypeAlias = np.float32

# Dense vector produced by the embedding model for a chunk or a question
TEmbedding: TypeAlias = npt.NDArray[TEmbeddingType]

# Cosine similarity score
TScore: TypeAlias = np.float32

# Chunk and document group identifiers (UUID4 strings)
TId: TypeAlias = str

# Category assigned to entities whose extraction carried none
DEFAULT_CATEGORY = "Concept"


@dataclass
class TChunk:
  """A bounded slice of a source document, the unit of embedding and extraction.

  Chunks are immutable once saved and their ids are never reused.

  Attributes:
      id: Unique identifier (UUID4 string).
      content: Raw text of the slice.
      embedding: Vector whose length equals the repository's indexed dimension.
  """

  id: TId = field()
  content: str = field()
  embedding: TEmbedding = field(repr=False)

  def __str__(self) -> str:
    return self.content


@dataclass
class TEntity(BaseModelAlias):
  """A named node of the knowledge graph.

  The name is the merge key: saving an entity that already exists keeps the category
  recorded the first time it was seen.

  Attributes:
      name: Globally unique entity name.
      category: Free-form classification label (e.g. "City", "Person").
  """

  name: str = field()
  category: str = field(default=DEFAULT_CATEGORY)

  def to_str(self) -> str:
    return f"[{self.category}] {self.name}"

  class Model(BaseModelAlias.Model, alias="Entity"):
    name: str = Field(..., description="Name of the entity", json_schema_extra={"example": ""})
    category: str = Field(
      default=DEFAULT_CATEGORY,
      description="Category of the entity (Person, Place, Organization, Concept, ...)",
      json_schema_extra={"example": ""},
    )

    @staticmethod
    def to_dataclass(pydantic: "TEntity.Model") -> "TEntity":
      return TEntity(name=pydantic.name, category=pydantic.category or DEFAULT_CATEGORY)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: str):
      return value.strip() if isinstance(value, str) else value


@dataclass
class TRelation(BaseModelAlias):
  """A directed, typed edge between two entities.

  The relation type is free text as extracted; it is normalized with
  `muralla._utils.normalize_relation_type` before being stored as an edge kind.

  Attributes:
      source: Name of the source entity.
      target: Name of the target entity.
      relation_type: Human-readable label of the relationship.
  """

  source: str = field()
  target: str = field()
  relation_type: str = field()

  def to_str(self) -> str:
    return f"({self.source}) -[{self.relation_type}]-> ({self.target})"

  class Model(BaseModelAlias.Model, alias="Relationship"):
    source: str = Field(..., description="Name of the source entity", json_schema_extra={"example": ""})
    target: str = Field(..., description="Name of the target entity", json_schema_extra={"example": ""})
    relation_type: str = Field(
      ..., description="Short verb phrase describing the relationship", json_schema_extra={"example": ""}
    )

    @staticmethod
    def to_dataclass(pydantic: "TRelation.Model") -> "TRelation":
      return TRelation(source=pydantic.source, target=pydantic.target, relation_type=pydantic.relation_type)

    @field_validator("source", "target", mode="before")
    @classmethod
    def strip_endpoint(cls, value: str):
      return value.strip() if isinstance(value, str) else value


@dataclass
class TKnowledgeExtraction(BaseModelAlias):
  """Structured result of reading one chunk: its entities and the relations among them.

  Attributes:
      entities: Entities named in the chunk.
      relations: Relations between those entities.
  """

  entities: List[TEntity] = field(default_factory=list)
  relations: List[TRelation] = field(default_factory=list)

  class Model(BaseModelAlias.Model, alias="KnowledgeExtraction"):
    entities: List[TEntity.Model] = Field(
      default_factory=list, description="List of extracted entities", json_schema_extra={"example": []}
    )
    relations: List[TRelation.Model] = Field(
      default_factory=list, description="Relationships between the entities", json_schema_extra={"example": []}
    )

    @staticmethod
    def to_dataclass(pydantic: "TKnowledgeExtraction.Model") -> "TKnowledgeExtraction":
      return TKnowledgeExtraction(
        entities=[e.to_dataclass(e) for e in pydantic.entities],
        relations=[r.to_dataclass(r) for r in pydantic.relations],
      )


@dataclass
class TInferredRelation(BaseModelAlias):
  """An edge proposed by the reasoning pass rather than extracted from text.

  Attributes:
      source: Name of an existing source entity.
      target: Name of an existing target entity.
      relation: Relation label, normalized and prefixed with INFERRED_ when stored.
      reasoning: Explanation given by the model for the new edge.
  """

  source: str = field()
  target: str = field()
  relation: str = field()
  reasoning: str = field(default="")

  class Model(BaseModelAlias.Model, alias="InferredRelation"):
    source: str = Field(..., description="Name of an existing source entity", json_schema_extra={"example": ""})
    target: str = Field(..., description="Name of an existing target entity", json_schema_extra={"example": ""})
    relation: str = Field(..., description="Type of the inferred relationship", json_schema_extra={"example": ""})
    reasoning: str = Field(
      default="", description="Brief explanation of why the relation holds", json_schema_extra={"example": ""}
    )

    @staticmethod
    def to_dataclass(pydantic: "TInferredRelation.Model") -> "TInferredRelation":
      return TInferredRelation(
        source=pydantic.source, target=pydantic.target, relation=pydantic.relation, reasoning=pydantic.reasoning
      )


@dataclass
class TInferenceResult(BaseModelAlias):
  """Batch of relations proposed by one reasoning pass."""

  new_relations: List[TInferredRelation] = field(default_factory=list)

  class Model(BaseModelAlias.Model, alias="InferenceResult"):
    new_relations: List[TInferredRelation.Model] = Field(
      ..., description="Newly inferred relations; empty when nothing can be inferred", json_schema_extra={"example": []}
    )

    @staticmethod
    def to_dataclass(pydantic: "TInferenceResult.Model") -> "TInferenceResult":
      return TInferenceResult(new_relations=[r.to_dataclass(r) for r in pydantic.new_relations])


####################################################################################################
# READ-ONLY PROJECTIONS
####################################################################################################


@dataclass
class THybridContext:
  """A chunk retrieved by similarity, joined with the entities it mentions.

  Attributes:
      chunk_id: Id of the retrieved chunk.
      content: Text of the retrieved chunk.
      entities: Deduplicated names of the entities the chunk mentions (possibly empty).
  """

  chunk_id: TId = field()
  content: str = field()
  entities: List[str] = field(default_factory=list)

  def to_reference(self) -> str:
    return f"Fragment {self.chunk_id[:8]} (Concepts: {', '.join(self.entities)})"


@dataclass
class TNodeView:
  id: str = field()
  label: str = field()
  group: str = field(default=DEFAULT_CATEGORY)


@dataclass
class TEdgeView:
  source: str = field()
  target: str = field()
  label: str = field()


@dataclass
class TGraphView:
  """Visualization projection of (part of) the entity graph.

  Nodes are unique by id; edges point from `source` to `target` and carry the stored
  relation kind as label.
  """

  nodes: List[TNodeView] = field(default_factory=list)
  edges: List[TEdgeView] = field(default_factory=list)

  def to_dict(self):
    return {
      "nodes": [{"id": n.id, "label": n.label, "group": n.group} for n in self.nodes],
      "edges": [{"from": e.source, "to": e.target, "label": e.label} for e in self.edges],
    }


@dataclass
class TChatAnswer:
  """Answer to a question, together with the fragments it was grounded on.

  Attributes:
      response: Text produced by the LLM.
      context_used: One reference line per retrieved fragment.
  """

  response: str = field()
  context_used: List[str] = field(default_factory=list)
