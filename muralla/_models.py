"""Pydantic data models and serialization utilities for LLM interactions.

This module provides:
- Base model classes with custom JSON schema generation for LLM structured outputs
- Response models for free-text answers
- Serialization utilities that turn retrieved graph data into prompt context

These models define the structured output format that LLMs should follow
when extracting entities, proposing inferred relations and answering questions.
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from pydantic import BaseModel
from pydantic._internal import _model_construction

####################################################################################################
# LLM Models
####################################################################################################


def _json_schema_slim(schema: dict[str, Any]) -> None:
    """Remove unnecessary fields from JSON schema to create a slimmer version for LLM prompts.

    Args:
        schema (dict): The JSON schema dictionary to modify in-place
    """
    schema.pop("required", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)


class _BaseModelAliasMeta(_model_construction.ModelMetaclass):
    """Metaclass for Pydantic models that supports aliasing and slim JSON schemas.

    The alias replaces the class name in the JSON schema sent to the LLM, so nested
    `Model` classes show up as "Entity" or "Relationship" instead of "Model".
    """

    def __new__(
        cls, name: str, bases: tuple[type[Any], ...], dct: Dict[str, Any], alias: Optional[str] = None, **kwargs: Any
    ) -> type:
        if alias:
            dct["__qualname__"] = alias
            name = alias
        return super().__new__(cls, name, bases, dct, json_schema_extra=_json_schema_slim, **kwargs)


class BaseModelAlias:
    """Base class for dataclasses that carry a Pydantic twin for structured outputs.

    Subclasses declare an inner `Model` (the schema the LLM must fill) and implement
    `Model.to_dataclass` to convert a validated response back into the dataclass.
    """

    class Model(BaseModel, metaclass=_BaseModelAliasMeta):
        """Inner Model class using the custom metaclass."""

        @staticmethod
        def to_dataclass(pydantic: Any) -> Any:
            raise NotImplementedError

    def to_str(self) -> str:
        raise NotImplementedError


####################################################################################################
# LLM Dumping to strings
####################################################################################################


def dump_to_relation_lines(triples: Iterable[Tuple[str, str, str]]) -> str:
    """Render (source, relation type, target) triples as one arrow line each.

    Example:
        >>> dump_to_relation_lines([("Fire", "CAUSES", "Smoke")])
        '(Fire) -[CAUSES]-> (Smoke)\\n'
    """
    return "".join(f"({source}) -[{kind}]-> ({target})\n" for source, kind, target in triples)


def dump_to_fragment_blocks(fragments: Iterable[Tuple[str, str, Sequence[str]]], separator: str = "\n---\n") -> str:
    """Render retrieved chunks as labelled blocks for an answering prompt.

    Each fragment is a (chunk id, content, concept names) tuple. The id is kept in
    full so the model can cite it back.
    """
    return "".join(
        f"FRAGMENT [ID: {chunk_id}]\nCONTENT: {content}\nCONCEPTS: [{', '.join(concepts)}]{separator}"
        for chunk_id, content, concepts in fragments
    )


####################################################################################################
# Response Models
####################################################################################################


class TAnswer(BaseModel):
    """Model for LLM-generated answers to user questions.

    Attributes:
        answer (str): The generated answer text
    """

    answer: str
