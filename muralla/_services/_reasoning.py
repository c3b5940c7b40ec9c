"""Default reasoning orchestrator.

One pass reads the best-connected part of the entity graph, asks the LLM for the
relations it implies (transitive links, SAME_AS synonym merges, general-knowledge
connections) and stores the answer as AI-generated INFERRED_ edges. Existing edges are
never modified or removed.
"""

from dataclasses import dataclass, field
from typing import List

from muralla._prompt import PROMPTS
from muralla._storage._base import DEFAULT_REASONING_CONTEXT_LIMIT
from muralla._types import TInferredRelation
from muralla._utils import logger

from ._base import BaseReasoningService


@dataclass
class DefaultReasoningService(BaseReasoningService):
    """Reasoning pass over at most `context_limit` relations.

    Any failure (reading the context, calling the model, parsing the answer or writing
    the new edges) propagates; nothing is written unless the whole answer parsed.
    """

    context_limit: int = field(default=DEFAULT_REASONING_CONTEXT_LIMIT)

    async def infer(self) -> List[TInferredRelation]:
        graph_context = await self.repository.get_graph_context_for_reasoning(self.context_limit)
        prompt = PROMPTS["graph_reasoning"].format(graph_context=graph_context)

        result = await self.ai_service.infer(prompt)

        if result.new_relations:
            await self.repository.save_inferred_relations(result.new_relations)
            logger.info(f"Reasoning pass stored {len(result.new_relations)} inferred relation(s).")
        else:
            logger.info("Reasoning pass found nothing to infer.")

        return result.new_relations
