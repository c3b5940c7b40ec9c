"""Default question answering over hybrid retrieval context."""

from dataclasses import dataclass, field

from muralla._models import dump_to_fragment_blocks
from muralla._prompt import PROMPTS
from muralla._types import TChatAnswer
from muralla._utils import logger

from ._base import BaseQueryService


@dataclass
class DefaultQueryService(BaseQueryService):
    """Answer questions from the `top_k` chunks most similar to the question.

    The retrieved fragments and the concepts they mention are rendered into the system
    prompt; the references returned with the answer name each fragment by the first
    eight characters of its id. When nothing is retrieved the model is not called.
    """

    top_k: int = field(default=3)

    async def answer(self, question: str) -> TChatAnswer:
        embedding = await self.ai_service.embed(question)
        contexts = await self.repository.find_hybrid_context(embedding, self.top_k)

        if not contexts:
            logger.info("No context retrieved for the question.")
            return TChatAnswer(response=PROMPTS["fail_response"], context_used=[])

        context = dump_to_fragment_blocks((c.chunk_id, c.content, c.entities) for c in contexts)
        logger.debug(f"Answering with context:\n{context}")

        response = await self.ai_service.answer(question, context)
        return TChatAnswer(response=response, context_used=[c.to_reference() for c in contexts])
