"""Default ingestion orchestrator.

For every chunk of a document, strictly in order:

1. a fresh chunk id is drawn;
2. the chunk is embedded; a failure is reported and the chunk is skipped;
3. the chunk is saved; a failure aborts the whole document;
4. entities and relations are extracted; a failure is reported and the chunk keeps
   only its text and embedding;
5. the extraction is merged into the graph; a failure aborts the whole document.

Chunks processed before an abort stay stored. Progress lines are best-effort: a sink
that raises is logged and ignored.
"""

import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from typing import Optional

from muralla._types import TChunk
from muralla._utils import logger

from ._base import BaseChunkingService, BaseIngestionService, TProgressSink
from ._chunk_extraction import DefaultChunkingService


@dataclass
class DefaultIngestionService(BaseIngestionService):
    """Sequential chunk-by-chunk ingestion with partial failure tolerance."""

    chunking_service: BaseChunkingService = field(default_factory=DefaultChunkingService)

    async def _notify(self, progress: Optional[TProgressSink], message: str) -> None:
        if progress is None:
            return
        try:
            result = progress(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress notification failed: {e}")
            return
        # Let a waiting consumer read the line before the next AI call
        await asyncio.sleep(0)

    async def ingest(self, content: str, progress: Optional[TProgressSink] = None) -> str:
        group_id = str(uuid.uuid4())
        chunks = self.chunking_service.split(content)
        total = len(chunks)

        logger.info(f"Ingesting document {group_id} in {total} chunk(s).")
        await self._notify(progress, f"Document split into {total} chunk(s).")

        for index, text in enumerate(chunks, start=1):
            chunk_id = str(uuid.uuid4())

            await self._notify(progress, f"[{index}/{total}] Generating embeddings...")
            try:
                embedding = await self.ai_service.embed(text)
            except Exception as e:
                logger.warning(f"Embedding failed for chunk {index}/{total}: {e}")
                await self._notify(progress, f"Error embedding chunk {index}: {e}. Skipping...")
                continue

            await self.repository.save_chunk(TChunk(id=chunk_id, content=text, embedding=embedding))

            await self._notify(progress, f"[{index}/{total}] Extracting knowledge...")
            try:
                extraction = await self.ai_service.extract(text)
            except Exception as e:
                logger.warning(f"Extraction failed for chunk {index}/{total}: {e}")
                await self._notify(progress, f"Error extracting entities in chunk {index}: {e}")
                continue

            await self._notify(
                progress, f"[{index}/{total}] Linking {len(extraction.entities)} entities to the graph..."
            )
            await self.repository.save_graph(chunk_id, extraction)

        logger.info(f"Document {group_id} processed.")
        await self._notify(progress, "Document processed.")
        return group_id
