"""Services of the muralla document pipeline.

Base Classes:
    - BaseChunkingService: Document segmentation
    - BaseIngestionService: Chunk embedding, storage and knowledge extraction
    - BaseReasoningService: Inference of new relations over the stored graph
    - BaseQueryService: Question answering over hybrid retrieval context

Default Implementations:
    - DefaultChunkingService / DefaultChunkingServiceConfig
    - DefaultIngestionService
    - DefaultReasoningService
    - DefaultQueryService
"""

__all__ = [
    "BaseChunkingService",
    "BaseIngestionService",
    "BaseReasoningService",
    "BaseQueryService",
    "DefaultChunkingService",
    "DefaultChunkingServiceConfig",
    "DefaultIngestionService",
    "DefaultReasoningService",
    "DefaultQueryService",
    "TProgressSink",
]

from ._base import BaseChunkingService, BaseIngestionService, BaseQueryService, BaseReasoningService, TProgressSink
from ._chunk_extraction import DefaultChunkingService, DefaultChunkingServiceConfig
from ._ingestion import DefaultIngestionService
from ._query import DefaultQueryService
from ._reasoning import DefaultReasoningService
