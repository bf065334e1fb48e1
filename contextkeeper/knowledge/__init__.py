"""Knowledge entities and the extraction backends that produce them.

Public API
----------
KnowledgeExtractor
    Protocol for the four extraction capabilities.
HeuristicKnowledgeExtractor
    Deterministic rule-based implementation.
OpenAIKnowledgeExtractor
    OpenAI-compatible model-backed implementation.
create_knowledge_extractor
    Factory selecting a backend from ``CONTEXTKEEPER_EXTRACTOR_BACKEND``.
ProcessingResult
    Aggregate output of the context processor.

"""

from __future__ import annotations

from .config import OpenAIExtractorConfig
from .errors import (
    ExtractorConfigError,
    KnowledgeExtractionError,
    OpenAIAPIError,
    OpenAIConfigError,
    OpenAIResponseShapeError,
)
from .factory import create_knowledge_extractor
from .heuristic import HeuristicKnowledgeExtractor
from .models import (
    CROSS_PLATFORM,
    CrossPlatformRef,
    DecisionRecord,
    DecisionStatus,
    DiscussionSummary,
    EntityRef,
    EntityType,
    FeatureContext,
    FeatureStatus,
    FileContextHistory,
    KnowledgeEntity,
    ProcessingError,
    ProcessingResult,
    Relationship,
    RelationshipType,
)
from .openai_client import OpenAIKnowledgeExtractor
from .protocol import KnowledgeExtractor

__all__ = [
    "CROSS_PLATFORM",
    "CrossPlatformRef",
    "DecisionRecord",
    "DecisionStatus",
    "DiscussionSummary",
    "EntityRef",
    "EntityType",
    "ExtractorConfigError",
    "FeatureContext",
    "FeatureStatus",
    "FileContextHistory",
    "HeuristicKnowledgeExtractor",
    "KnowledgeEntity",
    "KnowledgeExtractionError",
    "KnowledgeExtractor",
    "OpenAIAPIError",
    "OpenAIConfigError",
    "OpenAIExtractorConfig",
    "OpenAIKnowledgeExtractor",
    "OpenAIResponseShapeError",
    "ProcessingError",
    "ProcessingResult",
    "Relationship",
    "RelationshipType",
    "create_knowledge_extractor",
]
