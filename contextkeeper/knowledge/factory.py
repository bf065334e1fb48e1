"""Factory for creating KnowledgeExtractor implementations from the environment."""

from __future__ import annotations

import os
import typing as typ

from contextkeeper.knowledge.errors import ExtractorConfigError
from contextkeeper.knowledge.heuristic import HeuristicKnowledgeExtractor

if typ.TYPE_CHECKING:
    from contextkeeper.knowledge.protocol import KnowledgeExtractor

BACKEND_ENV_VAR = "CONTEXTKEEPER_EXTRACTOR_BACKEND"
_DEFAULT_BACKEND = "heuristic"
_VALID_BACKENDS = frozenset({"heuristic", "openai"})


def create_knowledge_extractor() -> KnowledgeExtractor:
    """Create a KnowledgeExtractor based on environment configuration.

    Reads ``CONTEXTKEEPER_EXTRACTOR_BACKEND``: either ``heuristic`` (the
    default when unset or blank) or ``openai``. The ``openai`` backend also
    reads the ``CONTEXTKEEPER_OPENAI_*`` variables documented on
    :meth:`OpenAIExtractorConfig.from_env`.

    Raises
    ------
    ExtractorConfigError
        If the backend name is not recognised.
    OpenAIConfigError
        If the OpenAI backend is selected without an API key.

    Examples
    --------
    >>> import os
    >>> os.environ["CONTEXTKEEPER_EXTRACTOR_BACKEND"] = "heuristic"
    >>> isinstance(create_knowledge_extractor(), HeuristicKnowledgeExtractor)
    True

    """
    raw_backend = os.environ.get(BACKEND_ENV_VAR, "")
    backend = raw_backend.strip().lower() or _DEFAULT_BACKEND
    if backend not in _VALID_BACKENDS:
        raise ExtractorConfigError.invalid_backend(raw_backend, _VALID_BACKENDS)

    if backend == "heuristic":
        return HeuristicKnowledgeExtractor()

    # backend == "openai"
    from contextkeeper.knowledge.config import OpenAIExtractorConfig
    from contextkeeper.knowledge.openai_client import OpenAIKnowledgeExtractor

    return OpenAIKnowledgeExtractor(OpenAIExtractorConfig.from_env())
