from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from bibflow_connectors.ads import ADSSource
from bibflow_connectors.arxiv import ArXivSource
from bibflow_connectors.base import BaseSource
from bibflow_connectors.credentials import CredentialProvider
from bibflow_connectors.crossref import CrossrefSource
from bibflow_connectors.dblp import DBLPSource
from bibflow_connectors.inspire import INSPIRESource
from bibflow_connectors.openalex import OpenAlexSource
from bibflow_connectors.pubmed import PubMedSource
from bibflow_connectors.semantic_scholar import SemanticScholarSource

logger = logging.getLogger(__name__)

# Registration order; also the order results are reassembled in
SOURCE_CLASSES: dict[str, type[BaseSource]] = {
    "crossref": CrossrefSource,
    "pubmed": PubMedSource,
    "inspire": INSPIRESource,
    "ads": ADSSource,
    "semanticscholar": SemanticScholarSource,
    "openalex": OpenAlexSource,
    "arxiv": ArXivSource,
    "dblp": DBLPSource,
}


def build_sources(
    credentials: CredentialProvider,
    enabled: Sequence[str] | None = None,
    **source_kwargs: Any,
) -> list[BaseSource]:
    """
    Construct sources in registration order.

    Args:
        credentials: Credential provider shared by every source
        enabled: Source ids to build; all known sources when ``None``
        **source_kwargs: Passed to each source constructor (timeouts, retries)

    Returns:
        Constructed sources

    Raises:
        ValueError: If ``enabled`` names an unknown source
    """
    if enabled is not None:
        unknown = sorted(set(enabled) - set(SOURCE_CLASSES))
        if unknown:
            raise ValueError(f"Unknown source(s): {', '.join(unknown)}")

    sources: list[BaseSource] = []
    for source_id, source_cls in SOURCE_CLASSES.items():
        if enabled is not None and source_id not in enabled:
            continue
        sources.append(source_cls(credentials=credentials, **source_kwargs))
    logger.info("sources_built", extra={"sources": [s.id for s in sources]})
    return sources
