"""
Bibliographic source plugins for bibflow.

Provides:
- Base source interface with rate limiting and retry
- Crossref, PubMed, INSPIRE HEP, NASA ADS, Semantic Scholar, OpenAlex, arXiv and DBLP sources
- Concurrent search across sources
- Identifier-graph deduplication
"""

from __future__ import annotations

from bibflow_connectors.ads import ADSSource
from bibflow_connectors.arxiv import ArXivSource
from bibflow_connectors.base import (
    AuthenticationRequiredError,
    BaseSource,
    CoReadsProviding,
    ConnectorError,
    EnrichmentPlugin,
    IdentifierResolving,
    InvalidRequestError,
    NetworkError,
    NoIdentifierError,
    NoSourceAvailableError,
    NotFoundError,
    ParseError,
    RateLimiter,
    RateLimitError,
    RISExporting,
    SimilarWorksProviding,
    SourceCapability,
    SourcePlugin,
    capabilities_of,
    supports,
)
from bibflow_connectors.bibtex import (
    BibTeXCodec,
    BibtexParserCodec,
    bibcode_from_ads_url,
    build_entry,
    extract_identifiers,
    make_cite_key,
)
from bibflow_connectors.credentials import CredentialProvider, StaticCredentialProvider
from bibflow_connectors.crossref import CrossrefSource
from bibflow_connectors.dblp import DBLPSource
from bibflow_connectors.dedup import (
    DeduplicationService,
    DeduplicationStats,
    FuzzyMatchPolicy,
    UnifiedResult,
)
from bibflow_connectors.inspire import INSPIRESource
from bibflow_connectors.manager import SearchOptions, SourceManager
from bibflow_connectors.models import (
    AuthorStats,
    BibTeXEntry,
    CredentialRequirement,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    OpenAccessStatus,
    PaperStub,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
    coerce_identifiers,
    normalize_identifier,
)
from bibflow_connectors.openalex import OpenAlexSource
from bibflow_connectors.pubmed import PubMedSource
from bibflow_connectors.registry import SOURCE_CLASSES, build_sources
from bibflow_connectors.semantic_scholar import SemanticScholarSource

__all__ = [
    # Base classes
    "BaseSource",
    "SourcePlugin",
    "RateLimiter",
    # Capabilities
    "SourceCapability",
    "RISExporting",
    "IdentifierResolving",
    "SimilarWorksProviding",
    "CoReadsProviding",
    "EnrichmentPlugin",
    "supports",
    "capabilities_of",
    # Errors
    "ConnectorError",
    "AuthenticationRequiredError",
    "NetworkError",
    "ParseError",
    "RateLimitError",
    "NotFoundError",
    "NoIdentifierError",
    "NoSourceAvailableError",
    "InvalidRequestError",
    # Models
    "AuthorStats",
    "BibTeXEntry",
    "CredentialRequirement",
    "EnrichmentCapability",
    "EnrichmentData",
    "EnrichmentResult",
    "Identifiers",
    "IdentifierType",
    "OpenAccessStatus",
    "PaperStub",
    "PDFLink",
    "PDFLinkKind",
    "RateLimit",
    "SearchResult",
    "SourceMetadata",
    "coerce_identifiers",
    "normalize_identifier",
    # Interchange and credentials
    "BibTeXCodec",
    "BibtexParserCodec",
    "bibcode_from_ads_url",
    "build_entry",
    "extract_identifiers",
    "make_cite_key",
    "CredentialProvider",
    "StaticCredentialProvider",
    # Sources
    "ADSSource",
    "ArXivSource",
    "CrossrefSource",
    "DBLPSource",
    "INSPIRESource",
    "OpenAlexSource",
    "PubMedSource",
    "SemanticScholarSource",
    "SOURCE_CLASSES",
    "build_sources",
    # Search and deduplication
    "SearchOptions",
    "SourceManager",
    "DeduplicationService",
    "DeduplicationStats",
    "FuzzyMatchPolicy",
    "UnifiedResult",
]
