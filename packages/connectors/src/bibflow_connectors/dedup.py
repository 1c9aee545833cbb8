"""
Deduplication of search results across providers.

Two results describe the same work when:
1. They share a DOI, arXiv id, PMID or bibcode (after normalization), or
2. Neither shares an identifier with anything, but their first-author
   surnames and normalized titles match (see ``FuzzyMatchPolicy``).

Groups are computed with union-find so links are transitive. Within a
group the contributor from the provider with the lowest deduplication
priority supplies display metadata.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from bibflow_connectors.models import (
    Identifiers,
    PDFLink,
    PDFLinkKind,
    SearchResult,
    normalize_identifier,
)

logger = logging.getLogger(__name__)

UNKNOWN_PRIORITY = 1_000


@dataclass(frozen=True)
class FuzzyMatchPolicy:
    """
    Rules for matching results that share no identifier.

    Attributes:
        max_year_gap: Reject pairs whose known years differ by more than this.
            ``None`` disables the year check.
        allow_substring: Accept titles where one contains the other.
    """

    max_year_gap: int | None = 1
    allow_substring: bool = True

    @staticmethod
    def normalize_title(title: str) -> str:
        return " ".join(title.lower().split())

    def matches(self, a: SearchResult, b: SearchResult) -> bool:
        surname_a = a.first_author_surname
        surname_b = b.first_author_surname
        if not surname_a or not surname_b or surname_a.lower() != surname_b.lower():
            return False

        if self.max_year_gap is not None and a.year is not None and b.year is not None:
            if abs(a.year - b.year) > self.max_year_gap:
                return False

        title_a = self.normalize_title(a.title)
        title_b = self.normalize_title(b.title)
        if not title_a or not title_b:
            return False
        if title_a == title_b:
            return True
        return self.allow_substring and (title_a in title_b or title_b in title_a)


_PDF_KIND_PREFERENCE = (PDFLinkKind.PREPRINT, PDFLinkKind.AUTHOR, PDFLinkKind.PUBLISHER, PDFLinkKind.ADS_SCAN)


@dataclass(frozen=True)
class UnifiedResult:
    """One work, as seen by every provider that returned it."""

    canonical: SearchResult
    contributors: tuple[SearchResult, ...]

    @property
    def title(self) -> str:
        return self.canonical.title

    @property
    def authors(self) -> tuple[str, ...]:
        return self.canonical.authors

    @property
    def year(self) -> int | None:
        return self.canonical.year

    @property
    def venue(self) -> str | None:
        return self.canonical.venue

    @property
    def abstract(self) -> str | None:
        if self.canonical.abstract:
            return self.canonical.abstract
        return next((c.abstract for c in self.contributors if c.abstract), None)

    @property
    def source_ids(self) -> list[str]:
        seen: list[str] = []
        for contributor in self.contributors:
            if contributor.source_id not in seen:
                seen.append(contributor.source_id)
        return seen

    @property
    def identifiers(self) -> Identifiers:
        """Union of contributor identifiers; earlier contributors win on conflict."""
        merged: Identifiers = {}
        for contributor in self.contributors:
            for id_type, value in contributor.identifiers.items():
                merged.setdefault(id_type, value)
        return merged

    @property
    def pdf_links(self) -> list[PDFLink]:
        return [link for contributor in self.contributors for link in contributor.pdf_links]

    def best_pdf_link(self, preference: Sequence[PDFLinkKind] = _PDF_KIND_PREFERENCE) -> PDFLink | None:
        links = self.pdf_links
        for kind in preference:
            for link in links:
                if link.kind == kind:
                    return link
        return links[0] if links else None

    @property
    def bibtex_url(self) -> str | None:
        return next((c.bibtex_url for c in self.contributors if c.bibtex_url), None)

    @property
    def web_url(self) -> str | None:
        return next((c.web_url for c in self.contributors if c.web_url), None)

    def contributor_from(self, source_id: str) -> SearchResult | None:
        return next((c for c in self.contributors if c.source_id == source_id), None)


@dataclass
class DeduplicationStats:
    """Statistics from one deduplication pass."""

    total_input: int
    total_output: int
    merged_by_identifier: int
    merged_by_fuzzy_match: int

    @property
    def duplicates_removed(self) -> int:
        return self.total_input - self.total_output


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        # Lower index stays root so group order follows first-seen order
        if root_b < root_a:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        return True


class DeduplicationService:
    """
    Groups results describing the same work.

    Stateless between calls: output depends only on the input list, the
    provider ordering and priorities given at construction, and the
    match policy.
    """

    def __init__(
        self,
        priorities: Mapping[str, int] | None = None,
        registration_order: Sequence[str] = (),
        policy: FuzzyMatchPolicy | None = None,
    ):
        """
        Initialize deduplication service.

        Args:
            priorities: Provider id to deduplication priority (lower wins)
            registration_order: Provider ids in registration order, used to
                sort input deterministically
            policy: Fuzzy matching rules for results without shared identifiers
        """
        self.priorities = dict(priorities or {})
        self.registration_order = {source_id: i for i, source_id in enumerate(registration_order)}
        self.policy = policy or FuzzyMatchPolicy()

    @classmethod
    def for_sources(cls, sources: Iterable[object], policy: FuzzyMatchPolicy | None = None) -> DeduplicationService:
        """Build a service from plugins exposing ``metadata``."""
        metadata = [source.metadata for source in sources]  # type: ignore[attr-defined]
        return cls(
            priorities={m.id: m.deduplication_priority for m in metadata},
            registration_order=[m.id for m in metadata],
            policy=policy,
        )

    def _sort_key(self, result: SearchResult) -> tuple[int, str, str]:
        index = self.registration_order.get(result.source_id, len(self.registration_order))
        return (index, result.source_id, result.id)

    def _priority(self, result: SearchResult) -> int:
        return self.priorities.get(result.source_id, UNKNOWN_PRIORITY)

    def deduplicate(self, results: Sequence[SearchResult]) -> list[UnifiedResult]:
        unified, _ = self.deduplicate_with_stats(results)
        return unified

    def deduplicate_with_stats(
        self, results: Sequence[SearchResult]
    ) -> tuple[list[UnifiedResult], DeduplicationStats]:
        """
        Deduplicate results.

        Args:
            results: Raw results from one or more providers

        Returns:
            (unified_results, stats)
        """
        ordered = sorted(results, key=self._sort_key)
        uf = _UnionFind(len(ordered))

        # Pass 1: identifier graph
        merged_by_identifier = 0
        first_holder: dict[tuple[str, str], int] = {}
        for index, result in enumerate(ordered):
            for id_type, value in result.identifiers.items():
                key = (id_type.value, normalize_identifier(id_type, value))
                if not key[1]:
                    continue
                if key in first_holder:
                    if uf.union(first_holder[key], index):
                        merged_by_identifier += 1
                else:
                    first_holder[key] = index

        # Pass 2: fuzzy matching among singletons
        merged_by_fuzzy = 0
        sizes: dict[int, int] = {}
        for index in range(len(ordered)):
            root = uf.find(index)
            sizes[root] = sizes.get(root, 0) + 1
        singletons = [i for i in range(len(ordered)) if sizes[uf.find(i)] == 1]
        for pos, i in enumerate(singletons):
            for j in singletons[pos + 1:]:
                if self.policy.matches(ordered[i], ordered[j]) and uf.union(i, j):
                    merged_by_fuzzy += 1

        # Collect groups in order of their first member
        groups: dict[int, list[int]] = {}
        for index in range(len(ordered)):
            groups.setdefault(uf.find(index), []).append(index)

        unified: list[UnifiedResult] = []
        for members in sorted(groups.values(), key=lambda m: m[0]):
            canonical_index = min(members, key=lambda i: (self._priority(ordered[i]), i))
            contributors = [ordered[canonical_index]] + [ordered[i] for i in members if i != canonical_index]
            unified.append(UnifiedResult(canonical=ordered[canonical_index], contributors=tuple(contributors)))

        stats = DeduplicationStats(
            total_input=len(ordered),
            total_output=len(unified),
            merged_by_identifier=merged_by_identifier,
            merged_by_fuzzy_match=merged_by_fuzzy,
        )
        logger.info(
            "dedup_complete",
            extra={
                "total_input": stats.total_input,
                "total_output": stats.total_output,
                "duplicates_removed": stats.duplicates_removed,
                "merged_by_identifier": merged_by_identifier,
                "merged_by_fuzzy_match": merged_by_fuzzy,
            },
        )
        return unified, stats
