from __future__ import annotations

import pytest

from bibflow_connectors import (
    BibtexParserCodec,
    BibTeXEntry,
    EnrichmentData,
    IdentifierType,
    RateLimit,
    SearchResult,
    bibcode_from_ads_url,
    build_entry,
    coerce_identifiers,
    extract_identifiers,
    make_cite_key,
    normalize_identifier,
)
from bibflow_connectors.models import author_surname, normalize_arxiv_id, normalize_doi


def test_normalize_doi_strips_resolver_prefixes() -> None:
    assert normalize_doi("https://doi.org/10.1038/Nature14539") == "10.1038/nature14539"
    assert normalize_doi("doi:10.1038/nature14539 ") == "10.1038/nature14539"
    assert normalize_doi("http://dx.doi.org/10.1/ABC") == "10.1/abc"


def test_normalize_arxiv_id_drops_prefix_and_version() -> None:
    assert normalize_arxiv_id("arXiv:1706.03762v5") == "1706.03762"
    assert normalize_arxiv_id("hep-th/9901001v2") == "hep-th/9901001"
    assert normalize_arxiv_id("ARXIV:2401.12345V2") == "2401.12345"
    assert normalize_identifier(IdentifierType.BIBCODE, " 2019ApJ...882L..24A ") == "2019apj...882l..24a"


def test_coerce_identifiers_accepts_string_keys_and_drops_blanks() -> None:
    identifiers = coerce_identifiers({"doi": "10.1/x", "pmid": "  ", IdentifierType.ARXIV: None})
    assert identifiers == {IdentifierType.DOI: "10.1/x"}
    assert IdentifierType.DOI in identifiers


def test_search_result_identifiers_and_primary() -> None:
    result = SearchResult(id="x", source_id="pubmed", title="t", pmid="123", bibcode="2000A")
    assert result.identifiers == {IdentifierType.PMID: "123", IdentifierType.BIBCODE: "2000A"}
    assert result.primary_identifier == (IdentifierType.BIBCODE, "2000A")


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Vaswani, Ashish", "Vaswani"),
        ("Ashish Vaswani", "Vaswani"),
        ("Knuth", "Knuth"),
        ("   ", None),
    ],
)
def test_author_surname(name: str, expected: str | None) -> None:
    assert author_surname(name) == expected


def test_make_cite_key_skips_stopwords_and_accents() -> None:
    assert make_cite_key(("Erdős, Paul",), 1947, "On some problems") == "Erdos1947Some"
    assert make_cite_key((), None, "The Art") == "UnknownArt"


def test_build_entry_drops_empty_fields() -> None:
    entry = build_entry(entry_type="article", authors=("A One", "B Two"), title="T", year=2020, doi=None, journal="J")
    assert entry.fields == {"title": "T", "author": "A One and B Two", "year": "2020", "journal": "J"}


def test_entry_with_fields_lowercases_and_drops_raw() -> None:
    entry = BibTeXEntry(cite_key="k", entry_type="misc", fields={"title": "T"}, raw="@misc{k}")
    updated = entry.with_fields(ArchivePrefix="arXiv")
    assert updated.get("archiveprefix") == "arXiv"
    assert updated.raw is None
    assert entry.get("archiveprefix") is None


def test_codec_parse_and_export() -> None:
    codec = BibtexParserCodec()
    entries = codec.parse_entries(
        "@Article{Key1,\n  Title = {One},\n  DOI = {10.1/one}\n}\n@misc{Key2,\n  title = {Two}\n}\n"
    )
    assert [e.cite_key for e in entries] == ["Key1", "Key2"]
    assert entries[0].entry_type == "article"
    assert entries[0].get("doi") == "10.1/one"

    exported = codec.export(entries[0])
    assert exported.startswith("@article{Key1,")
    assert "doi = {10.1/one}" in exported


def test_bibcode_from_ads_url() -> None:
    assert bibcode_from_ads_url("https://ui.adsabs.harvard.edu/abs/2019ApJ...882L..24A/abstract") == "2019ApJ...882L..24A"
    assert bibcode_from_ads_url("http://adsabs.harvard.edu/abs/1919RSPTA.220..291D") == "1919RSPTA.220..291D"
    assert bibcode_from_ads_url("https://ui.adsabs.harvard.edu/abs/2019ApJ%26L..1A/abstract") == "2019ApJ&L..1A"
    assert bibcode_from_ads_url("https://example.org/abs/2019ApJ...882L..24A") is None
    assert bibcode_from_ads_url("https://ui.adsabs.harvard.edu/search/q=x") is None


def test_extract_identifiers_field_precedence() -> None:
    identifiers = extract_identifiers(
        {
            "DOI": "10.1/x",
            "arxivid": "1706.03762",
            "arxiv": "ignored",
            "adsurl": "https://ui.adsabs.harvard.edu/abs/2017arXiv170603762V/abstract",
        }
    )
    assert identifiers == {
        IdentifierType.DOI: "10.1/x",
        IdentifierType.ARXIV: "1706.03762",
        IdentifierType.BIBCODE: "2017arXiv170603762V",
    }
    assert extract_identifiers({"bibcode": "B", "adsurl": "https://ui.adsabs.harvard.edu/abs/A"}) == {
        IdentifierType.BIBCODE: "B"
    }
    assert extract_identifiers({"title": "none"}) == {}


def test_enrichment_merging_prefers_new_values() -> None:
    old = EnrichmentData(citation_count=5, abstract="old abstract", venue="Old", source_id="ads")
    new = EnrichmentData(citation_count=9, source_id="openalex")
    merged = new.merging(old)
    assert merged.citation_count == 9
    assert merged.abstract == "old abstract"
    assert merged.venue == "Old"
    assert merged.source_id == "openalex"
    assert new.merging(None) is new


def test_rate_limit_unlimited() -> None:
    assert RateLimit.unlimited().is_unlimited
    assert RateLimit(5, 0).is_unlimited
    assert not RateLimit(5, 60).is_unlimited
