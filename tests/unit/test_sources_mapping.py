from __future__ import annotations

import json

import httpx
import pytest

from bibflow_connectors import (
    SOURCE_CLASSES,
    ADSSource,
    ArXivSource,
    BibTeXEntry,
    CrossrefSource,
    DBLPSource,
    IdentifierType,
    INSPIRESource,
    NotFoundError,
    OpenAccessStatus,
    OpenAlexSource,
    ParseError,
    PDFLinkKind,
    PubMedSource,
    RateLimit,
    RateLimitError,
    SearchResult,
    SemanticScholarSource,
    SourceCapability,
    StaticCredentialProvider,
    capabilities_of,
)

ATTENTION_BIBTEX = """@article{Vaswani_2017,
  title = {Attention Is All You Need},
  author = {Vaswani, Ashish and Shazeer, Noam},
  year = {2017},
  doi = {10.48550/arXiv.1706.03762}
}"""


async def test_crossref_search_maps_items(make_source) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "message": {
                    "items": [
                        {
                            "DOI": "10.1000/xyz123",
                            "title": ["Deep Learning"],
                            "author": [{"given": "Yann", "family": "LeCun"}, {"family": "Bengio"}, {"given": "Nobody"}],
                            "published-print": {"date-parts": [[2015, 5, 28]]},
                            "container-title": ["Nature"],
                            "abstract": "<jats:p>Deep learning allows models.</jats:p>",
                            "link": [
                                {"URL": "https://example.org/x.xml", "content-type": "text/xml"},
                                {"URL": "https://example.org/x.pdf", "content-type": "application/pdf"},
                            ],
                        },
                        {"title": ["No DOI here"]},
                    ]
                }
            },
        )

    source = make_source(CrossrefSource, handler)
    results = await source.search("deep learning", max_results=5)

    assert seen[0].url.params["query"] == "deep learning"
    assert seen[0].url.params["rows"] == "5"
    assert seen[0].url.params["mailto"] == "curator@example.org"
    assert len(results) == 1
    result = results[0]
    assert result.source_id == "crossref"
    assert result.authors == ("Yann LeCun", "Bengio")
    assert result.year == 2015
    assert result.venue == "Nature"
    assert result.abstract == "Deep learning allows models."
    assert result.doi == "10.1000/xyz123"
    assert [link.url for link in result.pdf_links] == ["https://example.org/x.pdf"]
    assert result.pdf_links[0].kind == PDFLinkKind.PUBLISHER
    assert result.bibtex_url == "https://doi.org/10.1000/xyz123"


async def test_crossref_fetch_bibtex_uses_content_negotiation(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "doi.org"
        assert request.headers["accept"] == "application/x-bibtex"
        return httpx.Response(200, text=ATTENTION_BIBTEX)

    source = make_source(CrossrefSource, handler)
    result = SearchResult(id="10.48550/arXiv.1706.03762", source_id="crossref", title="x", doi="10.48550/arXiv.1706.03762")
    entry = await source.fetch_bibtex(result)
    assert entry.cite_key == "Vaswani_2017"
    assert entry.get("title") == "Attention Is All You Need"


async def test_crossref_exports_ris(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "application/x-research-info-systems"
        return httpx.Response(200, text="TY  - JOUR\nER  - \n")

    source = make_source(CrossrefSource, handler)
    ris = await source.fetch_ris(SearchResult(id="d", source_id="crossref", title="x", doi="10.1/d"))
    assert ris.startswith("TY  - JOUR")
    assert SourceCapability.RIS_EXPORT in capabilities_of(source)


ARXIV_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <entry>
    <id>http://arxiv.org/abs/1706.03762v5</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <summary>The dominant sequence transduction models.</summary>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
    <arxiv:doi>10.48550/arXiv.1706.03762</arxiv:doi>
    <link href="http://arxiv.org/abs/1706.03762v5" rel="alternate" type="text/html"/>
    <link title="pdf" href="http://arxiv.org/pdf/1706.03762v5" rel="related" type="application/pdf"/>
  </entry>
</feed>"""


async def test_arxiv_search_parses_atom(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["search_query"] == "all:attention"
        return httpx.Response(200, text=ARXIV_FEED)

    source = make_source(ArXivSource, handler)
    results = await source.search("attention")

    assert len(results) == 1
    result = results[0]
    assert result.arxiv_id == "1706.03762v5"
    assert result.title == "Attention Is All You Need"
    assert result.year == 2017
    assert result.venue == "arXiv"
    assert result.doi == "10.48550/arXiv.1706.03762"
    assert result.pdf_links[0].kind == PDFLinkKind.PREPRINT
    assert result.web_url == "http://arxiv.org/abs/1706.03762v5"


async def test_arxiv_fetch_bibtex_is_built_locally(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no network call expected")

    source = make_source(ArXivSource, handler)
    result = SearchResult(
        id="1706.03762",
        source_id="arxiv",
        title="Attention Is All You Need",
        authors=("Ashish Vaswani",),
        year=2017,
        arxiv_id="1706.03762",
    )
    entry = await source.fetch_bibtex(result)
    assert entry.cite_key == "Vaswani2017Attention"
    assert entry.get("eprint") == "1706.03762"
    assert entry.get("archiveprefix") == "arXiv"


async def test_arxiv_malformed_feed_raises_parse_error(make_source) -> None:
    source = make_source(ArXivSource, lambda r: httpx.Response(200, text="<feed"))
    with pytest.raises(ParseError):
        await source.search("x")


OPENALEX_WORK = {
    "id": "https://openalex.org/W2741809807",
    "doi": "https://doi.org/10.7717/PEERJ.4375",
    "title": "The state of OA",
    "publication_year": 2018,
    "authorships": [{"author": {"display_name": "Heather Piwowar"}}],
    "primary_location": {"source": {"display_name": "PeerJ"}},
    "abstract_inverted_index": {"Despite": [0], "growing": [1], "interest": [2]},
    "open_access": {"is_oa": True, "oa_status": "gold", "oa_url": "https://peerj.com/articles/4375.pdf"},
    "ids": {"pmid": "https://pubmed.ncbi.nlm.nih.gov/29456894"},
    "cited_by_count": 812,
    "referenced_works": ["https://openalex.org/W1", "https://openalex.org/W2"],
}


async def test_openalex_search_maps_works(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["search"] == "open access"
        return httpx.Response(200, json={"results": [OPENALEX_WORK, {"title": "missing id"}]})

    source = make_source(OpenAlexSource, handler)
    results = await source.search("open access")

    assert len(results) == 1
    result = results[0]
    assert result.id == "W2741809807"
    assert result.doi == "10.7717/peerj.4375"
    assert result.pmid == "29456894"
    assert result.abstract == "Despite growing interest"
    assert result.venue == "PeerJ"
    assert result.pdf_links[0].url == "https://peerj.com/articles/4375.pdf"


async def test_openalex_enrich_by_doi(make_source) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=OPENALEX_WORK)

    source = make_source(OpenAlexSource, handler)
    identifiers = {IdentifierType.DOI: "https://doi.org/10.7717/PEERJ.4375"}
    assert source.can_enrich(identifiers)
    result = await source.enrich(identifiers)

    assert "doi.org/10.7717/peerj.4375" in seen[0]
    data = result.data
    assert data.citation_count == 812
    assert data.reference_count == 2
    assert [stub.id for stub in data.references] == ["W1", "W2"]
    assert data.open_access_status == OpenAccessStatus.GOLD
    assert data.venue == "PeerJ"
    assert data.source_id == "openalex"
    assert result.resolved_identifiers[IdentifierType.PMID] == "29456894"
    assert result.resolved_identifiers[IdentifierType.DOI] == "https://doi.org/10.7717/PEERJ.4375"


async def test_openalex_cannot_enrich_bibcode_only(make_source) -> None:
    source = make_source(OpenAlexSource, lambda r: httpx.Response(500))
    assert not source.can_enrich({IdentifierType.BIBCODE: "2017arXiv170603762V"})


async def test_semantic_scholar_search_and_key_header(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-api-key"] == "s2-test-key"
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "paperId": "204e3073870fae3d05bcbc2f6a8e263d9b72e776",
                        "title": "Attention is All you Need",
                        "authors": [{"authorId": "40348417", "name": "Ashish Vaswani"}],
                        "year": 2017,
                        "venue": "NeurIPS",
                        "externalIds": {"DOI": "10.5555/3295222.3295349", "ArXiv": "1706.03762"},
                        "openAccessPdf": {"url": "https://arxiv.org/pdf/1706.03762"},
                        "url": "https://www.semanticscholar.org/paper/204e",
                    }
                ]
            },
        )

    source = make_source(SemanticScholarSource, handler)
    results = await source.search("attention")

    assert len(results) == 1
    assert results[0].arxiv_id == "1706.03762"
    assert results[0].doi == "10.5555/3295222.3295349"
    assert results[0].pdf_links[0].kind == PDFLinkKind.PREPRINT


async def test_semantic_scholar_empty_page_has_no_data_key(make_source) -> None:
    source = make_source(SemanticScholarSource, lambda r: httpx.Response(200, json={"total": 0, "offset": 0}))
    assert await source.search("nothing matches") == []


async def test_semantic_scholar_enrich_collects_citations_and_authors(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "1706.03762" in request.url.path
        assert "v5" not in request.url.path
        return httpx.Response(
            200,
            json={
                "paperId": "204e",
                "citationCount": 90000,
                "referenceCount": 1,
                "externalIds": {"DOI": "10.5555/3295222.3295349", "ArXiv": "1706.03762"},
                "references": [{"paperId": "r1", "title": "Seq2Seq", "year": 2014}],
                "citations": [
                    {"paperId": "c1", "title": "BERT", "openAccessPdf": {"url": "https://x/bert.pdf"}},
                    {"paperId": None, "title": "dropped"},
                ],
                "authors": [{"authorId": "a1", "name": "Ashish Vaswani", "hIndex": 20, "affiliations": ["Google"]}],
            },
        )

    source = make_source(SemanticScholarSource, handler)
    result = await source.enrich({IdentifierType.ARXIV: "arXiv:1706.03762v5"})

    data = result.data
    assert data.citation_count == 90000
    assert [s.id for s in data.references] == ["r1"]
    assert [s.id for s in data.citations] == ["c1"]
    assert data.citations[0].is_open_access is True
    assert data.author_stats[0].h_index == 20
    assert data.author_stats[0].affiliations == ("Google",)
    assert result.resolved_identifiers[IdentifierType.DOI] == "10.5555/3295222.3295349"


def _ads_doc(**overrides):
    doc = {
        "bibcode": "2019ApJ...882L..24A",
        "title": ["First M87 Event Horizon Telescope Results"],
        "author": ["Akiyama, Kazunori", "Alberdi, Antxon"],
        "year": "2019",
        "pub": "The Astrophysical Journal",
        "doi": ["10.3847/2041-8213/ab0ec7"],
        "identifier": ["2019ApJ...882L..24A", "arXiv:1906.11238"],
    }
    doc.update(overrides)
    return doc


async def test_ads_search_prefers_arxiv_pdf(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer ads-test-key"
        assert request.url.params["q"] == "M87"
        return httpx.Response(200, json={"response": {"docs": [_ads_doc()]}})

    source = make_source(ADSSource, handler)
    results = await source.search("M87")

    result = results[0]
    assert result.bibcode == "2019ApJ...882L..24A"
    assert result.arxiv_id == "1906.11238"
    assert result.first_author_surname == "Akiyama"
    assert result.pdf_links[0].kind == PDFLinkKind.PREPRINT
    assert result.pdf_links[0].url == "https://arxiv.org/pdf/1906.11238.pdf"


async def test_ads_pdf_link_fallbacks(make_source) -> None:
    docs = [
        _ads_doc(bibcode="1919RSPTA.220..291D", identifier=[], doi=[]),
        _ads_doc(bibcode="2005Natur.433..111X", identifier=[]),
    ]
    source = make_source(ADSSource, lambda r: httpx.Response(200, json={"response": {"docs": docs}}))
    scan, publisher = await source.search("eclipse")

    assert scan.pdf_links[0].kind == PDFLinkKind.ADS_SCAN
    assert scan.pdf_links[0].url.endswith("/1919RSPTA.220..291D/ADS_PDF")
    assert publisher.pdf_links[0].kind == PDFLinkKind.PUBLISHER
    assert publisher.pdf_links[0].url.endswith("/2005Natur.433..111X/PUB_PDF")


async def test_ads_export_bibtex_adds_adsurl(make_source) -> None:
    bibtex = "@article{2019ApJ...882L..24A,\n  title = {First M87},\n  bibcode = {2019ApJ...882L..24A}\n}"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/v1/export/bibtex"
        assert json.loads(request.content) == {"bibcode": ["2019ApJ...882L..24A"]}
        return httpx.Response(200, json={"export": bibtex})

    source = make_source(ADSSource, handler)
    result = SearchResult(id="b", source_id="ads", title="x", bibcode="2019ApJ...882L..24A")
    entry = await source.fetch_bibtex(result)
    assert entry.get("adsurl") == "https://ui.adsabs.harvard.edu/abs/2019ApJ...882L..24A"


async def test_ads_enrich_by_doi(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == 'doi:"10.3847/2041-8213/ab0ec7"'
        doc = _ads_doc(citation_count=4000, reference=["2018A", "2017B"], abstract="We present...")
        return httpx.Response(200, json={"response": {"docs": [doc]}})

    source = make_source(ADSSource, handler)
    result = await source.enrich({IdentifierType.DOI: "10.3847/2041-8213/ab0ec7"})

    assert result.data.citation_count == 4000
    assert result.data.reference_count == 2
    assert result.data.venue == "The Astrophysical Journal"
    assert result.resolved_identifiers[IdentifierType.BIBCODE] == "2019ApJ...882L..24A"
    assert result.resolved_identifiers[IdentifierType.ARXIV] == "1906.11238"


async def test_ads_similar_excludes_the_seed(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == 'similar(bibcode:"2019ApJ...882L..24A")'
        return httpx.Response(200, json={"response": {"docs": [_ads_doc(), _ads_doc(bibcode="2019ApJ...875L...1E")]}})

    source = make_source(ADSSource, handler)
    seed = SearchResult(id="s", source_id="ads", title="x", bibcode="2019ApJ...882L..24A")
    similar = await source.fetch_similar(seed)
    assert [r.bibcode for r in similar] == ["2019ApJ...875L...1E"]
    assert SourceCapability.CO_READS in capabilities_of(source)


async def test_pubmed_search_runs_esearch_then_esummary(make_source) -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        assert request.url.params["tool"] == "bibflow"
        if request.url.path.endswith("esearch.fcgi"):
            return httpx.Response(200, json={"esearchresult": {"idlist": ["31452104"]}})
        return httpx.Response(
            200,
            json={
                "result": {
                    "uids": ["31452104"],
                    "31452104": {
                        "title": "CRISPR screens in cancer.",
                        "authors": [{"name": "Smith J"}],
                        "pubdate": "2019 Aug 26",
                        "fulljournalname": "Nature reviews. Cancer",
                        "articleids": [
                            {"idtype": "doi", "value": "10.1038/s41568-019-0181-7"},
                            {"idtype": "pmc", "value": "PMC6789012"},
                        ],
                    },
                }
            },
        )

    source = make_source(PubMedSource, handler)
    results = await source.search("crispr")

    assert [p.rsplit("/", 1)[-1] for p in paths] == ["esearch.fcgi", "esummary.fcgi"]
    result = results[0]
    assert result.pmid == "31452104"
    assert result.title == "CRISPR screens in cancer"
    assert result.year == 2019
    assert result.doi == "10.1038/s41568-019-0181-7"
    assert "PMC6789012" in result.pdf_links[0].url


def test_pubmed_rate_limit_depends_on_key(mock_client) -> None:

    client = mock_client(lambda r: httpx.Response(200))
    keyed = PubMedSource(client=client, credentials=StaticCredentialProvider(api_keys={"pubmed": "k"}))
    anonymous = PubMedSource(client=client)
    assert keyed.metadata.rate_limit.requests_per_interval == 10
    assert anonymous.metadata.rate_limit.requests_per_interval == 3


async def test_pubmed_empty_idlist_skips_summary(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, json={"esearchresult": {"idlist": []}})

    source = make_source(PubMedSource, handler)
    assert await source.search("nothing") == []
    assert len(calls) == 1


async def test_dblp_search_handles_single_author_dict(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "result": {
                    "hits": {
                        "hit": [
                            {
                                "info": {
                                    "key": "journals/cacm/Knuth74",
                                    "title": "Computer Programming as an Art.",
                                    "authors": {"author": {"text": "Donald E. Knuth"}},
                                    "venue": "Commun. ACM",
                                    "year": "1974",
                                    "doi": "10.1145/361604.361612",
                                    "ee": "https://doi.org/10.1145/361604.361612",
                                }
                            }
                        ]
                    }
                }
            },
        )

    source = make_source(DBLPSource, handler)
    results = await source.search("knuth")

    result = results[0]
    assert result.authors == ("Donald E. Knuth",)
    assert result.title == "Computer Programming as an Art"
    assert result.year == 1974
    assert result.bibtex_url == "https://dblp.org/rec/journals/cacm/Knuth74.bib"


async def test_dblp_no_hits(make_source) -> None:
    source = make_source(DBLPSource, lambda r: httpx.Response(200, json={"result": {"hits": {"@total": "0"}}}))
    assert await source.search("zzzz") == []


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("attention", "all:attention"),
        ("au:smith AND ti:lensing", "au:smith AND ti:lensing"),
        ("cat:hep-th", "cat:hep-th"),
    ],
)
async def test_arxiv_fielded_queries_pass_through(make_source, query, expected) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["search_query"])
        return httpx.Response(200, text=ARXIV_FEED)

    source = make_source(ArXivSource, handler)
    await source.search(query)
    assert seen == [expected]


def test_arxiv_normalize_old_style_id_sets_primary_class(make_source) -> None:
    source = make_source(ArXivSource, lambda r: httpx.Response(500))
    entry = BibTeXEntry(cite_key="Witten1999", entry_type="article", fields={"eprint": "arXiv:hep-th/9901001"})

    normalized = source.normalize(entry)

    assert normalized.get("eprint") == "hep-th/9901001"
    assert normalized.get("archiveprefix") == "arXiv"
    assert normalized.get("primaryclass") == "hep-th"


INSPIRE_HIT = {
    "metadata": {
        "control_number": 1124337,
        "titles": [{"title": "Observation of a new particle in the search for the Standard Model Higgs boson"}],
        "authors": [{"full_name": "Aad, Georges"}, {"full_name": "Abajyan, Tatevik"}],
        "publication_info": [{"year": 2012, "journal_title": "Phys.Lett.B"}],
        "abstracts": [{"value": "A search for the Standard Model Higgs boson."}],
        "dois": [{"value": "10.1016/j.physletb.2012.08.020"}],
        "arxiv_eprints": [{"value": "1207.7214"}],
        "documents": [
            {"url": "https://inspirehep.net/files/atlas-higgs.pdf"},
            {"url": "https://inspirehep.net/files/atlas-higgs.tar.gz"},
        ],
    }
}


async def test_inspire_search_maps_hits(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/literature"
        assert request.url.params["q"] == "higgs"
        assert request.url.params["size"] == "100"
        return httpx.Response(200, json={"hits": {"hits": [INSPIRE_HIT, {"metadata": {"titles": []}}], "total": 2}})

    source = make_source(INSPIRESource, handler)
    results = await source.search("higgs", max_results=200)

    assert len(results) == 1
    result = results[0]
    assert result.id == "1124337"
    assert result.authors == ("Aad, Georges", "Abajyan, Tatevik")
    assert result.year == 2012
    assert result.venue == "Phys.Lett.B"
    assert result.doi == "10.1016/j.physletb.2012.08.020"
    assert result.arxiv_id == "1207.7214"
    assert [link.kind for link in result.pdf_links] == [PDFLinkKind.PREPRINT, PDFLinkKind.AUTHOR, PDFLinkKind.PUBLISHER]
    assert result.pdf_links[0].url == "https://arxiv.org/pdf/1207.7214.pdf"
    assert result.web_url == "https://inspirehep.net/literature/1124337"


async def test_inspire_invalid_payload_is_parse_error(make_source) -> None:
    source = make_source(INSPIRESource, lambda r: httpx.Response(200, json={"status": 400}))
    with pytest.raises(ParseError):
        await source.search("higgs")


async def test_inspire_bibtex_and_ris_by_record_id(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "recid:1124337"
        if request.url.params["format"] == "bibtex":
            return httpx.Response(
                200,
                text="@article{ATLAS:2012yve,\n  title = {Observation of a new particle},\n"
                "  eprint = {1207.7214},\n  archivePrefix = {arXiv}\n}\n",
            )
        return httpx.Response(200, text="TY  - JOUR\nTI  - Observation of a new particle\nER  - \n")

    source = make_source(INSPIRESource, handler)
    result = SearchResult(id="https://inspirehep.net/literature/1124337", source_id="inspire", title="x")

    entry = await source.fetch_bibtex(result)
    assert entry.cite_key == "ATLAS:2012yve"
    assert entry.get("inspireurl") == "https://inspirehep.net/arxiv/1207.7214"

    ris = await source.fetch_ris(result)
    assert ris.startswith("TY  - JOUR")
    assert SourceCapability.RIS_EXPORT in capabilities_of(source)


async def test_inspire_needs_numeric_record_id(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no network call expected")

    source = make_source(INSPIRESource, handler)
    with pytest.raises(NotFoundError):
        await source.fetch_bibtex(SearchResult(id="not-a-recid", source_id="inspire", title="x"))


async def test_inspire_rate_limit_defaults_to_one_window(make_source) -> None:
    source = make_source(INSPIRESource, lambda r: httpx.Response(429))
    with pytest.raises(RateLimitError) as exc_info:
        await source.search("higgs")
    assert exc_info.value.retry_after == pytest.approx(5.0)
    assert source.metadata.rate_limit == RateLimit(15, 5)


NORMALIZE_ENTRIES = [
    BibTeXEntry("Abbott2016", "article", {"bibcode": "2016PhRvL.116f1102A", "doi": "10.1103/PhysRevLett.116.061102"}),
    BibTeXEntry("Vaswani2017", "article", {"eprint": "1706.03762v5", "title": "Attention Is All You Need"}),
    BibTeXEntry("Witten1999", "article", {"eprint": "arXiv:hep-th/9901001"}),
    BibTeXEntry("Maldacena1997", "article", {"url": "https://arxiv.org/abs/hep-th/9711200v3"}),
    BibTeXEntry("Knuth1974", "article", {"title": "Computer Programming as an Art"}),
]


@pytest.mark.parametrize("source_cls", list(SOURCE_CLASSES.values()), ids=list(SOURCE_CLASSES))
@pytest.mark.parametrize("entry", NORMALIZE_ENTRIES, ids=[e.cite_key for e in NORMALIZE_ENTRIES])
def test_normalize_is_idempotent(make_source, source_cls, entry) -> None:
    source = make_source(source_cls, lambda r: httpx.Response(500))

    once = source.normalize(entry)

    assert source.normalize(once) == once


def test_ads_normalize_fills_adsurl_once(make_source) -> None:
    source = make_source(ADSSource, lambda r: httpx.Response(500))
    entry = NORMALIZE_ENTRIES[0]

    once = source.normalize(entry)

    assert once.get("adsurl") == "https://ui.adsabs.harvard.edu/abs/2016PhRvL.116f1102A"
    assert source.normalize(once) is once
