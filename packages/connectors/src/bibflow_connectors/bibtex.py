"""
BibTeX interchange via bibtexparser.

Sources depend only on the ``BibTeXCodec`` protocol; ``BibtexParserCodec``
is the default implementation.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Mapping, Protocol
from urllib.parse import unquote, urlparse

import bibtexparser
from bibtexparser.bibdatabase import BibDatabase
from bibtexparser.bparser import BibTexParser
from bibtexparser.bwriter import BibTexWriter

from bibflow_connectors.models import (
    BibTeXEntry,
    Identifiers,
    IdentifierType,
    author_surname,
    coerce_identifiers,
)

_STOPWORDS = {"a", "an", "the", "on", "of", "in", "for", "and", "to", "with"}


class BibTeXCodec(Protocol):
    def parse_entries(self, text: str) -> list[BibTeXEntry]:
        ...

    def export(self, entry: BibTeXEntry) -> str:
        ...


class BibtexParserCodec:
    """Parse and export entries with bibtexparser."""

    def parse_entries(self, text: str) -> list[BibTeXEntry]:
        parser = BibTexParser(common_strings=True, ignore_nonstandard_types=False)
        database = bibtexparser.loads(text, parser=parser)
        entries: list[BibTeXEntry] = []
        for record in database.entries:
            fields = {
                key.lower(): value
                for key, value in record.items()
                if key not in ("ID", "ENTRYTYPE")
            }
            entries.append(
                BibTeXEntry(
                    cite_key=record.get("ID", ""),
                    entry_type=record.get("ENTRYTYPE", "misc").lower(),
                    fields=fields,
                )
            )
        return entries

    def export(self, entry: BibTeXEntry) -> str:
        record = dict(entry.fields)
        record["ID"] = entry.cite_key
        record["ENTRYTYPE"] = entry.entry_type
        database = BibDatabase()
        database.entries = [record]
        writer = BibTexWriter()
        writer.indent = "  "
        return bibtexparser.dumps(database, writer)


def make_cite_key(authors: tuple[str, ...] | list[str], year: int | None, title: str) -> str:
    """
    Build a cite key like ``Vaswani2017Attention``.

    Falls back to ``Unknown`` when there is no usable author.
    """
    surname = author_surname(authors[0]) if authors else None
    parts = [_ascii_word(surname) if surname else "Unknown"]
    if year:
        parts.append(str(year))
    for word in re.findall(r"[A-Za-z0-9]+", _ascii(title)):
        if word.lower() not in _STOPWORDS:
            parts.append(word.capitalize())
            break
    return "".join(parts)


def build_entry(
    *,
    entry_type: str,
    authors: tuple[str, ...] | list[str],
    title: str,
    year: int | None,
    **fields: str | None,
) -> BibTeXEntry:
    """Construct an entry locally for providers without a BibTeX export."""
    values: dict[str, str] = {"title": title}
    if authors:
        values["author"] = " and ".join(authors)
    if year:
        values["year"] = str(year)
    for key, value in fields.items():
        if value:
            values[key.lower()] = value
    return BibTeXEntry(
        cite_key=make_cite_key(authors, year, title),
        entry_type=entry_type,
        fields=values,
    )


def _ascii(text: str) -> str:
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")


def _ascii_word(text: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", _ascii(text))
    return cleaned or "Unknown"


def bibcode_from_ads_url(url: str) -> str | None:
    """
    Pull the bibcode out of an ADS abstract URL.

    Handles ``https://ui.adsabs.harvard.edu/abs/<bibcode>/abstract`` and the
    older ``https://adsabs.harvard.edu/abs/<bibcode>``. Non-ADS hosts give ``None``.
    """
    parsed = urlparse(url.strip())
    if "adsabs" not in (parsed.hostname or ""):
        return None
    parts = [part for part in parsed.path.split("/") if part]
    if "abs" not in parts:
        return None
    index = parts.index("abs")
    if index + 1 >= len(parts):
        return None
    return unquote(parts[index + 1])


def extract_identifiers(fields: Mapping[str, str]) -> Identifiers:
    """
    Collect identifiers from BibTeX fields.

    arXiv comes from ``eprint``, ``arxivid`` or ``arxiv`` (first present);
    the bibcode from ``bibcode`` or else the ``adsurl`` path.
    """
    lowered = {key.lower(): value for key, value in fields.items()}
    adsurl = lowered.get("adsurl")
    return coerce_identifiers(
        {
            IdentifierType.DOI: lowered.get("doi"),
            IdentifierType.ARXIV: lowered.get("eprint") or lowered.get("arxivid") or lowered.get("arxiv"),
            IdentifierType.PMID: lowered.get("pmid"),
            IdentifierType.BIBCODE: lowered.get("bibcode") or (bibcode_from_ads_url(adsurl) if adsurl else None),
        }
    )
