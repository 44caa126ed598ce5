"""
Remote Record Normalizer

Maps raw Zotero Web API records into the canonical RemoteRecord used by the
rest of the import pipeline.

Search hits and detail records do not agree on where fields live: most sit
under "data", some only at the top level, and a few (the cite key in
particular) are occasionally relocated by the transport into a secondary
"raw" metadata block. Every lookup order is declared once below as a tuple
of accessor paths; the first non-empty value wins.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


FieldPath = Tuple[str, ...]

TITLE_PATHS: Tuple[FieldPath, ...] = (
    ("data", "title"),
    ("meta", "title"),
    ("title",),
)
ITEM_TYPE_PATHS: Tuple[FieldPath, ...] = (
    ("data", "itemType"),
    ("itemType",),
)
CREATORS_PATHS: Tuple[FieldPath, ...] = (
    ("data", "creators"),
    ("creators",),
)
DATE_PATHS: Tuple[FieldPath, ...] = (
    ("data", "date"),
    ("date",),
)
CITE_KEY_PATHS: Tuple[FieldPath, ...] = (
    ("data", "citationKey"),
    ("data", "citation-key"),
    ("citationKey",),
    ("citation-key",),
    ("raw", "data", "citationKey"),
    ("raw", "data", "citation-key"),
)
COLLECTIONS_PATHS: Tuple[FieldPath, ...] = (
    ("raw", "data", "collections"),
    ("data", "collections"),
    ("collections",),
)
CITATION_PATHS: Tuple[FieldPath, ...] = (("citation",),)
BIBLIOGRAPHY_PATHS: Tuple[FieldPath, ...] = (("bib",), ("bibliography",))

NOTE_ITEM_TYPE = "note"
ATTACHMENT_ITEM_TYPE = "attachment"

BLOCK_TAGS = (
    "p", "div", "blockquote", "pre", "ul", "ol", "li", "tr", "table",
    "h1", "h2", "h3", "h4", "h5", "h6",
)


@dataclass(frozen=True)
class Creator:
    """One creator of a record, in authorship order."""

    last_name: str = ""
    first_name: str = ""
    creator_type: str = "author"

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Creator":
        # Single-field creators ("name") are institutional; keep them as last name
        return cls(
            last_name=data.get("lastName") or data.get("name") or "",
            first_name=data.get("firstName") or "",
            creator_type=data.get("creatorType") or "author",
        )

    def display_name(self) -> str:
        return ", ".join(part for part in (self.last_name.strip(), self.first_name.strip()) if part)

    def to_dict(self) -> Dict[str, str]:
        return {
            "lastName": self.last_name,
            "firstName": self.first_name,
            "creatorType": self.creator_type,
        }


@dataclass
class RemoteRecord:
    """Canonical representation of one bibliographic item."""

    key: str
    title: Optional[str] = None
    item_type: Optional[str] = None
    creators: Tuple[Creator, ...] = ()
    date: Optional[str] = None
    cite_key: Optional[str] = None
    citation: str = ""
    bibliography: str = ""
    collections: Tuple[str, ...] = ()
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def creators_display(self) -> str:
        return format_creators(self.creators)


@dataclass(frozen=True)
class ChildRecord:
    """A child item (note or attachment) of a record."""

    key: str
    item_type: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class Note:
    """A child note converted to plain text."""

    key: str
    note: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "note": self.note}


# ==================== Field lookup ====================

def _lookup_path(view: Mapping[str, Any], path: FieldPath) -> Any:
    current: Any = view
    for segment in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment)
    return current


def lookup_first(view: Mapping[str, Any], paths: Iterable[FieldPath]) -> Any:
    """Return the first non-empty value found along the given accessor paths."""
    for path in paths:
        value = _lookup_path(view, path)
        if value not in (None, "", [], {}):
            return value
    return None


def _build_view(raw: Mapping[str, Any], secondary: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    view = dict(raw)
    data = raw.get("data")
    view["data"] = data if isinstance(data, Mapping) else {}
    meta = raw.get("meta")
    view["meta"] = meta if isinstance(meta, Mapping) else {}
    if secondary is not None:
        view["raw"] = {"data": dict(secondary)}
    elif not isinstance(raw.get("raw"), Mapping):
        view["raw"] = {}
    return view


# ==================== Text conversion ====================

def html_to_text(html: Any) -> str:
    """
    Convert API rich text (citations, bibliographies, note bodies) to plain text.

    None and non-string values convert to "".
    """
    if not html or not isinstance(html, str):
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for item in soup.find_all("li"):
        item.insert(0, "- ")
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_after("\n\n")

    text = soup.get_text()
    lines = [line.rstrip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def format_creators(creators: Optional[Sequence[Any]]) -> str:
    """Format creators as "Last, First; Last, First", skipping empty names."""
    if not creators:
        return ""

    names = []
    for creator in creators:
        if not isinstance(creator, Creator):
            if not isinstance(creator, Mapping):
                continue
            creator = Creator.from_api(creator)
        name = creator.display_name()
        if name:
            names.append(name)
    return "; ".join(names)


# ==================== Normalization ====================

def _parse_creators(value: Any) -> Tuple[Creator, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(Creator.from_api(c) for c in value if isinstance(c, Mapping))


def _parse_collections(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple, set)):
        return ()
    seen: List[str] = []
    for key in value:
        if isinstance(key, str) and key and key not in seen:
            seen.append(key)
    return tuple(seen)


def normalize(
    raw: Mapping[str, Any],
    secondary: Optional[Mapping[str, Any]] = None,
) -> RemoteRecord:
    """
    Normalize a raw search hit or detail record.

    Args:
        raw: Record as returned by the API
        secondary: Secondary raw-metadata block, when the transport relocated
            fields out of "data"

    Returns:
        Canonical record

    Raises:
        ValueError: if the record carries no key at all
    """
    view = _build_view(raw, secondary)

    key = raw.get("key") or view["data"].get("key")
    if not key:
        raise ValueError("Zotero record has no key")

    title = lookup_first(view, TITLE_PATHS)
    item_type = lookup_first(view, ITEM_TYPE_PATHS)
    date = lookup_first(view, DATE_PATHS)
    cite_key = lookup_first(view, CITE_KEY_PATHS)

    data = dict(view["data"])
    # Surface a relocated cite key in the data block so templates see it
    if cite_key and not data.get("citationKey"):
        data["citationKey"] = cite_key

    return RemoteRecord(
        key=key,
        title=title if isinstance(title, str) else None,
        item_type=item_type if isinstance(item_type, str) else None,
        creators=_parse_creators(lookup_first(view, CREATORS_PATHS)),
        date=date if isinstance(date, str) else None,
        cite_key=cite_key if isinstance(cite_key, str) else None,
        citation=html_to_text(lookup_first(view, CITATION_PATHS)),
        bibliography=html_to_text(lookup_first(view, BIBLIOGRAPHY_PATHS)),
        collections=_parse_collections(lookup_first(view, COLLECTIONS_PATHS)),
        data=data,
    )


def normalize_search_hits(hits: Iterable[Mapping[str, Any]]) -> List[RemoteRecord]:
    """Normalize search hits, dropping any that carry no key."""
    records = []
    for hit in hits:
        try:
            records.append(normalize(hit))
        except ValueError:
            logger.warning("Skipping search hit without a key")
    return records


def normalize_child(raw: Mapping[str, Any]) -> ChildRecord:
    data = raw.get("data") if isinstance(raw.get("data"), Mapping) else {}
    return ChildRecord(
        key=raw.get("key") or data.get("key") or "",
        item_type=data.get("itemType") or "",
        data=dict(data),
    )


def notes_from_children(children: Iterable[ChildRecord]) -> List[Note]:
    """Child notes in API order, bodies converted to plain text."""
    return [
        Note(key=child.key, note=html_to_text(child.data.get("note", "")))
        for child in children
        if child.item_type == NOTE_ITEM_TYPE
    ]


def attachments_from_children(children: Iterable[ChildRecord]) -> List[Dict[str, Any]]:
    """Child attachments reduced to the fields templates use."""
    attachments = []
    for child in children:
        if child.item_type != ATTACHMENT_ITEM_TYPE:
            continue
        attachments.append({
            "key": child.key,
            "title": child.data.get("title", ""),
            "filename": child.data.get("filename"),
            "contentType": child.data.get("contentType"),
            "linkMode": child.data.get("linkMode"),
            "url": child.data.get("url"),
        })
    return attachments


# ==================== Presentation helpers ====================

def matches_query(record: RemoteRecord, query: str) -> bool:
    """Case-insensitive match on title, cite key or creators."""
    term = query.strip().lower()
    if not term:
        return True
    haystacks = (
        (record.title or "").lower(),
        (record.cite_key or "").lower(),
        record.creators_display.lower(),
    )
    return any(term in haystack for haystack in haystacks)


def describe_record(record: RemoteRecord) -> str:
    """One-line description used by selection prompts."""
    parts = []
    if record.creators:
        parts.append(f"authors: {record.creators_display}")
    if record.item_type:
        parts.append(f"type: {record.item_type}")
    if record.date:
        parts.append(f"date: {record.date}")
    if record.cite_key:
        parts.append(f"citekey: {record.cite_key}")
    return " • ".join(parts)
