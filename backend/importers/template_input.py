"""
Template Input Builder

Combines a normalized record, its notes, resolved collection paths and the
import history of the target note into the flat document handed to the
template renderer.

Building is pure: no network or vault access, identical inputs give
identical output.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from importers.collection_paths import CollectionWithPath
from importers.record_normalizer import Note, RemoteRecord

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ZOTERO_WEB_HOST = "http://zotero.org"
_GROUP_URI_PATTERN = re.compile(r"/groups/([^/]+)/items/")


@dataclass(frozen=True)
class LibraryContext:
    """Which library the imported item belongs to."""

    library_type: str  # "user" or "group"
    library_id: str

    @classmethod
    def from_settings(cls, settings) -> "LibraryContext":
        return cls(library_type=settings.zotero_library_type, library_id=settings.library_id)


def build_item_uri(library: LibraryContext, item_key: str) -> str:
    """Canonical Zotero URI of an item."""
    if library.library_type == "group":
        return f"{ZOTERO_WEB_HOST}/groups/{library.library_id}/items/{item_key}"
    return f"{ZOTERO_WEB_HOST}/users/{library.library_id}/items/{item_key}"


def get_local_uri(action: str, uri: str) -> str:
    """
    Derive a zotero:// desktop link from a canonical item URI.

    User libraries map to "library", group libraries keep their group ID.
    """
    item_key = uri.rstrip("/").rsplit("/", 1)[-1]
    match = _GROUP_URI_PATTERN.search(uri)
    library = f"groups/{match.group(1)}" if match else "library"
    return f"zotero://{action}/{library}/items/{item_key}"


def is_epoch(value: datetime) -> bool:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value == EPOCH


@dataclass(frozen=True)
class TemplateInput:
    """Flat document consumed by template rendering."""

    source_path: str
    record: RemoteRecord
    uri: str
    last_import_date: datetime
    notes: Tuple[Note, ...] = ()
    collections: Tuple[CollectionWithPath, ...] = ()
    attachments: Tuple[Dict[str, Any], ...] = ()
    annotations: Tuple[Dict[str, Any], ...] = ()

    @property
    def is_first_import(self) -> bool:
        return is_epoch(self.last_import_date)

    @property
    def citekey(self) -> str:
        return self.record.cite_key or self.record.key

    @property
    def select_uri(self) -> str:
        return get_local_uri("select", self.uri)

    def to_template_data(self) -> Dict[str, Any]:
        """Flatten into the mapping exposed to templates."""
        record = self.record
        data: Dict[str, Any] = dict(record.data)
        select_uri = self.select_uri

        data.update({
            "key": record.key,
            "itemKey": record.key,
            "itemType": record.item_type or data.get("itemType"),
            "title": record.title or data.get("title", ""),
            "date": record.date or data.get("date", ""),
            "creators": [c.to_dict() for c in record.creators],
            "creatorsString": record.creators_display,
            "uri": self.uri,
            "citekey": self.citekey,
            "citationKey": self.citekey,
            "desktopURI": select_uri,
            "select": select_uri,
            "attachments": [dict(a) for a in self.attachments],
            "annotations": [dict(a) for a in self.annotations],
            "notes": [n.to_dict() for n in self.notes],
            "collections": [c.to_dict() for c in self.collections],
            "collectionKeys": list(record.collections),
            "citation": record.citation,
            "bibliography": record.bibliography,
            "lastImportDate": self.last_import_date,
            "lastExportDate": self.last_import_date,
            "isFirstImport": self.is_first_import,
        })
        return data


def build_template_input(
    source_path: str,
    record: RemoteRecord,
    notes: Sequence[Note],
    last_import_date: Optional[datetime],
    library: LibraryContext,
    collections: Sequence[CollectionWithPath] = (),
    attachments: Sequence[Dict[str, Any]] = (),
    annotations: Sequence[Dict[str, Any]] = (),
) -> TemplateInput:
    """
    Build the template input for one import attempt.

    Args:
        source_path: Template path the input is rendered against
        record: Normalized item
        notes: Child notes
        last_import_date: Previous import of the target note; None means never
        library: Owning library, used for the canonical URI
        collections: Resolved collection paths
        attachments: Child attachments, if fetched
        annotations: Annotations, if fetched

    Returns:
        Immutable TemplateInput
    """
    if last_import_date is None:
        last_import_date = EPOCH
    elif last_import_date.tzinfo is None:
        last_import_date = last_import_date.replace(tzinfo=timezone.utc)

    return TemplateInput(
        source_path=source_path,
        record=record,
        uri=build_item_uri(library, record.key),
        last_import_date=last_import_date,
        notes=tuple(notes),
        collections=tuple(collections),
        attachments=tuple(attachments),
        annotations=tuple(annotations),
    )
