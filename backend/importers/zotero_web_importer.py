"""
Zotero Web API Importer - Import one Zotero item into a Markdown vault

Process:
1. Search the library for a term and drop non-importable hits (attachments)
2. Let the user pick one result
3. Fetch the item detail and its child notes/attachments
4. Resolve the item's collections to full paths (best effort)
5. Build the template input twice: against the epoch to compute the note
   path, then against the note's recorded import date for the content
6. Render, merge with the annotations already kept in the note, persist

Re-importing is safe: the annotation block of an existing note survives and
only the rendered metadata is refreshed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from config import ExportFormat, Settings
from exceptions import (
    ConfigurationError,
    ItemNotFoundError,
    NoItemsFoundError,
    summarize_error,
)
from importers.annotations import (
    append_import_date,
    extract_last_import_timestamp,
    extract_prior_annotations,
    merge_document,
)
from importers.collection_paths import CollectionPathResolver, CollectionWithPath
from importers.document_store import DocumentStore
from importers.prompts import (
    Cancelled,
    ConsoleLoadingIndicator,
    LoadingIndicator,
    Notifier,
    SelectionPrompt,
)
from importers.record_normalizer import (
    ATTACHMENT_ITEM_TYPE,
    RemoteRecord,
    attachments_from_children,
    normalize,
    normalize_child,
    normalize_search_hits,
    notes_from_children,
)
from importers.template_input import (
    EPOCH,
    LibraryContext,
    TemplateInput,
    build_template_input,
)
from importers.template_renderer import TemplateRenderer

logger = logging.getLogger(__name__)


SEARCH_PROMPT_TITLE = "Search Zotero Web API"
SEARCH_PROMPT_PLACEHOLDER = "Enter search term"
LOADING_MESSAGE = "Searching Zotero Web API..."
FAILURE_NOTICE_TIMEOUT_MS = 10000
NON_CANDIDATE_ITEM_TYPES = (ATTACHMENT_ITEM_TYPE,)


class ImportState(str, Enum):
    """States of one import run."""
    IDLE = "idle"
    SEARCHING = "searching"
    AWAITING_SELECTION = "awaiting_selection"
    FETCHING_DETAIL = "fetching_detail"
    RESOLVING_METADATA = "resolving_metadata"
    RENDERING = "rendering"
    MERGING = "merging"
    PERSISTING = "persisting"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ImportResult:
    """Outcome of one import or preview run."""
    state: ImportState
    path: Optional[str] = None
    message: Optional[str] = None
    written: bool = False
    template_input: Optional[TemplateInput] = None


@dataclass
class ImportProgress:
    """Track state transitions for UI updates."""
    state: ImportState = ImportState.IDLE
    message: str = ""
    history: List[ImportState] = field(default_factory=list)


@dataclass
class _FetchedItem:
    record: RemoteRecord
    notes: list
    attachments: list
    collections: List[CollectionWithPath]


class ZoteroWebImporter:
    """
    Import Zotero items into the vault through the Web API.

    All collaborators are injected: the API client, the note store, the
    renderer, the prompt and the notifier. One CollectionPathResolver is
    created per run so collection data never leaks across libraries.
    """

    def __init__(
        self,
        settings: Settings,
        client: Any,
        document_store: DocumentStore,
        renderer: TemplateRenderer,
        prompt: SelectionPrompt,
        notifier: Notifier,
        loading_factory: Callable[[str], LoadingIndicator] = ConsoleLoadingIndicator,
        progress_callback: Optional[Callable[[ImportProgress], None]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings
        self.client = client
        self.document_store = document_store
        self.renderer = renderer
        self.prompt = prompt
        self.notifier = notifier
        self.loading_factory = loading_factory
        self.progress_callback = progress_callback
        self.clock = clock
        self.progress = ImportProgress()

    @property
    def state(self) -> ImportState:
        return self.progress.state

    def _transition(self, state: ImportState, message: str = "") -> None:
        """Update and broadcast progress."""
        self.progress.state = state
        self.progress.message = message
        self.progress.history.append(state)

        if self.progress_callback:
            self.progress_callback(self.progress)

        logger.info(f"[{state.value}] {message}" if message else f"[{state.value}]")

    def _reset(self) -> None:
        self.progress = ImportProgress()
        self._transition(ImportState.IDLE)

    # ==================== Configuration ====================

    def _check_configuration(self, format_name: Optional[str] = None, need_format: bool = True) -> Optional[ExportFormat]:
        """
        Raise ConfigurationError unless the Web API import can start.

        Returns the export format to render with when one is needed.
        """
        missing = self.settings.validate_web_api_settings()
        if "ZOTERO_WEB_API_ENABLED" in missing:
            raise ConfigurationError("Web API is disabled. Enable it in settings first.", missing)
        if "ZOTERO_USER_ID" in missing or "ZOTERO_GROUP_ID" in missing:
            raise ConfigurationError("Web API library ID is missing in settings.", missing)
        if "ZOTERO_API_KEY" in missing:
            raise ConfigurationError("Web API key is not set.", missing)

        if not need_format:
            return None

        export_format = self.settings.resolve_import_format(format_name)
        if export_format is None:
            raise ConfigurationError(
                "No import format found. Add an Export Format first.",
                ["EXPORT_FORMATS"],
            )
        return export_format

    # ==================== Pipeline steps ====================

    async def _search(self, term: str) -> List[RemoteRecord]:
        self._transition(ImportState.SEARCHING, term)
        hits = await self.client.search_items(
            term,
            limit=self.settings.search_limit,
            style=self.settings.csl_style(),
        )
        records = normalize_search_hits(hits)
        candidates = [r for r in records if r.item_type not in NON_CANDIDATE_ITEM_TYPES]
        logger.info(f"Search '{term}': {len(records)} hits, {len(candidates)} candidates")
        if not candidates:
            raise NoItemsFoundError(term)
        return candidates

    async def _resolve_collections(self, record: RemoteRecord) -> List[CollectionWithPath]:
        """Collection paths of a record; failures degrade to no collections."""
        self._transition(ImportState.RESOLVING_METADATA, record.key)
        if not record.collections:
            return []

        resolver = CollectionPathResolver(self.client.get_collection)
        try:
            return await resolver.resolve_paths(record.collections)
        except Exception as e:
            logger.error(f"Failed to resolve collections for {record.key}: {e}")
            return []

    async def _fetch_item(self, item_key: str) -> _FetchedItem:
        self._transition(ImportState.FETCHING_DETAIL, item_key)
        raw = await self.client.get_item(item_key, style=self.settings.csl_style())
        if not raw:
            raise ItemNotFoundError(item_key)

        record = normalize(raw)
        children = [normalize_child(c) for c in await self.client.get_item_children(record.key)]
        collections = await self._resolve_collections(record)

        return _FetchedItem(
            record=record,
            notes=notes_from_children(children),
            attachments=attachments_from_children(children),
            collections=collections,
        )

    def _build_input(
        self,
        source_path: str,
        item: _FetchedItem,
        last_import_date: datetime,
    ) -> TemplateInput:
        return build_template_input(
            source_path,
            item.record,
            item.notes,
            last_import_date,
            LibraryContext.from_settings(self.settings),
            collections=item.collections,
            attachments=item.attachments,
        )

    async def _write_note(
        self,
        export_format: ExportFormat,
        item: _FetchedItem,
        open_after_import: bool,
    ) -> ImportResult:
        self._transition(ImportState.RENDERING, item.record.key)
        source_path = export_format.template_path

        # The note path must not depend on import history
        path_input = self._build_input(source_path, item, EPOCH)
        markdown_path = self.renderer.render_output_path(export_format, path_input)

        existing = await self.document_store.read(markdown_path)
        if existing is not None:
            prior_annotations = extract_prior_annotations(existing)
            last_import_date = extract_last_import_timestamp(existing)
        else:
            prior_annotations = ""
            last_import_date = EPOCH

        template_input = self._build_input(source_path, item, last_import_date)
        rendered = self.renderer.render(source_path, template_input)
        if not rendered.strip():
            self._transition(ImportState.DONE, "template rendered nothing; note left unchanged")
            return ImportResult(ImportState.DONE, path=markdown_path, written=False)

        self._transition(ImportState.MERGING, markdown_path)
        merged = append_import_date(merge_document(rendered, prior_annotations), self.clock())

        self._transition(ImportState.PERSISTING, markdown_path)
        await self.document_store.write(markdown_path, merged)

        self._transition(ImportState.DONE, markdown_path)
        if open_after_import:
            try:
                await self.document_store.open(markdown_path)
            except Exception as e:
                logger.warning(f"Could not open {markdown_path}: {e}")

        self.notifier.notify("Imported 1 item.")
        return ImportResult(ImportState.DONE, path=markdown_path, written=True)

    # ==================== Entry points ====================

    async def _read_term(self, term: Optional[str]) -> Optional[str]:
        if term is None:
            term = await self.prompt.prompt_text(SEARCH_PROMPT_TITLE, SEARCH_PROMPT_PLACEHOLDER)
        if not term or not term.strip():
            return None
        return term.strip()

    async def _run(
        self,
        term: Optional[str],
        format_name: Optional[str],
        open_after_import: Optional[bool],
        preview: bool,
    ) -> ImportResult:
        """Run the pipeline once; failed and cancelled runs settle back to Idle."""
        self._reset()
        try:
            return await self._execute(term, format_name, open_after_import, preview)
        finally:
            if self.state in (ImportState.FAILED, ImportState.CANCELLED):
                self._transition(ImportState.IDLE)

    async def _execute(
        self,
        term: Optional[str],
        format_name: Optional[str],
        open_after_import: Optional[bool],
        preview: bool,
    ) -> ImportResult:
        try:
            export_format = self._check_configuration(format_name, need_format=not preview)
        except ConfigurationError as e:
            self.notifier.notify(e.message)
            self._transition(ImportState.FAILED, e.message)
            return ImportResult(ImportState.FAILED, message=e.message)

        term = await self._read_term(term)
        if term is None:
            self._transition(ImportState.IDLE, "empty search term")
            return ImportResult(ImportState.IDLE)

        loading = self.loading_factory(LOADING_MESSAGE)
        loading.open()
        try:
            candidates = await self._search(term)
            loading.close()

            self._transition(ImportState.AWAITING_SELECTION, f"{len(candidates)} candidates")
            title = "Select item to preview" if preview else "Select item to import"
            selection = await self.prompt.prompt_selection(title, candidates)
            if isinstance(selection, Cancelled):
                self._transition(ImportState.CANCELLED)
                return ImportResult(ImportState.CANCELLED)

            item = await self._fetch_item(selection.item.key)

            if preview:
                template_input = self._build_input("", item, EPOCH)
                self._transition(ImportState.DONE, "preview")
                return ImportResult(ImportState.DONE, template_input=template_input)

            if open_after_import is None:
                open_after_import = self.settings.open_note_after_import
            return await self._write_note(export_format, item, open_after_import)

        except (NoItemsFoundError, ItemNotFoundError) as e:
            message = "No items found." if isinstance(e, NoItemsFoundError) else "Failed to fetch selected item."
            self.notifier.notify(message)
            self._transition(ImportState.FAILED, e.message)
            return ImportResult(ImportState.FAILED, message=message)
        except Exception as e:
            logger.exception(f"Zotero import failed: {e}")
            message = f"Zotero import failed: {summarize_error(e)}"
            self.notifier.notify(message, FAILURE_NOTICE_TIMEOUT_MS)
            self._transition(ImportState.FAILED, message)
            return ImportResult(ImportState.FAILED, message=message)
        finally:
            loading.close()

    async def run_import(
        self,
        term: Optional[str] = None,
        format_name: Optional[str] = None,
        open_after_import: Optional[bool] = None,
    ) -> ImportResult:
        """
        Search, select and import one item into the vault.

        Args:
            term: Search term; prompted for when None
            format_name: Export format to render with (default: "Import #1",
                then the first configured format)
            open_after_import: Open the note afterwards (default: settings)

        Returns:
            ImportResult; cancellation and failures are results, not exceptions
        """
        return await self._run(term, format_name, open_after_import, preview=False)

    async def preview(self, term: Optional[str] = None) -> ImportResult:
        """
        Search, select and build the template input without writing anything.

        The returned input is built against the epoch, as for a first import.
        """
        return await self._run(term, None, None, preview=True)
