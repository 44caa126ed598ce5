"""
Pytest fixtures for the Zotero vault importer tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from config import ExportFormat, Settings
from importers.document_store import DocumentStore
from importers.prompts import Cancelled, LoadingIndicator, Notifier, Selected, SelectionPrompt
from importers.template_renderer import TemplateRenderer


NOTE_TEMPLATE = """# {{ title }}

- citekey: {{ citekey }}
- authors: {{ creatorsString }}
- link: {{ select }}
{% for collection in collections %}
- collection: {{ collection.fullPath }}
{% endfor %}

{{ bibliography }}

%% begin annotations %%
{% for note in notes %}
{{ note.note }}

{% endfor %}
%% end annotations %%
"""


class FakeZoteroClient:
    """In-memory stand-in for ZoteroClient that records every call."""

    def __init__(
        self,
        hits: Optional[List[Dict[str, Any]]] = None,
        items: Optional[Dict[str, Dict[str, Any]]] = None,
        children: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        collections: Optional[Dict[str, Dict[str, Any]]] = None,
        failing_collections: Optional[set] = None,
    ):
        self.hits = hits or []
        self.items = items or {}
        self.children = children or {}
        self.collections = collections or {}
        self.failing_collections = failing_collections or set()
        self.calls: Dict[str, list] = {"search": [], "item": [], "children": [], "collection": []}

    @property
    def network_calls(self) -> int:
        return sum(len(calls) for calls in self.calls.values())

    async def search_items(self, term, limit=25, style=None):
        self.calls["search"].append(term)
        return list(self.hits)

    async def get_item(self, item_key, style=None):
        self.calls["item"].append(item_key)
        return self.items.get(item_key)

    async def get_item_children(self, item_key):
        self.calls["children"].append(item_key)
        return list(self.children.get(item_key, []))

    async def get_collection(self, collection_key):
        self.calls["collection"].append(collection_key)
        await asyncio.sleep(0)
        if collection_key in self.failing_collections:
            raise RuntimeError(f"collection {collection_key} unavailable")
        return self.collections.get(collection_key)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, documents: Optional[Dict[str, str]] = None, fail_open: bool = False):
        self.documents = dict(documents or {})
        self.writes: List[str] = []
        self.opened: List[str] = []
        self.fail_open = fail_open

    async def read(self, path):
        return self.documents.get(path)

    async def write(self, path, text):
        self.writes.append(path)
        self.documents[path] = text

    async def exists(self, path):
        return path in self.documents

    async def open(self, path):
        if self.fail_open:
            raise RuntimeError("no workspace")
        self.opened.append(path)


class ScriptedPrompt(SelectionPrompt):
    """Answers prompts from a script: a term and the index to select (None cancels)."""

    def __init__(self, term: Optional[str] = None, choice: Optional[int] = 0):
        self.term = term
        self.choice = choice
        self.text_prompts = 0
        self.presented: List[list] = []

    async def prompt_text(self, title, placeholder=""):
        self.text_prompts += 1
        return self.term

    async def prompt_selection(self, title, candidates):
        self.presented.append(list(candidates))
        if self.choice is None:
            return Cancelled()
        return Selected(candidates[self.choice])


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: List[str] = []

    def notify(self, message, timeout_ms=None):
        self.messages.append(message)


class RecordingLoadingIndicator(LoadingIndicator):
    instances: List["RecordingLoadingIndicator"] = []

    def __init__(self, message=""):
        super().__init__(message)
        self.shown = 0
        self.hidden = 0
        RecordingLoadingIndicator.instances.append(self)

    def _show(self):
        self.shown += 1

    def _hide(self):
        self.hidden += 1


def make_item(
    key: str = "ITEM1",
    title: str = "Attention Is All You Need",
    item_type: str = "journalArticle",
    collections: Optional[List[str]] = None,
    **data: Any,
) -> Dict[str, Any]:
    """Raw API item record."""
    item_data = {
        "key": key,
        "itemType": item_type,
        "title": title,
        "date": "2017-06-12",
        "creators": [
            {"creatorType": "author", "firstName": "Ashish", "lastName": "Vaswani"},
            {"creatorType": "author", "firstName": "Noam", "lastName": "Shazeer"},
        ],
        "collections": collections or [],
    }
    item_data.update(data)
    return {
        "key": key,
        "version": 3,
        "data": item_data,
        "meta": {"numChildren": 1},
        "citation": "<span>(Vaswani et al., 2017)</span>",
        "bib": "<div class=\"csl-entry\">Vaswani, A. (2017). <i>Attention Is All You Need</i>.</div>",
    }


def make_note(key: str, html: str) -> Dict[str, Any]:
    return {"key": key, "data": {"key": key, "itemType": "note", "note": html}}


def make_collection(key: str, name: str, parent: Any = False) -> Dict[str, Any]:
    return {"key": key, "data": {"key": key, "name": name, "parentCollection": parent}}


@pytest.fixture
def vault(tmp_path):
    """Vault directory holding the note template."""
    template = tmp_path / "templates" / "note.md"
    template.parent.mkdir(parents=True)
    template.write_text(NOTE_TEMPLATE, encoding="utf-8")
    return tmp_path


@pytest.fixture
def export_format():
    return ExportFormat(
        name="Import #1",
        template_path="templates/note.md",
        output_path_template="references/{{citekey}}",
    )


@pytest.fixture
def settings(vault, export_format):
    """Settings for a fully configured user library."""
    return Settings(
        zotero_web_api_enabled=True,
        zotero_api_key="test-key",
        zotero_library_type="user",
        zotero_user_id="12345",
        vault_root=str(vault),
        export_formats=[export_format],
        open_note_after_import=False,
    )


@pytest.fixture
def renderer(vault):
    return TemplateRenderer(vault)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def loading_indicators():
    RecordingLoadingIndicator.instances = []
    return RecordingLoadingIndicator.instances
