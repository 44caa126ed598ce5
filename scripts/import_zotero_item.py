#!/usr/bin/env python3
"""
Zotero Web API Import

Searches the configured Zotero library, lets you pick one item and writes
it into the vault as a Markdown note rendered from an export format.

Usage:
    python scripts/import_zotero_item.py [OPTIONS]

Options:
    --term TEXT         Search term (prompted for when omitted)
    --format NAME       Export format to render with
    --vault DIR         Vault root (overrides VAULT_ROOT)
    --preview           Print the template input instead of writing a note
    --open              Open the note after importing

Examples:
    python scripts/import_zotero_item.py --term "attention is all you need"
    python scripts/import_zotero_item.py --preview

Environment:
    ZOTERO_WEB_API_ENABLED, ZOTERO_API_KEY, ZOTERO_LIBRARY_TYPE,
    ZOTERO_USER_ID / ZOTERO_GROUP_ID, VAULT_ROOT, EXPORT_FORMATS (JSON)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from config import get_settings
from importers.document_store import FileSystemDocumentStore
from importers.prompts import ConsoleSelectionPrompt, LoggingNotifier
from importers.template_renderer import TemplateRenderer
from importers.zotero_web_importer import ImportState, ZoteroWebImporter
from integrations.zotero import ZoteroClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run_import(term=None, format_name=None, vault=None, preview=False, open_after=None):
    """Run one import (or preview) and return the process exit code."""
    settings = get_settings()
    if vault:
        settings = settings.model_copy(update={"vault_root": vault})

    async with ZoteroClient.from_settings(settings) as client:
        importer = ZoteroWebImporter(
            settings=settings,
            client=client,
            document_store=FileSystemDocumentStore(settings.vault_root),
            renderer=TemplateRenderer(settings.vault_root),
            prompt=ConsoleSelectionPrompt(),
            notifier=LoggingNotifier(),
        )

        if preview:
            result = await importer.preview(term)
            if result.template_input is not None:
                for key, value in sorted(result.template_input.to_template_data().items()):
                    print(f"{key}: {value!r}")
        else:
            result = await importer.run_import(term, format_name, open_after)

    if result.state == ImportState.FAILED:
        return 1
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import a Zotero item into the vault")
    parser.add_argument(
        "--term",
        help="Search term (prompted for when omitted)"
    )
    parser.add_argument(
        "--format",
        dest="format_name",
        help="Export format name (default: 'Import #1', then the first format)"
    )
    parser.add_argument(
        "--vault",
        help="Vault root directory"
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Print the template input instead of writing a note"
    )
    parser.add_argument(
        "--open",
        dest="open_after",
        action="store_true",
        default=None,
        help="Open the note after importing"
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(run_import(
        term=args.term,
        format_name=args.format_name,
        vault=args.vault,
        preview=args.preview,
        open_after=args.open_after,
    )))
