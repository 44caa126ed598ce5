"""
External API integrations for the vault importer.

This module provides integrations with:
- Zotero Web API: item search, detail, children and collections
"""

from integrations.zotero import ZoteroClient

__all__ = [
    "ZoteroClient",
]
