"""
Importers for the Zotero vault importer.

- zotero_web_importer: search/select/import pipeline over the Zotero Web API
- collection_paths: memoized collection path resolution
- record_normalizer: raw API records to canonical records
- template_input: template input documents
- annotations: note history and annotation merging
- template_renderer: Jinja2 note and output path rendering
- document_store: vault read/write
- prompts: selection prompts, notices and the loading indicator
"""
