"""
Configuration management for the Zotero vault importer.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ExportFormat(BaseModel):
    """A named import format: which template to render and where to write it."""

    name: str
    template_path: str
    output_path_template: str = "{{citekey}}.md"
    csl_style: Optional[str] = None


class CiteFormat(BaseModel):
    """A named citation format."""

    name: str
    csl_style: Optional[str] = None


DEFAULT_IMPORT_FORMAT_NAME = "Import #1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Zotero Web API
    zotero_web_api_enabled: bool = False
    zotero_api_key: str = ""  # From zotero.org/settings/keys
    zotero_library_type: Literal["user", "group"] = "user"
    zotero_user_id: str = ""
    zotero_group_id: str = ""
    search_limit: int = 25

    # Vault
    vault_root: str = "."
    open_note_after_import: bool = False

    # Formats (JSON lists when set through the environment)
    export_formats: List[ExportFormat] = []
    cite_formats: List[CiteFormat] = []

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def library_id(self) -> str:
        """Library ID for the configured library type."""
        if self.zotero_library_type == "group":
            return self.zotero_group_id
        return self.zotero_user_id

    def validate_web_api_settings(self) -> List[str]:
        """
        Validate the settings required before an import may start.
        Returns list of missing/invalid setting names.
        """
        missing = []

        if not self.zotero_web_api_enabled:
            missing.append("ZOTERO_WEB_API_ENABLED")

        if not self.library_id:
            if self.zotero_library_type == "group":
                missing.append("ZOTERO_GROUP_ID")
            else:
                missing.append("ZOTERO_USER_ID")

        if not self.zotero_api_key:
            missing.append("ZOTERO_API_KEY")

        return missing

    def resolve_import_format(self, name: Optional[str] = None) -> Optional[ExportFormat]:
        """
        Pick the export format to import with.

        An explicit name wins; otherwise "Import #1", otherwise the first
        configured format.
        """
        if not self.export_formats:
            return None

        if name:
            for export_format in self.export_formats:
                if export_format.name == name:
                    return export_format
            return None

        for export_format in self.export_formats:
            if export_format.name == DEFAULT_IMPORT_FORMAT_NAME:
                return export_format

        return self.export_formats[0]

    def csl_style(self) -> Optional[str]:
        """CSL style used for the citation/bibliography the API renders."""
        for export_format in self.export_formats:
            if export_format.csl_style:
                return export_format.csl_style

        for cite_format in self.cite_formats:
            if cite_format.csl_style:
                return cite_format.csl_style

        return None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
