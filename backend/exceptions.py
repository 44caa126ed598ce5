"""
Zotero Importer Exception Hierarchy
Provides structured error handling across the import pipeline
"""
from typing import Optional, Dict, Any, List


MAX_USER_MESSAGE_LENGTH = 200


class ZoteroImportException(Exception):
    """
    Base exception for all importer errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details
            }
        }


def summarize_error(error: BaseException, limit: int = MAX_USER_MESSAGE_LENGTH) -> str:
    """Bounded, user-visible summary of an exception."""
    message = str(error) or error.__class__.__name__
    message = " ".join(message.split())
    if len(message) > limit:
        message = message[: limit - 3] + "..."
    return message


# ============================================================================
# Configuration Exceptions
# ============================================================================

class ConfigurationError(ZoteroImportException):
    """Raised when the importer is not configured well enough to start"""

    def __init__(
        self,
        message: str,
        missing: Optional[List[str]] = None
    ):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"missing": missing or []}
        )
        self.missing = missing or []


# ============================================================================
# Zotero API Exceptions
# ============================================================================

class ZoteroApiError(ZoteroImportException):
    """Raised when the Zotero Web API request fails after retries"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__(
            message=message,
            code="ZOTERO_API_ERROR",
            details={"status_code": status_code, "endpoint": endpoint}
        )
        self.status_code = status_code


class ItemNotFoundError(ZoteroImportException):
    """Raised when the selected item has no detail record"""

    def __init__(self, item_key: str):
        super().__init__(
            message=f"Item not found: {item_key}",
            code="ITEM_NOT_FOUND",
            details={"item_key": item_key}
        )


class NoItemsFoundError(ZoteroImportException):
    """Raised when a search yields no importable items"""

    def __init__(self, term: str):
        super().__init__(
            message="No items found.",
            code="NO_ITEMS_FOUND",
            details={"term": term}
        )


class CollectionResolutionError(ZoteroImportException):
    """Raised when collection paths cannot be resolved"""

    def __init__(self, collection_key: str, reason: str):
        super().__init__(
            message=f"Failed to resolve collection {collection_key}: {reason}",
            code="COLLECTION_RESOLUTION_ERROR",
            details={"collection_key": collection_key, "reason": reason}
        )


# ============================================================================
# Rendering / Vault Exceptions
# ============================================================================

class TemplateRenderError(ZoteroImportException):
    """Raised when a template is missing or fails to render"""

    def __init__(self, template: str, reason: str):
        super().__init__(
            message=f"Failed to render template {template}: {reason}",
            code="TEMPLATE_RENDER_ERROR",
            details={"template": template, "reason": reason}
        )


class DocumentStoreError(ZoteroImportException):
    """Raised when the vault cannot be read or written"""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Document store error at {path}: {reason}",
            code="DOCUMENT_STORE_ERROR",
            details={"path": path, "reason": reason}
        )
