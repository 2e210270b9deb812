# app_errors.py
"""
Exceptions raised by the invoice desk.

Hierarchy:
    InvoiceDeskError (base)
    ├── StoreError
    │   └── InvalidFieldError
    ├── ImportFailedError
    │   ├── UnsupportedFileTypeError
    │   └── SpreadsheetReadError
    └── ExportError
        └── ExportTargetNotFoundError
"""
from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "InvoiceDeskError",
    "StoreError",
    "InvalidFieldError",
    "ImportFailedError",
    "UnsupportedFileTypeError",
    "SpreadsheetReadError",
    "ExportError",
    "ExportTargetNotFoundError",
]


class InvoiceDeskError(Exception):
    """
    Base exception for everything the invoice desk raises on purpose.

    Attributes:
        message: human readable text, safe to show in a message box.
        details: extra context for the log.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ---- store ------------------------------------------------------------------

class StoreError(InvoiceDeskError):
    """Base exception for invoice store operations."""


class InvalidFieldError(StoreError):
    """Raised for an unknown field name or a value the field cannot hold."""

    def __init__(self, field: str, value: Any = None, reason: Optional[str] = None):
        message = f"Invalid field '{field}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"field": field, "value": value})


# ---- import -----------------------------------------------------------------

class ImportFailedError(InvoiceDeskError):
    """Base exception for spreadsheet import."""


class UnsupportedFileTypeError(ImportFailedError):
    def __init__(self, file_type: str, supported_types):
        message = f"Unsupported file type: '{file_type}'"
        super().__init__(message, {"file_type": file_type, "supported_types": list(supported_types)})


class SpreadsheetReadError(ImportFailedError):
    """Raised when a spreadsheet exists but cannot be opened or read."""

    def __init__(self, filepath: str, reason: Optional[str] = None):
        message = f"Could not read spreadsheet: {filepath}"
        super().__init__(message, {"filepath": filepath, "reason": reason})


# ---- export -----------------------------------------------------------------

class ExportError(InvoiceDeskError):
    """Base exception for PDF export."""


class ExportTargetNotFoundError(ExportError):
    """Raised when a snapshot export cannot resolve the invoice to render."""

    def __init__(self, target_id: str):
        message = f"Nothing to export for invoice id '{target_id}'"
        super().__init__(message, {"target_id": target_id})
