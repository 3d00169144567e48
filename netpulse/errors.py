"""
Pipeline exceptions.

MalformedInputError and NotFoundError are per-record conditions the transform
queue logs and skips; StorageError wraps a failed transaction and is surfaced
to the caller.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base exception for medallion pipeline failures."""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class MalformedInputError(PipelineError):
    """Raised when a raw record lacks a required field or carries unusable values."""

    code = "MALFORMED_INPUT"


class NotFoundError(PipelineError):
    """Raised when a referenced raw event or dimension row does not exist."""

    code = "NOT_FOUND"


class StorageError(PipelineError):
    """Raised when a storage transaction fails and was rolled back."""

    code = "STORAGE_ERROR"
