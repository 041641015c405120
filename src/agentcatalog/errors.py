"""Structured error types.

Every failure that crosses a public method boundary is an
``AgentCatalogError`` carrying a stable ``ErrorCode``, a human-readable
message, an optional suggestion and a ``recoverable`` flag. Batch operations
catch these per item; the CLI layer renders them with ``to_dict()``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    TRANSPORT_FAILED = "TRANSPORT_FAILED"
    NOT_FOUND_REMOTE = "NOT_FOUND_REMOTE"
    PARSE_FAILED = "PARSE_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INCOMPATIBLE = "INCOMPATIBLE"
    FILESYSTEM_ERROR = "FILESYSTEM_ERROR"
    LEDGER_CORRUPT = "LEDGER_CORRUPT"
    INVALID_ITEM_ID = "INVALID_ITEM_ID"


class AgentCatalogError(Exception):
    """Base class for all agentcatalog errors."""

    default_code: ErrorCode = ErrorCode.TRANSPORT_FAILED
    default_recoverable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        suggestion: str = "",
        recoverable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.suggestion = suggestion
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class TransportError(AgentCatalogError):
    """Network failure or non-2xx response."""

    default_code = ErrorCode.TRANSPORT_FAILED
    default_recoverable = True


class ParseError(AgentCatalogError):
    """Catalog or metadata body could not be parsed."""

    default_code = ErrorCode.PARSE_FAILED


class NotFoundError(AgentCatalogError):
    """Unknown id in the ledger or the catalog."""

    default_code = ErrorCode.NOT_FOUND


class CompatibilityError(AgentCatalogError):
    default_code = ErrorCode.INCOMPATIBLE


class FilesystemError(AgentCatalogError):
    default_code = ErrorCode.FILESYSTEM_ERROR
    default_recoverable = True


class LedgerCorruptError(AgentCatalogError):
    """The ledger file exists but cannot be parsed. Never reset silently."""

    default_code = ErrorCode.LEDGER_CORRUPT


class InvalidItemIdError(AgentCatalogError, ValueError):
    """Malformed item id. Also a ValueError so pydantic validators can raise it."""

    default_code = ErrorCode.INVALID_ITEM_ID
