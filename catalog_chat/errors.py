from __future__ import annotations

from typing import Optional


class ChatError(RuntimeError):
    """Base error for the chat backend with a stable code for logs and responses."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class CatalogLoadError(ChatError):
    """Raised when the catalog file is missing, unreadable, or structurally invalid."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__("CATALOG_LOAD_ERROR", message)
        self.path = path


class InvalidRequestError(ChatError):
    """Raised when a required request field is missing; surfaced as HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__("INVALID_REQUEST", message)


class BackendError(ChatError):
    """Raised when the generation backend fails; surfaced as HTTP 500."""

    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(code, message)
        self.retryable = retryable
