"""Error taxonomy for the shopping assistant handler.

Only AssistantError subclasses reach the HTTP layer. Collaborator errors
(CatalogQueryError, SearchProviderError) are recovered inside the pipeline.
"""

from __future__ import annotations

from typing import Optional


class AssistantError(Exception):
    """Base error carrying the HTTP status and the public message."""

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AssistantError):
    status_code = 401
    default_message = "Invalid token"


class InvalidInput(AssistantError):
    status_code = 400
    default_message = "Invalid messages"


class MissingConfiguration(AssistantError):
    status_code = 500
    default_message = "Missing configuration"


class GenerationFailed(AssistantError):
    status_code = 500
    default_message = "Failed to generate content"


class CatalogQueryError(Exception):
    """Data store query failure; recovered by the catalog builder."""

    def __init__(self, table: str, detail: str, status_code: Optional[int] = None) -> None:
        self.table = table
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{table}: {detail}")


class SearchProviderError(Exception):
    """Web search provider failure; recovered by the fallback chain."""

    def __init__(self, provider: str, detail: str) -> None:
        self.provider = provider
        self.detail = detail
        super().__init__(f"{provider}: {detail}")
