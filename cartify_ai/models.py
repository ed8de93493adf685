from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

EvidenceSource = Literal["web", "catalog"]
SearchProviderName = Literal["primary", "secondary", "none"]


@dataclass(frozen=True)
class ConversationMessage:
    """Caller-authored turn after normalization; immutable within a request."""
    role: str
    text: str
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EvidenceTurn:
    """Synthetic context turn carrying a web or catalog evidence block."""
    source: EvidenceSource
    text: str

    @property
    def role(self) -> str:
        # Evidence is presented to the model as user-provided context.
        return "user"

    @property
    def images(self) -> Tuple[str, ...]:
        return ()


Turn = Union[ConversationMessage, EvidenceTurn]


@dataclass(frozen=True)
class SearchResult:
    """Single web search hit, ordered by provider relevance."""
    title: str
    url: str
    snippet: str = ""


@dataclass
class NormalizedRequest:
    """Validated request payload produced by the request normalizer."""
    messages: List[ConversationMessage]
    model: str
    temperature: float
    web_search_enabled: bool


class WebSearchMeta(BaseModel):
    """Web search usage attached to the provider response as __web_search."""
    enabled: bool
    used: bool = False
    provider: SearchProviderName = "none"
    results_count: int = 0


class CatalogContextMeta(BaseModel):
    """Catalog evidence usage attached to the provider response as __catalog_context."""
    used: bool = False
    candidates_count: int = 0
    matched_categories: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error payload returned for auth, input, configuration, and provider failures."""
    error: str


class HealthResponse(BaseModel):
    """Liveness payload with the configured optional collaborators."""
    status: str = "ok"
    collaborators: Dict[str, bool] = Field(default_factory=dict)
    default_model: Optional[str] = None
