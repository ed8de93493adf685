from __future__ import annotations

from typing import Any, Dict

from .models import CatalogContextMeta, WebSearchMeta

WEB_SEARCH_META_KEY = "__web_search"
CATALOG_META_KEY = "__catalog_context"


def assemble_response(
    provider_payload: Any,
    web_search: WebSearchMeta,
    catalog: CatalogContextMeta,
) -> Dict[str, Any]:
    """Purpose: Attach pipeline metadata to the provider's response payload.
    Inputs/Outputs: Inputs are the raw provider payload and the metadata models;
        output is a new dict with the provider fields plus the metadata keys.
    Side Effects / State: None; the provider payload is shallow-copied.
    Dependencies: Uses pydantic model_dump.
    Failure Modes: Non-dict payloads are wrapped as {"data": payload}.
    If Removed: Callers cannot tell whether search or catalog evidence was used.
    Testing Notes: Provider keys are preserved untouched next to __web_search.
    """
    payload = dict(provider_payload) if isinstance(provider_payload, dict) else {"data": provider_payload}
    payload[WEB_SEARCH_META_KEY] = web_search.model_dump()
    payload[CATALOG_META_KEY] = catalog.model_dump()
    return payload
