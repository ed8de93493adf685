from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_PRODUCT_LINK_BASE = "http://localhost:8080/product"


@dataclass(frozen=True)
class Settings:
    """Configuration container for provider credentials, data store access, and limits."""
    gemini_api_key: str
    default_model: str
    brave_search_api_key: str
    supabase_url: str
    supabase_service_role_key: str
    product_link_base: str
    category_sort: str
    http_timeout_seconds: float
    web_search_max_results: int
    evidence_max_chars: int

    @property
    def catalog_enabled(self) -> bool:
        """Purpose: Tell whether the data store is configured for catalog lookups.
        Inputs/Outputs: No inputs; returns True when URL and service key are both set.
        Side Effects / State: None.
        Dependencies: Used by the pipeline to skip the catalog step and by /health.
        Failure Modes: None.
        If Removed: Catalog step would attempt queries against an empty base URL.
        Testing Notes: Clear either field and verify False.
        """
        return bool(self.supabase_url and self.supabase_service_role_key)


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv; the Gemini key falls back across the three names
        the storefront deployment has used.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot configure providers or limits and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve the model key across its historical names, then build Settings.
    gemini_api_key = (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or ""
    )
    return Settings(
        gemini_api_key=gemini_api_key.strip(),
        default_model=(os.getenv("GEMINI_MODEL") or DEFAULT_MODEL).strip(),
        brave_search_api_key=os.getenv("BRAVE_SEARCH_API_KEY", "").strip(),
        supabase_url=os.getenv("SUPABASE_URL", "").strip().rstrip("/"),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        product_link_base=(os.getenv("PRODUCT_LINK_BASE") or DEFAULT_PRODUCT_LINK_BASE).strip(),
        category_sort=(os.getenv("CATEGORY_SORT") or "name.asc").strip(),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
        web_search_max_results=int(os.getenv("WEB_SEARCH_MAX_RESULTS", "5")),
        evidence_max_chars=int(os.getenv("EVIDENCE_MAX_CHARS", "6000")),
    )
