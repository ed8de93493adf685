"""Read-only PostgREST access to the storefront tables.

Talks to the Supabase REST interface directly with httpx (no SDK), using the
service role key so row-level security does not hide catalog rows.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from .errors import CatalogQueryError

logger = logging.getLogger("cartify.store")

Filter = Tuple[str, str]

UNDEFINED_COLUMN_CODE = "42703"


class SupabaseRestClient:
    """Thin PostgREST client bound to one project URL and key."""

    def __init__(self, http: httpx.Client, base_url: str, service_role_key: str) -> None:
        """Purpose: Bind the shared HTTP client to the project REST endpoint.
        Inputs/Outputs: Inputs are an httpx.Client, the project URL, and the key; no return.
        Side Effects / State: Stores auth headers for later selects.
        Dependencies: Uses httpx; the caller owns the client lifecycle.
        Failure Modes: None at init; select() reports query errors.
        If Removed: Catalog evidence cannot be fetched.
        Testing Notes: Use httpx.MockTransport and assert the apikey header is sent.
        """
        self._http = http
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
            "accept": "application/json",
        }

    def select(
        self,
        table: str,
        columns: str,
        filters: Sequence[Filter] = (),
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Purpose: Run a GET select against a table and return its rows.
        Inputs/Outputs: Inputs are table, select expression, filter pairs, order, limit;
            output is a list of row dicts.
        Side Effects / State: One outbound HTTP GET.
        Dependencies: Uses the injected httpx.Client.
        Failure Modes: Raises CatalogQueryError on transport errors, non-success
            statuses, or bodies that are not a JSON array.
        If Removed: No catalog query can run.
        Testing Notes: Return 400 with code 42703 and check missing_column() is True.
        """
        # Filters are (column, "op.value") pairs; repeated keys are allowed.
        params: List[Tuple[str, str]] = [("select", columns)]
        params.extend(filters)
        if order:
            params.append(("order", order))
        if limit:
            params.append(("limit", str(limit)))

        try:
            response = self._http.get(f"{self._rest_url}/{table}", params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            raise CatalogQueryError(table, f"request failed: {exc}") from exc

        if not response.is_success:
            raise CatalogQueryError(table, _error_detail(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise CatalogQueryError(table, "non-JSON body", status_code=response.status_code) from exc
        if not isinstance(data, list):
            raise CatalogQueryError(table, "unexpected body shape", status_code=response.status_code)
        rows = [row for row in data if isinstance(row, dict)]
        logger.debug("select table=%s rows=%d", table, len(rows))
        return rows


def _error_detail(response: httpx.Response) -> str:
    # PostgREST errors are {"code", "message", "details", "hint"}.
    try:
        body = response.json()
    except ValueError:
        return f"status {response.status_code}"
    if isinstance(body, dict):
        code = body.get("code") or ""
        message = body.get("message") or ""
        return f"status {response.status_code} {code} {message}".strip()
    return f"status {response.status_code}"


def is_missing_column_error(exc: CatalogQueryError, column: str) -> bool:
    """Tell whether a query failed because the given column does not exist."""
    detail = exc.detail or ""
    return UNDEFINED_COLUMN_CODE in detail or column in detail


def quote_value(value: str) -> str:
    # Double quotes keep commas and parentheses inside PostgREST lists literal.
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def in_filter(values: Iterable[str]) -> str:
    return "in.(" + ",".join(quote_value(str(value)) for value in values) + ")"


def ilike_any(columns: Sequence[str], terms: Sequence[str]) -> str:
    """Purpose: Build an or=(...) expression matching any term in any column.
    Inputs/Outputs: Inputs are column names and search terms; output is the
        parenthesized PostgREST logic expression.
    Side Effects / State: None.
    Dependencies: Used by category and product candidate queries.
    Failure Modes: Empty inputs produce "()" which callers must avoid sending.
    If Removed: Term matching across name/description/brand/seller is lost.
    Testing Notes: Two columns and two terms produce four ilike conditions.
    """
    # Substring match, case-insensitive, via PostgREST's * wildcard.
    conditions = [
        f"{column}.ilike.{quote_value(f'*{term}*')}"
        for term in terms
        for column in columns
    ]
    return "(" + ",".join(conditions) + ")"
