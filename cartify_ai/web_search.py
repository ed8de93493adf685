"""Web search providers and the ordered fallback chain.

The primary provider is a typed API client. The secondary provider parses a
public results page and is best-effort: unmatched markup yields fewer
results, never an error surfaced to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from .errors import SearchProviderError
from .models import SearchResult
from .utils import collapse_whitespace, is_record, truncate_text

logger = logging.getLogger("cartify.search")

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
DUCKDUCKGO_HTML_URL = "https://html.duckduckgo.com/html/"
DUCKDUCKGO_BASE_URL = "https://duckduckgo.com"
SCRAPER_USER_AGENT = "Mozilla/5.0 (compatible; CartifyBot/1.0; +https://example.com/bot)"

WEB_CONTEXT_HEADER = (
    "WEB SEARCH RESULTS (use these for factual accuracy, cite them implicitly, "
    "and do not invent facts):"
)


class SearchProvider(ABC):
    """Capability interface for a single web search backend."""

    name: str = "provider"

    @abstractmethod
    def search(self, query: str, max_results: int) -> List[SearchResult]:
        """Return up to max_results results; raise SearchProviderError on failure."""


class BraveSearchProvider(SearchProvider):
    """Primary provider backed by the Brave web search API."""

    name = "primary"

    def __init__(self, http: httpx.Client, api_key: str) -> None:
        self._http = http
        self._api_key = api_key

    def search(self, query: str, max_results: int) -> List[SearchResult]:
        """Purpose: Query the Brave API and map results to SearchResult.
        Inputs/Outputs: Inputs are query text and a cap; output is a result list.
        Side Effects / State: One outbound HTTP GET.
        Dependencies: Uses the injected httpx.Client.
        Failure Modes: Missing key returns [] without a call; transport errors,
            non-success status, or a non-JSON body raise SearchProviderError.
        If Removed: Every search falls through to the scraped secondary provider.
        Testing Notes: Mock a 200 body with mixed valid/invalid entries.
        """
        # An unconfigured key means "no results", which triggers the fallback.
        if not self._api_key:
            return []
        params = {
            "q": query,
            "count": str(max(1, min(10, max_results))),
            "safesearch": "moderate",
            "text_decorations": "false",
        }
        headers = {"accept": "application/json", "X-Subscription-Token": self._api_key}
        try:
            response = self._http.get(BRAVE_SEARCH_URL, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise SearchProviderError(self.name, f"request failed: {exc}") from exc
        if not response.is_success:
            raise SearchProviderError(self.name, f"status {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SearchProviderError(self.name, "non-JSON body") from exc
        return parse_brave_results(data, max_results)


def parse_brave_results(data: object, max_results: int) -> List[SearchResult]:
    """Purpose: Extract title/url/description triples from a Brave response body.
    Inputs/Outputs: Input is the decoded JSON body and a cap; output is results in order.
    Side Effects / State: None.
    Dependencies: None beyond SearchResult.
    Failure Modes: Unexpected shapes return []; entries lacking title or URL are skipped.
    If Removed: BraveSearchProvider cannot map provider payloads.
    Testing Notes: Supply entries without url and verify they are dropped.
    """
    if not is_record(data) or not is_record(data.get("web")):
        return []
    raw_results = data["web"].get("results")
    if not isinstance(raw_results, list):
        return []
    results: List[SearchResult] = []
    for entry in raw_results:
        if len(results) >= max_results:
            break
        if not is_record(entry):
            continue
        title = entry.get("title") if isinstance(entry.get("title"), str) else ""
        url = entry.get("url") if isinstance(entry.get("url"), str) else ""
        snippet = entry.get("description") if isinstance(entry.get("description"), str) else ""
        if not title or not url:
            continue
        results.append(SearchResult(title=title, url=url, snippet=snippet))
    return results


class DuckDuckGoHtmlProvider(SearchProvider):
    """Secondary provider that parses the DuckDuckGo HTML results page."""

    name = "secondary"

    def __init__(self, http: httpx.Client) -> None:
        self._http = http

    def search(self, query: str, max_results: int) -> List[SearchResult]:
        # Fetch the lightweight HTML page; parsing is delegated and tolerant.
        headers = {"accept": "text/html", "user-agent": SCRAPER_USER_AGENT}
        try:
            response = self._http.get(DUCKDUCKGO_HTML_URL, params={"q": query}, headers=headers)
        except httpx.HTTPError as exc:
            raise SearchProviderError(self.name, f"request failed: {exc}") from exc
        if not response.is_success:
            raise SearchProviderError(self.name, f"status {response.status_code}")
        return parse_duckduckgo_html(response.text, max_results)


def decode_duckduckgo_redirect(href: str) -> str:
    """Purpose: Resolve DuckDuckGo redirect links to the target URL.
    Inputs/Outputs: Input is an anchor href; output is an absolute URL.
    Side Effects / State: None.
    Dependencies: Uses urllib.parse.
    Failure Modes: Links without a uddg parameter are returned made absolute.
    If Removed: Results would point at the search engine's redirect endpoint.
    Testing Notes: Check "//duckduckgo.com/l/?uddg=https%3A%2F%2Fa.com%2F" and a plain URL.
    """
    absolute = urljoin(DUCKDUCKGO_BASE_URL, href)
    target = parse_qs(urlparse(absolute).query).get("uddg")
    if target and target[0]:
        return target[0]
    return absolute


def parse_duckduckgo_html(html: str, max_results: int) -> List[SearchResult]:
    """Purpose: Extract results from DuckDuckGo result markup.
    Inputs/Outputs: Inputs are the raw page and a cap; output is results in page order.
    Side Effects / State: None.
    Dependencies: Uses BeautifulSoup with the stdlib html.parser backend.
    Failure Modes: Garbled or unfamiliar markup yields fewer (possibly zero) results.
    If Removed: The fallback chain has no secondary provider.
    Testing Notes: Parse a fixture with two results and one anchor missing its href.
    """
    # Anchors carry the title; the snippet lives in the same result container.
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    results: List[SearchResult] = []
    for anchor in soup.select("a.result__a"):
        if len(results) >= max_results:
            break
        href = anchor.get("href")
        title = collapse_whitespace(anchor.get_text(" "))
        if not isinstance(href, str) or not href.strip() or not title:
            continue
        url = decode_duckduckgo_redirect(href.strip())

        snippet = ""
        container = anchor.find_parent(class_="result") or anchor.parent
        if container is not None:
            snippet_node = container.select_one(".result__snippet")
            if snippet_node is not None:
                snippet = collapse_whitespace(snippet_node.get_text(" "))
        results.append(SearchResult(title=title, url=url, snippet=snippet))
    return results


@dataclass
class SearchOutcome:
    """Result of running the fallback chain for one query."""
    provider: str = "none"
    results: List[SearchResult] = field(default_factory=list)


class FallbackSearchChain:
    """Ordered fallback strategy over search providers."""

    def __init__(self, providers: Sequence[SearchProvider], max_results: int = 5) -> None:
        self._providers: Tuple[SearchProvider, ...] = tuple(providers)
        self._max_results = max_results

    def search(self, query: str) -> SearchOutcome:
        """Purpose: Try each provider in order until one returns results.
        Inputs/Outputs: Input is query text; output is a SearchOutcome naming the provider.
        Side Effects / State: Outbound calls through each attempted provider.
        Dependencies: Uses SearchProvider.search.
        Failure Modes: Provider errors are logged and treated as empty; an all-empty
            chain returns provider "none" with no results and never raises.
        If Removed: Web evidence cannot be gathered.
        Testing Notes: Primary returns [] and secondary returns 2; expect "secondary".
        """
        # Empty query is a no-op.
        query = query.strip()
        if not query:
            return SearchOutcome()
        for provider in self._providers:
            try:
                results = provider.search(query, self._max_results)
            except (SearchProviderError, httpx.HTTPError) as exc:
                logger.warning("search provider=%s failed: %s", provider.name, exc)
                continue
            results = results[: self._max_results]
            if results:
                logger.info("search provider=%s results=%d", provider.name, len(results))
                return SearchOutcome(provider=provider.name, results=results)
            logger.info("search provider=%s returned no results", provider.name)
        return SearchOutcome()


def build_default_chain(http: httpx.Client, brave_api_key: str, max_results: int = 5) -> FallbackSearchChain:
    return FallbackSearchChain(
        [BraveSearchProvider(http, brave_api_key), DuckDuckGoHtmlProvider(http)],
        max_results=max_results,
    )


def format_web_context(results: Sequence[SearchResult], max_chars: int = 6000) -> str:
    """Purpose: Render search results as a numbered evidence block.
    Inputs/Outputs: Inputs are results and a character cap; output is evidence text
        ("" when there are no results).
    Side Effects / State: None.
    Dependencies: Uses truncate_text.
    Failure Modes: Oversized output is silently truncated.
    If Removed: Web results cannot be injected into the conversation.
    Testing Notes: Verify numbering and that empty snippets omit the dash.
    """
    if not results:
        return ""
    lines = [WEB_CONTEXT_HEADER]
    for index, result in enumerate(results, start=1):
        snippet = f" - {result.snippet}" if result.snippet else ""
        lines.append(f"{index}. {result.title} ({result.url}){snippet}")
    return truncate_text("\n".join(lines), max_chars)
