"""Catalog evidence: candidate retrieval, ranking, and the evidence block.

Steps for one query:
    1. Trigger decision and term extraction (catalog_query).
    2. Category matching on the first terms.
    3. Candidate fetch over name/description/brand/seller, optionally restricted
       to matched categories; retried without the active filter when the
       column is unavailable.
    4. Enrichment: category names, review summaries, variants with attributes.
    5. Scoring, stable sort, top-N.
    6. Formatting with availability-gated stock, truncated to the evidence cap.

Only the candidate fetch can abort the block. Enrichment failures degrade the
affected lines ("No ratings yet", no variant detail) and are logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote

from .catalog_query import extract_search_terms, should_use_catalog
from .catalog_records import (
    CatalogItem,
    RankedCandidate,
    ReviewSummary,
    VariantRow,
    effective_price,
    group_variants,
    item_stock,
    parse_catalog_item,
    parse_review_summary,
    parse_variant_row,
    primary_image,
    summarize_attributes,
)
from .errors import CatalogQueryError
from .supabase_rest import SupabaseRestClient, ilike_any, in_filter, is_missing_column_error
from .utils import clamp, format_number, truncate_text

logger = logging.getLogger("cartify.catalog")

MAX_CATEGORY_TERMS = 6
CATEGORY_QUERY_LIMIT = 10
MAX_MATCHED_CATEGORIES = 3
CANDIDATE_QUERY_LIMIT = 10
MAX_RANKED_CANDIDATES = 6

ACTIVE_COLUMN = "is_active"
PRODUCT_MATCH_COLUMNS = ("name", "description", "brand", "seller_name")
PRODUCT_COLUMNS = (
    "id,name,description,short_description,price,discount_percentage,images,image_url,"
    "stock_status,stock_quantity,category_id,brand,seller_name,created_at"
)
VARIANT_COLUMNS = (
    "id,product_id,price,stock_quantity,is_available,"
    "product_variant_attributes(attribute_value:product_attribute_values(value,attribute:product_attributes(name)))"
)
REVIEW_COLUMNS = "product_id,avg_rating,review_count"

CATALOG_CONTEXT_HEADER = (
    "STORE CATALOG MATCHES (live data from this store; recommend only from these products):"
)
RECOMMENDATION_POLICY = "\n".join(
    [
        "RECOMMENDATION RULES:",
        "- Always propose 3 options (fewer only if fewer are listed) and give a short reason for each.",
        "- If a product has variants, mention the variant (e.g. color/size) that matches the request.",
        "- Include the product link for every option you mention.",
        "- For best/top/cheapest style requests, prefer higher rating, in-stock items, and better value.",
        "- Only use prices, stock, and links from the list above; never invent them.",
    ]
)

# Score weights for ranking candidates.
TERM_MATCH_WEIGHT = 3
IN_STOCK_STATUS_BONUS = 5
POSITIVE_QUANTITY_BONUS = 2
DISCOUNT_BONUS = 1


@dataclass(frozen=True)
class CategoryMatch:
    id: str
    name: str


@dataclass
class CatalogContext:
    """Evidence text plus what went into it, for response metadata."""
    text: str = ""
    candidates: List[RankedCandidate] = field(default_factory=list)
    matched_categories: List[CategoryMatch] = field(default_factory=list)

    @property
    def used(self) -> bool:
        return bool(self.text)


def score_candidate(item: CatalogItem, review: Optional[ReviewSummary], terms: Sequence[str]) -> float:
    """Purpose: Score a candidate by term overlap, stock, discount, and rating.
    Inputs/Outputs: Inputs are the item, its optional review summary, and the terms;
        output is the numeric score.
    Side Effects / State: None; pure function.
    Dependencies: Uses the weight constants above.
    Failure Modes: None.
    If Removed: Candidates stay in fetch order regardless of relevance.
    Testing Notes: Two matched terms, in_stock, qty>0, discount, rating 4.5 -> 6+5+2+1+4.5.
    """
    # Terms are matched as substrings of name + descriptions + brand.
    haystack = " ".join([item.name, *item.descriptions, item.brand]).lower()
    score = float(TERM_MATCH_WEIGHT * sum(1 for term in terms if term.lower() in haystack))
    if item.stock_status == "in_stock":
        score += IN_STOCK_STATUS_BONUS
    if item.stock_quantity > 0:
        score += POSITIVE_QUANTITY_BONUS
    if item.discount_percent > 0:
        score += DISCOUNT_BONUS
    if review is not None:
        score += clamp(review.average_rating, 0.0, 5.0)
    return score


def rank_candidates(
    items: Sequence[CatalogItem],
    reviews: Dict[str, ReviewSummary],
    variants: Dict[str, List[VariantRow]],
    terms: Sequence[str],
    limit: int = MAX_RANKED_CANDIDATES,
) -> List[RankedCandidate]:
    """Purpose: Score, sort, and cut the candidate list.
    Inputs/Outputs: Inputs are fetched items (most recent first), review and variant
        lookups, and terms; output is at most `limit` RankedCandidates.
    Side Effects / State: None.
    Dependencies: Uses score_candidate.
    Failure Modes: None.
    If Removed: Evidence would list unranked, unbounded candidates.
    Testing Notes: Equal scores keep fetch order because sorted() is stable.
    """
    ranked = [
        RankedCandidate(
            item=item,
            review=reviews.get(item.id),
            variants=variants.get(item.id, []),
            score=score_candidate(item, reviews.get(item.id), terms),
        )
        for item in items
    ]
    ranked = sorted(ranked, key=lambda candidate: candidate.score, reverse=True)
    return ranked[:limit]


def product_link(base: str, product_id: str) -> str:
    return f"{base.rstrip('/')}/{quote(product_id, safe='')}"


def format_price(item: CatalogItem) -> str:
    price = effective_price(item)
    if item.discount_percent > 0:
        return (
            f"Price: {price:.2f} (MRP {item.price:.2f}, -{format_number(item.discount_percent)}%)"
        )
    return f"Price: {price:.2f}"


def format_stock(candidate: RankedCandidate) -> str:
    """Purpose: Render the availability-gated stock line for a candidate.
    Inputs/Outputs: Input is a RankedCandidate; output is the "Stock: ..." segment.
    Side Effects / State: None.
    Dependencies: Uses item_stock from catalog_records.
    Failure Modes: None.
    If Removed: The model cannot tell sold-out items from available ones.
    Testing Notes: All variants unavailable -> "Stock: Sold out".
    """
    stock = item_stock(candidate.item, candidate.variants)
    if not stock.in_stock:
        return "Stock: Sold out"
    low = ", low stock" if stock.low_stock else ""
    if stock.has_variants and stock.variant_stock is not None:
        variant_stock = stock.variant_stock
        return (
            f"Stock: In stock ({stock.quantity} units across "
            f"{variant_stock.available_variants}/{variant_stock.total_variants} variants{low})"
        )
    return f"Stock: In stock ({stock.quantity} units{low})"


def format_rating(review: Optional[ReviewSummary]) -> str:
    if review is None or review.review_count <= 0:
        return "No ratings yet"
    noun = "review" if review.review_count == 1 else "reviews"
    return f"Rating: {clamp(review.average_rating, 0.0, 5.0):.1f}/5 ({review.review_count} {noun})"


def format_candidate_line(
    index: int,
    candidate: RankedCandidate,
    category_names: Dict[str, str],
    link_base: str,
) -> str:
    """Purpose: Render one candidate as a single evidence line.
    Inputs/Outputs: Inputs are the 1-based index, candidate, category-name lookup,
        and link base; output is the line.
    Side Effects / State: None.
    Dependencies: Uses the format_* helpers and catalog_records summaries.
    Failure Modes: None; absent fields are omitted.
    If Removed: Candidates cannot be presented to the model.
    Testing Notes: Discounted variant-bearing item shows MRP, options, and an example.
    """
    item = candidate.item
    segments = [
        f"{index}. {item.name}",
        format_price(item),
        format_stock(candidate),
        format_rating(candidate.review),
    ]
    category_name = category_names.get(item.category_id or "")
    if category_name:
        segments.append(f"Category: {category_name}")
    if item.brand:
        segments.append(f"Brand: {item.brand}")
    if item.seller_name:
        segments.append(f"Seller: {item.seller_name}")
    segments.append(f"Has variants: {'Yes' if candidate.variants else 'No'}")

    if candidate.variants:
        summary = summarize_attributes(candidate.variants)
        if summary:
            segments.append("Options: " + "; ".join(summary))
        stock = item_stock(item, candidate.variants)
        if stock.variant_stock is not None and stock.variant_stock.combinations:
            segments.append(f"Example: {stock.variant_stock.combinations[0]}")

    segments.append(f"Link: {product_link(link_base, item.id)}")
    image = primary_image(item)
    if image:
        segments.append(f"Image: {image}")
    return " | ".join(segments)


def format_catalog_context(
    candidates: Sequence[RankedCandidate],
    matched_categories: Sequence[CategoryMatch],
    category_names: Dict[str, str],
    link_base: str,
    max_chars: int = 6000,
) -> str:
    """Purpose: Build the catalog evidence block.
    Inputs/Outputs: Inputs are ranked candidates, matched categories, category names,
        link base, and the cap; output is the evidence text ("" with no candidates).
    Side Effects / State: None.
    Dependencies: Uses format_candidate_line and truncate_text.
    Failure Modes: Oversized output is silently truncated to max_chars.
    If Removed: Catalog matches never reach the model.
    Testing Notes: Verify len(result) <= max_chars with many long candidates.
    """
    if not candidates:
        return ""
    lines = [CATALOG_CONTEXT_HEADER]
    if matched_categories:
        lines.append("Matched categories: " + ", ".join(category.name for category in matched_categories))
    for index, candidate in enumerate(candidates, start=1):
        lines.append(format_candidate_line(index, candidate, category_names, link_base))
    lines.append("")
    lines.append(RECOMMENDATION_POLICY)
    return truncate_text("\n".join(lines), max_chars)


class CatalogContextBuilder:
    """Builds the catalog evidence block for one query against the data store."""

    def __init__(
        self,
        store: SupabaseRestClient,
        link_base: str,
        category_sort: str = "name.asc",
        max_chars: int = 6000,
    ) -> None:
        self._store = store
        self._link_base = link_base
        self._category_sort = category_sort
        self._max_chars = max_chars

    def build(self, query: str) -> CatalogContext:
        """Purpose: Run retrieval, enrichment, ranking, and formatting for a query.
        Inputs/Outputs: Input is the latest user text; output is a CatalogContext
            (empty when skipped or when nothing matched).
        Side Effects / State: Read-only data store queries.
        Dependencies: Uses catalog_query, SupabaseRestClient, and the formatters above.
        Failure Modes: Candidate fetch failure (after the active-filter retry) logs and
            returns an empty context; enrichment failures degrade silently.
        If Removed: The assistant answers shopping questions without store data.
        Testing Notes: Mock the REST endpoints and assert the block content.
        """
        # Skip non-shopping chatter before touching the store.
        if not should_use_catalog(query):
            logger.info("catalog skipped reason=not_shopping_query")
            return CatalogContext()
        terms = extract_search_terms(query)
        if not terms:
            logger.info("catalog skipped reason=no_terms")
            return CatalogContext()

        matched = self.match_categories(terms)
        try:
            items = self.fetch_candidates(terms, [category.id for category in matched])
        except CatalogQueryError as exc:
            logger.warning("catalog candidate fetch failed: %s", exc)
            return CatalogContext(matched_categories=matched)
        if not items:
            logger.info("catalog no candidates terms=%s", terms)
            return CatalogContext(matched_categories=matched)

        product_ids = [item.id for item in items]
        category_ids = sorted({item.category_id for item in items if item.category_id})
        category_names = {category.id: category.name for category in matched}
        category_names.update(self.fetch_category_names(category_ids))
        reviews = self.fetch_review_summaries(product_ids)
        variants = group_variants(self.fetch_variants(product_ids))

        ranked = rank_candidates(items, reviews, variants, terms)
        text = format_catalog_context(ranked, matched, category_names, self._link_base, self._max_chars)
        logger.info(
            "catalog context candidates=%d ranked=%d categories=%d chars=%d",
            len(items),
            len(ranked),
            len(matched),
            len(text),
        )
        return CatalogContext(text=text, candidates=ranked, matched_categories=matched)

    def match_categories(self, terms: Sequence[str]) -> List[CategoryMatch]:
        """Purpose: Find active categories whose name contains any of the first terms.
        Inputs/Outputs: Input is the term list; output is up to 3 CategoryMatch.
        Side Effects / State: One or two data store queries.
        Dependencies: Uses _select_active with the configured sort.
        Failure Modes: Query errors are logged and yield no matched categories.
        If Removed: Candidate fetch cannot be narrowed to relevant categories.
        Testing Notes: Return 5 category rows and verify only the first 3 are kept.
        """
        try:
            rows = self._select_active(
                "categories",
                "id,name",
                [("or", ilike_any(("name",), terms[:MAX_CATEGORY_TERMS]))],
                order=self._category_sort,
                limit=CATEGORY_QUERY_LIMIT,
            )
        except CatalogQueryError as exc:
            logger.warning("catalog category match failed: %s", exc)
            return []
        matches: List[CategoryMatch] = []
        for row in rows:
            category_id = str(row.get("id") or "").strip()
            name = str(row.get("name") or "").strip()
            if category_id and name:
                matches.append(CategoryMatch(id=category_id, name=name))
        return matches[:MAX_MATCHED_CATEGORIES]

    def fetch_candidates(self, terms: Sequence[str], category_ids: Sequence[str]) -> List[CatalogItem]:
        """Purpose: Fetch the most recent active products matching any term.
        Inputs/Outputs: Inputs are terms and matched category ids; output is items.
        Side Effects / State: Up to four data store queries.
        Dependencies: Uses _select_active, ilike_any, in_filter, parse_catalog_item.
        Failure Modes: Raises CatalogQueryError when the query still fails after
            dropping the active filter.
        If Removed: There is nothing to rank.
        Testing Notes: A category-restricted empty result retries without the category.
        """
        filters = [("or", ilike_any(PRODUCT_MATCH_COLUMNS, terms))]
        rows: List[Dict] = []
        if category_ids:
            rows = self._select_active(
                "products",
                PRODUCT_COLUMNS,
                filters + [("category_id", in_filter(category_ids))],
                order="created_at.desc",
                limit=CANDIDATE_QUERY_LIMIT,
            )
            if not rows:
                logger.info("catalog category-restricted fetch empty, widening")
        if not rows:
            rows = self._select_active(
                "products",
                PRODUCT_COLUMNS,
                filters,
                order="created_at.desc",
                limit=CANDIDATE_QUERY_LIMIT,
            )
        items: List[CatalogItem] = []
        for row in rows:
            item = parse_catalog_item(row)
            if item is not None:
                items.append(item)
        return items

    def fetch_category_names(self, category_ids: Sequence[str]) -> Dict[str, str]:
        if not category_ids:
            return {}
        try:
            rows = self._store.select("categories", "id,name", [("id", in_filter(category_ids))])
        except CatalogQueryError as exc:
            logger.warning("catalog category names failed: %s", exc)
            return {}
        return {
            str(row["id"]): str(row["name"]).strip()
            for row in rows
            if row.get("id") and isinstance(row.get("name"), str) and row["name"].strip()
        }

    def fetch_review_summaries(self, product_ids: Sequence[str]) -> Dict[str, ReviewSummary]:
        try:
            rows = self._store.select(
                "product_review_summary", REVIEW_COLUMNS, [("product_id", in_filter(product_ids))]
            )
        except CatalogQueryError as exc:
            logger.warning("catalog review summaries failed: %s", exc)
            return {}
        summaries: Dict[str, ReviewSummary] = {}
        for row in rows:
            summary = parse_review_summary(row)
            if summary is not None:
                summaries[summary.product_id] = summary
        return summaries

    def fetch_variants(self, product_ids: Sequence[str]) -> List[VariantRow]:
        try:
            rows = self._store.select(
                "product_variants", VARIANT_COLUMNS, [("product_id", in_filter(product_ids))]
            )
        except CatalogQueryError as exc:
            logger.warning("catalog variants failed: %s", exc)
            return []
        variants: List[VariantRow] = []
        for row in rows:
            variant = parse_variant_row(row)
            if variant is not None:
                variants.append(variant)
        return variants

    def _select_active(
        self,
        table: str,
        columns: str,
        filters: List,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict]:
        # Deployments without the active column get the same query unfiltered.
        try:
            return self._store.select(
                table, columns, filters + [(ACTIVE_COLUMN, "eq.true")], order=order, limit=limit
            )
        except CatalogQueryError as exc:
            if not is_missing_column_error(exc, ACTIVE_COLUMN):
                raise
            logger.info("catalog table=%s has no %s column, retrying unfiltered", table, ACTIVE_COLUMN)
        return self._store.select(table, columns, filters, order=order, limit=limit)
