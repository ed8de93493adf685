"""Tests for catalog candidate retrieval, ranking, and the evidence block."""

import httpx

from cartify_ai.catalog_context import (
    CATALOG_CONTEXT_HEADER,
    CatalogContextBuilder,
    CategoryMatch,
    format_catalog_context,
    format_rating,
    rank_candidates,
    score_candidate,
)
from cartify_ai.catalog_records import CatalogItem, RankedCandidate, ReviewSummary
from cartify_ai.supabase_rest import SupabaseRestClient

from conftest import LINK_BASE, STORE_URL, StoreStub, missing_column_response

RED_SHOES = {
    "id": "p1",
    "name": "Red Running Shoes",
    "description": "Lightweight red shoes for daily runs",
    "price": 2500,
    "discount_percentage": 20,
    "images": ["https://img.test/p1.jpg"],
    "stock_status": "in_stock",
    "stock_quantity": 12,
    "category_id": "c1",
    "brand": "Stride",
}


def builder_for(stub: StoreStub, max_chars: int = 6000) -> CatalogContextBuilder:
    store = SupabaseRestClient(stub.client(), STORE_URL, "service-key")
    return CatalogContextBuilder(store, link_base=LINK_BASE, max_chars=max_chars)


def categories_route(matches=None, names=None):
    def route(request: httpx.Request) -> httpx.Response:
        if "or" in request.url.params:
            return httpx.Response(200, json=matches or [])
        return httpx.Response(200, json=names or [])

    return route


class TestCatalogContextBuilder:
    def test_discounted_variant_product_line(self):
        def shoe_variant(variant_id, size, quantity, available=True):
            return {
                "id": variant_id,
                "product_id": "p1",
                "stock_quantity": quantity,
                "is_available": available,
                "product_variant_attributes": [
                    {"attribute_value": {"value": "Red", "attribute": {"name": "Color"}}},
                    {"attribute_value": {"value": size, "attribute": {"name": "Size"}}},
                ],
            }

        stub = StoreStub(
            {
                "categories": categories_route(names=[{"id": "c1", "name": "Footwear"}]),
                "products": [RED_SHOES],
                "product_review_summary": [{"product_id": "p1", "avg_rating": 4.5, "review_count": 12}],
                "product_variants": [
                    shoe_variant("v1", "9", 7),
                    shoe_variant("v2", "10", 8),
                    shoe_variant("v3", "11", 20, available=False),
                ],
            }
        )
        context = builder_for(stub).build("red shoes under 2000")

        assert context.used
        assert context.text.startswith(CATALOG_CONTEXT_HEADER)
        line = context.text.splitlines()[1]
        assert line.startswith("1. Red Running Shoes | Price: 2000.00 (MRP 2500.00, -20%)")
        assert "Stock: In stock (15 units across 2/3 variants)" in line
        assert "Rating: 4.5/5 (12 reviews)" in line
        assert "Category: Footwear" in line
        assert "Has variants: Yes" in line
        assert "Options: Color: Red; Size: 9/10/11" in line
        assert "Example: Color: Red, Size: 9" in line
        assert f"Link: {LINK_BASE}/p1" in line
        assert "Image: https://img.test/p1.jpg" in line
        assert "RECOMMENDATION RULES:" in context.text

    def test_simple_product_uses_item_stock(self):
        stub = StoreStub({"products": [RED_SHOES], "product_variants": []})
        line = builder_for(stub).build("red shoes under 2000").text.splitlines()[1]
        assert "Price: 2000.00 (MRP 2500.00, -20%)" in line
        assert "Stock: In stock (12 units)" in line
        assert "Has variants: No" in line

    def test_sends_service_key_and_active_filter(self):
        stub = StoreStub({"products": [RED_SHOES]})
        builder_for(stub).build("red shoes")

        request = stub.requests_for("products")[0]
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.url.params.get("is_active") == "eq.true"
        assert request.url.params.get("order") == "created_at.desc"
        assert "name.ilike" in request.url.params.get("or")

    def test_all_variants_unavailable_is_sold_out(self):
        product = dict(RED_SHOES, stock_quantity=50, discount_percentage=0)
        stub = StoreStub(
            {
                "products": [product],
                "product_variants": [
                    {"id": "v1", "product_id": "p1", "stock_quantity": 5, "is_available": False},
                    {"id": "v2", "product_id": "p1", "stock_quantity": 5, "is_available": False},
                ],
            }
        )
        line = builder_for(stub).build("red shoes").text.splitlines()[1]
        assert "Stock: Sold out" in line
        assert "Has variants: Yes" in line

    def test_variant_stock_and_options(self):
        stub = StoreStub(
            {
                "products": [dict(RED_SHOES, discount_percentage=0)],
                "product_variants": [
                    {
                        "id": "v1",
                        "product_id": "p1",
                        "stock_quantity": 4,
                        "is_available": True,
                        "product_variant_attributes": [
                            {"attribute_value": {"value": "Red", "attribute": {"name": "Color"}}},
                            {"attribute_value": {"value": "9", "attribute": {"name": "Size"}}},
                        ],
                    },
                    {
                        "id": "v2",
                        "product_id": "p1",
                        "stock_quantity": 6,
                        "is_available": False,
                        "product_variant_attributes": [
                            {"attribute_value": {"value": "Red", "attribute": {"name": "Color"}}},
                            {"attribute_value": {"value": "10", "attribute": {"name": "Size"}}},
                        ],
                    },
                ],
            }
        )
        line = builder_for(stub).build("red shoes").text.splitlines()[1]
        assert "Price: 2500.00 |" in line
        assert "Stock: In stock (4 units across 1/2 variants, low stock)" in line
        assert "Options: Color: Red; Size: 9/10" in line
        assert "Example: Color: Red, Size: 9" in line

    def test_missing_active_column_retries_unfiltered(self):
        def products(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("is_active"):
                return missing_column_response("products.is_active")
            return httpx.Response(200, json=[RED_SHOES])

        stub = StoreStub({"products": products})
        context = builder_for(stub).build("red shoes")

        product_requests = stub.requests_for("products")
        assert len(product_requests) == 2
        assert product_requests[1].url.params.get("is_active") is None
        assert context.used

    def test_other_candidate_failure_yields_no_evidence(self):
        stub = StoreStub({"products": lambda request: httpx.Response(500, json={"message": "boom"})})
        context = builder_for(stub).build("red shoes")
        assert context.text == ""
        assert context.used is False
        assert len(stub.requests_for("products")) == 1

    def test_review_failure_degrades_to_no_ratings(self):
        stub = StoreStub(
            {
                "products": [RED_SHOES],
                "product_review_summary": lambda request: httpx.Response(500, json={"message": "down"}),
            }
        )
        context = builder_for(stub).build("red shoes")
        assert context.used
        assert "No ratings yet" in context.text

    def test_category_restricted_fetch_widens_when_empty(self):
        def products(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("category_id"):
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[RED_SHOES])

        stub = StoreStub(
            {
                "categories": categories_route(matches=[{"id": "c9", "name": "Red Collection"}]),
                "products": products,
            }
        )
        context = builder_for(stub).build("red shoes")

        product_requests = stub.requests_for("products")
        assert len(product_requests) == 2
        assert product_requests[0].url.params.get("category_id") == 'in.("c9")'
        assert [category.name for category in context.matched_categories] == ["Red Collection"]
        assert "Matched categories: Red Collection" in context.text

    def test_matched_categories_capped_at_three(self):
        matches = [{"id": f"c{i}", "name": f"Shoes {i}"} for i in range(5)]
        stub = StoreStub({"categories": categories_route(matches=matches), "products": [RED_SHOES]})
        context = builder_for(stub).build("red shoes")
        assert len(context.matched_categories) == 3

    def test_greeting_makes_no_queries(self):
        stub = StoreStub({})
        context = builder_for(stub).build("hi there")
        assert context.text == ""
        assert stub.requests == []

    def test_no_candidates(self):
        stub = StoreStub({"products": []})
        context = builder_for(stub).build("purple unicorn saddle")
        assert context.used is False
        assert context.candidates == []

    def test_block_respects_cap(self):
        rows = [dict(RED_SHOES, id=f"p{i}", name="Red shoes " + "x" * 900) for i in range(10)]
        stub = StoreStub({"products": rows})
        context = builder_for(stub, max_chars=1500).build("red shoes")
        assert 0 < len(context.text) <= 1500


class TestRanking:
    def test_score_components(self):
        item = CatalogItem(
            id="p1",
            name="Red shoes",
            stock_status="in_stock",
            stock_quantity=3,
            discount_percent=10,
        )
        review = ReviewSummary(product_id="p1", average_rating=4.5, review_count=2)
        assert score_candidate(item, review, ["red", "shoes"]) == 6 + 5 + 2 + 1 + 4.5

    def test_rating_contribution_is_clamped(self):
        item = CatalogItem(id="p1", name="x")
        review = ReviewSummary(product_id="p1", average_rating=9, review_count=1)
        assert score_candidate(item, review, []) == 5.0

    def test_stable_for_equal_scores(self):
        items = [CatalogItem(id=f"p{i}", name="Plain item") for i in range(4)]
        ranked = rank_candidates(items, {}, {}, ["shoes"])
        assert [candidate.item.id for candidate in ranked] == ["p0", "p1", "p2", "p3"]

    def test_higher_scores_first_and_capped(self):
        items = [CatalogItem(id=f"p{i}", name="Plain item") for i in range(8)]
        items.append(CatalogItem(id="best", name="Red shoes", stock_status="in_stock", stock_quantity=4))
        ranked = rank_candidates(items, {}, {}, ["red", "shoes"])
        assert ranked[0].item.id == "best"
        assert len(ranked) == 6
        assert [candidate.score for candidate in ranked] == sorted((c.score for c in ranked), reverse=True)


class TestFormatting:
    def test_rating_lines(self):
        assert format_rating(None) == "No ratings yet"
        assert format_rating(ReviewSummary("p1", 4.0, 0)) == "No ratings yet"
        assert format_rating(ReviewSummary("p1", 4.0, 1)) == "Rating: 4.0/5 (1 review)"

    def test_empty_candidates(self):
        assert format_catalog_context([], [CategoryMatch("c1", "Shoes")], {}, LINK_BASE) == ""

    def test_truncated_to_cap(self):
        candidates = [
            RankedCandidate(item=CatalogItem(id=f"p{i}", name="y" * 400, price=10.0)) for i in range(40)
        ]
        assert len(format_catalog_context(candidates, [], {}, LINK_BASE)) == 6000
