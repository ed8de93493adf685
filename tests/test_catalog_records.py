"""Tests for catalog row parsing and availability-gated stock math."""

from cartify_ai.catalog_records import (
    CatalogItem,
    VariantRow,
    aggregate_variant_stock,
    effective_price,
    item_stock,
    parse_catalog_item,
    parse_review_summary,
    parse_variant_row,
    summarize_attributes,
)


def variant(variant_id, quantity, available=True, **attributes):
    return VariantRow(
        id=variant_id,
        product_id="p1",
        stock_quantity=quantity,
        is_available=available,
        attributes=tuple(sorted(attributes.items())),
    )


class TestParseCatalogItem:
    def test_loose_types(self):
        item = parse_catalog_item(
            {
                "id": 7,
                "name": " Red Shoes ",
                "description": "Running shoes",
                "price": "2500",
                "discount_percentage": None,
                "images": [{"url": "https://img/1.jpg"}, "https://img/2.jpg"],
                "image_url": "https://img/1.jpg",
                "stock_status": "In Stock",
                "stock_quantity": "12",
            }
        )
        assert item.id == "7"
        assert item.name == "Red Shoes"
        assert item.price == 2500.0
        assert item.discount_percent == 0.0
        assert item.images == ("https://img/1.jpg", "https://img/2.jpg")
        assert item.stock_status == "in_stock"
        assert item.stock_quantity == 12

    def test_requires_id_and_name(self):
        assert parse_catalog_item({"id": "p1"}) is None
        assert parse_catalog_item({"name": "Shoes"}) is None

    def test_discount_synonym_and_clamp(self):
        assert parse_catalog_item({"id": "p1", "name": "x", "discount": 150}).discount_percent == 100.0


class TestParseReviewSummary:
    def test_rating_synonyms(self):
        summary = parse_review_summary({"product_id": "p1", "average_rating": "4.5", "review_count": 3})
        assert summary.average_rating == 4.5
        assert summary.review_count == 3

    def test_missing_rating(self):
        assert parse_review_summary({"product_id": "p1", "review_count": 3}) is None


class TestParseVariantRow:
    def test_nested_join_shape(self):
        row = parse_variant_row(
            {
                "id": "v1",
                "product_id": "p1",
                "stock_quantity": 3,
                "product_variant_attributes": [
                    {"attribute_value": {"value": "Red", "attribute": {"name": "Color"}}},
                    {"attribute_value": {"value": "9", "attribute": {"name": "Size"}}},
                ],
            }
        )
        assert row.attributes == (("Color", "Red"), ("Size", "9"))
        assert row.combination_label == "Color: Red, Size: 9"

    def test_absent_availability_counts_as_available(self):
        assert parse_variant_row({"id": "v1", "product_id": "p1", "stock_quantity": 2}).is_available is True

    def test_explicit_false_disables(self):
        row = parse_variant_row({"id": "v1", "product_id": "p1", "stock_quantity": 2, "is_available": "false"})
        assert row.is_available is False
        assert row.sellable is False

    def test_flat_attribute_map(self):
        row = parse_variant_row({"id": "v1", "product_id": "p1", "attributes": {"Size": "M", "Color": "Blue"}})
        assert row.attributes == (("Color", "Blue"), ("Size", "M"))


class TestVariantStock:
    def test_unavailable_quantity_is_not_counted(self):
        stock = aggregate_variant_stock([variant("v1", 5, available=False), variant("v2", 3)])
        assert stock.total_variants == 2
        assert stock.available_variants == 1
        assert stock.available_quantity == 3

    def test_combinations_capped_at_four(self):
        variants = [variant(f"v{i}", 1, Size=str(i)) for i in range(6)]
        assert aggregate_variant_stock(variants).combinations == ["Size: 0", "Size: 1", "Size: 2", "Size: 3"]

    def test_quantity_never_exceeds_sum_of_stocked(self):
        variants = [variant("v1", 4), variant("v2", 0), variant("v3", 7, available=False)]
        stock = aggregate_variant_stock(variants)
        assert stock.available_quantity <= sum(v.stock_quantity for v in variants)
        assert stock.available_variants <= stock.total_variants


class TestItemStock:
    def test_all_variants_unavailable_is_sold_out(self):
        item = CatalogItem(id="p1", name="Shoes", stock_status="in_stock", stock_quantity=50)
        stock = item_stock(item, [variant("v1", 5, available=False), variant("v2", 5, available=False)])
        assert stock.in_stock is False
        assert stock.quantity == 0

    def test_plain_item_uses_item_fields(self):
        item = CatalogItem(id="p1", name="Shoes", stock_status="in_stock", stock_quantity=8)
        stock = item_stock(item, [])
        assert stock.in_stock is True
        assert stock.quantity == 8
        assert stock.low_stock is True

    def test_sold_out_status_wins_over_quantity(self):
        item = CatalogItem(id="p1", name="Shoes", stock_status="sold_out", stock_quantity=8)
        assert item_stock(item, []).in_stock is False


class TestSummarizeAttributes:
    def test_values_capped_with_marker(self):
        variants = [variant(f"v{i}", 1, Size=str(i)) for i in range(7)]
        assert summarize_attributes(variants) == ["Size: 0/1/2/3/4/5/..."]

    def test_first_seen_order(self):
        variants = [variant("v1", 1, Color="Red", Size="M"), variant("v2", 1, Color="Blue", Size="M")]
        assert summarize_attributes(variants) == ["Color: Red/Blue", "Size: M"]


def test_effective_price():
    assert effective_price(CatalogItem(id="p1", name="x", price=2500, discount_percent=20)) == 2000.0
