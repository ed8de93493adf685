"""Typed records for catalog rows and the stock/variant math built on them.

Rows arrive from the data store as loosely-typed dicts. Each parser declares
the fields it needs up front and treats anything missing or malformed as
absent instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .utils import clamp, coerce_bool, coerce_float, coerce_int, is_record

IN_STOCK_STATUS = "in_stock"
UNAVAILABLE_STATUSES = {"sold_out", "out_of_stock", "unavailable"}
LOW_STOCK_THRESHOLD = 10

MAX_COMBINATION_LABELS = 4
MAX_SUMMARY_ATTRIBUTES = 4
MAX_VALUES_PER_ATTRIBUTE = 6

NAME_KEYS = ["name", "title"]
DESCRIPTION_KEYS = ["description", "short_description"]
DISCOUNT_KEYS = ["discount_percentage", "discount_percent", "discount"]
RATING_KEYS = ["avg_rating", "average_rating", "rating"]
ATTRIBUTE_NAME_KEYS = ["name", "attribute_name"]
NESTED_ATTRIBUTE_KEYS = ["attribute", "product_attributes", "product_attribute"]
NESTED_VALUE_KEYS = ["attribute_value", "product_attribute_values", "product_attribute_value", "attribute_values"]
VARIANT_ATTRIBUTE_KEYS = ["attributes", "product_variant_attributes", "variant_attributes"]

AttributePair = Tuple[str, str]


@dataclass(frozen=True)
class CatalogItem:
    """Read-only snapshot of a products row."""
    id: str
    name: str
    descriptions: Tuple[str, ...] = ()
    price: float = 0.0
    discount_percent: float = 0.0
    images: Tuple[str, ...] = ()
    stock_status: str = ""
    stock_quantity: int = 0
    category_id: Optional[str] = None
    brand: str = ""
    seller_name: str = ""


@dataclass(frozen=True)
class ReviewSummary:
    """Aggregated rating for one product."""
    product_id: str
    average_rating: float
    review_count: int


@dataclass(frozen=True)
class VariantRow:
    """A purchasable configuration of a product."""
    id: str
    product_id: str
    price: Optional[float] = None
    stock_quantity: int = 0
    is_available: bool = True
    attributes: Tuple[AttributePair, ...] = ()

    @property
    def sellable(self) -> bool:
        # Availability gates quantity: unavailable stock counts as zero.
        return self.is_available and self.stock_quantity > 0

    @property
    def combination_label(self) -> str:
        return ", ".join(f"{name}: {value}" for name, value in self.attributes)


@dataclass
class VariantStock:
    """Availability-gated aggregation over a product's variants."""
    total_variants: int = 0
    available_variants: int = 0
    available_quantity: int = 0
    combinations: List[str] = field(default_factory=list)


@dataclass
class StockView:
    """Stock as shown to the model for one candidate."""
    in_stock: bool
    quantity: int
    has_variants: bool
    variant_stock: Optional[VariantStock] = None

    @property
    def low_stock(self) -> bool:
        return self.in_stock and self.quantity <= LOW_STOCK_THRESHOLD


@dataclass
class RankedCandidate:
    """Scored candidate for one request; never persisted."""
    item: CatalogItem
    review: Optional[ReviewSummary] = None
    variants: List[VariantRow] = field(default_factory=list)
    score: float = 0.0


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _first_value(row: Dict[str, Any], keys: Sequence[str]) -> Optional[Any]:
    """Purpose: Return the first present value among synonym keys.
    Inputs/Outputs: Inputs are a raw row and candidate keys; output is a value or None.
    Side Effects / State: None.
    Dependencies: Uses _has_value.
    Failure Modes: Returns None when no key holds a usable value.
    If Removed: Schema drift between deployments (rating vs avg_rating) breaks parsing.
    Testing Notes: Provide only the second synonym and verify it is used.
    """
    for key in keys:
        value = row.get(key)
        if _has_value(value):
            return value
    return None


def _text(value: Any) -> str:
    if not _has_value(value):
        return ""
    return str(value).strip()


def _normalize_status(value: Any) -> str:
    return _text(value).lower().replace(" ", "_").replace("-", "_")


def _image_urls(row: Dict[str, Any]) -> Tuple[str, ...]:
    # "images" may hold strings or {url: ...} objects; "image_url" is the legacy column.
    urls: List[str] = []
    images = row.get("images")
    if isinstance(images, list):
        for image in images:
            if isinstance(image, str) and image.strip():
                urls.append(image.strip())
            elif is_record(image) and isinstance(image.get("url"), str) and image["url"].strip():
                urls.append(image["url"].strip())
    legacy = row.get("image_url")
    if isinstance(legacy, str) and legacy.strip() and legacy.strip() not in urls:
        urls.append(legacy.strip())
    return tuple(urls)


def parse_catalog_item(row: Dict[str, Any]) -> Optional[CatalogItem]:
    """Purpose: Build a CatalogItem from a products row.
    Inputs/Outputs: Input is a raw row dict; output is a CatalogItem or None.
    Side Effects / State: None.
    Dependencies: Uses _first_value and utils coercions.
    Failure Modes: Rows without an id or name return None; other fields default.
    If Removed: Candidates cannot be scored or formatted.
    Testing Notes: Feed price as a string and discount as null.
    """
    item_id = _text(row.get("id"))
    name = _text(_first_value(row, NAME_KEYS))
    if not item_id or not name:
        return None
    descriptions = tuple(_text(row.get(key)) for key in DESCRIPTION_KEYS if _text(row.get(key)))
    category_id = _text(row.get("category_id")) or None
    return CatalogItem(
        id=item_id,
        name=name,
        descriptions=descriptions,
        price=coerce_float(row.get("price")) or 0.0,
        discount_percent=clamp(coerce_float(_first_value(row, DISCOUNT_KEYS)) or 0.0, 0.0, 100.0),
        images=_image_urls(row),
        stock_status=_normalize_status(row.get("stock_status")),
        stock_quantity=coerce_int(row.get("stock_quantity")) or 0,
        category_id=category_id,
        brand=_text(row.get("brand")),
        seller_name=_text(row.get("seller_name")),
    )


def parse_review_summary(row: Dict[str, Any]) -> Optional[ReviewSummary]:
    product_id = _text(row.get("product_id"))
    rating = coerce_float(_first_value(row, RATING_KEYS))
    if not product_id or rating is None:
        return None
    return ReviewSummary(
        product_id=product_id,
        average_rating=rating,
        review_count=coerce_int(row.get("review_count")) or 0,
    )


def _attribute_name(entry: Dict[str, Any]) -> str:
    name = _text(_first_value(entry, ATTRIBUTE_NAME_KEYS))
    if name:
        return name
    for key in NESTED_ATTRIBUTE_KEYS:
        nested = entry.get(key)
        if is_record(nested):
            name = _text(_first_value(nested, ATTRIBUTE_NAME_KEYS))
            if name:
                return name
    return ""


def _attribute_pair(entry: Any) -> Optional[AttributePair]:
    """Purpose: Read one (attribute name, value) pair from a nested join entry.
    Inputs/Outputs: Input is a join entry; output is a pair or None.
    Side Effects / State: None.
    Dependencies: Recurses through NESTED_VALUE_KEYS to reach the value row.
    Failure Modes: Entries without both a name and a value return None.
    If Removed: Variant combinations and attribute summaries are empty.
    Testing Notes: Cover {name, value} and {attribute_value: {value, attribute: {name}}}.
    """
    if not is_record(entry):
        return None
    if _has_value(entry.get("value")) and not is_record(entry.get("value")):
        name = _attribute_name(entry)
        if name:
            return name, _text(entry.get("value"))
    for key in NESTED_VALUE_KEYS:
        nested = entry.get(key)
        if is_record(nested):
            pair = _attribute_pair(nested)
            if pair:
                return pair
    return None


def parse_variant_attributes(row: Dict[str, Any]) -> Tuple[AttributePair, ...]:
    """Purpose: Collect a variant's attribute pairs from any supported join shape.
    Inputs/Outputs: Input is a variant row; output is pairs sorted by attribute name.
    Side Effects / State: None.
    Dependencies: Uses _attribute_pair; accepts lists of join entries or a name->value map.
    Failure Modes: Unknown shapes produce an empty tuple.
    If Removed: Variants lose their human-readable combination labels.
    Testing Notes: Verify alphabetical ordering and duplicate removal.
    """
    pairs: Dict[str, str] = {}
    for key in VARIANT_ATTRIBUTE_KEYS:
        raw = row.get(key)
        if isinstance(raw, list):
            for entry in raw:
                pair = _attribute_pair(entry)
                if pair and pair[0] not in pairs:
                    pairs[pair[0]] = pair[1]
        elif is_record(raw):
            for name, value in raw.items():
                if _has_value(name) and _has_value(value) and not is_record(value):
                    pairs.setdefault(str(name).strip(), _text(value))
    return tuple(sorted(pairs.items(), key=lambda pair: pair[0].lower()))


def parse_variant_row(row: Dict[str, Any]) -> Optional[VariantRow]:
    variant_id = _text(row.get("id"))
    product_id = _text(row.get("product_id"))
    if not variant_id or not product_id:
        return None
    available = coerce_bool(row.get("is_available"))
    return VariantRow(
        id=variant_id,
        product_id=product_id,
        price=coerce_float(row.get("price")),
        stock_quantity=coerce_int(row.get("stock_quantity")) or 0,
        # Absence is not a negative marker; only an explicit false disables a variant.
        is_available=True if available is None else available,
        attributes=parse_variant_attributes(row),
    )


def group_variants(variants: Sequence[VariantRow]) -> Dict[str, List[VariantRow]]:
    grouped: Dict[str, List[VariantRow]] = {}
    for variant in variants:
        grouped.setdefault(variant.product_id, []).append(variant)
    return grouped


def aggregate_variant_stock(variants: Sequence[VariantRow]) -> VariantStock:
    """Purpose: Compute availability-gated stock across a product's variants.
    Inputs/Outputs: Input is the product's variants; output is a VariantStock.
    Side Effects / State: None.
    Dependencies: Uses VariantRow.sellable and combination_label.
    Failure Modes: None; empty input yields zero counts.
    If Removed: Variant-bearing items would report raw item-level stock.
    Testing Notes: One unavailable variant with qty 5 and one available with qty 3
        must report 3 units across 1/2 variants.
    """
    # Only variants that are both available and stocked contribute.
    stock = VariantStock(total_variants=len(variants))
    for variant in variants:
        if not variant.sellable:
            continue
        stock.available_variants += 1
        stock.available_quantity += variant.stock_quantity
        label = variant.combination_label
        if label and label not in stock.combinations and len(stock.combinations) < MAX_COMBINATION_LABELS:
            stock.combinations.append(label)
    return stock


def item_stock(item: CatalogItem, variants: Sequence[VariantRow]) -> StockView:
    """Purpose: Resolve the stock shown to the model for one candidate.
    Inputs/Outputs: Inputs are the item and its variants; output is a StockView.
    Side Effects / State: None.
    Dependencies: Uses aggregate_variant_stock for variant-bearing items.
    Failure Modes: None.
    If Removed: Stock lines could advertise units that cannot be bought.
    Testing Notes: Variant-bearing item with all variants unavailable is sold out even
        when the item-level quantity is positive.
    """
    if variants:
        stock = aggregate_variant_stock(variants)
        return StockView(
            in_stock=stock.available_variants > 0,
            quantity=stock.available_quantity,
            has_variants=True,
            variant_stock=stock,
        )
    sellable = item.stock_quantity > 0 and item.stock_status not in UNAVAILABLE_STATUSES
    return StockView(in_stock=sellable, quantity=item.stock_quantity if sellable else 0, has_variants=False)


def summarize_attributes(variants: Sequence[VariantRow]) -> List[str]:
    """Purpose: Summarize observed attribute values across all variants.
    Inputs/Outputs: Input is variants; output is entries like "Color: Red/Blue".
    Side Effects / State: None.
    Dependencies: Uses VariantRow.attributes.
    Failure Modes: None; variants without attributes contribute nothing.
    If Removed: The model cannot mention which options exist.
    Testing Notes: Seven distinct sizes show six values plus an ellipsis marker.
    """
    # First-seen order of names and values keeps the summary stable.
    values_by_name: Dict[str, List[str]] = {}
    for variant in variants:
        for name, value in variant.attributes:
            values = values_by_name.setdefault(name, [])
            if value not in values:
                values.append(value)
    summary: List[str] = []
    for name, values in list(values_by_name.items())[:MAX_SUMMARY_ATTRIBUTES]:
        shown = "/".join(values[:MAX_VALUES_PER_ATTRIBUTE])
        if len(values) > MAX_VALUES_PER_ATTRIBUTE:
            shown += "/..."
        summary.append(f"{name}: {shown}")
    return summary


def effective_price(item: CatalogItem) -> float:
    return round(item.price * (1 - item.discount_percent / 100), 2)


def primary_image(item: CatalogItem) -> Optional[str]:
    return item.images[0] if item.images else None
