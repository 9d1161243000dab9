from decimal import Decimal

import pytest

from backend.pricing import (
    EMPTY_CALCULATION,
    DocumentType,
    OrderLineItem,
    PricingConfig,
    PricingTier,
    calculate,
    estimate_processing_time,
    get_document_categories,
    get_document_type,
    round_money,
    to_minor_units,
)


def _items(n, doc="balance-sheet", tier="Standard"):
    return [OrderLineItem(doc, tier, 1, file_id=f"f{i}") for i in range(n)]


def test_four_items_no_bulk_discount():
    calc = calculate(_items(4))
    assert calc.subtotal == Decimal("2000.00")
    assert calc.bulk_discount == Decimal("0.00")
    assert calc.tax_amount == Decimal("360.00")
    assert calc.total_amount == Decimal("2360.00")


def test_five_items_bulk_discount_applies_before_tax():
    calc = calculate(_items(5))
    assert calc.subtotal == Decimal("2500.00")
    assert calc.bulk_discount == Decimal("250.00")
    assert calc.tax_amount == Decimal("405.00")
    assert calc.total_amount == Decimal("2655.00")


def test_bulk_threshold_counts_quantities_not_lines():
    calc = calculate([OrderLineItem("balance-sheet", "Standard", 5)])
    assert calc.bulk_discount == Decimal("250.00")
    assert len(calc.breakdown) == 1


@pytest.mark.parametrize("tier,expected", [("Standard", "1000.00"), ("Express", "1500.00"), ("Premium", "2000.00")])
def test_tier_multiplier(tier, expected):
    calc = calculate([OrderLineItem("net-worth", tier, 1)])
    assert calc.subtotal == Decimal(expected)
    assert calc.breakdown[0].unit_price == Decimal(expected)


def test_empty_input_is_all_zero():
    calc = calculate([])
    assert calc == EMPTY_CALCULATION
    assert calc.to_dict() == {"subtotal": 0, "bulkDiscount": 0, "taxAmount": 0, "totalAmount": 0, "breakdown": []}


def test_breakdown_keeps_input_order_without_grouping():
    items = [
        OrderLineItem("balance-sheet"),
        OrderLineItem("turnover", "Express"),
        OrderLineItem("balance-sheet"),
    ]
    calc = calculate(items)
    assert [r.document_type for r in calc.breakdown] == [
        "Balance Sheet Certification",
        "Turnover Certificate",
        "Balance Sheet Certification",
    ]
    assert [r.total_price for r in calc.breakdown] == [Decimal("500.00"), Decimal("1200.00"), Decimal("500.00")]


def test_invalid_lines_are_omitted_with_warnings():
    items = [
        OrderLineItem("balance-sheet"),
        OrderLineItem("does-not-exist"),
        OrderLineItem("turnover", "Platinum"),
        OrderLineItem("turnover", "Standard", 0),
    ]
    calc = calculate(items)
    assert len(calc.breakdown) == 1
    assert calc.subtotal == Decimal("500.00")
    assert len(calc.warnings) == 3
    assert "Item 2" in calc.warnings[0]
    assert "tier" in calc.warnings[1]
    assert "quantity" in calc.warnings[2]


def test_only_invalid_lines_gives_zero_calculation():
    calc = calculate([OrderLineItem("nope")])
    assert calc.total_amount == Decimal("0.00")
    assert calc.breakdown == ()
    assert calc.warnings


def test_deterministic_and_total_invariant():
    items = [
        OrderLineItem("cash-flow", "Express", 2),
        OrderLineItem("itr-review", "Premium", 3),
        OrderLineItem("stock-audit", "Standard", 1),
    ]
    first, second = calculate(items), calculate(items)
    assert first == second
    assert first.to_dict() == second.to_dict()
    assert first.total_amount == round_money(first.subtotal - first.bulk_discount + first.tax_amount)


def test_round_half_up_on_unit_price():
    catalog = {"odd": DocumentType("odd", "Odd", Decimal("333.33"), "X", (1, 2), False)}
    calc = calculate([OrderLineItem("odd", "Express")], catalog=catalog)
    # 333.33 x 1.5 = 499.995 -> 500.00
    assert calc.breakdown[0].unit_price == Decimal("500.00")


def test_custom_config_threshold_and_rates():
    cfg = PricingConfig.from_values(2, "0.20", "0.05")
    calc = calculate(_items(2), cfg)
    assert calc.bulk_discount == Decimal("200.00")
    assert calc.tax_amount == Decimal("40.00")
    assert calc.total_amount == Decimal("840.00")


def test_minor_units():
    assert to_minor_units(Decimal("2655.00")) == 265500
    assert to_minor_units(Decimal("0.005")) == 1
    assert calculate(_items(5)).total_minor_units == 265500


def test_line_item_from_dict_accepts_camel_and_snake_case():
    a = OrderLineItem.from_dict({"documentTypeId": "turnover", "tier": "Express", "quantity": "2", "fileId": "x"})
    b = OrderLineItem.from_dict({"document_type_id": "turnover", "tier": "Express", "quantity": 2, "file_id": "x"})
    assert a == b
    assert OrderLineItem.from_dict({"documentTypeId": "turnover", "quantity": "abc"}).quantity == 0


def test_tier_parse_is_case_insensitive():
    assert PricingTier.parse("express") is PricingTier.EXPRESS
    assert PricingTier.parse("gold") is None


def test_processing_time_estimates():
    assert estimate_processing_time([]) == "N/A"
    assert estimate_processing_time([OrderLineItem("itr-review")]) == "24 hours"
    assert estimate_processing_time([OrderLineItem("balance-sheet")]) == "2 days"
    # Premium: 96h x 0.5 = 48h
    assert estimate_processing_time([OrderLineItem("tax-audit-report", "Premium")]) == "2 days"
    # Express: 48h x 0.67 = 32.16 -> 33h
    assert estimate_processing_time([OrderLineItem("balance-sheet", "Express")]) == "2 days"
    assert estimate_processing_time([OrderLineItem("itr-review", "Premium")]) == "12 hours"


def test_categories_in_catalog_order():
    assert get_document_categories()[0] == "Financial Statements"
    assert len(set(get_document_categories())) == len(get_document_categories())


def test_catalog_lookup():
    assert get_document_type(" itr-review ").udin_required is False
    assert get_document_type("unknown") is None


def test_non_line_items_are_skipped_with_warning():
    calc = calculate([None, {"documentTypeId": "itr-review"}, OrderLineItem("itr-review")])
    assert len(calc.breakdown) == 1
    assert calc.subtotal == Decimal("300.00")
    assert calc.warnings[:2] == ("Item 1: not a line item", "Item 2: not a line item")
    assert estimate_processing_time([None, OrderLineItem("itr-review")]) == "24 hours"


def test_boolean_quantity_rejected():
    calc = calculate([OrderLineItem("itr-review", "Standard", True)])
    assert calc.breakdown == ()
    assert "quantity" in calc.warnings[0]
