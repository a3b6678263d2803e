"""GST calculator: inclusive/exclusive split, discounts, bill totals and round-off."""
from decimal import Decimal

import pytest

from medbill.core.exceptions import InvalidDiscount, InvalidGstRate, InvalidQuantity
from medbill.models.enums import PriceType
from medbill.services.gst_service import (
    CartLineInput,
    Discount,
    calculate_bill,
    calculate_discount,
    calculate_gst,
    calculate_item,
    default_hsn_code,
    format_gst_breakup,
    group_by_gst_rate,
    split_quantity,
)


def test_inclusive_twelve_percent_two_units():
    item = calculate_item(CartLineInput(Decimal("32"), 2, Decimal("12")))
    assert item.total == Decimal("64.00")
    assert item.taxable_value == Decimal("57.14")
    assert item.cgst == Decimal("3.43")
    assert item.sgst == Decimal("3.43")
    assert item.total_gst == Decimal("6.86")


def test_exempt_line_has_no_tax():
    item = calculate_item(CartLineInput(Decimal("105"), 2, Decimal("0")))
    assert item.taxable_value == Decimal("210.00")
    assert item.total_gst == Decimal("0.00")
    assert item.total == Decimal("210.00")


def test_exclusive_adds_tax_on_top():
    gst = calculate_gst(Decimal("100"), 12, PriceType.EXCLUSIVE)
    assert gst.taxable_value == Decimal("100.00")
    assert gst.cgst == Decimal("6.00")
    assert gst.total == Decimal("112.00")


@pytest.mark.parametrize("rate", [5, 12, 18])
@pytest.mark.parametrize("amount", ["0.01", "1.99", "57.50", "333.33", "1049.95"])
def test_split_is_equal_and_inclusive_reproduces_line(rate, amount):
    gst = calculate_gst(Decimal(amount), rate, PriceType.INCLUSIVE)
    assert gst.cgst == gst.sgst
    assert gst.cgst + gst.sgst == gst.total_gst
    assert abs(gst.taxable_value + gst.total_gst - Decimal(amount)) <= Decimal("0.01")
    assert gst.total == Decimal(amount)


def test_invalid_rate_rejected():
    with pytest.raises(InvalidGstRate):
        calculate_gst(Decimal("100"), 7, PriceType.INCLUSIVE)


def test_item_discount_before_tax():
    line = CartLineInput(Decimal("100"), 2, Decimal("12"), PriceType.EXCLUSIVE, Discount.percentage(10))
    item = calculate_item(line)
    assert item.gross_amount == Decimal("200.00")
    assert item.discount_amount == Decimal("20.00")
    assert item.taxable_value == Decimal("180.00")
    assert item.total_gst == Decimal("21.60")
    assert item.total == Decimal("201.60")
    assert not item.fully_discounted


def test_flat_discount_beyond_gross_clamps_to_zero():
    item = calculate_item(CartLineInput(Decimal("100"), 2, Decimal("12"), discount=Discount.flat(500)))
    assert item.discount_amount == Decimal("200.00")
    assert item.total == Decimal("0.00")
    assert item.fully_discounted


def test_discount_validation():
    with pytest.raises(InvalidDiscount):
        Discount.percentage(101)
    with pytest.raises(InvalidDiscount):
        Discount.flat(-1)
    assert calculate_discount(Decimal("50"), None) == Decimal("0.00")


def test_non_positive_quantity_rejected():
    with pytest.raises(InvalidQuantity):
        calculate_item(CartLineInput(Decimal("10"), 0, Decimal("12")))


def test_round_off_to_rupee():
    calc = calculate_bill([CartLineInput(Decimal("10.30"), 1, Decimal("12"))])
    assert calc.grand_total == Decimal("10.30")
    assert calc.final_amount == Decimal("10.00")
    assert calc.round_off == Decimal("-0.30")


def test_half_rupee_rounds_up():
    calc = calculate_bill([CartLineInput(Decimal("10.50"), 1, Decimal("0"))])
    assert calc.final_amount == Decimal("11.00")
    assert calc.round_off == Decimal("0.50")


def test_bill_discount_comes_off_taxable_total():
    calc = calculate_bill(
        [CartLineInput(Decimal("112"), 1, Decimal("12"))],
        bill_discount=Discount.percentage(10),
    )
    assert calc.taxable_total == Decimal("100.00")
    assert calc.bill_discount == Decimal("10.00")
    assert calc.total_gst == Decimal("12.00")
    assert calc.final_amount == Decimal("102.00")


def test_bill_ties_out_exactly():
    lines = [
        CartLineInput(Decimal("32"), 3, Decimal("12")),
        CartLineInput(Decimal("18.75"), 7, Decimal("5"), PriceType.EXCLUSIVE),
        CartLineInput(Decimal("99.99"), 1, Decimal("18"), discount=Discount.percentage(7)),
        CartLineInput(Decimal("45"), 2, Decimal("0")),
    ]
    calc = calculate_bill(lines, bill_discount=Discount.flat(15))
    assert calc.items_total - calc.bill_discount + calc.round_off == calc.final_amount
    assert calc.total_cgst == calc.total_sgst
    assert abs(calc.final_amount - calc.grand_total) <= Decimal("0.50")


def test_helpers():
    assert split_quantity(25, 10) == (2, 5)
    assert split_quantity(7, 0) == (7, 0)
    assert default_hsn_code(0) == "3002"
    assert default_hsn_code(18) == "2106"
    assert default_hsn_code(12) == "3004"

    items = [
        calculate_item(CartLineInput(Decimal("32"), 2, Decimal("12"))),
        calculate_item(CartLineInput(Decimal("56"), 1, Decimal("12"))),
        calculate_item(CartLineInput(Decimal("10"), 1, Decimal("0"))),
    ]
    grouped = group_by_gst_rate(items)
    assert set(grouped) == {Decimal("12"), Decimal("0")}
    assert grouped[Decimal("12")]["cgst"] == items[0].cgst + items[1].cgst

    gst = calculate_gst(Decimal("112"), 12, PriceType.INCLUSIVE)
    assert format_gst_breakup(gst) == "CGST 6%: ₹6.00 + SGST 6%: ₹6.00"
    assert format_gst_breakup(calculate_gst(Decimal("5"), 0, PriceType.INCLUSIVE)) == "GST Exempt"
