"""GST calculation for sales bills. Pure functions, no I/O.

RULES:
- Every monetary intermediate is a Decimal quantised to paise (ROUND_HALF_UP)
  before it is summed, so totals never drift.
- GST is always split equally into CGST and SGST (intra-state). cgst is rounded
  first and sgst mirrors it, so cgst == sgst and cgst + sgst == total_gst hold
  exactly after rounding.
- Per-item discounts apply to the line before the taxable/tax split and can
  never push the line below zero.
- The bill-level discount comes off the taxable total after summation and is
  not re-split into per-item tax. This is a known approximation for GST
  filing and is kept deliberately.
- The payable amount is rounded to the nearest rupee (half-up); the delta is
  reported as round_off and is not taxed.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from medbill.core.exceptions import InvalidDiscount, InvalidGstRate, InvalidQuantity
from medbill.models.enums import DiscountType, PriceType

PAISE = Decimal("0.01")
RUPEE = Decimal("1")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

VALID_GST_RATES = (0, 5, 12, 18)


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None:
        return Decimal("0")
    return Decimal(str(x))


def money2(x) -> Decimal:
    return D(x).quantize(PAISE, rounding=ROUND_HALF_UP)


def is_valid_gst_rate(rate) -> bool:
    try:
        return D(rate) in {Decimal(r) for r in VALID_GST_RATES}
    except Exception:
        return False


def default_hsn_code(gst_rate) -> str:
    """Common pharma HSN codes by GST slab."""
    rate = int(D(gst_rate))
    if rate == 0:
        return "3002"  # exempt medicines, blood products
    if rate == 18:
        return "2106"  # vitamins, supplements
    return "3004"


@dataclass(frozen=True)
class Discount:
    type: DiscountType
    value: Decimal

    def __post_init__(self):
        value = D(self.value)
        if value < 0:
            raise InvalidDiscount("Discount cannot be negative")
        if self.type == DiscountType.PERCENTAGE and value > HUNDRED:
            raise InvalidDiscount("Percentage discount cannot exceed 100")
        object.__setattr__(self, "type", DiscountType(self.type))
        object.__setattr__(self, "value", value)

    @classmethod
    def percentage(cls, value) -> "Discount":
        return cls(DiscountType.PERCENTAGE, D(value))

    @classmethod
    def flat(cls, value) -> "Discount":
        return cls(DiscountType.FLAT, D(value))


@dataclass(frozen=True)
class CartLineInput:
    unit_price: Decimal
    quantity: int
    gst_rate: Decimal
    price_type: PriceType = PriceType.INCLUSIVE
    discount: Optional[Discount] = None
    batch_id: Optional[int] = None


@dataclass(frozen=True)
class GstCalculation:
    gst_rate: Decimal
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    total_gst: Decimal
    total: Decimal


@dataclass(frozen=True)
class ItemCalculation:
    batch_id: Optional[int]
    quantity: int
    unit_price: Decimal
    price_type: PriceType
    gst_rate: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    fully_discounted: bool
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    total_gst: Decimal
    total: Decimal


@dataclass(frozen=True)
class BillCalculation:
    items: List[ItemCalculation] = field(default_factory=list)
    subtotal: Decimal = ZERO
    item_discount_total: Decimal = ZERO
    taxable_total: Decimal = ZERO
    total_cgst: Decimal = ZERO
    total_sgst: Decimal = ZERO
    total_gst: Decimal = ZERO
    bill_discount: Decimal = ZERO
    grand_total: Decimal = ZERO  # before rounding to the rupee
    round_off: Decimal = ZERO
    final_amount: Decimal = ZERO

    @property
    def items_total(self) -> Decimal:
        return money2(sum((i.total for i in self.items), Decimal("0")))


def calculate_discount(amount, discount: Optional[Discount]) -> Decimal:
    """Discount amount for ``amount``; flat discounts are capped at the amount."""
    amount = money2(amount)
    if discount is None or discount.value <= 0 or amount <= 0:
        return ZERO
    if discount.type == DiscountType.PERCENTAGE:
        return money2(amount * discount.value / HUNDRED)
    return money2(min(discount.value, amount))


def calculate_gst(line_amount, gst_rate, price_type: PriceType) -> GstCalculation:
    """
    Split a (post-discount) line amount into taxable value and CGST/SGST.

    INCLUSIVE: tax is extracted, total == line_amount.
    EXCLUSIVE: tax is added on top, taxable == line_amount.
    """
    rate = D(gst_rate)
    if not is_valid_gst_rate(rate):
        raise InvalidGstRate(f"GST rate must be one of {VALID_GST_RATES}, got {gst_rate}")
    line = money2(max(D(line_amount), Decimal("0")))

    if rate == 0 or line == 0:
        return GstCalculation(rate, line, ZERO, ZERO, ZERO, line)

    if PriceType(price_type) == PriceType.INCLUSIVE:
        raw_gst = line - (line * HUNDRED / (HUNDRED + rate))
    else:
        raw_gst = line * rate / HUNDRED

    cgst = money2(raw_gst / 2)
    sgst = cgst
    total_gst = cgst + sgst

    if PriceType(price_type) == PriceType.INCLUSIVE:
        taxable = line - total_gst
        total = line
    else:
        taxable = line
        total = line + total_gst

    return GstCalculation(rate, money2(taxable), cgst, sgst, money2(total_gst), money2(total))


def calculate_item(line: CartLineInput) -> ItemCalculation:
    if int(line.quantity) <= 0:
        raise InvalidQuantity(f"Quantity must be positive, got {line.quantity}")
    unit_price = money2(line.unit_price)
    if unit_price < 0:
        raise InvalidQuantity("Unit price cannot be negative")

    gross = money2(unit_price * int(line.quantity))
    discount_amount = calculate_discount(gross, line.discount)
    net = gross - discount_amount
    fully_discounted = gross > 0 and net <= 0
    if net < 0:
        net = ZERO

    gst = calculate_gst(net, line.gst_rate, line.price_type)
    return ItemCalculation(
        batch_id=line.batch_id,
        quantity=int(line.quantity),
        unit_price=unit_price,
        price_type=PriceType(line.price_type),
        gst_rate=gst.gst_rate,
        gross_amount=gross,
        discount_amount=discount_amount,
        fully_discounted=fully_discounted,
        taxable_value=gst.taxable_value,
        cgst=gst.cgst,
        sgst=gst.sgst,
        total_gst=gst.total_gst,
        total=gst.total,
    )


def calculate_bill(
    items: Iterable[CartLineInput],
    bill_discount: Optional[Discount] = None,
) -> BillCalculation:
    """Full bill calculation: per-item breakdown, totals, bill discount and round-off."""
    calculated = [calculate_item(i) for i in items]

    subtotal = money2(sum((i.gross_amount for i in calculated), Decimal("0")))
    item_discount_total = money2(sum((i.discount_amount for i in calculated), Decimal("0")))
    taxable_total = money2(sum((i.taxable_value for i in calculated), Decimal("0")))
    total_cgst = money2(sum((i.cgst for i in calculated), Decimal("0")))
    total_sgst = money2(sum((i.sgst for i in calculated), Decimal("0")))
    total_gst = total_cgst + total_sgst

    bill_discount_amount = calculate_discount(taxable_total, bill_discount)
    grand_total = money2(taxable_total - bill_discount_amount + total_gst)
    final_amount = grand_total.quantize(RUPEE, rounding=ROUND_HALF_UP)
    round_off = money2(final_amount - grand_total)

    return BillCalculation(
        items=calculated,
        subtotal=subtotal,
        item_discount_total=item_discount_total,
        taxable_total=taxable_total,
        total_cgst=total_cgst,
        total_sgst=total_sgst,
        total_gst=money2(total_gst),
        bill_discount=bill_discount_amount,
        grand_total=grand_total,
        round_off=round_off,
        final_amount=money2(final_amount),
    )


def split_quantity(quantity: int, tablets_per_strip: int) -> Tuple[int, int]:
    """Pieces -> (strips, loose pieces)."""
    per_strip = max(int(tablets_per_strip or 1), 1)
    return divmod(int(quantity), per_strip)


def group_by_gst_rate(items: Iterable[ItemCalculation]) -> Dict[Decimal, Dict[str, Decimal]]:
    """Per-slab summary used by GST filing reports."""
    grouped: Dict[Decimal, Dict[str, Decimal]] = OrderedDict()
    for item in items:
        row = grouped.setdefault(
            item.gst_rate,
            {"taxable_value": ZERO, "cgst": ZERO, "sgst": ZERO, "total_gst": ZERO},
        )
        row["taxable_value"] = money2(row["taxable_value"] + item.taxable_value)
        row["cgst"] = money2(row["cgst"] + item.cgst)
        row["sgst"] = money2(row["sgst"] + item.sgst)
        row["total_gst"] = money2(row["total_gst"] + item.total_gst)
    return grouped


def format_gst_breakup(calc: GstCalculation) -> str:
    if calc.gst_rate == 0:
        return "GST Exempt"
    half = (calc.gst_rate / 2).normalize()
    return f"CGST {half}%: ₹{calc.cgst:,.2f} + SGST {half}%: ₹{calc.sgst:,.2f}"
