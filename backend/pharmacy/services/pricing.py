# Overview: Pure cost/pricing calculator shared by receipts, returns, product edits and displays.

"""
Cost / Pricing Calculator

Converts supplier invoice terms into a landed net cost and a minimum selling
price. No database access, no side effects.

FORMULA:
    net_cost = (invoice_price * (1 - discount/100) + other_charges) * (1 + vat_rate/100)
        when invoice_price is present and > 0, otherwise the manual cost_price.
    minimum_selling_price = net_cost * MARGIN_MULTIPLIER

UNITS:
- Amounts are integer cents.
- Rates are percents (Decimal); models persist them as basis points.

COERCION:
Missing, NaN, infinite, non-numeric and negative inputs become 0 before the
formula is applied. A discount above 100% is clamped to 100%.

ROUNDING:
Arithmetic is exact Decimal; each published amount is rounded half-up to
the nearest cent. The minimum selling price is computed from the rounded
net cost, so minimum == round(net_cost * 1.33) always holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


MARGIN_MULTIPLIER = Decimal("1.33")
DEFAULT_VAT_RATE = Decimal("0")
MAX_DISCOUNT_PERCENT = Decimal("100")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def coerce_amount(value) -> Decimal:
    """Coerce a numeric-ish input to a non-negative Decimal (bad input -> 0)."""
    if value is None or isinstance(value, bool):
        return _ZERO
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        else:
            text = str(value).strip()
            if not text:
                return _ZERO
            amount = Decimal(text)
    except (InvalidOperation, ValueError, TypeError):
        return _ZERO

    if amount.is_nan() or amount.is_infinite() or amount < 0:
        return _ZERO
    return amount


def round_cents(amount: Decimal) -> int:
    """Round half-up to a whole number of cents."""
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percent_to_bps(value) -> int | None:
    """16 -> 1600. None/blank stays None; everything else is coerced first."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return round_cents(coerce_amount(value) * _HUNDRED)


def bps_to_percent(bps: int | None) -> Decimal | None:
    if bps is None:
        return None
    return Decimal(int(bps)) / _HUNDRED


@dataclass(frozen=True)
class PricingInputs:
    invoice_price_cents: int | Decimal | None = None
    supplier_discount_percent: int | float | Decimal | None = None
    vat_rate_percent: int | float | Decimal | None = DEFAULT_VAT_RATE
    other_charges_cents: int | Decimal | None = None
    cost_price_cents: int | Decimal | None = 0

    @classmethod
    def from_record(cls, record) -> "PricingInputs":
        """Build inputs from anything carrying the stored pricing columns (Product, InvoiceItem)."""
        return cls(
            invoice_price_cents=record.invoice_price_cents,
            supplier_discount_percent=bps_to_percent(record.supplier_discount_bps),
            vat_rate_percent=bps_to_percent(record.vat_rate_bps) or DEFAULT_VAT_RATE,
            other_charges_cents=record.other_charges_cents,
            cost_price_cents=record.cost_price_cents,
        )

    def to_columns(self) -> dict:
        """Stored representation of the invoice terms (cents and basis points)."""
        invoice_price = coerce_amount(self.invoice_price_cents)
        other = coerce_amount(self.other_charges_cents)
        discount_bps = percent_to_bps(self.supplier_discount_percent)
        if discount_bps is not None:
            discount_bps = min(discount_bps, round_cents(MAX_DISCOUNT_PERCENT * _HUNDRED))
        return {
            "invoice_price_cents": round_cents(invoice_price) if invoice_price > 0 else None,
            "supplier_discount_bps": discount_bps,
            "vat_rate_bps": percent_to_bps(self.vat_rate_percent) or 0,
            "other_charges_cents": round_cents(other) if other > 0 else None,
        }


@dataclass(frozen=True)
class PricingResult:
    net_cost_cents: int
    minimum_selling_price_cents: int
    selling_price_cents: int

    def to_dict(self) -> dict:
        return {
            "net_cost_cents": self.net_cost_cents,
            "minimum_selling_price_cents": self.minimum_selling_price_cents,
            "selling_price_cents": self.selling_price_cents,
        }


def net_cost_cents(inputs: PricingInputs) -> int:
    """Landed unit cost in cents."""
    invoice_price = coerce_amount(inputs.invoice_price_cents)
    if invoice_price <= 0:
        return round_cents(coerce_amount(inputs.cost_price_cents))

    discount = min(coerce_amount(inputs.supplier_discount_percent), MAX_DISCOUNT_PERCENT)
    vat_rate = coerce_amount(inputs.vat_rate_percent)
    other_charges = coerce_amount(inputs.other_charges_cents)

    discounted = invoice_price * (1 - discount / _HUNDRED)
    landed = (discounted + other_charges) * (1 + vat_rate / _HUNDRED)
    return round_cents(landed)


def minimum_selling_price_cents(inputs: PricingInputs) -> int:
    return round_cents(Decimal(net_cost_cents(inputs)) * MARGIN_MULTIPLIER)


def recommended_selling_price_cents(inputs: PricingInputs, explicit=None) -> int:
    """The minimum selling price, unless the caller supplies its own value."""
    if explicit is None:
        return minimum_selling_price_cents(inputs)
    return round_cents(coerce_amount(explicit))


def enforce_minimum(requested, inputs: PricingInputs) -> int:
    """Floor a requested selling price at the minimum selling price."""
    return max(round_cents(coerce_amount(requested)), minimum_selling_price_cents(inputs))


def derive_pricing(inputs: PricingInputs, requested_selling_price_cents=None) -> PricingResult:
    """
    Full derivation used on every goods receipt and pricing edit.

    selling price = enforce_minimum(requested) when a price is requested,
    otherwise the minimum selling price.
    """
    net_cost = net_cost_cents(inputs)
    minimum = round_cents(Decimal(net_cost) * MARGIN_MULTIPLIER)
    if requested_selling_price_cents is None:
        selling = minimum
    else:
        selling = max(round_cents(coerce_amount(requested_selling_price_cents)), minimum)
    return PricingResult(
        net_cost_cents=net_cost,
        minimum_selling_price_cents=minimum,
        selling_price_cents=selling,
    )
